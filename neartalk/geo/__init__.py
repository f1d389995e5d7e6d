"""Location resolution and proximity ranking."""

from .distance import display_km, distance, sort_key, within_radius
from .location import Approximate, GeoProvider, Location, Precise, Unavailable

__all__ = [
    "Approximate",
    "GeoProvider",
    "Location",
    "Precise",
    "Unavailable",
    "display_km",
    "distance",
    "sort_key",
    "within_radius",
]
