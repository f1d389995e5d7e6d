"""Great-circle distance and the proximity policies built on it."""

from __future__ import annotations

import math
from typing import Any

from neartalk.constants import EARTH_RADIUS_KM


def as_coordinate(value: Any) -> float | None:
    """Return ``value`` as a finite float, or None when it is not a real number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def distance(lat1: Any, lon1: Any, lat2: Any, lon2: Any) -> float | None:
    """Haversine distance in kilometres on a spherical earth.

    Returns None instead of raising when any coordinate is missing or not
    numeric; callers decide what an unknown distance means for them.
    """
    coords = [as_coordinate(v) for v in (lat1, lon1, lat2, lon2)]
    if any(c is None for c in coords):
        return None
    phi1, lam1, phi2, lam2 = (math.radians(c) for c in coords)  # type: ignore[arg-type]
    d_phi = phi2 - phi1
    d_lam = lam2 - lam1
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    )
    # Rounding error can push ``a`` a hair past 1 for antipodal points.
    a = min(1.0, a)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def display_km(km: float | None) -> float | None:
    """Distance rounded for display. Never use it for sorting or filtering."""
    if km is None:
        return None
    return round(km, 1)


def sort_key(km: float | None) -> float:
    """Sort key placing unknown distances after every known one."""
    return math.inf if km is None else km


def within_radius(km: float | None, radius_km: float, include_unknown: bool) -> bool:
    """Radius test with an explicit policy for unknown distances.

    Discovery includes groups whose distance cannot be computed; strict
    proximity search excludes them.
    """
    if km is None:
        return include_unknown
    return km <= radius_km
