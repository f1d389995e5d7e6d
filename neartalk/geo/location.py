"""Best-effort resolution of the user's position.

A resolved position is always tagged with how it was obtained. There is no
(0, 0) placeholder: when nothing is known the provider answers ``Unavailable``
and callers branch on that instead of on coordinate values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Union

import httpx

from neartalk.constants import IP_GEOLOCATION_TIMEOUT_SECONDS, IP_GEOLOCATION_URL

from .distance import as_coordinate

logger = logging.getLogger(__name__)

PreciseSource = Callable[[], Awaitable["tuple[float, float] | None"]]


@dataclass(frozen=True)
class Precise:
    """A device-reported (GPS) position."""

    latitude: float
    longitude: float
    accuracy = "precise"
    is_available = True


@dataclass(frozen=True)
class Approximate:
    """A position inferred from the caller's IP address."""

    latitude: float
    longitude: float
    accuracy = "ip-approximate"
    is_available = True


@dataclass(frozen=True)
class Unavailable:
    """No position could be determined."""

    accuracy = "unavailable"
    is_available = False


Location = Union[Precise, Approximate, Unavailable]


def location_from_payload(data: dict | None) -> Location:
    """Build a location from a ``{latitude, longitude, accuracy}`` mapping."""
    if not data or data.get("accuracy") == Unavailable.accuracy:
        return Unavailable()
    lat = as_coordinate(data.get("latitude"))
    lon = as_coordinate(data.get("longitude"))
    if lat is None or lon is None:
        return Unavailable()
    if data.get("accuracy") == Precise.accuracy:
        return Precise(lat, lon)
    return Approximate(lat, lon)


def location_to_payload(location: Location) -> dict:
    if isinstance(location, Unavailable):
        return {"accuracy": location.accuracy}
    return {
        "latitude": location.latitude,
        "longitude": location.longitude,
        "accuracy": location.accuracy,
    }


class GeoProvider:
    """Tries a precise source first, then IP geolocation, then gives up."""

    def __init__(
        self,
        precise_source: PreciseSource | None = None,
        *,
        ip_lookup_url: str = IP_GEOLOCATION_URL,
        timeout: float = IP_GEOLOCATION_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.precise_source = precise_source
        self.ip_lookup_url = ip_lookup_url
        self.timeout = timeout
        self.http_client = http_client

    async def locate(self) -> Location:
        precise = await self._precise()
        if precise is not None:
            return precise
        approximate = await self._ip_lookup()
        if approximate is not None:
            return approximate
        logger.info("Location unavailable; continuing in degraded mode")
        return Unavailable()

    async def _precise(self) -> Precise | None:
        if self.precise_source is None:
            return None
        try:
            fix = await self.precise_source()
        except Exception as e:
            logger.warning(f"Precise location source failed: {e}")
            return None
        if not fix:
            return None
        lat, lon = (as_coordinate(v) for v in fix)
        if lat is None or lon is None:
            return None
        return Precise(lat, lon)

    async def _ip_lookup(self) -> Approximate | None:
        try:
            if self.http_client is not None:
                response = await self.http_client.get(
                    self.ip_lookup_url, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.ip_lookup_url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"IP geolocation lookup failed: {e}")
            return None

        if not isinstance(data, dict):
            return None
        try:
            lat = as_coordinate(float(data.get("latitude")))
            lon = as_coordinate(float(data.get("longitude")))
        except (TypeError, ValueError):
            return None
        # The service answers (0, 0) when it cannot place the address.
        if lat is None or lon is None or (lat == 0 and lon == 0):
            return None
        return Approximate(lat, lon)
