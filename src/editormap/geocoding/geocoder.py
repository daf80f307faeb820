"""
Geolocation collaborators.

Discovery consumes two external capabilities through narrow interfaces:
- `GeolocationProvider.current_position()`: the seeker's device position
- `ReverseGeocoder.reverse(point)`: coordinates -> city/state/country

Both can fail (permission denied, no network, rate limited). Failures raise
`GeocodingError`; callers degrade to manual entry or the configured fallback
instead of failing the discovery flow.

`geocode_city` is the forward direction used when an editor saves a city without
coordinates: a small lookup of major cities. Unknown cities return None.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from editormap.config.settings import GeocodingSettings
from editormap.core.errors import GeocodingError
from editormap.core.geo import GeoPoint, ensure_valid_point
from editormap.core.http import get_json
from editormap.domain.models import Place

logger = logging.getLogger(__name__)

CITY_COORDINATES: dict[str, GeoPoint] = {
    "mumbai": GeoPoint(lat=19.076, lng=72.877),
    "delhi": GeoPoint(lat=28.704, lng=77.102),
    "bangalore": GeoPoint(lat=12.971, lng=77.594),
    "bengaluru": GeoPoint(lat=12.971, lng=77.594),
    "hyderabad": GeoPoint(lat=17.385, lng=78.486),
    "chennai": GeoPoint(lat=13.082, lng=80.270),
    "kolkata": GeoPoint(lat=22.572, lng=88.363),
    "pune": GeoPoint(lat=18.520, lng=73.856),
    "ahmedabad": GeoPoint(lat=23.022, lng=72.571),
    "jaipur": GeoPoint(lat=26.912, lng=75.787),
    "surat": GeoPoint(lat=21.170, lng=72.831),
}


def geocode_city(city: str) -> GeoPoint | None:
    """Look up approximate city-center coordinates (case/whitespace-insensitive)."""
    return CITY_COORDINATES.get(city.strip().lower())


class GeolocationProvider(Protocol):
    def current_position(self) -> GeoPoint: ...


class FixedGeolocationProvider:
    """Provider that reports a position captured elsewhere (e.g. sent by the browser)."""

    def __init__(self, point: GeoPoint | None):
        self._point = point

    def current_position(self) -> GeoPoint:
        if self._point is None:
            raise GeocodingError("Device location is unavailable")
        return ensure_valid_point(self._point, name="device location")


def _first(address: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = address.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class ReverseGeocoder:
    """Nominatim-compatible reverse geocoding client."""

    def __init__(self, settings: GeocodingSettings):
        self._settings = settings

    @property
    def enabled(self) -> bool:
        return self._settings.reverse_enabled

    def reverse(self, point: GeoPoint) -> Place:
        ensure_valid_point(point)
        if not self.enabled:
            raise GeocodingError("Reverse geocoding is disabled")
        params = {"lat": point.lat, "lon": point.lng, "format": "jsonv2", "zoom": 10}
        try:
            payload = get_json(
                self._settings.reverse_url,
                params=params,
                timeout_seconds=self._settings.timeout_seconds,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Reverse geocoding failed for (%.3f, %.3f): %s", point.lat, point.lng, e)
            raise GeocodingError("Reverse geocoding failed") from e

        address = payload.get("address") if isinstance(payload, dict) else None
        if not isinstance(address, dict):
            raise GeocodingError("Reverse geocoding returned no address")
        place = Place(
            city=_first(address, "city", "town", "village", "municipality", "county"),
            state=_first(address, "state", "region", "state_district"),
            country=_first(address, "country"),
        )
        if place.city is None and place.state is None:
            raise GeocodingError("Reverse geocoding returned no city or state")
        return place

    def reverse_or_none(self, point: GeoPoint) -> Place | None:
        """Best-effort variant for UI prefill: None means "ask the user to type it"."""
        try:
            return self.reverse(point)
        except GeocodingError:
            return None
