from __future__ import annotations

from math import asin, atan2, cos, isfinite, pi, radians, sin, sqrt

from pydantic import BaseModel, ConfigDict

from editormap.core.errors import InvalidInput

"""
Geospatial helpers.

We keep a tiny geometry layer here so discovery modules can do distance and offset
calculations without pulling in heavier GIS dependencies. Everything operates in
kilometers; the offset math is an equirectangular approximation that is good enough
at the sub-100 km scale used by nearby searches.
"""

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0
MIN_COS_LAT = 1e-6


class GeoPoint(BaseModel):
    """A latitude/longitude pair in decimal degrees (immutable, hashable)."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


def is_valid_point(point: GeoPoint) -> bool:
    lat, lng = point.lat, point.lng
    return isfinite(lat) and isfinite(lng) and -90 <= lat <= 90 and -180 <= lng <= 180


def ensure_valid_point(point: GeoPoint, *, name: str = "point") -> GeoPoint:
    """Return `point` unchanged, or raise `InvalidInput` for NaN/inf/out-of-range coordinates."""
    if not is_valid_point(point):
        raise InvalidInput(f"{name} has invalid coordinates: lat={point.lat!r}, lng={point.lng!r}")
    return point


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Compute great-circle (haversine) distance in kilometers between two points."""
    ensure_valid_point(a, name="a")
    ensure_valid_point(b, name="b")
    lat1 = radians(a.lat)
    lng1 = radians(a.lng)
    lat2 = radians(b.lat)
    lng2 = radians(b.lng)

    dlat = lat2 - lat1
    dlng = lng2 - lng1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * asin(min(1.0, sqrt(h)))


def _wrap_lng(lng: float) -> float:
    # atan2 keeps the wrap exact for values just past the antimeridian.
    return atan2(sin(radians(lng)), cos(radians(lng))) * 180 / pi


def offset_point(origin: GeoPoint, bearing_radians: float, distance: float) -> GeoPoint:
    """Move `distance` km from `origin` along `bearing_radians` (0 = north, clockwise).

    Longitude divisor uses cos(lat) clamped to `MIN_COS_LAT` so polar origins do not blow up.
    """
    ensure_valid_point(origin, name="origin")
    if not isfinite(bearing_radians):
        raise InvalidInput(f"bearing must be finite, got {bearing_radians!r}")
    if not isfinite(distance) or distance < 0:
        raise InvalidInput(f"distance must be a finite non-negative number, got {distance!r}")

    lat_offset = distance / KM_PER_DEGREE * cos(bearing_radians)
    cos_lat = max(MIN_COS_LAT, abs(cos(radians(origin.lat))))
    lng_offset = distance / (KM_PER_DEGREE * cos_lat) * sin(bearing_radians)

    lat = max(-90.0, min(90.0, origin.lat + lat_offset))
    lng = origin.lng + lng_offset
    if not -180 <= lng <= 180:
        lng = _wrap_lng(lng)
    return GeoPoint(lat=lat, lng=lng)


def round_point(point: GeoPoint, precision: int = 2) -> GeoPoint:
    """Round coordinates to `precision` decimals (2 decimals is roughly 1.1 km)."""
    ensure_valid_point(point)
    return GeoPoint(lat=round(point.lat, precision), lng=round(point.lng, precision))
