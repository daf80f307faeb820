"""
Obfuscated map positions for discovered editors.

A seeker never receives an editor's stored coordinates. Instead each result gets a
display position placed inside the seeker's own search circle:

    seed     = sum(ord(c) for c in editor_id)
    angle    = (seed * golden_angle) mod 360
    ratio    = min_ratio + (seed mod 100) / 100 * ratio_span     (default 0.30 .. 0.80)
    position = offset_point(center, angle, radius * ratio)

The golden angle spreads near-sequential seeds around the circle without clustering.
The band keeps markers off the exact center (everyone would stack there) and off the
rim (it would hint "near the edge of the search area").

This is deterministic, not cryptographic: the goal is "no exact disclosure". The
output depends on center and radius, so the point moves when either changes. With a
session salt the seed is derived from `salt:editor_id`, which keeps positions stable
within one session and unrelated across sessions.
"""

from __future__ import annotations

import math
from hashlib import sha256

from editormap.config.settings import ObfuscationSettings
from editormap.core.errors import InvalidInput
from editormap.core.geo import (
    EARTH_RADIUS_KM,
    KM_PER_DEGREE,
    GeoPoint,
    distance_km,
    ensure_valid_point,
    offset_point,
)

# Upper bound on re-seeding when a display point lands exactly on the true location.
_MAX_RESEED = 8

# Offsets are laid out at KM_PER_DEGREE but measured with haversine (about 111.195 km/deg),
# so a meridian offset of r * _MAX_RATIO km is still within r.
_MAX_RATIO = KM_PER_DEGREE / (EARTH_RADIUS_KM * math.pi / 180) * (1 - 1e-9)


def editor_seed(editor_id: str, salt: str | None = None) -> int:
    """Stable integer seed for an editor (same id, same seed, every call)."""
    if salt:
        digest = sha256(f"{salt}:{editor_id}".encode("utf-8")).digest()
        return int.from_bytes(digest[:8], "big")
    return sum(ord(c) for c in editor_id)


def derive_salt(secret: str, key: str) -> str:
    """Per-seeker salt from a server-held secret; stable for as long as the secret is."""
    return sha256(f"{secret}:{key}".encode("utf-8")).hexdigest()


class ObfuscationEngine:
    def __init__(self, settings: ObfuscationSettings | None = None, *, salt: str | None = None):
        self._settings = settings or ObfuscationSettings()
        self._salt = salt

    @property
    def salted(self) -> bool:
        return bool(self._salt)

    def with_salt(self, salt: str | None) -> "ObfuscationEngine":
        return ObfuscationEngine(self._settings, salt=salt)

    def _place(self, seed: int, center: GeoPoint, radius_km: float) -> GeoPoint:
        s = self._settings
        angle = math.radians((seed * s.golden_angle_deg) % 360)
        ratio = s.min_ratio + (seed % 100) / 100 * s.ratio_span
        display_km = radius_km * min(ratio, _MAX_RATIO)
        point = offset_point(center, angle, display_km)
        if distance_km(center, point) > radius_km:
            # Equirectangular offsets overshoot near the poles; the meridian towards the equator does not.
            point = offset_point(center, math.pi if center.lat > 0 else 0.0, display_km)
        return point

    def display_position(
        self,
        editor_id: str,
        seeker_center: GeoPoint,
        radius_km: float,
        *,
        avoid: GeoPoint | None = None,
    ) -> GeoPoint:
        """Return the map position shown for `editor_id` in a search around `seeker_center`.

        `avoid` is the editor's true location when known; a coincident result is re-seeded.
        """
        if not editor_id:
            raise InvalidInput("editor_id must be non-empty")
        ensure_valid_point(seeker_center, name="seeker_center")
        if not math.isfinite(radius_km) or radius_km <= 0:
            raise InvalidInput(f"radius_km must be a positive number, got {radius_km!r}")

        seed = editor_seed(editor_id, self._salt)
        point = self._place(seed, seeker_center, radius_km)
        for step in range(1, _MAX_RESEED + 1):
            if avoid is None or point != avoid:
                break
            point = self._place(seed + step, seeker_center, radius_km)
        return point
