"""
Visibility policy: per-editor opt-in and granularity enforcement.

An editor picks how far away they may be discovered from:
- `city`    -> within 25 km
- `region`  -> within 100 km
- `country` -> any distance, same country only

The cap is applied as `min(requested_radius, granularity_max)`, so a seeker cannot
widen the radius to pull a city-level editor into a search from farther away.
"""

from __future__ import annotations

from editormap.config.settings import DiscoverySettings
from editormap.core.geo import GeoPoint, distance_km
from editormap.domain.models import EditorLocationRecord, VisibilityLevel


def _same_country(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return a.strip().casefold() == b.strip().casefold()


class VisibilityPolicy:
    def __init__(self, settings: DiscoverySettings):
        self._settings = settings
        self._max_km = {VisibilityLevel(k): v for k, v in settings.granularity_max_km.items()}

    def max_radius_km(self, level: VisibilityLevel) -> float | None:
        """Return the discoverability ceiling for `level` (None = unbounded, same country)."""
        return self._max_km.get(level)

    def is_eligible(
        self,
        record: EditorLocationRecord,
        *,
        seeker_location: GeoPoint,
        requested_radius_km: float,
        seeker_country: str | None = None,
        true_distance_km: float | None = None,
    ) -> bool:
        """Whether `record` may appear in a search from `seeker_location`.

        `true_distance_km` can be passed when the caller already computed it.
        """
        if not record.visibility.enabled:
            return False

        cap = self.max_radius_km(record.visibility.level)
        if cap is None:
            country = seeker_country or self._settings.default_country
            return _same_country(record.country, country)

        if true_distance_km is None:
            true_distance_km = distance_km(seeker_location, record.true_location)
        return true_distance_km <= min(float(requested_radius_km), float(cap))
