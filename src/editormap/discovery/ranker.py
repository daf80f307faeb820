from __future__ import annotations

# Proximity ranking: the "orchestrator" for one nearby search over a candidate list.
# Data flow:
# - validate the query (nothing is computed for a malformed query)
# - visibility + profile filters (VisibilityPolicy, min rating, skills, availability)
# - true distance per survivor, radius cut
# - sort by the requested key with deterministic tie-breaks
# - attach an obfuscated display position (ObfuscationEngine), never the stored coordinates

import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterable

from editormap.config.settings import Settings, get_settings
from editormap.core.errors import InvalidInput, InvalidQuery
from editormap.core.geo import distance_km, ensure_valid_point
from editormap.discovery.obfuscation import ObfuscationEngine
from editormap.discovery.visibility import VisibilityPolicy
from editormap.domain.models import (
    SORT_KEYS,
    EditorLocationRecord,
    EditorProfile,
    SearchFilters,
    SearchQuery,
    SearchResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Scored:
    """A candidate that passed all filters, with its true (unrounded) distance."""

    record: EditorLocationRecord
    profile: EditorProfile
    distance_km: float


def _price_key(price: float | None, *, descending: bool) -> tuple[int, float]:
    # Unknown prices always sort last, whichever direction.
    if price is None:
        return (1, 0.0)
    return (0, -price if descending else price)


_SORT_KEYS: dict[str, Callable[[_Scored], tuple]] = {
    "distance": lambda s: (s.distance_km, s.record.editor_id),
    "rating": lambda s: (-s.profile.rating, s.distance_km, s.record.editor_id),
    "price_low": lambda s: (
        _price_key(s.profile.starting_price, descending=False),
        s.distance_km,
        s.record.editor_id,
    ),
    "price_high": lambda s: (
        _price_key(s.profile.starting_price, descending=True),
        s.distance_km,
        s.record.editor_id,
    ),
}


def _passes_profile_filters(profile: EditorProfile, filters: SearchFilters) -> bool:
    if filters.min_rating is not None and profile.rating < filters.min_rating:
        return False
    if filters.skills:
        have = {s.lower() for s in profile.skills}
        if not have.intersection(filters.skills):
            return False
    if filters.availability and not profile.is_available:
        return False
    return True


class ProximityRanker:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        policy: VisibilityPolicy | None = None,
        engine: ObfuscationEngine | None = None,
    ):
        self._settings = settings or get_settings()
        self._policy = policy or VisibilityPolicy(self._settings.discovery)
        self._engine = engine or ObfuscationEngine(self._settings.obfuscation)

    @property
    def engine(self) -> ObfuscationEngine:
        return self._engine

    def with_engine(self, engine: ObfuscationEngine) -> "ProximityRanker":
        return ProximityRanker(self._settings, policy=self._policy, engine=engine)

    def validate(self, query: SearchQuery) -> None:
        """Raise `InvalidQuery` for a malformed query; called before any distance math."""
        d = self._settings.discovery
        radius = query.radius_km
        if not math.isfinite(radius) or radius <= 0:
            raise InvalidQuery(f"radius must be a positive number of km, got {radius!r}")
        if not d.min_radius_km <= radius <= d.max_radius_km:
            raise InvalidQuery(
                f"radius must be between {d.min_radius_km:g} and {d.max_radius_km:g} km, got {radius:g}"
            )
        try:
            ensure_valid_point(query.seeker_location, name="seeker_location")
        except InvalidInput as e:
            raise InvalidQuery(str(e)) from e
        if query.filters.sort_by not in _SORT_KEYS:
            raise InvalidQuery(
                f"Unknown sortBy '{query.filters.sort_by}'; expected one of {', '.join(SORT_KEYS)}."
            )
        min_rating = query.filters.min_rating
        if min_rating is not None and not math.isfinite(min_rating):
            raise InvalidQuery(f"minRating must be a finite number, got {min_rating!r}")

    def rank(self, query: SearchQuery, candidates: Iterable[EditorLocationRecord]) -> list[SearchResult]:
        """Return eligible editors within the radius, sorted, with obfuscated positions."""
        self.validate(query)
        center = query.seeker_location
        radius = float(query.radius_km)

        scored: list[_Scored] = []
        for record in candidates:
            if not record.visibility.enabled:
                continue
            # Location without a live profile (deleted user): nothing to show.
            if record.profile is None:
                logger.debug("Skipping editor %s without profile", record.editor_id)
                continue
            if not _passes_profile_filters(record.profile, query.filters):
                continue

            true_km = distance_km(center, record.true_location)
            if true_km > radius:
                continue
            if not self._policy.is_eligible(
                record,
                seeker_location=center,
                requested_radius_km=radius,
                seeker_country=query.seeker_country,
                true_distance_km=true_km,
            ):
                continue
            scored.append(_Scored(record=record, profile=record.profile, distance_km=true_km))

        scored.sort(key=_SORT_KEYS[query.filters.sort_by])

        return [
            SearchResult(
                editor_id=s.record.editor_id,
                profile=s.profile,
                city=s.record.city,
                state=s.record.state,
                distance_km=round(s.distance_km, 1),
                display_position=self._engine.display_position(
                    s.record.editor_id, center, radius, avoid=s.record.true_location
                ),
            )
            for s in scored
        ]
