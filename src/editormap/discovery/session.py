"""
Discovery session: the seeker's consent -> search lifecycle.

    NO_CONSENT -> CONSENT_REQUESTED -> CONSENT_GRANTED -> SEARCHING -> RESULTS_READY
                                    \\-> CONSENT_SKIPPED -/                    |
                                                       SEARCHING <------------/

- Granting consent searches around the device position (or the fallback center if
  the device cannot report one).
- Skipping consent searches around the configured fallback center; the device
  position is never read.
- Re-entering with a previously granted consent (found in the consent log) goes
  straight to SEARCHING, centered on the device position, else the position given
  with the grant, else the fallback center.

Each grant/skip appends exactly one `ConsentRecord`. Consent is kept server-side in
the audit log rather than in client-local flags.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from enum import Enum

from editormap.config.settings import Settings, get_settings
from editormap.core.errors import GeocodingError, InvalidInput
from editormap.core.geo import GeoPoint, ensure_valid_point
from editormap.discovery.ranker import ProximityRanker
from editormap.discovery.service import log_consent, search_nearby
from editormap.domain.models import SearchFilters, SearchQuery, SearchResponse
from editormap.geocoding.geocoder import GeolocationProvider
from editormap.storage.consent import ConsentLog
from editormap.storage.records import EditorLocationStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    NO_CONSENT = "no_consent"
    CONSENT_REQUESTED = "consent_requested"
    CONSENT_GRANTED = "consent_granted"
    CONSENT_SKIPPED = "consent_skipped"
    SEARCHING = "searching"
    RESULTS_READY = "results_ready"


class DiscoverySession:
    def __init__(
        self,
        user_id: str,
        *,
        store: EditorLocationStore,
        consent_log: ConsentLog,
        settings: Settings | None = None,
        ranker: ProximityRanker | None = None,
        geolocation: GeolocationProvider | None = None,
    ):
        self.user_id = user_id
        self._store = store
        self._consent_log = consent_log
        self._settings = settings or get_settings()
        ranker = ranker or ProximityRanker(self._settings)
        if self._settings.obfuscation.session_salt:
            # Drawn server-side, never sent to the client.
            ranker = ranker.with_engine(ranker.engine.with_salt(secrets.token_hex(16)))
        self._ranker = ranker
        self._geolocation = geolocation

        self.state = SessionState.NO_CONSENT
        self.center: GeoPoint | None = None
        self.used_fallback = False
        self.last_response: SearchResponse | None = None

    def _require(self, *allowed: SessionState) -> None:
        if self.state not in allowed:
            expected = ", ".join(s.value for s in allowed)
            raise InvalidInput(f"Invalid session transition from {self.state.value} (expected {expected})")

    def _use_fallback(self) -> None:
        self.center = self._settings.discovery.fallback_location.point()
        self.used_fallback = True

    def _device_position(self) -> GeoPoint | None:
        if self._geolocation is None:
            return None
        try:
            return self._geolocation.current_position()
        except GeocodingError as e:
            logger.info("Device location unavailable for user=%s (%s)", self.user_id, e)
            return None

    def begin(self) -> SessionState:
        """Enter the discovery page."""
        self._require(SessionState.NO_CONSENT)
        try:
            previous = self._consent_log.latest_for(self.user_id)
        except Exception as e:
            logger.warning("Consent lookup failed for user=%s: %s", self.user_id, e)
            previous = None

        if previous is not None and previous.consent_given:
            # Prefer a fresh device position, then the one given with the grant.
            location = self._device_position()
            if location is None:
                location = previous.location_at_consent
            if location is not None:
                self.center = location
                self.used_fallback = False
            else:
                self._use_fallback()
            self.state = SessionState.SEARCHING
        else:
            self.state = SessionState.CONSENT_REQUESTED
        return self.state

    def grant_consent(self, location: GeoPoint | None = None, *, now: datetime | None = None) -> SessionState:
        """Seeker allowed location sharing; `location` overrides the geolocation provider."""
        self._require(SessionState.CONSENT_REQUESTED)
        if location is None:
            location = self._device_position()

        if location is not None:
            self.center = ensure_valid_point(location, name="location")
            self.used_fallback = False
        else:
            self._use_fallback()

        log_consent(self.user_id, True, location, consent_log=self._consent_log, now=now)
        self.state = SessionState.CONSENT_GRANTED
        return self.state

    def skip_consent(self, *, now: datetime | None = None) -> SessionState:
        self._require(SessionState.CONSENT_REQUESTED)
        self._use_fallback()
        log_consent(self.user_id, False, None, consent_log=self._consent_log, now=now)
        self.state = SessionState.CONSENT_SKIPPED
        return self.state

    def search(
        self,
        filters: SearchFilters | None = None,
        *,
        radius_km: float | None = None,
        seeker_country: str | None = None,
    ) -> SearchResponse:
        """Run a nearby search around the session center and move to RESULTS_READY."""
        self._require(
            SessionState.CONSENT_GRANTED,
            SessionState.CONSENT_SKIPPED,
            SessionState.SEARCHING,
            SessionState.RESULTS_READY,
        )
        self.state = SessionState.SEARCHING
        query = SearchQuery(
            seeker_location=self.center,
            radius_km=radius_km if radius_km is not None else self._settings.discovery.default_radius_km,
            seeker_country=seeker_country,
            filters=filters or SearchFilters(),
        )
        # On failure the session stays in SEARCHING so the caller can retry.
        self.last_response = search_nearby(
            query, store=self._store, ranker=self._ranker, seeker_id=self.user_id
        )
        self.state = SessionState.RESULTS_READY
        return self.last_response
