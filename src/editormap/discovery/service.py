from __future__ import annotations

# Request-level operations behind the REST surface (and the CLI).
# Each function takes its collaborators explicitly (store, consent log, ranker) so the
# API layer can inject cached instances and tests can inject in-memory ones.

import logging
from datetime import datetime, timezone

from editormap.config.settings import Settings, get_settings
from editormap.core.env import resolve_project_path
from editormap.core.errors import NotFound
from editormap.core.geo import GeoPoint, ensure_valid_point, round_point
from editormap.discovery.ranker import ProximityRanker
from editormap.domain.models import (
    ConsentRecord,
    EditorLocationRecord,
    LocationSettingsUpdate,
    LocationSettingsView,
    SearchQuery,
    SearchResponse,
    Visibility,
)
from editormap.geocoding.geocoder import geocode_city
from editormap.storage.consent import ConsentLog, InMemoryConsentLog, JsonlConsentLog
from editormap.storage.records import (
    EditorLocationStore,
    InMemoryEditorLocationStore,
    JsonFileEditorLocationStore,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_store(settings: Settings) -> EditorLocationStore:
    if settings.storage.backend == "json":
        return JsonFileEditorLocationStore(resolve_project_path(settings.storage.editors_path))
    return InMemoryEditorLocationStore()


def build_consent_log(settings: Settings) -> ConsentLog:
    if settings.storage.backend == "json":
        return JsonlConsentLog(resolve_project_path(settings.storage.consent_log_path))
    return InMemoryConsentLog()


def search_nearby(
    query: SearchQuery,
    *,
    store: EditorLocationStore,
    ranker: ProximityRanker,
    seeker_id: str | None = None,
) -> SearchResponse:
    """Rank visible editors around the seeker; store failures propagate as `StoreUnavailable`."""
    # Validate before touching the store so a bad query never costs a read.
    ranker.validate(query)
    candidates = store.list_visible()
    results = ranker.rank(query, candidates)

    logger.info(
        "Location search: seeker=%s center=(%.3f, %.3f) radius=%gkm sort=%s found=%d",
        seeker_id or "-",
        query.seeker_location.lat,
        query.seeker_location.lng,
        query.radius_km,
        query.filters.sort_by,
        len(results),
    )
    return SearchResponse(
        count=len(results),
        editors=results,
        search_params={
            "user_location": {"lat": query.seeker_location.lat, "lng": query.seeker_location.lng},
            "radius": query.radius_km,
            "filters": query.filters.model_dump(mode="json"),
        },
    )


def _resolve_coordinates(update: LocationSettingsUpdate, settings: Settings) -> GeoPoint:
    if update.coordinates is not None:
        return ensure_valid_point(update.coordinates, name="coordinates")
    coords = geocode_city(update.city)
    if coords is None:
        # Editors can correct this later; they stay hidden until they opt in anyway.
        logger.warning("Could not geocode city %r; using default coordinates", update.city)
        return settings.location.default_coordinates.point()
    return coords


def update_location_settings(
    editor_id: str,
    update: LocationSettingsUpdate,
    *,
    store: EditorLocationStore,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> LocationSettingsView:
    """Create or update the editor's location record (single upsert keyed by editor id)."""
    settings = settings or get_settings()
    now = now or _utcnow()
    coords = round_point(_resolve_coordinates(update, settings), settings.location.coordinate_precision)

    existing = store.get(editor_id)
    visibility = existing.visibility if existing else Visibility()
    if update.visibility is not None:
        changes = update.visibility.model_dump(exclude_none=True)
        if changes:
            visibility = visibility.model_copy(update={**changes, "last_updated": now})
    elif existing is None:
        visibility = visibility.model_copy(update={"last_updated": now})

    record = EditorLocationRecord(
        editor_id=editor_id,
        true_location=coords,
        city=update.city,
        state=update.state,
        country=update.country or settings.location.default_country,
        visibility=visibility,
        profile=existing.profile if existing else None,
        created_at=existing.created_at if existing and existing.created_at else now,
        updated_at=now,
    )
    store.upsert(record)
    logger.info(
        "Location settings saved: editor=%s %s visibility=%s/%s",
        editor_id,
        "updated" if existing else "created",
        "on" if visibility.enabled else "off",
        visibility.level.value,
    )
    return LocationSettingsView.from_record(record)


def get_location_settings(editor_id: str, *, store: EditorLocationStore) -> LocationSettingsView | None:
    record = store.get(editor_id)
    return LocationSettingsView.from_record(record) if record else None


def delete_location_settings(editor_id: str, *, store: EditorLocationStore) -> None:
    """Opt out completely (hard delete, unlike the soft `visibility.enabled=false`)."""
    if not store.delete(editor_id):
        raise NotFound(f"No location settings found for editor {editor_id}")
    logger.info("Location settings deleted: editor=%s", editor_id)


def log_consent(
    user_id: str,
    consent_given: bool,
    location: GeoPoint | None,
    *,
    consent_log: ConsentLog,
    now: datetime | None = None,
) -> ConsentRecord:
    """Append a consent record. Logging failures are recovered here and never block a search."""
    if location is not None:
        ensure_valid_point(location, name="user_location")
    record = ConsentRecord(
        user_id=user_id,
        consent_given=consent_given,
        timestamp=now or _utcnow(),
        location_at_consent=location,
    )
    try:
        consent_log.append(record)
    except Exception as e:
        logger.warning("Consent logging failed for user=%s: %s", user_id, e)
    else:
        logger.info("Location consent: user=%s consent=%s", user_id, consent_given)
    return record
