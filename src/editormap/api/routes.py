"""
API routes.

Endpoints:
- GET    `/api/location/nearby`: ranked nearby editors with obfuscated map positions (clients).
- GET    `/api/location/settings`: the caller's own location settings (editors).
- PATCH  `/api/location/settings`: create/update the caller's location settings (editors).
- DELETE `/api/location/settings`: opt out completely (editors).
- POST   `/api/location/consent`: append a consent audit record (any authenticated user).
- GET    `/api/location/reverse-geocode`: city/state prefill for the settings form.
- GET    `/api/config`: public discovery settings for the web UI.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from editormap.api.dependencies import Principal, get_current_principal, require_role
from editormap.config.settings import get_settings
from editormap.core.errors import DiscoveryError, InvalidInput, NotFound, StoreUnavailable
from editormap.core.geo import GeoPoint
from editormap.core.rate_limit import KeyedRateLimiter
from editormap.discovery.obfuscation import derive_salt
from editormap.discovery.ranker import ProximityRanker
from editormap.discovery.service import (
    build_consent_log,
    build_store,
    delete_location_settings,
    get_location_settings,
    log_consent,
    search_nearby,
    update_location_settings,
)
from editormap.domain.models import (
    SORT_KEYS,
    ConsentRequest,
    LocationSettingsUpdate,
    LocationSettingsView,
    SearchFilters,
    SearchQuery,
    SearchResponse,
)
from editormap.geocoding.geocoder import ReverseGeocoder
from editormap.storage.consent import ConsentLog
from editormap.storage.records import EditorLocationStore

router = APIRouter()


@lru_cache
def _store() -> EditorLocationStore:
    return build_store(get_settings())


@lru_cache
def _consent_log() -> ConsentLog:
    return build_consent_log(get_settings())


@lru_cache
def _ranker() -> ProximityRanker:
    return ProximityRanker(get_settings())


@lru_cache
def _salt_secret() -> str:
    # Per process, never sent to clients.
    return secrets.token_hex(16)


def _ranker_for(principal: Principal) -> ProximityRanker:
    """Shared ranker, or one salted per seeker when `obfuscation.session_salt` is on."""
    ranker = _ranker()
    if not get_settings().obfuscation.session_salt:
        return ranker
    return ranker.with_engine(ranker.engine.with_salt(derive_salt(_salt_secret(), principal.user_id)))


@lru_cache
def _nearby_limiter() -> KeyedRateLimiter:
    rl = get_settings().rate_limit
    return KeyedRateLimiter(max_per_minute=rl.nearby_max_per_minute, burst=rl.nearby_burst)


@lru_cache
def _reverse_geocoder() -> ReverseGeocoder:
    return ReverseGeocoder(get_settings().geocoding)


def _http_error(e: DiscoveryError) -> HTTPException:
    if isinstance(e, InvalidInput):
        status = 400
    elif isinstance(e, NotFound):
        status = 404
    elif isinstance(e, StoreUnavailable):
        status = 503
    else:
        status = 500
    return HTTPException(
        status_code=status,
        detail={"code": e.code, "message": str(e), "retryable": e.retryable},
    )


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [s.strip() for s in value.split(",") if s.strip()]


@router.get("/api/location/nearby", response_model=SearchResponse)
def get_nearby(
    lat: float,
    lng: float,
    radius: float | None = None,
    min_rating: float | None = Query(default=None, alias="minRating"),
    skills: str | None = None,
    availability: bool = False,
    sort_by: str = Query(default="distance", alias="sortBy"),
    country: str | None = None,
    principal: Principal = Depends(require_role("client")),
):
    """Return visible editors near (lat, lng), ranked, with obfuscated display positions."""
    limiter = _nearby_limiter()
    if not limiter.try_acquire(principal.user_id):
        retry_after = max(1, int(limiter.retry_after_seconds(principal.user_id) + 0.999))
        return JSONResponse(
            status_code=429,
            content={"detail": {"code": "RATE_LIMITED", "message": "Too many location searches"}},
            headers={"Retry-After": str(retry_after)},
        )

    query = SearchQuery(
        seeker_location=GeoPoint(lat=lat, lng=lng),
        radius_km=radius if radius is not None else get_settings().discovery.default_radius_km,
        seeker_country=country,
        filters=SearchFilters(
            min_rating=min_rating,
            skills=_split_csv(skills),
            availability=availability,
            sort_by=sort_by,
        ),
    )
    try:
        return search_nearby(query, store=_store(), ranker=_ranker_for(principal), seeker_id=principal.user_id)
    except DiscoveryError as e:
        raise _http_error(e) from e


@router.get("/api/location/settings")
def get_settings_route(principal: Principal = Depends(require_role("editor"))) -> dict:
    """Return the caller's location settings (never coordinates)."""
    try:
        view = get_location_settings(principal.user_id, store=_store())
    except DiscoveryError as e:
        raise _http_error(e) from e
    if view is None:
        return {"success": True, "location": None, "message": "No location settings found"}
    return {"success": True, "location": view.model_dump(mode="json")}


@router.patch("/api/location/settings")
def patch_settings_route(
    update: LocationSettingsUpdate,
    principal: Principal = Depends(require_role("editor")),
) -> dict:
    """Create or update the caller's location settings."""
    try:
        view: LocationSettingsView = update_location_settings(
            principal.user_id, update, store=_store(), settings=get_settings()
        )
    except DiscoveryError as e:
        raise _http_error(e) from e
    return {
        "success": True,
        "message": "Location settings updated successfully",
        "location": view.model_dump(mode="json"),
    }


@router.delete("/api/location/settings")
def delete_settings_route(principal: Principal = Depends(require_role("editor"))) -> dict:
    try:
        delete_location_settings(principal.user_id, store=_store())
    except DiscoveryError as e:
        raise _http_error(e) from e
    return {"success": True, "message": "Location settings deleted successfully"}


@router.post("/api/location/consent")
def post_consent(body: ConsentRequest, principal: Principal = Depends(get_current_principal)) -> dict:
    """Append a consent record; a logging failure still returns success (fire-and-forget)."""
    try:
        record = log_consent(
            principal.user_id,
            body.consent_given,
            body.user_location,
            consent_log=_consent_log(),
            now=datetime.now(timezone.utc),
        )
    except InvalidInput as e:
        raise _http_error(e) from e
    return {
        "success": True,
        "message": "Consent logged",
        "consent_given": record.consent_given,
        "consent_date": record.timestamp.isoformat(),
    }


@router.get("/api/location/reverse-geocode")
def get_reverse_geocode(
    lat: float,
    lng: float,
    principal: Principal = Depends(get_current_principal),
) -> dict:
    """Best-effort city/state lookup; `manual_entry` tells the form to ask the user instead."""
    try:
        place = _reverse_geocoder().reverse_or_none(GeoPoint(lat=lat, lng=lng))
    except InvalidInput as e:
        raise _http_error(e) from e
    return {"place": place.model_dump(mode="json") if place else None, "manual_entry": place is None}


@router.get("/api/config")
def get_public_config() -> dict:
    """Return safe-to-expose discovery settings for UI defaults."""
    d = get_settings().discovery
    return {
        "radius": {"min_km": d.min_radius_km, "max_km": d.max_radius_km, "default_km": d.default_radius_km},
        "fallback_location": d.fallback_location.model_dump(mode="json"),
        "granularity_max_km": dict(d.granularity_max_km),
        "sort_keys": list(SORT_KEYS),
    }
