"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- stored editor state (`EditorLocationRecord`, owned by the editor via settings updates)
- seeker input (`SearchQuery`, ephemeral, never persisted)
- derived output (`SearchResult`, recomputed every request, never carries true coordinates)
- audit (`ConsentRecord`, append-only)

Coordinate validation for queries is done by the ranker (so a bad query fails with
`InvalidQuery`), which is why `SearchQuery` itself does not bound its fields.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from editormap.core.geo import GeoPoint, is_valid_point

SORT_KEYS: tuple[str, ...] = ("distance", "rating", "price_low", "price_high")


class VisibilityLevel(str, Enum):
    CITY = "city"
    REGION = "region"
    COUNTRY = "country"


class Visibility(BaseModel):
    """Editor opt-in; privacy first, so discovery is off until the editor enables it."""

    enabled: bool = False
    level: VisibilityLevel = VisibilityLevel.CITY
    last_updated: datetime | None = None


class EditorProfile(BaseModel):
    """Profile summary joined onto a location record (owned by the profile service)."""

    name: str
    profile_photo: str | None = None
    skills: list[str] = Field(default_factory=list)
    # Marketplace reputation score computed by the profile service.
    suvix_score: float = Field(0.0, ge=0)
    rating: float = Field(0.0, ge=0, le=5)
    availability: str = "unknown"
    starting_price: float | None = Field(default=None, ge=0)
    completed_orders: int = Field(0, ge=0)
    badges: list[str] = Field(default_factory=list)

    @field_validator("skills")
    @classmethod
    def _strip_skills(cls, skills: list[str]) -> list[str]:
        return [s.strip() for s in skills if s and s.strip()]

    @property
    def is_available(self) -> bool:
        return self.availability.strip().lower() == "available"


class EditorLocationRecord(BaseModel):
    """One editor's stored location. `true_location` never leaves the server."""

    editor_id: str = Field(..., min_length=1)
    true_location: GeoPoint
    city: str
    state: str
    country: str = "India"
    visibility: Visibility = Field(default_factory=Visibility)
    profile: EditorProfile | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def _validate_location(self) -> "EditorLocationRecord":
        if not is_valid_point(self.true_location):
            raise ValueError("true_location has invalid coordinates")
        return self

    @property
    def approx_region(self) -> str:
        return f"{self.city}, {self.state}"


class SearchFilters(BaseModel):
    min_rating: float | None = None
    skills: list[str] = Field(default_factory=list)
    availability: bool = False
    # Unknown keys are rejected by the ranker with InvalidQuery, so keep this a plain string.
    sort_by: str = "distance"

    @field_validator("skills")
    @classmethod
    def _normalize_skills(cls, skills: list[str]) -> list[str]:
        return [s.strip().lower() for s in skills if s and s.strip()]


class SearchQuery(BaseModel):
    """One nearby search. Constructed per request and never persisted."""

    seeker_location: GeoPoint
    radius_km: float
    seeker_country: str | None = None
    filters: SearchFilters = Field(default_factory=SearchFilters)


class SearchResult(BaseModel):
    """One ranked editor as shown to a seeker."""

    editor_id: str
    profile: EditorProfile
    city: str
    state: str
    # True distance (rounded to 0.1 km); only the map position is obfuscated.
    distance_km: float
    display_position: GeoPoint


class SearchResponse(BaseModel):
    count: int
    editors: list[SearchResult]
    search_params: dict[str, Any] = Field(default_factory=dict)


class ConsentRecord(BaseModel):
    """Immutable audit entry for one grant/skip of location sharing."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    consent_given: bool
    timestamp: datetime
    location_at_consent: GeoPoint | None = None


class VisibilityUpdate(BaseModel):
    enabled: bool | None = None
    level: VisibilityLevel | None = None


class LocationSettingsUpdate(BaseModel):
    """PATCH body for an editor's own location settings."""

    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    country: str | None = None
    visibility: VisibilityUpdate | None = None
    coordinates: GeoPoint | None = None

    @field_validator("city", "state", "country")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class LocationSettingsView(BaseModel):
    """What an editor sees of their own settings: never the stored coordinates."""

    city: str
    state: str
    country: str
    visibility: Visibility
    approx_region: str

    @classmethod
    def from_record(cls, record: EditorLocationRecord) -> "LocationSettingsView":
        return cls(
            city=record.city,
            state=record.state,
            country=record.country,
            visibility=record.visibility,
            approx_region=record.approx_region,
        )


class Place(BaseModel):
    """Reverse geocoding result."""

    city: str | None = None
    state: str | None = None
    country: str | None = None


class ConsentRequest(BaseModel):
    """POST body for logging a consent action (camelCase as sent by the web client)."""

    model_config = ConfigDict(populate_by_name=True)

    consent_given: bool = Field(..., alias="consentGiven")
    user_location: GeoPoint | None = Field(default=None, alias="userLocation")
