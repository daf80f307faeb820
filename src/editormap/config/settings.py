# src/editormap/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/editormap/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `EDITORMAP_CONFIG_PATH` (replaces the packaged defaults)
- a small whitelist of environment variables (see `_apply_env_overrides`)

Design rule:
- Tuning knobs (radius bounds, granularity table, obfuscation band) live in YAML,
  not hard-coded in discovery logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from editormap.core.env import load_dotenv_if_present
from editormap.core.geo import GeoPoint


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `editormap.config`."""
    text = resources.files("editormap.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "editormap"
    log_level: str = "INFO"


class FallbackLocation(BaseModel):
    """Search center used when the seeker skips location consent."""

    label: str = "Mumbai"
    lat: float = Field(19.076, ge=-90, le=90)
    lng: float = Field(72.877, ge=-180, le=180)

    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)


class DiscoverySettings(BaseModel):
    min_radius_km: float = Field(1, gt=0)
    max_radius_km: float = Field(100, gt=0)
    default_radius_km: float = Field(25, gt=0)
    default_country: str = "India"
    fallback_location: FallbackLocation = Field(default_factory=FallbackLocation)
    # None means unbounded (same country only).
    granularity_max_km: dict[Literal["city", "region", "country"], float | None] = Field(
        default_factory=lambda: {"city": 25.0, "region": 100.0, "country": None}
    )

    @model_validator(mode="after")
    def _validate_bounds(self) -> "DiscoverySettings":
        if self.min_radius_km > self.max_radius_km:
            raise ValueError("discovery.min_radius_km must be <= discovery.max_radius_km")
        if not self.min_radius_km <= self.default_radius_km <= self.max_radius_km:
            raise ValueError("discovery.default_radius_km must lie within the radius bounds")
        return self


class ObfuscationSettings(BaseModel):
    golden_angle_deg: float = 137.50776405003785
    min_ratio: float = Field(0.30, ge=0, le=1)
    ratio_span: float = Field(0.50, ge=0, le=1)
    session_salt: bool = False

    @model_validator(mode="after")
    def _validate_band(self) -> "ObfuscationSettings":
        if self.min_ratio + self.ratio_span > 1:
            raise ValueError("obfuscation.min_ratio + obfuscation.ratio_span must be <= 1")
        return self


class LocationSettings(BaseModel):
    coordinate_precision: int = Field(2, ge=0, le=8)
    default_country: str = "India"
    # Used when an editor's city cannot be geocoded; they can correct it later.
    default_coordinates: FallbackLocation = Field(
        default_factory=lambda: FallbackLocation(label="India", lat=20.5937, lng=78.9629)
    )


class StorageSettings(BaseModel):
    backend: Literal["memory", "json"] = "memory"
    editors_path: str = "data/editor_locations.json"
    consent_log_path: str = "data/consent_log.jsonl"


class GeocodingSettings(BaseModel):
    reverse_enabled: bool = False
    reverse_url: str = "https://nominatim.openstreetmap.org/reverse"
    timeout_seconds: float = 5


class RateLimitSettings(BaseModel):
    nearby_max_per_minute: float = Field(30, gt=0)
    nearby_burst: float | None = None


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    obfuscation: ObfuscationSettings = Field(default_factory=ObfuscationSettings)
    location: LocationSettings = Field(default_factory=LocationSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("EDITORMAP_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    backend = os.getenv("EDITORMAP_STORAGE_BACKEND")
    if backend:
        data.setdefault("storage", {})["backend"] = backend

    data_dir = os.getenv("EDITORMAP_DATA_DIR")
    if data_dir:
        storage = data.setdefault("storage", {})
        storage["editors_path"] = str(Path(data_dir) / "editor_locations.json")
        storage["consent_log_path"] = str(Path(data_dir) / "consent_log.jsonl")

    geocoder_url = os.getenv("EDITORMAP_GEOCODER_URL")
    if geocoder_url:
        geocoding = data.setdefault("geocoding", {})
        geocoding["reverse_url"] = geocoder_url
        geocoding["reverse_enabled"] = True

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("EDITORMAP_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
