# src/editormap/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance and configures CORS for the web client.
Business logic lives in `editormap.api.routes` and `editormap.discovery`.
"""

from __future__ import annotations

import os

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from editormap import __version__
from editormap.config.settings import get_settings
from editormap.core.logging import configure_logging

from .routes import router

configure_logging()

app = FastAPI(title=f"{get_settings().app.name} API", version=__version__)

# CORS for the marketplace web client. Configure via env:
# - EDITORMAP_CORS_ORIGINS="https://app.example.com,http://localhost:5173"
# - EDITORMAP_CORS_ALLOW_LOCAL=0 to disable the default localhost allowance
cors_origins = [s.strip() for s in os.getenv("EDITORMAP_CORS_ORIGINS", "").split(",") if s.strip()]
cors_allow_local = os.getenv("EDITORMAP_CORS_ALLOW_LOCAL", "1").strip().lower() in {"1", "true", "yes", "y"}
cors_origin_regex = (
    r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$" if cors_allow_local and not cors_origins else ""
)
if cors_origins or cors_origin_regex:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_origin_regex=cors_origin_regex or None,
        allow_credentials=False,
        allow_methods=["GET", "PATCH", "POST", "DELETE"],
        allow_headers=["*"],
    )

app.include_router(router)


@app.get("/healthz", include_in_schema=False)
def healthz() -> dict:
    return {"status": "ok"}
