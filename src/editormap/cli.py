"""
editormap CLI entrypoint.

Intended for local demos and debugging without the web client. It delegates to the
same service functions the API uses (`editormap.discovery.service`), and `discover`
walks the seeker's consent -> search flow through `DiscoverySession`.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from editormap.config.settings import get_settings
from editormap.core.errors import DiscoveryError, InvalidInput
from editormap.core.geo import GeoPoint
from editormap.core.logging import configure_logging
from editormap.discovery.explain import one_line_summary
from editormap.discovery.obfuscation import ObfuscationEngine
from editormap.discovery.ranker import ProximityRanker
from editormap.discovery.service import build_consent_log, build_store, search_nearby, update_location_settings
from editormap.discovery.session import DiscoverySession, SessionState
from editormap.domain.models import (
    SORT_KEYS,
    LocationSettingsUpdate,
    SearchFilters,
    SearchQuery,
    SearchResponse,
    VisibilityLevel,
    VisibilityUpdate,
)
from editormap.geocoding.geocoder import FixedGeolocationProvider
from editormap.storage.consent import ConsentLog, JsonlConsentLog
from editormap.storage.records import EditorLocationStore, JsonFileEditorLocationStore


def _store_from_args(args: argparse.Namespace) -> EditorLocationStore:
    if args.editors:
        return JsonFileEditorLocationStore(Path(args.editors))
    return build_store(get_settings())


def _consent_log_from_args(args: argparse.Namespace) -> ConsentLog:
    if args.consent_log:
        return JsonlConsentLog(Path(args.consent_log))
    return build_consent_log(get_settings())


def _point_from_args(args: argparse.Namespace) -> GeoPoint | None:
    if args.lat is None and args.lng is None:
        return None
    if args.lat is None or args.lng is None:
        raise InvalidInput("--lat and --lng must be given together")
    return GeoPoint(lat=args.lat, lng=args.lng)


def _filters_from_args(args: argparse.Namespace) -> SearchFilters:
    return SearchFilters(
        min_rating=args.min_rating,
        skills=args.skill or [],
        availability=bool(args.available),
        sort_by=args.sort_by,
    )


def _print_response(response: SearchResponse, radius_km: float) -> None:
    print(f"Found {response.count} editor(s) within {radius_km:g} km:")
    for i, result in enumerate(response.editors, start=1):
        pos = result.display_position
        print(f"{i:>2}. {one_line_summary(result)}")
        print(f"    map position: ({pos.lat:.5f}, {pos.lng:.5f})")


def _cmd_nearby(args: argparse.Namespace) -> int:
    """Handle the `nearby` subcommand."""
    settings = get_settings()
    query = SearchQuery(
        seeker_location=GeoPoint(lat=float(args.lat), lng=float(args.lng)),
        radius_km=float(args.radius) if args.radius is not None else settings.discovery.default_radius_km,
        seeker_country=args.country,
        filters=_filters_from_args(args),
    )
    response = search_nearby(query, store=_store_from_args(args), ranker=ProximityRanker(settings))

    if args.json:
        print(json.dumps(response.model_dump(mode="json"), ensure_ascii=False, indent=2))
        return 0
    _print_response(response, query.radius_km)
    return 0


def _cmd_discover(args: argparse.Namespace) -> int:
    """Handle the `discover` subcommand (consent prompt answered by --skip or a device position)."""
    settings = get_settings()
    session = DiscoverySession(
        args.user_id,
        store=_store_from_args(args),
        consent_log=_consent_log_from_args(args),
        settings=settings,
        geolocation=FixedGeolocationProvider(_point_from_args(args)),
    )
    if session.begin() is SessionState.CONSENT_REQUESTED:
        if args.skip:
            session.skip_consent()
        else:
            session.grant_consent()

    radius = float(args.radius) if args.radius is not None else settings.discovery.default_radius_km
    response = session.search(_filters_from_args(args), radius_km=radius, seeker_country=args.country)

    if args.json:
        payload = {
            "center": session.center.model_dump(mode="json"),
            "used_fallback": session.used_fallback,
            **response.model_dump(mode="json"),
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0
    where = settings.discovery.fallback_location.label if session.used_fallback else "your location"
    print(f"Searching around {where} ({session.center.lat:.3f}, {session.center.lng:.3f})")
    _print_response(response, radius)
    return 0


def _cmd_display_position(args: argparse.Namespace) -> int:
    engine = ObfuscationEngine(get_settings().obfuscation, salt=args.salt)
    point = engine.display_position(args.editor_id, GeoPoint(lat=args.lat, lng=args.lng), float(args.radius))
    print(json.dumps(point.model_dump(mode="json")))
    return 0


def _cmd_settings(args: argparse.Namespace) -> int:
    """Handle the `settings` subcommand (create/update one editor's location record)."""
    visibility = None
    if args.enable is not None or args.level is not None:
        visibility = VisibilityUpdate(
            enabled=args.enable,
            level=VisibilityLevel(args.level) if args.level else None,
        )

    update = LocationSettingsUpdate(
        city=args.city,
        state=args.state,
        country=args.country,
        visibility=visibility,
        coordinates=_point_from_args(args),
    )
    view = update_location_settings(args.editor_id, update, store=_store_from_args(args), settings=get_settings())
    print(json.dumps(view.model_dump(mode="json"), ensure_ascii=False, indent=2))
    return 0


def _add_search_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--editors", default=None, help="Editor locations JSON file (default: configured store)")
    p.add_argument("--radius", type=float, default=None, help="Search radius in km")
    p.add_argument("--min-rating", dest="min_rating", type=float, default=None)
    p.add_argument("--skill", action="append", default=[], help="Repeatable; any match counts")
    p.add_argument("--available", action="store_true", help="Only editors marked available")
    p.add_argument("--sort-by", dest="sort_by", default="distance", choices=list(SORT_KEYS))
    p.add_argument("--country", default=None, help="Seeker country (for country-level visibility)")
    p.add_argument("--json", action="store_true", help="Output machine-readable JSON")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the editormap CLI."""
    parser = argparse.ArgumentParser(prog="editormap")
    parser.add_argument("--log-level", default=None, help="Override app.log_level (e.g. DEBUG)")
    sub = parser.add_subparsers(dest="command", required=True)

    near = sub.add_parser("nearby", help="Search editors around a point.")
    near.add_argument("--lat", required=True, type=float)
    near.add_argument("--lng", required=True, type=float)
    _add_search_args(near)
    near.set_defaults(func=_cmd_nearby)

    disc = sub.add_parser("discover", help="Run the seeker consent -> search flow.")
    disc.add_argument("--user-id", dest="user_id", required=True)
    disc.add_argument("--consent-log", dest="consent_log", default=None, help="Consent JSONL file")
    disc.add_argument("--lat", type=float, default=None, help="Device latitude (omit if unavailable)")
    disc.add_argument("--lng", type=float, default=None, help="Device longitude (omit if unavailable)")
    disc.add_argument("--skip", action="store_true", help="Decline location sharing if asked")
    _add_search_args(disc)
    disc.set_defaults(func=_cmd_discover)

    disp = sub.add_parser("display-position", help="Print the obfuscated map position for one editor.")
    disp.add_argument("--editor-id", dest="editor_id", required=True)
    disp.add_argument("--lat", required=True, type=float)
    disp.add_argument("--lng", required=True, type=float)
    disp.add_argument("--radius", required=True, type=float)
    disp.add_argument("--salt", default=None)
    disp.set_defaults(func=_cmd_display_position)

    st = sub.add_parser("settings", help="Create or update an editor's location settings.")
    st.add_argument("--editors", default=None, help="Editor locations JSON file (default: configured store)")
    st.add_argument("--editor-id", dest="editor_id", required=True)
    st.add_argument("--city", required=True)
    st.add_argument("--state", required=True)
    st.add_argument("--country", default=None)
    st.add_argument("--lat", type=float, default=None)
    st.add_argument("--lng", type=float, default=None)
    st.add_argument("--level", choices=[lv.value for lv in VisibilityLevel], default=None)
    toggle = st.add_mutually_exclusive_group()
    toggle.add_argument("--enable", dest="enable", action="store_const", const=True, default=None)
    toggle.add_argument("--disable", dest="enable", action="store_const", const=False)
    st.set_defaults(func=_cmd_settings)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m editormap.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except (DiscoveryError, ValidationError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
