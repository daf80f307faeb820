"""
Small formatting helpers.

Used by the CLI to print compact summaries of nearby search results.
"""

from __future__ import annotations

from editormap.domain.models import SearchResult


def distance_label(distance_km: float) -> str:
    """Human label for a true distance: meters under 1 km, one decimal under 10 km."""
    if distance_km < 1:
        return f"{round(distance_km * 1000)}m away"
    if distance_km < 10:
        return f"{distance_km:.1f}km away"
    return f"{round(distance_km)}km away"


def one_line_summary(result: SearchResult) -> str:
    """Render a compact single-line summary for a search result."""
    p = result.profile
    parts = [
        p.name,
        f"{result.city}, {result.state}",
        distance_label(result.distance_km),
        f"rating={p.rating:.1f}",
    ]
    if p.starting_price is not None:
        parts.append(f"from={p.starting_price:g}")
    if p.skills:
        parts.append("skills=" + ",".join(p.skills))
    return " | ".join(parts)
