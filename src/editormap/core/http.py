"""
HTTP helpers.

Only the reverse geocoder talks to the network. Keeping the httpx call here gives
tests a single seam to monkeypatch and keeps the defaults (timeout, User-Agent)
in one place. Nominatim-style services reject requests without a User-Agent.
"""

from __future__ import annotations

from typing import Any

import httpx


DEFAULT_USER_AGENT = "editormap/0.1.0 (+https://local)"


def get_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 5,
) -> Any:
    """GET `url` and return the decoded JSON response.

    Raises:
        httpx.HTTPError: On transport errors or non-2xx status codes.
        ValueError: If the response body is not valid JSON.
    """
    request_headers = {"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    with httpx.Client(timeout=timeout_seconds) as client:
        resp = client.get(url, params=params, headers=request_headers)
        resp.raise_for_status()
        return resp.json()
