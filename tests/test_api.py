from starlette.testclient import TestClient

import editormap.api.routes as routes
from editormap.api.app import app
from editormap.config.settings import get_settings
from editormap.core.errors import StoreUnavailable
from editormap.core.rate_limit import KeyedRateLimiter
from editormap.domain.models import EditorProfile
from editormap.storage.consent import InMemoryConsentLog
from editormap.storage.records import InMemoryEditorLocationStore

CLIENT = {"X-User-Id": "client-1", "X-User-Role": "client"}
EDITOR = {"X-User-Id": "ed-1", "X-User-Role": "editor"}
NEARBY = {"lat": 19.076, "lng": 72.877, "radius": 10}


def _patch(monkeypatch, *, store=None, consent_log=None, limiter=None):
    store = store if store is not None else InMemoryEditorLocationStore()
    consent_log = consent_log if consent_log is not None else InMemoryConsentLog()
    limiter = limiter if limiter is not None else KeyedRateLimiter(max_per_minute=1000)
    monkeypatch.setattr(routes, "_store", lambda: store)
    monkeypatch.setattr(routes, "_consent_log", lambda: consent_log)
    monkeypatch.setattr(routes, "_nearby_limiter", lambda: limiter)
    return store, consent_log


def test_nearby_returns_ranked_editors_without_true_location(monkeypatch, make_editor):
    _patch(
        monkeypatch,
        store=InMemoryEditorLocationStore(
            [make_editor("far", 8.0), make_editor("near", 2.0), make_editor("hidden", 1.0, enabled=False)]
        ),
    )
    with TestClient(app) as c:
        resp = c.get("/api/location/nearby", params=NEARBY, headers=CLIENT)
    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 2
    assert [e["editor_id"] for e in data["editors"]] == ["near", "far"]
    assert data["search_params"]["radius"] == 10
    for editor in data["editors"]:
        assert "true_location" not in editor
        assert set(editor["display_position"]) == {"lat", "lng"}


def test_nearby_filters_from_query_params(monkeypatch, make_editor):
    _patch(
        monkeypatch,
        store=InMemoryEditorLocationStore(
            [
                make_editor("a", 2.0, rating=4.8, skills=["Color Grading"]),
                make_editor("b", 3.0, rating=3.0, skills=["color grading"]),
                make_editor("c", 4.0, rating=4.9, skills=["motion graphics"], availability="busy"),
            ]
        ),
    )
    params = {**NEARBY, "minRating": 4, "skills": "color grading, vfx", "sortBy": "rating"}
    with TestClient(app) as c:
        resp = c.get("/api/location/nearby", params=params, headers=CLIENT)
        busy = c.get(
            "/api/location/nearby", params={**NEARBY, "availability": "true", "sortBy": "rating"}, headers=CLIENT
        )
    assert [e["editor_id"] for e in resp.json()["editors"]] == ["a"]
    assert [e["editor_id"] for e in busy.json()["editors"]] == ["a", "b"]


def test_nearby_rejects_bad_radius_and_sort_key(monkeypatch):
    _patch(monkeypatch)
    with TestClient(app) as c:
        too_big = c.get("/api/location/nearby", params={**NEARBY, "radius": 500}, headers=CLIENT)
        bad_sort = c.get("/api/location/nearby", params={**NEARBY, "sortBy": "price_sideways"}, headers=CLIENT)
        bad_lat = c.get("/api/location/nearby", params={**NEARBY, "lat": 120}, headers=CLIENT)
    for resp in (too_big, bad_sort, bad_lat):
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_QUERY"
        assert resp.json()["detail"]["retryable"] is False


def test_nearby_requires_client_role(monkeypatch):
    _patch(monkeypatch)
    with TestClient(app) as c:
        anonymous = c.get("/api/location/nearby", params=NEARBY)
        editor = c.get("/api/location/nearby", params=NEARBY, headers=EDITOR)
    assert anonymous.status_code == 401
    assert anonymous.json()["detail"]["code"] == "UNAUTHENTICATED"
    assert editor.status_code == 403
    assert editor.json()["detail"]["code"] == "FORBIDDEN"


def test_nearby_store_failure_is_retryable_503(monkeypatch):
    class _DownStore(InMemoryEditorLocationStore):
        def list_all(self):
            raise StoreUnavailable("db down")

    _patch(monkeypatch, store=_DownStore())
    with TestClient(app) as c:
        resp = c.get("/api/location/nearby", params=NEARBY, headers=CLIENT)
    assert resp.status_code == 503
    assert resp.json()["detail"] == {
        "code": "STORE_UNAVAILABLE",
        "message": "db down",
        "retryable": True,
    }


def test_nearby_is_rate_limited_per_user(monkeypatch):
    _patch(monkeypatch, limiter=KeyedRateLimiter(max_per_minute=60, burst=1))
    with TestClient(app) as c:
        first = c.get("/api/location/nearby", params=NEARBY, headers=CLIENT)
        second = c.get("/api/location/nearby", params=NEARBY, headers=CLIENT)
        other = c.get("/api/location/nearby", params=NEARBY, headers={**CLIENT, "X-User-Id": "client-2"})
    assert first.status_code == 200
    assert second.status_code == 429
    assert second.json()["detail"]["code"] == "RATE_LIMITED"
    assert int(second.headers["Retry-After"]) >= 1
    assert other.status_code == 200


def test_settings_lifecycle(monkeypatch):
    store, _ = _patch(monkeypatch)
    body = {"city": "Pune", "state": "Maharashtra", "visibility": {"enabled": True, "level": "region"}}
    with TestClient(app) as c:
        empty = c.get("/api/location/settings", headers=EDITOR)
        saved = c.patch("/api/location/settings", json=body, headers=EDITOR)
        fetched = c.get("/api/location/settings", headers=EDITOR)
        deleted = c.delete("/api/location/settings", headers=EDITOR)
        missing = c.delete("/api/location/settings", headers=EDITOR)

    assert empty.json()["location"] is None
    assert saved.status_code == 200
    location = saved.json()["location"]
    assert location["approx_region"] == "Pune, Maharashtra"
    assert location["visibility"]["enabled"] is True
    assert "true_location" not in location
    assert fetched.json()["location"]["city"] == "Pune"
    assert deleted.json()["success"] is True
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "NOT_FOUND"
    assert store.get("ed-1") is None


def test_settings_require_editor_role(monkeypatch):
    _patch(monkeypatch)
    with TestClient(app) as c:
        resp = c.patch("/api/location/settings", json={"city": "Pune", "state": "MH"}, headers=CLIENT)
    assert resp.status_code == 403


def test_settings_rejects_invalid_coordinates(monkeypatch):
    _patch(monkeypatch)
    body = {"city": "Pune", "state": "MH", "coordinates": {"lat": 91, "lng": 0}}
    with TestClient(app) as c:
        resp = c.patch("/api/location/settings", json=body, headers=EDITOR)
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "INVALID_INPUT"


def test_consent_is_logged(monkeypatch):
    _, log = _patch(monkeypatch)
    body = {"consentGiven": True, "userLocation": {"lat": 19.08, "lng": 72.88}}
    with TestClient(app) as c:
        resp = c.post("/api/location/consent", json=body, headers=CLIENT)
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert resp.json()["consent_given"] is True
    records = log.records_for("client-1")
    assert len(records) == 1
    assert records[0].location_at_consent.lat == 19.08


def test_consent_failure_still_succeeds(monkeypatch):
    class _Broken(InMemoryConsentLog):
        def append(self, record):
            raise StoreUnavailable("disk full")

    _patch(monkeypatch, consent_log=_Broken())
    with TestClient(app) as c:
        resp = c.post("/api/location/consent", json={"consentGiven": False}, headers=CLIENT)
    assert resp.status_code == 200
    assert resp.json()["consent_given"] is False


def test_reverse_geocode_disabled_asks_for_manual_entry(monkeypatch):
    _patch(monkeypatch)
    with TestClient(app) as c:
        resp = c.get("/api/location/reverse-geocode", params={"lat": 19.08, "lng": 72.88}, headers=EDITOR)
    assert resp.status_code == 200
    assert resp.json() == {"place": None, "manual_entry": True}


def test_public_config():
    with TestClient(app) as c:
        resp = c.get("/api/config")
    assert resp.status_code == 200
    data = resp.json()
    assert data["radius"] == {"min_km": 1, "max_km": 100, "default_km": 25}
    assert data["fallback_location"]["label"] == "Mumbai"
    assert data["granularity_max_km"]["country"] is None
    assert "distance" in data["sort_keys"]


def _positions(c, user_id):
    headers = {**CLIENT, "X-User-Id": user_id}
    resp = c.get("/api/location/nearby", params=NEARBY, headers=headers)
    assert resp.status_code == 200
    return [e["display_position"] for e in resp.json()["editors"]]


def test_session_salt_gives_each_seeker_stable_private_positions(monkeypatch, make_editor):
    _patch(monkeypatch, store=InMemoryEditorLocationStore([make_editor("e1", 3.0), make_editor("e2", 6.0)]))
    base = get_settings()
    salted = base.model_copy(update={"obfuscation": base.obfuscation.model_copy(update={"session_salt": True})})
    monkeypatch.setattr(routes, "get_settings", lambda: salted)

    with TestClient(app) as c:
        alice = _positions(c, "alice")
        assert _positions(c, "alice") == alice
        assert _positions(c, "bob") != alice


def test_positions_shared_across_seekers_without_session_salt(monkeypatch, make_editor):
    _patch(monkeypatch, store=InMemoryEditorLocationStore([make_editor("e1", 3.0)]))
    with TestClient(app) as c:
        assert _positions(c, "alice") == _positions(c, "bob")


def test_nearby_profile_includes_suvix_score(monkeypatch, make_editor):
    store = InMemoryEditorLocationStore([make_editor("e1", 3.0)])
    store.set_profile("e1", EditorProfile(name="Meera", rating=4.6, suvix_score=812))
    _patch(monkeypatch, store=store)
    with TestClient(app) as c:
        resp = c.get("/api/location/nearby", params=NEARBY, headers=CLIENT)
    profile = resp.json()["editors"][0]["profile"]
    assert profile["suvix_score"] == 812
    assert profile["name"] == "Meera"


def test_openapi_title_comes_from_settings():
    assert app.title == f"{get_settings().app.name} API"
