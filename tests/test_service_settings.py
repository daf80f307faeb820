from datetime import datetime, timezone

import pytest

from editormap.config.settings import get_settings
from editormap.core.errors import InvalidInput, NotFound, StoreUnavailable
from editormap.core.geo import GeoPoint
from editormap.discovery.service import (
    delete_location_settings,
    get_location_settings,
    log_consent,
    update_location_settings,
)
from editormap.domain.models import EditorProfile, LocationSettingsUpdate, VisibilityLevel, VisibilityUpdate
from editormap.storage.consent import InMemoryConsentLog
from editormap.storage.records import InMemoryEditorLocationStore

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
T1 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_create_geocodes_known_city_and_defaults_to_hidden():
    store = InMemoryEditorLocationStore()
    view = update_location_settings(
        "ed-1", LocationSettingsUpdate(city="Pune", state="Maharashtra"), store=store, now=T0
    )

    assert view.approx_region == "Pune, Maharashtra"
    assert view.country == "India"
    assert view.visibility.enabled is False
    assert view.visibility.level is VisibilityLevel.CITY
    assert view.visibility.last_updated == T0

    record = store.get("ed-1")
    assert record.true_location == GeoPoint(lat=18.52, lng=73.86)
    assert record.created_at == T0


def test_explicit_coordinates_are_rounded_before_storage():
    store = InMemoryEditorLocationStore()
    update = LocationSettingsUpdate(city="Mumbai", state="MH", coordinates=GeoPoint(lat=19.07612, lng=72.87765))
    update_location_settings("ed-1", update, store=store, now=T0)
    assert store.get("ed-1").true_location == GeoPoint(lat=19.08, lng=72.88)


def test_unknown_city_uses_default_coordinates():
    store = InMemoryEditorLocationStore()
    update_location_settings("ed-1", LocationSettingsUpdate(city="Atlantis", state="Sea"), store=store)
    assert store.get("ed-1").true_location == GeoPoint(lat=20.59, lng=78.96)


def test_invalid_coordinates_are_rejected():
    update = LocationSettingsUpdate(city="Mumbai", state="MH", coordinates=GeoPoint(lat=95.0, lng=0.0))
    with pytest.raises(InvalidInput):
        update_location_settings("ed-1", update, store=InMemoryEditorLocationStore())


def test_update_preserves_visibility_profile_and_created_at():
    store = InMemoryEditorLocationStore()
    update_location_settings(
        "ed-1",
        LocationSettingsUpdate(city="Mumbai", state="MH", visibility=VisibilityUpdate(enabled=True, level="region")),
        store=store,
        now=T0,
    )
    store.set_profile("ed-1", EditorProfile(name="Ravi", rating=4.2))

    view = update_location_settings("ed-1", LocationSettingsUpdate(city="Delhi", state="DL"), store=store, now=T1)

    record = store.get("ed-1")
    assert view.approx_region == "Delhi, DL"
    assert record.visibility.enabled is True
    assert record.visibility.level is VisibilityLevel.REGION
    assert record.visibility.last_updated == T0
    assert record.profile.name == "Ravi"
    assert record.created_at == T0
    assert record.updated_at == T1


def test_partial_visibility_update_keeps_other_field():
    store = InMemoryEditorLocationStore()
    settings = get_settings()
    update_location_settings(
        "ed-1",
        LocationSettingsUpdate(city="Mumbai", state="MH", visibility=VisibilityUpdate(enabled=True, level="country")),
        store=store,
        settings=settings,
        now=T0,
    )
    update_location_settings(
        "ed-1",
        LocationSettingsUpdate(city="Mumbai", state="MH", visibility=VisibilityUpdate(enabled=False)),
        store=store,
        settings=settings,
        now=T1,
    )
    visibility = store.get("ed-1").visibility
    assert visibility.enabled is False
    assert visibility.level is VisibilityLevel.COUNTRY
    assert visibility.last_updated == T1


def test_blank_city_is_rejected_by_model():
    with pytest.raises(ValueError):
        LocationSettingsUpdate(city="   ", state="MH")


def test_get_and_delete_settings():
    store = InMemoryEditorLocationStore()
    assert get_location_settings("ed-1", store=store) is None
    update_location_settings("ed-1", LocationSettingsUpdate(city="Mumbai", state="MH"), store=store)
    assert get_location_settings("ed-1", store=store).city == "Mumbai"

    delete_location_settings("ed-1", store=store)
    assert store.get("ed-1") is None
    with pytest.raises(NotFound):
        delete_location_settings("ed-1", store=store)


def test_log_consent_appends_record():
    log = InMemoryConsentLog()
    here = GeoPoint(lat=19.08, lng=72.88)
    record = log_consent("u1", True, here, consent_log=log, now=T0)
    assert record.location_at_consent == here
    assert log.latest_for("u1") == record


def test_log_consent_failure_is_swallowed():
    class _Broken(InMemoryConsentLog):
        def append(self, record):
            raise StoreUnavailable("disk full")

    record = log_consent("u1", False, None, consent_log=_Broken(), now=T0)
    assert record.consent_given is False


def test_log_consent_rejects_invalid_location():
    with pytest.raises(InvalidInput):
        log_consent("u1", True, GeoPoint(lat=0.0, lng=200.0), consent_log=InMemoryConsentLog())
