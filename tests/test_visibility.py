from editormap.config.settings import get_settings
from editormap.discovery.visibility import VisibilityPolicy
from editormap.domain.models import VisibilityLevel


def _policy() -> VisibilityPolicy:
    return VisibilityPolicy(get_settings().discovery)


def test_granularity_table_defaults():
    policy = _policy()
    assert policy.max_radius_km(VisibilityLevel.CITY) == 25
    assert policy.max_radius_km(VisibilityLevel.REGION) == 100
    assert policy.max_radius_km(VisibilityLevel.COUNTRY) is None


def test_disabled_editor_is_never_eligible(make_editor, mumbai):
    record = make_editor("off", 1.0, enabled=False)
    for radius in (1, 25, 100):
        assert not _policy().is_eligible(record, seeker_location=mumbai, requested_radius_km=radius)


def test_city_level_caps_at_25km_even_for_larger_radius(make_editor, mumbai):
    policy = _policy()
    near = make_editor("near", 20.0)
    far = make_editor("far", 30.0)
    assert policy.is_eligible(near, seeker_location=mumbai, requested_radius_km=100)
    assert not policy.is_eligible(far, seeker_location=mumbai, requested_radius_km=100)


def test_requested_radius_caps_below_granularity(make_editor, mumbai):
    record = make_editor("r", 20.0, level="region")
    policy = _policy()
    assert not policy.is_eligible(record, seeker_location=mumbai, requested_radius_km=10)
    assert policy.is_eligible(record, seeker_location=mumbai, requested_radius_km=50)


def test_country_level_requires_same_country_only(make_editor, mumbai):
    policy = _policy()
    home = make_editor("in", 90.0, level="country", country="india")
    abroad = make_editor("np", 90.0, level="country", country="Nepal")
    assert policy.is_eligible(home, seeker_location=mumbai, requested_radius_km=5)
    assert not policy.is_eligible(abroad, seeker_location=mumbai, requested_radius_km=100)
    assert policy.is_eligible(abroad, seeker_location=mumbai, requested_radius_km=100, seeker_country="Nepal")
