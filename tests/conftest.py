import pytest

from editormap.core.geo import GeoPoint, offset_point
from editormap.domain.models import EditorLocationRecord, EditorProfile, Visibility, VisibilityLevel

MUMBAI = GeoPoint(lat=19.076, lng=72.877)


@pytest.fixture
def mumbai() -> GeoPoint:
    return MUMBAI


@pytest.fixture
def make_editor():
    """Factory for editor records placed `km` away from a center along `bearing` (radians)."""

    def _make(
        editor_id: str,
        km: float,
        *,
        center: GeoPoint = MUMBAI,
        bearing: float = 0.0,
        enabled: bool = True,
        level: str = "city",
        country: str = "India",
        rating: float = 4.0,
        skills: list[str] | None = None,
        availability: str = "available",
        price: float | None = None,
        with_profile: bool = True,
    ) -> EditorLocationRecord:
        profile = None
        if with_profile:
            profile = EditorProfile(
                name=f"Editor {editor_id}",
                skills=skills or ["premiere pro"],
                rating=rating,
                availability=availability,
                starting_price=price,
            )
        return EditorLocationRecord(
            editor_id=editor_id,
            true_location=offset_point(center, bearing, km),
            city="Mumbai",
            state="Maharashtra",
            country=country,
            visibility=Visibility(enabled=enabled, level=VisibilityLevel(level)),
            profile=profile,
        )

    return _make
