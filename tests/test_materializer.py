"""Tests for turning proposals into records."""

import pytest
from sqlalchemy.exc import OperationalError

from tourgen.models.experience import Experience, ExperienceLocation
from tourgen.models.location import Location
from tourgen.models.plan import Plan, PlanExperience
from tourgen.models.translation import Translation
from tourgen.schemas.proposals import ExperienceProposal, LocationProposal, PlanProposal
from tourgen.services.materializer import (
    Materializer,
    category_tags,
    default_plan_title,
    determine_location_type,
    normalize_website_url,
    sanitize_external_string,
)
from tourgen.services.places import RawPlace


def location_proposal(name="Vijećnica", lat=43.8590, lng=18.4330, place_id="p1", **candidate):
    return LocationProposal(
        candidate=RawPlace(place_id, name, lat, lng, categories=["tourism.sights.castle"], website="vijecnica.ba", **candidate),
        tags=["historical-site"],
        suitable_experiences=["culture", "history", "culture"],
        descriptions={"en": "City hall", "bs": "Gradska vijećnica"},
        historical_context={"en": "Built in 1896"},
    )


def experience_proposal(ids, title="Old Town Walk", names=()):
    return ExperienceProposal(
        location_ids=list(ids),
        location_names=list(names),
        category_key="cultural_heritage",
        titles={"en": title, "bs": "Šetnja starim gradom"},
        descriptions={"en": "A walk"},
    )


@pytest.fixture
def materializer(test_db, config):
    return Materializer(test_db, config)


def make_locations(materializer, city="Sarajevo", count=3, base=43.0):
    locations = []
    for i in range(count):
        location, _ = materializer.create_location(
            location_proposal(name=f"{city} sight {i}", lat=base + i, lng=18.0 + i, place_id=f"{city}-{i}"), city
        )
        locations.append(location)
    return locations


def test_helpers():
    assert sanitize_external_string("  Sebilj\x00\x07 ") == "Sebilj"
    assert sanitize_external_string(None) is None
    assert normalize_website_url("www.sebilj.ba") == "https://www.sebilj.ba"
    assert normalize_website_url("HTTP://sebilj.ba") == "HTTP://sebilj.ba"
    assert normalize_website_url("  ") is None
    assert determine_location_type(["catering.cafe"]) == "restaurant"
    assert determine_location_type(["accommodation.hotel"]) == "accommodation"
    assert determine_location_type(["natural.water"]) == "place"
    assert determine_location_type(["tourism.sights"]) == "place"
    assert category_tags(["tourism.sights.castle", "heritage.unesco", "natural.water.hot_spring", "leisure.park"]) == [
        "castle",
        "unesco",
        "hot-spring",
    ]
    assert default_plan_title("family", "Sarajevo", "en", "Bosnia and Herzegovina") == "Family Adventure - Sarajevo"
    assert default_plan_title("couple", None, "bs", "Bosnia and Herzegovina") == "Romantični bijeg - Bosnia and Herzegovina"
    assert default_plan_title("road_trip", "Mostar", "de", "BiH") == "Road Trip - Mostar"


def test_create_location(materializer, test_db):
    location, created = materializer.create_location(location_proposal(), "Sarajevo")

    assert created
    assert location.ai_generated
    assert location.location_type == "place"
    assert location.budget == "medium"
    assert location.website == "https://vijecnica.ba"
    assert location.tags == ["castle", "historical-site"]
    assert location.suitable_experiences == ["culture", "history"]

    translations = materializer.translations_for("location", location.id)
    assert translations[("en", "name")] == "Vijećnica"
    assert translations[("bs", "description")] == "Gradska vijećnica"
    assert translations[("en", "historical_context")] == "Built in 1896"
    assert ("bs", "historical_context") not in translations


def test_create_location_uses_price_level(materializer):
    location, _ = materializer.create_location(location_proposal(price_level="high"), "Sarajevo")

    assert location.budget == "high"


def test_create_location_is_idempotent(materializer, test_db):
    """Test the same place within the coordinate tolerance is not stored twice."""
    first, created = materializer.create_location(location_proposal(), "Sarajevo")
    again, created_again = materializer.create_location(
        location_proposal(lat=43.85905, lng=18.43305, place_id="other"), "Sarajevo"
    )

    assert created and not created_again
    assert again.id == first.id
    assert test_db.query(Location).count() == 1


def test_create_location_matches_external_id_and_name(materializer, test_db):
    first, _ = materializer.create_location(location_proposal(), "Sarajevo")

    by_id, created_by_id = materializer.create_location(location_proposal(lat=44.0, lng=19.0), "Sarajevo")
    by_name, created_by_name = materializer.create_location(
        location_proposal(name="VIJEĆNICA", lat=45.0, lng=20.0, place_id="p9"), "Sarajevo"
    )

    assert not created_by_id and by_id.id == first.id
    assert not created_by_name and by_name.id == first.id


def test_create_location_requires_coordinates(materializer):
    with pytest.raises(ValueError):
        materializer.create_location(location_proposal(lat=None), "Sarajevo")


def test_create_experience_links_in_order(materializer, test_db):
    locations = make_locations(materializer)

    experience, created = materializer.create_experience(
        experience_proposal([locations[2].id, locations[0].id]), locations
    )

    assert created
    assert [loc.id for loc in experience.locations] == [locations[2].id, locations[0].id]
    assert experience.estimated_duration == 120
    translations = materializer.translations_for("experience", experience.id)
    assert translations[("bs", "title")] == "Šetnja starim gradom"
    assert translations[("en", "description")] == "A walk"


def test_create_experience_is_idempotent(materializer, test_db):
    """Test re-applying a proposal reuses the experience and adds no duplicate links."""
    locations = make_locations(materializer)
    proposal = experience_proposal([locations[0].id, locations[1].id])

    first, _ = materializer.create_experience(proposal, locations)
    again, created = materializer.create_experience(
        experience_proposal([locations[0].id, locations[1].id, locations[2].id], title="old town walk"), locations
    )

    assert not created
    assert again.id == first.id
    assert test_db.query(Experience).count() == 1
    assert test_db.query(ExperienceLocation).count() == 3
    assert test_db.query(Translation).filter(Translation.resource_type == "experience").count() == 3


def test_create_experience_resolves_names(materializer):
    locations = make_locations(materializer)

    experience, created = materializer.create_experience(
        experience_proposal([999], names=["sarajevo sight 1", "Sight 2"]), locations
    )

    assert created
    assert [loc.id for loc in experience.locations] == [locations[1].id, locations[2].id]


def test_create_experience_needs_two_locations(materializer, test_db):
    locations = make_locations(materializer)

    experience, created = materializer.create_experience(experience_proposal([locations[0].id, 12345]), locations)

    assert experience is None and not created
    assert test_db.query(Experience).count() == 0


def test_create_experience_failed_write_leaves_nothing(materializer, test_db, monkeypatch):
    """Test a failing write keeps neither the experience, its translations nor its links."""
    locations = make_locations(materializer)

    def fail():
        raise OperationalError("INSERT INTO experience_locations", {}, Exception("disk I/O error"))

    monkeypatch.setattr(test_db, "commit", fail)

    with pytest.raises(OperationalError):
        materializer.create_experience(experience_proposal([locations[0].id, locations[1].id], "Bridges"), locations)

    monkeypatch.undo()
    assert test_db.query(Experience).count() == 0
    assert test_db.query(ExperienceLocation).count() == 0
    assert test_db.query(Translation).filter(Translation.resource_type == "experience").count() == 0


def test_link_location_skips_existing(materializer):
    locations = make_locations(materializer, count=2)
    experience, _ = materializer.create_experience(experience_proposal([loc.id for loc in locations]), locations)

    assert not materializer.link_location(experience, locations[0], 5)


def make_experiences(materializer):
    sarajevo = make_locations(materializer, "Sarajevo", 3)
    mostar = make_locations(materializer, "Mostar", 2, base=50.0)
    first, _ = materializer.create_experience(experience_proposal([sarajevo[0].id, sarajevo[1].id], "Walk A"), sarajevo)
    second, _ = materializer.create_experience(experience_proposal([sarajevo[1].id, sarajevo[2].id], "Walk B"), sarajevo)
    third, _ = materializer.create_experience(experience_proposal([mostar[0].id, mostar[1].id], "Bridge"), mostar)
    return [first, second, third]


def test_create_plan(materializer, test_db):
    experiences = make_experiences(materializer)
    proposal = PlanProposal.model_validate(
        {
            "duration_days": 2,
            "titles": {"en": "Sarajevo for families"},
            "notes": {"en": "Bring snacks", "bs": "Ponesite užinu"},
            "days": [
                {"day_number": 1, "experience_ids": [experiences[0].id, experiences[1].id, experiences[0].id, 777]},
                {"day_number": 2, "experience_ids": [experiences[0].id]},
            ],
            "reasoning": "Short walks",
        }
    )

    plan = materializer.create_plan(proposal, experiences, "family", city="Sarajevo", preferences={"pace": "relaxed"})

    assert plan.city_name == "Sarajevo"
    assert plan.duration_days == 2
    assert plan.preferences["generated_by_ai"] is True
    assert plan.preferences["pace"] == "relaxed"
    assert plan.preferences["generation_metadata"]["reasoning"] == "Short walks"
    rows = test_db.query(PlanExperience).order_by(PlanExperience.day_number, PlanExperience.position).all()
    assert [(r.day_number, r.position, r.experience_id) for r in rows] == [
        (1, 1, experiences[0].id),
        (1, 2, experiences[1].id),
        (2, 1, experiences[0].id),
    ]
    translations = materializer.translations_for("plan", plan.id)
    assert translations[("en", "title")] == "Sarajevo for families"
    assert translations[("bs", "title")] == "Porodična avantura - Sarajevo"
    assert translations[("bs", "notes")] == "Ponesite užinu"


def test_multi_city_plan_takes_primary_city(materializer):
    experiences = make_experiences(materializer)
    proposal = PlanProposal.model_validate(
        {"days": [{"day_number": 1, "experience_ids": [e.id for e in experiences]}]}
    )

    plan = materializer.create_plan(proposal, experiences, "culture")

    assert plan.city_name == "Sarajevo"
    assert plan.title == "Cultural Discovery - Bosnia and Herzegovina"
    assert plan.duration_days == 1


def test_plan_without_resolvable_experiences(materializer, test_db):
    experiences = make_experiences(materializer)
    proposal = PlanProposal.model_validate({"days": [{"day_number": 1, "experience_ids": [999]}]})

    assert materializer.create_plan(proposal, experiences, "solo") is None
    assert test_db.query(Plan).count() == 0
