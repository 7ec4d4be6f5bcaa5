"""Tests for the content agents."""

import dataclasses
import math

from conftest import FakeLLM
from tourgen.agents.experience_creator import ExperienceCreator
from tourgen.agents.location_enricher import LocationEnricher
from tourgen.agents.plan_creator import PlanCreator
from tourgen.models.experience import Experience
from tourgen.models.location import Location
from tourgen.services.places import RawPlace


def add_locations(db, city, count):
    locations = [Location(name=f"{city} sight {i}", city=city, lat=43.0 + i, lng=18.0 + i) for i in range(count)]
    db.add_all(locations)
    db.commit()
    return locations


def add_experiences(db, count):
    experiences = [Experience(title=f"Experience {i}") for i in range(count)]
    db.add_all(experiences)
    db.commit()
    return experiences


def test_enricher_builds_proposal(config):
    llm = FakeLLM()
    candidate = RawPlace("p1", "Vijećnica", 43.859, 18.433, address="Obala Kulina bana, Sarajevo", categories=["tourism.sights"])

    proposal = LocationEnricher(llm, config).enrich(candidate, "Sarajevo")

    assert proposal.candidate is candidate
    assert proposal.tags == ["historical-site"]
    assert proposal.descriptions == {"en": "descriptions en", "bs": "descriptions bs"}
    assert proposal.historical_context == {"en": "historical_context en", "bs": "historical_context bs"}
    assert proposal.confidence == 0.9
    assert len(llm.calls) == 3
    assert all(call["context"] == "LocationEnricher:Sarajevo" for call in llm.calls)
    assert "LOCATION INFORMATION" in llm.calls[0]["prompt"]


def test_enricher_batches_locales(config):
    """Test descriptions go five locales per request and history three."""
    llm = FakeLLM()
    many = dataclasses.replace(config, locales=("en", "bs", "de", "fr", "it", "es", "tr"))

    proposal = LocationEnricher(llm, many).enrich(RawPlace("p1", "Sebilj", 43.8, 18.4), "Sarajevo")

    description_calls = [c for c in llm.calls if "descriptions" in c["schema"]["properties"]]
    history_calls = [c for c in llm.calls if "historical_context" in c["schema"]["properties"]]
    assert len(description_calls) == 2
    assert len(history_calls) == 3
    assert set(proposal.descriptions) == set(many.locales)
    assert set(proposal.historical_context) == set(many.locales)


def test_enricher_skips_candidate_without_coordinates(config):
    llm = FakeLLM()

    assert LocationEnricher(llm, config).enrich(RawPlace("p1", "Nowhere", None, None), "Sarajevo") is None
    assert llm.calls == []


def test_enricher_tolerates_empty_answers(config):
    llm = FakeLLM({"location_enrichment": {}})

    proposal = LocationEnricher(llm, config).enrich(RawPlace("p1", "Sebilj", 43.8, 18.4), "Sarajevo")

    assert proposal.tags == []
    assert proposal.descriptions == {}
    assert proposal.confidence == 0.0


def test_local_experiences_capped_at_five(config, test_db):
    llm = FakeLLM()
    locations = add_locations(test_db, "Sarajevo", 8)

    proposals = ExperienceCreator(llm, config).propose_local(locations, "Sarajevo", math.inf)

    assert len(proposals) == 5
    call = llm.calls_for("experience_proposals")[0]
    assert "TASK: Create 5" in call["prompt"]
    assert call["context"] == "ExperienceCreator:Sarajevo"
    assert proposals[0].location_ids == [locations[0].id, locations[1].id]


def test_local_experiences_respect_remaining_quota(config, test_db):
    llm = FakeLLM()
    locations = add_locations(test_db, "Mostar", 4)

    proposals = ExperienceCreator(llm, config).propose_local(locations, "Mostar", 1)

    assert len(proposals) == 1


def test_local_experiences_need_enough_locations(config, test_db):
    llm = FakeLLM()
    locations = add_locations(test_db, "Jajce", 1)

    assert ExperienceCreator(llm, config).propose_local(locations, "Jajce", 10) == []
    assert llm.calls == []


def test_thematic_experiences_capped_at_three(config, test_db):
    llm = FakeLLM()
    locations = add_locations(test_db, "Sarajevo", 3) + add_locations(test_db, "Mostar", 3)

    proposals = ExperienceCreator(llm, config).propose_thematic(locations, math.inf)

    assert len(proposals) == 3
    call = llm.calls_for("experience_proposals")[0]
    assert call["context"] == "ExperienceCreator:thematic"
    assert "=== Mostar ===" in call["prompt"]


def test_invalid_experience_entries_dropped(config, test_db):
    llm = FakeLLM({"experience_proposals": {"experiences": ["junk", {"location_ids": [1, 2]}]}})
    locations = add_locations(test_db, "Sarajevo", 3)

    proposals = ExperienceCreator(llm, config).propose_local(locations, "Sarajevo", 5)

    assert len(proposals) == 1


def test_plan_creator_proposes_plan(config, test_db):
    llm = FakeLLM()
    experiences = add_experiences(test_db, 3)

    proposal = PlanCreator(llm, config).propose(experiences, "family", city="Sarajevo")

    assert proposal.days[0].experience_ids == [experiences[0].id, experiences[1].id]
    call = llm.calls_for("plan_proposal")[0]
    assert call["context"] == "PlanCreator:family:Sarajevo"
    assert "FAMILY" in call["prompt"]


def test_plan_creator_fixed_duration(config, test_db):
    llm = FakeLLM()
    experiences = add_experiences(test_db, 2)

    PlanCreator(llm, config).propose(experiences, "couple", duration_days=3)

    assert "exactly 3 days" in llm.calls[0]["prompt"]
    assert llm.calls[0]["context"] == "PlanCreator:couple:multi"


def test_plan_creator_rejects_unknown_profile(config, test_db):
    llm = FakeLLM()

    assert PlanCreator(llm, config).propose(add_experiences(test_db, 3), "pirate") is None
    assert llm.calls == []


def test_plan_creator_needs_enough_experiences(config, test_db):
    llm = FakeLLM()

    assert PlanCreator(llm, config).propose(add_experiences(test_db, 1), "family") is None
    assert llm.calls == []


def test_plan_without_days_is_discarded(config, test_db):
    llm = FakeLLM({"plan_proposal": {"titles": {"en": "Empty"}, "days": []}})

    assert PlanCreator(llm, config).propose(add_experiences(test_db, 2), "solo") is None
