"""Tests for the operator CLI."""

import json

import pytest
from click.testing import CliRunner

from conftest import FakeLLM, FakePlaces
from tourgen.cli import cli
from tourgen.models.location import Location
from tourgen.services.run_state import GenerationRunStore
from tourgen.worker import GenerationWorker


@pytest.fixture
def runner():
    return CliRunner()


def make_obj(session_factory, llm_factory=FakeLLM):
    return {
        "session_factory": session_factory,
        "worker_factory": lambda: GenerationWorker(
            session_factory=session_factory, llm_factory=llm_factory, places_factory=FakePlaces
        ),
    }


def test_start(runner, session_factory):
    result = runner.invoke(cli, ["start", "--max-plans", "1"], obj=make_obj(session_factory))

    assert result.exit_code == 0
    assert "completed: Created 4 locations" in result.output
    assert '"plans_created": 1' in result.output


def test_start_conflict(runner, session_factory):
    GenerationRunStore(session_factory).try_start()

    result = runner.invoke(cli, ["start"], obj=make_obj(session_factory))

    assert result.exit_code == 1
    assert "already in progress" in result.output


def test_start_failure_exit_code(runner, session_factory):
    def llm_factory():
        llm = FakeLLM()
        llm.api_key = ""
        return llm

    result = runner.invoke(cli, ["start"], obj=make_obj(session_factory, llm_factory))

    assert result.exit_code == 1
    assert "failed: Generation failed" in result.output


def test_start_rejects_negative_limit(runner, session_factory):
    result = runner.invoke(cli, ["start", "--max-locations", "-1"], obj=make_obj(session_factory))

    assert result.exit_code == 2


def test_status(runner, session_factory):
    result = runner.invoke(cli, ["status"], obj=make_obj(session_factory))

    assert result.exit_code == 0
    assert json.loads(result.output)["status"] == "idle"


def test_cancel(runner, session_factory):
    obj = make_obj(session_factory)

    assert "No generation run in progress." in runner.invoke(cli, ["cancel"], obj=obj).output

    GenerationRunStore(session_factory).try_start()

    assert "Cancellation requested." in runner.invoke(cli, ["cancel"], obj=obj).output
    assert GenerationRunStore(session_factory).is_cancelled()


def test_reset(runner, session_factory):
    store = GenerationRunStore(session_factory)
    store.try_start()

    result = runner.invoke(cli, ["reset"], obj=make_obj(session_factory))

    assert result.exit_code == 0
    assert store.snapshot()["status"] == "idle"


def test_stats(runner, session_factory):
    with session_factory() as db:
        db.add(Location(name="Kravica", city="Ljubuški", lat=43.15, lng=17.6))
        db.commit()

    result = runner.invoke(cli, ["stats"], obj=make_obj(session_factory))

    assert json.loads(result.output)["totals"]["locations"] == 1
