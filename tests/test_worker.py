"""Tests for the generation worker."""

from sqlalchemy.exc import OperationalError

from conftest import FakeLLM, FakePlaces
from tourgen.config import StartOptions, settings
from tourgen.services.run_state import STATUS_COMPLETED, STATUS_FAILED, STATUS_IN_PROGRESS
from tourgen.worker import GenerationWorker, build_places_client


def make_worker(session_factory, llm_factory=FakeLLM, places_factory=FakePlaces):
    return GenerationWorker(session_factory=session_factory, llm_factory=llm_factory, places_factory=places_factory)


def test_foreground_run(session_factory):
    snapshot = make_worker(session_factory).start_foreground()

    assert snapshot["status"] == STATUS_COMPLETED
    assert snapshot["results"]["locations_created"] == 4


def test_background_run(session_factory):
    worker = make_worker(session_factory)

    assert worker.start(StartOptions(max_plans=1))
    worker.join(timeout=30)

    assert not worker.is_running
    snapshot = worker.store.snapshot()
    assert snapshot["status"] == STATUS_COMPLETED
    assert snapshot["results"]["plans_created"] == 1


def test_conflict_leaves_active_run_alone(session_factory):
    """Test a second start while a run is active is refused without side effects."""
    worker = make_worker(session_factory)
    worker.store.try_start()
    started_at = worker.store.snapshot()["started_at"]

    assert worker.start_foreground() is None
    assert not worker.start()

    snapshot = worker.store.snapshot()
    assert snapshot["status"] == STATUS_IN_PROGRESS
    assert snapshot["started_at"] == started_at


def test_skip_locations_needs_no_places_client(session_factory):
    created = []

    def places_factory():
        created.append(True)
        return FakePlaces()

    snapshot = make_worker(session_factory, places_factory=places_factory).start_foreground(
        StartOptions(skip_locations=True)
    )

    assert snapshot["status"] == STATUS_COMPLETED
    assert created == []


def test_failed_run_is_recorded(session_factory):
    def llm_factory():
        llm = FakeLLM()
        llm.api_key = ""
        return llm

    snapshot = make_worker(session_factory, llm_factory=llm_factory).start_foreground()

    assert snapshot["status"] == STATUS_FAILED
    assert "API key" in snapshot["message"]


def test_setup_error_is_recorded(session_factory):
    def llm_factory():
        raise RuntimeError("boom")

    snapshot = make_worker(session_factory, llm_factory=llm_factory).start_foreground()

    assert snapshot["status"] == STATUS_FAILED
    assert snapshot["message"] == "Generation failed: boom"


def test_failed_status_write_does_not_escape(session_factory, caplog):
    """Test a run whose failure cannot be recorded still returns instead of raising."""
    def llm_factory():
        raise RuntimeError("boom")

    def finish(*args, **kwargs):
        raise OperationalError("UPDATE settings", {}, Exception("database is locked"))

    worker = make_worker(session_factory, llm_factory=llm_factory)
    worker.store.finish = finish

    snapshot = worker.start_foreground()

    assert snapshot["status"] == STATUS_IN_PROGRESS
    assert "Could not save failed generation status" in caplog.text


def test_places_client_needs_key(monkeypatch):
    monkeypatch.setattr(settings, "GEOAPIFY_API_KEY", "")

    assert build_places_client() is None
