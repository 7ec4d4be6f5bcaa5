"""Tests for the generation run record."""

import pytest

from tourgen.models.setting import Setting
from tourgen.services.run_state import (
    CANCELLED_MESSAGE,
    KEY_PLAN,
    KEY_RESULTS,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_IDLE,
    STATUS_IN_PROGRESS,
    CancellationError,
    CancellationToken,
    GenerationRunStore,
)


def test_fresh_store_is_idle(store):
    snapshot = store.snapshot()

    assert snapshot["status"] == STATUS_IDLE
    assert snapshot["plan"] == {}
    assert snapshot["results"] == {}
    assert snapshot["cancelled"] is False


def test_try_start_initializes_record(store):
    assert store.try_start()

    snapshot = store.snapshot()
    assert snapshot["status"] == STATUS_IN_PROGRESS
    assert snapshot["message"] == "AI reasoning phase"
    assert snapshot["started_at"] is not None
    assert snapshot["cancelled"] is False


def test_second_start_conflicts_without_touching_record(store):
    """Test a refused start leaves the active run's fields untouched."""
    assert store.try_start()
    store.update(plan={"target_cities": ["Sarajevo"]})
    before = store.snapshot()

    assert not store.try_start()

    after = store.snapshot()
    assert after["started_at"] == before["started_at"]
    assert after["plan"] == {"target_cities": ["Sarajevo"]}
    assert after["status"] == STATUS_IN_PROGRESS


def test_two_stores_share_one_record(session_factory):
    first = GenerationRunStore(session_factory)
    second = GenerationRunStore(session_factory)

    assert first.try_start()
    assert not second.try_start()


def test_restart_after_terminal_status_clears_plan_and_results(store):
    store.try_start()
    store.update(plan={"a": 1}, results={"b": 2})
    store.finish(STATUS_COMPLETED, "done")

    assert store.try_start()

    snapshot = store.snapshot()
    assert snapshot["plan"] == {}
    assert snapshot["results"] == {}


def test_cancel_only_while_in_progress(store):
    assert not store.request_cancel()
    assert not store.is_cancelled()

    store.try_start()

    assert store.request_cancel()
    assert store.is_cancelled()
    assert store.snapshot()["message"] == CANCELLED_MESSAGE


def test_status_update_keeps_cancel_flag(store):
    """Test progress writes cannot clear a pending cancellation."""
    store.try_start()
    store.request_cancel()

    store.update(status=STATUS_IN_PROGRESS, message="Processing Mostar")

    assert store.is_cancelled()


def test_finish_rejects_non_terminal_status(store):
    store.try_start()

    with pytest.raises(ValueError):
        store.finish(STATUS_IN_PROGRESS, "still going")


def test_finish_records_results(store):
    store.try_start()

    store.finish(STATUS_CANCELLED, CANCELLED_MESSAGE, results={"cities_processed": []})

    snapshot = store.snapshot()
    assert snapshot["status"] == STATUS_CANCELLED
    assert snapshot["results"] == {"cities_processed": []}


def test_force_reset_from_stuck_run(store):
    store.try_start()
    store.request_cancel()

    store.force_reset()

    snapshot = store.snapshot()
    assert snapshot["status"] == STATUS_IDLE
    assert snapshot["cancelled"] is False
    assert store.try_start()


def test_corrupt_json_reads_as_empty(store, session_factory):
    store.try_start()
    with session_factory() as db:
        db.merge(Setting(key=KEY_PLAN, value="{not json"))
        db.merge(Setting(key=KEY_RESULTS, value="[1, 2]"))
        db.commit()

    snapshot = store.snapshot()
    assert snapshot["plan"] == {}
    assert snapshot["results"] == {}


def test_token_raises_once_cancelled(store):
    token = CancellationToken(store)
    store.try_start()

    token.check("Sarajevo")
    store.request_cancel()

    assert token.cancelled
    with pytest.raises(CancellationError, match="before Mostar"):
        token.check("Mostar")
