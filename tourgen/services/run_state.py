"""Generation run record, single-flight guard and cooperative cancellation."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tourgen.database import SessionLocal
from tourgen.models.setting import Setting

logger = logging.getLogger(__name__)

STATUS_IDLE = "idle"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"

TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED)

KEY_STATUS = "generation.status"
KEY_CANCELLED = "generation.cancelled"
KEY_MESSAGE = "generation.message"
KEY_STARTED_AT = "generation.started_at"
KEY_PLAN = "generation.plan"
KEY_RESULTS = "generation.results"

ALL_KEYS = (KEY_STATUS, KEY_CANCELLED, KEY_MESSAGE, KEY_STARTED_AT, KEY_PLAN, KEY_RESULTS)

CANCELLED_MESSAGE = "Generation was stopped by user"


class CancellationError(Exception):
    """Unwinds a run that was cancelled by the operator. Not a failure."""


def _load_json(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


class GenerationRunStore:
    """
    Sole owner of the process-wide generation run record.

    The record lives in the settings key-value table. Every operation opens
    its own short session so pollers and the worker never share one. The
    cancellation flag has its own key so status writes cannot clobber it.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def _get(self, db: Session, key: str, default: Optional[str] = None) -> Optional[str]:
        row = db.get(Setting, key)
        return row.value if row is not None and row.value is not None else default

    def _set(self, db: Session, key: str, value: Optional[str]) -> None:
        row = db.get(Setting, key)
        if row is None:
            db.add(Setting(key=key, value=value))
        else:
            row.value = value
            row.updated_at = datetime.utcnow()

    def _ensure_status_row(self) -> None:
        with self.session_factory() as db:
            if db.get(Setting, KEY_STATUS) is not None:
                return
            db.add(Setting(key=KEY_STATUS, value=STATUS_IDLE))
            try:
                db.commit()
            except IntegrityError:
                # Another caller created it first
                db.rollback()

    def try_start(self, message: str = "AI reasoning phase") -> bool:
        """
        Move the record to in_progress unless a run is already active.

        The status flip is one conditional UPDATE, so two near-simultaneous
        callers cannot both win.

        Returns:
            True if this caller owns the new run, False on conflict
        """
        self._ensure_status_row()

        with self.session_factory() as db:
            updated = (
                db.query(Setting)
                .filter(Setting.key == KEY_STATUS, Setting.value != STATUS_IN_PROGRESS)
                .update({Setting.value: STATUS_IN_PROGRESS, Setting.updated_at: datetime.utcnow()}, synchronize_session=False)
            )
            if updated != 1:
                db.rollback()
                logger.warning("Generation already in progress, start refused")
                return False

            self._set(db, KEY_CANCELLED, "false")
            self._set(db, KEY_MESSAGE, message)
            self._set(db, KEY_STARTED_AT, datetime.now(timezone.utc).isoformat())
            self._set(db, KEY_PLAN, None)
            self._set(db, KEY_RESULTS, None)
            db.commit()

        logger.info("Generation run started")
        return True

    def request_cancel(self) -> bool:
        """Flag the active run for cancellation. No-op unless in progress."""
        with self.session_factory() as db:
            if self._get(db, KEY_STATUS, STATUS_IDLE) != STATUS_IN_PROGRESS:
                return False
            self._set(db, KEY_CANCELLED, "true")
            self._set(db, KEY_MESSAGE, CANCELLED_MESSAGE)
            db.commit()

        logger.info("Generation cancellation requested")
        return True

    def is_cancelled(self) -> bool:
        with self.session_factory() as db:
            return self._get(db, KEY_CANCELLED, "false") == "true"

    def update(
        self,
        status: Optional[str] = None,
        message: Optional[str] = None,
        plan: Optional[Dict[str, Any]] = None,
        results: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Overwrite the given fields of the record in place."""
        with self.session_factory() as db:
            if status is not None:
                self._set(db, KEY_STATUS, status)
            if message is not None:
                self._set(db, KEY_MESSAGE, message)
            if plan is not None:
                self._set(db, KEY_PLAN, json.dumps(plan, default=str))
            if results is not None:
                self._set(db, KEY_RESULTS, json.dumps(results, default=str))
            db.commit()

    def finish(self, status: str, message: str, results: Optional[Dict[str, Any]] = None) -> None:
        """Record the terminal status of the run."""
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"{status} is not a terminal status")
        self.update(status=status, message=message, results=results)

    def force_reset(self) -> None:
        """Unconditionally return to idle, e.g. after a worker crash left the run stuck."""
        with self.session_factory() as db:
            self._set(db, KEY_STATUS, STATUS_IDLE)
            self._set(db, KEY_CANCELLED, "false")
            self._set(db, KEY_MESSAGE, None)
            db.commit()

        logger.warning("Generation status force-reset to idle")

    def snapshot(self) -> Dict[str, Any]:
        """Current record as seen by pollers. Reads are unlocked and may be torn."""
        with self.session_factory() as db:
            rows = db.query(Setting).filter(Setting.key.in_(ALL_KEYS)).all()
            values = {row.key: row.value for row in rows}

        return {
            "status": values.get(KEY_STATUS) or STATUS_IDLE,
            "message": values.get(KEY_MESSAGE),
            "started_at": values.get(KEY_STARTED_AT),
            "plan": _load_json(values.get(KEY_PLAN)),
            "results": _load_json(values.get(KEY_RESULTS)),
            "cancelled": values.get(KEY_CANCELLED) == "true",
        }


class CancellationToken:
    """Threaded through the orchestrator and checked at every city and phase boundary."""

    def __init__(self, store: GenerationRunStore):
        self.store = store

    @property
    def cancelled(self) -> bool:
        return self.store.is_cancelled()

    def check(self, where: str = "") -> None:
        if self.cancelled:
            suffix = f" before {where}" if where else ""
            raise CancellationError(f"Generation cancelled by user{suffix}")
