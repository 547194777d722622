"""Lazy phase reconciliation on the read path.

Reads recompute an event's phase from its time window and return the corrected
value right away. When the stored phase is stale, a write intent is handed to
the background scheduler; the write only lands if the row is still not
cancelled, and a failed write is logged and dropped.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, ContextManager, Iterable, Protocol

from sqlalchemy.orm import Session

from . import database
from .config import settings
from .crud import update_phase_unless_cancelled
from .models import PHASE_CANCELLED
from .records import EventRecord
from .scheduler import get_scheduler
from .status import derive_phase
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")

SessionScope = Callable[[], ContextManager[Session]]


@dataclass(frozen=True)
class PhaseWrite:
    """Intent to store ``phase`` for ``event_id`` unless it was cancelled."""

    event_id: str
    phase: str


class PhaseWriter(Protocol):
    def submit(self, intent: PhaseWrite) -> bool: ...


def persist_phase_write(intent: PhaseWrite, *, session_scope: SessionScope | None = None) -> bool:
    """Apply a phase write, dropping it on any failure.

    Returns True if the row was updated. Never raises: the read that produced
    the intent has already answered with the correct phase.
    """
    scope = session_scope or database.get_session
    try:
        with scope() as session:
            applied = update_phase_unless_cancelled(
                session, intent.event_id, intent.phase
            )
    except Exception:
        logger.exception(
            "Dropped background phase write for event %s (%s)",
            intent.event_id,
            intent.phase,
        )
        return False
    if applied:
        logger.debug("Persisted phase %s for event %s", intent.phase, intent.event_id)
    else:
        logger.info(
            "Skipped phase write for event %s: cancelled or removed meanwhile",
            intent.event_id,
        )
    return applied


class ScheduledPhaseWriter:
    """Bounded hand-off of phase writes to the background scheduler.

    At most one job per event is queued at a time; a newer intent for an
    event that is still waiting replaces the older one, so the job writes the
    latest phase. No more than ``max_pending`` events are queued overall;
    anything beyond that is dropped and left for the periodic sweep.
    """

    def __init__(
        self,
        *,
        max_pending: int | None = None,
        scheduler_getter=get_scheduler,
        persist: Callable[[PhaseWrite], bool] = persist_phase_write,
    ) -> None:
        self._max_pending = max_pending
        self._scheduler_getter = scheduler_getter
        self._persist = persist
        self._pending: dict[str, PhaseWrite] = {}
        self._lock = threading.Lock()

    @property
    def max_pending(self) -> int:
        return self._max_pending or settings.phase_write_max_pending

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def submit(self, intent: PhaseWrite) -> bool:
        scheduler = self._scheduler_getter()
        if scheduler is None or not scheduler.running:
            logger.debug(
                "Scheduler not running; phase write for event %s left to the sweep",
                intent.event_id,
            )
            return False
        with self._lock:
            if intent.event_id in self._pending:
                self._pending[intent.event_id] = intent
                return True
            if len(self._pending) >= self.max_pending:
                logger.warning(
                    "Phase write queue full (%d pending); dropping write for event %s",
                    len(self._pending),
                    intent.event_id,
                )
                return False
            self._pending[intent.event_id] = intent
        try:
            scheduler.add_job(
                self._run, args=[intent.event_id], misfire_grace_time=None
            )
        except Exception:
            self._release(intent.event_id)
            logger.exception(
                "Could not schedule phase write for event %s", intent.event_id
            )
            return False
        return True

    def _run(self, event_id: str) -> None:
        intent = self._release(event_id)
        if intent is not None:
            self._persist(intent)

    def _release(self, event_id: str) -> PhaseWrite | None:
        with self._lock:
            return self._pending.pop(event_id, None)


phase_writer = ScheduledPhaseWriter()


class LifecycleReconciler:
    def __init__(
        self,
        writer: PhaseWriter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.writer = writer if writer is not None else phase_writer
        self.clock = clock

    def reconcile(self, record: EventRecord, *, persist: bool = True) -> EventRecord:
        """Return ``record`` with its phase matching the current time.

        Cancelled records come back untouched. With ``persist`` a stale stored
        phase is queued for a background write; the caller never waits on it.
        """
        if record.phase == PHASE_CANCELLED:
            return record
        computed = derive_phase(record.start_at, record.end_at, self.clock())
        if computed == record.phase:
            return record
        if persist:
            self._enqueue(PhaseWrite(event_id=record.id, phase=computed))
        return replace(record, phase=computed)

    def reconcile_many(
        self, records: Iterable[EventRecord], *, persist: bool = True
    ) -> list[EventRecord]:
        return [self.reconcile(record, persist=persist) for record in records]

    def _enqueue(self, intent: PhaseWrite) -> None:
        try:
            self.writer.submit(intent)
        except Exception:
            logger.exception("Phase write hand-off failed for event %s", intent.event_id)
