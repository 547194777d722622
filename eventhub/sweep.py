"""Periodic phase sweep and database maintenance."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import and_, or_, select

from .crud import update_phase_unless_cancelled
from .database import engine, get_session
from .models import PHASE_CANCELLED, Event
from .status import derive_phase
from .utils import utcnow

# Use uvicorn's error logger so sweep messages show up with level prefixes.
logger = logging.getLogger("uvicorn.error")

SWEEP_BATCH_SIZE = 200


def run_phase_sweep(*, clock: Callable[[], datetime] = utcnow) -> dict:
    """Bring every stored non-cancelled phase in line with the clock.

    Reads already correct phases lazily; this pass keeps filters on the
    stored column (public listings by phase) from drifting for events nobody
    has opened in a while.
    """
    stats = {"events_checked": 0, "events_updated": 0, "batches": 0}
    now = clock()
    logger.info("Phase sweep started at %s", now.isoformat())

    with get_session() as session:
        last_seen: tuple[datetime | None, str | None] = (None, None)
        while True:
            query = (
                select(Event.id, Event.start_at, Event.end_at, Event.phase, Event.created_at)
                .where(Event.phase != PHASE_CANCELLED)
                .order_by(Event.created_at, Event.id)
            )
            if last_seen[0]:
                query = query.where(
                    or_(
                        Event.created_at > last_seen[0],
                        and_(
                            Event.created_at == last_seen[0],
                            Event.id > (last_seen[1] or ""),
                        ),
                    )
                )
            batch = session.execute(query.limit(SWEEP_BATCH_SIZE)).all()
            if not batch:
                break
            for row in batch:
                stats["events_checked"] += 1
                computed = derive_phase(row.start_at, row.end_at, now)
                if computed == row.phase:
                    continue
                if update_phase_unless_cancelled(session, row.id, computed):
                    logger.debug(
                        "Sweep moved event %s from %s to %s", row.id, row.phase, computed
                    )
                    stats["events_updated"] += 1
            last_seen = (batch[-1].created_at, batch[-1].id)
            stats["batches"] += 1
            session.commit()

    logger.info(
        "Phase sweep finished: checked=%d, updated=%d across %d batches",
        stats["events_checked"],
        stats["events_updated"],
        stats["batches"],
    )
    return stats


def vacuum_database() -> None:
    with engine.connect() as connection:
        connection.execution_options(isolation_level="AUTOCOMMIT").exec_driver_sql(
            "VACUUM"
        )
