"""Derive an event's lifecycle phase from its time window."""

from __future__ import annotations

from datetime import datetime

from .models import PHASE_COMPLETED, PHASE_ONGOING, PHASE_SCHEDULED


def derive_phase(
    start_at: datetime | None, end_at: datetime | None, now: datetime
) -> str:
    """Return ``scheduled``, ``ongoing`` or ``completed`` for the window.

    Both bounds are inclusive. A window missing either bound is treated as
    ``scheduled``. ``cancelled`` is never produced here.
    """
    if start_at is None or end_at is None:
        return PHASE_SCHEDULED
    if now > end_at:
        return PHASE_COMPLETED
    if start_at <= now <= end_at:
        return PHASE_ONGOING
    return PHASE_SCHEDULED
