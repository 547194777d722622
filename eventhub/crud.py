"""Store helpers for events and memberships."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import JoinCodeCollision
from .models import (
    KIND_PUBLIC,
    MEMBER_INACTIVE,
    PHASE_CANCELLED,
    Event,
    EventMember,
)


def get_event(session: Session, event_id: str) -> Event | None:
    if not event_id:
        return None
    return session.get(Event, event_id)


def get_event_by_join_code(session: Session, join_code: str) -> Event | None:
    normalized = (join_code or "").strip()
    if not normalized:
        return None
    stmt = select(Event).where(Event.join_code == normalized)
    return session.scalars(stmt).first()


def join_code_exists(session: Session, join_code: str) -> bool:
    stmt = select(Event.id).where(Event.join_code == join_code).limit(1)
    return session.scalar(stmt) is not None


def get_events_by_ids(session: Session, event_ids: Iterable[str]) -> Sequence[Event]:
    ids = list(event_ids)
    if not ids:
        return []
    return session.scalars(select(Event).where(Event.id.in_(ids))).all()


def _is_join_code_violation(exc: IntegrityError) -> bool:
    raw = str(getattr(exc, "orig", exc)).lower()
    return "join_code" in raw or "uq_events_join_code" in raw


def insert_event(session: Session, **fields: Any) -> Event:
    """Insert a new event row.

    Raises ``JoinCodeCollision`` when the store rejects the join code. The
    insert runs in a savepoint, so other pending work in ``session`` survives
    the collision and the caller can try again.
    """
    event = Event(**fields)
    try:
        with session.begin_nested():
            session.add(event)
    except IntegrityError as exc:
        if _is_join_code_violation(exc):
            raise JoinCodeCollision(fields.get("join_code", "")) from exc
        raise
    return event


def apply_event_changes(session: Session, event: Event, changes: dict[str, Any]) -> Event:
    for key, value in changes.items():
        setattr(event, key, value)
    session.add(event)
    session.flush()
    return event


def update_phase_unless_cancelled(session: Session, event_id: str, phase: str) -> bool:
    """Atomically write ``phase`` unless the stored row is cancelled.

    Returns True when a row was updated.
    """
    stmt = (
        update(Event)
        .where(Event.id == event_id, Event.phase != PHASE_CANCELLED)
        .values(phase=phase)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    return (result.rowcount or 0) > 0


def delete_event_with_members(session: Session, event_id: str) -> bool:
    """Remove an event and every membership pointing at it."""
    session.execute(
        delete(EventMember)
        .where(EventMember.event_id == event_id)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(
        delete(Event)
        .where(Event.id == event_id)
        .execution_options(synchronize_session=False)
    )
    session.expire_all()
    return (result.rowcount or 0) > 0


def get_membership(session: Session, event_id: str, user_id: str) -> EventMember | None:
    stmt = select(EventMember).where(
        EventMember.event_id == event_id, EventMember.user_id == user_id
    )
    return session.scalars(stmt).first()


def add_membership(
    session: Session, *, event_id: str, user_id: str, role: str
) -> EventMember:
    member = EventMember(event_id=event_id, user_id=user_id, role=role)
    session.add(member)
    session.flush()
    return member


def ensure_event_role(
    session: Session, user_id: str | None, event_id: str, roles: Iterable[str]
) -> EventMember | None:
    """Return the caller's active membership if it holds one of ``roles``."""
    normalized = [role.strip().lower() for role in roles if role and role.strip()]
    if not user_id or not normalized:
        return None
    stmt = select(EventMember).where(
        EventMember.event_id == event_id,
        EventMember.user_id == user_id,
        EventMember.role.in_(normalized),
        EventMember.status != MEMBER_INACTIVE,
    )
    return session.scalars(stmt).first()


def list_members(session: Session, event_id: str) -> Sequence[EventMember]:
    stmt = (
        select(EventMember)
        .where(EventMember.event_id == event_id)
        .order_by(EventMember.created_at.asc())
    )
    return session.scalars(stmt).all()


def list_memberships_for_user(session: Session, user_id: str) -> Sequence[EventMember]:
    stmt = (
        select(EventMember)
        .where(EventMember.user_id == user_id)
        .order_by(EventMember.created_at.desc())
    )
    return session.scalars(stmt).all()


def build_pagination(*, page: int, limit: int, total: int) -> dict:
    total_pages = (total + limit - 1) // limit if total else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
    }


def paginate_public_events(
    session: Session,
    *,
    page: int = 1,
    limit: int = 12,
    search: str | None = None,
    phase: str | None = None,
    max_limit: int = 100,
) -> tuple[Sequence[Event], dict]:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 1), 1), max_limit)
    filters = [Event.kind == KIND_PUBLIC]
    term = (search or "").strip()
    if term:
        filters.append(
            or_(Event.name.ilike(f"%{term}%"), Event.description.ilike(f"%{term}%"))
        )
    if phase:
        filters.append(Event.phase == phase)

    count_stmt = select(func.count()).select_from(Event).where(*filters)
    total = session.scalar(count_stmt) or 0
    stmt = (
        select(Event)
        .where(*filters)
        .order_by(Event.start_at.asc(), Event.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    events = session.scalars(stmt).all()
    return events, build_pagination(page=page, limit=limit, total=total)
