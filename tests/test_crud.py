from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from eventhub.crud import (
    add_membership,
    apply_event_changes,
    build_pagination,
    delete_event_with_members,
    ensure_event_role,
    get_event_by_join_code,
    insert_event,
    join_code_exists,
    paginate_public_events,
    update_phase_unless_cancelled,
)
from eventhub.errors import JoinCodeCollision
from eventhub.models import Event, EventMember

START = datetime(2026, 6, 1, 9, 0, 0)


def _event(session, code: str, **overrides) -> Event:
    values = {"name": "Film Club", "organizer_name": "Arts Society", "join_code": code}
    values.update(overrides)
    return insert_event(session, **values)


def test_insert_event_applies_defaults(session):
    event = _event(session, "aa11bb")
    session.commit()

    assert event.id
    assert event.kind == "private"
    assert event.phase == "scheduled"
    assert event.images == []
    assert join_code_exists(session, "aa11bb")
    assert not join_code_exists(session, "ffffff")


def test_insert_event_reports_join_code_collision(session):
    _event(session, "aa11bb")
    session.commit()

    with pytest.raises(JoinCodeCollision) as excinfo:
        _event(session, "aa11bb", name="Copycat")

    assert excinfo.value.join_code == "aa11bb"
    assert session.scalar(select(func.count()).select_from(Event)) == 1


def test_insert_event_collision_keeps_pending_rows(session):
    _event(session, "aa11bb")
    session.commit()
    pending = _event(session, "bb22cc")
    add_membership(session, event_id=pending.id, user_id="u1", role="owner")

    with pytest.raises(JoinCodeCollision):
        _event(session, "aa11bb", name="Copycat")
    session.commit()
    session.expire_all()

    assert session.get(Event, pending.id) is not None
    assert session.scalar(select(func.count()).select_from(EventMember)) == 1


def test_get_event_by_join_code_trims_input(session):
    event = _event(session, "cc22dd")
    assert get_event_by_join_code(session, "  cc22dd ").id == event.id
    assert get_event_by_join_code(session, "") is None


def test_update_phase_unless_cancelled(session):
    live = _event(session, "000001")
    cancelled = _event(session, "000002", phase="cancelled")
    session.commit()

    assert update_phase_unless_cancelled(session, live.id, "ongoing") is True
    assert update_phase_unless_cancelled(session, cancelled.id, "completed") is False
    assert update_phase_unless_cancelled(session, "missing", "ongoing") is False
    session.commit()
    session.expire_all()

    assert session.get(Event, live.id).phase == "ongoing"
    assert session.get(Event, cancelled.id).phase == "cancelled"


def test_apply_event_changes_touches_updated_at(session):
    event = _event(session, "000003")
    session.commit()
    before = event.updated_at

    apply_event_changes(session, event, {"location": "Room 101"})

    assert event.location == "Room 101"
    assert event.updated_at >= before


def test_delete_event_with_members(session):
    event = _event(session, "000004")
    keep = _event(session, "000005")
    add_membership(session, event_id=event.id, user_id="u1", role="owner")
    add_membership(session, event_id=event.id, user_id="u2", role="member")
    add_membership(session, event_id=keep.id, user_id="u1", role="owner")
    session.commit()

    assert delete_event_with_members(session, event.id) is True
    assert delete_event_with_members(session, event.id) is False

    remaining = session.scalars(select(EventMember.event_id)).all()
    assert remaining == [keep.id]


def test_ensure_event_role_filters_roles_and_status(session):
    event = _event(session, "000006")
    add_membership(session, event_id=event.id, user_id="owner", role="owner")
    lead = add_membership(session, event_id=event.id, user_id="lead", role="lead")
    gone = add_membership(session, event_id=event.id, user_id="gone", role="owner")
    gone.status = "inactive"
    session.flush()

    assert ensure_event_role(session, "owner", event.id, [" Owner "]).user_id == "owner"
    assert ensure_event_role(session, "lead", event.id, ["owner"]) is None
    assert ensure_event_role(session, "lead", event.id, ["owner", "lead"]) is lead
    assert ensure_event_role(session, "gone", event.id, ["owner"]) is None
    assert ensure_event_role(session, None, event.id, ["owner"]) is None
    assert ensure_event_role(session, "owner", event.id, []) is None


def test_build_pagination():
    assert build_pagination(page=1, limit=10, total=0)["total_pages"] == 0
    assert build_pagination(page=1, limit=10, total=10)["total_pages"] == 1
    assert build_pagination(page=2, limit=10, total=11)["total_pages"] == 2


def test_paginate_public_events(session):
    _event(session, "100000", name="Private Gala")
    for idx in range(5):
        _event(
            session,
            f"20000{idx}",
            name=f"Open Mic {idx}",
            kind="public",
            start_at=START + timedelta(days=5 - idx),
        )
    _event(session, "300000", name="Done", kind="public", phase="completed", start_at=START)
    session.flush()

    events, pagination = paginate_public_events(session, page=1, limit=3, search="open mic")

    assert [e.name for e in events] == ["Open Mic 4", "Open Mic 3", "Open Mic 2"]
    assert pagination == {"page": 1, "limit": 3, "total": 5, "total_pages": 2}

    completed, _ = paginate_public_events(session, phase="completed")
    assert [e.name for e in completed] == ["Done"]


def test_paginate_public_events_clamps_limit(session):
    _, pagination = paginate_public_events(session, page=0, limit=500, max_limit=100)
    assert pagination["page"] == 1
    assert pagination["limit"] == 100
