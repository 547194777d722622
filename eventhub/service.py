"""Event lifecycle orchestration: create, update, cancel, publish, join, delete."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import settings
from .crud import (
    add_membership,
    apply_event_changes,
    delete_event_with_members,
    ensure_event_role,
    get_event,
    get_event_by_join_code,
    get_events_by_ids,
    get_membership,
    insert_event,
    list_members,
    list_memberships_for_user,
    paginate_public_events,
)
from .errors import EventClosed, Forbidden, MissingFieldsError, NotFound, ValidationError
from .join_codes import issue_join_code
from .models import (
    EVENT_KINDS,
    EVENT_PHASES,
    KIND_PRIVATE,
    KIND_PUBLIC,
    MEMBER_ROLES,
    PHASE_CANCELLED,
    PHASE_COMPLETED,
    ROLE_LEAD,
    ROLE_MEMBER,
    ROLE_OWNER,
    Event,
    EventMember,
)
from .reconcile import LifecycleReconciler
from .records import EventRecord
from .status import derive_phase
from .utils import clean_images, is_blank, parse_datetime, utcnow
from .visibility import can_publish

logger = logging.getLogger("uvicorn.error")

EDIT_ROLES = (ROLE_OWNER,)
IMAGE_ROLES = (ROLE_OWNER, ROLE_LEAD)
UPDATABLE_FIELDS = (
    "name",
    "description",
    "organizer_name",
    "start_at",
    "end_at",
    "location",
    "images",
    "kind",
    "phase",
)


def _parse_date_field(name: str, raw: Any) -> datetime | None:
    try:
        return parse_datetime(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(name, "must be an ISO8601 datetime") from exc


def _require_text(name: str, raw: Any) -> str:
    if not isinstance(raw, str) or is_blank(raw):
        raise ValidationError(name, "is required")
    return raw.strip()


def _check_kind(raw: Any) -> str:
    if raw not in EVENT_KINDS:
        raise ValidationError("kind", f"must be one of {sorted(EVENT_KINDS)}")
    return raw


def _check_window(start_at: datetime | None, end_at: datetime | None) -> None:
    if start_at is not None and end_at is not None and end_at < start_at:
        raise ValidationError("end_at", "must not be before start_at")


def _require_role(caller_role: str | None, allowed: Iterable[str]) -> None:
    if caller_role not in allowed:
        raise Forbidden("Insufficient permissions")


def _guard_public(candidate: Mapping[str, Any]) -> None:
    check = can_publish(candidate)
    if not check.ok:
        raise MissingFieldsError(check.missing)


def _candidate_fields(event: Event) -> dict[str, Any]:
    return {
        "name": event.name,
        "description": event.description,
        "organizer_name": event.organizer_name,
        "start_at": event.start_at,
        "end_at": event.end_at,
        "location": event.location,
        "images": list(event.images or []),
        "kind": event.kind,
        "phase": event.phase,
    }


class EventLifecycleService:
    """Composes phase derivation, reconciliation, join codes and the publish gate.

    Authorization is decided upstream: mutating calls receive the caller's
    role as already looked up from the membership store and only compare it
    against the roles the operation allows.
    """

    def __init__(
        self,
        session: Session,
        *,
        reconciler: LifecycleReconciler | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.clock = clock
        self.reconciler = reconciler or LifecycleReconciler(clock=clock)

    # -------- reads --------

    def _load(self, event_id: str) -> Event:
        event = get_event(self.session, event_id)
        if event is None:
            raise NotFound("Event not found")
        return event

    def _view(self, event: Event) -> EventRecord:
        return self.reconciler.reconcile(EventRecord.from_model(event))

    def get_one(self, event_id: str) -> EventRecord:
        return self._view(self._load(event_id))

    def get_public(self, event_id: str) -> EventRecord:
        event = get_event(self.session, event_id)
        if event is None or event.kind != KIND_PUBLIC:
            raise NotFound("Event not found")
        return self._view(event)

    def _require_member(self, event_id: str, user_id: str | None) -> None:
        if ensure_event_role(self.session, user_id, event_id, MEMBER_ROLES) is None:
            raise Forbidden("Access denied. You are not a member of this event.")

    def get_for_member(self, event_id: str, user_id: str | None) -> EventRecord:
        record = self.get_one(event_id)
        self._require_member(event_id, user_id)
        return record

    def get_visible(self, event_id: str, user_id: str | None) -> EventRecord:
        """Public events for anyone, private events for their members only."""
        record = self.get_one(event_id)
        if record.kind != KIND_PUBLIC:
            self._require_member(event_id, user_id)
        return record

    def list_public(
        self,
        *,
        page: int = 1,
        limit: int | None = None,
        search: str | None = None,
        phase: str | None = None,
    ) -> tuple[list[EventRecord], dict]:
        if phase and phase not in EVENT_PHASES:
            raise ValidationError("phase", f"must be one of {sorted(EVENT_PHASES)}")
        events, pagination = paginate_public_events(
            self.session,
            page=page,
            limit=limit or settings.events_per_page,
            search=search,
            phase=phase,
            max_limit=settings.max_events_per_page,
        )
        records = self.reconciler.reconcile_many(
            EventRecord.from_model(event) for event in events
        )
        return records, pagination

    def list_for_user(self, user_id: str) -> list[tuple[EventRecord, EventMember]]:
        memberships = list_memberships_for_user(self.session, user_id)
        events = {
            event.id: event
            for event in get_events_by_ids(self.session, (m.event_id for m in memberships))
        }
        return [
            (self._view(events[membership.event_id]), membership)
            for membership in memberships
            if membership.event_id in events
        ]

    def summary(self, event_id: str) -> tuple[EventRecord, Sequence[EventMember]]:
        record = self.get_one(event_id)
        return record, list_members(self.session, event_id)

    # -------- writes --------

    def create(self, creator_id: str, fields: Mapping[str, Any]) -> EventRecord:
        """Create an event, issue its join code and make the creator its owner."""
        if is_blank(creator_id):
            raise ValidationError("user_id", "is required")
        name = _require_text("name", fields.get("name"))
        organizer_name = _require_text("organizer_name", fields.get("organizer_name"))
        kind = _check_kind(fields.get("kind") or KIND_PRIVATE)
        start_at = _parse_date_field("start_at", fields.get("start_at"))
        end_at = _parse_date_field("end_at", fields.get("end_at"))
        _check_window(start_at, end_at)

        now = self.clock()
        for label, value in (("start_at", start_at), ("end_at", end_at)):
            if value is not None and value < now:
                raise ValidationError(label, "must not be in the past")

        values = {
            "name": name,
            "description": fields.get("description") or "",
            "organizer_name": organizer_name,
            "start_at": start_at,
            "end_at": end_at,
            "location": fields.get("location") or "",
            "images": clean_images(fields.get("images")),
            "kind": kind,
            "phase": derive_phase(start_at, end_at, now),
        }
        if kind == KIND_PUBLIC:
            _guard_public(values)

        event = issue_join_code(
            self.session,
            lambda code: insert_event(self.session, join_code=code, **values),
        )
        add_membership(
            self.session, event_id=event.id, user_id=creator_id, role=ROLE_OWNER
        )
        logger.info("Created event %s (%s) for owner %s", event.id, event.name, creator_id)
        return EventRecord.from_model(event)

    def update(
        self, event_id: str, patch: Mapping[str, Any], *, caller_role: str | None
    ) -> EventRecord:
        """Merge ``patch`` into the event and return its reconciled view.

        An explicit ``phase="cancelled"`` wins over everything else in the
        patch and forces the event private. Otherwise a non-cancelled event
        gets its phase re-derived from the merged window. An event that is
        or becomes public must keep every public-required field. Nothing is
        written when validation or the publish gate fails.
        """
        _require_role(caller_role, EDIT_ROLES)
        event = self._load(event_id)

        changes: dict[str, Any] = {}
        for key in UPDATABLE_FIELDS:
            if key not in patch:
                continue
            raw = patch[key]
            if key in ("name", "organizer_name"):
                changes[key] = _require_text(key, raw)
            elif key in ("start_at", "end_at"):
                # An empty date keeps the stored one.
                parsed = _parse_date_field(key, raw)
                if parsed is not None:
                    changes[key] = parsed
            elif key == "images":
                changes[key] = clean_images(raw)
            elif key == "kind":
                changes[key] = _check_kind(raw)
            elif key == "phase":
                if raw not in EVENT_PHASES:
                    raise ValidationError("phase", f"must be one of {sorted(EVENT_PHASES)}")
            else:
                changes[key] = raw

        start_at = changes.get("start_at", event.start_at)
        end_at = changes.get("end_at", event.end_at)
        _check_window(start_at, end_at)

        if patch.get("phase") == PHASE_CANCELLED:
            changes["phase"] = PHASE_CANCELLED
            changes["kind"] = KIND_PRIVATE
        elif event.phase != PHASE_CANCELLED:
            changes["phase"] = derive_phase(start_at, end_at, self.clock())

        if changes.get("kind", event.kind) == KIND_PUBLIC:
            _guard_public({**_candidate_fields(event), **changes})

        apply_event_changes(self.session, event, changes)
        if changes.get("phase") == PHASE_CANCELLED:
            logger.info("Cancelled event %s", event.id)
        return self._view(event)

    def cancel(self, event_id: str, *, caller_role: str | None) -> EventRecord:
        return self.update(event_id, {"phase": PHASE_CANCELLED}, caller_role=caller_role)

    def delete(self, event_id: str, *, caller_role: str | None) -> None:
        _require_role(caller_role, EDIT_ROLES)
        self._load(event_id)
        delete_event_with_members(self.session, event_id)
        logger.info("Deleted event %s and its memberships", event_id)

    def join(self, code: str, user_id: str) -> dict:
        """Attach ``user_id`` to the event holding ``code`` as a member.

        Joining twice is not an error and leaves a single membership.
        """
        if is_blank(code):
            raise ValidationError("code", "is required")
        if is_blank(user_id):
            raise ValidationError("user_id", "is required")
        event = get_event_by_join_code(self.session, code)
        if event is None:
            raise NotFound("Invalid code")
        if event.phase == PHASE_CANCELLED:
            raise EventClosed(PHASE_CANCELLED)
        current = self.reconciler.reconcile(EventRecord.from_model(event), persist=False)
        if current.phase == PHASE_COMPLETED:
            raise EventClosed(PHASE_COMPLETED)

        event_id = event.id
        if get_membership(self.session, event_id, user_id) is None:
            try:
                with self.session.begin_nested():
                    add_membership(
                        self.session, event_id=event_id, user_id=user_id, role=ROLE_MEMBER
                    )
            except IntegrityError:
                # A concurrent join for the same user won the insert.
                if get_membership(self.session, event_id, user_id) is None:
                    raise
        return {"event_id": event_id}

    # -------- images --------

    def _write_images(self, event: Event, images: list[str]) -> list[str]:
        if event.kind == KIND_PUBLIC:
            _guard_public({**_candidate_fields(event), "images": images})
        apply_event_changes(self.session, event, {"images": images})
        return list(event.images)

    def replace_images(
        self, event_id: str, images: Any, *, caller_role: str | None
    ) -> list[str]:
        if not isinstance(images, list):
            raise ValidationError("images", "must be a list of image references")
        _require_role(caller_role, IMAGE_ROLES)
        event = self._load(event_id)
        return self._write_images(event, clean_images(images))

    def add_images(
        self, event_id: str, images: Any, *, caller_role: str | None
    ) -> list[str]:
        if not isinstance(images, list) or not images:
            raise ValidationError("images", "is required")
        _require_role(caller_role, IMAGE_ROLES)
        event = self._load(event_id)
        return self._write_images(event, list(event.images or []) + clean_images(images))

    def remove_images(
        self, event_id: str, indexes: Any, *, caller_role: str | None
    ) -> list[str]:
        if not isinstance(indexes, list) or not all(isinstance(i, int) for i in indexes):
            raise ValidationError("indexes", "must be a list of integers")
        _require_role(caller_role, IMAGE_ROLES)
        event = self._load(event_id)
        drop = set(indexes)
        keep = [img for idx, img in enumerate(event.images or []) if idx not in drop]
        return self._write_images(event, keep)
