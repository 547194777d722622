"""Detached read views of stored events."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime

from .models import Event


@dataclass(frozen=True)
class EventRecord:
    """Immutable snapshot of an event row.

    Reads hand these out instead of ORM instances so that correcting the
    phase for a response never dirties the session.
    """

    id: str
    name: str
    kind: str
    phase: str
    join_code: str
    description: str | None = None
    organizer_name: str | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    location: str | None = None
    images: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, event: Event) -> EventRecord:
        return cls(
            id=event.id,
            name=event.name,
            kind=event.kind,
            phase=event.phase,
            join_code=event.join_code,
            description=event.description,
            organizer_name=event.organizer_name,
            start_at=event.start_at,
            end_at=event.end_at,
            location=event.location,
            images=list(event.images or []),
            created_at=event.created_at,
            updated_at=event.updated_at,
        )

    def as_dict(self, *, include_join_code: bool = False) -> dict:
        payload = asdict(self)
        for key in ("start_at", "end_at", "created_at", "updated_at"):
            value = payload[key]
            payload[key] = value.isoformat() if value else None
        if not include_join_code:
            payload.pop("join_code")
        return payload
