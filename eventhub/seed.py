"""Development helpers for populating fake events and memberships."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from .crud import add_membership
from .database import get_session
from .models import KIND_PRIVATE, KIND_PUBLIC, ROLE_LEAD, ROLE_MEMBER
from .service import EventLifecycleService
from .storage import init_db
from .utils import utcnow

_event_types = [
    "Mixer",
    "Hackathon",
    "Workshop",
    "Orientation",
    "Field Trip",
    "Meet & Greet",
    "Gala Dinner",
    "Panel Discussion",
]


def seed_fake_data(
    *,
    event_count: int = 10,
    max_members_per_event: int = 5,
    public_percentage: int = 50,
) -> dict[str, int]:
    """Populate the SQLite database with synthetic events and members.

    Windows are spread from a week ago to a month ahead, so reads will show a
    mix of scheduled, ongoing and completed phases.
    """
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if max_members_per_event < 0:
        raise ValueError("max_members_per_event must be >= 0")
    if not 0 <= public_percentage <= 100:
        raise ValueError("public_percentage must be between 0 and 100")

    init_db()
    fake = Faker()
    stats = {"events": 0, "members": 0}

    with get_session() as session:
        for _ in range(event_count):
            stats["members"] += _create_event(
                session,
                fake,
                public_percentage=public_percentage,
                max_members=max_members_per_event,
            )
            stats["events"] += 1

    return stats


def _create_event(
    session: Session,
    fake: Faker,
    *,
    public_percentage: int,
    max_members: int,
) -> int:
    start_at = _random_start_time()
    end_at = start_at + timedelta(hours=random.randint(1, 72))
    kind = KIND_PUBLIC if random.randint(1, 100) <= public_percentage else KIND_PRIVATE
    # Backdate creation so windows that already began still pass create-time checks.
    created_at = min(utcnow(), start_at - timedelta(hours=1))
    service = EventLifecycleService(session, clock=lambda: created_at)
    owner_id = fake.uuid4()
    record = service.create(
        owner_id,
        {
            "name": f"{fake.city()} {random.choice(_event_types)}",
            "organizer_name": fake.company(),
            "description": "\n\n".join(fake.paragraphs(nb=2)),
            "start_at": start_at,
            "end_at": end_at,
            "location": fake.address().replace("\n", ", "),
            "images": [fake.image_url()],
            "kind": kind,
        },
    )
    return 1 + _create_members(session, fake, record.id, max_members)


def _random_start_time() -> datetime:
    now = utcnow()
    day_offset = random.randint(-7, 30)
    minute_offset = random.randint(0, 23 * 60)
    return now + timedelta(days=day_offset, minutes=minute_offset)


def _create_members(session: Session, fake: Faker, event_id: str, max_members: int) -> int:
    if max_members <= 0:
        return 0
    total = random.randint(0, max_members)
    for _ in range(total):
        role = ROLE_LEAD if random.random() < 0.2 else ROLE_MEMBER
        add_membership(session, event_id=event_id, user_id=fake.uuid4(), role=role)
    return total
