"""Initial eventhub schema."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("organizer_name", sa.String(length=255), nullable=False),
        sa.Column("start_at", sa.DateTime(), nullable=True),
        sa.Column("end_at", sa.DateTime(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("phase", sa.String(length=16), nullable=False),
        sa.Column("join_code", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("join_code", name="uq_events_join_code"),
    )
    op.create_index("ix_events_kind", "events", ["kind"])
    op.create_index("ix_events_phase", "events", ["phase"])
    op.create_index("ix_events_start_at", "events", ["start_at"])

    op.create_table(
        "event_members",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "event_id", "user_id", name="uq_event_members_event_user"
        ),
    )
    op.create_index("ix_event_members_event_id", "event_members", ["event_id"])
    op.create_index("ix_event_members_user_id", "event_members", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_event_members_user_id", table_name="event_members")
    op.drop_index("ix_event_members_event_id", table_name="event_members")
    op.drop_table("event_members")
    op.drop_index("ix_events_start_at", table_name="events")
    op.drop_index("ix_events_phase", table_name="events")
    op.drop_index("ix_events_kind", table_name="events")
    op.drop_table("events")
