"""Table definitions (SQLAlchemy Core) and dialect helpers.

quest_progress is keyed by its identity tuple
(relationship_id, quest_template_id, period_start, period_end); windows are
computed, never stored elsewhere. Timestamps are always UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    TypeDecorator,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession


class UtcDateTime(TypeDecorator):
    """timestamptz that always binds UTC and always loads an aware UTC datetime.

    SQLite has no timezone support; values are stored as naive UTC text there.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


metadata = MetaData()

quest_templates = Table(
    "quest_templates",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("title", String(200), nullable=False),
    Column("cadence", String(16), nullable=False),
    Column("target_count", Integer, nullable=False),
    Column("event_type", String(64), nullable=False),
)

quest_progress = Table(
    "quest_progress",
    metadata,
    Column("relationship_id", String(64), nullable=False),
    Column(
        "quest_template_id",
        String(64),
        ForeignKey("quest_templates.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("period_start", UtcDateTime(), nullable=False),
    Column("period_end", UtcDateTime(), nullable=False),
    Column("progress_count", Integer, nullable=False, server_default="0"),
    # Null on read-path placeholders; those are not "started".
    Column("started_at", UtcDateTime(), nullable=True),
    Column("completed_at", UtcDateTime(), nullable=True),
    Column("completed_by_actor_id", String(64), nullable=True),
    Column("expired_at", UtcDateTime(), nullable=True),
    PrimaryKeyConstraint(
        "relationship_id",
        "quest_template_id",
        "period_start",
        "period_end",
        name="quest_progress_identity_pk",
    ),
    Index("quest_progress_relationship_id_period_start_idx", "relationship_id", "period_start"),
)

push_cooldowns = Table(
    "push_cooldowns",
    metadata,
    Column("fact_key", String(200), nullable=False),
    Column("recipient_id", String(64), nullable=False),
    Column("last_sent_at", UtcDateTime(), nullable=False),
    PrimaryKeyConstraint("fact_key", "recipient_id", name="push_cooldowns_pk"),
)

PROGRESS_IDENTITY = [
    quest_progress.c.relationship_id,
    quest_progress.c.quest_template_id,
    quest_progress.c.period_start,
    quest_progress.c.period_end,
]


def dialect_insert(session: AsyncSession):
    """``insert`` construct with ON CONFLICT support for the session's dialect."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
