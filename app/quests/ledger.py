"""Progress ledger: the only writer of quest_progress.

Every mutation is one SQL statement whose new values are a function of the
row's own stored state, so concurrent callers need no locks:

- apply_unit_of_progress: clamped upsert with set-once started/completed stamps
- ensure_placeholder: zero-progress insert that never overwrites a real row
- sweep_expired: marks ended, incomplete periods as expired

None of these commit; the caller owns the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import String, and_, case, func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.quests.periods import Period, as_utc
from app.quests.tables import PROGRESS_IDENTITY, dialect_insert, quest_progress


@dataclass(frozen=True, slots=True)
class ProgressKey:
    relationship_id: str
    quest_template_id: str
    period: Period


@dataclass(frozen=True, slots=True)
class ProgressRecord:
    relationship_id: str
    quest_template_id: str
    period_start: datetime
    period_end: datetime
    progress_count: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    completed_by_actor_id: str | None = None
    expired_at: datetime | None = None

    @property
    def is_started(self) -> bool:
        return self.started_at is not None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def is_expired(self) -> bool:
        return self.expired_at is not None

    @property
    def is_open(self) -> bool:
        return not self.is_completed and not self.is_expired


def _record(row: Mapping[str, Any]) -> ProgressRecord:
    return ProgressRecord(
        relationship_id=row["relationship_id"],
        quest_template_id=row["quest_template_id"],
        period_start=row["period_start"],
        period_end=row["period_end"],
        progress_count=row["progress_count"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        completed_by_actor_id=row["completed_by_actor_id"],
        expired_at=row["expired_at"],
    )


def _identity(key: ProgressKey):
    return and_(
        quest_progress.c.relationship_id == key.relationship_id,
        quest_progress.c.quest_template_id == key.quest_template_id,
        quest_progress.c.period_start == key.period.start,
        quest_progress.c.period_end == key.period.end,
    )


async def fetch_record(session: AsyncSession, key: ProgressKey) -> ProgressRecord | None:
    result = await session.execute(select(quest_progress).where(_identity(key)).limit(1))
    row = result.mappings().first()
    return _record(row) if row is not None else None


async def apply_unit_of_progress(
    session: AsyncSession,
    key: ProgressKey,
    *,
    target_count: int,
    occurred_at: datetime,
    actor_id: str | None = None,
    increment: int = 1,
) -> ProgressRecord:
    """Add ``increment`` to the record for ``key`` and return the stored result.

    Insert path: progress = min(increment, target); started_at = occurred_at;
    completed_at/completed_by are set only when the increment alone reaches
    the target.

    Update path, evaluated by the store against the row's current values:
    progress = min(target, progress + increment); started_at kept if set;
    completed_at and completed_by_actor_id are written together, once, by the
    write that crosses the target. Expired rows are excluded by the
    ``DO UPDATE ... WHERE`` clause and returned unchanged.
    """
    if increment < 1:
        raise ValueError("increment must be at least 1")
    if target_count < 1:
        raise ValueError("target_count must be at least 1")

    occurred_at = as_utc(occurred_at)
    completes_on_insert = increment >= target_count

    stmt = dialect_insert(session)(quest_progress).values(
        relationship_id=key.relationship_id,
        quest_template_id=key.quest_template_id,
        period_start=key.period.start,
        period_end=key.period.end,
        progress_count=min(increment, target_count),
        started_at=occurred_at,
        completed_at=occurred_at if completes_on_insert else None,
        completed_by_actor_id=actor_id if completes_on_insert else None,
        expired_at=None,
    )

    p = quest_progress.c
    accumulated = p.progress_count + increment
    crosses = accumulated >= target_count
    completes_now = and_(p.completed_at.is_(None), crosses)
    # excluded.started_at holds this call's occurred_at.
    this_instant = stmt.excluded.started_at

    stmt = stmt.on_conflict_do_update(
        index_elements=PROGRESS_IDENTITY,
        set_={
            "progress_count": case((crosses, target_count), else_=accumulated),
            "started_at": func.coalesce(p.started_at, this_instant),
            "completed_at": case((completes_now, this_instant), else_=p.completed_at),
            "completed_by_actor_id": case(
                (completes_now, literal(actor_id, String())),
                else_=p.completed_by_actor_id,
            ),
        },
        where=p.expired_at.is_(None),
    ).returning(*quest_progress.c)

    result = await session.execute(stmt)
    row = result.mappings().first()
    if row is not None:
        return _record(row)

    # The conflicting row is expired; leave it as it is.
    existing = await fetch_record(session, key)
    if existing is None:
        raise LookupError(f"quest_progress row vanished for {key}")
    return existing


async def ensure_placeholder(session: AsyncSession, key: ProgressKey) -> None:
    """Insert a zero-progress, never-started row unless one already exists."""
    stmt = dialect_insert(session)(quest_progress).values(
        relationship_id=key.relationship_id,
        quest_template_id=key.quest_template_id,
        period_start=key.period.start,
        period_end=key.period.end,
        progress_count=0,
        started_at=None,
        completed_at=None,
        completed_by_actor_id=None,
        expired_at=None,
    )
    await session.execute(stmt.on_conflict_do_nothing(index_elements=PROGRESS_IDENTITY))


async def sweep_expired(session: AsyncSession, relationship_id: str, as_of: datetime) -> int:
    """Expire every open record of the relationship whose window ended by ``as_of``.

    Returns the number of records expired by this call.
    """
    as_of = as_utc(as_of)
    stmt = (
        update(quest_progress)
        .where(
            quest_progress.c.relationship_id == relationship_id,
            quest_progress.c.completed_at.is_(None),
            quest_progress.c.expired_at.is_(None),
            quest_progress.c.period_end <= as_of,
        )
        .values(expired_at=as_of)
    )
    result = await session.execute(stmt)
    return result.rowcount or 0
