"""Persistent push cooldowns keyed by (fact_key, recipient_id)."""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.quests.periods import as_utc
from app.quests.tables import dialect_insert, push_cooldowns


async def claim_cooldown(
    session: AsyncSession,
    fact_key: str,
    recipient_id: str,
    *,
    now: datetime,
    window: timedelta,
) -> bool:
    """Atomically record a send for ``recipient_id`` unless one happened within ``window``.

    Returns True when the caller may send. Caller commits.
    """
    now = as_utc(now)
    stmt = dialect_insert(session)(push_cooldowns).values(
        fact_key=fact_key,
        recipient_id=recipient_id,
        last_sent_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[push_cooldowns.c.fact_key, push_cooldowns.c.recipient_id],
        set_={"last_sent_at": stmt.excluded.last_sent_at},
        where=push_cooldowns.c.last_sent_at <= now - window,
    ).returning(push_cooldowns.c.last_sent_at)
    result = await session.execute(stmt)
    return result.first() is not None
