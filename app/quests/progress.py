"""Read path: what is our progress right now.

Sweeps ended periods, makes sure the current period has a row (a zero-progress
placeholder if no event arrived yet) and reads it. Progress is never
recomputed from events here.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.db import SessionFactory, run_in_transaction
from app.errors import CatalogueMisconfiguredError
from app.quests import ledger
from app.quests.catalogue import DEFAULT_CATALOGUE, QuestCatalogue, QuestTemplate
from app.quests.ledger import ProgressKey
from app.quests.models import Cadence, QuestsResponse, QuestSummary
from app.quests.periods import as_utc, period_for, utc_now

logger = logging.getLogger(__name__)


def _template_for(catalogue: QuestCatalogue, cadence: Cadence) -> QuestTemplate:
    templates = catalogue.for_cadence(cadence)
    if not templates:
        raise CatalogueMisconfiguredError(f"Missing {cadence.value.lower()} quest template")
    return sorted(templates, key=lambda t: t.id)[0]


async def _sweep(session: AsyncSession, relationship_id: str, now: datetime) -> None:
    expired = await ledger.sweep_expired(session, relationship_id, now)
    if expired:
        logger.info(
            "quest periods expired",
            extra={"relationship_id": relationship_id, "expired_count": expired},
        )


async def _summary(
    session: AsyncSession,
    relationship_id: str,
    template: QuestTemplate,
    now: datetime,
) -> QuestSummary:
    period = period_for(template.cadence, now)
    key = ProgressKey(relationship_id, template.id, period)
    await ledger.ensure_placeholder(session, key)
    record = await ledger.fetch_record(session, key)

    progress = record.progress_count if record is not None else 0
    return QuestSummary(
        quest_template_id=template.id,
        title=template.title,
        progress=min(max(progress, 0), template.target_count),
        target=template.target_count,
        completed=record is not None and record.is_completed,
        period_end=period.inclusive_end,
    )


async def get_current_progress(
    session_factory: SessionFactory,
    relationship_id: str,
    cadence: Cadence,
    *,
    catalogue: QuestCatalogue = DEFAULT_CATALOGUE,
    clock: Callable[[], datetime] = utc_now,
) -> QuestSummary:
    template = _template_for(catalogue, cadence)
    now = as_utc(clock())

    async def work(session: AsyncSession) -> QuestSummary:
        await _sweep(session, relationship_id, now)
        return await _summary(session, relationship_id, template, now)

    return await run_in_transaction(session_factory, work)


async def get_all_progress(
    session_factory: SessionFactory,
    relationship_id: str,
    *,
    catalogue: QuestCatalogue = DEFAULT_CATALOGUE,
    clock: Callable[[], datetime] = utc_now,
) -> QuestsResponse:
    """Weekly and monthly summaries in one transaction."""
    weekly_template = _template_for(catalogue, Cadence.WEEKLY)
    monthly_template = _template_for(catalogue, Cadence.MONTHLY)
    now = as_utc(clock())

    async def work(session: AsyncSession) -> QuestsResponse:
        await _sweep(session, relationship_id, now)
        weekly = await _summary(session, relationship_id, weekly_template, now)
        monthly = await _summary(session, relationship_id, monthly_template, now)
        return QuestsResponse(weekly=weekly, monthly=monthly)

    return await run_in_transaction(session_factory, work)
