"""Event applicator: turns one domain event into quest progress.

For every template triggered by the event type, independently and in its own
transaction: compute the period, skip it if already expired, apply one unit of
progress, and compare before/after to detect the started and completed
transitions. Completion is reported once, by the write that caused it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.db import SessionFactory, run_in_transaction
from app.quests import ledger
from app.quests.catalogue import DEFAULT_CATALOGUE, QuestCatalogue, QuestTemplate, parse_event_type
from app.quests.ledger import ProgressKey, ProgressRecord
from app.quests.models import QuestEventType
from app.quests.notifications import CompletionFact, time_to_completion
from app.quests.periods import as_utc, period_for, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NewlyCompleted:
    quest_template_id: str
    title: str


@dataclass(slots=True)
class ApplyEventResult:
    newly_completed: list[NewlyCompleted] = field(default_factory=list)
    completion_facts: list[CompletionFact] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class _Outcome:
    before: ProgressRecord | None
    after: ProgressRecord | None  # None when the period was already expired


def _completed_by_this_write(
    before: ProgressRecord | None,
    after: ProgressRecord,
    occurred_at: datetime,
    actor_id: str | None,
) -> bool:
    if before is not None and before.is_completed:
        return False
    if not after.is_completed:
        return False
    # A racing caller may have crossed the threshold first; its stamp wins.
    return after.completed_at == occurred_at and after.completed_by_actor_id == actor_id


async def _apply_template(
    session_factory: SessionFactory,
    template: QuestTemplate,
    relationship_id: str,
    actor_id: str | None,
    occurred_at: datetime,
) -> _Outcome:
    key = ProgressKey(relationship_id, template.id, period_for(template.cadence, occurred_at))

    async def work(session: AsyncSession) -> _Outcome:
        before = await ledger.fetch_record(session, key)
        if before is not None and before.is_expired:
            return _Outcome(before, None)
        after = await ledger.apply_unit_of_progress(
            session,
            key,
            target_count=template.target_count,
            occurred_at=occurred_at,
            actor_id=actor_id,
        )
        return _Outcome(before, after)

    return await run_in_transaction(session_factory, work)


def _report(
    template: QuestTemplate,
    relationship_id: str,
    actor_id: str | None,
    occurred_at: datetime,
    outcome: _Outcome,
    result: ApplyEventResult,
) -> None:
    before, after = outcome.before, outcome.after
    log_ctx = {
        "relationship_id": relationship_id,
        "quest_template_id": template.id,
        "cadence": template.cadence.value,
        "actor_id": actor_id,
    }
    if after is None or after.is_expired:
        logger.debug("quest period already expired, event ignored", extra=log_ctx)
        return

    if (before is None or not before.is_started) and after.is_started:
        logger.info(
            "analytics.quest.started",
            extra={**log_ctx, "started_at": after.started_at.isoformat()},
        )

    if not _completed_by_this_write(before, after, occurred_at, actor_id):
        return

    elapsed = time_to_completion(after.started_at, after.completed_at)
    fact = CompletionFact(
        relationship_id=relationship_id,
        quest_template_id=template.id,
        title=template.title,
        cadence=template.cadence,
        started_at=after.started_at,
        completed_at=after.completed_at,
        time_to_completion=elapsed,
        completed_by_actor_id=after.completed_by_actor_id,
    )
    result.newly_completed.append(NewlyCompleted(template.id, template.title))
    result.completion_facts.append(fact)
    logger.info(
        "analytics.quest.completed",
        extra={
            **log_ctx,
            "started_at": after.started_at.isoformat() if after.started_at else None,
            "completed_at": after.completed_at.isoformat(),
            "completed_by_actor_id": after.completed_by_actor_id,
            "time_to_completion_ms": int(elapsed.total_seconds() * 1000),
        },
    )


async def apply_event(
    session_factory: SessionFactory,
    relationship_id: str,
    event_type: QuestEventType | str,
    actor_id: str | None = None,
    occurred_at: datetime | None = None,
    *,
    catalogue: QuestCatalogue = DEFAULT_CATALOGUE,
    clock: Callable[[], datetime] = utc_now,
) -> ApplyEventResult:
    """Apply one qualifying event to every quest it triggers.

    Unknown event types raise UnknownEventTypeError; an event type with no
    templates is a no-op. Templates are applied concurrently, each in its own
    transaction, so one failing template never undoes another. If any failed,
    the first error is raised once all of them have finished.
    """
    event = parse_event_type(event_type)
    result = ApplyEventResult()
    templates = catalogue.templates_for_event(event)
    if not templates:
        return result

    when = as_utc(occurred_at) if occurred_at is not None else as_utc(clock())

    outcomes = await asyncio.gather(
        *(
            _apply_template(session_factory, t, relationship_id, actor_id, when)
            for t in templates
        ),
        return_exceptions=True,
    )

    first_error: BaseException | None = None
    for template, outcome in zip(templates, outcomes):
        if isinstance(outcome, BaseException):
            logger.warning(
                "quest progress update failed: %s",
                outcome,
                extra={"relationship_id": relationship_id, "quest_template_id": template.id},
            )
            first_error = first_error or outcome
            continue
        _report(template, relationship_id, actor_id, when, outcome, result)

    if first_error is not None:
        raise first_error
    return result
