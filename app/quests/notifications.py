"""Completion facts and their hand-off to a notification dispatcher.

Delivery is someone else's job: the engine only builds the fact, gates it
through the persistent cooldown table and hands it to a dispatcher. A failing
dispatcher is logged and never affects the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Protocol

from app.db import SessionFactory, run_in_transaction
from app.quests.cooldowns import claim_cooldown
from app.quests.models import Cadence

logger = logging.getLogger(__name__)

DEFAULT_PUSH_COOLDOWN = timedelta(minutes=5)


@dataclass(frozen=True, slots=True)
class CompletionFact:
    relationship_id: str
    quest_template_id: str
    title: str
    cadence: Cadence
    started_at: datetime | None
    completed_at: datetime
    time_to_completion: timedelta
    completed_by_actor_id: str | None = None

    @property
    def fact_key(self) -> str:
        return f"quest.completed:{self.relationship_id}:{self.quest_template_id}"

    def payload(self) -> dict:
        return {
            "kind": "quest.completed",
            "relationship_id": self.relationship_id,
            "quest_template_id": self.quest_template_id,
            "title": self.title,
            "completed_at": self.completed_at.isoformat(),
        }


def time_to_completion(started_at: datetime | None, completed_at: datetime) -> timedelta:
    """completed_at - started_at, never negative; zero when either end is missing."""
    if started_at is None:
        return timedelta(0)
    return max(timedelta(0), completed_at - started_at)


class CompletionDispatcher(Protocol):
    async def send(self, recipient_id: str, fact: CompletionFact) -> None: ...


class LoggingDispatcher:
    """Default dispatcher: records the push intent in the log."""

    async def send(self, recipient_id: str, fact: CompletionFact) -> None:
        logger.info(
            "push.quest_completed",
            extra={
                "recipient_id": recipient_id,
                "relationship_id": fact.relationship_id,
                "quest_template_id": fact.quest_template_id,
            },
        )


async def publish_completion(
    fact: CompletionFact,
    recipient_ids: Iterable[str],
    *,
    dispatcher: CompletionDispatcher,
    session_factory: SessionFactory,
    now: datetime,
    cooldown: timedelta = DEFAULT_PUSH_COOLDOWN,
) -> list[str]:
    """Send ``fact`` to each recipient outside its cooldown. Returns who was sent to.

    Never raises: cooldown or dispatcher failures are logged per recipient.
    """
    delivered: list[str] = []
    for recipient_id in dict.fromkeys(recipient_ids):
        try:
            allowed = await run_in_transaction(
                session_factory,
                lambda session: claim_cooldown(
                    session, fact.fact_key, recipient_id, now=now, window=cooldown
                ),
            )
            if not allowed:
                continue
            await dispatcher.send(recipient_id, fact)
            delivered.append(recipient_id)
        except Exception:
            logger.warning(
                "quest completion push failed",
                exc_info=True,
                extra={"recipient_id": recipient_id, "quest_template_id": fact.quest_template_id},
            )
    return delivered
