"""Quest HTTP router, a thin host around the engine functions.

Callers are already authenticated and authorised for the relationship; this
router only checks the service API key.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException

from app.auth import require_service_key
from app.config import settings
from app.db import SessionFactory, get_session_factory
from app.quests.catalogue import DEFAULT_CATALOGUE, QuestCatalogue
from app.quests.events import apply_event
from app.quests.models import (
    ApplyEventRequest,
    ApplyEventResponse,
    Cadence,
    CompletedQuest,
    QuestsResponse,
    QuestSummary,
    QuestTemplateOut,
)
from app.quests.notifications import CompletionDispatcher, LoggingDispatcher, publish_completion
from app.quests.periods import utc_now
from app.quests.progress import get_all_progress, get_current_progress

router = APIRouter(
    prefix="/quests",
    tags=["quests"],
    dependencies=[Depends(require_service_key)],
)

_logging_dispatcher = LoggingDispatcher()


def get_catalogue() -> QuestCatalogue:
    return DEFAULT_CATALOGUE


def get_clock() -> Callable[[], datetime]:
    return utc_now


def get_dispatcher() -> CompletionDispatcher:
    return _logging_dispatcher


def _parse_cadence(value: str) -> Cadence:
    try:
        return Cadence(value.upper())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown cadence: {value}")


# ---------------------------------------------------------------------------
# /quests/templates
# ---------------------------------------------------------------------------


@router.get("/templates", response_model=list[QuestTemplateOut])
async def templates_list(
    catalogue: QuestCatalogue = Depends(get_catalogue),
) -> list[QuestTemplateOut]:
    return [
        QuestTemplateOut(
            id=t.id,
            title=t.title,
            cadence=t.cadence,
            target_count=t.target_count,
            event_type=t.event_type,
        )
        for t in catalogue.list()
    ]


# ---------------------------------------------------------------------------
# /quests/{relationship_id}
# ---------------------------------------------------------------------------


@router.get("/{relationship_id}", response_model=QuestsResponse)
async def quests_progress(
    relationship_id: str,
    session_factory: SessionFactory = Depends(get_session_factory),
    catalogue: QuestCatalogue = Depends(get_catalogue),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> QuestsResponse:
    return await get_all_progress(session_factory, relationship_id, catalogue=catalogue, clock=clock)


@router.get("/{relationship_id}/{cadence}", response_model=QuestSummary)
async def quest_progress(
    relationship_id: str,
    cadence: str,
    session_factory: SessionFactory = Depends(get_session_factory),
    catalogue: QuestCatalogue = Depends(get_catalogue),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> QuestSummary:
    return await get_current_progress(
        session_factory,
        relationship_id,
        _parse_cadence(cadence),
        catalogue=catalogue,
        clock=clock,
    )


@router.post("/{relationship_id}/events", response_model=ApplyEventResponse)
async def quest_event(
    relationship_id: str,
    body: ApplyEventRequest,
    session_factory: SessionFactory = Depends(get_session_factory),
    catalogue: QuestCatalogue = Depends(get_catalogue),
    clock: Callable[[], datetime] = Depends(get_clock),
    dispatcher: CompletionDispatcher = Depends(get_dispatcher),
) -> ApplyEventResponse:
    result = await apply_event(
        session_factory,
        relationship_id,
        body.event_type,
        actor_id=body.actor_id,
        occurred_at=body.occurred_at,
        catalogue=catalogue,
        clock=clock,
    )

    if body.notify_user_ids:
        cooldown = timedelta(seconds=settings.push_cooldown_seconds)
        for fact in result.completion_facts:
            await publish_completion(
                fact,
                body.notify_user_ids,
                dispatcher=dispatcher,
                session_factory=session_factory,
                now=clock(),
                cooldown=cooldown,
            )

    return ApplyEventResponse(
        newly_completed=[
            CompletedQuest(quest_template_id=c.quest_template_id, title=c.title)
            for c in result.newly_completed
        ]
    )
