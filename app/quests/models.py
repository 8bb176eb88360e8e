"""Quest enums and API contract: Pydantic v2 models."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class Cadence(str, Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class QuestEventType(str, Enum):
    SCRAPBOOK_ENTRY_CREATED = "SCRAPBOOK_ENTRY_CREATED"
    COUPON_CREATED = "COUPON_CREATED"


class QuestTemplateOut(BaseModel):
    id: str
    title: str
    cadence: Cadence
    target_count: int
    event_type: QuestEventType


class QuestSummary(BaseModel):
    """Current-period progress for one quest, ready to render."""

    quest_template_id: str
    title: str
    progress: int
    target: int
    completed: bool
    period_end: date  # inclusive


class QuestsResponse(BaseModel):
    ok: bool = True
    weekly: QuestSummary
    monthly: QuestSummary


class ApplyEventRequest(BaseModel):
    event_type: str
    actor_id: str | None = None
    occurred_at: datetime | None = None
    # Members to notify on completion; membership is resolved by the caller.
    notify_user_ids: list[str] = Field(default_factory=list)


class CompletedQuest(BaseModel):
    quest_template_id: str
    title: str


class ApplyEventResponse(BaseModel):
    ok: bool = True
    newly_completed: list[CompletedQuest] = Field(default_factory=list)
