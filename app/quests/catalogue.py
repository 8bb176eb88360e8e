"""Static quest catalogue: config only, mirrored into quest_templates on seed.

Each QuestTemplate ties one event type to a recurring calendar window and a
target count. The catalogue is read-only at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import UnknownEventTypeError
from app.quests.models import Cadence, QuestEventType
from app.quests.tables import dialect_insert, quest_templates


@dataclass(frozen=True, slots=True)
class QuestTemplate:
    id: str
    title: str
    cadence: Cadence
    target_count: int
    event_type: QuestEventType

    def __post_init__(self) -> None:
        if self.target_count < 1:
            raise ValueError(f"Quest template {self.id!r} needs a positive target_count")


@dataclass(frozen=True, slots=True)
class QuestCatalogue:
    templates: tuple[QuestTemplate, ...]

    def templates_for_event(self, event_type: QuestEventType) -> list[QuestTemplate]:
        return [t for t in self.templates if t.event_type is event_type]

    def for_cadence(self, cadence: Cadence) -> list[QuestTemplate]:
        return [t for t in self.templates if t.cadence is cadence]

    def get(self, template_id: str) -> QuestTemplate | None:
        for t in self.templates:
            if t.id == template_id:
                return t
        return None

    def list(self) -> list[QuestTemplate]:
        return sorted(self.templates, key=lambda t: t.id)


DEFAULT_CATALOGUE = QuestCatalogue(
    templates=(
        QuestTemplate(
            id="weekly_shared_entries",
            title="Add 4 memories together this week",
            cadence=Cadence.WEEKLY,
            target_count=4,
            event_type=QuestEventType.SCRAPBOOK_ENTRY_CREATED,
        ),
        QuestTemplate(
            id="monthly_shared_entries",
            title="Fill 12 scrapbook pages this month",
            cadence=Cadence.MONTHLY,
            target_count=12,
            event_type=QuestEventType.SCRAPBOOK_ENTRY_CREATED,
        ),
    )
)


def parse_event_type(raw: str | QuestEventType) -> QuestEventType:
    """Map an inbound event name onto the closed enum; unknown names are rejected."""
    if isinstance(raw, QuestEventType):
        return raw
    try:
        return QuestEventType(raw)
    except ValueError:
        raise UnknownEventTypeError(raw) from None


def templates_for_event(event_type: QuestEventType) -> list[QuestTemplate]:
    return DEFAULT_CATALOGUE.templates_for_event(event_type)


def list_templates() -> list[QuestTemplate]:
    return DEFAULT_CATALOGUE.list()


async def seed_templates(session: AsyncSession, catalogue: QuestCatalogue = DEFAULT_CATALOGUE) -> None:
    """Upsert every catalogue template into quest_templates. Caller commits."""
    for t in catalogue.templates:
        stmt = dialect_insert(session)(quest_templates).values(
            id=t.id,
            title=t.title,
            cadence=t.cadence.value,
            target_count=t.target_count,
            event_type=t.event_type.value,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[quest_templates.c.id],
            set_={
                "title": stmt.excluded.title,
                "cadence": stmt.excluded.cadence,
                "target_count": stmt.excluded.target_count,
                "event_type": stmt.excluded.event_type,
            },
        )
        await session.execute(stmt)
