"""Tests for startup storage preparation and unseeded deployments."""

from __future__ import annotations

import logging

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.errors import CatalogueMisconfiguredError, SchemaMissingError
from app.main import prepare_storage
from app.quests.events import apply_event
from app.quests.models import QuestEventType
from app.quests.tables import quest_templates
from tests.conftest import sqlite_engine, utc

EVENT = QuestEventType.SCRAPBOOK_ENTRY_CREATED


async def _template_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(quest_templates))).scalar_one()


class TestUnseededTemplates:
    @pytest.mark.asyncio
    async def test_event_reports_missing_templates(self, unseeded_factory):
        with pytest.raises(CatalogueMisconfiguredError) as exc_info:
            await apply_event(unseeded_factory, "rel-1", EVENT, "a", utc(2025, 3, 4, 9))
        assert exc_info.value.http_status == 500
        assert exc_info.value.code == "QUEST_TEMPLATES_MISSING"

    @pytest.mark.asyncio
    async def test_failed_template_logged_once_as_warning(self, unseeded_factory, caplog):
        caplog.set_level(logging.WARNING, logger="app.quests.events")
        with pytest.raises(CatalogueMisconfiguredError):
            await apply_event(unseeded_factory, "rel-1", EVENT, "a", utc(2025, 3, 4, 9))
        records = [r for r in caplog.records if r.name == "app.quests.events"]
        assert {r.quest_template_id for r in records} == {"weekly_shared_entries", "monthly_shared_entries"}
        assert all(r.levelno == logging.WARNING and r.exc_info is None for r in records)

    @pytest.mark.asyncio
    async def test_seeding_repairs_the_deployment(self, db_engine, unseeded_factory):
        await prepare_storage(db_engine, unseeded_factory, create=False, seed=True)
        result = await apply_event(unseeded_factory, "rel-1", EVENT, "a", utc(2025, 3, 4, 9))
        assert result.newly_completed == []


class TestPrepareStorage:
    @pytest.mark.asyncio
    async def test_fresh_database(self, tmp_path):
        engine = sqlite_engine(tmp_path / "fresh.db")
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        try:
            await prepare_storage(engine, factory, create=True, seed=True)
            await prepare_storage(engine, factory, create=True, seed=True)
            assert await _template_count(factory) == 2
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_seed_without_schema(self, tmp_path):
        engine = sqlite_engine(tmp_path / "empty.db")
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        try:
            with pytest.raises(SchemaMissingError):
                await prepare_storage(engine, factory, create=False, seed=True)
        finally:
            await engine.dispose()
