"""Async engine, session factory and the retrying transaction runner."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings
from app.errors import (
    CatalogueMisconfiguredError,
    SchemaMissingError,
    StorageConflictError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionFactory = async_sessionmaker[AsyncSession]

engine = create_async_engine(settings.database_url, pool_pre_ping=True)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})
UNDEFINED_TABLE = "42P01"
# quest_progress.quest_template_id has no matching quest_templates row
FOREIGN_KEY_VIOLATION = "23503"


def get_session_factory() -> SessionFactory:
    """FastAPI dependency; overridden in tests."""
    return async_session


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if isinstance(code, str):
            return code
    cause = getattr(orig, "__cause__", None)
    code = getattr(cause, "sqlstate", None)
    return code if isinstance(code, str) else None


def is_retryable(exc: DBAPIError) -> bool:
    """True for write conflicts that are safe to retry verbatim."""
    if _sqlstate(exc) in RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(exc.orig)


def translate_db_error(exc: SQLAlchemyError) -> Exception:
    if isinstance(exc, DBAPIError):
        if _sqlstate(exc) == UNDEFINED_TABLE or "no such table" in str(exc.orig):
            return SchemaMissingError()
        if _sqlstate(exc) == FOREIGN_KEY_VIOLATION or "FOREIGN KEY constraint failed" in str(exc.orig):
            return CatalogueMisconfiguredError(
                "Quest templates are not seeded in quest_templates "
                "(set SEED_TEMPLATES_ON_STARTUP=true)"
            )
        if exc.connection_invalidated:
            return StorageUnavailableError("Lost connection to quest storage")
    return StorageUnavailableError()


async def run_in_transaction(
    session_factory: SessionFactory,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: int | None = None,
    delay_ms: int | None = None,
) -> T:
    """Run ``work`` in a fresh session and commit it.

    Retryable conflicts roll back and re-run ``work`` unchanged, which is safe
    because every ledger write is a pure function of the row's stored state.
    Any other database error is translated and raised without a retry.
    """
    max_attempts = max(1, attempts if attempts is not None else settings.quest_write_max_attempts)
    base_delay = (delay_ms if delay_ms is not None else settings.quest_write_retry_delay_ms) / 1000

    for attempt in range(1, max_attempts + 1):
        async with session_factory() as session:
            try:
                result = await work(session)
                await session.commit()
                return result
            except DBAPIError as e:
                await session.rollback()
                if not is_retryable(e):
                    logger.warning("quest storage error: %s", e.orig)
                    raise translate_db_error(e) from e
                logger.warning("quest write conflict, retrying", extra={"attempt": attempt})
            except SQLAlchemyError as e:
                await session.rollback()
                logger.warning("quest storage error: %s", e)
                raise translate_db_error(e) from e
        if attempt < max_attempts:
            await asyncio.sleep(base_delay * attempt)

    raise StorageConflictError(max_attempts)
