import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from app.config import settings
from app.db import SessionFactory, async_session, engine, run_in_transaction
from app.errors import QuestEngineError
from app.observability import setup_logging
from app.quests.catalogue import seed_templates
from app.quests.router import router as quests_router
from app.quests.tables import create_schema

logger = logging.getLogger(__name__)


async def prepare_storage(
    db_engine: AsyncEngine,
    session_factory: SessionFactory,
    *,
    create: bool,
    seed: bool,
) -> None:
    """Create the quest tables and mirror the catalogue into quest_templates.

    Both steps are idempotent. A missing schema surfaces as SchemaMissingError
    and aborts startup.
    """
    if create:
        await create_schema(db_engine)
        logger.info("quest schema created")
    if seed:
        await run_in_transaction(session_factory, seed_templates)
        logger.info("quest templates seeded")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_format)
    await prepare_storage(
        engine,
        async_session,
        create=settings.create_schema_on_startup,
        seed=settings.seed_templates_on_startup,
    )
    yield
    await engine.dispose()


app = FastAPI(title="QuestEngine", version="0.1.0", lifespan=lifespan)
app.include_router(quests_router)


@app.exception_handler(QuestEngineError)
async def quest_engine_error_handler(request: Request, exc: QuestEngineError) -> JSONResponse:
    level = logging.ERROR if exc.http_status >= 500 else logging.WARNING
    logger.log(level, exc.message, extra={"error_code": exc.code, "path": request.url.path})
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


@app.get("/")
async def root() -> dict:
    return {
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
        "quests": {
            "templates": "/quests/templates",
            "progress": "/quests/{relationship_id}",
            "progress_cadence": "/quests/{relationship_id}/{cadence}",
            "events": "/quests/{relationship_id}/events",
        },
    }


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
