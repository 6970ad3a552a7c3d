"""RelStore API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map StoreError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - The store is opened (load/seed + reconcile) on startup and persisted on shutdown

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - A snapshot database that is down at startup does not stop the API: the store
      serves from memory and readiness reports the database as unavailable
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relstore.api.error_handlers import register_error_handlers
from relstore.api.routes import analytics, entities, health, transfer
from relstore.config import Settings, get_settings
from relstore.core.errors import PersistenceError
from relstore.db.session import create_db_engine, create_session_factory
from relstore.domains import get_schema
from relstore.infrastructure.anthropic_client import ResilientAnthropicClient
from relstore.infrastructure.observability import setup_logging
from relstore.infrastructure.snapshot_repository import SnapshotRepository, create_tables
from relstore.services.command_facade import CommandFacade

logger = logging.getLogger(__name__)


def build_facade(settings: Settings, session_factory) -> CommandFacade:
    schema = get_schema(settings.domain, settings.cascade_overrides)
    repository = SnapshotRepository(
        session_factory,
        key=settings.snapshot_key,
        domain=schema.name,
        seed=schema.seed if settings.seed_on_first_run else None,
    )
    return CommandFacade(schema, repository)


def build_completer(settings: Settings) -> ResilientAnthropicClient:
    return ResilientAnthropicClient(
        api_key=settings.anthropic_api_key,
        model=settings.anthropic_model,
        max_tokens=settings.anthropic_max_tokens,
        max_retries=settings.anthropic_max_retries,
        base_delay_ms=settings.anthropic_base_delay_ms,
        max_delay_ms=settings.anthropic_max_delay_ms,
        timeout_seconds=settings.anthropic_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    engine = create_db_engine(settings.database_url, echo=settings.database_echo)
    try:
        create_tables(engine)
    except PersistenceError as e:
        logger.warning(f"Snapshot storage unavailable at startup: {e.message}")
    facade = build_facade(settings, create_session_factory(engine))
    facade.open()
    app.state.facade = facade
    app.state.completer = build_completer(settings)
    logger.info(f"RelStore API started (domain={facade.schema.name})")
    yield
    logger.info("RelStore API shutting down")
    facade.close()
    engine.dispose()


app = FastAPI(title="RelStore API", version="1.0.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(entities.router)
app.include_router(analytics.router)
app.include_router(transfer.router)

register_error_handlers(app)
