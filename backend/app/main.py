"""Game Admin Workflows - FastAPI Application."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine
import logging

from actions.dispatcher import ActionDispatcher
from actions.implementations.core_actions import SessionSqlExecutor
from actions.registry import ActionRegistry
from api.direct_handlers import build_direct_handlers
from api.router import api_router
from app.config import Settings, get_settings
from core.logging_config import setup_logging
from core.middleware import RequestTrackingMiddleware, setup_exception_handlers
from db.database import close_db, create_db_engine, create_session_factory, init_db
from workflow.engine import WorkflowEngine
from workflow.events import EventBus
from workflow.interpreter import EngineLimits
from workflow.store import ExecutionStore
from workflow.strategies import ExecutionStrategy, create_strategy

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    # Startup
    settings = app.state.settings
    setup_logging()
    await init_db(app.state.db_engine)
    logger.info(
        f"{settings.APP_NAME} v{settings.APP_VERSION} started "
        f"({settings.ENVIRONMENT}, {app.state.engine.strategy.mode.value} mode)"
    )
    yield
    # Shutdown
    await app.state.engine.wait_for_background()
    await close_db(app.state.db_engine)
    logger.info("Application shutting down")


def create_app(
    settings: Optional[Settings] = None,
    db_engine: Optional[AsyncEngine] = None,
    strategy: Optional[ExecutionStrategy] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use instead of the environment's
        db_engine: Database engine to use instead of ``DATABASE_URL``
        strategy: Execution strategy for routed actions, built from
            ``EXECUTION_MODE`` when omitted
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Workflow execution engine for the game admin dashboard.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    db_engine = db_engine or create_db_engine(settings.DATABASE_URL)
    session_factory = create_session_factory(db_engine)
    events = EventBus()
    registry = ActionRegistry()

    if strategy is None:
        strategy = create_strategy(
            settings.EXECUTION_MODE,
            base_url=settings.WORKFLOW_BASE_URL,
            handlers=build_direct_handlers(session_factory),
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    app.state.settings = settings
    app.state.db_engine = db_engine
    app.state.session_factory = session_factory
    app.state.events = events
    app.state.registry = registry
    app.state.engine = WorkflowEngine(
        ExecutionStore(session_factory),
        ActionDispatcher(registry),
        strategy,
        events=events,
        sql=SessionSqlExecutor(session_factory),
        limits=EngineLimits.from_settings(settings),
    )

    # Request tracking middleware
    app.add_middleware(RequestTrackingMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    # Global exception handlers
    setup_exception_handlers(app)

    app.include_router(api_router, prefix=settings.API_PREFIX)

    return app


app = create_app()
