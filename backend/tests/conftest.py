"""Shared pytest fixtures for the workflow engine test suite.

Provides:
- In-memory async SQLite database per test
- Session factory and execution store
- Event bus, action registry and dispatcher
- A fake game API served through the Direct strategy
- A workflow engine wired to all of the above
- FastAPI test client (httpx.AsyncClient)
"""

import itertools
import os
from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")

from actions.dispatcher import ActionDispatcher  # noqa: E402
from actions.implementations.core_actions import SessionSqlExecutor  # noqa: E402
from actions.registry import ActionRegistry  # noqa: E402
from api.direct_handlers import build_direct_handlers  # noqa: E402
from db.base import Base  # noqa: E402
from db.database import create_session_factory  # noqa: E402
from services.workflow_service import WorkflowService  # noqa: E402
from workflow.engine import WorkflowEngine  # noqa: E402
from workflow.events import EventBus  # noqa: E402
from workflow.interpreter import EngineLimits  # noqa: E402
from workflow.store import ExecutionStore  # noqa: E402
from workflow.strategies import DirectRequest, DirectResponse, DirectStrategy, NetworkStrategy  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database for every test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    # Import all models so Base.metadata knows about them
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.commit()


@pytest.fixture
def store(session_factory) -> ExecutionStore:
    return ExecutionStore(session_factory)


# ---------------------------------------------------------------------------
# Engine collaborators
# ---------------------------------------------------------------------------

@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def registry() -> ActionRegistry:
    return ActionRegistry()


@pytest.fixture
def dispatcher(registry) -> ActionDispatcher:
    return ActionDispatcher(registry)


class FakeGameApi:
    """In-memory stand-in for the sessions and map-assignment endpoints."""

    def __init__(self):
        self.sessions: List[Dict[str, Any]] = []
        self.assignments: List[Dict[str, Any]] = []
        self.calls: List[DirectRequest] = []
        self.fail_routes: Dict[str, int] = {}

    def _record(self, key: str, request: DirectRequest) -> Optional[DirectResponse]:
        self.calls.append(request)
        if key in self.fail_routes:
            return DirectResponse(self.fail_routes[key], {"error": f"{key} unavailable"})
        return None

    def handlers(self) -> Dict[str, Dict[str, Any]]:
        def get_active_sessions(request: DirectRequest) -> DirectResponse:
            failure = self._record("GET:sessions/active", request)
            if failure:
                return failure
            player_id = request.query.get("playerId")
            active = [
                s for s in self.sessions
                if s["endedAt"] is None and (player_id is None or str(s["playerId"]) == player_id)
            ]
            return DirectResponse(200, active)

        async def create_session(request: DirectRequest) -> DirectResponse:
            failure = self._record("POST:sessions", request)
            if failure:
                return failure
            session = {"id": len(self.sessions) + 1, "endedAt": None, **request.body}
            self.sessions.append(session)
            return DirectResponse(201, session)

        def update_session(request: DirectRequest) -> DirectResponse:
            failure = self._record("PUT:sessions/[id]", request)
            if failure:
                return failure
            session_id = int(request.route_params["id"])
            for session in self.sessions:
                if session["id"] == session_id:
                    session.update(request.body or {})
                    return DirectResponse(200, session)
            return DirectResponse(404, {"error": "Session not found"})

        def create_assignment(request: DirectRequest) -> DirectResponse:
            failure = self._record("POST:map-assignments", request)
            if failure:
                return failure
            assignment = {"id": 100 + len(self.assignments), "isActive": True, **request.body}
            self.assignments.append(assignment)
            return DirectResponse(201, assignment)

        def update_assignment(request: DirectRequest) -> DirectResponse:
            failure = self._record("PUT:map-assignments/[id]", request)
            if failure:
                return failure
            assignment_id = int(request.route_params["id"])
            for assignment in self.assignments:
                if assignment["id"] == assignment_id:
                    assignment.update(request.body or {})
                    return DirectResponse(200, assignment)
            return DirectResponse(404, {"error": "Assignment not found"})

        def get_active_assignment(request: DirectRequest) -> DirectResponse:
            failure = self._record("GET:map-assignments/active", request)
            if failure:
                return failure
            player_id = request.query.get("playerId")
            for assignment in self.assignments:
                if assignment["isActive"] and str(assignment["playerId"]) == player_id:
                    return DirectResponse(200, {"data": assignment})
            return DirectResponse(200, {"data": None})

        def get_player(request: DirectRequest) -> DirectResponse:
            failure = self._record("GET:players/[id]", request)
            if failure:
                return failure
            return DirectResponse(200, {"id": int(request.route_params["id"]), "status": "active"})

        return {
            "sessions/active": {"GET": get_active_sessions},
            "sessions": {"POST": create_session},
            "sessions/[id]": {"PUT": update_session},
            "map-assignments": {"POST": create_assignment},
            "map-assignments/[id]": {"PUT": update_assignment},
            "map-assignments/active": {"GET": get_active_assignment},
            "players/[id]": {"GET": get_player},
        }


@pytest.fixture
def game_api() -> FakeGameApi:
    return FakeGameApi()


@pytest.fixture
def strategy(game_api, session_factory) -> DirectStrategy:
    """Direct strategy over the fake game API and the real config resolver.

    Unregistered routes fall back to a network strategy that refuses to
    connect, so a test never leaves the process.
    """
    return DirectStrategy.from_api_handlers(
        {**build_direct_handlers(session_factory), **game_api.handlers()},
        fallback=NetworkStrategy("http://game.invalid", timeout=0.5),
    )


@pytest.fixture
def limits() -> EngineLimits:
    return EngineLimits()


@pytest.fixture
def engine(store, dispatcher, strategy, events, session_factory, limits) -> WorkflowEngine:
    return WorkflowEngine(
        store,
        dispatcher,
        strategy,
        events=events,
        sql=SessionSqlExecutor(session_factory),
        limits=limits,
    )


@pytest.fixture
def create_workflow(session_factory):
    """Insert a workflow and return its id."""
    counter = itertools.count(1)

    async def _create(definition: Dict[str, Any], name: str = "Test Workflow", **kwargs: Any) -> int:
        async with session_factory() as session:
            wf = await WorkflowService(session).create_workflow(
                name=name,
                slug=kwargs.pop("slug", None) or f"{name.lower().replace(' ', '-')}-{id(definition)}-{next(counter)}",
                definition=definition,
                **kwargs,
            )
            await session.commit()
            return wf.id

    return _create


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def app(db_engine, strategy):
    """FastAPI app wired to the test database and the Direct strategy."""
    from app.config import Settings
    from app.main import create_app

    return create_app(
        settings=Settings(ENVIRONMENT="testing"),
        db_engine=db_engine,
        strategy=strategy,
    )


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
