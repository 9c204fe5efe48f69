"""FastAPI dependency injection functions."""

from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from actions.registry import ActionRegistry
from workflow.engine import WorkflowEngine
from workflow.events import EventBus

logger = logging.getLogger(__name__)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session from the application's session
    factory that is committed on success or rolled back on error.
    """
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Database error: {str(e)}")
            await session.rollback()
            raise
        finally:
            await session.close()


def get_engine(request: Request) -> WorkflowEngine:
    return request.app.state.engine


def get_registry(request: Request) -> ActionRegistry:
    return request.app.state.registry


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.events
