"""FastAPI dependency injection functions.

Runtime collaborators live on ``app.state`` (set by the lifespan or
passed to ``create_app`` by tests) and are handed to routes from here.
"""

from typing import AsyncIterator, Optional

import structlog
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from worker.queue import RunQueue
from worker.run_waiter import RunWaiter
from workflow.engine import WorkflowEngine

logger = structlog.get_logger(__name__)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error.
    """
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error("Database error", error=str(e))
            await session.rollback()
            raise


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_session_factory(request: Request):
    return request.app.state.session_factory


def get_engine(request: Request) -> WorkflowEngine:
    return request.app.state.workflow_engine


def get_run_waiter(request: Request) -> RunWaiter:
    return request.app.state.run_waiter


def get_run_queue(request: Request) -> Optional[RunQueue]:
    """The run queue, or None when runs execute inline."""
    return getattr(request.app.state, "run_queue", None)
