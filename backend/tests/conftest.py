"""Shared pytest fixtures for the Hookflow test suite.

Provides:
- In-memory async SQLite database and session factory
- Workflow engine with fake sleeps and an httpx mock transport
- FastAPI test client (httpx.AsyncClient over ASGITransport)
- Workflow / operation template factories
"""

import json
import os
from typing import AsyncGenerator
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("WORKFLOW_SECRETS", json.dumps({"HOOK_URL": "https://hooks.example.com/in"}))

from db.base import Base  # noqa: E402
from workflow.engine import WorkflowEngine  # noqa: E402
from workflow.secrets import MappingSecretResolver  # noqa: E402


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingHandler:
    """httpx.MockTransport handler returning queued responses in order.

    Each queued item is an ``httpx.Response`` or an exception to raise.
    The last item repeats once the queue runs dry.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or [httpx.Response(200, json={"ok": True})]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def json_bodies(self) -> list:
        return [json.loads(r.content) if r.content else None for r in self.requests]


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def http_handler() -> RecordingHandler:
    """Override per test (or mutate ``.responses``) to script outbound HTTP."""
    return RecordingHandler()


@pytest_asyncio.fixture
async def http_client(http_handler) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(http_handler)) as client:
        yield client


@pytest.fixture
def engine(http_client, fake_sleep) -> WorkflowEngine:
    return WorkflowEngine(
        secrets=MappingSecretResolver({"HOOK_URL": "https://hooks.example.com/in"}),
        http_client=http_client,
        sleep=fake_sleep,
    )


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def app(session_factory, engine):
    """FastAPI app wired to the test database, running triggers inline."""
    from app.config import Settings
    from app.main import create_app

    return create_app(
        settings=Settings(REDIS_URL=""),
        session_factory=session_factory,
        workflow_engine=engine,
    )


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_workflow(session_factory):
    """Factory creating a committed workflow; returns the model."""
    from db.models.workflow import Workflow

    async def _make(steps, enabled: bool = True, token: str = None, created_by_id: str = None):
        workflow = Workflow(
            id=str(uuid4()),
            name="Test Workflow",
            enabled=enabled,
            trigger_path=f"/t/{token or uuid4().hex}",
            steps=steps,
            created_by_id=created_by_id,
        )
        async with session_factory() as session:
            session.add(workflow)
            await session.commit()
        return workflow

    return _make


@pytest.fixture
def make_operation_template(session_factory):
    from db.models.operation_template import OperationTemplateModel

    async def _make(op: str, callback_type: str, attributes: dict, visibility: str = "public",
                    created_by_id: str = None):
        template = OperationTemplateModel(
            id=str(uuid4()),
            op=op,
            callback_type=callback_type,
            visibility=visibility,
            created_by_id=created_by_id,
            attributes=[{"name": k, "value": v} for k, v in attributes.items()],
        )
        async with session_factory() as session:
            session.add(template)
            await session.commit()
        return template

    return _make


@pytest.fixture
def make_run(session_factory):
    """Factory creating a committed ``running`` run for a workflow."""
    from services.run_service import RunService

    async def _make(workflow_id: str, input=None):
        async with session_factory() as session:
            run = await RunService(session).create_run(workflow_id, input if input is not None else {})
            await session.commit()
        return run

    return _make
