"""Hookflow - FastAPI Application."""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI

from app.config import Settings, get_settings
from api.routes import health, trigger
from core.logging_config import setup_logging
from core.middleware import RequestTrackingMiddleware, setup_exception_handlers
from db.database import close_db, create_db_engine, create_session_factory, init_db
from worker.queue import RedisRunQueue, RunQueue
from worker.run_waiter import RunWaiter
from worker.run_worker import RunWorker
from worker.run_workflow import make_run_executor
from workflow.engine import WorkflowEngine, build_workflow_engine
from workflow.retry_strategies import RetryStrategy

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events.

    Anything already placed on ``app.state`` by ``create_app`` is used as
    is; the rest is built from settings and torn down on shutdown.
    """
    # Startup
    settings: Settings = app.state.settings
    setup_logging(settings)

    db_engine = None
    if app.state.session_factory is None:
        db_engine = create_db_engine(settings)
        await init_db(db_engine)
        app.state.session_factory = create_session_factory(db_engine)
        logger.info("Database ready")

    http_client = None
    if app.state.workflow_engine is None:
        http_client = httpx.AsyncClient(follow_redirects=True)
        app.state.workflow_engine = build_workflow_engine(settings, http_client=http_client)
    logger.info("Workflow execution engine ready")

    owned_queue = None
    if app.state.run_queue is None and settings.queue_configured and settings.WORKER_ENABLED:
        owned_queue = RedisRunQueue.from_url(settings.REDIS_URL, settings.RUN_QUEUE_KEY)
        app.state.run_queue = owned_queue

    worker = None
    if app.state.run_queue is not None and settings.WORKER_ENABLED:
        worker = RunWorker(
            app.state.run_queue,
            make_run_executor(app.state.session_factory, app.state.workflow_engine, app.state.run_waiter),
            poll_wait_seconds=settings.WORKER_POLL_WAIT_SECONDS,
            error_backoff=RetryStrategy.fixed(delay=settings.WORKER_ERROR_BACKOFF_SECONDS),
        )
        worker.start()
        app.state.run_worker = worker
    elif settings.queue_configured:
        logger.warning("REDIS_URL is set but the worker is disabled; triggers will answer 503")
    else:
        logger.info("No run queue configured, triggers execute inline")

    logger.info(
        f"{settings.APP_NAME} v{settings.APP_VERSION} started",
        environment=settings.ENVIRONMENT,
    )
    yield
    # Shutdown
    logger.info("Application shutting down")
    if worker is not None:
        await worker.stop()
        app.state.run_worker = None
    if owned_queue is not None:
        await owned_queue.close()
        app.state.run_queue = None
    if http_client is not None:
        await http_client.aclose()
    if db_engine is not None:
        await close_db(db_engine)


def create_app(
    settings: Optional[Settings] = None,
    session_factory=None,
    run_queue: Optional[RunQueue] = None,
    workflow_engine: Optional[WorkflowEngine] = None,
    run_waiter: Optional[RunWaiter] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Defaults to ``get_settings()``
        session_factory: Async session factory; built in the lifespan when omitted
        run_queue: Queue for run requests; None runs triggers inline
        workflow_engine: Interpreter; built from settings when omitted
        run_waiter: Correlation-id waiter shared with the worker
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Webhook-triggered workflow execution engine.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.run_queue = run_queue
    app.state.workflow_engine = workflow_engine
    app.state.run_waiter = run_waiter or RunWaiter()
    app.state.run_worker = None

    # Request tracking middleware
    app.add_middleware(RequestTrackingMiddleware)

    # Global exception handlers
    setup_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(trigger.router)

    return app


app = create_app()
