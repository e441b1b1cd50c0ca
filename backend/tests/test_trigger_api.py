"""API tests for the workflow trigger endpoint and health probes."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.main import create_app
from services.run_service import RunService
from worker.queue import InMemoryRunQueue
from worker.run_waiter import RunWaiter
from worker.run_worker import RunWorker
from worker.run_workflow import make_run_executor


GREETING_STEPS = [
    {"action": "transform.replace_template", "key": "greeting", "value": "hello {{name}}"},
]


@pytest_asyncio.fixture
async def queued_app(session_factory, engine):
    """App running triggers through an in-memory queue and a live worker."""
    queue = InMemoryRunQueue()
    waiter = RunWaiter()
    app = create_app(
        settings=Settings(REDIS_URL="", TRIGGER_SYNC_TIMEOUT_MS=2_000),
        session_factory=session_factory,
        run_queue=queue,
        workflow_engine=engine,
        run_waiter=waiter,
    )
    worker = RunWorker(queue, make_run_executor(session_factory, engine, waiter), poll_wait_seconds=0.05)
    worker.start()
    app.state.run_worker = worker
    yield app
    await worker.stop()


@pytest.mark.integration
class TestInlineTrigger:
    @pytest.mark.asyncio
    async def test_runs_workflow_and_returns_outcome(self, client, make_workflow, session_factory):
        workflow = await make_workflow(GREETING_STEPS, token="hello")

        response = await client.post("/t/hello", json={"name": "ann"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["error"] is None
        assert body["ctxFinal"]["greeting"] == "hello ann"
        assert body["ctxFinal"]["workflow_id"] == workflow.id
        assert body["workflowExecutionSteps"][0]["action"] == "transform.replace_template"

        async with session_factory() as session:
            run = await RunService(session).get_run(body["runId"])
        assert run.status == "success"
        assert run.input == {"name": "ann"}

    @pytest.mark.asyncio
    async def test_unknown_trigger(self, client):
        response = await client.post("/t/missing", json={})
        assert response.status_code == 404
        assert response.json()["detail"] == "Workflow trigger not found"
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_disabled_workflow(self, client, make_workflow, session_factory):
        workflow = await make_workflow(GREETING_STEPS, token="off", enabled=False)
        response = await client.post("/t/off", json={})
        assert response.status_code == 403
        assert response.json()["detail"] == "Workflow is disabled"
        async with session_factory() as session:
            assert await RunService(session).count(workflow_id=workflow.id) == 0

    @pytest.mark.asyncio
    async def test_empty_body_is_empty_object(self, client, make_workflow):
        await make_workflow(GREETING_STEPS, token="empty")
        response = await client.post("/t/empty")
        assert response.status_code == 200
        assert response.json()["ctxFinal"]["greeting"] == "hello "

    @pytest.mark.asyncio
    async def test_non_object_body_is_wrapped(self, client, make_workflow):
        await make_workflow([], token="list")
        response = await client.post("/t/list", json=[1, 2])
        assert response.json()["ctxFinal"]["payload"] == [1, 2]

    @pytest.mark.asyncio
    async def test_malformed_json(self, client, make_workflow):
        await make_workflow([], token="bad")
        response = await client.post("/t/bad", content=b"{nope", headers={"Content-Type": "application/json"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_failed_run_is_reported_with_200(self, client, make_workflow):
        await make_workflow([{"action": "if.start", "key": "a", "condition": "eq", "value": 1}], token="broken")
        response = await client.post("/t/broken", json={})
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "failed"
        assert body["error"]["message"] == "Invalid workflow: if.start must have a later matching if.end"


@pytest.mark.integration
class TestQueuedTrigger:
    @pytest.mark.asyncio
    async def test_result_comes_back_through_worker(self, queued_app, make_workflow):
        await make_workflow(GREETING_STEPS, token="queued")
        async with AsyncClient(transport=ASGITransport(app=queued_app), base_url="http://test") as client:
            response = await client.post("/t/queued", json={"name": "bob"})
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["ctxFinal"]["greeting"] == "hello bob"
        assert queued_app.state.run_waiter.pending_count == 0

    @pytest.mark.asyncio
    async def test_timeout_reports_failed(self, session_factory, engine, make_workflow):
        # Queue without a worker: nothing ever answers
        app = create_app(
            settings=Settings(REDIS_URL="", TRIGGER_SYNC_TIMEOUT_MS=500),
            session_factory=session_factory,
            run_queue=InMemoryRunQueue(),
            workflow_engine=engine,
        )
        await make_workflow(GREETING_STEPS, token="slow")
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/t/slow", json={})
        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "failed"
        assert body["error"] == {"message": "Timed out waiting for workflow result"}

        async with session_factory() as session:
            run = await RunService(session).get_run(body["runId"])
        assert run.status == "running"

    @pytest.mark.asyncio
    async def test_configured_queue_unavailable(self, session_factory, engine, make_workflow):
        app = create_app(
            settings=Settings(REDIS_URL="redis://localhost:6379/0"),
            session_factory=session_factory,
            workflow_engine=engine,
        )
        await make_workflow(GREETING_STEPS, token="noqueue")
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/t/noqueue", json={})
        assert response.status_code == 503
        assert response.json()["detail"] == "Queue is not configured"

    @pytest.mark.asyncio
    async def test_send_failure_fails_the_run(self, session_factory, engine, make_workflow):
        class BrokenQueue(InMemoryRunQueue):
            async def send(self, body: str) -> None:
                raise ConnectionError("broker down")

        waiter = RunWaiter()
        app = create_app(
            settings=Settings(REDIS_URL=""),
            session_factory=session_factory,
            run_queue=BrokenQueue(),
            workflow_engine=engine,
            run_waiter=waiter,
        )
        workflow = await make_workflow(GREETING_STEPS, token="broken")
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/t/broken", json={})
        assert response.status_code == 503
        assert response.json()["detail"] == "Failed to enqueue workflow run"
        assert waiter.pending_count == 0

        async with session_factory() as session:
            service = RunService(session)
            assert await service.count(workflow_id=workflow.id, status="failed") == 1
            assert await service.count(workflow_id=workflow.id, status="running") == 0


@pytest.mark.integration
class TestHealth:
    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["app"] == "Hookflow"
        assert body["queue"] == "inline"

    @pytest.mark.asyncio
    async def test_readiness(self, client):
        response = await client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "ok"}
