"""Tests for the run queue worker loop and in-memory queue."""

import asyncio

import pytest

from core.constants import RunStatus
from worker.messages import RunRequest, RunResult, parse_run_request
from worker.queue import InMemoryRunQueue, QueueMessage, RunQueue
from worker.run_worker import RunWorker
from workflow.retry_strategies import RetryStrategy


def _request(correlation_id="c-1") -> RunRequest:
    return RunRequest(correlation_id=correlation_id, run_id="r-1", workflow_id="w-1", input={"a": 1})


class RecordingExecutor:
    def __init__(self, fail: bool = False):
        self.requests: list[RunRequest] = []
        self.fail = fail

    async def __call__(self, request: RunRequest) -> RunResult:
        self.requests.append(request)
        if self.fail:
            raise RuntimeError("executor exploded")
        return RunResult(
            correlation_id=request.correlation_id,
            run_id=request.run_id,
            workflow_id=request.workflow_id,
            status=RunStatus.SUCCESS,
        )


class FlakyQueue(RunQueue):
    """Raises on the first receives, then behaves like an empty queue."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def send(self, body: str) -> None:
        raise NotImplementedError

    async def receive(self, wait_seconds: float):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("queue unreachable")
        await asyncio.sleep(0)
        return None

    async def delete(self, message: QueueMessage) -> None:
        pass


@pytest.mark.unit
class TestMessages:
    def test_request_round_trip(self):
        parsed = parse_run_request(_request().to_json())
        assert parsed == _request()

    def test_camel_case_wire_format(self):
        body = _request().to_json()
        assert '"correlationId":"c-1"' in body
        assert '"kind":"workflow_run_request"' in body

    @pytest.mark.parametrize(
        "body",
        ["not json", "[]", '{"kind": "workflow_run_result"}', '{"kind": "workflow_run_request"}'],
    )
    def test_invalid_bodies(self, body):
        assert parse_run_request(body) is None

    def test_response_shape(self):
        result = RunResult(
            correlation_id="c", run_id="r", workflow_id="w", status=RunStatus.FAILED,
            error={"message": "boom"},
        )
        assert result.to_response() == {
            "runId": "r",
            "status": "failed",
            "error": {"message": "boom"},
            "ctxFinal": None,
            "workflowExecutionSteps": None,
        }


@pytest.mark.unit
class TestInMemoryRunQueue:
    @pytest.mark.asyncio
    async def test_receive_and_delete(self):
        queue = InMemoryRunQueue()
        await queue.send("body")
        message = await queue.receive(0.1)
        assert message.body == "body"
        assert queue.in_flight_count == 1
        await queue.delete(message)
        assert queue.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_receive_times_out(self):
        assert await InMemoryRunQueue().receive(0.01) is None


@pytest.mark.unit
class TestRunWorker:
    @pytest.mark.asyncio
    async def test_processes_and_deletes(self):
        queue = InMemoryRunQueue()
        executor = RecordingExecutor()
        await queue.send(_request().to_json())

        worker = RunWorker(queue, executor, poll_wait_seconds=0.01)
        assert await worker.process_one() is True
        assert executor.requests == [_request()]
        assert queue.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_malformed_message_deleted_without_executing(self):
        queue = InMemoryRunQueue()
        executor = RecordingExecutor()
        await queue.send('{"kind": "something_else"}')

        worker = RunWorker(queue, executor, poll_wait_seconds=0.01)
        assert await worker.process_one() is True
        assert executor.requests == []
        assert queue.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_executor_failure_still_deletes(self):
        queue = InMemoryRunQueue()
        executor = RecordingExecutor(fail=True)
        await queue.send(_request().to_json())

        worker = RunWorker(queue, executor, poll_wait_seconds=0.01)
        assert await worker.process_one() is True
        assert len(executor.requests) == 1
        assert queue.in_flight_count == 0
        assert queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_empty_poll(self):
        worker = RunWorker(InMemoryRunQueue(), RecordingExecutor(), poll_wait_seconds=0.01)
        assert await worker.process_one() is False

    @pytest.mark.asyncio
    async def test_loop_survives_transport_errors(self, fake_sleep):
        queue = FlakyQueue(failures=2)
        worker = RunWorker(
            queue,
            RecordingExecutor(),
            poll_wait_seconds=0.01,
            error_backoff=RetryStrategy.fixed(delay=0.5),
            sleep=fake_sleep,
        )
        worker.start()
        while queue.calls < 4:
            await asyncio.sleep(0)
        await worker.stop()
        assert fake_sleep.delays == [0.5, 0.5]
        assert not worker.running

    @pytest.mark.asyncio
    async def test_start_stop_processes_in_order(self):
        queue = InMemoryRunQueue()
        executor = RecordingExecutor()
        for i in range(3):
            await queue.send(_request(f"c-{i}").to_json())

        worker = RunWorker(queue, executor, poll_wait_seconds=0.01)
        worker.start()
        worker.start()  # second start is a no-op
        while len(executor.requests) < 3:
            await asyncio.sleep(0.01)
        await worker.stop()

        assert [r.correlation_id for r in executor.requests] == ["c-0", "c-1", "c-2"]
