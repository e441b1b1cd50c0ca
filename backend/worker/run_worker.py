"""Background consumer of the run queue.

One message at a time: receive (long poll), decode, hand to the
executor, delete. Malformed bodies are deleted without executing.
Executor failures are logged and the message is still deleted so a
poisonous request is never redelivered. Transport errors pause the
loop briefly and it carries on.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from worker.messages import RunRequest, RunResult, parse_run_request
from worker.queue import RunQueue
from workflow.retry_strategies import RetryStrategy, Sleeper

logger = structlog.get_logger(__name__)

RunExecutor = Callable[[RunRequest], Awaitable[RunResult]]


class RunWorker:
    def __init__(
        self,
        queue: RunQueue,
        executor: RunExecutor,
        poll_wait_seconds: float = 10,
        error_backoff: Optional[RetryStrategy] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self._queue = queue
        self._executor = executor
        self._poll_wait_seconds = poll_wait_seconds
        self._error_backoff = error_backoff or RetryStrategy.fixed(delay=0.5)
        self._sleep = sleep
        self._stopping = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop; a second call while running is a no-op."""
        if self._task is not None:
            return
        self._stopping = False
        self._task = asyncio.create_task(self._loop())
        logger.info("Run worker started", poll_wait_seconds=self._poll_wait_seconds)

    async def stop(self) -> None:
        """Ask the loop to exit and wait for the current iteration to finish."""
        self._stopping = True
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Run worker stopped")

    async def _loop(self) -> None:
        consecutive_errors = 0
        while not self._stopping:
            try:
                await self.process_one()
                consecutive_errors = 0
            except asyncio.CancelledError:
                raise
            except Exception as e:
                consecutive_errors += 1
                logger.error("Run queue error", error=str(e), consecutive_errors=consecutive_errors)
                await self._error_backoff.wait(consecutive_errors, self._sleep)

    async def process_one(self) -> bool:
        """Handle at most one message. Returns True when one was received."""
        message = await self._queue.receive(self._poll_wait_seconds)
        if message is None:
            return False

        request = parse_run_request(message.body)
        if request is None:
            logger.warning("Dropping malformed run queue message")
            await self._queue.delete(message)
            return True

        log = logger.bind(
            correlation_id=request.correlation_id,
            run_id=request.run_id,
            workflow_id=request.workflow_id,
        )
        try:
            result = await self._executor(request)
            log.info("Run request processed", status=result.status.value)
        except Exception as e:
            log.exception("Run executor raised", error=str(e))

        await self._queue.delete(message)
        return True
