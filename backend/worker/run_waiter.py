"""Correlation-id rendezvous between the trigger endpoint and the worker.

The endpoint registers a correlation id and awaits it; whoever produces
the result for that id resolves it. Each id is settled at most once:
after resolve, reject, timeout or cancel the entry is gone and later
calls for the same id are ignored.
"""

import asyncio
from typing import Optional

import structlog

from core.exceptions import RunWaitTimeoutError
from worker.messages import RunResult

logger = structlog.get_logger(__name__)


class RunWaiter:
    def __init__(self):
        self._pending: dict[str, asyncio.Future] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_waiting(self, correlation_id: str) -> bool:
        return correlation_id in self._pending

    def register(self, correlation_id: str, timeout_ms: int) -> asyncio.Future:
        """Start waiting for ``correlation_id`` and return the pending future.

        Register before the request is published so a fast result cannot
        arrive ahead of its waiter.
        """
        loop = asyncio.get_running_loop()
        self.cancel(correlation_id)
        future: asyncio.Future = loop.create_future()
        self._pending[correlation_id] = future
        self._timers[correlation_id] = loop.call_later(
            timeout_ms / 1000, self._expire, correlation_id, future
        )
        return future

    async def wait_for(self, correlation_id: str, timeout_ms: int) -> RunResult:
        """Wait for the result of ``correlation_id``.

        Raises:
            RunWaitTimeoutError: nothing arrived within ``timeout_ms``
            Exception: whatever was passed to ``reject``
        """
        future = self.register(correlation_id, timeout_ms)
        try:
            return await future
        finally:
            # Covers cancellation of the waiting caller as well
            if self._pending.get(correlation_id) is future:
                self._discard(correlation_id)

    def resolve(self, correlation_id: str, result: RunResult) -> bool:
        """Deliver ``result``; False when nobody is waiting for the id."""
        future = self._discard(correlation_id)
        if future is None or future.done():
            return False
        future.set_result(result)
        return True

    def reject(self, correlation_id: str, error: Exception) -> bool:
        future = self._discard(correlation_id)
        if future is None or future.done():
            return False
        future.set_exception(error)
        return True

    def cancel(self, correlation_id: str) -> None:
        """Stop waiting for ``correlation_id`` without settling it."""
        future = self._discard(correlation_id)
        if future is not None and not future.done():
            future.cancel()

    def _expire(self, correlation_id: str, future: asyncio.Future) -> None:
        if self._pending.get(correlation_id) is not future:
            return
        self._discard(correlation_id)
        if not future.done():
            logger.warning("Timed out waiting for run result", correlation_id=correlation_id)
            future.set_exception(RunWaitTimeoutError())

    def _discard(self, correlation_id: str) -> Optional[asyncio.Future]:
        timer = self._timers.pop(correlation_id, None)
        if timer is not None:
            timer.cancel()
        return self._pending.pop(correlation_id, None)
