"""Run queue transports.

The worker only needs "deliver one request body, acknowledge it once
handled". ``RedisRunQueue`` implements that with the reliable-queue
pattern (LPUSH / BLMOVE into a processing list / LREM on delete);
``InMemoryRunQueue`` serves single-process development and tests.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QueueMessage:
    """A received body plus the handle needed to delete it."""
    body: str
    receipt: str


class RunQueue(ABC):
    """Abstract request queue consumed by ``RunWorker``."""

    @abstractmethod
    async def send(self, body: str) -> None:
        ...

    @abstractmethod
    async def receive(self, wait_seconds: float) -> Optional[QueueMessage]:
        """Long-poll for at most one message; None when the wait elapses."""

    @abstractmethod
    async def delete(self, message: QueueMessage) -> None:
        ...

    async def close(self) -> None:
        return None


# ─── In-memory ─────────────────────────────────────────────────

class InMemoryRunQueue(RunQueue):
    def __init__(self):
        self._pending: asyncio.Queue[QueueMessage] = asyncio.Queue()
        self._in_flight: dict[str, QueueMessage] = {}

    async def send(self, body: str) -> None:
        await self._pending.put(QueueMessage(body=body, receipt=str(uuid4())))

    async def receive(self, wait_seconds: float) -> Optional[QueueMessage]:
        try:
            message = await asyncio.wait_for(self._pending.get(), timeout=wait_seconds)
        except asyncio.TimeoutError:
            return None
        self._in_flight[message.receipt] = message
        return message

    async def delete(self, message: QueueMessage) -> None:
        self._in_flight.pop(message.receipt, None)

    @property
    def pending_count(self) -> int:
        return self._pending.qsize()

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)


# ─── Redis ─────────────────────────────────────────────────────

class RedisRunQueue(RunQueue):
    """Redis list transport.

    Requests are pushed on the left of ``key`` and consumed from the right.
    A received body is moved atomically onto ``<key>:processing`` and stays
    there until deleted, so a crashed worker leaves it recoverable.
    """

    def __init__(self, client: aioredis.Redis, key: str):
        self._redis = client
        self.key = key
        self.processing_key = f"{key}:processing"

    @classmethod
    def from_url(cls, url: str, key: str) -> "RedisRunQueue":
        return cls(aioredis.from_url(url, decode_responses=True), key)

    async def send(self, body: str) -> None:
        await self._redis.lpush(self.key, body)

    async def receive(self, wait_seconds: float) -> Optional[QueueMessage]:
        body = await self._redis.blmove(
            self.key, self.processing_key, wait_seconds, src="RIGHT", dest="LEFT"
        )
        if body is None:
            return None
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        return QueueMessage(body=body, receipt=body)

    async def delete(self, message: QueueMessage) -> None:
        await self._redis.lrem(self.processing_key, 1, message.receipt)

    async def close(self) -> None:
        await self._redis.aclose()
        logger.info("Run queue connection closed", key=self.key)
