"""Outbound HTTP for the send.http_request operation.

Performs ``1 + retries`` attempts with a per-attempt timeout. Responses
with status >= 400 and transport errors (connection failures, timeouts)
are retried with exponential backoff; the last attempt's outcome is
returned as-is. The executor never raises: callers always receive an
``HttpRequestResult``, with ``status=0`` when no response was obtained.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import structlog

from workflow.retry_strategies import Sleeper, http_step_backoff

logger = structlog.get_logger(__name__)

NO_BODY = object()


@dataclass
class HttpRequestSpec:
    """One outbound request, already templated and resolved."""

    method: str
    url: str
    headers: Optional[dict[str, str]] = None
    json_body: Any = NO_BODY
    timeout_ms: int = 2_000
    retries: int = 0


@dataclass
class HttpRequestResult:
    """Normalized outcome of the final attempt."""

    ok: bool
    status: int
    body_text: str
    attempts: int
    retries_used: int
    error: Optional[dict[str, Optional[str]]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ok": self.ok,
            "status": self.status,
            "bodyText": self.body_text,
            "attempts": self.attempts,
            "retriesUsed": self.retries_used,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


def _format_error(exc: BaseException) -> tuple[str, str]:
    """Return ``(name, message)`` for a failed attempt."""
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return "TimeoutError", "Request aborted (timeout)"
    name = type(exc).__name__
    return name, str(exc) or name


def _build_request(client: httpx.AsyncClient, spec: HttpRequestSpec) -> httpx.Request:
    headers = dict(spec.headers or {})
    content = None
    if spec.json_body is not NO_BODY:
        content = json.dumps(spec.json_body, ensure_ascii=False).encode("utf-8")
        if not any(name.lower() == "content-type" for name in headers):
            headers["Content-Type"] = "application/json"
    return client.build_request(
        spec.method,
        spec.url,
        headers=headers,
        content=content,
        timeout=spec.timeout_ms / 1000,
    )


async def _attempt(client: httpx.AsyncClient, spec: HttpRequestSpec) -> tuple[int, str]:
    response = await client.send(_build_request(client, spec))
    return response.status_code, response.text


async def execute_http_request(
    spec: HttpRequestSpec,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleeper = asyncio.sleep,
) -> HttpRequestResult:
    """Run ``spec`` with its retry budget and return the final outcome.

    Args:
        spec: Request to send
        client: Shared client; a short-lived one is created when omitted
        sleep: Awaitable used for backoff delays (injected by tests)
    """
    backoff = http_step_backoff(spec.retries)
    attempts = backoff.max_attempts
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(follow_redirects=True)

    try:
        for attempt in range(attempts):
            is_last = attempt == attempts - 1
            try:
                status, text = await asyncio.wait_for(
                    _attempt(client, spec), timeout=spec.timeout_ms / 1000
                )
            except Exception as e:
                name, message = _format_error(e)
                if not is_last:
                    logger.info(
                        "HTTP step attempt failed, retrying",
                        url=spec.url,
                        attempt=attempt + 1,
                        error=message,
                    )
                    await backoff.wait(attempt + 1, sleep)
                    continue
                logger.warning("HTTP step failed without response", url=spec.url, attempts=attempts, error=message)
                return HttpRequestResult(
                    ok=False,
                    status=0,
                    body_text=message,
                    attempts=attempts,
                    retries_used=attempt,
                    error={"name": name, "message": message},
                )

            ok = 200 <= status < 300
            if not ok and status >= 400 and not is_last:
                logger.info(
                    "HTTP step got error status, retrying",
                    url=spec.url,
                    attempt=attempt + 1,
                    status=status,
                )
                await backoff.wait(attempt + 1, sleep)
                continue

            return HttpRequestResult(
                ok=ok,
                status=status,
                body_text=text,
                attempts=attempts,
                retries_used=attempt,
            )
    finally:
        if owns_client:
            await client.aclose()
