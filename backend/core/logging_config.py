"""structlog setup shared by the API process and its run worker.

Console rendering for development and ``LOG_FORMAT=text``, one JSON
object per line otherwise. Configured secret values are masked in every
event before it is rendered.
"""

import logging
import sys
from typing import Iterable, Optional

import structlog
from app.config import Settings, get_settings

REDACTED = "[redacted]"

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "redis")


class SecretMasker:
    """structlog processor replacing known secret values in string fields."""

    def __init__(self, secrets: Iterable[str]):
        # Longest first so a secret containing another is masked whole
        self._secrets = sorted({s for s in secrets if s and s.strip()}, key=len, reverse=True)

    def _mask(self, value):
        if isinstance(value, str):
            for secret in self._secrets:
                if secret in value:
                    value = value.replace(secret, REDACTED)
            return value
        if isinstance(value, dict):
            return {k: self._mask(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self._mask(v) for v in value)
        return value

    def __call__(self, logger, method_name: str, event_dict: dict) -> dict:
        if not self._secrets:
            return event_dict
        return {key: self._mask(value) for key, value in event_dict.items()}


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Route structlog and stdlib logging through one formatter on stdout."""
    settings = settings or get_settings()

    pre_chain: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        SecretMasker(settings.WORKFLOW_SECRETS.values()),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if settings.is_development or settings.LOG_FORMAT == "text":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.SQLALCHEMY_ECHO else logging.WARNING
    )
