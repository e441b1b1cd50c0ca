"""Resolution of ``env:NAME`` markers used in send.http_request urls.

Secret values come from an explicit resolver handed to the engine
(built from ``WORKFLOW_SECRETS`` in settings), never from the ambient
process environment.
"""

from typing import Mapping, Optional

from core.exceptions import UnresolvedSecretError

ENV_MARKER = "env:"


class SecretResolver:
    """Looks up secret values by name."""

    def resolve(self, name: str) -> Optional[str]:
        return None


class MappingSecretResolver(SecretResolver):
    """Resolver backed by a plain mapping."""

    def __init__(self, values: Optional[Mapping[str, str]] = None):
        self._values = dict(values or {})

    def resolve(self, name: str) -> Optional[str]:
        value = self._values.get(name)
        return value if value else None


def resolve_url(url: str, resolver: SecretResolver) -> str:
    """Return ``url`` with an ``env:NAME`` marker replaced by its value.

    Raises:
        UnresolvedSecretError: the marker names no configured secret
    """
    url = url.strip()
    if not url.startswith(ENV_MARKER):
        return url
    name = url[len(ENV_MARKER):].strip()
    value = resolver.resolve(name) if name else None
    if value is None or not value.strip():
        raise UnresolvedSecretError(name)
    return value.strip()
