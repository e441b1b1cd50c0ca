"""Dot-path access over nested JSON-like data.

Paths look like ``order.customer.email``. Lookups never raise: a missing
key or a non-container along the way resolves to ``None``.
"""

from typing import Any, Iterable, Optional


def _step_into(current: Any, part: str) -> Any:
    if isinstance(current, dict):
        return current.get(part)
    if isinstance(current, list) and part.isdigit():
        index = int(part)
        return current[index] if index < len(current) else None
    return None


def get_by_dot_path(obj: Any, path: Optional[str]) -> Any:
    """Resolve ``path`` inside ``obj``; ``None`` when anything is missing."""
    if not path:
        return None
    current = obj
    for part in path.split("."):
        if current is None:
            return None
        current = _step_into(current, part)
    return current


def set_by_dot_path(obj: dict, path: str, value: Any) -> None:
    """Assign ``value`` at ``path``, creating intermediate objects.

    Any non-object found on the way (scalars, lists) is replaced with an
    empty object.
    """
    parts = path.split(".")
    current = obj
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def pick_dot_paths(ctx: Any, paths: Iterable[str]) -> dict:
    """Build a new object holding only ``paths``; absent values are skipped."""
    picked: dict = {}
    for path in paths:
        value = get_by_dot_path(ctx, path)
        if value is not None:
            set_by_dot_path(picked, path, value)
    return picked
