"""Comparison evaluation shared by filter.compare, if.start and while.start."""

import math
from typing import Any, Optional, Union

from core.constants import CompareOp

Number = Union[int, float]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality over JSON-like values.

    Arrays compare element-wise in order, objects by key set and values.
    ``None`` only equals ``None``; booleans never equal numbers.
    """
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if _is_number(a) and _is_number(b):
        return a == b
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[key], b[key]) for key in a)
    if type(a) is not type(b):
        return False
    return a == b


def compare_scalars(a: Any, b: Any) -> Optional[int]:
    """Three-way compare of number/number or string/string; else ``None``."""
    if _is_number(a) and _is_number(b):
        pass
    elif isinstance(a, str) and isinstance(b, str):
        pass
    else:
        return None
    if a == b:
        return 0
    return 1 if a > b else -1


def evaluate_condition(actual: Any, op: Union[CompareOp, str], expected: Any) -> bool:
    """Evaluate ``actual <op> expected``. Type mismatches are simply false."""
    op = CompareOp(op)

    if op == CompareOp.EQ:
        return deep_equal(actual, expected)
    if op in (CompareOp.NEQ, CompareOp.NOTEQ):
        return not deep_equal(actual, expected)

    if op == CompareOp.CONTAINS:
        if isinstance(actual, str) and isinstance(expected, str):
            return expected in actual
        if isinstance(actual, list):
            return any(deep_equal(item, expected) for item in actual)
        return False

    if op == CompareOp.BEGINS:
        return isinstance(actual, str) and isinstance(expected, str) and actual.startswith(expected)
    if op == CompareOp.ENDS:
        return isinstance(actual, str) and isinstance(expected, str) and actual.endswith(expected)

    cmp = compare_scalars(actual, expected)
    if cmp is None:
        return False
    if op == CompareOp.GT:
        return cmp > 0
    if op == CompareOp.GTE:
        return cmp >= 0
    if op == CompareOp.LT:
        return cmp < 0
    return cmp <= 0


def to_number_like(value: Any) -> Optional[Number]:
    """Coerce a finite number or numeric string; ``None`` otherwise."""
    if _is_number(value):
        return value if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text or "_" in text or not text.isascii():
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None
