"""Tests for comparison evaluation and numeric coercion."""

import pytest

from core.constants import CompareOp
from workflow.conditions import deep_equal, evaluate_condition, to_number_like


@pytest.mark.unit
class TestDeepEqual:
    def test_structures(self):
        assert deep_equal({"a": [1, {"b": 2}]}, {"a": [1, {"b": 2}]})
        assert not deep_equal({"a": [1, 2]}, {"a": [2, 1]})
        assert not deep_equal({"a": 1}, {"a": 1, "b": 2})

    def test_bool_is_not_number(self):
        assert not deep_equal(True, 1)
        assert not deep_equal(0, False)

    def test_none(self):
        assert deep_equal(None, None)
        assert not deep_equal(None, "")

    def test_int_float(self):
        assert deep_equal(1, 1.0)

    def test_string_is_not_number(self):
        assert not deep_equal("1", 1)


@pytest.mark.unit
class TestEvaluateCondition:
    @pytest.mark.parametrize(
        "actual,op,expected,result",
        [
            ("a", "eq", "a", True),
            ("a", "neq", "b", True),
            ("a", "noteq", "a", False),
            ("hello world", "contains", "lo w", True),
            ([1, {"x": 1}], "contains", {"x": 1}, True),
            (5, "contains", 5, False),
            ("prefix-rest", "begins", "prefix", True),
            ("file.json", "ends", ".json", True),
            (3, "begins", "3", False),
            (5, "gt", 3, True),
            (3, "gte", 3, True),
            (2, "lt", 3, True),
            (4, "lte", 3, False),
            ("b", "gt", "a", True),
        ],
    )
    def test_operators(self, actual, op, expected, result):
        assert evaluate_condition(actual, op, expected) is result

    def test_ordering_type_mismatch_is_false(self):
        assert evaluate_condition("5", CompareOp.GT, 3) is False
        assert evaluate_condition(None, CompareOp.LT, 3) is False
        assert evaluate_condition(True, CompareOp.GT, 0) is False

    def test_unknown_operator_raises(self):
        with pytest.raises(ValueError):
            evaluate_condition(1, "between", 2)


@pytest.mark.unit
class TestToNumberLike:
    def test_numbers(self):
        assert to_number_like(3) == 3
        assert to_number_like(2.5) == 2.5

    def test_numeric_strings(self):
        assert to_number_like(" 42 ") == 42
        assert to_number_like("1e3") == 1000.0
        assert to_number_like("-0.5") == -0.5

    @pytest.mark.parametrize(
        "value",
        ["", "  ", "abc", "1_000", "inf", "nan", "\u0661\u0662", "\uff13", None, True, [1], float("inf")],
    )
    def test_rejected(self, value):
        assert to_number_like(value) is None
