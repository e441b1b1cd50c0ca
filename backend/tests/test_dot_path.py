"""Tests for dot-path access."""

import pytest

from workflow.dot_path import get_by_dot_path, pick_dot_paths, set_by_dot_path


@pytest.mark.unit
class TestGetByDotPath:
    def test_nested_value(self):
        assert get_by_dot_path({"a": {"b": {"c": 3}}}, "a.b.c") == 3

    def test_missing_segment_is_none(self):
        assert get_by_dot_path({"a": {}}, "a.b.c") is None

    def test_scalar_on_the_way_is_none(self):
        assert get_by_dot_path({"a": 5}, "a.b") is None

    def test_empty_path_is_none(self):
        assert get_by_dot_path({"a": 1}, "") is None

    def test_list_index(self):
        assert get_by_dot_path({"items": [{"id": 1}, {"id": 2}]}, "items.1.id") == 2
        assert get_by_dot_path({"items": [1]}, "items.4") is None

    def test_falsy_values_are_returned(self):
        ctx = {"zero": 0, "empty": "", "no": False}
        assert get_by_dot_path(ctx, "zero") == 0
        assert get_by_dot_path(ctx, "empty") == ""
        assert get_by_dot_path(ctx, "no") is False


@pytest.mark.unit
class TestSetByDotPath:
    def test_creates_intermediate_objects(self):
        ctx = {}
        set_by_dot_path(ctx, "a.b.c", 1)
        assert ctx == {"a": {"b": {"c": 1}}}

    def test_replaces_non_object_intermediates(self):
        ctx = {"a": "text", "b": [1, 2]}
        set_by_dot_path(ctx, "a.x", 1)
        set_by_dot_path(ctx, "b.y", 2)
        assert ctx == {"a": {"x": 1}, "b": {"y": 2}}

    def test_keeps_siblings(self):
        ctx = {"a": {"keep": True}}
        set_by_dot_path(ctx, "a.new", "v")
        assert ctx == {"a": {"keep": True, "new": "v"}}

    def test_get_after_set(self):
        ctx = {"x": 1}
        set_by_dot_path(ctx, "deep.er.value", [1, 2])
        assert get_by_dot_path(ctx, "deep.er.value") == [1, 2]


@pytest.mark.unit
class TestPickDotPaths:
    def test_picks_only_listed_paths(self):
        ctx = {"user": {"name": "Ann", "password": "x"}, "other": 1}
        assert pick_dot_paths(ctx, ["user.name"]) == {"user": {"name": "Ann"}}

    def test_absent_paths_are_skipped(self):
        assert pick_dot_paths({"a": 1}, ["a", "missing.path"]) == {"a": 1}

    def test_does_not_mutate_source(self):
        ctx = {"a": 1, "b": 2}
        pick_dot_paths(ctx, ["a"])
        assert ctx == {"a": 1, "b": 2}
