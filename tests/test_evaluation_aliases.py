"""Tests for agentqa.evaluation.aliases - reference resolution."""

from __future__ import annotations

from agentqa.evaluation.aliases import (
    AliasEntry,
    MatcherContext,
    describe_identifier,
    normalize_alias,
    resolve_alias_ref,
    resolve_identifier,
    resolve_value,
)
from agentqa.models.matchers import RefMatcher


def _make_context(**overrides) -> MatcherContext:
    defaults = {
        "captured": {"task": {"id": "t-1", "title": "Buy milk", "parentId": None}},
        "aliases": {"project": AliasEntry(id="p-1", type="projects")},
        "user_id": "u-1",
    }
    defaults.update(overrides)
    return MatcherContext(**defaults)


class TestNormalizeAlias:
    def test_strips_prefix(self) -> None:
        assert normalize_alias("$task") == "task"
        assert normalize_alias("task") == "task"


class TestResolveAliasRef:
    def test_captured(self) -> None:
        result = resolve_alias_ref("$task.title", _make_context())
        assert result.found
        assert result.value == "Buy milk"
        assert result.source == "captured"

    def test_captured_null_field_is_found(self) -> None:
        result = resolve_alias_ref("$task.parentId", _make_context())
        assert result.found
        assert result.value is None

    def test_alias_id(self) -> None:
        result = resolve_alias_ref("$project", _make_context())
        assert result.value == "p-1"
        assert result.source == "alias"

    def test_user_id(self) -> None:
        result = resolve_alias_ref("$userId", _make_context())
        assert result.value == "u-1"
        assert result.source == "userId"

    def test_user_id_without_user_is_unresolved(self) -> None:
        assert not resolve_alias_ref("$userId", _make_context(user_id=None)).found

    def test_captured_with_dollar_key(self) -> None:
        context = _make_context(captured={"$legacy": {"id": "l-1"}})
        assert resolve_alias_ref("$legacy", context).value == "l-1"

    def test_plain_string_is_not_a_reference(self) -> None:
        assert not resolve_alias_ref("task.id", _make_context()).found


class TestResolveValue:
    def test_resolves_reference(self) -> None:
        assert resolve_value("$project.id", _make_context()) == "p-1"

    def test_unresolved_passes_through(self) -> None:
        assert resolve_value("$missing.id", _make_context()) == "$missing.id"
        assert resolve_value("literal", _make_context()) == "literal"


class TestResolveIdentifier:
    def test_literal(self) -> None:
        assert resolve_identifier("task-9", _make_context()) == "task-9"

    def test_dollar_string(self) -> None:
        assert resolve_identifier("$task", _make_context()) == "t-1"

    def test_ref_matcher(self) -> None:
        assert resolve_identifier(RefMatcher(alias="project"), _make_context()) == "p-1"

    def test_dict_shapes(self) -> None:
        context = _make_context()
        assert resolve_identifier({"ref": "$task.id"}, context) == "t-1"
        assert resolve_identifier({"from": "$project"}, context) == "p-1"
        assert resolve_identifier({"bogus": 1}, context) is None

    def test_unresolved_reference(self) -> None:
        assert resolve_identifier("$ghost", _make_context()) is None


def test_describe_identifier() -> None:
    assert describe_identifier(RefMatcher(alias="task", field="id")) == "$task.id"
    assert describe_identifier("t-1") == "t-1"
