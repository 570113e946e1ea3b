"""Tests for agentqa.models.scenario - assertion shapes from scenario YAML."""

from __future__ import annotations

import re

import pytest
from pydantic import ValidationError

from agentqa.models.matchers import ComparisonMatcher, LiteralMatcher, RefMatcher
from agentqa.models.scenario import (
    CountRange,
    CreatedAssertion,
    EntityVerification,
    RelationshipPattern,
    ResponseAssertion,
    ToolAssertion,
    UsageAssertion,
    WaitCondition,
)


class TestToolAssertion:
    def test_camel_case_keys(self) -> None:
        assertion = ToolAssertion.model_validate({"name": "deleteTask", "notCalled": True})
        assert assertion.not_called is True

    def test_count_range(self) -> None:
        assertion = ToolAssertion.model_validate({"name": "manageTasks", "count": {"min": 1, "max": 3}})
        assert assertion.count == CountRange(min=1, max=3)

    def test_exact_count(self) -> None:
        assertion = ToolAssertion.model_validate({"name": "manageTasks", "count": 2})
        assert assertion.count == 2

    def test_input_matchers_parsed(self) -> None:
        assertion = ToolAssertion.model_validate(
            {"name": "manageTasks", "input": {"action": "create", "priority": {"gte": 2}}}
        )
        assert isinstance(assertion.input["action"], LiteralMatcher)
        assert isinstance(assertion.input["priority"], ComparisonMatcher)

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ToolAssertion.model_validate({"name": "x", "times": 2})

    def test_negative_count_bound_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ToolAssertion.model_validate({"name": "x", "count": {"min": -1}})


class TestCreatedAssertion:
    def test_as_alias(self) -> None:
        assertion = CreatedAssertion.model_validate(
            {"entity": "tasks", "fields": {"title": {"contains": "milk"}}, "as": "milkTask"}
        )
        assert assertion.capture_as == "milkTask"
        assert assertion.count == 1

    def test_count_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            CreatedAssertion.model_validate({"entity": "tasks", "count": 0})


class TestEntityVerification:
    def test_literal_id(self) -> None:
        check = EntityVerification.model_validate({"id": "task-1"})
        assert check.id == "task-1"

    def test_ref_dict_id(self) -> None:
        check = EntityVerification.model_validate({"id": {"ref": "$task.id"}})
        assert check.id == RefMatcher(alias="task", field="id")

    def test_from_dict_id(self) -> None:
        check = EntityVerification.model_validate({"id": {"from": "project", "field": "id"}})
        assert check.id == RefMatcher(alias="project", field="id")

    def test_not_exists_alias(self) -> None:
        check = EntityVerification.model_validate({"title": "Old", "notExists": True})
        assert check.not_exists is True

    def test_bad_id_shape_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EntityVerification.model_validate({"id": {"bogus": 1}})


class TestWaitCondition:
    def test_count_condition(self) -> None:
        condition = WaitCondition.model_validate(
            {"entity": "tasks", "count": {"min": 2}, "filters": {"projectId": "$project.id"}}
        )
        assert condition.count == CountRange(min=2)
        assert condition.filters == {"projectId": "$project.id"}


class TestResponseAssertion:
    def test_single_string_becomes_list(self) -> None:
        assertion = ResponseAssertion.model_validate({"mentions": "milk", "notMentions": ["error"]})
        assert assertion.mentions == ["milk"]
        assert assertion.not_mentions == ["error"]


class TestUsageAssertion:
    def test_comparison_value(self) -> None:
        assertion = UsageAssertion.model_validate({"totalTokens": {"lt": 5000}})
        assert isinstance(assertion.total_tokens, ComparisonMatcher)

    def test_nested_groups(self) -> None:
        assertion = UsageAssertion.model_validate(
            {"anyOf": [{"inputTokens": 10}, {"outputTokens": {"gt": 5}}]}
        )
        assert len(assertion.any_of) == 2
        assert assertion.any_of[0].input_tokens == 10

    def test_non_comparison_dict_rejected(self) -> None:
        with pytest.raises(ValidationError):
            UsageAssertion.model_validate({"totalTokens": {"contains": "x"}})


class TestRelationshipPattern:
    def _make_pattern(self, **overrides) -> RelationshipPattern:
        defaults = {
            "name": "subtask_of",
            "pattern": r"(.+)\s+is a subtask of\s+(.+)",
            "subjectEntity": "tasks",
            "objectEntity": "tasks",
            "foreignKey": "parentId",
        }
        defaults.update(overrides)
        return RelationshipPattern.model_validate(defaults)

    def test_compile_is_case_insensitive(self) -> None:
        compiled = self._make_pattern().compile()
        assert compiled.flags & re.IGNORECASE
        assert compiled.search("Buy milk IS A SUBTASK OF Groceries")

    def test_accepts_compiled_pattern(self) -> None:
        pattern = self._make_pattern(pattern=re.compile(r"(\w+) under (\w+)"))
        assert pattern.pattern == r"(\w+) under (\w+)"

    def test_requires_two_groups(self) -> None:
        with pytest.raises(ValidationError, match="two capture groups"):
            self._make_pattern(pattern=r"(.+) belongs somewhere")

    def test_invalid_regex_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid relationship pattern"):
            self._make_pattern(pattern=r"(.+ (.+)")
