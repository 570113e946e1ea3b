"""Tests for agentqa.evaluation.relationship - sentence parsing and FK validation."""

from __future__ import annotations

from typing import Any

import pytest

from agentqa.evaluation.relationship import (
    DEFAULT_RELATIONSHIP_PATTERNS,
    ParsedRelationship,
    assert_relationship,
    extract_relationships,
    parse_relationship,
    validate_relationships,
)
from agentqa.models.result import FailureReason
from agentqa.models.scenario import RelationshipPattern


def _make_pattern(name: str, pattern: str, **overrides: Any) -> RelationshipPattern:
    defaults: dict[str, Any] = {
        "name": name,
        "pattern": pattern,
        "subject_entity": "tasks",
        "object_entity": "lists",
        "foreign_key": "listId",
    }
    defaults.update(overrides)
    return RelationshipPattern(**defaults)


LIST_PATTERNS = [_make_pattern("in_list", r"(.+?)\s+belongs to list\s+(.+)")]


class RecordingLookup:
    """get_entity stand-in over ``{(entity_type, key): row}`` that records calls."""

    def __init__(self, rows: dict[tuple[str, str], dict[str, Any]] | None = None) -> None:
        self.rows = rows or {}
        self.calls: list[tuple[str, str, str | None]] = []

    async def __call__(self, entity_type: str, title_or_id: str, lookup_field: str | None = None):
        self.calls.append((entity_type, title_or_id, lookup_field))
        return self.rows.get((entity_type, title_or_id))


class TestParseRelationship:
    def test_no_match(self) -> None:
        assert parse_relationship("Nothing to see here", DEFAULT_RELATIONSHIP_PATTERNS) is None

    def test_default_subtask_pattern(self) -> None:
        parsed = parse_relationship("Buy milk is a subtask of Groceries", DEFAULT_RELATIONSHIP_PATTERNS)
        assert parsed == ParsedRelationship(
            pattern_name="subtask_of",
            subject="Buy milk",
            object="Groceries",
            subject_entity="tasks",
            object_entity="tasks",
            foreign_key="parentId",
        )

    def test_case_insensitive(self) -> None:
        parsed = parse_relationship("Buy milk BELONGS TO Groceries", DEFAULT_RELATIONSHIP_PATTERNS)
        assert parsed is not None
        assert parsed.pattern_name == "belongs_to"

    def test_first_match_wins(self) -> None:
        patterns = [
            _make_pattern("first", r"(.+)\s+in\s+(.+)"),
            _make_pattern("second", r"(.+)\s+in list\s+(.+)"),
        ]
        parsed = parse_relationship("Milk in list Groceries", patterns)
        assert parsed.pattern_name == "first"

    def test_groups_trimmed(self) -> None:
        patterns = [_make_pattern("p", r"(.*) under (.*)")]
        parsed = parse_relationship("  Milk   under   Groceries  ", patterns)
        assert parsed.subject == "Milk"
        assert parsed.object == "Groceries"

    def test_repeated_calls_are_independent(self) -> None:
        texts = ["A belongs to list B", "C belongs to list D", "E belongs to list F"]
        subjects = [parse_relationship(t, LIST_PATTERNS).subject for t in texts]
        assert subjects == ["A", "C", "E"]


class TestExtractRelationships:
    def test_no_match(self) -> None:
        assert extract_relationships("Hello there. How are you?", LIST_PATTERNS) == []

    def test_mixed_terminators(self) -> None:
        text = "Task A belongs to list List 1! Task B belongs to list List 2?"
        parsed = extract_relationships(text, LIST_PATTERNS)
        assert [(p.subject, p.object) for p in parsed] == [("Task A", "List 1"), ("Task B", "List 2")]

    def test_skips_non_matching_sentences(self) -> None:
        text = "Done. Task A belongs to list Home... Anything else?"
        parsed = extract_relationships(text, LIST_PATTERNS)
        assert len(parsed) == 1
        assert parsed[0].object == "Home"


class TestAssertRelationship:
    def _make_parsed(self, **overrides: Any) -> ParsedRelationship:
        defaults: dict[str, Any] = {
            "pattern_name": "in_list",
            "subject": "Task A",
            "object": "Home",
            "subject_entity": "tasks",
            "object_entity": "lists",
            "foreign_key": "listId",
        }
        defaults.update(overrides)
        return ParsedRelationship(**defaults)

    @pytest.mark.asyncio
    async def test_verified(self) -> None:
        lookup = RecordingLookup(
            {
                ("tasks", "Task A"): {"id": "t-1", "listId": "l-1"},
                ("lists", "Home"): {"id": "l-1"},
            }
        )
        result = await assert_relationship(self._make_parsed(), lookup)
        assert result.passed

    @pytest.mark.asyncio
    async def test_subject_missing(self) -> None:
        lookup = RecordingLookup()
        result = await assert_relationship(self._make_parsed(), lookup)
        assert result.message == 'Subject entity not found: "Task A" (tasks)'
        assert result.reason == FailureReason.ENTITY_NOT_FOUND
        assert len(lookup.calls) == 1

    @pytest.mark.asyncio
    async def test_object_missing(self) -> None:
        lookup = RecordingLookup({("tasks", "Task A"): {"id": "t-1", "listId": "l-1"}})
        result = await assert_relationship(self._make_parsed(), lookup)
        assert result.message == 'Object entity not found: "Home" (lists)'

    @pytest.mark.asyncio
    async def test_fk_mismatch(self) -> None:
        lookup = RecordingLookup(
            {
                ("tasks", "Task A"): {"id": "t-1", "listId": "l-2"},
                ("lists", "Home"): {"id": "l-1"},
            }
        )
        result = await assert_relationship(self._make_parsed(), lookup)
        assert not result.passed
        assert result.message == (
            'Relationship "in_list" failed: expected "Task A" to reference "Home" via listId, '
            "but listId = l-2 (expected l-1)"
        )
        assert result.expected == "l-1"
        assert result.actual == "l-2"
        assert result.reason == FailureReason.RELATIONSHIP_MISMATCH

    @pytest.mark.asyncio
    async def test_null_fk_never_matches(self) -> None:
        lookup = RecordingLookup(
            {
                ("tasks", "Task A"): {"id": "t-1", "listId": None},
                ("lists", "Home"): {"id": None},
            }
        )
        result = await assert_relationship(self._make_parsed(), lookup)
        assert not result.passed

    @pytest.mark.asyncio
    async def test_lookup_fields_forwarded(self) -> None:
        lookup = RecordingLookup()
        await assert_relationship(self._make_parsed(subject_lookup_field="name"), lookup)
        assert lookup.calls == [("tasks", "Task A", "name")]


class TestValidateRelationships:
    @pytest.mark.asyncio
    async def test_no_match_never_queries(self) -> None:
        lookup = RecordingLookup()
        results = await validate_relationships("Nothing relational here.", LIST_PATTERNS, lookup)
        assert results == []
        assert lookup.calls == []

    @pytest.mark.asyncio
    async def test_results_in_sentence_order(self) -> None:
        lookup = RecordingLookup(
            {
                ("tasks", "Task A"): {"id": "t-1", "listId": "l-1"},
                ("lists", "Home"): {"id": "l-1"},
            }
        )
        results = await validate_relationships(
            "Task A belongs to list Home. Task B belongs to list Work.", LIST_PATTERNS, lookup
        )
        assert [r.passed for r in results] == [True, False]
        assert results[1].message == 'Subject entity not found: "Task B" (tasks)'
