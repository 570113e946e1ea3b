"""Relationship extraction and validation.

Sentences such as "Task A is a subtask of Task B" are matched against
an ordered list of RelationshipPattern and the resulting
subject/object/foreign-key triple is checked against stored rows.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from agentqa.models.report import EntityRow
from agentqa.models.result import AssertionResult, FailureReason, fail, ok
from agentqa.models.scenario import RelationshipPattern

GetEntity = Callable[[str, str, str | None], Awaitable[EntityRow | None]]
"""``get_entity(entity_type, title_or_id, lookup_field)`` used by relationship checks."""

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class ParsedRelationship:
    """One sentence matched against one pattern."""

    pattern_name: str
    subject: str
    object: str
    subject_entity: str
    object_entity: str
    foreign_key: str
    subject_lookup_field: str | None = None
    object_lookup_field: str | None = None


def _task_pattern(name: str, phrase: str) -> RelationshipPattern:
    return RelationshipPattern(
        name=name,
        pattern=rf"(.+)\s+{phrase}\s+(.+)",
        subject_entity="tasks",
        object_entity="tasks",
        foreign_key="parentId",
    )


DEFAULT_RELATIONSHIP_PATTERNS: tuple[RelationshipPattern, ...] = (
    _task_pattern("subtask_of", "is a subtask of"),
    _task_pattern("child_of", "is a child of"),
    _task_pattern("belongs_to", "belongs to"),
    _task_pattern("part_of", "is part of"),
)


def parse_relationship(text: str, patterns: Sequence[RelationshipPattern]) -> ParsedRelationship | None:
    """Match *text* against *patterns*; the first pattern that matches wins.

    Args:
        text: A single sentence.
        patterns: Ordered patterns. Order decides, not specificity.

    Returns:
        ParsedRelationship with trimmed groups, or None if nothing matched.
    """
    for pattern in patterns:
        match = pattern.compile().search(text)
        if match is None:
            continue
        subject, obj = (match.group(1) or "").strip(), (match.group(2) or "").strip()
        if not subject or not obj:
            continue
        return ParsedRelationship(
            pattern_name=pattern.name,
            subject=subject,
            object=obj,
            subject_entity=pattern.subject_entity,
            object_entity=pattern.object_entity,
            foreign_key=pattern.foreign_key,
            subject_lookup_field=pattern.subject_lookup_field,
            object_lookup_field=pattern.object_lookup_field,
        )
    return None


def extract_relationships(text: str, patterns: Sequence[RelationshipPattern]) -> list[ParsedRelationship]:
    """Parse each sentence of *text* independently, keeping matches in order."""
    relationships: list[ParsedRelationship] = []
    for sentence in _SENTENCE_SPLIT.split(text):
        if not sentence.strip():
            continue
        parsed = parse_relationship(sentence, patterns)
        if parsed is not None:
            relationships.append(parsed)
    return relationships


async def assert_relationship(parsed: ParsedRelationship, get_entity: GetEntity) -> AssertionResult:
    """Check that ``subject[foreign_key] == object.id``."""
    subject = await get_entity(parsed.subject_entity, parsed.subject, parsed.subject_lookup_field)
    if subject is None:
        return fail(
            f'Subject entity not found: "{parsed.subject}" ({parsed.subject_entity})',
            expected="entity exists",
            actual=None,
            reason=FailureReason.ENTITY_NOT_FOUND,
        )

    obj = await get_entity(parsed.object_entity, parsed.object, parsed.object_lookup_field)
    if obj is None:
        return fail(
            f'Object entity not found: "{parsed.object}" ({parsed.object_entity})',
            expected="entity exists",
            actual=None,
            reason=FailureReason.ENTITY_NOT_FOUND,
        )

    fk_value = subject.get(parsed.foreign_key)
    object_id = obj.get("id")
    if fk_value is not None and fk_value == object_id:
        return ok(
            f'Relationship "{parsed.pattern_name}" verified: '
            f'"{parsed.subject}" -> "{parsed.object}" ({parsed.foreign_key} = {object_id})'
        )

    return fail(
        f'Relationship "{parsed.pattern_name}" failed: expected "{parsed.subject}" to reference '
        f'"{parsed.object}" via {parsed.foreign_key}, but {parsed.foreign_key} = {fk_value} '
        f"(expected {object_id})",
        expected=object_id,
        actual=fk_value,
        path=parsed.foreign_key,
        reason=FailureReason.RELATIONSHIP_MISMATCH,
    )


async def validate_relationships(
    text: str,
    patterns: Sequence[RelationshipPattern],
    get_entity: GetEntity,
) -> list[AssertionResult]:
    """Extract relationships from *text* and assert each one in order.

    ``get_entity`` is never called when no sentence matches.
    """
    return [await assert_relationship(parsed, get_entity) for parsed in extract_relationships(text, patterns)]
