"""Entity assertions -- validates database rows through an adapter.

The adapter is an external collaborator; only its async query surface
is used here. Every business-rule mismatch comes back as a failing
AssertionResult; adapter exceptions propagate to the step executor.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from agentqa.evaluation.aliases import MatcherContext, describe_identifier, resolve_identifier
from agentqa.evaluation.matchers import match_fields
from agentqa.evaluation.relationship import GetEntity, assert_relationship, parse_relationship
from agentqa.evaluation.tools import check_count
from agentqa.models.matchers import FieldMatcher, LiteralMatcher
from agentqa.models.report import EntityRow
from agentqa.models.result import AssertionResult, FailureReason, combine_results, fail, ok
from agentqa.models.scenario import (
    CountExpectation,
    CreatedAssertion,
    EntityVerification,
    RelationshipPattern,
)


class EntityQueryAdapter(Protocol):
    """Read side of the database adapter."""

    async def find_by_id(self, entity: str, id: str) -> EntityRow | None: ...

    async def find_by_title(self, entity: str, title: str) -> EntityRow | None: ...

    async def list(self, entity: str, filters: Mapping[str, Any] | None = None) -> list[EntityRow]: ...


async def find_entity(
    adapter: EntityQueryAdapter,
    entity_type: str,
    *,
    id: str | None = None,
    title: str | None = None,
) -> EntityRow | None:
    """Look a row up by id, else by title."""
    if id:
        return await adapter.find_by_id(entity_type, id)
    if title:
        return await adapter.find_by_title(entity_type, title)
    raise ValueError(f"No identifier provided for {entity_type} lookup")


def _identifier_desc(id: str | None, title: str | None) -> str:
    return id if id else f'title="{title}"'


async def verify_entity(
    adapter: EntityQueryAdapter,
    entity_type: str,
    *,
    id: str | None = None,
    title: str | None = None,
    fields: Mapping[str, FieldMatcher | Any] | None = None,
    context: MatcherContext | None = None,
) -> AssertionResult:
    """Verify that a row exists and matches field assertions.

    Exactly one of *id* / *title* must be supplied; *id* wins if both are.
    """
    if not id and not title:
        return fail(
            f"No identifier provided for {entity_type} verification",
            reason=FailureReason.INVALID_ASSERTION,
        )

    row = await find_entity(adapter, entity_type, id=id, title=title)
    if row is None:
        return fail(
            f"{entity_type} not found: {_identifier_desc(id, title)}",
            expected="entity exists",
            actual=None,
            reason=FailureReason.ENTITY_NOT_FOUND,
        )
    return match_fields(row, fields or {}, context)


def split_filters(fields: Mapping[str, FieldMatcher]) -> dict[str, str]:
    """Plain string literals double as equality filters for ``adapter.list``."""
    return {
        key: matcher.value
        for key, matcher in fields.items()
        if isinstance(matcher, LiteralMatcher)
        and isinstance(matcher.value, str)
        and not matcher.value.startswith("$")
    }


async def _assert_created(
    adapter: EntityQueryAdapter,
    assertion: CreatedAssertion,
    context: MatcherContext,
) -> tuple[AssertionResult, EntityRow | None]:
    entity_type = assertion.entity
    filters = split_filters(assertion.fields)
    candidates = await adapter.list(entity_type, filters)

    if not candidates:
        return (
            fail(
                f"No {entity_type} found matching filters: {json.dumps(filters)}",
                expected="at least one matching entity",
                actual=0,
                reason=FailureReason.ENTITY_NOT_FOUND,
            ),
            None,
        )

    matched: list[EntityRow] = []
    seen_ids: set[Any] = set()
    for row in candidates:
        row_id = row.get("id")
        if row_id is not None and row_id in seen_ids:
            continue
        if match_fields(row, assertion.fields, context).passed:
            matched.append(row)
            if row_id is not None:
                seen_ids.add(row_id)
            if len(matched) >= assertion.count:
                break

    if len(matched) >= assertion.count:
        if assertion.count == 1:
            return ok(f"Found {entity_type} matching all field assertions"), matched[0]
        return ok(f"Found {assertion.count} {entity_type}(s) matching all field assertions"), matched[0]

    expected = {k: m.describe() for k, m in assertion.fields.items()}
    if not matched:
        return (
            fail(
                f"Found {len(candidates)} {entity_type}(s) but none matched all field assertions",
                expected=expected,
                actual=candidates[:3],
                reason=FailureReason.ENTITY_NOT_FOUND,
            ),
            None,
        )
    return (
        fail(
            f"Expected {assertion.count} {entity_type}(s) matching all field assertions, "
            f"found {len(matched)} of {len(candidates)}",
            expected=expected,
            actual=matched[:3],
            reason=FailureReason.ENTITY_COUNT_MISMATCH,
        ),
        None,
    )


async def assert_created_entities(
    adapter: EntityQueryAdapter,
    assertions: Sequence[CreatedAssertion | Mapping[str, Any]],
    context: MatcherContext | None = None,
    relationship_patterns: Sequence[RelationshipPattern] = (),
) -> tuple[AssertionResult, dict[str, EntityRow]]:
    """Find the rows a chat step was expected to create.

    String-valued fields (other than ``$refs``) narrow the ``list`` query;
    every field is then re-checked per candidate and the first candidate
    satisfying all of them wins.

    Each ``relationships`` sentence is parsed with *relationship_patterns*
    and its foreign key checked through ``entity_lookup``. Sentences no
    pattern matches are skipped, and so are all sentences when no
    patterns are configured.

    Returns:
        The combined result and ``{alias: row}`` for assertions with ``as``.
    """
    context = context or MatcherContext()
    results: list[AssertionResult] = []
    captured: dict[str, EntityRow] = {}
    get_entity = entity_lookup(adapter)

    for raw in assertions:
        assertion = raw if isinstance(raw, CreatedAssertion) else CreatedAssertion.model_validate(raw)
        result, row = await _assert_created(adapter, assertion, context)
        results.append(result)
        if row is not None and assertion.capture_as:
            captured[assertion.capture_as] = row

        if not relationship_patterns:
            continue
        for sentence in assertion.relationships:
            parsed = parse_relationship(sentence, relationship_patterns)
            if parsed is not None:
                results.append(await assert_relationship(parsed, get_entity))

    return combine_results(results), captured


async def verify_entities(
    adapter: EntityQueryAdapter,
    verifications: Mapping[str, Sequence[EntityVerification | Mapping[str, Any]]],
    context: MatcherContext | None = None,
) -> tuple[AssertionResult, dict[str, EntityRow]]:
    """Verify a batch of rows keyed by entity type.

    Identifiers may be literal, ``$ref``, ``{ref: ...}`` or
    ``{from, field}``. ``not_exists`` checks pass iff the lookup finds
    nothing. Rows of passing checks with ``as`` are captured.
    """
    context = context or MatcherContext()
    results: list[AssertionResult] = []
    captured: dict[str, EntityRow] = {}

    for entity_type, checks in verifications.items():
        for raw in checks:
            check = raw if isinstance(raw, EntityVerification) else EntityVerification.model_validate(raw)

            entity_id: str | None = None
            if check.id is not None:
                entity_id = resolve_identifier(check.id, context)
                if entity_id is None:
                    results.append(
                        fail(
                            f"Cannot resolve reference: {describe_identifier(check.id)}",
                            expected=describe_identifier(check.id),
                            actual=None,
                            reason=FailureReason.UNRESOLVED_REFERENCE,
                        )
                    )
                    continue

            if not entity_id and not check.title:
                results.append(
                    fail(
                        f"No identifier (id or title) provided for {entity_type} verification",
                        reason=FailureReason.INVALID_ASSERTION,
                    )
                )
                continue

            row = await find_entity(adapter, entity_type, id=entity_id, title=check.title)

            if check.not_exists:
                if row is not None:
                    results.append(
                        fail(
                            f"{entity_type} should not exist but was found: {entity_id or check.title}",
                            expected="entity does not exist",
                            actual=row,
                            reason=FailureReason.ENTITY_UNEXPECTED,
                        )
                    )
                else:
                    results.append(ok(f"{entity_type} correctly does not exist"))
                continue

            if row is None:
                results.append(
                    fail(
                        f"{entity_type} not found: {_identifier_desc(entity_id, check.title)}",
                        expected="entity exists",
                        actual=None,
                        reason=FailureReason.ENTITY_NOT_FOUND,
                    )
                )
                continue

            result = match_fields(row, check.fields, context)
            results.append(result)
            if result.passed and check.capture_as:
                captured[check.capture_as] = row

    return combine_results(results), captured


async def assert_entity_count(
    adapter: EntityQueryAdapter,
    entity_type: str,
    expected: CountExpectation | Mapping[str, Any],
    filters: Mapping[str, Any] | None = None,
) -> AssertionResult:
    """Assert ``len(adapter.list(entity_type, filters))`` against an exact or range count."""
    rows = await adapter.list(entity_type, filters)
    actual = len(rows)

    mismatch = check_count(actual, expected)
    if mismatch is None:
        suffix = "" if isinstance(expected, int) else " (within range)"
        return ok(f"{entity_type} count: {actual}{suffix}")

    phrase, expected_desc = mismatch
    return fail(
        f"{phrase.capitalize()} {entity_type}(s), got {actual}",
        expected=expected_desc,
        actual=actual,
        reason=FailureReason.ENTITY_COUNT_MISMATCH,
    )


def entity_lookup(adapter: EntityQueryAdapter) -> GetEntity:
    """Build the ``get_entity`` callback used by relationship validation.

    With a lookup field the row is found via ``list`` filtered on that
    field; otherwise by title, falling back to id.
    """

    async def get_entity(entity_type: str, title_or_id: str, lookup_field: str | None = None) -> EntityRow | None:
        if lookup_field:
            rows = await adapter.list(entity_type, {lookup_field: title_or_id})
            return rows[0] if rows else None
        row = await adapter.find_by_title(entity_type, title_or_id)
        if row is None:
            row = await adapter.find_by_id(entity_type, title_or_id)
        return row

    return get_entity
