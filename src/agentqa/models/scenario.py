"""Assertion shapes consumed from scenario steps.

The scenario parser is external; these models describe the
already-deserialized assertion shapes it hands over (camelCase keys as
written in scenario YAML, snake_case attributes in Python).
"""

from __future__ import annotations

import re
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, field_validator
from pydantic.alias_generators import to_camel

from agentqa.models.matchers import (
    ComparisonMatcher,
    FieldMatcher,
    MatcherError,
    RefMatcher,
    parse_field_matchers,
    parse_matcher,
    parse_ref,
)

_ASSERTION_CONFIG = {
    "extra": "forbid",
    "alias_generator": to_camel,
    "populate_by_name": True,
}


def _parse_identifier(value: Any) -> Any:
    if isinstance(value, dict):
        if "ref" in value and isinstance(value["ref"], str):
            return parse_ref(value["ref"])
        if "from" in value:
            return parse_matcher(value)
        raise MatcherError(f"Invalid id format: {value!r}")
    return value


def _parse_comparison_value(value: Any) -> Any:
    if isinstance(value, dict):
        matcher = parse_matcher(value)
        if not isinstance(matcher, ComparisonMatcher):
            raise MatcherError(f"Expected a number or comparison, got {value!r}")
        return matcher
    return value


def _as_list(value: Any) -> Any:
    if isinstance(value, str):
        return [value]
    return value


FieldChecks = Annotated[dict[str, FieldMatcher], BeforeValidator(parse_field_matchers)]
"""``{field: matcher}`` with YAML matcher shapes parsed on validation."""

Identifier = Annotated[str | RefMatcher, BeforeValidator(_parse_identifier)]
"""Literal id, ``$alias.field`` string, ``{ref: ...}`` or ``{from, field}``."""

UsageValue = Annotated[int | float | ComparisonMatcher, BeforeValidator(_parse_comparison_value)]

KeywordList = Annotated[list[str], BeforeValidator(_as_list)]


class CountRange(BaseModel):
    """Inclusive count range; either bound may be omitted."""

    model_config = {"extra": "forbid"}

    min: int | None = Field(default=None, ge=0)
    max: int | None = Field(default=None, ge=0)


CountExpectation = int | CountRange

SimpleToolAssertion = dict[str, CountExpectation]
"""``{toolName: count | {min, max}}``."""


class ToolAssertion(BaseModel):
    """Full tool assertion: count, absence, and input/output field checks."""

    model_config = _ASSERTION_CONFIG

    name: str
    count: CountExpectation | None = None
    not_called: bool = False
    input: FieldChecks | None = None
    output: FieldChecks | None = None


class CreatedAssertion(BaseModel):
    """A row the agent is expected to have created during a chat step."""

    model_config = _ASSERTION_CONFIG

    entity: str
    count: int = Field(default=1, ge=1)
    fields: FieldChecks = Field(default_factory=dict)
    relationships: list[str] = Field(default_factory=list)
    capture_as: str | None = Field(default=None, alias="as")


class EntityVerification(BaseModel):
    """A row looked up by id or title in a verify step."""

    model_config = _ASSERTION_CONFIG

    id: Identifier | None = None
    title: str | None = None
    fields: FieldChecks = Field(default_factory=dict)
    capture_as: str | None = Field(default=None, alias="as")
    not_exists: bool = False


class WaitCondition(BaseModel):
    """Entity-existence or entity-count predicate polled by a wait step.

    When ``count`` is set the condition is a count predicate over
    ``list(entity, filters)``; otherwise the row identified by ``id`` or
    ``title`` must exist and match ``fields``.
    """

    model_config = _ASSERTION_CONFIG

    entity: str
    id: Identifier | None = None
    title: str | None = None
    fields: FieldChecks = Field(default_factory=dict)
    count: CountExpectation | None = None
    filters: dict[str, Any] | None = None


class ResponseAssertion(BaseModel):
    """Checks on the agent's response text."""

    model_config = _ASSERTION_CONFIG

    mentions: KeywordList | None = None
    mentions_any: KeywordList | None = None
    not_mentions: KeywordList | None = None
    contains: KeywordList | None = None
    contains_any: KeywordList | None = None
    matches: str | None = None


class UsageAssertion(BaseModel):
    """Token usage checks with optional OR/AND grouping."""

    model_config = _ASSERTION_CONFIG

    input_tokens: UsageValue | None = None
    output_tokens: UsageValue | None = None
    total_tokens: UsageValue | None = None
    cache_read_tokens: UsageValue | None = None
    cache_creation_tokens: UsageValue | None = None
    call_count: UsageValue | None = None
    any_of: list[UsageAssertion] | None = None
    all_of: list[UsageAssertion] | None = None


class RelationshipPattern(BaseModel):
    """Two-group pattern mapping a sentence to a foreign-key relationship.

    Group 1 is the subject, group 2 the object. Patterns are always
    matched case-insensitively.
    """

    model_config = _ASSERTION_CONFIG

    name: str
    pattern: str
    subject_entity: str
    object_entity: str
    foreign_key: str
    subject_lookup_field: str | None = None
    object_lookup_field: str | None = None

    @field_validator("pattern", mode="before")
    @classmethod
    def _pattern_source(cls, value: Any) -> Any:
        if isinstance(value, re.Pattern):
            return value.pattern
        return value

    @field_validator("pattern")
    @classmethod
    def _two_groups(cls, value: str) -> str:
        try:
            compiled = re.compile(value)
        except re.error as exc:
            raise ValueError(f"Invalid relationship pattern {value!r}: {exc}") from exc
        if compiled.groups < 2:
            raise ValueError(
                f"Relationship pattern {value!r} needs two capture groups, has {compiled.groups}"
            )
        return value

    def compile(self) -> re.Pattern[str]:
        """Build a fresh case-insensitive matcher for one parse."""
        return re.compile(self.pattern, re.IGNORECASE)
