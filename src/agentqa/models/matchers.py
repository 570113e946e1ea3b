"""Field matcher models.

A matcher is a declarative description of how an observed value is
checked. The scenario parser hands over plain YAML-shaped values;
parse_matcher turns them into one of the closed set of matcher models
below so evaluation can dispatch on type instead of probing keys.

YAML shapes accepted by parse_matcher::

    "done" / 3 / true / null / [..]   -> LiteralMatcher
    {contains: "x" | [..]}             -> ContainsMatcher
    {mentions: "x" | [..]}             -> ContainsMatcher(whole_word=True)
    {containsAny: [..]}                -> ContainsAnyMatcher
    {mentionsAny: [..]}                -> ContainsAnyMatcher(whole_word=True)
    {exists: bool}                     -> ExistsMatcher
    {gt|gte|lt|lte|ne: v}              -> ComparisonMatcher ($-prefixed keys too)
    {matches: "re", flags: "m"}        -> RegexMatcher
    {from: alias, field: f}            -> RefMatcher
    {ref: "$alias.field"}              -> RefMatcher
    "$alias" / "$alias.field"          -> RefMatcher
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class MatcherError(ValueError):
    """Raised when a raw value cannot be turned into a matcher."""


class LiteralMatcher(BaseModel):
    """Exact (deep) equality."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["literal"] = "literal"
    value: Any = None

    def describe(self) -> str:
        return f"equals {self.value!r}"


class ContainsMatcher(BaseModel):
    """Every keyword must be present (AND)."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["contains"] = "contains"
    contains: list[str]
    whole_word: bool = False
    case_sensitive: bool = False

    def describe(self) -> str:
        verb = "mentions" if self.whole_word else "contains"
        return f"{verb} {self.contains!r}"


class ContainsAnyMatcher(BaseModel):
    """At least one keyword must be present (OR)."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["contains_any"] = "contains_any"
    contains_any: list[str]
    whole_word: bool = False

    def describe(self) -> str:
        verb = "mentionsAny" if self.whole_word else "containsAny"
        return f"{verb} {self.contains_any!r}"


class ExistsMatcher(BaseModel):
    """Presence check. Explicit null counts as missing unless told otherwise."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["exists"] = "exists"
    exists: bool
    null_is_missing: bool = True

    def describe(self) -> str:
        return "exists" if self.exists else "not exists"


ComparisonValue = Union[int, float, datetime, str]


class ComparisonMatcher(BaseModel):
    """Relational operators on numbers or dates. All given bounds must hold."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["comparison"] = "comparison"
    gt: ComparisonValue | None = None
    gte: ComparisonValue | None = None
    lt: ComparisonValue | None = None
    lte: ComparisonValue | None = None
    ne: Any = None

    def bounds(self) -> list[tuple[str, Any]]:
        """Return the (operator, value) pairs that were set, in check order."""
        pairs = [("gt", self.gt), ("gte", self.gte), ("lt", self.lt), ("lte", self.lte)]
        result = [(op, v) for op, v in pairs if v is not None]
        if "ne" in self.model_fields_set:
            result.append(("ne", self.ne))
        return result

    def describe(self) -> str:
        return ", ".join(f"{COMPARISON_SYMBOLS[op]} {v}" for op, v in self.bounds())


COMPARISON_SYMBOLS: dict[str, str] = {
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "ne": "!=",
}


class RegexMatcher(BaseModel):
    """Case-insensitive pattern search over the string form of the value."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["regex"] = "regex"
    matches: str
    flags: str | None = None

    def describe(self) -> str:
        return f"matches /{self.matches}/{self.flags or ''}"


class RefMatcher(BaseModel):
    """Equality against a value captured earlier in the run."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["ref"] = "ref"
    alias: str
    field: str = "id"

    @property
    def ref(self) -> str:
        return f"${self.alias}.{self.field}"

    def describe(self) -> str:
        return f"ref {self.alias}.{self.field}"


FieldMatcher = Annotated[
    Union[
        LiteralMatcher,
        ContainsMatcher,
        ContainsAnyMatcher,
        ExistsMatcher,
        ComparisonMatcher,
        RegexMatcher,
        RefMatcher,
    ],
    Field(discriminator="kind"),
]

MATCHER_TYPES: tuple[type[BaseModel], ...] = (
    LiteralMatcher,
    ContainsMatcher,
    ContainsAnyMatcher,
    ExistsMatcher,
    ComparisonMatcher,
    RegexMatcher,
    RefMatcher,
)

COMPARISON_KEYS = frozenset(COMPARISON_SYMBOLS)

_REF_STRING = re.compile(r"^\$[A-Za-z_]\w*(\.\w+)?$")


def _as_keywords(value: Any, key: str) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise MatcherError(f"{key!r} expects a string or a list of strings, got {value!r}")


def parse_ref(ref: str) -> RefMatcher:
    """Parse ``$alias`` / ``$alias.field`` (leading ``$`` optional)."""
    body = ref[1:] if ref.startswith("$") else ref
    if not body:
        raise MatcherError(f"Empty reference: {ref!r}")
    alias, _, field = body.partition(".")
    return RefMatcher(alias=alias.lstrip("$"), field=field or "id")


def _parse_comparison(raw: dict) -> ComparisonMatcher:
    ops = {key.lstrip("$"): value for key, value in raw.items()}
    unknown = set(ops) - COMPARISON_KEYS
    if unknown:
        raise MatcherError(
            f"Comparison matcher has unknown operators: {sorted(unknown)}. "
            f"Available: {sorted(COMPARISON_KEYS)}"
        )
    return ComparisonMatcher(**ops)


def parse_matcher(raw: Any) -> FieldMatcher:
    """Convert a YAML-shaped matcher value into a typed matcher.

    Typed matchers are returned unchanged. Dicts without a recognised
    operator key are treated as literal objects.

    Raises:
        MatcherError: If an operator key is present but malformed.
    """
    if isinstance(raw, MATCHER_TYPES):
        return raw

    if isinstance(raw, str) and _REF_STRING.match(raw):
        return parse_ref(raw)
    if not isinstance(raw, dict):
        return LiteralMatcher(value=raw)

    keys = set(raw)

    if "contains" in keys:
        return ContainsMatcher(contains=_as_keywords(raw["contains"], "contains"))
    if "mentions" in keys:
        return ContainsMatcher(contains=_as_keywords(raw["mentions"], "mentions"), whole_word=True)
    if "containsAny" in keys:
        return ContainsAnyMatcher(contains_any=_as_keywords(raw["containsAny"], "containsAny"))
    if "mentionsAny" in keys:
        return ContainsAnyMatcher(
            contains_any=_as_keywords(raw["mentionsAny"], "mentionsAny"), whole_word=True
        )
    if "exists" in keys:
        if not isinstance(raw["exists"], bool):
            raise MatcherError(f"'exists' expects a boolean, got {raw['exists']!r}")
        return ExistsMatcher(exists=raw["exists"], null_is_missing=raw.get("nullIsMissing", True))
    if "matches" in keys:
        if not isinstance(raw["matches"], str):
            raise MatcherError(f"'matches' expects a string pattern, got {raw['matches']!r}")
        return RegexMatcher(matches=raw["matches"], flags=raw.get("flags"))
    if "from" in keys:
        return RefMatcher(alias=str(raw["from"]).lstrip("$"), field=raw.get("field") or "id")
    if "ref" in keys and isinstance(raw["ref"], str):
        return parse_ref(raw["ref"])
    if keys and {k.lstrip("$") for k in keys} <= COMPARISON_KEYS:
        return _parse_comparison(raw)

    return LiteralMatcher(value=raw)


def parse_field_matchers(raw: dict[str, Any] | None) -> dict[str, FieldMatcher]:
    """Parse a ``{field: matcher}`` mapping."""
    return {field: parse_matcher(value) for field, value in (raw or {}).items()}
