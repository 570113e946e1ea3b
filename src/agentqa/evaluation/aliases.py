"""Alias resolution shared by matchers, entity checks and wait conditions.

Aliases are stored without the ``$`` prefix; the prefix only appears in
scenario files. Lookups tolerate either spelling because captured
entities may come from sources that kept it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from agentqa.models.matchers import RefMatcher, parse_ref
from agentqa.models.report import EntityRow


@dataclass(frozen=True)
class AliasEntry:
    """An entity created by a setup step. Only ``id`` is addressable."""

    id: str
    type: str


@dataclass
class MatcherContext:
    """Run-scoped state that references resolve against."""

    captured: dict[str, EntityRow] = field(default_factory=dict)
    aliases: dict[str, AliasEntry] = field(default_factory=dict)
    user_id: str | None = None


@dataclass(frozen=True)
class AliasResolution:
    found: bool
    value: Any = None
    source: Literal["captured", "alias", "userId"] | None = None


NOT_FOUND = AliasResolution(found=False)


def normalize_alias(alias: str) -> str:
    """Strip a leading ``$``: ``$myTask`` -> ``myTask``."""
    return alias[1:] if alias.startswith("$") else alias


def _lookup(table: dict[str, Any], alias: str) -> Any:
    bare = normalize_alias(alias)
    if bare in table:
        return table[bare]
    return table.get(f"${bare}")


def resolve_ref(ref: RefMatcher, context: MatcherContext) -> AliasResolution:
    """Resolve a reference against the context.

    Order: ``$userId``, captured entities, setup aliases (``id`` only).
    """
    alias = normalize_alias(ref.alias)

    if alias == "userId" and context.user_id:
        return AliasResolution(found=True, value=context.user_id, source="userId")

    entity = _lookup(context.captured, alias)
    if entity is not None and ref.field in entity:
        return AliasResolution(found=True, value=entity[ref.field], source="captured")

    entry = _lookup(context.aliases, alias)
    if entry is not None and ref.field == "id":
        return AliasResolution(found=True, value=entry.id, source="alias")

    return NOT_FOUND


def resolve_alias_ref(ref: str, context: MatcherContext) -> AliasResolution:
    """Resolve a ``$alias`` / ``$alias.field`` string. Non-``$`` strings are not references."""
    if not ref.startswith("$"):
        return NOT_FOUND
    return resolve_ref(parse_ref(ref), context)


def resolve_value(value: str, context: MatcherContext) -> str:
    """Return the resolved reference as a string, or *value* unchanged."""
    result = resolve_alias_ref(value, context)
    if result.found:
        return str(result.value)
    return value


def resolve_identifier(value: str | RefMatcher | dict, context: MatcherContext) -> str | None:
    """Resolve an entity identifier given as literal, ``$ref``, ``{ref}`` or ``{from, field}``.

    Returns None when a reference cannot be resolved; literals pass through.
    """
    if isinstance(value, dict):
        if isinstance(value.get("ref"), str):
            value = parse_ref(value["ref"])
        elif "from" in value:
            value = RefMatcher(alias=normalize_alias(str(value["from"])), field=value.get("field") or "id")
        else:
            return None

    if isinstance(value, RefMatcher):
        result = resolve_ref(value, context)
        return str(result.value) if result.found else None

    if value.startswith("$"):
        result = resolve_alias_ref(value, context)
        return str(result.value) if result.found else None

    return value


def describe_identifier(value: str | RefMatcher | dict) -> str:
    if isinstance(value, RefMatcher):
        return value.ref
    return str(value)
