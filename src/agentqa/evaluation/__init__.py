"""Evaluation package: value matchers, tool/entity/relationship/wait
assertions, response and usage checks, and multi-run aggregation.
"""

from __future__ import annotations

from agentqa.evaluation.aggregation import aggregate_results, calculate_stats, detect_hallucinations
from agentqa.evaluation.aliases import AliasEntry, MatcherContext
from agentqa.evaluation.entity import (
    EntityQueryAdapter,
    assert_created_entities,
    assert_entity_count,
    entity_lookup,
    verify_entities,
    verify_entity,
)
from agentqa.evaluation.matchers import match_field, match_fields
from agentqa.evaluation.relationship import (
    DEFAULT_RELATIONSHIP_PATTERNS,
    extract_relationships,
    parse_relationship,
    validate_relationships,
)
from agentqa.evaluation.response import assert_response
from agentqa.evaluation.tools import assert_tool_calls, assert_total_tool_calls
from agentqa.evaluation.usage import assert_usage
from agentqa.evaluation.wait import execute_wait_condition

__all__ = [
    "AliasEntry",
    "DEFAULT_RELATIONSHIP_PATTERNS",
    "EntityQueryAdapter",
    "MatcherContext",
    "aggregate_results",
    "assert_created_entities",
    "assert_entity_count",
    "assert_response",
    "assert_tool_calls",
    "assert_total_tool_calls",
    "assert_usage",
    "calculate_stats",
    "detect_hallucinations",
    "entity_lookup",
    "execute_wait_condition",
    "extract_relationships",
    "match_field",
    "match_fields",
    "parse_relationship",
    "validate_relationships",
    "verify_entities",
    "verify_entity",
]
