"""agentqa data models - re-exports all public model classes."""

from agentqa.models.config import ProjectConfig
from agentqa.models.matchers import FieldMatcher, MatcherError, parse_matcher
from agentqa.models.multi_run import (
    AggregatedScenarioReport,
    HallucinationAnalysis,
    MetricStats,
    MultiRunResult,
)
from agentqa.models.report import (
    ScenarioReport,
    ScenarioStatus,
    StepReport,
    StepStatus,
    ToolCall,
)
from agentqa.models.result import AssertionResult, FailureReason, combine_results
from agentqa.models.scenario import RelationshipPattern, ToolAssertion

__all__ = [
    "AggregatedScenarioReport",
    "AssertionResult",
    "FailureReason",
    "FieldMatcher",
    "HallucinationAnalysis",
    "MatcherError",
    "MetricStats",
    "MultiRunResult",
    "ProjectConfig",
    "RelationshipPattern",
    "ScenarioReport",
    "ScenarioStatus",
    "StepReport",
    "StepStatus",
    "ToolAssertion",
    "ToolCall",
    "combine_results",
    "parse_matcher",
]
