"""Multi-run data models.

These models encode the N-run aggregation contract: per-metric
statistics, per-step pass/fail breakdowns, hallucination analysis and
the final MultiRunResult that is exported as JSON.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from agentqa.models.report import ScenarioReport, StepReport, StepType


class MetricStats(BaseModel):
    """Population statistics over a series of values."""

    count: int = 0
    mean: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0
    std_dev: float = 0.0
    values: list[float] = Field(default_factory=list)


class StepFailure(BaseModel):
    """A distinct failure message and how many runs hit it."""

    message: str
    count: int


class AggregatedStepReport(BaseModel):
    """One logical step (aligned by index) across all runs that reached it."""

    index: int
    label: str | None = None
    type: StepType
    pass_count: int
    fail_count: int
    pass_rate: float
    is_flaky: bool
    duration_stats: MetricStats
    errors: list[StepFailure] = Field(default_factory=list)
    run_reports: list[StepReport] = Field(default_factory=list)


class HallucinationOccurrence(BaseModel):
    """One run in which a step claimed an action without the tool call."""

    run_index: int
    response_text: str
    failed_tool_assertions: list[str]
    missing_tool_calls: list[str]


class HallucinationAnalysis(BaseModel):
    """Suspected hallucinations for one step across all runs."""

    step_index: int
    step_label: str | None = None
    occurrence_count: int = 0
    total_runs: int
    rate: float = 0.0
    occurrences: list[HallucinationOccurrence] = Field(default_factory=list)


class UsageStats(BaseModel):
    input_tokens: MetricStats
    output_tokens: MetricStats
    total_tokens: MetricStats
    cache_read_tokens: MetricStats | None = None
    cache_creation_tokens: MetricStats | None = None


class CostStats(BaseModel):
    input_cost: MetricStats
    output_cost: MetricStats
    cache_write_cost: MetricStats
    cache_read_cost: MetricStats
    total_cost: MetricStats


class ScenarioInfo(BaseModel):
    """Identity of a scenario handed to lifecycle hooks."""

    id: str
    name: str
    tags: list[str] = Field(default_factory=list)


class AggregatedScenarioReport(BaseModel):
    """Totals, rates and statistics across N runs of one scenario.

    ``is_flaky`` needs at least one passed and one failed run; a scenario
    that always fails is broken, not flaky.
    """

    id: str
    name: str | None = None
    total_runs: int
    passed_runs: int
    failed_runs: int
    error_runs: int
    pass_rate: float
    is_flaky: bool
    steps: list[AggregatedStepReport] = Field(default_factory=list)
    usage_stats: UsageStats | None = None
    cost_stats: CostStats | None = None
    duration_stats: MetricStats
    hallucinations: list[HallucinationAnalysis] = Field(default_factory=list)
    run_reports: list[ScenarioReport] = Field(default_factory=list)


class MultiRunResult(BaseModel):
    """Outcome of executing one scenario N times."""

    run_id: str
    success: bool
    aggregated_report: AggregatedScenarioReport
    started_at: datetime
    ended_at: datetime
    total_duration_ms: float
    runs_requested: int
    stopped_early: bool = False
