"""Cross-run aggregation: step pass rates, flakiness, usage, cost and hallucinations.

Steps are aligned by raw index across runs. This holds because scenario
steps are statically ordered and a run only ever truncates at its first
failure; if steps ever become conditional the alignment must change.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from agentqa.models.config import DEFAULT_HALLUCINATION_KEYWORDS
from agentqa.models.multi_run import (
    AggregatedScenarioReport,
    AggregatedStepReport,
    CostStats,
    HallucinationAnalysis,
    HallucinationOccurrence,
    MetricStats,
    ScenarioInfo,
    StepFailure,
    UsageStats,
)
from agentqa.models.report import CostResult, ScenarioReport, ScenarioStatus, StepReport, StepStatus, StepType
from agentqa.models.result import AssertionResult, FailureReason, iter_failures

if TYPE_CHECKING:
    from agentqa.execution.cost import CostRegistry

_TOOL_NAME = re.compile(r"^(\w+): expected")

RESPONSE_SNIPPET_CHARS = 200


def calculate_stats(values: Iterable[float]) -> MetricStats:
    """Population statistics (divide by N, not N-1).

    The median of an even-length series is the mean of the two middle
    values. An empty series yields all zeros.
    """
    values = [float(v) for v in values]
    if not values:
        return MetricStats()

    ordered = sorted(values)
    count = len(values)
    mean = sum(values) / count
    mid = count // 2
    if count % 2 == 0:
        median = (ordered[mid - 1] + ordered[mid]) / 2
    else:
        median = ordered[mid]
    variance = sum((v - mean) ** 2 for v in values) / count

    return MetricStats(
        count=count,
        mean=mean,
        median=median,
        min=ordered[0],
        max=ordered[-1],
        std_dev=math.sqrt(variance),
        values=values,
    )


def _step_failure_messages(step: StepReport) -> list[str]:
    if step.error:
        return [step.error]
    if step.status == StepStatus.passed:
        return []
    return [a.message for a in step.assertions if not a.passed]


def aggregate_steps(run_reports: Sequence[ScenarioReport]) -> list[AggregatedStepReport]:
    """Fold step ``i`` of every run that reached it into one AggregatedStepReport.

    A step counts as failed for any status other than ``passed``. Failure
    messages come from the step error, else from its failing assertions,
    and are ranked by frequency (descending).
    """
    if not run_reports:
        return []

    max_steps = max(len(r.steps) for r in run_reports)
    aggregated: list[AggregatedStepReport] = []

    for i in range(max_steps):
        steps = [r.steps[i] for r in run_reports if i < len(r.steps)]
        if not steps:
            continue

        pass_count = sum(1 for s in steps if s.status == StepStatus.passed)
        fail_count = len(steps) - pass_count

        counts: Counter[str] = Counter()
        for step in steps:
            counts.update(_step_failure_messages(step))
        errors = [StepFailure(message=m, count=c) for m, c in counts.most_common()]

        aggregated.append(
            AggregatedStepReport(
                index=i,
                label=steps[0].label,
                type=steps[0].type,
                pass_count=pass_count,
                fail_count=fail_count,
                pass_rate=pass_count / len(steps) * 100,
                is_flaky=pass_count > 0 and fail_count > 0,
                duration_stats=calculate_stats(s.duration_ms for s in steps),
                errors=errors,
                run_reports=steps,
            )
        )

    return aggregated


def aggregate_usage(run_reports: Sequence[ScenarioReport]) -> UsageStats | None:
    """Token statistics over the runs that reported usage; None if none did."""
    usages = [r.usage for r in run_reports if r.usage is not None]
    if not usages:
        return None

    cache_read = [u.cache_read_tokens for u in usages if u.cache_read_tokens is not None]
    cache_creation = [u.cache_creation_tokens for u in usages if u.cache_creation_tokens is not None]

    return UsageStats(
        input_tokens=calculate_stats(u.input_tokens for u in usages),
        output_tokens=calculate_stats(u.output_tokens for u in usages),
        total_tokens=calculate_stats(u.total_tokens for u in usages),
        cache_read_tokens=calculate_stats(cache_read) if cache_read else None,
        cache_creation_tokens=calculate_stats(cache_creation) if cache_creation else None,
    )


def run_cost(report: ScenarioReport, cost_registry: CostRegistry | None = None) -> CostResult | None:
    """The run's reported cost, else one priced from its usage and model."""
    if report.cost is not None and report.cost.total_cost > 0:
        return report.cost
    if cost_registry is not None and report.usage is not None and report.model:
        return cost_registry.calculate_cost(report.model, report.usage)
    return report.cost


def aggregate_cost(
    run_reports: Sequence[ScenarioReport],
    cost_registry: CostRegistry | None = None,
) -> CostStats | None:
    """Cost statistics over runs with a positive total cost; None if there are none."""
    costs = [c for c in (run_cost(r, cost_registry) for r in run_reports) if c is not None and c.total_cost > 0]
    if not costs:
        return None

    return CostStats(
        input_cost=calculate_stats(c.input_cost for c in costs),
        output_cost=calculate_stats(c.output_cost for c in costs),
        cache_write_cost=calculate_stats(c.cache_write_cost for c in costs),
        cache_read_cost=calculate_stats(c.cache_read_cost for c in costs),
        total_cost=calculate_stats(c.total_cost for c in costs),
    )


def extract_missing_tools(messages: Iterable[str]) -> list[str]:
    """Tool names from ``"<tool>: expected ..."`` messages, deduplicated in order."""
    tools: list[str] = []
    for message in messages:
        match = _TOOL_NAME.match(message)
        if match and match.group(1) not in tools:
            tools.append(match.group(1))
    return tools


def _is_untagged_tool_failure(result: AssertionResult) -> bool:
    return result.reason is None and "expected" in result.message and "call" in result.message


def tool_count_failures(assertions: Iterable[AssertionResult]) -> list[AssertionResult]:
    """Failing tool-count results anywhere in the given result trees.

    Results tagged TOOL_COUNT_MISMATCH are taken directly; untagged
    results (e.g. produced by other tooling) fall back to the
    ``"expected" ... "call"`` message shape. A result object reachable
    through more than one tree is reported once; distinct results with
    equal content are all kept.
    """
    found: list[AssertionResult] = []
    seen: set[int] = set()
    for assertion in assertions:
        for failure in iter_failures(assertion):
            if failure.reason == FailureReason.TOOL_COUNT_MISMATCH or _is_untagged_tool_failure(failure):
                if id(failure) not in seen:
                    seen.add(id(failure))
                    found.append(failure)
    return found


def _missing_tool_names(failures: Sequence[AssertionResult]) -> list[str]:
    tools: list[str] = []
    for failure in failures:
        names = [failure.path] if failure.path else extract_missing_tools([failure.message])
        for name in names:
            if name not in tools:
                tools.append(name)
    return tools


def detect_hallucinations(
    run_reports: Sequence[ScenarioReport],
    keywords: Sequence[str] | None = None,
) -> list[HallucinationAnalysis]:
    """Flag chat steps whose response claims an action the tool calls don't back up.

    A step is flagged when its response contains an action keyword
    (case-insensitive substring) and at least one tool-count assertion
    on that step failed.

    Args:
        run_reports: One report per run, in run order.
        keywords: Action keywords; defaults to DEFAULT_HALLUCINATION_KEYWORDS.

    Returns:
        One HallucinationAnalysis per flagged step index, sorted by rate
        (percent of all runs) descending.
    """
    keywords = [k.lower() for k in (keywords if keywords is not None else DEFAULT_HALLUCINATION_KEYWORDS)]
    total_runs = len(run_reports)
    by_step: dict[int, HallucinationAnalysis] = {}

    for run_index, report in enumerate(run_reports):
        for step in report.steps:
            if step.type != StepType.chat:
                continue

            response = step.response or ""
            lowered = response.lower()
            if not any(k in lowered for k in keywords):
                continue

            failures = tool_count_failures(step.assertions)
            if not failures:
                continue

            analysis = by_step.get(step.index)
            if analysis is None:
                analysis = HallucinationAnalysis(
                    step_index=step.index,
                    step_label=step.label,
                    total_runs=total_runs,
                )
                by_step[step.index] = analysis

            analysis.occurrences.append(
                HallucinationOccurrence(
                    run_index=run_index,
                    response_text=response[:RESPONSE_SNIPPET_CHARS],
                    failed_tool_assertions=[f.message for f in failures],
                    missing_tool_calls=_missing_tool_names(failures),
                )
            )
            analysis.occurrence_count += 1

    results = list(by_step.values())
    for analysis in results:
        analysis.rate = analysis.occurrence_count / analysis.total_runs * 100
    results.sort(key=lambda a: a.rate, reverse=True)
    return results


def aggregate_results(
    scenario: ScenarioInfo,
    run_reports: Sequence[ScenarioReport],
    hallucination_keywords: Sequence[str] | None = None,
    cost_registry: CostRegistry | None = None,
) -> AggregatedScenarioReport:
    """Fold N run reports into one AggregatedScenarioReport.

    ``is_flaky`` requires at least one passed and one failed run; error
    runs count towards neither.
    """
    total_runs = len(run_reports)
    passed_runs = sum(1 for r in run_reports if r.status == ScenarioStatus.passed)
    failed_runs = sum(1 for r in run_reports if r.status == ScenarioStatus.failed)
    error_runs = sum(1 for r in run_reports if r.status == ScenarioStatus.error)

    return AggregatedScenarioReport(
        id=scenario.id,
        name=scenario.name,
        total_runs=total_runs,
        passed_runs=passed_runs,
        failed_runs=failed_runs,
        error_runs=error_runs,
        pass_rate=passed_runs / total_runs * 100 if total_runs else 0.0,
        is_flaky=passed_runs > 0 and failed_runs > 0,
        steps=aggregate_steps(run_reports),
        usage_stats=aggregate_usage(run_reports),
        cost_stats=aggregate_cost(run_reports, cost_registry),
        duration_stats=calculate_stats(r.duration_ms for r in run_reports),
        hallucinations=detect_hallucinations(run_reports, hallucination_keywords),
        run_reports=list(run_reports),
    )
