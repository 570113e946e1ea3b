"""MultiRunExecutor: run one scenario N times and aggregate the reports.

Runs are strictly sequential: each awaits the previous one, since every
run talks to the same agent and database session. Isolation between
runs is the caller's ``before_each`` hook. ``continue_on_failure=False``
only prevents future runs; it never aborts a run in flight.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Protocol

from agentqa.evaluation.aggregation import aggregate_results, run_cost
from agentqa.execution.cost import CostRegistry
from agentqa.models.config import MultiRunConfig, ProjectConfig
from agentqa.models.multi_run import MultiRunResult, ScenarioInfo
from agentqa.models.report import ScenarioReport, ScenarioStatus
from agentqa.models.scenario import RelationshipPattern

ProgressCallback = Callable[[int, int, ScenarioReport], None]


@dataclass(frozen=True)
class RunScenarioOptions:
    """Options handed to the runner for a single run.

    ``relationship_patterns`` is what the runner passes on to
    ``assert_created_entities`` for chat steps.
    """

    stop_on_failure: bool = True
    user_id: str | None = None
    verbose: bool = False
    timeout_ms: int | None = None
    cost_registry: CostRegistry | None = None
    relationship_patterns: tuple[RelationshipPattern, ...] = ()


class ScenarioRunner(Protocol):
    """Executes one full scenario run (external collaborator)."""

    async def run_scenario(self, scenario: Any, options: RunScenarioOptions) -> ScenarioReport: ...


class LifecycleHooks(Protocol):
    async def before_each(self, scenario: ScenarioInfo) -> None: ...


def scenario_info(scenario: Any) -> ScenarioInfo:
    """Identity of a scenario object: ``id``, ``name`` (defaults to id), ``tags``."""
    scenario_id = str(getattr(scenario, "id"))
    return ScenarioInfo(
        id=scenario_id,
        name=getattr(scenario, "name", None) or scenario_id,
        tags=list(getattr(scenario, "tags", None) or []),
    )


def new_run_id() -> str:
    return f"{datetime.now(timezone.utc):%Y%m%dT%H%M%S}-{uuid.uuid4().hex[:12]}"


class MultiRunExecutor:
    """Orchestrates N sequential runs of a scenario.

    A runner exception does not abort the loop: the run is recorded as
    an ``error`` report carrying the exception message, and counts as a
    non-passing run for ``continue_on_failure``.
    """

    def __init__(
        self,
        runner: ScenarioRunner,
        scenario: Any,
        runs: int = 3,
        continue_on_failure: bool = True,
        hooks: LifecycleHooks | None = None,
        hallucination_keywords: Sequence[str] | None = None,
        cost_registry: CostRegistry | None = None,
        run_options: RunScenarioOptions | None = None,
    ) -> None:
        if runs < 1:
            raise ValueError(f"runs must be >= 1, got {runs}")
        self._runner = runner
        self._scenario = scenario
        self._info = scenario_info(scenario)
        self._runs = runs
        self._continue_on_failure = continue_on_failure
        self._hooks = hooks
        self._hallucination_keywords = hallucination_keywords
        self._cost_registry = cost_registry
        # Each run stops at its own first failure.
        self._run_options = replace(
            run_options or RunScenarioOptions(),
            stop_on_failure=True,
            cost_registry=cost_registry,
        )

    @classmethod
    def from_config(
        cls,
        runner: ScenarioRunner,
        scenario: Any,
        config: MultiRunConfig,
        **kwargs: Any,
    ) -> MultiRunExecutor:
        return cls(
            runner,
            scenario,
            runs=config.runs,
            continue_on_failure=config.continue_on_failure,
            hallucination_keywords=config.hallucination_keywords,
            **kwargs,
        )

    @classmethod
    def from_project_config(
        cls,
        runner: ScenarioRunner,
        scenario: Any,
        config: ProjectConfig,
        run_options: RunScenarioOptions | None = None,
        **kwargs: Any,
    ) -> MultiRunExecutor:
        """Build from agentqa.yaml: ``multi_run`` defaults plus ``relationships`` patterns."""
        options = replace(
            run_options or RunScenarioOptions(),
            relationship_patterns=tuple(config.relationships),
        )
        return cls.from_config(runner, scenario, config.multi_run, run_options=options, **kwargs)

    async def run_all(self, progress_callback: ProgressCallback | None = None) -> MultiRunResult:
        """Execute all runs and return the aggregated result.

        Args:
            progress_callback: Optional callback(run_number, total, report)
                called after each run completes.

        Returns:
            MultiRunResult; ``success`` is True only at a 100% pass rate.
        """
        started_at = datetime.now(timezone.utc)
        start_time = time.perf_counter()
        reports: list[ScenarioReport] = []

        for run_number in range(1, self._runs + 1):
            if self._hooks is not None:
                await self._hooks.before_each(self._info)

            report = await self._execute_single_run()
            reports.append(report)

            if progress_callback is not None:
                progress_callback(run_number, self._runs, report)

            if not self._continue_on_failure and report.status != ScenarioStatus.passed:
                break

        elapsed = time.perf_counter() - start_time
        ended_at = datetime.now(timezone.utc)

        aggregated = aggregate_results(
            self._info,
            reports,
            hallucination_keywords=self._hallucination_keywords,
            cost_registry=self._cost_registry,
        )

        return MultiRunResult(
            run_id=new_run_id(),
            success=aggregated.pass_rate == 100,
            aggregated_report=aggregated,
            started_at=started_at,
            ended_at=ended_at,
            total_duration_ms=elapsed * 1000,
            runs_requested=self._runs,
            stopped_early=len(reports) < self._runs,
        )

    async def _execute_single_run(self) -> ScenarioReport:
        started_at = datetime.now(timezone.utc)
        start_time = time.perf_counter()
        try:
            report = await self._runner.run_scenario(self._scenario, self._run_options)
        except Exception as exc:
            return ScenarioReport(
                id=self._info.id,
                name=self._info.name,
                status=ScenarioStatus.error,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                error=str(exc) or type(exc).__name__,
                started_at=started_at,
            )

        if report.cost is None and self._cost_registry is not None:
            cost = run_cost(report, self._cost_registry)
            if cost is not None:
                report = report.model_copy(update={"cost": cost})
        return report


async def execute_multi_run(
    runner: ScenarioRunner,
    scenario: Any,
    *,
    runs: int = 3,
    continue_on_failure: bool = True,
    hooks: LifecycleHooks | None = None,
    hallucination_keywords: Sequence[str] | None = None,
    cost_registry: CostRegistry | None = None,
    run_options: RunScenarioOptions | None = None,
    progress_callback: ProgressCallback | None = None,
) -> MultiRunResult:
    """Run *scenario* ``runs`` times through *runner* and aggregate the reports."""
    executor = MultiRunExecutor(
        runner,
        scenario,
        runs=runs,
        continue_on_failure=continue_on_failure,
        hooks=hooks,
        hallucination_keywords=hallucination_keywords,
        cost_registry=cost_registry,
        run_options=run_options,
    )
    return await executor.run_all(progress_callback)
