"""Rich terminal output layer for multi-run results.

Provides the per-run status line used as the executor's progress
callback, a headline table, step and hallucination detail sections,
and JSON output for MultiRunResult display in terminal and CI.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from rich import box
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from agentqa.execution.multi_run import ProgressCallback
    from agentqa.models.multi_run import MultiRunResult
    from agentqa.models.report import ScenarioReport


# Run status -> (symbol, Rich markup style)
_STATUS_STYLES: dict[str, tuple[str, str]] = {
    "passed": ("✓", "green"),
    "failed": ("✗", "red"),
    "error": ("!", "bright_red"),
}


def format_run_status(run_number: int, total: int, report: ScenarioReport) -> str:
    """One-line summary of a finished run, with Rich markup."""
    status = report.status.value
    symbol, style = _STATUS_STYLES.get(status, ("?", "yellow"))
    line = (
        f"  [{style}]{symbol}[/{style}] Run {run_number}/{total}: "
        f"[{style}]{status.upper()}[/{style}] ({report.duration_ms:.0f}ms)"
    )
    if report.usage is not None:
        line += f" ({report.usage.total_tokens:,} tokens)"
    if report.cost is not None and report.cost.total_cost > 0:
        line += f" (${report.cost.total_cost:.4f})"
    if report.error:
        line += f" [dim]{report.error}[/dim]"
    return line


def make_progress_printer(console: Console) -> ProgressCallback:
    """Build a progress callback that prints each run's status line."""

    def _print(run_number: int, total: int, report: ScenarioReport) -> None:
        console.print(format_run_status(run_number, total, report))

    return _print


def render_headline(result: MultiRunResult, console: Console) -> None:
    """Render a compact headline table for a multi-run result.

    Args:
        result: The MultiRunResult to display.
        console: Rich Console for output.
    """
    report = result.aggregated_report

    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    if result.success:
        table.add_row("Verdict", "[bold green]✓ PASS[/bold green]")
    elif report.is_flaky:
        table.add_row("Verdict", "[bold yellow]~ FLAKY[/bold yellow]")
    else:
        table.add_row("Verdict", "[bold red]✗ FAIL[/bold red]")

    table.add_row("Scenario", report.name or report.id)
    table.add_row(
        "Runs",
        f"{report.passed_runs}/{report.total_runs} passed ({report.pass_rate:.1f}%)",
    )

    if report.failed_runs > 0 or report.error_runs > 0:
        table.add_row("Failures", f"{report.failed_runs} failed, {report.error_runs} error")

    durations = report.duration_stats
    if durations.count:
        table.add_row(
            "Duration",
            f"mean={durations.mean:.0f}ms median={durations.median:.0f}ms "
            f"min={durations.min:.0f}ms max={durations.max:.0f}ms",
        )

    if report.usage_stats is not None:
        tokens = report.usage_stats.total_tokens
        table.add_row("Tokens", f"mean={tokens.mean:,.0f} min={tokens.min:,.0f} max={tokens.max:,.0f}")

    if report.cost_stats is not None:
        cost = report.cost_stats.total_cost
        table.add_row("Cost", f"total=${sum(cost.values):.4f} avg=${cost.mean:.4f}/run")

    if report.hallucinations:
        table.add_row(
            "Hallucinations",
            f"[yellow]{len(report.hallucinations)} step(s) with suspected hallucinations[/yellow]",
        )

    if result.stopped_early:
        table.add_row(
            "Status",
            f"stopped early after {report.total_runs}/{result.runs_requested} runs",
        )

    console.print()
    console.print(table)


def render_details(result: MultiRunResult, console: Console) -> None:
    """Render flaky/failing steps and suspected hallucinations.

    Args:
        result: The MultiRunResult to display.
        console: Rich Console for output.
    """
    report = result.aggregated_report
    console.print()

    failing = [s for s in report.steps if s.fail_count > 0]
    if failing:
        console.print("[bold]Steps[/bold]")
        for step in failing:
            label = step.label or step.type.value
            marker = "[yellow]flaky[/yellow]" if step.is_flaky else "[red]failing[/red]"
            console.print(
                f"  {step.index + 1}. {label} -- {marker} "
                f"{step.pass_count}/{step.pass_count + step.fail_count} passed ({step.pass_rate:.0f}%)"
            )
            for failure in step.errors[:3]:
                message = failure.message
                truncated = message[:200] + "..." if len(message) > 200 else message
                console.print(f"       {failure.count}x {truncated}")
        console.print()

    if report.hallucinations:
        console.print("[bold]Suspected Hallucinations[/bold]")
        for h in report.hallucinations:
            label = h.step_label or f"step {h.step_index + 1}"
            tools = sorted({t for o in h.occurrences for t in o.missing_tool_calls})
            console.print(
                f"  {label}: {h.occurrence_count}/{h.total_runs} runs ({h.rate:.0f}%)"
                + (f" -- missing: {', '.join(tools)}" if tools else "")
            )
            if h.occurrences:
                console.print(f'       "{h.occurrences[0].response_text}"')
        console.print()


def output_json(result: MultiRunResult) -> None:
    """Write the result as pure JSON to stdout.

    No Rich markup, no color, no extra text. Suitable for
    CI pipeline consumption and machine parsing.
    """
    sys.stdout.write(result.model_dump_json(indent=2))
    sys.stdout.write("\n")
