"""agentqa aggregate -- fold stored scenario reports into a multi-run result.

Reads ScenarioReport JSON files written by an external runner (one
report per file, or a JSON array of reports), aggregates them the same
way a multi-run does and prints the headline or pure JSON.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from agentqa.cli.output import make_progress_printer, output_json, render_details, render_headline
from agentqa.evaluation.aggregation import aggregate_results
from agentqa.execution.cost import default_cost_registry
from agentqa.execution.multi_run import new_run_id
from agentqa.models.config import find_project_root, load_project_config
from agentqa.models.multi_run import MultiRunResult, ScenarioInfo
from agentqa.models.report import ScenarioReport
from agentqa.storage.json_store import MultiRunStore

console = Console(stderr=True)


def load_reports(path: Path) -> list[ScenarioReport]:
    """Load one report or a JSON array of reports from *path*.

    Raises:
        ValueError: If the file is not valid JSON or not a report shape.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON ({exc})") from exc

    items = raw if isinstance(raw, list) else [raw]
    try:
        return [ScenarioReport.model_validate(item) for item in items]
    except ValidationError as exc:
        raise ValueError(f"{path}: not a scenario report ({exc.error_count()} error(s))") from exc


def build_result(
    reports: list[ScenarioReport],
    scenario: ScenarioInfo,
    keywords: list[str] | None,
) -> MultiRunResult:
    aggregated = aggregate_results(
        scenario,
        reports,
        hallucination_keywords=keywords,
        cost_registry=default_cost_registry(),
    )
    starts = [r.started_at for r in reports if r.started_at is not None]
    ended_at = datetime.now(timezone.utc)
    return MultiRunResult(
        run_id=new_run_id(),
        success=aggregated.pass_rate == 100,
        aggregated_report=aggregated,
        started_at=min(starts) if starts else ended_at,
        ended_at=ended_at,
        total_duration_ms=sum(r.duration_ms for r in reports),
        runs_requested=len(reports),
    )


def aggregate(
    reports: list[Path] = typer.Argument(..., help="ScenarioReport JSON files, one run each"),
    scenario_id: Optional[str] = typer.Option(None, "--scenario-id", help="Scenario id (default: first report's id)"),
    keywords: Optional[str] = typer.Option(
        None, "--keywords", help="Comma-separated hallucination keywords (default: from agentqa.yaml)"
    ),
    save: bool = typer.Option(False, "--save", help="Persist the result under the storage directory"),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
    verbose: bool = typer.Option(False, "-V", "--verbose", help="Show step and hallucination details"),
) -> None:
    """Aggregate scenario run reports into flakiness and hallucination statistics.

    Exits 0 when every run passed, 1 otherwise or on input errors.
    """
    project_root = find_project_root()
    try:
        config = load_project_config(project_root)
    except (ValidationError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    loaded: list[ScenarioReport] = []
    for path in reports:
        if not path.exists():
            console.print(f"[bold red]Error:[/bold red] File not found: {path}")
            raise typer.Exit(code=1)
        try:
            loaded.extend(load_reports(path))
        except ValueError as exc:
            console.print(f"[bold red]Report error:[/bold red] {exc}")
            raise typer.Exit(code=1)

    if not loaded:
        console.print("[bold red]Error:[/bold red] No scenario reports found.")
        raise typer.Exit(code=1)

    sid = scenario_id or loaded[0].id
    name = next((r.name for r in loaded if r.name), None)
    scenario = ScenarioInfo(id=sid, name=name or sid)

    keyword_list = (
        [k.strip() for k in keywords.split(",") if k.strip()]
        if keywords is not None
        else config.multi_run.hallucination_keywords
    )

    if not format_json:
        printer = make_progress_printer(console)
        for i, report in enumerate(loaded, 1):
            printer(i, len(loaded), report)

    result = build_result(loaded, scenario, keyword_list)

    if save:
        store = MultiRunStore(project_root, config.storage_dir)
        store.save_result(result)
        store.update_latest_symlink(result.run_id)

    if format_json:
        output_json(result)
    else:
        output_console = Console()
        render_headline(result, output_console)
        if verbose or not result.success:
            render_details(result, output_console)
        if save:
            output_console.print(f"[dim]Result saved: {result.run_id}[/dim]")

    if not result.success:
        raise typer.Exit(code=1)
