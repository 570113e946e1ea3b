"""Project configuration model for agentqa.

Captures agentqa.yaml fields with sensible defaults for multi-run
behaviour, wait polling, relationship patterns and storage.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from agentqa.models.scenario import RelationshipPattern

DEFAULT_HALLUCINATION_KEYWORDS: list[str] = [
    "deleted",
    "removed",
    "created",
    "added",
    "updated",
    "modified",
    "completed",
    "marked",
    "set",
    "changed",
    "moved",
    "scheduled",
    "done",
]


class MultiRunConfig(BaseModel):
    """Defaults for repeated scenario execution.

    ``hallucination_keywords`` are action words that, when present in a
    response whose tool-count assertion failed, flag a suspected
    hallucination.
    """

    model_config = {"extra": "forbid"}

    runs: int = Field(default=3, ge=1, le=1000)
    continue_on_failure: bool = True
    hallucination_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_HALLUCINATION_KEYWORDS)
    )


class WaitConfig(BaseModel):
    """Polling defaults for wait steps."""

    model_config = {"extra": "forbid"}

    timeout_ms: int = Field(default=30_000, ge=0)
    interval_ms: int = Field(default=1_000, ge=0)


class ProjectConfig(BaseModel):
    """Project-level configuration loaded from agentqa.yaml."""

    model_config = {"extra": "forbid"}

    storage_dir: str = ".agentqa"
    multi_run: MultiRunConfig = Field(default_factory=MultiRunConfig)
    wait: WaitConfig = Field(default_factory=WaitConfig)
    relationships: list[RelationshipPattern] = Field(default_factory=list)


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start (default: cwd) looking for agentqa.yaml or .agentqa/.

    Args:
        start: Starting path (file or directory). Defaults to cwd.

    Returns:
        Path to the directory containing agentqa.yaml or .agentqa/,
        or cwd if neither is found.
    """
    current = (start or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent
    while current != current.parent:
        if (current / "agentqa.yaml").exists() or (current / ".agentqa").exists():
            return current
        current = current.parent
    return Path.cwd()


def load_project_config(project_root: Path | None = None) -> ProjectConfig:
    """Load ProjectConfig from agentqa.yaml. Returns defaults if not found.

    Args:
        project_root: Path to the project root directory. If None,
            uses find_project_root() to locate it.

    Returns:
        Validated ProjectConfig instance.
    """
    if project_root is None:
        project_root = find_project_root()
    config_path = project_root / "agentqa.yaml"
    if not config_path.exists():
        return ProjectConfig()
    import yaml

    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if raw is None:
        return ProjectConfig()
    return ProjectConfig.model_validate(raw)
