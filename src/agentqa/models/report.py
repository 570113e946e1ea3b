"""Run report contracts.

A ScenarioReport is produced once per scenario run by the external
runner; the multi-run aggregator folds several of them together.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from agentqa.models.result import AssertionResult

EntityRow = dict[str, Any]
"""A materialised database row; always carries an ``id``."""


class StepStatus(str, Enum):
    """Outcome of a single step."""

    passed = "passed"
    failed = "failed"
    skipped = "skipped"
    error = "error"


class ScenarioStatus(str, Enum):
    """Lifecycle of a scenario run: pending -> running -> passed|failed|error.

    ``failed`` means an assertion returned passed=False; ``error`` means
    an exception escaped a step (infrastructure, not agent behaviour).
    """

    pending = "pending"
    running = "running"
    passed = "passed"
    failed = "failed"
    error = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ScenarioStatus.passed, ScenarioStatus.failed, ScenarioStatus.error)


class StepType(str, Enum):
    chat = "chat"
    verify = "verify"
    wait = "wait"
    setup = "setup"


class ToolCall(BaseModel):
    """A tool invocation emitted by the agent. ``result`` is None when unavailable."""

    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: Any = None


class TokenUsage(BaseModel):
    """Token counts for one step or one whole run."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cache_creation_tokens: int | None = None
    cache_read_tokens: int | None = None
    call_count: int | None = None


class CostResult(BaseModel):
    """Monetary cost broken down by token category."""

    input_cost: float = 0.0
    output_cost: float = 0.0
    cache_write_cost: float = 0.0
    cache_read_cost: float = 0.0
    total_cost: float = 0.0
    currency: str = "USD"


class StepReport(BaseModel):
    """Outcome of one scenario step.

    Chat-only fields (message, response, tool_calls, usage) stay empty
    for the other step types.
    """

    index: int
    label: str | None = None
    type: StepType
    status: StepStatus
    duration_ms: float = 0.0
    error: str | None = None
    assertions: list[AssertionResult] = Field(default_factory=list)
    message: str | None = None
    response: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    usage: TokenUsage | None = None
    captured: dict[str, EntityRow] = Field(default_factory=dict)


class ScenarioReport(BaseModel):
    """Outcome of one full scenario run."""

    id: str
    name: str | None = None
    status: ScenarioStatus
    duration_ms: float = 0.0
    steps: list[StepReport] = Field(default_factory=list)
    failed_step_index: int | None = None
    error: str | None = None
    usage: TokenUsage | None = None
    cost: CostResult | None = None
    model: str | None = None
    captured: dict[str, EntityRow] = Field(default_factory=dict)
    user_id: str | None = None
    started_at: datetime | None = None

    @field_validator("started_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        """Naive timestamps are taken as UTC so reports stay comparable."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
