"""Assertion result model.

Every check in the engine produces an AssertionResult. Results are
terminal values: they are never re-evaluated, only combined with
combine_results (associative, identity = an empty pass).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import Enum
from typing import Any

from pydantic import BaseModel


class FailureReason(str, Enum):
    """Structured failure codes attached to failing results."""

    VALUE_MISMATCH = "VALUE_MISMATCH"
    MISSING_VALUE = "MISSING_VALUE"
    UNRESOLVED_REFERENCE = "UNRESOLVED_REFERENCE"
    TOOL_COUNT_MISMATCH = "TOOL_COUNT_MISMATCH"
    TOOL_INPUT_MISMATCH = "TOOL_INPUT_MISMATCH"
    TOOL_OUTPUT_MISMATCH = "TOOL_OUTPUT_MISMATCH"
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    ENTITY_UNEXPECTED = "ENTITY_UNEXPECTED"
    ENTITY_COUNT_MISMATCH = "ENTITY_COUNT_MISMATCH"
    RELATIONSHIP_MISMATCH = "RELATIONSHIP_MISMATCH"
    WAIT_TIMEOUT = "WAIT_TIMEOUT"
    INVALID_ASSERTION = "INVALID_ASSERTION"
    COMBINED = "COMBINED"


class AssertionResult(BaseModel):
    """Outcome of a single check.

    ``failures`` holds the failing sub-results of a combined result
    (the reporter-facing diagnostic context). ``assertion_count`` is the
    number of leaf checks folded into this result.
    """

    model_config = {"frozen": True}

    passed: bool
    message: str
    expected: Any = None
    actual: Any = None
    path: str | None = None
    reason: FailureReason | None = None
    failures: tuple[AssertionResult, ...] = ()
    assertion_count: int = 1

    def combine(self, other: AssertionResult) -> AssertionResult:
        """Binary form of combine_results."""
        return combine_results([self, other])

    __and__ = combine


AssertionResult.model_rebuild()


def ok(message: str) -> AssertionResult:
    """Create a passing result."""
    return AssertionResult(passed=True, message=message)


def fail(
    message: str,
    *,
    expected: Any = None,
    actual: Any = None,
    path: str | None = None,
    reason: FailureReason | None = None,
    failures: Iterable[AssertionResult] = (),
) -> AssertionResult:
    """Create a failing result."""
    return AssertionResult(
        passed=False,
        message=message,
        expected=expected,
        actual=actual,
        path=path,
        reason=reason,
        failures=tuple(failures),
    )


def _flatten_failures(result: AssertionResult) -> list[AssertionResult]:
    if result.passed:
        return []
    if result.reason == FailureReason.COMBINED and result.failures:
        return list(result.failures)
    return [result]


def combine_results(results: Iterable[AssertionResult]) -> AssertionResult:
    """Fold results into one. Passes iff every input passed.

    Failures of nested combined results are spliced into the output and
    counts are summed over leaf checks, so neither the failure list nor
    the message depends on how the inputs were grouped.
    """
    results = list(results)
    failures: list[AssertionResult] = []
    for r in results:
        failures.extend(_flatten_failures(r))
    total = sum(r.assertion_count for r in results)

    if not failures:
        return AssertionResult(passed=True, message=f"All {total} assertions passed", assertion_count=total)

    messages = "; ".join(f.message for f in failures)
    return AssertionResult(
        passed=False,
        message=f"{len(failures)} of {total} assertions failed: {messages}",
        reason=FailureReason.COMBINED,
        failures=tuple(failures),
        assertion_count=total,
    )


def iter_failures(result: AssertionResult) -> Iterator[AssertionResult]:
    """Yield the failing results of a result tree, outermost first."""
    if result.passed:
        return
    yield result
    for sub in result.failures:
        yield from iter_failures(sub)
