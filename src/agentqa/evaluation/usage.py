"""Token usage assertions with exact values, comparisons and anyOf/allOf groups."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from agentqa.evaluation.matchers import match_field
from agentqa.models.matchers import ComparisonMatcher
from agentqa.models.report import TokenUsage
from agentqa.models.result import AssertionResult, FailureReason, combine_results, fail, ok
from agentqa.models.scenario import UsageAssertion

USAGE_FIELDS: tuple[str, ...] = (
    "cache_read_tokens",
    "cache_creation_tokens",
    "input_tokens",
    "output_tokens",
    "total_tokens",
    "call_count",
)


def _usage_field(name: str, actual: int | None, expected: int | float | ComparisonMatcher) -> AssertionResult:
    if actual is None:
        return fail(
            f"{name}: value is undefined",
            expected=expected.describe() if isinstance(expected, ComparisonMatcher) else expected,
            actual=None,
            path=name,
            reason=FailureReason.MISSING_VALUE,
        )

    if isinstance(expected, ComparisonMatcher):
        result = match_field(actual, expected)
        if result.passed:
            return ok(f"{name}: {actual} ({expected.describe()})")
        return result.model_copy(update={"path": name, "message": f"{name}: {result.message[0].lower()}{result.message[1:]}"})

    if actual == expected:
        return ok(f"{name}: {actual}")
    return fail(
        f"{name}: expected {expected}, got {actual}",
        expected=expected,
        actual=actual,
        path=name,
        reason=FailureReason.VALUE_MISMATCH,
    )


def assert_usage(
    usage: TokenUsage | Mapping[str, Any] | None,
    assertion: UsageAssertion | Mapping[str, Any],
) -> AssertionResult:
    """Assert token usage totals.

    Args:
        usage: Step or run usage; None when the agent reported none.
        assertion: Field checks plus optional ``any_of`` (OR) and
            ``all_of`` (AND) groups of nested assertions.
    """
    if not isinstance(assertion, UsageAssertion):
        assertion = UsageAssertion.model_validate(assertion)
    if usage is None:
        return fail(
            "No usage data available",
            expected=assertion.model_dump(exclude_none=True),
            actual=None,
            reason=FailureReason.MISSING_VALUE,
        )
    if not isinstance(usage, TokenUsage):
        usage = TokenUsage.model_validate(usage)

    results: list[AssertionResult] = []
    for name in USAGE_FIELDS:
        expected = getattr(assertion, name)
        if expected is not None:
            results.append(_usage_field(name, getattr(usage, name), expected))

    if assertion.any_of:
        sub_results = [assert_usage(usage, sub) for sub in assertion.any_of]
        passed = [r for r in sub_results if r.passed]
        if passed:
            results.append(ok(f"anyOf: {len(passed)} of {len(sub_results)} conditions passed"))
        else:
            messages = "; ".join(r.message for r in sub_results)
            results.append(
                fail(
                    f"anyOf failed: none of {len(sub_results)} conditions passed: {messages}",
                    expected="at least one condition to pass",
                    actual="all conditions failed",
                    reason=FailureReason.VALUE_MISMATCH,
                )
            )

    if assertion.all_of:
        sub_results = [assert_usage(usage, sub) for sub in assertion.all_of]
        failed = [r for r in sub_results if not r.passed]
        if not failed:
            results.append(ok(f"allOf: all {len(sub_results)} conditions passed"))
        else:
            messages = "; ".join(r.message for r in failed)
            results.append(
                fail(
                    f"allOf failed: {len(failed)} of {len(sub_results)} conditions failed: {messages}",
                    expected="all conditions to pass",
                    actual=f"{len(failed)} failed",
                    reason=FailureReason.VALUE_MISMATCH,
                )
            )

    if not results:
        return ok("No usage assertions to check")
    return combine_results(results)
