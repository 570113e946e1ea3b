"""Tool-call assertions -- validates counts, inputs and outputs of tool calls.

Two grammars are accepted:
- simple: ``{toolName: count | {min, max}}``
- full: a list of ToolAssertion (``name``, ``not_called``, ``count``,
  ``input``, ``output``)

Input and output checks must hold for EVERY call with the tool's name.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence
from typing import Any

from agentqa.evaluation.aliases import MatcherContext
from agentqa.evaluation.matchers import MISSING, match_field
from agentqa.models.matchers import FieldMatcher
from agentqa.models.report import ToolCall
from agentqa.models.result import AssertionResult, FailureReason, combine_results, fail, ok
from agentqa.models.scenario import CountExpectation, CountRange, ToolAssertion


def check_count(actual: int, expected: CountExpectation | Mapping[str, Any]) -> tuple[str, Any] | None:
    """Compare a count against an exact or ``{min, max}`` expectation.

    Returns:
        None when satisfied, else ``(phrase, expected_description)`` where
        phrase reads like ``"expected at least 2"``.
    """
    if isinstance(expected, bool):
        raise ValueError(f"Invalid count expectation: {expected!r}")
    if isinstance(expected, int):
        if actual != expected:
            return f"expected {expected}", expected
        return None

    bounds = expected if isinstance(expected, CountRange) else CountRange.model_validate(expected)
    if bounds.min is not None and actual < bounds.min:
        return f"expected at least {bounds.min}", f">= {bounds.min}"
    if bounds.max is not None and actual > bounds.max:
        return f"expected at most {bounds.max}", f"<= {bounds.max}"
    return None


def _count_result(tool_name: str, actual: int, expected: CountExpectation | Mapping[str, Any]) -> AssertionResult | None:
    mismatch = check_count(actual, expected)
    if mismatch is None:
        return None
    phrase, expected_desc = mismatch
    return fail(
        f"{tool_name}: {phrase} call(s), got {actual}",
        expected=expected_desc,
        actual=actual,
        path=tool_name,
        reason=FailureReason.TOOL_COUNT_MISMATCH,
    )


def assert_tool_calls(
    tool_calls: Sequence[ToolCall],
    assertions: Mapping[str, Any] | Sequence[ToolAssertion | Mapping[str, Any]],
    context: MatcherContext | None = None,
) -> AssertionResult:
    """Assert tool calls match expectations in either grammar.

    Args:
        tool_calls: Calls emitted by the agent, in order.
        assertions: Simple mapping or list of full assertions (raw dicts
            are validated into ToolAssertion).
        context: Matcher context for ``$ref`` values in input/output checks.

    Returns:
        Combined AssertionResult over every tool named.
    """
    if isinstance(assertions, Mapping):
        return _assert_simple(tool_calls, assertions)

    context = context or MatcherContext()
    results = [
        _assert_single(
            tool_calls,
            a if isinstance(a, ToolAssertion) else ToolAssertion.model_validate(a),
            context,
        )
        for a in assertions
    ]
    return combine_results(results)


def _assert_simple(tool_calls: Sequence[ToolCall], assertions: Mapping[str, Any]) -> AssertionResult:
    counts = Counter(call.name for call in tool_calls)
    results: list[AssertionResult] = []

    for tool_name, expected in assertions.items():
        actual = counts.get(tool_name, 0)
        failure = _count_result(tool_name, actual, expected)
        if failure is not None:
            results.append(failure)
        elif isinstance(expected, int):
            results.append(ok(f"{tool_name}: called {actual} time(s)"))
        else:
            results.append(ok(f"{tool_name}: called {actual} time(s) (within range)"))

    return combine_results(results)


def _assert_single(
    tool_calls: Sequence[ToolCall],
    assertion: ToolAssertion,
    context: MatcherContext,
) -> AssertionResult:
    tool_name = assertion.name
    matching = [call for call in tool_calls if call.name == tool_name]

    if assertion.not_called:
        if not matching:
            return ok(f"{tool_name}: not called as expected")
        return fail(
            f"{tool_name}: expected not to be called, but was called {len(matching)} time(s)",
            expected=0,
            actual=len(matching),
            path=tool_name,
            reason=FailureReason.TOOL_COUNT_MISMATCH,
        )

    if assertion.count is not None:
        failure = _count_result(tool_name, len(matching), assertion.count)
        if failure is not None:
            return failure

    if not matching:
        if assertion.input is not None or assertion.output is not None:
            return fail(
                f"{tool_name}: expected at least one call to check input/output",
                expected=">= 1",
                actual=0,
                path=tool_name,
                reason=FailureReason.TOOL_COUNT_MISMATCH,
            )
        if assertion.count is None:
            return ok(f"{tool_name}: no calls (no count requirement specified)")

    sub_results: list[AssertionResult] = []
    if assertion.input is not None:
        sub_results.extend(
            _assert_call_fields(call, i, "input", call.args, assertion.input, context)
            for i, call in enumerate(matching)
        )
    if assertion.output is not None:
        sub_results.extend(_assert_call_output(call, i, assertion.output, context) for i, call in enumerate(matching))

    if not sub_results:
        return ok(f"{tool_name}: {len(matching)} call(s) matched")
    return combine_results(sub_results)


def _assert_call_fields(
    call: ToolCall,
    index: int,
    section: str,
    values: Mapping[str, Any],
    checks: Mapping[str, FieldMatcher],
    context: MatcherContext,
) -> AssertionResult:
    failures: list[AssertionResult] = []
    for field, matcher in checks.items():
        result = match_field(values.get(field, MISSING), matcher, context)
        if not result.passed:
            failures.append(
                result.model_copy(
                    update={
                        "path": f"[{index}].{section}.{field}",
                        "message": f"{call.name}[{index}].{section}.{field}: {result.message}",
                    }
                )
            )

    if not failures:
        return ok(f"{call.name}[{index}]: {section} matched")

    reason = FailureReason.TOOL_INPUT_MISMATCH if section == "input" else FailureReason.TOOL_OUTPUT_MISMATCH
    return fail(
        f"{call.name}[{index}]: {len(failures)} {section} assertion(s) failed",
        path=f"[{index}].{section}",
        reason=reason,
        failures=failures,
    )


def _assert_call_output(
    call: ToolCall,
    index: int,
    checks: Mapping[str, FieldMatcher],
    context: MatcherContext,
) -> AssertionResult:
    if call.result is None:
        return fail(
            f"{call.name}[{index}]: no result available to check output",
            expected={k: m.describe() for k, m in checks.items()},
            actual=None,
            path=f"[{index}].output",
            reason=FailureReason.TOOL_OUTPUT_MISMATCH,
        )
    if not isinstance(call.result, Mapping):
        return fail(
            f"{call.name}[{index}]: result is not an object",
            expected={k: m.describe() for k, m in checks.items()},
            actual=call.result,
            path=f"[{index}].output",
            reason=FailureReason.TOOL_OUTPUT_MISMATCH,
        )
    return _assert_call_fields(call, index, "output", call.result, checks, context)


def count_tool_calls(tool_calls: Sequence[ToolCall]) -> int:
    return len(tool_calls)


def assert_total_tool_calls(
    tool_calls: Sequence[ToolCall],
    expected: CountExpectation | Mapping[str, Any],
) -> AssertionResult:
    """Assert the number of tool calls across all tools."""
    actual = count_tool_calls(tool_calls)
    mismatch = check_count(actual, expected)
    if mismatch is None:
        suffix = "" if isinstance(expected, int) else " (within range)"
        return ok(f"Total tool calls: {actual}{suffix}")

    phrase, expected_desc = mismatch
    return fail(
        f"{phrase.capitalize()} total tool call(s), got {actual}",
        expected=expected_desc,
        actual=actual,
        reason=FailureReason.TOOL_COUNT_MISMATCH,
    )
