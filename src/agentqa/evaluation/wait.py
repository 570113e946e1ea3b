"""Wait conditions -- poll an entity predicate until it holds or time runs out.

A timeout is a business-rule failure and comes back as a failing
AssertionResult tagged WAIT_TIMEOUT; nothing here raises on timeout.
Exceptions raised by a poll are retried until the deadline.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from agentqa.evaluation.aliases import MatcherContext, describe_identifier, resolve_identifier, resolve_value
from agentqa.evaluation.entity import EntityQueryAdapter, find_entity
from agentqa.evaluation.matchers import match_fields
from agentqa.evaluation.tools import check_count
from agentqa.models.config import WaitConfig
from agentqa.models.matchers import FieldMatcher, parse_matcher
from agentqa.models.report import EntityRow
from agentqa.models.result import AssertionResult, FailureReason, fail, ok
from agentqa.models.scenario import CountExpectation, CountRange, WaitCondition

_DEFAULTS = WaitConfig()

OnPoll = Callable[[int], None]


@dataclass
class PollResult:
    """Outcome of one evaluation of a wait predicate."""

    success: bool
    value: Any = None
    message: str | None = None


@dataclass
class WaitOutcome:
    success: bool
    message: str
    attempts: int
    value: Any = None


async def wait_for(
    condition: Callable[[], Awaitable[PollResult]],
    timeout_ms: int = _DEFAULTS.timeout_ms,
    interval_ms: int = _DEFAULTS.interval_ms,
    on_poll: OnPoll | None = None,
) -> WaitOutcome:
    """Evaluate *condition* until it succeeds or *timeout_ms* elapses.

    The condition is always evaluated at least once. ``on_poll`` receives
    the 1-based attempt number before each evaluation.

    Args:
        condition: Async predicate returning a PollResult.
        timeout_ms: Overall deadline in milliseconds.
        interval_ms: Sleep between attempts in milliseconds.
        on_poll: Optional per-attempt callback.

    Returns:
        WaitOutcome with the last message, the last polled value and the
        number of attempts.
    """
    start = time.monotonic()
    attempts = 0
    last_value: Any = None

    while True:
        attempts += 1
        if on_poll is not None:
            on_poll(attempts)

        try:
            result = await condition()
        except Exception as exc:
            message = f"Error after {attempts} attempts: {exc}"
        else:
            if result.success:
                return WaitOutcome(True, result.message or "Condition met", attempts, result.value)
            last_value = result.value
            message = result.message or f"Timeout after {attempts} attempts"

        elapsed_ms = (time.monotonic() - start) * 1000
        if elapsed_ms >= timeout_ms:
            return WaitOutcome(False, message, attempts, last_value)

        await asyncio.sleep(interval_ms / 1000)


async def wait_for_entity(
    adapter: EntityQueryAdapter,
    entity_type: str,
    *,
    id: str | None = None,
    title: str | None = None,
    fields: Mapping[str, FieldMatcher | Any] | None = None,
    context: MatcherContext | None = None,
    timeout_ms: int = _DEFAULTS.timeout_ms,
    interval_ms: int = _DEFAULTS.interval_ms,
    on_poll: OnPoll | None = None,
) -> tuple[AssertionResult, EntityRow | None]:
    """Poll until the row identified by *id* or *title* exists and matches *fields*.

    Returns:
        The result and, on success, the matching row.
    """
    if not id and not title:
        return fail("No identifier provided", reason=FailureReason.INVALID_ASSERTION), None

    async def condition() -> PollResult:
        row = await find_entity(adapter, entity_type, id=id, title=title)
        if row is None:
            desc = id if id else f'title="{title}"'
            return PollResult(False, message=f"Entity not found: {desc}")
        matched = match_fields(row, fields or {}, context)
        if matched.passed:
            return PollResult(True, value=row)
        return PollResult(False, message=matched.message)

    outcome = await wait_for(condition, timeout_ms, interval_ms, on_poll)
    if outcome.success:
        return ok(f"Entity matched after {outcome.attempts} poll(s)"), outcome.value
    return (
        fail(
            f"Wait failed: {outcome.message}",
            expected={k: parse_matcher(m).describe() for k, m in (fields or {}).items()} or "entity exists",
            actual=None,
            path=entity_type,
            reason=FailureReason.WAIT_TIMEOUT,
        ),
        None,
    )


def _range_desc(expected: CountRange | Mapping[str, Any]) -> str:
    bounds = expected if isinstance(expected, CountRange) else CountRange.model_validate(expected)
    parts = []
    if bounds.min is not None:
        parts.append(f">= {bounds.min}")
    if bounds.max is not None:
        parts.append(f"<= {bounds.max}")
    return " and ".join(parts) or "any"


async def wait_for_entity_count(
    adapter: EntityQueryAdapter,
    entity_type: str,
    expected: CountExpectation | Mapping[str, Any],
    filters: Mapping[str, Any] | None = None,
    *,
    timeout_ms: int = _DEFAULTS.timeout_ms,
    interval_ms: int = _DEFAULTS.interval_ms,
    on_poll: OnPoll | None = None,
) -> AssertionResult:
    """Poll until ``len(adapter.list(entity_type, filters))`` satisfies *expected*."""

    async def condition() -> PollResult:
        actual = len(await adapter.list(entity_type, filters))
        mismatch = check_count(actual, expected)
        if mismatch is None:
            return PollResult(True, value=actual, message=f"Count is {actual}")
        _, expected_desc = mismatch
        return PollResult(False, value=actual, message=f"Count is {actual}, expected {expected_desc}")

    outcome = await wait_for(condition, timeout_ms, interval_ms, on_poll)
    if outcome.success:
        return ok(f"Entity count matched after {outcome.attempts} poll(s): {outcome.message}")
    return fail(
        f"Wait for count failed: {outcome.message}",
        expected=expected if isinstance(expected, int) else _range_desc(expected),
        actual=outcome.value,
        path=entity_type,
        reason=FailureReason.WAIT_TIMEOUT,
    )


async def execute_wait_condition(
    condition: WaitCondition | Mapping[str, Any],
    adapter: EntityQueryAdapter,
    context: MatcherContext | None = None,
    *,
    timeout_ms: int = _DEFAULTS.timeout_ms,
    interval_ms: int = _DEFAULTS.interval_ms,
    on_poll: OnPoll | None = None,
) -> AssertionResult:
    """Run a wait step's condition.

    A condition with ``count`` is an entity-count predicate over
    ``list(entity, filters)`` (``$ref`` filter values are resolved first);
    otherwise the row identified by ``id`` or ``title`` must exist and
    match ``fields``.
    """
    if not isinstance(condition, WaitCondition):
        condition = WaitCondition.model_validate(condition)
    context = context or MatcherContext()

    if condition.count is not None:
        filters = None
        if condition.filters is not None:
            filters = {
                k: resolve_value(v, context) if isinstance(v, str) else v
                for k, v in condition.filters.items()
            }
        return await wait_for_entity_count(
            adapter,
            condition.entity,
            condition.count,
            filters,
            timeout_ms=timeout_ms,
            interval_ms=interval_ms,
            on_poll=on_poll,
        )

    entity_id: str | None = None
    if condition.id is not None:
        entity_id = resolve_identifier(condition.id, context)
        if entity_id is None:
            return fail(
                f"Cannot resolve entity id: {describe_identifier(condition.id)}",
                expected=describe_identifier(condition.id),
                actual=None,
                reason=FailureReason.UNRESOLVED_REFERENCE,
            )

    result, _ = await wait_for_entity(
        adapter,
        condition.entity,
        id=entity_id,
        title=condition.title,
        fields=condition.fields,
        context=context,
        timeout_ms=timeout_ms,
        interval_ms=interval_ms,
        on_poll=on_poll,
    )
    return result
