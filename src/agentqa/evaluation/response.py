"""Response text assertions.

- mentions / mentions_any / not_mentions: case-insensitive, whole word
- contains: case-sensitive substring
- contains_any: case-insensitive substring, any one suffices
- matches: case-insensitive regex
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from agentqa.evaluation.matchers import keyword_in_text
from agentqa.models.result import AssertionResult, FailureReason, combine_results, fail, ok
from agentqa.models.scenario import ResponseAssertion


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def _mentions(text: str, term: str) -> AssertionResult:
    if keyword_in_text(text, term, whole_word=True):
        return ok(f'Response mentions "{term}"')
    return fail(
        f'Response does not mention "{term}"',
        expected=f'mentions "{term}"',
        actual=truncate_text(text, 100),
        reason=FailureReason.VALUE_MISMATCH,
    )


def _not_mentions(text: str, term: str) -> AssertionResult:
    if not keyword_in_text(text, term, whole_word=True):
        return ok(f'Response does not mention "{term}"')
    return fail(
        f'Response unexpectedly mentions "{term}"',
        expected=f'does not mention "{term}"',
        actual=truncate_text(text, 100),
        reason=FailureReason.VALUE_MISMATCH,
    )


def _mentions_any(text: str, terms: list[str]) -> AssertionResult:
    for term in terms:
        if keyword_in_text(text, term, whole_word=True):
            return ok(f'Response mentions "{term}" (1 of {len(terms)} options)')
    return fail(
        f"Response does not mention any of: {', '.join(terms)}",
        expected=f"mentions one of: {', '.join(terms)}",
        actual=truncate_text(text, 100),
        reason=FailureReason.VALUE_MISMATCH,
    )


def _contains(text: str, substring: str) -> AssertionResult:
    if keyword_in_text(text, substring, case_sensitive=True):
        return ok(f'Response contains "{truncate_text(substring, 30)}"')
    return fail(
        f'Response does not contain "{truncate_text(substring, 30)}"',
        expected=f'contains "{substring}"',
        actual=truncate_text(text, 100),
        reason=FailureReason.VALUE_MISMATCH,
    )


def _contains_any(text: str, substrings: list[str]) -> AssertionResult:
    for substring in substrings:
        if keyword_in_text(text, substring):
            return ok(f'Response contains "{substring}" (1 of {len(substrings)} options)')
    return fail(
        f"Response does not contain any of: {', '.join(substrings)}",
        expected=f"contains one of: {', '.join(substrings)}",
        actual=truncate_text(text, 100),
        reason=FailureReason.VALUE_MISMATCH,
    )


def _matches(text: str, pattern: str) -> AssertionResult:
    try:
        compiled = re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        return fail(
            f"Invalid regex pattern: {pattern}",
            expected="valid regex",
            actual=str(exc),
            reason=FailureReason.INVALID_ASSERTION,
        )
    if compiled.search(text):
        return ok(f"Response matches /{pattern}/")
    return fail(
        f"Response does not match /{pattern}/",
        expected=f"matches /{pattern}/",
        actual=truncate_text(text, 100),
        reason=FailureReason.VALUE_MISMATCH,
    )


def assert_response(text: str, assertion: ResponseAssertion | Mapping[str, Any]) -> AssertionResult:
    """Check the agent's response text against every populated check."""
    if not isinstance(assertion, ResponseAssertion):
        assertion = ResponseAssertion.model_validate(assertion)

    results: list[AssertionResult] = []
    for term in assertion.mentions or []:
        results.append(_mentions(text, term))
    if assertion.mentions_any:
        results.append(_mentions_any(text, assertion.mentions_any))
    for term in assertion.not_mentions or []:
        results.append(_not_mentions(text, term))
    for substring in assertion.contains or []:
        results.append(_contains(text, substring))
    if assertion.contains_any:
        results.append(_contains_any(text, assertion.contains_any))
    if assertion.matches:
        results.append(_matches(text, assertion.matches))

    if not results:
        return ok("No response assertions specified")
    return combine_results(results)
