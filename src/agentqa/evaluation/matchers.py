"""Value matcher -- checks one observed value against one matcher.

Dispatch is by matcher model class through MATCHER_HANDLERS, which
covers every member of the FieldMatcher union. Supported kinds:
literal, contains / containsAny (optionally whole-word "mentions"),
exists, comparison, regex and ref.
"""

from __future__ import annotations

import json
import operator
import re
from collections.abc import Callable, Mapping
from datetime import date, datetime, timezone
from typing import Any

from agentqa.evaluation.aliases import MatcherContext, resolve_ref
from agentqa.models.matchers import (
    COMPARISON_SYMBOLS,
    ComparisonMatcher,
    ContainsAnyMatcher,
    ContainsMatcher,
    ExistsMatcher,
    FieldMatcher,
    LiteralMatcher,
    RefMatcher,
    RegexMatcher,
    parse_matcher,
)
from agentqa.models.result import AssertionResult, FailureReason, combine_results, fail, ok


class _Missing:
    """Marker for a field that is absent from the row (as opposed to null)."""

    def __repr__(self) -> str:
        return "<missing>"


MISSING: Any = _Missing()


def _display(value: Any) -> Any:
    return None if value is MISSING else value


def _to_json(value: Any) -> str:
    try:
        return json.dumps(_display(value), default=str)
    except (TypeError, ValueError):
        return repr(value)


# ---------------------------------------------------------------------------
# Equality
# ---------------------------------------------------------------------------


def values_equal(actual: Any, expected: Any) -> bool:
    """Deep equality with numeric-string and boolean-string coercion.

    Booleans never equal numbers even though Python treats True == 1.
    """
    if isinstance(expected, bool) or isinstance(actual, bool):
        if isinstance(expected, bool) and isinstance(actual, bool):
            return actual is expected
        if isinstance(expected, bool) and isinstance(actual, str):
            return actual.strip().lower() == str(expected).lower()
        return False

    if isinstance(expected, (int, float)):
        if isinstance(actual, (int, float)):
            return actual == expected
        if isinstance(actual, str):
            try:
                return float(actual) == expected
            except ValueError:
                return False
        return False

    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping) or set(actual) != set(expected):
            return False
        return all(values_equal(actual[k], v) for k, v in expected.items())

    if isinstance(expected, (list, tuple)):
        if not isinstance(actual, (list, tuple)) or len(actual) != len(expected):
            return False
        return all(values_equal(a, e) for a, e in zip(actual, expected))

    return actual == expected


def _match_literal(actual: Any, matcher: LiteralMatcher, context: MatcherContext) -> AssertionResult:
    expected = matcher.value
    if values_equal(actual, expected):
        return ok(f"Value equals {_to_json(expected)}")
    return fail(
        f"Expected {_to_json(expected)}, got {_to_json(actual)}",
        expected=expected,
        actual=actual,
        reason=FailureReason.VALUE_MISMATCH,
    )


# ---------------------------------------------------------------------------
# Contains / mentions
# ---------------------------------------------------------------------------


def keyword_in_text(text: str, keyword: str, whole_word: bool = False, case_sensitive: bool = False) -> bool:
    """Substring or whole-word search; ``task`` does not mention-match ``tasking``."""
    flags = 0 if case_sensitive else re.IGNORECASE
    if whole_word:
        return re.search(rf"\b{re.escape(keyword)}\b", text, flags) is not None
    if case_sensitive:
        return keyword in text
    return keyword.casefold() in text.casefold()


def _in_list(items: list | tuple, keyword: str, case_sensitive: bool) -> bool:
    if case_sensitive:
        return keyword in items
    folded = keyword.casefold()
    return any(item == keyword or (isinstance(item, str) and item.casefold() == folded) for item in items)


def _match_contains(actual: Any, matcher: ContainsMatcher, context: MatcherContext) -> AssertionResult:
    targets = matcher.contains
    if isinstance(actual, str):
        missing = [
            t for t in targets
            if not keyword_in_text(actual, t, matcher.whole_word, matcher.case_sensitive)
        ]
        kind = "String"
    elif isinstance(actual, (list, tuple)):
        missing = [t for t in targets if not _in_list(actual, t, matcher.case_sensitive)]
        kind = "Array"
    else:
        return fail(
            f"Cannot check contains on {type(actual).__name__}",
            expected=matcher.describe(),
            actual=actual,
            reason=FailureReason.VALUE_MISMATCH,
        )

    verb = "mention" if matcher.whole_word else "contain"
    if not missing:
        return ok(f"{kind} does {verb} all of: {', '.join(targets)}")
    return fail(
        f"{kind} does not {verb}: {', '.join(missing)}",
        expected=matcher.describe(),
        actual=actual,
        reason=FailureReason.VALUE_MISMATCH,
    )


def _match_contains_any(actual: Any, matcher: ContainsAnyMatcher, context: MatcherContext) -> AssertionResult:
    targets = matcher.contains_any
    if isinstance(actual, str):
        matched = [t for t in targets if keyword_in_text(actual, t, matcher.whole_word)]
        kind = "String"
    elif isinstance(actual, (list, tuple)):
        matched = [t for t in targets if _in_list(actual, t, case_sensitive=False)]
        kind = "Array"
    else:
        return fail(
            f"Cannot check containsAny on {type(actual).__name__}",
            expected=matcher.describe(),
            actual=actual,
            reason=FailureReason.VALUE_MISMATCH,
        )

    if matched:
        return ok(f"{kind} contains at least one of targets: {', '.join(matched)}")
    return fail(
        f"{kind} does not contain any of: {', '.join(targets)}",
        expected=matcher.describe(),
        actual=actual,
        reason=FailureReason.VALUE_MISMATCH,
    )


# ---------------------------------------------------------------------------
# Exists
# ---------------------------------------------------------------------------


def _match_exists(actual: Any, matcher: ExistsMatcher, context: MatcherContext) -> AssertionResult:
    if actual is MISSING:
        exists = False
    elif actual is None:
        exists = not matcher.null_is_missing
    else:
        exists = True

    if matcher.exists and exists:
        return ok("Field exists")
    if not matcher.exists and not exists:
        return ok("Field does not exist")
    if matcher.exists:
        return fail(
            "Expected field to exist, but it does not",
            expected="exists",
            actual=None,
            reason=FailureReason.MISSING_VALUE,
        )
    return fail(
        "Expected field to not exist, but it does",
        expected="not exists",
        actual=actual,
        reason=FailureReason.VALUE_MISMATCH,
    )


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}


def _comparable(value: Any) -> float | datetime | None:
    """Coerce to a float or an aware datetime; None when neither applies."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _match_comparison(actual: Any, matcher: ComparisonMatcher, context: MatcherContext) -> AssertionResult:
    actual_value = _comparable(actual)

    for op, bound in matcher.bounds():
        symbol = COMPARISON_SYMBOLS[op]

        if op == "ne":
            if values_equal(actual, bound):
                return fail(
                    f"Expected {symbol} {bound}, got {_to_json(actual)}",
                    expected=f"{symbol} {bound}",
                    actual=actual,
                    reason=FailureReason.VALUE_MISMATCH,
                )
            continue

        if actual_value is None:
            return fail(
                f"Cannot compare non-numeric value: {_to_json(actual)}",
                expected=matcher.describe(),
                actual=actual,
                reason=FailureReason.VALUE_MISMATCH,
            )

        bound_value = _comparable(bound)
        if bound_value is None or type(bound_value) is not type(actual_value):
            return fail(
                f"Cannot compare {_to_json(actual)} with {symbol} {bound}",
                expected=f"{symbol} {bound}",
                actual=actual,
                reason=FailureReason.INVALID_ASSERTION,
            )

        if not _OPERATORS[op](actual_value, bound_value):
            return fail(
                f"Expected {symbol} {bound}, got {actual}",
                expected=f"{symbol} {bound}",
                actual=actual,
                reason=FailureReason.VALUE_MISMATCH,
            )

    return ok(f"Value {_to_json(actual)} satisfies {matcher.describe()}")


# ---------------------------------------------------------------------------
# Regex
# ---------------------------------------------------------------------------

_REGEX_FLAGS: dict[str, re.RegexFlag] = {
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}


def _match_regex(actual: Any, matcher: RegexMatcher, context: MatcherContext) -> AssertionResult:
    flags = re.IGNORECASE
    for flag in matcher.flags or "":
        flags |= _REGEX_FLAGS.get(flag, 0)

    try:
        pattern = re.compile(matcher.matches, flags)
    except re.error as exc:
        return fail(
            f"Invalid regex pattern: {matcher.matches} ({exc})",
            expected="valid regex",
            actual=matcher.matches,
            reason=FailureReason.INVALID_ASSERTION,
        )

    text = actual if isinstance(actual, str) else _to_json(actual)
    if pattern.search(text):
        return ok(f"Value {matcher.describe()}")
    return fail(
        f"Value does not match /{matcher.matches}/{matcher.flags or ''}",
        expected=matcher.describe(),
        actual=actual,
        reason=FailureReason.VALUE_MISMATCH,
    )


# ---------------------------------------------------------------------------
# Ref
# ---------------------------------------------------------------------------


def _match_ref(actual: Any, matcher: RefMatcher, context: MatcherContext) -> AssertionResult:
    ref_desc = f"{matcher.alias}.{matcher.field}"
    resolution = resolve_ref(matcher, context)

    if not resolution.found:
        return fail(
            f"Unknown reference: {ref_desc}",
            expected=ref_desc,
            actual=_display(actual),
            reason=FailureReason.UNRESOLVED_REFERENCE,
        )

    expected = resolution.value
    if values_equal(_display(actual), expected):
        return ok(f"Value matches ref {ref_desc}")
    return fail(
        f"Expected {_to_json(expected)} from ref {ref_desc}, got {_to_json(actual)}",
        expected=expected,
        actual=_display(actual),
        reason=FailureReason.VALUE_MISMATCH,
    )


MatcherHandler = Callable[[Any, Any, MatcherContext], AssertionResult]

MATCHER_HANDLERS: dict[type, MatcherHandler] = {
    LiteralMatcher: _match_literal,
    ContainsMatcher: _match_contains,
    ContainsAnyMatcher: _match_contains_any,
    ExistsMatcher: _match_exists,
    ComparisonMatcher: _match_comparison,
    RegexMatcher: _match_regex,
    RefMatcher: _match_ref,
}

# Matchers that decide for themselves what a null/missing value means.
_NULL_AWARE = (ExistsMatcher, RefMatcher)


def match_field(
    actual: Any,
    matcher: FieldMatcher | Any,
    context: MatcherContext | None = None,
) -> AssertionResult:
    """Check *actual* against *matcher* (a typed matcher or a YAML shape).

    A null or missing value fails every matcher except ``exists: false``,
    a literal ``null`` and references (which still report an unresolved
    alias before comparing).

    Raises:
        MatcherError: If a YAML-shaped matcher is malformed.
        TypeError: If the matcher class has no handler.
    """
    matcher = parse_matcher(matcher)
    context = context or MatcherContext()

    if (actual is None or actual is MISSING) and not isinstance(matcher, _NULL_AWARE):
        if isinstance(matcher, LiteralMatcher) and matcher.value is None and actual is None:
            return ok("Value equals null")
        return fail(
            "Field is null or undefined",
            expected=matcher.describe(),
            actual=None,
            reason=FailureReason.MISSING_VALUE,
        )

    handler = MATCHER_HANDLERS.get(type(matcher))
    if handler is None:
        raise TypeError(f"No handler for matcher type {type(matcher).__name__}")
    return handler(actual, matcher, context)


def match_fields(
    row: Mapping[str, Any],
    checks: Mapping[str, FieldMatcher | Any],
    context: MatcherContext | None = None,
) -> AssertionResult:
    """Check every ``{field: matcher}`` pair against *row* and combine the results."""
    results: list[AssertionResult] = []
    for field, matcher in checks.items():
        result = match_field(row.get(field, MISSING), matcher, context)
        if not result.passed:
            result = result.model_copy(
                update={"path": field, "message": f'Field "{field}": {result.message}'}
            )
        results.append(result)
    return combine_results(results)
