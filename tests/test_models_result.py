"""Tests for agentqa.models.result - AssertionResult and combine_results."""

from __future__ import annotations

import pytest

from agentqa.models.result import (
    AssertionResult,
    FailureReason,
    combine_results,
    fail,
    iter_failures,
    ok,
)


class TestConstructors:
    def test_ok_is_passing(self) -> None:
        result = ok("fine")
        assert result.passed is True
        assert result.message == "fine"
        assert result.reason is None

    def test_fail_carries_context(self) -> None:
        result = fail(
            "Expected 1, got 2",
            expected=1,
            actual=2,
            path="count",
            reason=FailureReason.VALUE_MISMATCH,
        )
        assert result.passed is False
        assert result.expected == 1
        assert result.actual == 2
        assert result.path == "count"
        assert result.reason == FailureReason.VALUE_MISMATCH

    def test_results_are_frozen(self) -> None:
        result = ok("fine")
        with pytest.raises(Exception):
            result.passed = False  # type: ignore[misc]


class TestCombineResults:
    def test_all_pass(self) -> None:
        combined = combine_results([ok("a"), ok("b")])
        assert combined.passed is True
        assert combined.message == "All 2 assertions passed"

    def test_empty_is_identity_pass(self) -> None:
        combined = combine_results([])
        assert combined.passed is True
        assert combined.message == "All 0 assertions passed"

    def test_one_failure(self) -> None:
        combined = combine_results([ok("a"), fail("x failed"), ok("c")])
        assert combined.passed is False
        assert combined.message == "1 of 3 assertions failed: x failed"
        assert combined.reason == FailureReason.COMBINED
        assert [f.message for f in combined.failures] == ["x failed"]

    def test_failure_messages_joined_in_order(self) -> None:
        combined = combine_results([fail("first"), ok("b"), fail("second")])
        assert combined.message == "2 of 3 assertions failed: first; second"

    def test_nested_failures_are_flattened(self) -> None:
        inner = combine_results([fail("a"), fail("b")])
        combined = combine_results([inner, fail("c")])
        assert [f.message for f in combined.failures] == ["a", "b", "c"]

    def test_grouping_does_not_change_failures(self) -> None:
        a, b, c = fail("a"), ok("b"), fail("c")
        left = combine_results([combine_results([a, b]), c])
        right = combine_results([a, combine_results([b, c])])
        assert left.passed == right.passed
        assert [f.message for f in left.failures] == [f.message for f in right.failures]
        assert left.message == right.message == combine_results([a, b, c]).message

    def test_counts_leaf_assertions(self) -> None:
        a, b, c = fail("a"), fail("b"), ok("c")
        combined = combine_results([combine_results([a, b]), c])
        assert combined.message == "2 of 3 assertions failed: a; b"
        assert combined.assertion_count == 3

    def test_empty_pass_leaves_message_unchanged(self) -> None:
        a = fail("a")
        assert combine_results([combine_results([]), a]).message == combine_results([a]).message
        assert combine_results([combine_results([]), ok("b")]).message == "All 1 assertions passed"

    def test_and_operator(self) -> None:
        combined = ok("a") & fail("b")
        assert isinstance(combined, AssertionResult)
        assert combined.passed is False


class TestIterFailures:
    def test_passing_result_yields_nothing(self) -> None:
        assert list(iter_failures(ok("fine"))) == []

    def test_walks_nested_failures(self) -> None:
        leaf = fail("leaf", reason=FailureReason.TOOL_INPUT_MISMATCH)
        parent = fail("parent", failures=[leaf])
        messages = [f.message for f in iter_failures(parent)]
        assert messages == ["parent", "leaf"]

    def test_round_trips_through_json(self) -> None:
        combined = combine_results([fail("a", reason=FailureReason.MISSING_VALUE), ok("b")])
        restored = AssertionResult.model_validate_json(combined.model_dump_json())
        assert restored == combined
