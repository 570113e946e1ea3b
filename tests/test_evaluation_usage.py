"""Tests for agentqa.evaluation.usage - token usage assertions."""

from __future__ import annotations

from agentqa.evaluation.usage import assert_usage
from agentqa.models.report import TokenUsage
from agentqa.models.result import FailureReason


def _make_usage(**overrides) -> TokenUsage:
    defaults = {"input_tokens": 1200, "output_tokens": 300, "total_tokens": 1500, "call_count": 2}
    defaults.update(overrides)
    return TokenUsage(**defaults)


class TestAssertUsage:
    def test_no_usage(self) -> None:
        result = assert_usage(None, {"totalTokens": {"lt": 5000}})
        assert not result.passed
        assert result.message == "No usage data available"
        assert result.reason == FailureReason.MISSING_VALUE

    def test_no_checks(self) -> None:
        assert assert_usage(_make_usage(), {}).message == "No usage assertions to check"

    def test_exact(self) -> None:
        assert assert_usage(_make_usage(), {"callCount": 2}).passed
        result = assert_usage(_make_usage(), {"callCount": 1})
        assert result.failures[0].message == "call_count: expected 1, got 2"

    def test_comparison(self) -> None:
        assert assert_usage(_make_usage(), {"totalTokens": {"lt": 5000}}).passed
        result = assert_usage(_make_usage(), {"totalTokens": {"lte": 1000}})
        failure = result.failures[0]
        assert failure.message == "total_tokens: expected <= 1000, got 1500"
        assert failure.path == "total_tokens"

    def test_undefined_field(self) -> None:
        result = assert_usage(_make_usage(), {"cacheReadTokens": {"gt": 0}})
        assert result.failures[0].message == "cache_read_tokens: value is undefined"
        assert result.failures[0].reason == FailureReason.MISSING_VALUE

    def test_accepts_mapping_usage(self) -> None:
        usage = {"input_tokens": 10, "output_tokens": 5, "total_tokens": 15}
        assert assert_usage(usage, {"totalTokens": 15}).passed

    def test_any_of(self) -> None:
        assertion = {"anyOf": [{"totalTokens": {"lt": 100}}, {"callCount": 2}]}
        result = assert_usage(_make_usage(), assertion)
        assert result.passed
        assert result.message == "All 1 assertions passed"

    def test_any_of_all_fail(self) -> None:
        assertion = {"anyOf": [{"totalTokens": {"lt": 100}}, {"callCount": 5}]}
        result = assert_usage(_make_usage(), assertion)
        assert not result.passed
        assert result.failures[0].message.startswith("anyOf failed: none of 2 conditions passed")

    def test_all_of(self) -> None:
        assertion = {"allOf": [{"inputTokens": {"gt": 1000}}, {"outputTokens": {"lt": 100}}]}
        result = assert_usage(_make_usage(), assertion)
        assert not result.passed
        assert result.failures[0].message.startswith("allOf failed: 1 of 2 conditions failed")

    def test_cache_tokens(self) -> None:
        usage = _make_usage(cache_read_tokens=800)
        assert assert_usage(usage, {"cacheReadTokens": {"gte": 500}}).passed
