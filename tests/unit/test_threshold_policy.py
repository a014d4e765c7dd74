"""Unit tests for ThresholdPolicy: per-IP counting, windowing, ordering, tolerance."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from warden.analysis.policy import Candidate, ThresholdPolicy
from warden.logsource import confirmation_message

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestCounting:
    def test_empty_log_has_no_candidates(self) -> None:
        result = ThresholdPolicy(threshold=10).evaluate("", NOW)
        assert result.candidates == []
        assert result.evaluated_ips == set()
        assert result.unmatched_lines == 0

    def test_at_threshold_is_candidate(self, lines) -> None:
        result = ThresholdPolicy(threshold=10).evaluate(lines.failed("5.5.5.5", 10, NOW), NOW)
        assert result.candidates == [Candidate("5.5.5.5", 10)]

    def test_below_threshold_is_not(self, lines) -> None:
        result = ThresholdPolicy(threshold=10).evaluate(lines.failed("5.5.5.5", 9, NOW), NOW)
        assert result.candidates == []
        assert result.evaluated_ips == {"5.5.5.5"}

    def test_only_failures_count_by_default(self, lines) -> None:
        log = lines.succeeded("1.2.3.4", 50, NOW) + lines.rejected("9.9.9.9", 50, NOW)
        result = ThresholdPolicy(threshold=10).evaluate(log, NOW)
        assert result.candidates == []
        assert result.evaluated_ips == {"1.2.3.4", "9.9.9.9"}

    def test_counted_outcomes_configurable(self, lines) -> None:
        log = lines.failed("9.9.9.9", 5, NOW) + lines.rejected("9.9.9.9", 5, NOW)
        policy = ThresholdPolicy(threshold=10, counted_outcomes=["FAILED", "BLOCKED"])
        assert policy.evaluate(log, NOW).candidates == [Candidate("9.9.9.9", 10)]

    def test_partitioned_by_ip(self, lines) -> None:
        log = lines.failed("5.5.5.5", 6, NOW) + lines.failed("6.6.6.6", 6, NOW)
        assert ThresholdPolicy(threshold=10).evaluate(log, NOW).candidates == []

    def test_candidates_ordered_by_count_then_ip(self, lines) -> None:
        log = (
            lines.failed("7.7.7.7", 12, NOW)
            + lines.failed("5.5.5.5", 30, NOW)
            + lines.failed("6.6.6.6", 12, NOW)
        )
        result = ThresholdPolicy(threshold=10).evaluate(log, NOW)
        assert [c.ip for c in result.candidates] == ["5.5.5.5", "6.6.6.6", "7.7.7.7"]

    def test_invalid_threshold_rejected(self) -> None:
        with pytest.raises(ValueError):
            ThresholdPolicy(threshold=0)


class TestMalformedInput:
    def test_garbage_lines_are_skipped_and_counted(self, lines) -> None:
        log = (
            "total garbage\n"
            + lines.failed("5.5.5.5", 10, NOW)
            + "\n\n"
            + "2024-05-01T11:00:00Z - Login attempt from\n"
            + lines.line("Running security agent...", NOW)
        )
        result = ThresholdPolicy(threshold=10).evaluate(log, NOW)
        assert result.candidates == [Candidate("5.5.5.5", 10)]
        assert result.unmatched_lines == 3

    def test_truncated_final_line_is_ignored(self, lines) -> None:
        log = lines.failed("5.5.5.5", 10, NOW) + "2024-05-01T12:00:00.000Z - Login attempt from 5.5"
        assert ThresholdPolicy(threshold=10).evaluate(log, NOW).candidates[0].count == 10


class TestWindow:
    def test_records_outside_window_are_ignored(self, lines) -> None:
        old = NOW - timedelta(hours=2)
        log = lines.failed("5.5.5.5", 20, old) + lines.failed("5.5.5.5", 5, NOW)
        policy = ThresholdPolicy(threshold=10, window_seconds=3600)
        result = policy.evaluate(log, NOW)
        assert result.candidates == []
        assert result.evaluated_ips == {"5.5.5.5"}

    def test_records_inside_window_count(self, lines) -> None:
        recent = NOW - timedelta(minutes=30)
        policy = ThresholdPolicy(threshold=10, window_seconds=3600)
        assert policy.evaluate(lines.failed("5.5.5.5", 10, recent), NOW).candidates == [
            Candidate("5.5.5.5", 10)
        ]

    def test_unparseable_timestamps_skipped_when_windowed(self) -> None:
        log = "someday - Login attempt from 5.5.5.5 - FAILED\n" * 20
        assert ThresholdPolicy(threshold=10, window_seconds=3600).evaluate(log, NOW).candidates == []

    def test_unparseable_timestamps_count_without_window(self) -> None:
        log = "someday - Login attempt from 5.5.5.5 - FAILED\n" * 20
        assert ThresholdPolicy(threshold=10).evaluate(log, NOW).candidates == [
            Candidate("5.5.5.5", 20)
        ]


class TestEnforcement:
    def test_confirmed_block_is_not_a_candidate(self, lines) -> None:
        log = (
            lines.failed("5.5.5.5", 30, NOW)
            + lines.line(confirmation_message("5.5.5.5"), NOW)
            + lines.failed("6.6.6.6", 10, NOW)
        )
        result = ThresholdPolicy(threshold=10).evaluate(log, NOW)
        assert result.candidates == [Candidate("6.6.6.6", 10)]
        assert result.enforced_ips == {"5.5.5.5"}

    def test_rejected_attempt_marks_enforced(self, lines) -> None:
        log = lines.failed("5.5.5.5", 10, NOW) + lines.rejected("5.5.5.5", 1, NOW)
        result = ThresholdPolicy(threshold=10).evaluate(log, NOW)
        assert result.candidates == []
        assert result.enforced_ips == {"5.5.5.5"}

    def test_counted_attempt_after_enforcement_requalifies(self, lines) -> None:
        log = (
            lines.failed("5.5.5.5", 10, NOW)
            + lines.line(confirmation_message("5.5.5.5"), NOW)
            + lines.failed("5.5.5.5", 1, NOW)
        )
        result = ThresholdPolicy(threshold=10).evaluate(log, NOW)
        assert result.candidates == [Candidate("5.5.5.5", 11)]
        assert result.enforced_ips == set()

    def test_enforcement_outside_window_still_applies(self, lines) -> None:
        old = NOW - timedelta(hours=2)
        log = lines.failed("5.5.5.5", 10, NOW - timedelta(minutes=5)) + lines.line(
            confirmation_message("5.5.5.5"), old
        )
        result = ThresholdPolicy(threshold=10, window_seconds=3600).evaluate(log, NOW)
        assert result.candidates == []

    def test_forwarded_chain_is_counted_as_one_client(self, lines) -> None:
        chain = "203.0.113.7, 10.0.0.1"
        result = ThresholdPolicy(threshold=10).evaluate(lines.failed(chain, 10, NOW), NOW)
        assert result.candidates == [Candidate(chain, 10)]
        assert result.unmatched_lines == 0
