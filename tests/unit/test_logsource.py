"""Unit tests for warden/logsource.py: line format, parsing, and async file I/O."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from warden.errors import LogUnreadable, LogWriteFailed
from warden.logsource import (
    LogRecord,
    LogSource,
    attempt_message,
    blocked_message,
    confirmation_message,
    format_timestamp,
    parse_confirmation,
    parse_record,
    parse_timestamp,
    record,
)

pytestmark = pytest.mark.asyncio


class TestFormatting:
    def test_messages(self) -> None:
        assert attempt_message("1.2.3.4", admitted=True) == "Login attempt from 1.2.3.4 - SUCCESS"
        assert attempt_message("1.2.3.4", admitted=False) == "Login attempt from 1.2.3.4 - FAILED"
        assert blocked_message("1.2.3.4") == "Blocked login attempt from 1.2.3.4"

    def test_timestamp_is_iso_utc_with_z(self) -> None:
        moment = datetime(2024, 5, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)
        assert format_timestamp(moment) == "2024-05-01T12:30:45.123Z"

    def test_timestamp_round_trip(self) -> None:
        moment = datetime(2024, 5, 1, 12, 30, 45, 123000, tzinfo=timezone.utc)
        assert parse_timestamp(format_timestamp(moment)) == moment

    def test_naive_timestamp_assumed_utc(self) -> None:
        assert parse_timestamp("2024-05-01T12:00:00") == datetime(
            2024, 5, 1, 12, tzinfo=timezone.utc
        )

    def test_garbage_timestamp_is_none(self) -> None:
        assert parse_timestamp("yesterday-ish") is None


class TestParseRecord:
    def test_failed_line(self) -> None:
        rec = parse_record("2024-05-01T12:00:00.000Z - Login attempt from 5.5.5.5 - FAILED")
        assert rec == LogRecord(
            timestamp=datetime(2024, 5, 1, 12, tzinfo=timezone.utc),
            ip="5.5.5.5",
            outcome="FAILED",
        )

    def test_success_line(self) -> None:
        rec = parse_record("2024-05-01T12:00:00.000Z - Login attempt from 1.2.3.4 - SUCCESS\n")
        assert rec is not None and rec.outcome == "SUCCESS" and rec.ip == "1.2.3.4"

    def test_blocked_line(self) -> None:
        rec = parse_record("2024-05-01T12:00:00.000Z - Blocked login attempt from 9.9.9.9")
        assert rec is not None and rec.outcome == "BLOCKED" and rec.ip == "9.9.9.9"

    def test_bad_timestamp_still_parses_outcome(self) -> None:
        rec = parse_record("not-a-time - Login attempt from 5.5.5.5 - FAILED")
        assert rec is not None
        assert rec.timestamp is None
        assert rec.ip == "5.5.5.5"

    @pytest.mark.parametrize("admitted", [True, False])
    def test_forwarded_chain_is_kept_whole(self, admitted: bool) -> None:
        chain = "203.0.113.7, 10.0.0.1"
        rec = parse_record(f"2024-05-01T12:00:00.000Z - {attempt_message(chain, admitted)}")
        assert rec is not None and rec.ip == chain

        rec = parse_record(f"2024-05-01T12:00:00.000Z - {blocked_message(chain)}")
        assert rec is not None and rec.ip == chain and rec.outcome == "BLOCKED"

    def test_confirmation_line(self) -> None:
        line = f"2024-05-01T12:00:00.000Z - {confirmation_message('203.0.113.7, 10.0.0.1')}"
        assert parse_confirmation(line) == "203.0.113.7, 10.0.0.1"
        assert parse_record(line) is None
        assert parse_confirmation("2024-05-01T12:00:00.000Z - Blocked login attempt from 1.2.3.4") is None

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "garbage",
            "2024-05-01T12:00:00.000Z - IP 5.5.5.5 has been blocked",
            "2024-05-01T12:00:00.000Z - Login attempt from 5.5.5.5 - MAYBE",
            "2024-05-01T12:00:00.000Z - Login attempt from 5.5.5.5 - FAI",
            "2024-05-01T12:00:00.000Z - Running security agent...",
        ],
    )
    def test_non_outcome_lines_are_none(self, line: str) -> None:
        assert parse_record(line) is None


class TestLogSourceIO:
    async def test_append_then_read(self, log_source: LogSource) -> None:
        await log_source.append(attempt_message("1.2.3.4", admitted=True))
        await log_source.append(blocked_message("9.9.9.9"))

        content = await log_source.read()
        rows = content.splitlines()
        assert len(rows) == 2
        assert rows[0].endswith(" - Login attempt from 1.2.3.4 - SUCCESS")
        assert parse_record(rows[1]).outcome == "BLOCKED"  # type: ignore[union-attr]

    async def test_newlines_in_message_stay_on_one_line(self, log_source: LogSource) -> None:
        await log_source.append("Login attempt from 1.2.3.4\n2024-01-01T00:00:00Z - forged")
        content = await log_source.read()
        assert len(content.splitlines()) == 1

    async def test_concurrent_appends_are_all_whole_lines(self, log_source: LogSource) -> None:
        await asyncio.gather(
            *(log_source.append(attempt_message(f"10.0.0.{i}", admitted=False)) for i in range(50))
        )
        rows = (await log_source.read()).splitlines()
        assert len(rows) == 50
        assert all(parse_record(row) is not None for row in rows)

    async def test_read_missing_file_raises_log_unreadable(self, tmp_path: Path) -> None:
        source = LogSource(str(tmp_path / "absent.log"), timeout_ms=1_000)
        with pytest.raises(LogUnreadable):
            await source.read()

    async def test_read_directory_raises_log_unreadable(self, tmp_path: Path) -> None:
        source = LogSource(str(tmp_path), timeout_ms=1_000)
        with pytest.raises(LogUnreadable):
            await source.read()

    async def test_read_tolerates_invalid_utf8(self, log_path: Path, log_source: LogSource) -> None:
        log_path.write_bytes(b"\xff\xfe broken\n2024-05-01T12:00:00Z - Login attempt from 1.1.1.1 - FAILED\n")
        content = await log_source.read()
        assert "Login attempt from 1.1.1.1 - FAILED" in content

    async def test_append_into_missing_directory_raises(self, tmp_path: Path) -> None:
        source = LogSource(str(tmp_path / "nope" / "login.log"), timeout_ms=1_000)
        with pytest.raises(LogWriteFailed):
            await source.append("hello")

    async def test_record_swallows_append_failure(self, tmp_path: Path) -> None:
        source = LogSource(str(tmp_path / "nope" / "login.log"), timeout_ms=1_000)
        # Must not raise: the request path never fails on log I/O.
        await record(source, "Login attempt from 1.2.3.4 - FAILED", level="error")

    async def test_appended_timestamp_is_recent(self, log_source: LogSource) -> None:
        await log_source.append(attempt_message("1.2.3.4", admitted=False))
        rec = parse_record((await log_source.read()).splitlines()[0])
        assert rec is not None and rec.timestamp is not None
        assert datetime.now(timezone.utc) - rec.timestamp < timedelta(seconds=5)
