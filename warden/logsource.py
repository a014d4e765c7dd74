"""Append-only login log shared by the request gate and the threat analyzer.

Line format (one record per line):

    <ISO-8601 UTC timestamp> - <message>

Outcome messages written by the gate:

    Login attempt from <ip> - SUCCESS
    Login attempt from <ip> - FAILED
    Blocked login attempt from <ip>

Other lines (analyzer audit entries, anything appended by hand) are allowed and
simply carry no outcome. Readers never take a lock: each append is a single
write to a file opened with O_APPEND, and a read returns whatever complete
content exists at that instant.

File I/O runs in the default thread executor so it never blocks the event loop.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Optional

from warden.errors import LogUnreadable, LogWriteFailed
from warden.utils.logger import get_logger

logger = get_logger(__name__)

Outcome = Literal["SUCCESS", "FAILED", "BLOCKED"]

_LINE_SEPARATOR = " - "
_NEWLINES_RE = re.compile(r"[\r\n]+")

# The ip group is the raw x-forwarded-for value, so it may hold ", " separated hops.
_ATTEMPT_RE = re.compile(r"^Login attempt from (?P<ip>.+) - (?P<outcome>SUCCESS|FAILED)$")
_BLOCKED_RE = re.compile(r"^Blocked login attempt from (?P<ip>.+)$")
_CONFIRMATION_RE = re.compile(r"^IP (?P<ip>.+) has been blocked$")


# ─── Records ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LogRecord:
    """One parsed outcome line. timestamp is None when it failed to parse."""

    timestamp: Optional[datetime]
    ip: str
    outcome: Outcome


def attempt_message(ip: str, admitted: bool) -> str:
    return f"Login attempt from {ip} - {'SUCCESS' if admitted else 'FAILED'}"


def blocked_message(ip: str) -> str:
    return f"Blocked login attempt from {ip}"


def confirmation_message(ip: str) -> str:
    return f"IP {ip} has been blocked"


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a trailing Z."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def parse_timestamp(raw: str) -> Optional[datetime]:
    """Parse a line timestamp; returns None rather than raising."""
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_record(line: str) -> Optional[LogRecord]:
    """Parse one log line into a LogRecord.

    Returns None for lines that are not gate outcomes (blank, truncated by a
    concurrent append, audit lines, garbage). Never raises.
    """
    stamp, sep, message = line.rstrip("\r\n").partition(_LINE_SEPARATOR)
    if not sep:
        return None

    match = _ATTEMPT_RE.match(message)
    if match is not None:
        outcome: Outcome = "SUCCESS" if match.group("outcome") == "SUCCESS" else "FAILED"
        return LogRecord(parse_timestamp(stamp), match.group("ip"), outcome)

    match = _BLOCKED_RE.match(message)
    if match is not None:
        return LogRecord(parse_timestamp(stamp), match.group("ip"), "BLOCKED")

    return None


def parse_confirmation(line: str) -> Optional[str]:
    """Return the IP of a block_ip confirmation line, or None."""
    _, sep, message = line.rstrip("\r\n").partition(_LINE_SEPARATOR)
    if not sep:
        return None
    match = _CONFIRMATION_RE.match(message)
    return match.group("ip") if match is not None else None


# ─── LogSource ────────────────────────────────────────────────────────────────


class LogSource:
    """Async access to the append-only log file.

    append() and read() are bounded by ``timeout_ms``. A read that cannot
    complete raises LogUnreadable; an append that cannot complete raises
    LogWriteFailed.
    """

    def __init__(self, path: str, timeout_ms: int) -> None:
        self.path = path
        self._timeout_s: float = timeout_ms / 1000.0

    async def append(self, message: str) -> None:
        """Append one timestamped line. CR/LF in ``message`` become spaces."""
        line = (
            f"{format_timestamp(datetime.now(timezone.utc))}{_LINE_SEPARATOR}"
            f"{_NEWLINES_RE.sub(' ', message)}\n"
        )
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, self._write_line, line), self._timeout_s
            )
        except (OSError, asyncio.TimeoutError) as exc:
            raise LogWriteFailed(f"append to {self.path} failed: {type(exc).__name__}") from exc

    async def read(self) -> str:
        """Return the full current content of the log."""
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, self._read_all), self._timeout_s
            )
        except (OSError, asyncio.TimeoutError) as exc:
            raise LogUnreadable(f"cannot read {self.path}: {type(exc).__name__}") from exc

    def _write_line(self, line: str) -> None:
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(line)

    def _read_all(self) -> str:
        # errors="replace": a torn multi-byte character must not fail the read.
        with open(self.path, encoding="utf-8", errors="replace") as fh:
            return fh.read()


async def record(log_source: LogSource, message: str, level: str = "info") -> None:
    """Write ``message`` to the application log and append it to the log source.

    A failed append is logged and dropped; callers on the request path must
    not fail because the log file is unavailable.
    """
    getattr(logger, level)(message)
    try:
        await log_source.append(message)
    except LogWriteFailed as exc:
        logger.error("log_source_append_failed", path=log_source.path, error=str(exc))
