"""Evaluation policies: log content in, candidate IPs out.

The analyzer owns the tool-call sequence; a policy only decides *who* looks
malicious. Any object with a matching ``evaluate`` method can replace
ThresholdPolicy without touching the gate or the store.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol

from warden.logsource import parse_confirmation, parse_record


@dataclass(frozen=True)
class Candidate:
    """An IP whose counted outcomes reached the threshold."""

    ip: str
    count: int


@dataclass
class Evaluation:
    evaluated_ips: set[str] = field(default_factory=set)
    candidates: list[Candidate] = field(default_factory=list)
    enforced_ips: set[str] = field(default_factory=set)
    unmatched_lines: int = 0


class EvaluationPolicy(Protocol):
    def evaluate(self, log_text: str, now: datetime) -> Evaluation:
        """Pure, synchronous, never raises on malformed input."""
        ...


class ThresholdPolicy:
    """Count selected outcomes per IP; flag IPs at or above ``threshold``.

    With ``window_seconds`` set, only records stamped within the trailing
    window ending at ``now`` are considered, and records whose timestamp does
    not parse are ignored. Without it, the whole snapshot counts.

    An IP whose latest log evidence is enforcement (a block_ip confirmation or
    a rejected "Blocked login attempt") with no counted attempt after it is
    left out of the candidates and reported in ``enforced_ips``. A counted
    attempt after the evidence (a block that expired or was lost) makes the
    IP a candidate again. Enforcement evidence is read across the whole snapshot;
    the window only limits what is counted.

    Candidates are ordered by count (highest first), then IP, so a budget cut
    short still blocks the worst offenders first.
    """

    def __init__(
        self,
        threshold: int,
        window_seconds: Optional[float] = None,
        counted_outcomes: Iterable[str] = ("FAILED",),
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.threshold = threshold
        self.window_seconds = window_seconds
        self.counted_outcomes = frozenset(counted_outcomes)

    def evaluate(self, log_text: str, now: datetime) -> Evaluation:
        cutoff = (
            now - timedelta(seconds=self.window_seconds)
            if self.window_seconds is not None
            else None
        )
        counts: Counter[str] = Counter()
        enforced: set[str] = set()
        result = Evaluation()

        for line in log_text.splitlines():
            parsed = parse_record(line)
            if parsed is None:
                confirmed = parse_confirmation(line)
                if confirmed is not None:
                    enforced.add(confirmed)
                elif line.strip():
                    result.unmatched_lines += 1
                continue

            if parsed.outcome == "BLOCKED":
                enforced.add(parsed.ip)
            elif parsed.outcome in self.counted_outcomes:
                enforced.discard(parsed.ip)

            if cutoff is not None and (parsed.timestamp is None or parsed.timestamp < cutoff):
                continue
            result.evaluated_ips.add(parsed.ip)
            if parsed.outcome in self.counted_outcomes:
                counts[parsed.ip] += 1

        qualifying = {ip: n for ip, n in counts.items() if n >= self.threshold}
        result.enforced_ips = {ip for ip in qualifying if ip in enforced}
        result.candidates = sorted(
            (Candidate(ip, n) for ip, n in qualifying.items() if ip not in enforced),
            key=lambda c: (-c.count, c.ip),
        )
        return result
