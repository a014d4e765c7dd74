"""Threat analyzer — one bounded pass from log content to blocklist writes.

State machine:

    START → READ_LOG → EVALUATE → (CHECK_IP → BLOCK_IP)* → DONE
                 │          │              │
                 └──────────┴──────────────┴────────────→ FAILED

  - read_log is always the first tool call. If it fails the run ends FAILED
    without evaluating or blocking anything; the scheduler's next tick is the
    retry.
  - For each candidate, check_ip runs before block_ip. An IP reported as
    already blocked is not written again.
  - A failure of check_ip/block_ip for one candidate is recorded and skipped;
    remaining candidates are still processed.
  - The run is bounded by a tool-call budget and a wall-clock timeout. Hitting
    either ends the run FAILED with a reason.

run() never raises (except CancelledError on shutdown): every failure is
reduced to the returned AnalysisRun.

Each run appends a start line and a completed/error line to the log source,
next to the block_ip confirmations.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from warden.analysis.policy import Candidate, EvaluationPolicy, ThresholdPolicy
from warden.analysis.tools import STATUS_BLOCKED, DecisionTools, ToolBudget
from warden.blocklist.protocol import BlocklistStore
from warden.errors import (
    AnalysisBudgetExceeded,
    LogUnreadable,
    PerCandidateToolError,
    StoreUnavailable,
)
from warden.logsource import LogSource, record
from warden.utils.logger import bind_run_context, clear_run_context, get_logger

logger = get_logger(__name__)

RUN_STARTED_MESSAGE = "Running threat analysis..."
RUN_COMPLETED_MESSAGE = "Threat analysis completed"
RUN_FAILED_PREFIX = "Threat analysis error"


class RunState(str, Enum):
    START = "START"
    READ_LOG = "READ_LOG"
    EVALUATE = "EVALUATE"
    CHECK_IP = "CHECK_IP"
    BLOCK_IP = "BLOCK_IP"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class AnalysisRun:
    """Ephemeral record of one analyzer pass. Never persisted."""

    run_id: str
    started_at: datetime
    state: RunState = RunState.START
    finished_at: Optional[datetime] = None
    log_size: int = 0
    evaluated_ips: set[str] = field(default_factory=set)
    enforced_ips: set[str] = field(default_factory=set)
    candidates: list[Candidate] = field(default_factory=list)
    newly_blocked: list[str] = field(default_factory=list)
    already_blocked: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    tool_calls: int = 0
    reason: Optional[str] = None

    @property
    def duration_ms(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def summary(self) -> dict[str, Any]:
        """JSON-safe view for /health and the warden-analyze CLI."""
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": round(self.duration_ms, 1) if self.duration_ms is not None else None,
            "log_size": self.log_size,
            "evaluated_ips": len(self.evaluated_ips),
            "candidates": [c.ip for c in self.candidates],
            "already_enforced": len(self.enforced_ips),
            "newly_blocked": list(self.newly_blocked),
            "already_blocked": list(self.already_blocked),
            "errors": list(self.errors),
            "tool_calls": self.tool_calls,
            "reason": self.reason,
        }


class ThreatAnalyzer:
    """Runs the decision procedure with a fresh toolset and budget per run."""

    def __init__(
        self,
        store: BlocklistStore,
        log_source: LogSource,
        policy: EvaluationPolicy,
        max_tool_calls: int,
        run_timeout_s: float,
    ) -> None:
        self._store = store
        self._log_source = log_source
        self._policy = policy
        self._max_tool_calls = max_tool_calls
        self._run_timeout_s = run_timeout_s

    async def run(self) -> AnalysisRun:
        run = AnalysisRun(run_id=uuid.uuid4().hex[:12], started_at=datetime.now(timezone.utc))
        tools = DecisionTools(
            store=self._store,
            log_source=self._log_source,
            budget=ToolBudget(max_calls=self._max_tool_calls),
        )
        bind_run_context(run_id=run.run_id)
        logger.info("analysis_run_started", max_tool_calls=self._max_tool_calls)
        await record(self._log_source, RUN_STARTED_MESSAGE)

        try:
            await asyncio.wait_for(self._execute(run, tools), self._run_timeout_s)
        except asyncio.TimeoutError:
            self._fail(run, f"run exceeded time budget of {self._run_timeout_s}s")
        except AnalysisBudgetExceeded as exc:
            self._fail(run, exc.reason)
        except LogUnreadable as exc:
            self._fail(run, f"log unreadable: {exc}")
        except Exception as exc:
            logger.exception("analysis_run_crashed", error_type=type(exc).__name__)
            self._fail(run, f"unexpected {type(exc).__name__}: {exc}")
        finally:
            run.finished_at = datetime.now(timezone.utc)
            run.tool_calls = tools.budget.used
            log = logger.info if run.state is RunState.DONE else logger.error
            log(
                "analysis_run_finished",
                state=run.state.value,
                reason=run.reason,
                candidates=len(run.candidates),
                newly_blocked=run.newly_blocked,
                errors=len(run.errors),
                tool_calls=run.tool_calls,
                duration_ms=run.duration_ms,
            )
            clear_run_context("run_id")

        # Not reached on cancellation; a stopped run leaves no finish line.
        if run.state is RunState.DONE:
            await record(self._log_source, RUN_COMPLETED_MESSAGE)
        else:
            await record(self._log_source, f"{RUN_FAILED_PREFIX}: {run.reason}", level="error")

        return run

    async def _execute(self, run: AnalysisRun, tools: DecisionTools) -> None:
        run.state = RunState.READ_LOG
        content = await tools.read_log()
        run.log_size = len(content)

        run.state = RunState.EVALUATE
        # Parsing a large log is CPU work; keep it off the event loop.
        loop = asyncio.get_running_loop()
        evaluation = await loop.run_in_executor(
            None, self._policy.evaluate, content, run.started_at
        )
        run.evaluated_ips = evaluation.evaluated_ips
        run.candidates = evaluation.candidates
        run.enforced_ips = evaluation.enforced_ips
        logger.info(
            "analysis_evaluated",
            evaluated_ips=len(evaluation.evaluated_ips),
            candidates=len(evaluation.candidates),
            already_enforced=len(evaluation.enforced_ips),
            unmatched_lines=evaluation.unmatched_lines,
        )

        for candidate in evaluation.candidates:
            try:
                await self._enforce(run, tools, candidate)
            except PerCandidateToolError as exc:
                run.errors.append(str(exc))
                logger.warning(
                    "analysis_candidate_failed", ip=exc.ip, tool=exc.tool, error=str(exc.cause)
                )

        run.state = RunState.DONE

    async def _enforce(
        self, run: AnalysisRun, tools: DecisionTools, candidate: Candidate
    ) -> None:
        ip = candidate.ip

        run.state = RunState.CHECK_IP
        try:
            status = await tools.check_ip(ip)
        except StoreUnavailable as exc:
            raise PerCandidateToolError(ip, "check_ip", exc) from exc
        if status == STATUS_BLOCKED:
            run.already_blocked.append(ip)
            return

        run.state = RunState.BLOCK_IP
        try:
            await tools.block_ip(ip, reason=f"{candidate.count} counted attempts in log window")
        except StoreUnavailable as exc:
            raise PerCandidateToolError(ip, "block_ip", exc) from exc
        run.newly_blocked.append(ip)

    @staticmethod
    def _fail(run: AnalysisRun, reason: str) -> None:
        run.state = RunState.FAILED
        run.reason = reason


def build_analyzer(config: Any, store: BlocklistStore, log_source: LogSource) -> ThreatAnalyzer:
    """Wire a ThreatAnalyzer with the default ThresholdPolicy from ``config.analysis``."""
    settings = config.analysis
    return ThreatAnalyzer(
        store=store,
        log_source=log_source,
        policy=ThresholdPolicy(
            threshold=settings.threshold,
            window_seconds=settings.window_seconds,
            counted_outcomes=settings.counted_outcomes,
        ),
        max_tool_calls=settings.max_tool_calls,
        run_timeout_s=settings.run_timeout_s,
    )
