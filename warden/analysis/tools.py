"""Decision tools — the analyzer's only view of, and only lever on, system state.

Three capability-scoped operations, each independently invocable and
independently failing:

  read_log()    → full current log content           (raises LogUnreadable)
  check_ip(ip)  → "blocked" | "not blocked"         (raises StoreUnavailable)
  block_ip(ip)  → "IP <ip> has been blocked"         (raises StoreUnavailable)

Every call is charged against a ToolBudget *before* it runs; once the budget is
spent the next call raises AnalysisBudgetExceeded instead of executing. Every
call, successful or not, is recorded in ``calls`` as the run's decision trail.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from warden.blocklist.protocol import BlocklistStore
from warden.errors import AnalysisBudgetExceeded
from warden.logsource import LogSource, confirmation_message, record
from warden.utils.logger import get_logger

logger = get_logger(__name__)

STATUS_BLOCKED = "blocked"
STATUS_NOT_BLOCKED = "not blocked"


@dataclass(frozen=True)
class ToolSpec:
    """Name + description of a tool, so any decision procedure can discover the toolset."""

    name: str
    description: str


READ_LOG = ToolSpec(
    name="read_log",
    description=(
        "Reads the login log and returns its content as a string. "
        "Must be called first, before any other tool."
    ),
)
CHECK_IP = ToolSpec(
    name="check_ip",
    description="Checks whether an IP address is on the blocklist. Returns 'blocked' or 'not blocked'.",
)
BLOCK_IP = ToolSpec(
    name="block_ip",
    description="Adds an IP address to the blocklist. Idempotent. Returns a confirmation message.",
)

TOOLSET: tuple[ToolSpec, ...] = (READ_LOG, CHECK_IP, BLOCK_IP)


@dataclass
class ToolCall:
    """One entry in the decision trail."""

    tool: str
    argument: Optional[str]
    at: datetime
    result: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ToolBudget:
    """Hard cap on tool calls for one analyzer run."""

    max_calls: int
    used: int = 0

    def charge(self, tool: str) -> None:
        if self.used >= self.max_calls:
            raise AnalysisBudgetExceeded(
                f"tool-call budget of {self.max_calls} exhausted before {tool}"
            )
        self.used += 1

    @property
    def remaining(self) -> int:
        return self.max_calls - self.used


@dataclass
class DecisionTools:
    """The toolset bound to one analyzer run.

    Create a fresh instance (with a fresh ToolBudget) per run.
    """

    store: BlocklistStore
    log_source: LogSource
    budget: ToolBudget
    calls: list[ToolCall] = field(default_factory=list)

    @property
    def specs(self) -> tuple[ToolSpec, ...]:
        return TOOLSET

    async def read_log(self) -> str:
        call = self._start(READ_LOG, None)
        try:
            content = await self.log_source.read()
        except Exception as exc:
            call.error = str(exc)
            raise
        call.result = f"{len(content)} chars"
        return content

    async def check_ip(self, ip: str) -> str:
        call = self._start(CHECK_IP, ip)
        try:
            blocked = await self.store.exists(ip)
        except Exception as exc:
            call.error = str(exc)
            raise
        call.result = STATUS_BLOCKED if blocked else STATUS_NOT_BLOCKED
        return call.result

    async def block_ip(self, ip: str, reason: Optional[str] = None) -> str:
        call = self._start(BLOCK_IP, ip)
        try:
            created = await self.store.block(ip, reason=reason)
        except Exception as exc:
            call.error = str(exc)
            raise
        call.result = confirmation_message(ip)
        if not created:
            # Lost the check→block race to another writer; still blocked.
            logger.debug("block_ip_already_present", ip=ip)
        await record(self.log_source, call.result, level="warning")
        return call.result

    def _start(self, spec: ToolSpec, argument: Optional[str]) -> ToolCall:
        self.budget.charge(spec.name)
        call = ToolCall(tool=spec.name, argument=argument, at=datetime.now(timezone.utc))
        self.calls.append(call)
        return call
