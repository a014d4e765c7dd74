"""Request gate — guardian check, then allow-list check, short-circuiting.

    1. Guardian check:   ip on the blocklist      → BLOCKED      (403)
    2. Allow-list check: ip not in the allow-list → NOT_ALLOWED  (403)
    3. Otherwise                                   → ADMITTED

Every outcome is appended to the log source, which is what the threat analyzer
reads later. The allow-list is never consulted for a blocked IP.

Blocklist store unavailable (StoreUnavailable) is governed by fail_mode:
    "closed" → UNAVAILABLE (503); nothing is appended, no allow-list check
    "open"   → warning logged, guardian check treated as not-blocked
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from warden.blocklist.protocol import BlocklistStore
from warden.errors import StoreUnavailable
from warden.gate.allowlist import is_allowed
from warden.logsource import LogSource, attempt_message, blocked_message, record
from warden.utils.logger import get_logger

logger = get_logger(__name__)


class GateOutcome(str, Enum):
    ADMITTED = "ADMITTED"
    BLOCKED = "BLOCKED"
    NOT_ALLOWED = "NOT_ALLOWED"
    UNAVAILABLE = "UNAVAILABLE"


@dataclass(frozen=True)
class GateDecision:
    ip: str
    outcome: GateOutcome

    @property
    def admitted(self) -> bool:
        return self.outcome is GateOutcome.ADMITTED


class RequestGate:
    """Per-request admission checks against the shared blocklist and the allow-list."""

    def __init__(
        self,
        store: BlocklistStore,
        log_source: LogSource,
        allowlist_path: str,
        fail_mode: str = "closed",
    ) -> None:
        self._store = store
        self._log_source = log_source
        self._allowlist_path = allowlist_path
        self._fail_open = fail_mode == "open"

    async def guardian_check(self, ip: str) -> bool:
        """True if ip is blocklisted. Raises StoreUnavailable."""
        return await self._store.exists(ip)

    async def allowlist_check(self, ip: str) -> bool:
        """True if ip is in the allow-list file right now."""
        return await is_allowed(self._allowlist_path, ip)

    async def evaluate(self, ip: str) -> GateDecision:
        try:
            blocked = await self.guardian_check(ip)
        except StoreUnavailable as exc:
            if not self._fail_open:
                logger.error("gate_store_unavailable", ip=ip, fail_mode="closed", error=str(exc))
                return GateDecision(ip, GateOutcome.UNAVAILABLE)
            logger.warning("gate_store_unavailable", ip=ip, fail_mode="open", error=str(exc))
            blocked = False

        if blocked:
            await record(self._log_source, blocked_message(ip), level="error")
            return GateDecision(ip, GateOutcome.BLOCKED)

        allowed = await self.allowlist_check(ip)
        await record(
            self._log_source,
            attempt_message(ip, admitted=allowed),
            level="info" if allowed else "error",
        )
        return GateDecision(ip, GateOutcome.ADMITTED if allowed else GateOutcome.NOT_ALLOWED)
