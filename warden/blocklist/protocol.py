"""BlocklistStore Protocol + in-process MemoryBlocklistStore.

Contract shared by every backend:
  - exists(ip)  → True iff a block entry is present for ip
  - block(ip)   → idempotent; never unblocks, never resets existing metadata
  - both raise StoreUnavailable on connection failure or timeout
  - health_check() never raises; close() is called once on shutdown

Key layout (see warden/constants.py):
  ip:<address>       → "blocked"
  ip:<address>:meta  → JSON {"reason": ..., "blocked_at": ...}
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Protocol, runtime_checkable

from warden.constants import BLOCK_KEY_PREFIX, BLOCK_MARKER, BLOCK_META_SUFFIX
from warden.utils.logger import get_logger

logger = get_logger(__name__)


def block_key(ip: str) -> str:
    """Store key for ip. ip is untrusted and used verbatim."""
    return f"{BLOCK_KEY_PREFIX}{ip}"


def meta_key(ip: str) -> str:
    return f"{block_key(ip)}{BLOCK_META_SUFFIX}"


def build_metadata(reason: Optional[str]) -> str:
    """Serialise block metadata written alongside a new block entry."""
    return json.dumps(
        {
            "reason": reason,
            "blocked_at": datetime.now(timezone.utc).isoformat(),
        }
    )


# ─── BlocklistStore Protocol ──────────────────────────────────────────────────


@runtime_checkable
class BlocklistStore(Protocol):
    """Shared IP blocklist, read by the request gate and written by the analyzer.

    Implementations: RedisBlocklistStore (default), MemoryBlocklistStore.
    Selection via create_blocklist_store() (blocklist/factory.py).

    Implementations must be safe for concurrent use from many request
    coroutines and the background analyzer at once, without callers holding
    any lock.
    """

    async def exists(self, ip: str) -> bool:
        """Return True iff ip is blocked. Raises StoreUnavailable."""
        ...

    async def block(self, ip: str, reason: Optional[str] = None) -> bool:
        """Block ip. Returns True if newly blocked, False if it already was.

        Raises StoreUnavailable.
        """
        ...

    async def health_check(self) -> bool:
        """Returns True if the backend is reachable. Must not raise."""
        ...

    async def close(self) -> None:
        """Release connections. Called during graceful shutdown."""
        ...


# ─── MemoryBlocklistStore ─────────────────────────────────────────────────────


class MemoryBlocklistStore:
    """Dict-backed blocklist for single-process development and tests.

    Not durable and not shared across processes. All access happens on the
    event loop thread and no method awaits between read and write, so
    exists/block are atomic with respect to other coroutines.
    blocklist.ttl_seconds is not honoured here.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}
        self._meta: dict[str, str] = {}

    async def exists(self, ip: str) -> bool:
        return block_key(ip) in self._entries

    async def block(self, ip: str, reason: Optional[str] = None) -> bool:
        key = block_key(ip)
        if key in self._entries:
            return False
        self._entries[key] = BLOCK_MARKER
        self._meta.setdefault(meta_key(ip), build_metadata(reason))
        return True

    def metadata(self, ip: str) -> Optional[dict]:
        """Return the stored metadata for ip, or None."""
        raw = self._meta.get(meta_key(ip))
        return json.loads(raw) if raw else None

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        logger.debug("MemoryBlocklistStore.close", entries=len(self._entries))


# Import-time check: catches protocol drift immediately.
assert isinstance(MemoryBlocklistStore(), BlocklistStore), (
    "MemoryBlocklistStore does not satisfy BlocklistStore protocol — implementation error"
)
