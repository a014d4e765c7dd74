"""RedisBlocklistStore — redis.asyncio-backed shared blocklist.

Connection lifecycle:
  - Lazy: the client is created and PINGed on first use, not at import or
    construction time.
  - Single initialization: concurrent first callers serialise on an
    asyncio.Lock; only one client is ever created per store instance.
  - Reused for the life of the process; close() tears it down on shutdown.

Writes use SET NX in one MULTI/EXEC pipeline, so an existing entry (and its
metadata) is never overwritten and the marker never lands without its
metadata. Every operation is bounded by timeout_ms; connection errors,
Redis errors and timeouts all surface as StoreUnavailable.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from warden.blocklist.protocol import block_key, build_metadata, meta_key
from warden.constants import BLOCK_MARKER
from warden.errors import StoreUnavailable
from warden.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RedisBlocklistStore:
    """Blocklist backed by a Redis server.

    Usage:
        store = RedisBlocklistStore("redis://localhost:6379/0", timeout_ms=500)
        await store.block("9.9.9.9", reason="threshold")
        assert await store.exists("9.9.9.9")
        await store.close()

    ``client_factory`` exists for tests; by default a client is built from
    ``url`` with socket timeouts matching ``timeout_ms``.
    """

    def __init__(
        self,
        url: str,
        timeout_ms: int,
        ttl_seconds: Optional[int] = None,
        client_factory: Optional[Callable[[], Redis]] = None,
    ) -> None:
        self._url = url
        self._timeout_s: float = timeout_ms / 1000.0
        self._ttl_seconds = ttl_seconds
        self._client_factory = client_factory or self._default_client
        self._client: Optional[Redis] = None
        self._connect_lock = asyncio.Lock()

    def _default_client(self) -> Redis:
        return Redis.from_url(
            self._url,
            decode_responses=True,
            socket_timeout=self._timeout_s,
            socket_connect_timeout=self._timeout_s,
        )

    # ── Connection ────────────────────────────────────────────────────────────

    async def _get_client(self) -> Redis:
        if self._client is not None:
            return self._client
        async with self._connect_lock:
            # Re-check: another coroutine may have connected while we waited.
            if self._client is None:
                client = self._client_factory()
                try:
                    await client.ping()
                except BaseException:
                    await client.aclose()
                    raise
                self._client = client
                logger.info("blocklist_store_connected", backend="redis")
        return self._client

    async def _call(self, op: str, ip: str, fn: Callable[[Redis], Awaitable[T]]) -> T:
        try:
            client = await asyncio.wait_for(self._get_client(), self._timeout_s)
            return await asyncio.wait_for(fn(client), self._timeout_s)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.error(
                "blocklist_store_error",
                op=op,
                ip=ip,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise StoreUnavailable(f"blocklist {op} failed: {type(exc).__name__}") from exc

    # ── BlocklistStore Protocol Methods ───────────────────────────────────────

    async def exists(self, ip: str) -> bool:
        count: Any = await self._call("exists", ip, lambda c: c.exists(block_key(ip)))
        return bool(count)

    async def block(self, ip: str, reason: Optional[str] = None) -> bool:
        async def _write(client: Redis) -> bool:
            # MULTI/EXEC: marker and metadata are applied together or not at all.
            # NX on both keeps the first blocked_at.
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(block_key(ip), BLOCK_MARKER, nx=True, ex=self._ttl_seconds)
                pipe.set(meta_key(ip), build_metadata(reason), nx=True, ex=self._ttl_seconds)
                created, _ = await pipe.execute()
            return bool(created)

        return await self._call("block", ip, _write)

    async def health_check(self) -> bool:
        try:
            client = await asyncio.wait_for(self._get_client(), self._timeout_s)
            await asyncio.wait_for(client.ping(), self._timeout_s)
            return True
        except Exception:
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("blocklist_store_closed", backend="redis")
