"""Blocklist store factory — backend selection from config.

  blocklist.backend == "memory" → MemoryBlocklistStore (single process only)
  otherwise                     → RedisBlocklistStore (default)

The Redis URL comes from blocklist.url, already overridden by WARDEN_REDIS_URL
in load_config(). No connection is opened here; RedisBlocklistStore connects
lazily on first use, so a Redis outage at startup does not refuse startup.
"""

from __future__ import annotations

from warden.blocklist.protocol import BlocklistStore, MemoryBlocklistStore
from warden.config import Config
from warden.utils.logger import get_logger

logger = get_logger(__name__)


def create_blocklist_store(config: Config) -> BlocklistStore:
    """Create the blocklist store selected by ``config.blocklist.backend``."""
    settings = config.blocklist

    if settings.backend == "memory":
        logger.warning(
            "blocklist_backend_selected",
            backend="MemoryBlocklistStore",
            note="blocks are not shared across processes and are lost on restart",
        )
        return MemoryBlocklistStore()

    from warden.blocklist.redis_store import RedisBlocklistStore

    store = RedisBlocklistStore(
        url=settings.url,
        timeout_ms=settings.timeout_ms,
        ttl_seconds=settings.ttl_seconds,
    )
    logger.info(
        "blocklist_backend_selected",
        backend="RedisBlocklistStore",
        # Host and port only; the URL may carry credentials.
        redis_host=settings.url.rsplit("@", 1)[-1],
        timeout_ms=settings.timeout_ms,
    )
    return store
