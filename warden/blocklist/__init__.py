"""Warden blocklist store package.

    from warden.blocklist import BlocklistStore, create_blocklist_store

Layout:
    protocol.py    — BlocklistStore Protocol + MemoryBlocklistStore + key helpers
    redis_store.py — RedisBlocklistStore (redis.asyncio, lazy connect, SET NX)
    factory.py     — create_blocklist_store() — backend selection by config
"""

from warden.blocklist.factory import create_blocklist_store
from warden.blocklist.protocol import (
    BlocklistStore,
    MemoryBlocklistStore,
    block_key,
    meta_key,
)

__all__ = [
    "BlocklistStore",
    "MemoryBlocklistStore",
    "block_key",
    "create_blocklist_store",
    "meta_key",
]
