"""Allow-list reader — JSON array of IP strings, read fresh on every request.

No caching: edits to the file take effect on the next request. Any problem
with the file (missing, unreadable, not JSON, not an array) yields an empty
allow-list, which rejects everyone. Non-string entries are ignored.
"""

from __future__ import annotations

import asyncio
import json

from warden.utils.logger import get_logger

logger = get_logger(__name__)


def load_allowlist(path: str) -> frozenset[str]:
    """Read the allow-list file. Never raises."""
    try:
        with open(path, encoding="utf-8") as fh:
            raw = json.load(fh)
    except FileNotFoundError:
        logger.warning("allowlist_missing", path=path)
        return frozenset()
    except (OSError, ValueError) as exc:
        # json.JSONDecodeError and UnicodeDecodeError are both ValueError
        logger.error("allowlist_unreadable", path=path, error=str(exc))
        return frozenset()

    if not isinstance(raw, list):
        logger.error("allowlist_not_an_array", path=path, found=type(raw).__name__)
        return frozenset()

    return frozenset(item for item in raw if isinstance(item, str))


async def is_allowed(path: str, ip: str) -> bool:
    """Async membership check; file I/O runs in the default executor."""
    loop = asyncio.get_running_loop()
    entries = await loop.run_in_executor(None, load_allowlist, path)
    return ip in entries
