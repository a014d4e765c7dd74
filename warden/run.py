"""Programmatic entry points for Warden.

    warden           → main():    serve the API with uvicorn (hardened defaults)
    warden-analyze   → analyze(): run one threat-analysis pass and print its summary

Both read the same config as the server (see warden/config.py).
"""

from __future__ import annotations

import asyncio
import json
import os
import sys

import uvicorn

from warden.analysis.analyzer import AnalysisRun, RunState, build_analyzer
from warden.blocklist.factory import create_blocklist_store
from warden.config import Config, load_config
from warden.logsource import LogSource
from warden.utils.logger import configure_logging

# ─── Uvicorn hardened defaults ───────────────────────────────────────────────

# New connections receive HTTP 503 beyond this many concurrent connections.
UVICORN_LIMIT_CONCURRENCY: int = 100

# OS-level TCP connection backlog queue size.
UVICORN_BACKLOG: int = 50

# Low keep-alive reduces the Slow Loris window.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the Warden API server.

    Raises:
        SystemExit: Propagated from load_config() on config errors.
    """
    config = load_config()

    uvicorn.run(
        "warden.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


async def run_analysis_once(config: Config) -> AnalysisRun:
    """Build the stores from config, run the analyzer once, and tear down."""
    store = create_blocklist_store(config)
    log_source = LogSource(config.log_source.path, timeout_ms=config.log_source.timeout_ms)
    try:
        return await build_analyzer(config, store, log_source).run()
    finally:
        await store.close()


def analyze() -> None:
    """Run one analysis pass; exit 0 on DONE, 1 on FAILED.

    The run summary is the only thing written to stdout; logs go to stderr.
    """
    configure_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        json_output=os.getenv("JSON_LOGS", "true").lower() == "true",
        stream=sys.stderr,
    )
    config = load_config()
    run = asyncio.run(run_analysis_once(config))
    print(json.dumps(run.summary(), indent=2))
    sys.exit(0 if run.state is RunState.DONE else 1)


if __name__ == "__main__":
    main()
