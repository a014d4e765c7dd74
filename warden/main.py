"""Warden FastAPI application factory + lifespan lifecycle.

Startup sequence:
  1. load_config()              → app.state.config
  2. create_blocklist_store()   → app.state.blocklist  (connects lazily)
  3. LogSource(...)             → app.state.log_source
  4. RequestGate(...)           → app.state.gate
  5. AnalysisScheduler.start()  → app.state.scheduler  (first run fires immediately)
  6. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → stop scheduler (cancels any in-flight run) →
  close blocklist store

Run with:
  uvicorn warden.main:app --host 127.0.0.1 --port 3000
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from warden.analysis.analyzer import build_analyzer
from warden.analysis.scheduler import AnalysisScheduler
from warden.blocklist.factory import create_blocklist_store
from warden.config import Config, load_config
from warden.gate.dependencies import RequestRejected
from warden.gate.gate import RequestGate
from warden.gate.responses import build_rejection_response
from warden.health import router as health_router
from warden.logsource import LogSource
from warden.task import router as task_router
from warden.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence.

    load_config() raises SystemExit on an invalid config, so the process exits
    non-zero before ready=True is ever set. The blocklist store does not
    connect here: a Redis outage at startup degrades /health and the gate
    (per gate.fail_mode) instead of refusing startup.
    """
    logger.info("Warden starting up...")

    config: Config = load_config()
    app.state.config = config

    store = create_blocklist_store(config)
    app.state.blocklist = store

    log_source = LogSource(config.log_source.path, timeout_ms=config.log_source.timeout_ms)
    app.state.log_source = log_source

    app.state.gate = RequestGate(
        store=store,
        log_source=log_source,
        allowlist_path=config.allowlist.path,
        fail_mode=config.gate.fail_mode,
    )
    logger.info(
        "Request gate ready",
        allowlist_path=config.allowlist.path,
        log_path=config.log_source.path,
        fail_mode=config.gate.fail_mode,
    )

    scheduler: Optional[AnalysisScheduler] = None
    if config.analysis.enabled:
        scheduler = AnalysisScheduler(
            build_analyzer(config, store, log_source),
            interval_s=config.analysis.interval_seconds,
        )
        scheduler.start()
    else:
        logger.warning("Threat analysis disabled by config; blocklist will not grow")
    app.state.scheduler = scheduler

    app.state.ready = True
    logger.info("Warden ready")

    yield

    logger.info("Warden shutting down...")
    app.state.ready = False

    if scheduler is not None:
        await scheduler.stop()

    try:
        await store.close()
    except Exception as exc:
        logger.warning("Blocklist store close error (non-fatal)", error=str(exc))

    logger.info("Warden shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the Warden FastAPI application.

    Call this function directly in tests to get an isolated app instance;
    ASGITransport does not run the lifespan, so tests populate app.state
    themselves.
    """
    application = FastAPI(
        title="Warden",
        description="Brute-force protection: blocklist + allow-list gate with periodic log analysis",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )

    application.state.ready = False

    application.include_router(health_router)
    application.include_router(task_router)

    @application.exception_handler(RequestRejected)
    async def request_rejected_handler(request: Request, exc: RequestRejected) -> Response:
        return build_rejection_response(exc.decision)

    @application.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
