"""Readiness gate shared by every route that needs the lifespan to have finished."""

from __future__ import annotations

from fastapi import HTTPException, Request


async def require_ready(request: Request) -> None:
    """FastAPI dependency: raises HTTP 503 if app.state.ready is not True."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "Warden is starting up."},
        )
