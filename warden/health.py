"""Health endpoint for Warden.

GET /health
  503 before the lifespan has finished startup (``app.state.ready`` False).
  200 afterwards:

    {
      "status": "ok" | "degraded",
      "blocklist": "healthy" | "unreachable",
      "gate_fail_mode": "closed" | "open",
      "analysis": {
        "enabled": true,
        "in_progress": false,
        "completed_runs": 3,
        "skipped_ticks": 0,
        "last_run": { ...AnalysisRun.summary()... } | null
      }
    }

"degraded" means the blocklist store is unreachable; with fail_mode "closed"
the gate is rejecting every request until it recovers.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request

from warden.analysis.scheduler import AnalysisScheduler
from warden.readiness import require_ready

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    await require_ready(request)

    store_ok = await request.app.state.blocklist.health_check()
    scheduler: Optional[AnalysisScheduler] = getattr(request.app.state, "scheduler", None)

    return {
        "status": "ok" if store_ok else "degraded",
        "blocklist": "healthy" if store_ok else "unreachable",
        "gate_fail_mode": request.app.state.config.gate.fail_mode,
        "analysis": _analysis_status(scheduler),
    }


def _analysis_status(scheduler: Optional[AnalysisScheduler]) -> dict[str, Any]:
    if scheduler is None:
        return {"enabled": False}
    last = scheduler.last_run
    return {
        "enabled": True,
        "in_progress": scheduler.in_progress,
        "completed_runs": scheduler.completed_runs,
        "skipped_ticks": scheduler.skipped_ticks,
        "last_run": last.summary() if last is not None else None,
    }
