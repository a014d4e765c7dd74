"""POST /task — the protected API endpoint.

Request body ``{"task": <any>}``. Admitted callers receive ``{"task": ...}``
where a string task has every "foo" replaced with "bar"; any other value is
echoed unchanged. Rejections never reach this handler (see enforce_gate).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from warden.gate.dependencies import enforce_gate
from warden.readiness import require_ready

router = APIRouter(tags=["task"])


def transform_task(task: Any) -> Any:
    if isinstance(task, str):
        return task.replace("foo", "bar")
    return task


@router.post("/task", dependencies=[Depends(require_ready), Depends(enforce_gate)])
async def run_task(request: Request) -> Response:
    # Body is parsed only after the gate admits the caller.
    try:
        body = await request.json()
    except ValueError:
        return PlainTextResponse("Bad Request", status_code=400)
    task = body.get("task") if isinstance(body, dict) else None
    return JSONResponse({"task": transform_task(task)})
