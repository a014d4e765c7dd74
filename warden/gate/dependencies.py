"""FastAPI dependency that runs the request gate before a protected handler.

The client IP is the raw ``x-forwarded-for`` header value, trusted as-is
(no parsing of comma lists, no syntax validation). A request without the
header is recorded under the literal client IP "unknown".

Usage:
    @router.post("/task", dependencies=[Depends(enforce_gate)])
"""

from __future__ import annotations

from fastapi import Request

from warden.constants import UNKNOWN_CLIENT_IP
from warden.gate.gate import GateDecision, RequestGate


class RequestRejected(Exception):
    """Raised by enforce_gate(); mapped to 403/503 by the app exception handler."""

    def __init__(self, decision: GateDecision) -> None:
        super().__init__(decision.outcome.value)
        self.decision = decision


def client_ip(request: Request) -> str:
    return request.headers.get("x-forwarded-for") or UNKNOWN_CLIENT_IP


async def enforce_gate(request: Request) -> str:
    """Admit the request or raise RequestRejected. Returns the client IP."""
    gate: RequestGate = request.app.state.gate
    decision = await gate.evaluate(client_ip(request))
    if not decision.admitted:
        raise RequestRejected(decision)
    return decision.ip
