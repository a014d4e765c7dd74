"""Plain-text rejection responses for the request gate.

BLOCKED and NOT_ALLOWED produce the *same* 403 body so a caller cannot tell
whether it was blocklisted or simply not allow-listed. Store outages produce a
503 that is never confused with a 403 rejection.
"""

from __future__ import annotations

from fastapi.responses import PlainTextResponse

from warden.gate.gate import GateDecision, GateOutcome


def build_forbidden_response() -> PlainTextResponse:
    return PlainTextResponse("Forbidden", status_code=403)


def build_unavailable_response() -> PlainTextResponse:
    return PlainTextResponse("Service Unavailable", status_code=503)


def build_rejection_response(decision: GateDecision) -> PlainTextResponse:
    """Map a non-admitted GateDecision to its HTTP response."""
    if decision.outcome is GateOutcome.UNAVAILABLE:
        return build_unavailable_response()
    return build_forbidden_response()
