"""Warden request gate.

Layout:
    gate.py         — RequestGate (guardian check → allow-list check)
    allowlist.py    — read-through JSON allow-list
    dependencies.py — enforce_gate() FastAPI dependency + RequestRejected
    responses.py    — plain-text 403 / 503 builders
"""

from warden.gate.dependencies import RequestRejected, client_ip, enforce_gate
from warden.gate.gate import GateDecision, GateOutcome, RequestGate

__all__ = [
    "GateDecision",
    "GateOutcome",
    "RequestGate",
    "RequestRejected",
    "client_ip",
    "enforce_gate",
]
