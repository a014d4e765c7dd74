"""Exception hierarchy for Warden.

StoreUnavailable and LogUnreadable are raised by the two shared resources.
AnalysisBudgetExceeded and PerCandidateToolError never leave the analyzer:
they are caught at the run boundary and reduced to a logged AnalysisRun outcome.
"""

from __future__ import annotations


class WardenError(Exception):
    """Base class for all Warden errors."""


class StoreUnavailable(WardenError):
    """The blocklist store could not be reached or the operation timed out."""


class LogUnreadable(WardenError):
    """The log source is missing, unreadable, or the read timed out."""


class AnalysisBudgetExceeded(WardenError):
    """An analyzer run hit its tool-call cap or wall-clock cap."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PerCandidateToolError(WardenError):
    """check_ip or block_ip failed for one candidate IP.

    Wraps the underlying error so the analyzer can record which IP and which
    tool failed, then move on to the next candidate.
    """

    def __init__(self, ip: str, tool: str, cause: BaseException) -> None:
        super().__init__(f"{tool} failed for {ip}: {cause}")
        self.ip = ip
        self.tool = tool
        self.cause = cause


class LogWriteFailed(WardenError):
    """An append to the log source failed or timed out."""
