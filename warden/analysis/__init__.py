"""Warden threat analysis package.

Layout:
    tools.py     — DecisionTools (read_log, check_ip, block_ip) + ToolBudget
    policy.py    — ThresholdPolicy and the EvaluationPolicy protocol
    analyzer.py  — ThreatAnalyzer state machine + AnalysisRun record
    scheduler.py — AnalysisScheduler (fixed-rate, non-overlapping ticks)
"""

from warden.analysis.analyzer import AnalysisRun, RunState, ThreatAnalyzer, build_analyzer
from warden.analysis.policy import Candidate, Evaluation, EvaluationPolicy, ThresholdPolicy
from warden.analysis.scheduler import AnalysisScheduler
from warden.analysis.tools import TOOLSET, DecisionTools, ToolBudget, ToolCall, ToolSpec

__all__ = [
    "AnalysisRun",
    "AnalysisScheduler",
    "Candidate",
    "DecisionTools",
    "Evaluation",
    "EvaluationPolicy",
    "RunState",
    "TOOLSET",
    "ThreatAnalyzer",
    "ThresholdPolicy",
    "build_analyzer",
    "ToolBudget",
    "ToolCall",
    "ToolSpec",
]
