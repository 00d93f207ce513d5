from __future__ import annotations

from enum import Enum


class TargetModel(str, Enum):
    """Completion targets understood by the relay."""

    O3 = "o3"
    GEMINI = "gemini"
    CLAUDE_OPUS = "claude-opus"


class AgentSlot(str, Enum):
    """Stable agent identifiers; each one owns exactly one context slot."""

    CLINICAL_SYNTHESIS = "clinical-synthesis"
    EPISODE_ANALYSIS = "episode-analysis"
    PHARMACOTHERAPY_ANALYSIS = "pharmacotherapy-analysis"
    TRD_ASSESSMENT = "trd-assessment"
    CRITERIA_ASSESSMENT = "criteria-assessment"
    RISK_ASSESSMENT = "risk-assessment"


class AgentStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class CriterionStatus(str, Enum):
    MET = "met"
    NOT_MET = "not_met"
    VERIFY = "verify"


class QualificationLabel(str, Enum):
    ELIGIBLE = "eligible"
    NEEDS_EVALUATION = "needs_evaluation"
    LIKELY_NOT_ELIGIBLE = "likely_not_eligible"
    NOT_ELIGIBLE = "not_eligible"
    NOT_ELIGIBLE_ABSOLUTE = "not_eligible_absolute"


__all__ = ["TargetModel", "AgentSlot", "AgentStatus", "CriterionStatus", "QualificationLabel"]
