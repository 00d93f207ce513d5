"""Deterministic assembly of the final eligibility record from agent results."""

from __future__ import annotations

import random
import re
from datetime import datetime, timezone
from typing import Iterable, Mapping, TypeVar

from pydantic import BaseModel

from ..core.logging import get_logger
from ..schemas.agents import (
    AgentResult,
    ClinicalSynthesis,
    CriteriaAssessment,
    CriterionAssessment,
    EpisodeAnalysis,
    PharmacotherapyAnalysis,
    RiskAssessment,
    TrdAssessment,
)
from ..schemas.enums import AgentSlot, CriterionStatus, QualificationLabel
from ..schemas.report import (
    DisplayCriterion,
    DrugMappingInfo,
    EpisodeEstimation,
    FinalRecord,
    PatientSummary,
    ReportConclusion,
    ScenarioSummary,
    TrdAnalysis,
)

logger = get_logger(name=__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

MAX_LISTED_ITEMS = 5
AGE_RANGE = (18, 100)

ABSOLUTE_EXCLUSION_IDS = frozenset({"EC14", "EC1", "EC2", "GMEC6", "GMEC8", "GMEC12"})
_ABSOLUTE_MARKERS = ("ABSOLUTE", "BEZWZGLĘDNE WYKLUCZENIE")
_TEMPORARY_MARKERS = ("TEMPORARY", "CZASOWE WYKLUCZENIE")

_AGE_PATTERNS = (
    re.compile(r"(\d{1,3})[\s-]*(?:years?|yrs?)[\s-]*old", re.IGNORECASE),
    re.compile(r"\baged?[:\s]+(\d{1,3})\b", re.IGNORECASE),
    re.compile(r"(\d{1,3})[\s-]*(?:y/o|yo)\b", re.IGNORECASE),
    re.compile(r"(\d{1,3})[\s-]*(?:lat|roku)\b", re.IGNORECASE),
    re.compile(r"wiek[:\s]*(\d{1,3})", re.IGNORECASE),
    re.compile(r"(\d{1,3})[\s-]*letni[a]?\b", re.IGNORECASE),
)


def generate_patient_id(now: datetime | None = None, rng: random.Random | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    number = (rng or random).randrange(1000)
    return f"PAT/{moment:%Y%m}/{number:03d}"


def _plausible_age(value: int) -> bool:
    return AGE_RANGE[0] <= value <= AGE_RANGE[1]


def extract_age(clinical: ClinicalSynthesis | None) -> int | None:
    if clinical is None:
        return None
    if clinical.age is not None and _plausible_age(clinical.age):
        return clinical.age
    for text in (clinical.patient_overview, *clinical.key_observations):
        for pattern in _AGE_PATTERNS:
            match = pattern.search(text)
            if match and _plausible_age(int(match.group(1))):
                return int(match.group(1))
    return None


def _has_marker(text: str, markers: Iterable[str]) -> bool:
    upper = text.upper()
    return any(marker in upper for marker in markers)


def is_exclusion_id(criterion_id: str) -> bool:
    return "EC" in criterion_id or "MC" in criterion_id


def to_display(criteria: Iterable[CriterionAssessment]) -> list[DisplayCriterion]:
    """Exclusion criteria invert met/not_met so that passing one reads as satisfied."""
    display: list[DisplayCriterion] = []
    for criterion in criteria:
        status = criterion.status
        if is_exclusion_id(criterion.id):
            if status == CriterionStatus.MET:
                status = CriterionStatus.NOT_MET
            elif status == CriterionStatus.NOT_MET:
                status = CriterionStatus.MET
        display.append(
            DisplayCriterion(
                id=criterion.id,
                name=criterion.name,
                status=status.value,
                details=criterion.reasoning,
            )
        )
    return display


def marked_exclusions(criteria: CriteriaAssessment | None) -> list[CriterionAssessment]:
    """Met exclusion criteria whose reasoning carries the absolute-exclusion marker."""
    if criteria is None:
        return []
    return [
        criterion
        for criterion in (*criteria.psychiatric_exclusion_criteria, *criteria.medical_exclusion_criteria)
        if criterion.status == CriterionStatus.MET and _has_marker(criterion.reasoning, _ABSOLUTE_MARKERS)
    ]


def absolute_exclusions(criteria: CriteriaAssessment | None) -> list[CriterionAssessment]:
    return [criterion for criterion in marked_exclusions(criteria) if criterion.id in ABSOLUTE_EXCLUSION_IDS]


def qualify(risk: RiskAssessment | None, criteria: CriteriaAssessment | None) -> QualificationLabel:
    if absolute_exclusions(criteria):
        return QualificationLabel.NOT_ELIGIBLE_ABSOLUTE
    if risk is None:
        return QualificationLabel.NEEDS_EVALUATION
    recommendation = risk.inclusion_probability.recommendation
    score = risk.inclusion_probability.score
    if recommendation == "exclude" or score == 0:
        return QualificationLabel.NOT_ELIGIBLE
    if recommendation == "include" and score >= 70:
        return QualificationLabel.ELIGIBLE
    if recommendation == "further_evaluation" or 40 <= score < 70:
        return QualificationLabel.NEEDS_EVALUATION
    return QualificationLabel.LIKELY_NOT_ELIGIBLE


def main_issues(risk: RiskAssessment | None, criteria: CriteriaAssessment | None) -> list[str]:
    issues = [f"ABSOLUTE EXCLUSION: {criterion.name}" for criterion in marked_exclusions(criteria)]
    if risk is not None:
        issues.extend(risk.inclusion_probability.key_factors.negative)
    if criteria is not None:
        for criterion in criteria.inclusion_criteria:
            if criterion.status != CriterionStatus.NOT_MET:
                continue
            if _has_marker(criterion.reasoning, _TEMPORARY_MARKERS):
                issues.append(f"Temporary exclusion: {criterion.name}")
            else:
                issues.append(f"Unmet criterion: {criterion.name}")
    return issues[:MAX_LISTED_ITEMS]


def critical_info(risk: RiskAssessment | None, criteria: CriteriaAssessment | None) -> list[str]:
    info: list[str] = []
    if risk is not None:
        info.extend(risk.inclusion_probability.key_factors.neutral)
    if criteria is not None:
        info.extend(
            f"Verification required: {criterion.name}"
            for criterion in criteria.all_criteria()
            if criterion.status == CriterionStatus.VERIFY
        )
    return info[:MAX_LISTED_ITEMS]


def collect_risk_factors(clinical: ClinicalSynthesis | None, risk: RiskAssessment | None) -> list[str]:
    gathered: list[str] = []
    if clinical is not None:
        gathered.extend(clinical.risk_factors)
    if risk is not None:
        gathered.extend(risk.inclusion_probability.key_factors.negative)
        gathered.extend(risk.patient_risk_profile.suicidal_risk.indicators)
    return list(dict.fromkeys(factor for factor in gathered if factor))


def _onset(episodes: EpisodeAnalysis | None) -> str | None:
    if episodes is None or not episodes.scenarios:
        return None
    return episodes.scenarios[0].start_date


def _payload(
    results: Mapping[AgentSlot, AgentResult],
    slot: AgentSlot,
    model: type[PayloadT],
    *,
    completed_only: bool = False,
) -> PayloadT | None:
    result = results.get(slot)
    if result is None or (completed_only and not result.succeeded):
        return None
    if not isinstance(result.payload, model):
        return None
    return result.payload


def synthesize(
    results: Mapping[AgentSlot, AgentResult],
    *,
    model_used: str,
    drug_mapping_info: DrugMappingInfo | None = None,
    patient_id: str | None = None,
) -> FinalRecord:
    """Build the ``FinalRecord``.

    Display sections use whatever payload each agent produced, fallbacks
    included. The qualification label and the estimated probability rely on
    completed risk and criteria results only.
    """
    clinical = _payload(results, AgentSlot.CLINICAL_SYNTHESIS, ClinicalSynthesis)
    episodes = _payload(results, AgentSlot.EPISODE_ANALYSIS, EpisodeAnalysis)
    pharmacotherapy = _payload(results, AgentSlot.PHARMACOTHERAPY_ANALYSIS, PharmacotherapyAnalysis)
    trd = _payload(results, AgentSlot.TRD_ASSESSMENT, TrdAssessment)
    criteria_display = _payload(results, AgentSlot.CRITERIA_ASSESSMENT, CriteriaAssessment)
    criteria = _payload(results, AgentSlot.CRITERIA_ASSESSMENT, CriteriaAssessment, completed_only=True)
    risk_display = _payload(results, AgentSlot.RISK_ASSESSMENT, RiskAssessment)
    risk = _payload(results, AgentSlot.RISK_ASSESSMENT, RiskAssessment, completed_only=True)

    failed = [result for result in results.values() if not result.succeeded]
    warnings = [warning for result in failed for warning in result.warnings]
    if failed:
        names = ", ".join(result.agent.value for result in failed)
        warnings.append(f"Automated analysis incomplete ({names}); manual re-analysis recommended")

    label = qualify(risk, criteria)
    record = FinalRecord(
        summary=PatientSummary(
            id=patient_id or generate_patient_id(),
            age=extract_age(clinical),
            main_diagnosis=(clinical.main_diagnosis if clinical and clinical.main_diagnosis else "No main diagnosis data"),
            comorbidities=list(clinical.comorbidities) if clinical else [],
        ),
        episode_estimation=EpisodeEstimation(
            scenarios=[
                ScenarioSummary(id=scenario.id, description=scenario.description, evidence=scenario.evidence)
                for scenario in (episodes.scenarios if episodes else [])
            ],
            conclusion=episodes.conclusion if episodes else "No episode data",
        ),
        trd_analysis=TrdAnalysis(
            episode_start_date=_onset(episodes),
            pharmacotherapy=list(pharmacotherapy.timeline) if pharmacotherapy else [],
            conclusion=trd.conclusion if trd else "No TRD assessment",
        ),
        inclusion_criteria=to_display(criteria_display.inclusion_criteria if criteria_display else []),
        psychiatric_exclusion_criteria=to_display(
            criteria_display.psychiatric_exclusion_criteria if criteria_display else []
        ),
        medical_exclusion_criteria=to_display(criteria_display.medical_exclusion_criteria if criteria_display else []),
        report_conclusion=ReportConclusion(
            overall_qualification=label,
            main_issues=main_issues(risk_display, criteria_display),
            critical_info_needed=critical_info(risk_display, criteria_display),
            estimated_probability=risk.inclusion_probability.score if risk else 0.0,
        ),
        risk_factors=collect_risk_factors(clinical, risk_display),
        warnings=warnings,
        requires_manual_review=bool(failed),
        drug_mapping_info=drug_mapping_info,
        model_used=model_used,
    )
    logger.info(
        "final_record_synthesized",
        qualification=label.value,
        failed_agents=len(failed),
        patient_id=record.summary.id,
    )
    return record
