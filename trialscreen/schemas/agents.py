from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny, field_validator
from pydantic.alias_generators import to_camel

from .enums import AgentSlot, AgentStatus, CriterionStatus

MANUAL_REVIEW_NOTE = "Analysis failed; manual verification required"

RiskLevel = Literal["low", "medium", "high", "critical"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class AgentConfig:
    slot: AgentSlot
    description: str
    temperature: float
    max_tokens: int
    system_prompt: str
    dependencies: tuple[AgentSlot, ...] = ()


class ExecutionLogEntry(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    message: str

    model_config = ConfigDict(frozen=True)

    def render(self) -> str:
        return f"[{self.timestamp.isoformat()}] {self.message}"


PayloadT = TypeVar("PayloadT", bound=BaseModel)


class AgentResult(BaseModel, Generic[PayloadT]):
    """Outcome of one agent invocation; failed results carry the agent's fallback payload."""

    agent: AgentSlot
    payload: SerializeAsAny[PayloadT]
    confidence: float = Field(..., ge=0.0, le=1.0)
    warnings: list[str] = Field(default_factory=list)
    duration_ms: float = Field(0.0, ge=0.0)
    completed_at: datetime = Field(default_factory=utcnow)
    status: AgentStatus = AgentStatus.COMPLETED
    error_kind: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def succeeded(self) -> bool:
        return self.status == AgentStatus.COMPLETED


# ──────────────────────────────────────────────────────────────────────────────
# Agent payloads. Model output uses camelCase keys; attributes are snake_case.
# ──────────────────────────────────────────────────────────────────────────────


class PayloadModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)


class ClinicalSynthesis(PayloadModel):
    patient_overview: str
    main_diagnosis: str = ""
    comorbidities: list[str] = Field(default_factory=list)
    clinical_timeline: list[str] = Field(default_factory=list)
    key_observations: list[str] = Field(default_factory=list)
    treatment_history: str = ""
    risk_factors: list[str] = Field(default_factory=list)
    age: int | None = None

    @classmethod
    def fallback(cls) -> "ClinicalSynthesis":
        return cls(
            patient_overview="Clinical synthesis failed; manual review of the history is required",
            main_diagnosis="Not determined - analysis error",
            comorbidities=[],
            clinical_timeline=["Timeline unavailable - analysis error"],
            key_observations=["Automated analysis failed"],
            treatment_history="Treatment history unavailable - analysis error",
            risk_factors=["Unable to assess risk factors - analysis error"],
        )


class EpisodeScenario(PayloadModel):
    id: int
    description: str
    evidence: str = ""
    start_date: str | None = None
    end_date: str | None = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)


class RemissionPeriod(PayloadModel):
    start_date: str | None = None
    end_date: str | None = None
    evidence: str = ""
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    notes: str = ""


class EpisodeAnalysis(PayloadModel):
    scenarios: list[EpisodeScenario]
    most_likely_scenario: int
    conclusion: str
    remission_periods: list[RemissionPeriod] = Field(default_factory=list)

    def best_scenario(self) -> EpisodeScenario | None:
        for scenario in self.scenarios:
            if scenario.id == self.most_likely_scenario:
                return scenario
        return self.scenarios[0] if self.scenarios else None

    @classmethod
    def fallback(cls) -> "EpisodeAnalysis":
        return cls(
            scenarios=[
                EpisodeScenario(
                    id=1,
                    description="Episode analysis failed; manual review required",
                    evidence="Automated analysis failed",
                    confidence=0.0,
                )
            ],
            most_likely_scenario=1,
            conclusion="Episode onset could not be estimated; the history must be reviewed manually",
        )


class TherapyItem(PayloadModel):
    id: str
    drug_name: str
    short_name: str = ""
    start_date: str | None = None
    end_date: str | None = None
    dose: str = ""
    attempt_group: int = 0
    notes: str | None = None
    is_augmentation: bool = False
    base_drug: str | None = None


class DrugMapping(PayloadModel):
    original_name: str
    standard_name: str
    active_substance: str


class ProhibitedDrug(PayloadModel):
    drug_name: str
    last_used: str | None = None
    washout_required: str = ""
    status: Literal["compliant", "violation", "verification"] = "verification"


class HistoricalContext(PayloadModel):
    previous_medications: str = ""
    family_history: str = ""
    other_treatments: str = ""
    patient_background: str = ""


class PharmacotherapyAnalysis(PayloadModel):
    timeline: list[TherapyItem]
    drug_mappings: list[DrugMapping] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    prohibited_drugs: list[ProhibitedDrug] = Field(default_factory=list)
    clinical_claims_verification: str = ""
    historical_context: HistoricalContext | None = None

    @classmethod
    def fallback(cls) -> "PharmacotherapyAnalysis":
        return cls(
            timeline=[],
            gaps=["Pharmacotherapy analysis failed"],
            notes=[MANUAL_REVIEW_NOTE],
            clinical_claims_verification="Not verified - analysis error",
        )


class TreatmentTrial(PayloadModel):
    id: str
    drug_name: str
    dose: str = ""
    duration: float = 0
    adequate: bool = False
    reasoning: str = ""


class TrdAssessment(PayloadModel):
    episode_start_date: str | None = None
    adequate_trials: list[TreatmentTrial] = Field(default_factory=list)
    trd_status: Literal["confirmed", "not_confirmed", "insufficient_data"]
    failure_count: int = Field(0, ge=0)
    conclusion: str

    @classmethod
    def fallback(cls) -> "TrdAssessment":
        return cls(
            trd_status="insufficient_data",
            failure_count=0,
            conclusion="TRD status could not be assessed; manual review of treatment trials is required",
        )


_STATUS_ALIASES = {
    "spełnione": CriterionStatus.MET,
    "niespełnione": CriterionStatus.NOT_MET,
    "weryfikacja": CriterionStatus.VERIFY,
    "verification": CriterionStatus.VERIFY,
}


class CriterionAssessment(PayloadModel):
    id: str
    name: str
    status: CriterionStatus = CriterionStatus.VERIFY
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    reasoning: str = ""
    evidence_from_history: list[str] = Field(default_factory=list)
    risk_level: RiskLevel | None = None
    recommended_verification: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _map_status_aliases(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalised = value.strip().lower().replace(" ", "_").replace("-", "_")
            return _STATUS_ALIASES.get(normalised, normalised)
        return value


class OverallAssessment(PayloadModel):
    eligibility_score: float = Field(..., ge=0, le=100)
    major_concerns: list[str] = Field(default_factory=list)
    minor_concerns: list[str] = Field(default_factory=list)
    strengths_for_inclusion: list[str] = Field(default_factory=list)


class CriteriaAssessment(PayloadModel):
    inclusion_criteria: list[CriterionAssessment]
    psychiatric_exclusion_criteria: list[CriterionAssessment]
    medical_exclusion_criteria: list[CriterionAssessment]
    overall_assessment: OverallAssessment

    def all_criteria(self) -> list[CriterionAssessment]:
        return [*self.inclusion_criteria, *self.psychiatric_exclusion_criteria, *self.medical_exclusion_criteria]

    @classmethod
    def fallback(cls) -> "CriteriaAssessment":
        def _error_row(name: str, risk_level: RiskLevel | None) -> CriterionAssessment:
            return CriterionAssessment(
                id="ERROR",
                name=name,
                status=CriterionStatus.VERIFY,
                confidence=0.0,
                reasoning=MANUAL_REVIEW_NOTE,
                risk_level=risk_level,
            )

        return cls(
            inclusion_criteria=[_error_row("Inclusion criteria analysis failed", None)],
            psychiatric_exclusion_criteria=[_error_row("Psychiatric exclusion analysis failed", "high")],
            medical_exclusion_criteria=[_error_row("Medical exclusion analysis failed", "high")],
            overall_assessment=OverallAssessment(
                eligibility_score=0,
                major_concerns=["Criteria analysis failed"],
            ),
        )


class SuicidalRisk(PayloadModel):
    level: RiskLevel
    indicators: list[str] = Field(default_factory=list)
    mitigation_strategies: list[str] = Field(default_factory=list)


class AdherenceRisk(PayloadModel):
    level: RiskLevel
    factors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class AdverseEventRisk(PayloadModel):
    level: RiskLevel
    potential_events: list[str] = Field(default_factory=list)
    monitoring_needs: list[str] = Field(default_factory=list)


class DropoutRisk(PayloadModel):
    level: RiskLevel
    factors: list[str] = Field(default_factory=list)
    retention_strategies: list[str] = Field(default_factory=list)


class PatientRiskProfile(PayloadModel):
    suicidal_risk: SuicidalRisk
    adherence_risk: AdherenceRisk
    adverse_event_risk: AdverseEventRisk
    dropout_risk: DropoutRisk


class StudySpecificRisks(PayloadModel):
    protocol_compliance: float = Field(..., ge=0, le=100)
    data_quality: float = Field(..., ge=0, le=100)
    ethical_concerns: list[str] = Field(default_factory=list)


class KeyFactors(PayloadModel):
    positive: list[str] = Field(default_factory=list)
    negative: list[str] = Field(default_factory=list)
    neutral: list[str] = Field(default_factory=list)


class InclusionProbability(PayloadModel):
    score: float = Field(..., ge=0, le=100)
    confidence: float = Field(..., ge=0, le=100)
    key_factors: KeyFactors = Field(default_factory=KeyFactors)
    recommendation: Literal["include", "exclude", "further_evaluation"]
    reasoning: str = ""


class RiskAssessment(PayloadModel):
    patient_risk_profile: PatientRiskProfile
    study_specific_risks: StudySpecificRisks
    inclusion_probability: InclusionProbability

    @classmethod
    def fallback(cls) -> "RiskAssessment":
        return cls(
            patient_risk_profile=PatientRiskProfile(
                suicidal_risk=SuicidalRisk(
                    level="high",
                    indicators=["Analysis error - risk could not be assessed"],
                    mitigation_strategies=["Manual psychiatric assessment required"],
                ),
                adherence_risk=AdherenceRisk(level="high", factors=["Analysis error - adherence not assessed"]),
                adverse_event_risk=AdverseEventRisk(level="high", potential_events=["Unknown - analysis error"]),
                dropout_risk=DropoutRisk(level="high", factors=["Analysis error - dropout risk not assessed"]),
            ),
            study_specific_risks=StudySpecificRisks(
                protocol_compliance=0,
                data_quality=0,
                ethical_concerns=["Risk analysis system error"],
            ),
            inclusion_probability=InclusionProbability(
                score=0,
                confidence=0,
                key_factors=KeyFactors(negative=["Risk analysis failed"]),
                recommendation="further_evaluation",
                reasoning="Risk analysis failed; a complete manual assessment by the study team is required",
            ),
        )


__all__ = [
    "AgentConfig",
    "AgentResult",
    "ExecutionLogEntry",
    "PayloadModel",
    "ClinicalSynthesis",
    "EpisodeScenario",
    "RemissionPeriod",
    "EpisodeAnalysis",
    "TherapyItem",
    "DrugMapping",
    "ProhibitedDrug",
    "HistoricalContext",
    "PharmacotherapyAnalysis",
    "TreatmentTrial",
    "TrdAssessment",
    "CriterionAssessment",
    "OverallAssessment",
    "CriteriaAssessment",
    "PatientRiskProfile",
    "KeyFactors",
    "InclusionProbability",
    "RiskAssessment",
    "MANUAL_REVIEW_NOTE",
]
