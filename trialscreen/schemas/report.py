from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from .agents import AgentResult, ExecutionLogEntry, TherapyItem, utcnow
from .enums import AgentSlot, QualificationLabel


class PatientSummary(BaseModel):
    id: str
    age: int | None = None
    main_diagnosis: str = ""
    comorbidities: list[str] = Field(default_factory=list)


class ScenarioSummary(BaseModel):
    id: int
    description: str
    evidence: str = ""


class EpisodeEstimation(BaseModel):
    scenarios: list[ScenarioSummary] = Field(default_factory=list)
    conclusion: str = ""


class TrdAnalysis(BaseModel):
    episode_start_date: str | None = None
    pharmacotherapy: list[TherapyItem] = Field(default_factory=list)
    conclusion: str = ""


class DisplayCriterion(BaseModel):
    """Criterion as shown to the reviewer; a passed exclusion criterion reads as met."""

    id: str
    name: str
    status: str
    details: str = ""


class ReportConclusion(BaseModel):
    overall_qualification: QualificationLabel
    main_issues: list[str] = Field(default_factory=list, max_length=5)
    critical_info_needed: list[str] = Field(default_factory=list, max_length=5)
    estimated_probability: float = Field(0.0, ge=0, le=100)


class DrugMappingEntry(BaseModel):
    original: str
    mapped: str
    confidence: float = Field(1.0, ge=0.0, le=1.0)


class DrugMappingInfo(BaseModel):
    mappings_applied: int = 0
    mappings: list[DrugMappingEntry] = Field(default_factory=list)
    preprocessed_at: datetime = Field(default_factory=utcnow)


class FinalRecord(BaseModel):
    summary: PatientSummary
    episode_estimation: EpisodeEstimation
    trd_analysis: TrdAnalysis
    inclusion_criteria: list[DisplayCriterion] = Field(default_factory=list)
    psychiatric_exclusion_criteria: list[DisplayCriterion] = Field(default_factory=list)
    medical_exclusion_criteria: list[DisplayCriterion] = Field(default_factory=list)
    report_conclusion: ReportConclusion
    risk_factors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    requires_manual_review: bool = False
    drug_mapping_info: DrugMappingInfo | None = None
    model_used: str
    analyzed_at: datetime = Field(default_factory=utcnow)


class PipelineOutcome(BaseModel):
    final_record: FinalRecord
    agent_results: dict[AgentSlot, AgentResult] = Field(default_factory=dict)
    execution_log: list[ExecutionLogEntry] = Field(default_factory=list)

    def rendered_log(self) -> list[str]:
        return [entry.render() for entry in self.execution_log]

    @property
    def failed_agents(self) -> list[AgentSlot]:
        return [slot for slot, result in self.agent_results.items() if not result.succeeded]
