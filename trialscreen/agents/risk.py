from __future__ import annotations

from ..orchestration.context import SharedContext
from ..schemas.agents import AgentConfig, RiskAssessment
from ..schemas.enums import AgentSlot
from .base import BaseAgent, case_sections

SYSTEM_PROMPT = """You are a clinical-trial safety specialist. From the upstream analyses build the
patient's risk profile (suicidal, adherence, adverse-event and dropout risk, each with
a level and supporting factors), the study-specific risks (protocol compliance and
data quality on 0-100, ethical concerns) and the probability of inclusion (score and
confidence on 0-100, positive/negative/neutral key factors, a recommendation and
its reasoning).

Return JSON shaped as:
{
  "patientRiskProfile": {
    "suicidalRisk": {"level": "low" | "medium" | "high" | "critical", "indicators": ["string"],
                     "mitigationStrategies": ["string"]},
    "adherenceRisk": {"level": "low" | "medium" | "high", "factors": ["string"], "recommendations": ["string"]},
    "adverseEventRisk": {"level": "low" | "medium" | "high", "potentialEvents": ["string"],
                         "monitoringNeeds": ["string"]},
    "dropoutRisk": {"level": "low" | "medium" | "high", "factors": ["string"], "retentionStrategies": ["string"]}
  },
  "studySpecificRisks": {"protocolCompliance": number, "dataQuality": number, "ethicalConcerns": ["string"]},
  "inclusionProbability": {"score": number, "confidence": number,
                           "keyFactors": {"positive": ["string"], "negative": ["string"], "neutral": ["string"]},
                           "recommendation": "include" | "exclude" | "further_evaluation",
                           "reasoning": "string"}
}"""


class RiskAssessmentAgent(BaseAgent[RiskAssessment]):
    config = AgentConfig(
        slot=AgentSlot.RISK_ASSESSMENT,
        description="Profiles patient and study risks and estimates the probability of inclusion",
        temperature=0.2,
        max_tokens=15_000,
        system_prompt=SYSTEM_PROMPT,
        dependencies=(
            AgentSlot.CLINICAL_SYNTHESIS,
            AgentSlot.EPISODE_ANALYSIS,
            AgentSlot.PHARMACOTHERAPY_ANALYSIS,
            AgentSlot.TRD_ASSESSMENT,
            AgentSlot.CRITERIA_ASSESSMENT,
        ),
    )
    payload_model = RiskAssessment

    def build_prompt(self, context: SharedContext) -> str:
        return (
            "Assess the risks of enrolling this patient and estimate the probability of inclusion.\n\n"
            + case_sections(context, for_slot=self.slot)
        )

    def fallback_payload(self) -> RiskAssessment:
        return RiskAssessment.fallback()

    def generate_warnings(self, payload: RiskAssessment, context: SharedContext) -> list[str]:
        warnings: list[str] = []
        suicidal = payload.patient_risk_profile.suicidal_risk
        if suicidal.level in ("high", "critical"):
            warnings.append(f"Suicidal risk assessed as {suicidal.level} - psychiatric review required")
        if payload.study_specific_risks.data_quality < 50:
            warnings.append("Low data quality - conclusions rest on incomplete documentation")
        if payload.inclusion_probability.confidence < 50:
            warnings.append("Low confidence in the inclusion estimate")
        return warnings
