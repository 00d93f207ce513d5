from __future__ import annotations

from ..orchestration.context import SharedContext
from ..schemas.agents import AgentConfig, ClinicalSynthesis
from ..schemas.enums import AgentSlot
from .base import BaseAgent, case_sections

SYSTEM_PROMPT = """You are an experienced clinical psychiatrist and trial investigator.
Produce a comprehensive clinical synthesis of the patient's medical history:
1. a concise patient overview,
2. the main diagnosis and any comorbidities,
3. a chronological clinical timeline,
4. key clinical observations, patterns and anomalies,
5. a summary of treatment history,
6. clinical risk factors and contraindications.

Return JSON shaped as:
{
  "patientOverview": "string",
  "mainDiagnosis": "string",
  "comorbidities": ["string"],
  "age": number | null,
  "clinicalTimeline": ["string"],
  "keyObservations": ["string"],
  "treatmentHistory": "string",
  "riskFactors": ["string"]
}"""


class ClinicalSynthesisAgent(BaseAgent[ClinicalSynthesis]):
    config = AgentConfig(
        slot=AgentSlot.CLINICAL_SYNTHESIS,
        description="Synthesises the medical history the way a senior clinical investigator would",
        temperature=0.2,
        max_tokens=8_000,
        system_prompt=SYSTEM_PROMPT,
    )
    payload_model = ClinicalSynthesis

    def build_prompt(self, context: SharedContext) -> str:
        return (
            "Analyse the following patient record and produce the clinical synthesis.\n\n"
            + case_sections(context, include_digest=False)
        )

    def fallback_payload(self) -> ClinicalSynthesis:
        return ClinicalSynthesis.fallback()

    def validate(self, payload: ClinicalSynthesis) -> bool:
        return bool(payload.patient_overview.strip()) and bool(payload.treatment_history.strip())

    def calculate_confidence(self, payload: ClinicalSynthesis, context: SharedContext) -> float:
        confidence = 0.7
        if len(payload.clinical_timeline) > 2:
            confidence += 0.1
        if len(payload.key_observations) > 2:
            confidence += 0.1
        if len(payload.patient_overview) > 100:
            confidence += 0.05
        if len(payload.treatment_history) > 100:
            confidence += 0.05
        return min(confidence, 1.0)

    def generate_warnings(self, payload: ClinicalSynthesis, context: SharedContext) -> list[str]:
        warnings: list[str] = []
        if len(payload.clinical_timeline) < 2:
            warnings.append("Limited clinical timeline - historical data may be missing")
        if len(payload.key_observations) < 2:
            warnings.append("Few key observations - the record may be incomplete")
        if not payload.risk_factors:
            warnings.append("No risk factors identified - additional review may be needed")
        return warnings
