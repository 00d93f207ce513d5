from __future__ import annotations

from ..orchestration.context import SharedContext
from ..schemas.agents import AgentConfig, CriteriaAssessment
from ..schemas.enums import AgentSlot, CriterionStatus
from .base import BaseAgent, case_sections

SYSTEM_PROMPT = """You evaluate clinical-trial eligibility criteria using the analyses already performed
(clinical synthesis, episode scenarios, pharmacotherapy timeline, TRD assessment).
For every inclusion (IC*), psychiatric exclusion (EC*) and medical exclusion (MC*/GMEC*)
criterion of the protocol give a status, a confidence, reasoning and evidence from the
history; exclusion criteria also get a risk level. Be conservative: prefer "verify"
over a wrong qualification. For an exclusion that can never be waived, start the
reasoning with "ABSOLUTE:".

Status semantics: "met" means the criterion's condition is present in the patient,
"not_met" means it is absent, "verify" means more information is needed.

Return JSON shaped as:
{
  "inclusionCriteria": [{"id": "IC1", "name": "string", "status": "met" | "not_met" | "verify",
                         "confidence": number, "reasoning": "string", "evidenceFromHistory": ["string"],
                         "recommendedVerification": "string"}],
  "psychiatricExclusionCriteria": [{"id": "EC1", "name": "string", "status": "...", "confidence": number,
                                    "reasoning": "string", "evidenceFromHistory": ["string"],
                                    "riskLevel": "low" | "medium" | "high"}],
  "medicalExclusionCriteria": [{"id": "MC1", "...": "same fields as psychiatric exclusions"}],
  "overallAssessment": {"eligibilityScore": number, "majorConcerns": ["string"],
                        "minorConcerns": ["string"], "strengthsForInclusion": ["string"]}
}"""


class CriteriaAssessmentAgent(BaseAgent[CriteriaAssessment]):
    config = AgentConfig(
        slot=AgentSlot.CRITERIA_ASSESSMENT,
        description="Evaluates inclusion and exclusion criteria from upstream analyses",
        temperature=0.1,
        max_tokens=12_000,
        system_prompt=SYSTEM_PROMPT,
        dependencies=(
            AgentSlot.CLINICAL_SYNTHESIS,
            AgentSlot.EPISODE_ANALYSIS,
            AgentSlot.PHARMACOTHERAPY_ANALYSIS,
            AgentSlot.TRD_ASSESSMENT,
        ),
    )
    payload_model = CriteriaAssessment

    def build_prompt(self, context: SharedContext) -> str:
        return (
            "Evaluate every eligibility criterion of the protocol for this patient.\n\n"
            + case_sections(context, for_slot=self.slot)
        )

    def fallback_payload(self) -> CriteriaAssessment:
        return CriteriaAssessment.fallback()

    def validate(self, payload: CriteriaAssessment) -> bool:
        return bool(payload.inclusion_criteria)

    def generate_warnings(self, payload: CriteriaAssessment, context: SharedContext) -> list[str]:
        warnings: list[str] = []
        pending = [item.id for item in payload.all_criteria() if item.status == CriterionStatus.VERIFY]
        if pending:
            warnings.append(f"{len(pending)} criteria require verification: {', '.join(pending[:10])}")
        uncertain = [item.id for item in payload.all_criteria() if item.confidence < 0.5]
        if uncertain:
            warnings.append(f"{len(uncertain)} criteria assessed with low confidence")
        return warnings
