from __future__ import annotations

from ..orchestration.context import SharedContext
from ..schemas.agents import AgentConfig, EpisodeAnalysis, TrdAssessment
from ..schemas.enums import AgentSlot
from .base import BaseAgent, case_sections

SYSTEM_PROMPT = """You assess treatment-resistant depression (TRD) using the MGH-ATRQ criteria.
For every treatment trial in the current episode decide whether it was adequate:
the drug is on the protocol's MGH-ATRQ list, the dose and duration meet the minimums,
and it was given during the current episode. Each adequate trial without improvement
counts as one failure; augmentation is a separate trial. TRD means two or more
failed adequate trials. Document every decision.

Return JSON shaped as:
{
  "episodeStartDate": "YYYY-MM-DD" | null,
  "adequateTrials": [{"id": "string", "drugName": "string", "dose": "string",
                      "duration": number, "adequate": boolean, "reasoning": "string"}],
  "trdStatus": "confirmed" | "not_confirmed" | "insufficient_data",
  "failureCount": number,
  "conclusion": "string"
}"""


class TrdAssessmentAgent(BaseAgent[TrdAssessment]):
    config = AgentConfig(
        slot=AgentSlot.TRD_ASSESSMENT,
        description="Counts adequate failed antidepressant trials against MGH-ATRQ",
        temperature=0.05,
        max_tokens=12_000,
        system_prompt=SYSTEM_PROMPT,
        dependencies=(
            AgentSlot.CLINICAL_SYNTHESIS,
            AgentSlot.EPISODE_ANALYSIS,
            AgentSlot.PHARMACOTHERAPY_ANALYSIS,
        ),
    )
    payload_model = TrdAssessment

    def build_prompt(self, context: SharedContext) -> str:
        return (
            "Assess treatment resistance for the following patient.\n\n"
            + case_sections(context, for_slot=self.slot)
        )

    def fallback_payload(self) -> TrdAssessment:
        return TrdAssessment.fallback()

    def calculate_confidence(self, payload: TrdAssessment, context: SharedContext) -> float:
        confidence = 0.6
        episodes = context.payload(AgentSlot.EPISODE_ANALYSIS, EpisodeAnalysis)
        best = episodes.best_scenario() if episodes is not None else None
        if best is not None and best.confidence > 0.7:
            confidence += 0.2
        complete = sum(1 for trial in payload.adequate_trials if trial.duration > 0 and trial.dose != "N/A")
        confidence += (complete / max(1, len(payload.adequate_trials))) * 0.2
        if payload.trd_status == "insufficient_data":
            confidence *= 0.5
        return min(confidence, 1.0)

    def generate_warnings(self, payload: TrdAssessment, context: SharedContext) -> list[str]:
        warnings: list[str] = []
        if payload.trd_status == "insufficient_data":
            warnings.append("Insufficient data to assess TRD - additional verification required")
        inadequate = [trial for trial in payload.adequate_trials if not trial.adequate]
        if inadequate:
            warnings.append(f"{len(inadequate)} treatment trial(s) do not meet MGH-ATRQ adequacy")
        if not payload.episode_start_date:
            warnings.append("Episode start date undetermined - may affect the TRD assessment")
        if payload.trd_status == "confirmed" and payload.failure_count < 2:
            warnings.append("TRD confirmed despite fewer than 2 failures - check the reasoning")
        if payload.trd_status == "not_confirmed" and payload.failure_count >= 2:
            warnings.append("TRD not confirmed despite 2 or more failures - check the reasoning")
        return warnings
