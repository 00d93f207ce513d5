from __future__ import annotations

from ..orchestration.context import SharedContext
from ..schemas.agents import AgentConfig, EpisodeAnalysis
from ..schemas.enums import AgentSlot
from .base import BaseAgent, case_sections

SYSTEM_PROMPT = """You are a psychiatrist specialising in the course of depressive disorders.
Estimate when the current depressive episode began. Propose alternative scenarios,
each with supporting evidence, an estimated start date (YYYY-MM-DD or null), an end
date if the episode ended, and a confidence between 0 and 1. Identify remission
periods and pick the most likely scenario.

Return JSON shaped as:
{
  "scenarios": [{"id": 1, "description": "string", "evidence": "string",
                 "startDate": "YYYY-MM-DD" | null, "endDate": "YYYY-MM-DD" | null,
                 "confidence": number}],
  "mostLikelyScenario": number,
  "conclusion": "string",
  "remissionPeriods": [{"startDate": "string" | null, "endDate": "string" | null,
                        "evidence": "string", "confidence": number, "notes": "string"}]
}"""


class EpisodeAnalysisAgent(BaseAgent[EpisodeAnalysis]):
    config = AgentConfig(
        slot=AgentSlot.EPISODE_ANALYSIS,
        description="Estimates the onset of the current depressive episode as competing scenarios",
        temperature=0.1,
        max_tokens=10_000,
        system_prompt=SYSTEM_PROMPT,
    )
    payload_model = EpisodeAnalysis

    def build_prompt(self, context: SharedContext) -> str:
        return (
            "Analyse the depressive episodes in the following record.\n\n"
            + case_sections(context, for_slot=self.slot)
        )

    def fallback_payload(self) -> EpisodeAnalysis:
        return EpisodeAnalysis.fallback()

    def validate(self, payload: EpisodeAnalysis) -> bool:
        return bool(payload.scenarios) and bool(payload.conclusion.strip())

    def calculate_confidence(self, payload: EpisodeAnalysis, context: SharedContext) -> float:
        scenarios = payload.scenarios
        average = sum(scenario.confidence for scenario in scenarios) / len(scenarios)
        dated = sum(1 for scenario in scenarios if scenario.start_date is not None)
        return min(0.6 + average * 0.3 + (dated / len(scenarios)) * 0.1, 1.0)

    def generate_warnings(self, payload: EpisodeAnalysis, context: SharedContext) -> list[str]:
        warnings: list[str] = []
        undated = [scenario for scenario in payload.scenarios if scenario.start_date is None]
        if undated:
            warnings.append(f"{len(undated)} scenario(s) without an estimated start date")
        uncertain = [scenario for scenario in payload.scenarios if scenario.confidence < 0.5]
        if uncertain:
            warnings.append(f"{len(uncertain)} low-confidence scenario(s) need further verification")
        if len(payload.scenarios) == 1:
            warnings.append("Only one scenario identified - alternative interpretations may be missing")
        return warnings
