from __future__ import annotations

from ..orchestration.context import SharedContext
from ..schemas.agents import AgentConfig, PharmacotherapyAnalysis
from ..schemas.enums import AgentSlot
from .base import BaseAgent, case_sections

SYSTEM_PROMPT = """You are a clinical psychopharmacologist reviewing a trial candidate's treatment record.
Reconstruct the pharmacotherapy timeline: every drug with its dose, start and end
dates (YYYY-MM-DD or null) and the attempt group it belongs to (0 when it is not an
adequate antidepressant trial; augmentations reference their base drug). Map trade
names to active substances, list timeline gaps, check drugs the protocol prohibits
together with their washout status, and verify the history's clinical claims.

Return JSON shaped as:
{
  "timeline": [{"id": "string", "drugName": "string", "shortName": "string",
                "startDate": "string" | null, "endDate": "string" | null, "dose": "string",
                "attemptGroup": number, "notes": "string", "isAugmentation": boolean,
                "baseDrug": "string" | null}],
  "drugMappings": [{"originalName": "string", "standardName": "string", "activeSubstance": "string"}],
  "gaps": ["string"],
  "notes": ["string"],
  "prohibitedDrugs": [{"drugName": "string", "lastUsed": "string" | null,
                       "washoutRequired": "string", "status": "compliant" | "violation" | "verification"}],
  "clinicalClaimsVerification": "string",
  "historicalContext": {"previousMedications": "string", "familyHistory": "string",
                        "otherTreatments": "string", "patientBackground": "string"}
}"""


class PharmacotherapyAgent(BaseAgent[PharmacotherapyAnalysis]):
    config = AgentConfig(
        slot=AgentSlot.PHARMACOTHERAPY_ANALYSIS,
        description="Reconstructs the treatment timeline and checks prohibited medication",
        temperature=0.1,
        max_tokens=15_000,
        system_prompt=SYSTEM_PROMPT,
    )
    payload_model = PharmacotherapyAnalysis

    def build_prompt(self, context: SharedContext) -> str:
        sections = [
            "Analyse the pharmacotherapy in the following record.",
            case_sections(context, for_slot=self.slot),
        ]
        mapping_info = context.drug_mapping_info
        if mapping_info is not None and mapping_info.mappings:
            lines = "\n".join(
                f"- {entry.original} -> {entry.mapped} (confidence {entry.confidence:.0%})"
                for entry in mapping_info.mappings
            )
            sections.append(f"TRADE NAMES ALREADY MAPPED TO ACTIVE SUBSTANCES:\n{lines}")
        return "\n\n".join(sections)

    def fallback_payload(self) -> PharmacotherapyAnalysis:
        return PharmacotherapyAnalysis.fallback()

    def calculate_confidence(self, payload: PharmacotherapyAnalysis, context: SharedContext) -> float:
        confidence = 0.7
        if payload.timeline:
            dated = sum(1 for item in payload.timeline if item.start_date and item.end_date)
            confidence += (dated / len(payload.timeline)) * 0.2
        if payload.drug_mappings:
            confidence += 0.1
        return min(confidence, 1.0)

    def generate_warnings(self, payload: PharmacotherapyAnalysis, context: SharedContext) -> list[str]:
        warnings: list[str] = []
        if payload.gaps:
            warnings.append(f"{len(payload.gaps)} gap(s) identified in the pharmacotherapy timeline")
        undated = sum(1 for item in payload.timeline if not item.start_date or not item.end_date)
        if undated:
            warnings.append(f"{undated} treatment period(s) without complete dates - may affect the TRD assessment")
        if not payload.drug_mappings:
            warnings.append("No drug mappings - active substances may be misidentified")
        if not any(item.attempt_group > 0 for item in payload.timeline):
            warnings.append("No adequate treatment attempts identified - may affect the TRD assessment")
        violations = [drug.drug_name for drug in payload.prohibited_drugs if drug.status == "violation"]
        if violations:
            warnings.append(f"Prohibited medication washout violated: {', '.join(violations)}")
        return warnings
