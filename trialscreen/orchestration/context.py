from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, TypeVar

from pydantic import BaseModel

from ..schemas.agents import AgentResult
from ..schemas.enums import AgentSlot, TargetModel
from ..schemas.report import DrugMappingInfo

PayloadT = TypeVar("PayloadT", bound=BaseModel)

DIGEST_ORDER: tuple[tuple[AgentSlot, str], ...] = (
    (AgentSlot.CLINICAL_SYNTHESIS, "CLINICAL SYNTHESIS"),
    (AgentSlot.EPISODE_ANALYSIS, "EPISODE ANALYSIS"),
    (AgentSlot.PHARMACOTHERAPY_ANALYSIS, "PHARMACOTHERAPY ANALYSIS"),
    (AgentSlot.TRD_ASSESSMENT, "TRD ASSESSMENT"),
    (AgentSlot.CRITERIA_ASSESSMENT, "CRITERIA ASSESSMENT"),
)


class SlotAlreadyWritten(RuntimeError):
    """Raised when a context slot is written twice within one run."""


class SharedContext:
    """Read-only view of one run's inputs and completed agent results.

    Agents receive this object; only the ``ContextWriter`` held by the
    coordinator can populate slots.
    """

    def __init__(
        self,
        *,
        history: str,
        protocol: str,
        target: TargetModel,
        drug_mapping_info: DrugMappingInfo | None = None,
        digest_chars: int = 600,
    ) -> None:
        self._history = history
        self._protocol = protocol
        self._target = TargetModel(target)
        self._drug_mapping_info = drug_mapping_info
        self._digest_chars = digest_chars
        self._slots: dict[AgentSlot, AgentResult] = {}
        self._view = MappingProxyType(self._slots)

    @property
    def history(self) -> str:
        return self._history

    @property
    def protocol(self) -> str:
        return self._protocol

    @property
    def target(self) -> TargetModel:
        return self._target

    @property
    def drug_mapping_info(self) -> DrugMappingInfo | None:
        return self._drug_mapping_info

    @property
    def slots(self) -> Mapping[AgentSlot, AgentResult]:
        return self._view

    def has(self, slot: AgentSlot) -> bool:
        return slot in self._slots

    def get(self, slot: AgentSlot) -> AgentResult | None:
        return self._slots.get(slot)

    def payload(self, slot: AgentSlot, model: type[PayloadT]) -> PayloadT | None:
        result = self._slots.get(slot)
        if result is None:
            return None
        if not isinstance(result.payload, model):
            raise TypeError(f"slot {slot.value} holds {type(result.payload).__name__}, not {model.__name__}")
        return result.payload

    def prior_results_digest(self, for_slot: AgentSlot | None = None) -> str:
        """Render completed upstream results as prompt-ready text, one bounded section per slot."""
        sections: list[str] = []
        for slot, heading in DIGEST_ORDER:
            if slot == for_slot:
                continue
            result = self._slots.get(slot)
            if result is None:
                continue
            body = result.payload.model_dump_json(by_alias=True, indent=2, exclude_none=True)
            if len(body) > self._digest_chars:
                body = body[: self._digest_chars].rstrip() + " ...[truncated]"
            sections.append(f"{heading} (confidence {result.confidence:.2f}):\n{body}")
        if not sections:
            return "No prior results available."
        return "\n\n".join(sections)


class ContextWriter:
    """Owns slot writes for a single run; each slot accepts exactly one result."""

    def __init__(self, context: SharedContext) -> None:
        self._context = context

    @property
    def context(self) -> SharedContext:
        return self._context

    def record(self, result: AgentResult) -> None:
        slots = self._context._slots
        if result.agent in slots:
            raise SlotAlreadyWritten(f"context slot {result.agent.value} already populated in this run")
        slots[result.agent] = result
