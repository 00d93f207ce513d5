from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from ..core import metrics
from ..core.errors import DependencyMissing, ValidationFailed, classify_error
from ..core.logging import get_logger
from ..orchestration.context import SharedContext
from ..schemas.agents import AgentConfig, AgentResult
from ..schemas.enums import AgentSlot, AgentStatus
from ..services.invoker import CompletionRequest, ResilientInvoker
from ..utils.json_repair import extract_structured

logger = get_logger(name=__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

JSON_ONLY_INSTRUCTION = "Respond with a single JSON object only, without commentary or markdown."


class BaseAgent(ABC, Generic[PayloadT]):
    """One analysis step: context slice in, confidence-scored ``AgentResult`` out.

    ``process`` never raises. Any failure is classified and turned into a
    ``failed`` result carrying ``fallback_payload()`` with zero confidence.
    """

    config: ClassVar[AgentConfig]
    payload_model: ClassVar[type[BaseModel]]

    def __init__(self, invoker: ResilientInvoker) -> None:
        self._invoker = invoker

    @property
    def slot(self) -> AgentSlot:
        return self.config.slot

    @property
    def name(self) -> str:
        return self.config.slot.value

    async def process(self, context: SharedContext) -> AgentResult:
        start = time.perf_counter()
        logger.info("agent_started", agent=self.name, target=context.target.value)
        try:
            self.check_dependencies(context)
            payload = await self.execute_logic(context)
            if not self.validate(payload):
                raise ValidationFailed(f"Validation failed for agent {self.name}")
            confidence = min(max(float(self.calculate_confidence(payload, context)), 0.0), 1.0)
            warnings = list(self.generate_warnings(payload, context))
        except Exception as exc:  # noqa: BLE001 - agent boundary contains every failure
            return self._failed(exc, start)

        elapsed = time.perf_counter() - start
        metrics.observe_agent_execution(agent=self.name, success=True, latency=elapsed)
        logger.info("agent_completed", agent=self.name, confidence=confidence, warnings=len(warnings))
        return AgentResult(
            agent=self.slot,
            payload=payload,
            confidence=confidence,
            warnings=warnings,
            duration_ms=elapsed * 1000,
            status=AgentStatus.COMPLETED,
        )

    def _failed(self, exc: Exception, start: float) -> AgentResult:
        elapsed = time.perf_counter() - start
        kind = classify_error(exc)
        metrics.observe_agent_execution(agent=self.name, success=False, latency=elapsed)
        metrics.increment_agent_error(agent=self.name, kind=kind)
        logger.warning("agent_failed", agent=self.name, kind=kind, error=str(exc))
        return AgentResult(
            agent=self.slot,
            payload=self.fallback_payload(),
            confidence=0.0,
            warnings=[f"{kind} in {self.name}: {exc}"],
            duration_ms=elapsed * 1000,
            status=AgentStatus.FAILED,
            error_kind=kind,
        )

    def check_dependencies(self, context: SharedContext) -> None:
        for dependency in self.config.dependencies:
            if not context.has(dependency):
                raise DependencyMissing(dependency.value, self.name)

    async def execute_logic(self, context: SharedContext) -> PayloadT:
        prompt = self.build_prompt(context)
        content = await self.complete(context, prompt)
        return self.parse_payload(extract_structured(content))

    async def complete(self, context: SharedContext, prompt: str) -> str:
        request = CompletionRequest(
            target=context.target,
            system_prompt=f"{self.config.system_prompt}\n\n{JSON_ONLY_INSTRUCTION}",
            user_prompt=prompt,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        invocation = await self._invoker.invoke(request)
        if invocation.used_fallback:
            logger.info("agent_served_by_fallback", agent=self.name, target=invocation.target.value)
        return invocation.content

    def parse_payload(self, data: dict[str, Any]) -> PayloadT:
        try:
            return self.payload_model.model_validate(data)  # type: ignore[return-value]
        except ValidationError as exc:
            raise ValidationFailed(
                f"{self.name} response failed structural validation: {exc.error_count()} error(s); "
                f"first: {exc.errors()[0].get('msg')}"
            ) from exc

    @abstractmethod
    def build_prompt(self, context: SharedContext) -> str:
        ...

    @abstractmethod
    def fallback_payload(self) -> PayloadT:
        ...

    def validate(self, payload: PayloadT) -> bool:
        return payload is not None

    def calculate_confidence(self, payload: PayloadT, context: SharedContext) -> float:
        return 0.8

    def generate_warnings(self, payload: PayloadT, context: SharedContext) -> list[str]:
        return []


def case_sections(context: SharedContext, *, include_digest: bool = True, for_slot: AgentSlot | None = None) -> str:
    """Common prompt body: protocol, history and, optionally, completed upstream results."""
    parts = [
        f"STUDY PROTOCOL:\n{context.protocol}",
        f"MEDICAL HISTORY:\n{context.history}",
    ]
    if include_digest:
        parts.append(f"PRIOR ANALYSIS RESULTS:\n{context.prior_results_digest(for_slot)}")
    return "\n\n".join(parts)


__all__ = ["BaseAgent", "case_sections", "JSON_ONLY_INSTRUCTION"]
