from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends

from .agents.base import BaseAgent
from .agents.clinical import ClinicalSynthesisAgent
from .agents.criteria import CriteriaAssessmentAgent
from .agents.episodes import EpisodeAnalysisAgent
from .agents.pharmacotherapy import PharmacotherapyAgent
from .agents.risk import RiskAssessmentAgent
from .agents.trd import TrdAssessmentAgent
from .core.config import Settings, get_settings
from .orchestration.coordinator import Coordinator, HistoryPreprocessor
from .services.invoker import CompletionTransport, ResilientInvoker
from .services.relay import RelayClient, RelayConfig

AGENT_TYPES: tuple[type[BaseAgent], ...] = (
    ClinicalSynthesisAgent,
    EpisodeAnalysisAgent,
    PharmacotherapyAgent,
    TrdAssessmentAgent,
    CriteriaAssessmentAgent,
    RiskAssessmentAgent,
)


def build_agents(invoker: ResilientInvoker) -> list[BaseAgent]:
    return [agent_type(invoker) for agent_type in AGENT_TYPES]


def build_coordinator(
    settings: Settings,
    transport: CompletionTransport,
    *,
    preprocessor: HistoryPreprocessor | None = None,
) -> Coordinator:
    invoker = ResilientInvoker.from_settings(transport, settings.invoker, settings.relay)
    return Coordinator(
        build_agents(invoker),
        preprocessor=preprocessor,
        default_target=settings.invoker.default_target,
        digest_chars=settings.coordinator.digest_chars,
    )


async def get_app_settings() -> AsyncIterator[Settings]:
    yield get_settings()


async def get_coordinator(
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[Coordinator]:
    relay = RelayClient(RelayConfig.from_settings(settings.relay))
    try:
        yield build_coordinator(settings, relay)
    finally:
        await relay.aclose()
