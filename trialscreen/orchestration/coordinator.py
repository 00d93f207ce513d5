from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Sequence

from ..core import metrics
from ..core.logging import get_logger, pipeline_run_context
from ..schemas.agents import AgentResult
from ..schemas.enums import AgentSlot, TargetModel
from ..schemas.report import DrugMappingEntry, DrugMappingInfo, PipelineOutcome
from .context import ContextWriter, SharedContext
from .state import ExecutionLog, InvocationTracker
from .synthesis import synthesize

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..agents.base import BaseAgent

logger = get_logger(name=__name__)


@dataclass(slots=True, frozen=True)
class Phase:
    name: str
    slots: tuple[AgentSlot, ...]
    concurrent: bool = False


DEFAULT_PHASES: tuple[Phase, ...] = (
    Phase(
        "baseline analysis",
        (AgentSlot.CLINICAL_SYNTHESIS, AgentSlot.EPISODE_ANALYSIS, AgentSlot.PHARMACOTHERAPY_ANALYSIS),
        concurrent=True,
    ),
    Phase("treatment resistance", (AgentSlot.TRD_ASSESSMENT,)),
    Phase("eligibility criteria", (AgentSlot.CRITERIA_ASSESSMENT,)),
    Phase("risk assessment", (AgentSlot.RISK_ASSESSMENT,)),
)


@dataclass(slots=True)
class PreprocessedHistory:
    text: str
    mappings: list[DrugMappingEntry] = field(default_factory=list)


HistoryPreprocessor = Callable[[str], Awaitable[PreprocessedHistory]]


class CoordinatorConfigurationError(ValueError):
    """Raised when the phase plan and the agent registry disagree."""


class Coordinator:
    """Runs registered agents phase by phase and synthesizes the final record.

    Agents within a concurrent phase all settle before the next phase starts.
    Only the coordinator writes to the run's ``SharedContext``, and only
    completed results are written.
    """

    def __init__(
        self,
        agents: Iterable["BaseAgent"],
        *,
        phases: Sequence[Phase] = DEFAULT_PHASES,
        preprocessor: HistoryPreprocessor | None = None,
        default_target: TargetModel = TargetModel.GEMINI,
        digest_chars: int = 600,
    ) -> None:
        self._agents: dict[AgentSlot, "BaseAgent"] = {}
        for agent in agents:
            if agent.slot in self._agents:
                raise CoordinatorConfigurationError(f"agent {agent.slot.value} registered twice")
            self._agents[agent.slot] = agent
        self._phases = tuple(phases)
        self._validate_plan()
        self._preprocessor = preprocessor
        self._default_target = default_target
        self._digest_chars = digest_chars

    @property
    def phases(self) -> tuple[Phase, ...]:
        return self._phases

    def _validate_plan(self) -> None:
        scheduled: list[AgentSlot] = [slot for phase in self._phases for slot in phase.slots]
        duplicates = {slot.value for slot in scheduled if scheduled.count(slot) > 1}
        if duplicates:
            raise CoordinatorConfigurationError(f"agents scheduled more than once: {sorted(duplicates)}")
        missing = [slot.value for slot in scheduled if slot not in self._agents]
        if missing:
            raise CoordinatorConfigurationError(f"phase plan references unregistered agents: {missing}")

    async def run(self, history: str, protocol: str, target: TargetModel | None = None) -> PipelineOutcome:
        chosen = TargetModel(target) if target is not None else self._default_target
        with pipeline_run_context(target=chosen.value):
            return await self._run(history, protocol, chosen)

    async def _run(self, history: str, protocol: str, chosen: TargetModel) -> PipelineOutcome:
        log = ExecutionLog()
        started = time.perf_counter()
        log.append(f"Starting multi-agent analysis with target {chosen.value}")
        logger.info("pipeline_started", target=chosen.value, agents=len(self._agents))

        text, mapping_info = await self._preprocess(history, log)
        writer = ContextWriter(
            SharedContext(
                history=text,
                protocol=protocol,
                target=chosen,
                drug_mapping_info=mapping_info,
                digest_chars=self._digest_chars,
            )
        )
        tracker = InvocationTracker(slot for phase in self._phases for slot in phase.slots)
        results: dict[AgentSlot, AgentResult] = {}

        for index, phase in enumerate(self._phases, start=1):
            log.append(f"Phase {index}: {phase.name}")
            if phase.concurrent and len(phase.slots) > 1:
                await asyncio.gather(
                    *(self._run_agent(slot, writer, tracker, results, log) for slot in phase.slots)
                )
            else:
                for slot in phase.slots:
                    await self._run_agent(slot, writer, tracker, results, log)

        log.append(f"Phase {len(self._phases) + 1}: synthesis")
        record = synthesize(results, model_used=chosen.value, drug_mapping_info=mapping_info)
        failed = [slot.value for slot, result in results.items() if not result.succeeded]
        if failed:
            log.append(f"Analysis finished with {len(failed)} failed agent(s): {', '.join(failed)}")
        else:
            log.append("Analysis finished successfully")

        elapsed = time.perf_counter() - started
        metrics.observe_pipeline_run(target=chosen.value, degraded=bool(failed), latency=elapsed)
        logger.info(
            "pipeline_completed",
            target=chosen.value,
            failed_agents=failed,
            qualification=record.report_conclusion.overall_qualification.value,
            elapsed=elapsed,
        )
        return PipelineOutcome(final_record=record, agent_results=results, execution_log=log.entries())

    async def _preprocess(self, history: str, log: ExecutionLog) -> tuple[str, DrugMappingInfo | None]:
        if self._preprocessor is None:
            return history, None
        try:
            processed = await self._preprocessor(history)
        except Exception as exc:  # noqa: BLE001 - preprocessing is best effort
            logger.warning("history_preprocessing_failed", error=str(exc))
            log.append(f"History preprocessing failed, continuing with the original text: {exc}")
            return history, None
        log.append(f"History preprocessing applied {len(processed.mappings)} drug mapping(s)")
        return processed.text, DrugMappingInfo(mappings_applied=len(processed.mappings), mappings=processed.mappings)

    async def _run_agent(
        self,
        slot: AgentSlot,
        writer: ContextWriter,
        tracker: InvocationTracker,
        results: dict[AgentSlot, AgentResult],
        log: ExecutionLog,
    ) -> AgentResult:
        agent = self._agents[slot]
        tracker.start(slot)
        log.append(f"Running agent {slot.value}")
        result = await agent.process(writer.context)
        tracker.finish(slot, succeeded=result.succeeded)
        results[slot] = result
        if result.succeeded:
            writer.record(result)
            log.append(
                f"Agent {slot.value} completed in {result.duration_ms:.0f}ms "
                f"(confidence {result.confidence:.2f})"
            )
        else:
            reason = result.warnings[0] if result.warnings else result.error_kind
            log.append(f"Agent {slot.value} failed after {result.duration_ms:.0f}ms: {reason}")
        return result
