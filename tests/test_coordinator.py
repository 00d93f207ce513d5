from __future__ import annotations

import pytest
import structlog

from trialscreen.agents.clinical import SYSTEM_PROMPT as CLINICAL_PROMPT
from trialscreen.agents.criteria import SYSTEM_PROMPT as CRITERIA_PROMPT
from trialscreen.agents.episodes import SYSTEM_PROMPT as EPISODE_PROMPT
from trialscreen.agents.pharmacotherapy import SYSTEM_PROMPT as PHARMACOTHERAPY_PROMPT
from trialscreen.agents.risk import SYSTEM_PROMPT as RISK_PROMPT
from trialscreen.agents.trd import SYSTEM_PROMPT as TRD_PROMPT
from trialscreen.core.config import get_settings
from trialscreen.dependencies import build_coordinator
from trialscreen.orchestration.context import SharedContext
from trialscreen.orchestration.coordinator import (
    DEFAULT_PHASES,
    Coordinator,
    CoordinatorConfigurationError,
    Phase,
    PreprocessedHistory,
)
from trialscreen.schemas.enums import AgentSlot, AgentStatus, QualificationLabel, TargetModel
from trialscreen.schemas.report import DrugMappingEntry

from tests.helpers.stubs import ScriptedTransport, StubAgent, respond_by_system_prompt

PHASE_ONE = (AgentSlot.CLINICAL_SYNTHESIS, AgentSlot.EPISODE_ANALYSIS, AgentSlot.PHARMACOTHERAPY_ANALYSIS)

PROMPTS = {
    CLINICAL_PROMPT: AgentSlot.CLINICAL_SYNTHESIS,
    EPISODE_PROMPT: AgentSlot.EPISODE_ANALYSIS,
    PHARMACOTHERAPY_PROMPT: AgentSlot.PHARMACOTHERAPY_ANALYSIS,
    TRD_PROMPT: AgentSlot.TRD_ASSESSMENT,
    CRITERIA_PROMPT: AgentSlot.CRITERIA_ASSESSMENT,
    RISK_PROMPT: AgentSlot.RISK_ASSESSMENT,
}


def _stub_agents(**overrides) -> list[StubAgent]:
    agents = []
    for slot in AgentSlot:
        agents.append(overrides.get(slot.name) or StubAgent(slot))
    return agents


@pytest.mark.asyncio
async def test_later_phases_observe_fully_populated_earlier_slots() -> None:
    observed: dict[AgentSlot, set[AgentSlot]] = {}

    def _recorder(slot: AgentSlot):
        def _record(context: SharedContext) -> None:
            observed[slot] = set(context.slots)

        return _record

    delays = {AgentSlot.CLINICAL_SYNTHESIS: 0.03, AgentSlot.EPISODE_ANALYSIS: 0.01, AgentSlot.PHARMACOTHERAPY_ANALYSIS: 0.02}
    agents = [
        StubAgent(slot, delay=delays.get(slot, 0.0), on_start=_recorder(slot))
        for slot in AgentSlot
    ]

    outcome = await Coordinator(agents).run("H", "P", TargetModel.GEMINI)

    assert observed[AgentSlot.TRD_ASSESSMENT] == set(PHASE_ONE)
    assert observed[AgentSlot.CRITERIA_ASSESSMENT] == {*PHASE_ONE, AgentSlot.TRD_ASSESSMENT}
    assert observed[AgentSlot.RISK_ASSESSMENT] == {
        *PHASE_ONE,
        AgentSlot.TRD_ASSESSMENT,
        AgentSlot.CRITERIA_ASSESSMENT,
    }
    for slot in PHASE_ONE:
        assert observed[slot] == set()
    assert all(result.status == AgentStatus.COMPLETED for result in outcome.agent_results.values())


@pytest.mark.asyncio
async def test_phase_one_log_reflects_settle_order() -> None:
    delays = {AgentSlot.CLINICAL_SYNTHESIS: 0.05, AgentSlot.EPISODE_ANALYSIS: 0.0, AgentSlot.PHARMACOTHERAPY_ANALYSIS: 0.02}
    agents = [StubAgent(slot, delay=delays.get(slot, 0.0)) for slot in AgentSlot]

    outcome = await Coordinator(agents).run("H", "P")

    completions = [entry.message.split()[1] for entry in outcome.execution_log if entry.message.endswith(")")]
    assert completions[:3] == ["episode-analysis", "pharmacotherapy-analysis", "clinical-synthesis"]


@pytest.mark.asyncio
async def test_degraded_run_with_failed_phase_one_agents_still_synthesizes() -> None:
    phases = (
        Phase("baseline analysis", (AgentSlot.CLINICAL_SYNTHESIS, AgentSlot.EPISODE_ANALYSIS), concurrent=True),
        Phase("treatment resistance", (AgentSlot.TRD_ASSESSMENT,)),
        Phase("eligibility criteria", (AgentSlot.CRITERIA_ASSESSMENT,)),
        Phase("risk assessment", (AgentSlot.RISK_ASSESSMENT,)),
    )
    agents = [
        StubAgent(AgentSlot.CLINICAL_SYNTHESIS, fail_with=RuntimeError("relay exploded")),
        StubAgent(AgentSlot.EPISODE_ANALYSIS, fail_with=ValueError("bad payload")),
        StubAgent(AgentSlot.TRD_ASSESSMENT),
        StubAgent(AgentSlot.CRITERIA_ASSESSMENT),
        StubAgent(AgentSlot.RISK_ASSESSMENT),
    ]

    outcome = await Coordinator(agents, phases=phases).run("H", "P", TargetModel.O3)

    record = outcome.final_record
    assert record is not None
    assert record.report_conclusion.overall_qualification in set(QualificationLabel)
    assert record.requires_manual_review is True
    assert record.model_used == "o3"
    messages = [entry.message for entry in outcome.execution_log]
    failures = [message for message in messages if " failed after " in message]
    successes = [message for message in messages if " completed in " in message]
    assert len(failures) == 2
    assert {message.split()[1] for message in failures} == {"clinical-synthesis", "episode-analysis"}
    assert len(successes) == 3
    assert outcome.agent_results[AgentSlot.CLINICAL_SYNTHESIS].status == AgentStatus.FAILED
    assert any("clinical-synthesis" in warning for warning in record.warnings)


@pytest.mark.asyncio
async def test_failed_results_never_reach_the_context() -> None:
    seen: dict[str, set[AgentSlot]] = {}

    def _capture(context: SharedContext) -> None:
        seen["trd"] = set(context.slots)

    agents = _stub_agents(
        EPISODE_ANALYSIS=StubAgent(AgentSlot.EPISODE_ANALYSIS, fail_with=RuntimeError("nope")),
        TRD_ASSESSMENT=StubAgent(AgentSlot.TRD_ASSESSMENT, on_start=_capture),
    )

    outcome = await Coordinator(agents).run("H", "P")

    assert AgentSlot.EPISODE_ANALYSIS not in seen["trd"]
    assert outcome.agent_results[AgentSlot.EPISODE_ANALYSIS].confidence == 0.0


@pytest.mark.asyncio
async def test_declared_dependency_on_failed_agent_cascades_as_fallback() -> None:
    agents = _stub_agents(
        CLINICAL_SYNTHESIS=StubAgent(AgentSlot.CLINICAL_SYNTHESIS, fail_with=RuntimeError("down")),
        TRD_ASSESSMENT=StubAgent(AgentSlot.TRD_ASSESSMENT, dependencies=(AgentSlot.CLINICAL_SYNTHESIS,)),
    )

    outcome = await Coordinator(agents).run("H", "P")

    trd = outcome.agent_results[AgentSlot.TRD_ASSESSMENT]
    assert trd.error_kind == "DependencyMissing"
    assert trd.payload.note == "trd-assessment fallback"


@pytest.mark.asyncio
async def test_preprocessor_mappings_reach_final_record() -> None:
    async def _preprocess(history: str) -> PreprocessedHistory:
        return PreprocessedHistory(
            text=history.replace("Cipralex", "escitalopram (Cipralex)"),
            mappings=[DrugMappingEntry(original="Cipralex", mapped="escitalopram", confidence=0.9)],
        )

    histories: list[str] = []
    agents = _stub_agents(
        CLINICAL_SYNTHESIS=StubAgent(
            AgentSlot.CLINICAL_SYNTHESIS, on_start=lambda context: histories.append(context.history)
        )
    )

    outcome = await Coordinator(agents, preprocessor=_preprocess).run("Took Cipralex", "P")

    assert histories == ["Took escitalopram (Cipralex)"]
    info = outcome.final_record.drug_mapping_info
    assert info is not None and info.mappings_applied == 1


@pytest.mark.asyncio
async def test_failing_preprocessor_keeps_original_history() -> None:
    async def _broken(history: str) -> PreprocessedHistory:
        raise ConnectionError("lookup service down")

    outcome = await Coordinator(_stub_agents(), preprocessor=_broken).run("H", "P")

    assert outcome.final_record.drug_mapping_info is None
    assert any("preprocessing failed" in entry.message for entry in outcome.execution_log)


def test_plan_must_reference_registered_agents_once() -> None:
    assert Coordinator(_stub_agents()).phases == DEFAULT_PHASES
    with pytest.raises(CoordinatorConfigurationError):
        Coordinator([StubAgent(AgentSlot.CLINICAL_SYNTHESIS)])
    with pytest.raises(CoordinatorConfigurationError):
        Coordinator(
            _stub_agents(),
            phases=(*DEFAULT_PHASES, Phase("again", (AgentSlot.RISK_ASSESSMENT,))),
        )
    with pytest.raises(CoordinatorConfigurationError):
        Coordinator([StubAgent(AgentSlot.RISK_ASSESSMENT), StubAgent(AgentSlot.RISK_ASSESSMENT)], phases=())


@pytest.mark.asyncio
async def test_full_pipeline_with_real_agents() -> None:
    transport = ScriptedTransport({TargetModel.GEMINI: [respond_by_system_prompt(PROMPTS)]})
    coordinator = build_coordinator(get_settings(), transport)

    outcome = await coordinator.run("H", "P", TargetModel.GEMINI)

    assert not outcome.failed_agents
    record = outcome.final_record
    assert record.report_conclusion.overall_qualification == QualificationLabel.ELIGIBLE
    assert record.report_conclusion.estimated_probability == 75
    assert record.summary.age == 45
    assert record.trd_analysis.episode_start_date == "2023-04-01"
    assert record.requires_manual_review is False
    assert len(transport.calls) == 6


@pytest.mark.asyncio
async def test_full_pipeline_with_unparseable_phase_one_response() -> None:
    transport = ScriptedTransport(
        {TargetModel.GEMINI: [respond_by_system_prompt(PROMPTS, fail={AgentSlot.PHARMACOTHERAPY_ANALYSIS})]}
    )
    coordinator = build_coordinator(get_settings(), transport)

    outcome = await coordinator.run("H", "P", TargetModel.GEMINI)

    assert outcome.agent_results[AgentSlot.PHARMACOTHERAPY_ANALYSIS].error_kind == "ResponseNotParseable"
    # downstream agents declare the pharmacotherapy slot as a dependency
    assert outcome.agent_results[AgentSlot.TRD_ASSESSMENT].error_kind == "DependencyMissing"
    record = outcome.final_record
    assert record.requires_manual_review is True
    assert record.report_conclusion.overall_qualification == QualificationLabel.NEEDS_EVALUATION


@pytest.mark.asyncio
async def test_agents_log_within_the_run_context() -> None:
    bound: list[dict] = []
    agents = _stub_agents(
        EPISODE_ANALYSIS=StubAgent(
            AgentSlot.EPISODE_ANALYSIS,
            on_start=lambda context: bound.append(structlog.contextvars.get_contextvars()),
        )
    )

    await Coordinator(agents).run("H", "P", TargetModel.O3)

    assert bound[0]["pipeline_target"] == "o3"
    assert bound[0]["run_id"]
    assert "run_id" not in structlog.contextvars.get_contextvars()
