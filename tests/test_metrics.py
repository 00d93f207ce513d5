from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from trialscreen.core.metrics import (
    increment_invoker_attempt,
    observe_agent_execution,
    observe_pipeline_run,
)


def test_agent_execution_counts_by_outcome():
    labels = {"agent": "metrics-test", "outcome": "failed"}
    before = REGISTRY.get_sample_value("trialscreen_agent_executions_total", labels) or 0.0

    observe_agent_execution(agent="metrics-test", success=False, latency=0.25)

    after = REGISTRY.get_sample_value("trialscreen_agent_executions_total", labels)
    assert after == pytest.approx(before + 1.0)


def test_negative_latency_is_clamped():
    labels = {"target": "metrics-test"}
    before = REGISTRY.get_sample_value("trialscreen_pipeline_latency_seconds_sum", labels) or 0.0

    observe_pipeline_run(target="metrics-test", degraded=False, latency=-3.0)

    after = REGISTRY.get_sample_value("trialscreen_pipeline_latency_seconds_sum", labels)
    assert after == pytest.approx(before)
    healthy = REGISTRY.get_sample_value(
        "trialscreen_pipeline_runs_total", {"target": "metrics-test", "status": "healthy"}
    )
    assert healthy is not None and healthy >= 1.0


def test_invoker_attempts_by_outcome():
    labels = {"target": "metrics-test", "outcome": "timeout"}
    before = REGISTRY.get_sample_value("trialscreen_invoker_attempts_total", labels) or 0.0

    increment_invoker_attempt(target="metrics-test", outcome="timeout")
    increment_invoker_attempt(target="metrics-test", outcome="timeout")

    after = REGISTRY.get_sample_value("trialscreen_invoker_attempts_total", labels)
    assert after == pytest.approx(before + 2.0)
