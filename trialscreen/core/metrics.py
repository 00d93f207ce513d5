from __future__ import annotations

from prometheus_client import Counter, Histogram

AGENT_EXECUTIONS_TOTAL = Counter(
    "trialscreen_agent_executions_total",
    "Agent executions grouped by outcome (completed/failed)",
    labelnames=("agent", "outcome"),
)

AGENT_LATENCY_SECONDS = Histogram(
    "trialscreen_agent_execution_latency_seconds",
    "Latency for each agent execution",
    labelnames=("agent",),
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300, float("inf")),
)

AGENT_ERRORS_TOTAL = Counter(
    "trialscreen_agent_errors_total",
    "Agent failures grouped by classified error kind",
    labelnames=("agent", "kind"),
)

INVOKER_ATTEMPTS_TOTAL = Counter(
    "trialscreen_invoker_attempts_total",
    "Relay call attempts grouped by target and outcome",
    labelnames=("target", "outcome"),
)

INVOKER_FALLBACK_TOTAL = Counter(
    "trialscreen_invoker_fallback_total",
    "Completions served by a target other than the requested one",
    labelnames=("requested", "served"),
)

PIPELINE_RUNS_TOTAL = Counter(
    "trialscreen_pipeline_runs_total",
    "Pipeline runs grouped by degraded/healthy outcome",
    labelnames=("target", "status"),
)

PIPELINE_LATENCY_SECONDS = Histogram(
    "trialscreen_pipeline_latency_seconds",
    "End-to-end pipeline runtime",
    labelnames=("target",),
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, 900, float("inf")),
)


def observe_agent_execution(*, agent: str, success: bool, latency: float) -> None:
    AGENT_EXECUTIONS_TOTAL.labels(agent=agent, outcome="completed" if success else "failed").inc()
    AGENT_LATENCY_SECONDS.labels(agent=agent).observe(max(latency, 0.0))


def increment_agent_error(*, agent: str, kind: str) -> None:
    AGENT_ERRORS_TOTAL.labels(agent=agent, kind=kind).inc()


def increment_invoker_attempt(*, target: str, outcome: str) -> None:
    INVOKER_ATTEMPTS_TOTAL.labels(target=target, outcome=outcome).inc()


def increment_invoker_fallback(*, requested: str, served: str) -> None:
    INVOKER_FALLBACK_TOTAL.labels(requested=requested, served=served).inc()


def observe_pipeline_run(*, target: str, degraded: bool, latency: float) -> None:
    PIPELINE_RUNS_TOTAL.labels(target=target, status="degraded" if degraded else "healthy").inc()
    PIPELINE_LATENCY_SECONDS.labels(target=target).observe(max(latency, 0.0))
