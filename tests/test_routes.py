from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from trialscreen.dependencies import get_coordinator
from trialscreen.main import app
from trialscreen.orchestration.coordinator import Coordinator
from trialscreen.schemas.enums import AgentSlot

from tests.helpers.stubs import StubAgent


@pytest.fixture()
def client():
    agents = [StubAgent(slot) for slot in AgentSlot]
    agents[-1] = StubAgent(AgentSlot.RISK_ASSESSMENT, fail_with=RuntimeError("relay down"))
    coordinator = Coordinator(agents)

    async def override_coordinator():
        yield coordinator

    app.dependency_overrides[get_coordinator] = override_coordinator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health(client: TestClient) -> None:
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_prescreen_returns_record_results_and_rendered_log(client: TestClient) -> None:
    response = client.post(
        "/api/v1/prescreen",
        json={"history": "45-year-old man", "protocol": "Adults 18-65 with TRD", "target": "o3"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["final_record"]["model_used"] == "o3"
    assert body["final_record"]["requires_manual_review"] is True
    assert body["agent_results"]["risk-assessment"]["status"] == "failed"
    assert body["agent_results"]["clinical-synthesis"]["payload"] == {"note": "clinical-synthesis ok"}
    assert body["execution_log"][0].endswith("Starting multi-agent analysis with target o3")
    assert body["execution_log"][0].startswith("[")


@pytest.mark.parametrize(
    "payload",
    [
        {"history": "", "protocol": "P"},
        {"history": "H", "protocol": ""},
        {"history": "   ", "protocol": "P"},
        {"history": "H", "protocol": "\n\t "},
        {"history": "H"},
        {"history": "H", "protocol": "P", "target": "gpt-2"},
    ],
)
def test_prescreen_rejects_invalid_requests(client: TestClient, payload: dict) -> None:
    response = client.post("/api/v1/prescreen", json=payload)

    assert response.status_code == 422
