from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from ..core.logging import get_logger
from ..dependencies import get_coordinator
from ..orchestration.coordinator import Coordinator
from ..schemas.enums import TargetModel

logger = get_logger(name=__name__)

router = APIRouter()


class PrescreenRequest(BaseModel):
    history: str = Field(..., min_length=1, description="Free-text, anonymised medical history.")
    protocol: str = Field(..., min_length=1, description="Trial protocol text including eligibility criteria.")
    target: TargetModel | None = Field(default=None, description="Preferred completion target.")

    @field_validator("history", "protocol")
    @classmethod
    def _reject_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


@router.get("/health", tags=["health"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/prescreen", tags=["prescreen"])
async def prescreen(
    payload: PrescreenRequest,
    coordinator: Coordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    logger.info(
        "prescreen_requested",
        history_chars=len(payload.history),
        protocol_chars=len(payload.protocol),
        target=payload.target.value if payload.target else None,
    )
    outcome = await coordinator.run(payload.history, payload.protocol, payload.target)
    body = outcome.model_dump(mode="json")
    body["execution_log"] = outcome.rendered_log()
    return body
