from __future__ import annotations

import json

import httpx
import pytest

from trialscreen.core.config import RelaySettings
from trialscreen.schemas.enums import TargetModel
from trialscreen.services.relay import (
    RelayApplicationError,
    RelayClient,
    RelayConfig,
    RelayTransportError,
)


def _config() -> RelayConfig:
    return RelayConfig.from_settings(
        RelaySettings(base_url="http://relay.test", extra_headers={"X-Test": "true"})
    )


async def _complete(client: RelayClient, target: TargetModel = TargetModel.GEMINI):
    return await client.complete(
        target=target,
        system_prompt="system",
        user_prompt="user",
        temperature=0.2,
        max_tokens=8_000,
    )


@pytest.mark.asyncio
async def test_relay_posts_chat_body_and_returns_content() -> None:
    seen: dict[str, object] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"content": '{"ok": true}'})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as async_client:
        client = RelayClient(_config(), client=async_client)
        response = await _complete(client)

    assert response.content == '{"ok": true}'
    assert response.target == TargetModel.GEMINI
    assert seen["path"] == "/api/ai/chat"
    assert seen["body"] == {
        "model": "gemini",
        "systemPrompt": "system",
        "userPrompt": "user",
        "temperature": 0.2,
        "maxTokens": 8_000,
    }


@pytest.mark.asyncio
async def test_rate_limit_status_raises_application_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": "rate_limit_error", "message": "slow down"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as async_client:
        client = RelayClient(_config(), client=async_client)
        with pytest.raises(RelayApplicationError) as excinfo:
            await _complete(client, TargetModel.CLAUDE_OPUS)

    assert excinfo.value.status_code == 429
    assert excinfo.value.rate_limited is True
    assert "slow down" in str(excinfo.value)


@pytest.mark.asyncio
async def test_error_body_with_success_status_is_an_application_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "upstream_failed", "message": "boom"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as async_client:
        client = RelayClient(_config(), client=async_client)
        with pytest.raises(RelayApplicationError) as excinfo:
            await _complete(client)

    assert excinfo.value.error == "upstream_failed"


@pytest.mark.asyncio
async def test_connection_failure_raises_transport_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as async_client:
        client = RelayClient(_config(), client=async_client)
        with pytest.raises(RelayTransportError):
            await _complete(client, TargetModel.O3)


@pytest.mark.asyncio
async def test_missing_content_is_rejected() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json at all")

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as async_client:
        client = RelayClient(_config(), client=async_client)
        with pytest.raises(RelayApplicationError):
            await _complete(client)
