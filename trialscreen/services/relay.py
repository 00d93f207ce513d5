from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx

from ..core.config import RelaySettings
from ..core.logging import get_logger
from ..schemas.enums import TargetModel

logger = get_logger(name=__name__)


class RelayTransportError(RuntimeError):
    """Raised when the relay cannot be reached (connect failure, reset, read timeout)."""


class RelayApplicationError(RuntimeError):
    """Raised when the relay answers with a non-2xx status or an error body."""

    def __init__(self, message: str, *, status_code: int | None = None, error: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429


@dataclass(slots=True)
class RelayConfig:
    base_url: str
    chat_path: str
    timeout_seconds: float
    verify_ssl: bool
    default_headers: dict[str, str]

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> "RelayConfig":
        return cls(
            base_url=settings.base_url,
            chat_path=settings.chat_path,
            timeout_seconds=settings.timeout_seconds,
            verify_ssl=settings.verify_ssl,
            default_headers=dict(settings.extra_headers),
        )


@dataclass(slots=True)
class RelayResponse:
    target: TargetModel
    content: str
    status_code: int
    latency: float


class RelayClient:
    """Thin async client for the completion relay's chat endpoint."""

    def __init__(self, config: RelayConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            timeout=httpx.Timeout(config.timeout_seconds),
            headers=config.default_headers,
            verify=config.verify_ssl,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def complete(
        self,
        *,
        target: TargetModel,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> RelayResponse:
        body = {
            "model": target.value,
            "systemPrompt": system_prompt,
            "userPrompt": user_prompt,
            "temperature": temperature,
            "maxTokens": max_tokens,
        }
        start = time.perf_counter()
        try:
            response = await self._client.post(self._config.chat_path, json=body)
        except httpx.TransportError as exc:
            logger.warning("relay_transport_error", target=target.value, error=str(exc))
            raise RelayTransportError(f"relay unreachable for {target.value}: {exc}") from exc
        latency = time.perf_counter() - start

        payload = self._decode(response)
        if response.status_code < 200 or response.status_code >= 300:
            error = payload.get("error") if isinstance(payload, dict) else None
            message = payload.get("message") if isinstance(payload, dict) else None
            logger.warning(
                "relay_error_status",
                target=target.value,
                status=response.status_code,
                error=error,
            )
            raise RelayApplicationError(
                f"relay returned {response.status_code} for {target.value}: {message or error or response.text[:200]}",
                status_code=response.status_code,
                error=error,
            )
        if not isinstance(payload, dict) or payload.get("error"):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise RelayApplicationError(
                f"relay reported an error for {target.value}: {error or 'malformed body'}",
                status_code=response.status_code,
                error=error,
            )
        content = payload.get("content")
        if not isinstance(content, str):
            raise RelayApplicationError(
                f"relay response for {target.value} carries no content",
                status_code=response.status_code,
            )

        logger.debug("relay_completion_received", target=target.value, latency=latency, chars=len(content))
        return RelayResponse(target=target, content=content, status_code=response.status_code, latency=latency)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None
