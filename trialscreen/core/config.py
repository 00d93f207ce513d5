from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..schemas.enums import TargetModel


class RelaySettings(BaseModel):
    base_url: str = Field("http://localhost:3001", description="Base URL of the completion relay.")
    chat_path: str = Field("/api/ai/chat", description="Relative path of the relay's completion endpoint.")
    timeout_seconds: float = Field(120.0, ge=0.1, description="Upper bound for a single completion call.")
    verify_ssl: bool = Field(True)
    extra_headers: dict[str, str] = Field(default_factory=dict, description="Additional HTTP headers sent to the relay.")


class InvokerSettings(BaseModel):
    default_target: TargetModel = Field(TargetModel.GEMINI, description="Target used when the caller names none.")
    secondary_targets: list[TargetModel] = Field(
        default_factory=lambda: [TargetModel.GEMINI, TargetModel.O3],
        description="Fallback targets tried, in order, after the requested one.",
    )
    token_ceilings: dict[TargetModel, int] = Field(
        default_factory=lambda: {
            TargetModel.O3: 65_536,
            TargetModel.GEMINI: 8_192,
            TargetModel.CLAUDE_OPUS: 32_000,
        },
        description="Maximum output tokens accepted by each target.",
    )

    @field_validator("token_ceilings")
    @classmethod
    def _positive_ceilings(cls, value: dict[TargetModel, int]) -> dict[TargetModel, int]:
        for target, ceiling in value.items():
            if ceiling < 1:
                raise ValueError(f"token ceiling for {target.value} must be positive")
        return value


class CoordinatorSettings(BaseModel):
    digest_chars: int = Field(
        600,
        ge=80,
        description="Maximum characters per upstream result when rendering prompt digests.",
    )


class ObservabilitySettings(BaseModel):
    prometheus_enabled: bool = Field(True)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class Settings(BaseSettings):
    environment: Literal["local", "test", "production"] = Field("local")
    api_v1_prefix: str = Field("/api/v1")

    relay: RelaySettings = Field(default_factory=RelaySettings)  # type: ignore[arg-type]
    invoker: InvokerSettings = Field(default_factory=InvokerSettings)  # type: ignore[arg-type]
    coordinator: CoordinatorSettings = Field(default_factory=CoordinatorSettings)  # type: ignore[arg-type]
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)  # type: ignore[arg-type]

    frontend_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"],
        description="Origins permitted to access the API via CORS.",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )


@lru_cache(maxsize=1)
def _get_cached_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]


def get_settings(overrides: Mapping[str, Any] | None = None) -> Settings:
    """Return settings, using cached defaults unless overrides are provided."""
    if overrides:
        return Settings(**dict(overrides))
    return _get_cached_settings()
