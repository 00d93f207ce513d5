from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Protocol, Sequence

from ..core import metrics
from ..core.config import InvokerSettings, RelaySettings
from ..core.errors import AllCandidatesFailed, RelayUnreachable
from ..core.logging import get_logger
from ..schemas.enums import TargetModel
from .relay import RelayApplicationError, RelayResponse, RelayTransportError

logger = get_logger(name=__name__)


class CompletionTransport(Protocol):
    async def complete(
        self,
        *,
        target: TargetModel,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> RelayResponse: ...


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    TRANSPORT_FAILURE = "transport_failure"
    TIMEOUT = "timeout"
    APPLICATION_ERROR = "application_error"


@dataclass(slots=True)
class CompletionRequest:
    target: TargetModel
    system_prompt: str
    user_prompt: str
    temperature: float = 0.1
    max_tokens: int = 8_000


@dataclass(slots=True)
class AttemptRecord:
    target: TargetModel
    outcome: AttemptOutcome
    max_tokens: int
    latency: float
    error: str | None = None

    @property
    def transport_level(self) -> bool:
        return self.outcome in (AttemptOutcome.TRANSPORT_FAILURE, AttemptOutcome.TIMEOUT)


@dataclass(slots=True)
class InvocationResult:
    content: str
    target: TargetModel
    requested: TargetModel
    attempts: list[AttemptRecord] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.target != self.requested


def build_candidates(requested: TargetModel, secondaries: Iterable[TargetModel]) -> list[TargetModel]:
    """Requested target first, then secondaries; duplicates dropped, order kept."""
    candidates: list[TargetModel] = []
    for target in (requested, *secondaries):
        target = TargetModel(target)
        if target not in candidates:
            candidates.append(target)
    return candidates


class ResilientInvoker:
    """Issues one completion, walking the candidate targets until one answers."""

    def __init__(
        self,
        transport: CompletionTransport,
        *,
        secondary_targets: Sequence[TargetModel] = (TargetModel.GEMINI, TargetModel.O3),
        token_ceilings: Mapping[TargetModel, int] | None = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        self._transport = transport
        self._secondaries = tuple(secondary_targets)
        self._ceilings = dict(token_ceilings or {})
        self._timeout = timeout_seconds

    @classmethod
    def from_settings(
        cls,
        transport: CompletionTransport,
        invoker_settings: InvokerSettings,
        relay_settings: RelaySettings,
    ) -> "ResilientInvoker":
        return cls(
            transport,
            secondary_targets=invoker_settings.secondary_targets,
            token_ceilings=invoker_settings.token_ceilings,
            timeout_seconds=relay_settings.timeout_seconds,
        )

    def budget_for(self, target: TargetModel, nominal: int) -> int:
        ceiling = self._ceilings.get(target)
        if ceiling is None:
            return nominal
        return min(nominal, ceiling)

    async def invoke(self, request: CompletionRequest) -> InvocationResult:
        candidates = build_candidates(request.target, self._secondaries)
        attempts: list[AttemptRecord] = []
        last_error: BaseException | None = None

        for target in candidates:
            max_tokens = self.budget_for(target, request.max_tokens)
            start = time.perf_counter()
            outcome: AttemptOutcome
            try:
                response = await asyncio.wait_for(
                    self._transport.complete(
                        target=target,
                        system_prompt=request.system_prompt,
                        user_prompt=request.user_prompt,
                        temperature=request.temperature,
                        max_tokens=max_tokens,
                    ),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError as exc:
                outcome, last_error = AttemptOutcome.TIMEOUT, exc
                error = f"timed out after {self._timeout}s"
            except RelayTransportError as exc:
                outcome, last_error, error = AttemptOutcome.TRANSPORT_FAILURE, exc, str(exc)
            except RelayApplicationError as exc:
                outcome, last_error, error = AttemptOutcome.APPLICATION_ERROR, exc, str(exc)
            else:
                attempts.append(AttemptRecord(target, AttemptOutcome.SUCCESS, max_tokens, time.perf_counter() - start))
                metrics.increment_invoker_attempt(target=target.value, outcome=AttemptOutcome.SUCCESS.value)
                result = InvocationResult(
                    content=response.content,
                    target=target,
                    requested=request.target,
                    attempts=attempts,
                )
                if result.used_fallback:
                    metrics.increment_invoker_fallback(requested=request.target.value, served=target.value)
                    logger.info(
                        "invoker_fallback_used",
                        requested=request.target.value,
                        served=target.value,
                        failed_attempts=len(attempts) - 1,
                    )
                return result

            failed = AttemptRecord(target, outcome, max_tokens, time.perf_counter() - start, error=error)
            attempts.append(failed)
            metrics.increment_invoker_attempt(target=target.value, outcome=failed.outcome.value)
            logger.warning(
                "invoker_attempt_failed",
                target=target.value,
                outcome=failed.outcome.value,
                error=failed.error,
            )

        message = f"all {len(candidates)} candidate targets failed; last error: {last_error}"
        logger.error("invoker_exhausted", requested=request.target.value, attempts=len(attempts))
        if attempts and all(attempt.transport_level for attempt in attempts):
            raise RelayUnreachable(message, last_error=last_error, attempts=tuple(attempts))
        raise AllCandidatesFailed(message, last_error=last_error, attempts=tuple(attempts))
