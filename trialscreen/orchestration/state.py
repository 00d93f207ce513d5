from __future__ import annotations

from typing import Iterable, Iterator

from ..core.logging import get_logger
from ..schemas.agents import ExecutionLogEntry
from ..schemas.enums import AgentSlot, AgentStatus

logger = get_logger(name=__name__)

_TRANSITIONS: dict[AgentStatus, frozenset[AgentStatus]] = {
    AgentStatus.PENDING: frozenset({AgentStatus.RUNNING}),
    AgentStatus.RUNNING: frozenset({AgentStatus.COMPLETED, AgentStatus.FAILED}),
    AgentStatus.COMPLETED: frozenset(),
    AgentStatus.FAILED: frozenset(),
}


class InvalidTransition(RuntimeError):
    """Raised when an agent invocation leaves its lifecycle order or is re-entered."""


class ExecutionLog:
    """Append-only, human-readable record of one pipeline run."""

    def __init__(self) -> None:
        self._entries: list[ExecutionLogEntry] = []

    def append(self, message: str) -> ExecutionLogEntry:
        entry = ExecutionLogEntry(message=message)
        self._entries.append(entry)
        logger.debug("execution_log_entry", message=message)
        return entry

    def entries(self) -> list[ExecutionLogEntry]:
        return list(self._entries)

    def __iter__(self) -> Iterator[ExecutionLogEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


class InvocationTracker:
    """Per-run lifecycle of every registered agent: one invocation each."""

    def __init__(self, slots: Iterable[AgentSlot]) -> None:
        self._status: dict[AgentSlot, AgentStatus] = {slot: AgentStatus.PENDING for slot in slots}

    def status(self, slot: AgentSlot) -> AgentStatus:
        return self._status[slot]

    def snapshot(self) -> dict[AgentSlot, AgentStatus]:
        return dict(self._status)

    def start(self, slot: AgentSlot) -> None:
        self._advance(slot, AgentStatus.RUNNING)

    def finish(self, slot: AgentSlot, *, succeeded: bool) -> None:
        self._advance(slot, AgentStatus.COMPLETED if succeeded else AgentStatus.FAILED)

    def _advance(self, slot: AgentSlot, target: AgentStatus) -> None:
        current = self._status.get(slot)
        if current is None:
            raise InvalidTransition(f"agent {slot.value} is not registered for this run")
        if target not in _TRANSITIONS[current]:
            raise InvalidTransition(f"agent {slot.value} cannot move from {current.value} to {target.value}")
        self._status[slot] = target
