from __future__ import annotations

from typing import ClassVar


class PrescreenError(RuntimeError):
    """Base class for failures contained by the agent wrapper."""

    kind: ClassVar[str] = "PrescreenError"


class DependencyMissing(PrescreenError):
    """Raised when a declared upstream slot is still empty at invocation time."""

    kind = "DependencyMissing"

    def __init__(self, dependency: str, agent: str) -> None:
        super().__init__(f"Missing dependency: {dependency} is required for {agent}")
        self.dependency = dependency
        self.agent = agent


class InvocationError(PrescreenError):
    """Raised by the invoker once every candidate target has been exhausted."""

    kind = "InvocationError"

    def __init__(self, message: str, *, last_error: BaseException | None = None, attempts: tuple = ()) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts


class RelayUnreachable(InvocationError):
    """No candidate could be reached at the transport level."""

    kind = "RelayUnreachable"


class AllCandidatesFailed(InvocationError):
    """Every candidate answered, but only with application-level errors."""

    kind = "AllCandidatesFailed"


class ResponseNotParseable(PrescreenError):
    """Raised when structured extraction exhausts its recovery attempts."""

    kind = "ResponseNotParseable"

    def __init__(self, message: str, *, excerpt: str) -> None:
        super().__init__(f"{message}; excerpt: {excerpt!r}")
        self.excerpt = excerpt


class ValidationFailed(PrescreenError):
    """Raised when a parsed payload is structurally incomplete."""

    kind = "ValidationFailed"


def classify_error(exc: BaseException) -> str:
    if isinstance(exc, PrescreenError):
        return exc.kind
    return "UnexpectedError"


__all__ = [
    "PrescreenError",
    "DependencyMissing",
    "InvocationError",
    "RelayUnreachable",
    "AllCandidatesFailed",
    "ResponseNotParseable",
    "ValidationFailed",
    "classify_error",
]
