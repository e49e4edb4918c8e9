"""Exception classes shared across the pipeline stages."""
from __future__ import annotations


class RouteseqError(Exception):
    """Base application error."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class InvalidInvocationError(RouteseqError):
    """A core function was called with inputs it cannot work with at all."""

    def __init__(self, detail: str = "Invalid invocation") -> None:
        super().__init__(detail)


class CollaboratorError(RouteseqError):
    """An external collaborator (introspection, oracle, assistant) failed."""

    def __init__(self, op: str, target: str = "", cause: BaseException | None = None) -> None:
        self.op = op
        self.target = target
        self.cause = cause
        reason = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown failure"
        where = f" ({target})" if target else ""
        super().__init__(f"{op}{where} failed: {reason}")


class CollaboratorTimeout(CollaboratorError):
    """The collaborator did not answer within the configured timeout."""


class OperationCancelled(RouteseqError):
    """Raised at a collaborator boundary when the cancellation signal is set."""

    def __init__(self, op: str) -> None:
        self.op = op
        super().__init__(f"{op} cancelled")
