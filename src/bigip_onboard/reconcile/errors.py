"""Errors raised while reconciling a declaration."""
from typing import Optional


class OnboardError(Exception):
    """Base error for reconciliation failures."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class ResolutionError(OnboardError):
    """A hostname could not be resolved, so the peer is unreachable."""

    def __init__(self, address: str, cause: object = None):
        message = f"Unable to resolve host {address}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, code=424)
        self.address = address


class PreconditionError(OnboardError):
    """The declaration asks for something that cannot be applied as stated."""
    pass


class RevokeTimeoutError(OnboardError):
    """Nobody signalled readiness for a license revoke in time."""

    def __init__(self):
        super().__init__("Timed out waiting for revoke ready event")


def wrap_error(prefix: str, err: Exception) -> OnboardError:
    """Build an error whose message is '<prefix>: <cause>'.

    Use as ``raise wrap_error("Error licensing", e) from e``.
    """
    return OnboardError(f"{prefix}: {err}", code=getattr(err, "code", None))
