"""
Exceptions raised by the VM Fleet Reconciler.
"""

from typing import Optional

from models import ErrorKind


class ReconcilerError(Exception):
    """Base class for reconciler errors."""


class ConfigurationError(ReconcilerError):
    """Run parameters are invalid; raised before any worker starts."""


class NoTargetsError(ReconcilerError):
    """The target collection is empty."""


class TargetError(ReconcilerError):
    """Error scoped to a single target."""

    error_kind: ErrorKind = ErrorKind.ACTION_FAILED


class ProbeUnavailable(TargetError):
    """Target not found or its state could not be read."""

    error_kind = ErrorKind.PROBE_UNAVAILABLE


class UnsupportedAction(TargetError):
    """Requested action is not in the catalog for this variant."""

    error_kind = ErrorKind.UNSUPPORTED_ACTION


class InconsistentState(TargetError):
    """Observed state is not a valid precondition for the transition."""

    error_kind = ErrorKind.INCONSISTENT_STATE


class ActionFailed(TargetError):
    """Provider call failed while executing an action."""

    error_kind = ErrorKind.ACTION_FAILED


class ProviderError(RuntimeError):
    """Non-success response from the provider API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def not_found(self) -> bool:
        return self.status_code == 404
