"""
Data models for the VM Fleet Reconciler.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class ActionKind(Enum):
    """Closed set of actions the reconciler can request."""

    INSTALL_AGENT = "install-agent"
    START = "start"
    STOP = "stop"
    EXPORT = "export"
    SCAN_CREDENTIALS = "scan-credentials"


class PowerStatus(Enum):
    """Normalised VM power status."""

    DEALLOCATED = "deallocated"
    RUNNING = "running"
    STOPPED = "stopped"
    TRANSITIONING = "transitioning"
    UNKNOWN = "unknown"


class DecisionKind(Enum):
    SKIP = "skip"
    ACT = "act"
    REJECT = "reject"


class OutcomeStatus(Enum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ErrorKind(Enum):
    """Classification of per-target failures."""

    PROBE_UNAVAILABLE = "probe_unavailable"
    UNSUPPORTED_ACTION = "unsupported_action"
    INCONSISTENT_STATE = "inconsistent_state"
    ACTION_FAILED = "action_failed"


@dataclass(frozen=True)
class TargetDescriptor:
    """Reference to one remote resource."""

    name: str
    resource_group: str
    variant: str  # "windows" / "linux", a resource kind, or "application"
    location: Optional[str] = None
    resource_id: Optional[str] = None

    @property
    def key(self) -> str:
        if self.resource_id:
            return self.resource_id.lower()
        return f"{self.resource_group}/{self.name}".lower()


@dataclass(frozen=True)
class RequestedAction:
    """Action requested for every target in a run."""

    kind: ActionKind
    agent: Optional[str] = None
    params: Mapping[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        if self.agent:
            return f"{self.kind.value}({self.agent})"
        return self.kind.value


@dataclass(frozen=True)
class ExtensionState:
    """Extension identifiers currently attached to a VM."""

    extensions: frozenset = frozenset()


@dataclass(frozen=True)
class PowerState:
    status: PowerStatus
    raw: str = ""


@dataclass(frozen=True)
class ResourceState:
    exists: bool
    resource_id: Optional[str] = None
    definition: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class CredentialExpiry:
    """Expiry of a single application secret or certificate."""

    credential_type: str  # "password" or "key"
    name: str
    key_id: str
    expires_at: datetime


@dataclass(frozen=True)
class CredentialState:
    expiries: Tuple[CredentialExpiry, ...]
    checked_at: datetime


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    reason: str = ""
    error_kind: Optional[ErrorKind] = None


@dataclass(frozen=True)
class Outcome:
    """Terminal result for one target."""

    target: TargetDescriptor
    action_label: str
    status: OutcomeStatus
    reason: str = ""
    error_kind: Optional[ErrorKind] = None
    status_code: Optional[int] = None
    detail: Optional[Any] = None
    duration_seconds: Optional[float] = None

    @property
    def failed(self) -> bool:
        return self.status is OutcomeStatus.FAILED


@dataclass(frozen=True)
class Summary:
    """Aggregate result of one reconciliation run."""

    action_label: str
    processed: int
    succeeded: int
    skipped: int
    errors: int
    elapsed_seconds: float
    start_time: float
    end_time: float
    cancelled: bool = False
    outcomes: Tuple[Outcome, ...] = ()

    def as_stats(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.errors,
        }
