"""
Action catalog: maps actions and target variants to provider call parameters.

Adding an agent, an OS variant or an exportable resource kind is a table
entry here; no other module branches on agent or resource names.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from errors import ConfigurationError, UnsupportedAction
from models import ActionKind, PowerStatus, RequestedAction

WINDOWS = "windows"
LINUX = "linux"


@dataclass(frozen=True)
class ExtensionSpec:
    """VM extension parameters for one (agent, OS) pair."""

    publisher: str
    type_name: str
    version: str
    settings: Mapping[str, str] = field(default_factory=dict)
    protected_settings: Mapping[str, str] = field(default_factory=dict)

    @property
    def identifier(self) -> str:
        """Canonical identifier matched against attached extensions."""
        return self.type_name

    def render(self, params: Mapping[str, object]) -> Tuple[Dict, Dict]:
        settings = {k: v.format_map(params) for k, v in self.settings.items()}
        protected = {
            k: v.format_map(params) for k, v in self.protected_settings.items()
        }
        return settings, protected


@dataclass(frozen=True)
class AgentSpec:
    name: str
    variants: Mapping[str, ExtensionSpec]
    required_params: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PowerTransition:
    verb: str  # ARM action path segment
    target: PowerStatus
    sources: Tuple[PowerStatus, ...]
    phase: str


@dataclass(frozen=True)
class ResourceKind:
    name: str
    resource_type: str
    api_version: str


_LOG_ANALYTICS_SETTINGS = {"workspaceId": "{workspace_id}"}
_LOG_ANALYTICS_PROTECTED = {"workspaceKey": "{workspace_key}"}

AGENTS = (
    AgentSpec(
        name="MMA",
        variants={
            WINDOWS: ExtensionSpec(
                publisher="Microsoft.EnterpriseCloud.Monitoring",
                type_name="MicrosoftMonitoringAgent",
                version="1.0",
                settings=_LOG_ANALYTICS_SETTINGS,
                protected_settings=_LOG_ANALYTICS_PROTECTED,
            ),
            LINUX: ExtensionSpec(
                publisher="Microsoft.EnterpriseCloud.Monitoring",
                type_name="OmsAgentForLinux",
                version="1.14",
                settings=_LOG_ANALYTICS_SETTINGS,
                protected_settings=_LOG_ANALYTICS_PROTECTED,
            ),
        },
        required_params=("workspace_id", "workspace_key"),
    ),
    AgentSpec(
        name="Dependency",
        variants={
            WINDOWS: ExtensionSpec(
                publisher="Microsoft.Azure.Monitoring.DependencyAgent",
                type_name="DependencyAgentWindows",
                version="9.10",
            ),
            LINUX: ExtensionSpec(
                publisher="Microsoft.Azure.Monitoring.DependencyAgent",
                type_name="DependencyAgentLinux",
                version="9.10",
            ),
        },
    ),
    AgentSpec(
        name="AMA",
        variants={
            WINDOWS: ExtensionSpec(
                publisher="Microsoft.Azure.Monitor",
                type_name="AzureMonitorWindowsAgent",
                version="1.0",
            ),
            LINUX: ExtensionSpec(
                publisher="Microsoft.Azure.Monitor",
                type_name="AzureMonitorLinuxAgent",
                version="1.0",
            ),
        },
    ),
)

POWER_TRANSITIONS = {
    ActionKind.START: PowerTransition(
        verb="start",
        target=PowerStatus.RUNNING,
        sources=(PowerStatus.DEALLOCATED, PowerStatus.STOPPED),
        phase="starting",
    ),
    ActionKind.STOP: PowerTransition(
        verb="deallocate",
        target=PowerStatus.DEALLOCATED,
        sources=(PowerStatus.RUNNING, PowerStatus.STOPPED),
        phase="stopping",
    ),
}

RESOURCE_KINDS = (
    ResourceKind("nsg", "Microsoft.Network/networkSecurityGroups", "2023-09-01"),
    ResourceKind("vnet", "Microsoft.Network/virtualNetworks", "2023-09-01"),
    ResourceKind("route-table", "Microsoft.Network/routeTables", "2023-09-01"),
    ResourceKind("public-ip", "Microsoft.Network/publicIPAddresses", "2023-09-01"),
    ResourceKind("load-balancer", "Microsoft.Network/loadBalancers", "2023-09-01"),
    ResourceKind(
        "application-gateway", "Microsoft.Network/applicationGateways", "2023-09-01"
    ),
)

ACTION_PHASES = {
    ActionKind.INSTALL_AGENT: "installing",
    ActionKind.START: "starting",
    ActionKind.STOP: "stopping",
    ActionKind.EXPORT: "exporting",
    ActionKind.SCAN_CREDENTIALS: "scanning",
}


class ActionCatalog:
    """Lookup tables for agents, power transitions and resource kinds."""

    def __init__(self, agents=AGENTS, transitions=None, resource_kinds=RESOURCE_KINDS):
        self._agents = {a.name.casefold(): a for a in agents}
        self._transitions = dict(transitions or POWER_TRANSITIONS)
        self._resource_kinds = {k.name: k for k in resource_kinds}
        self._resource_types = {k.resource_type.casefold(): k for k in resource_kinds}

    def agent_names(self) -> Tuple[str, ...]:
        return tuple(a.name for a in self._agents.values())

    def resource_kind_names(self) -> Tuple[str, ...]:
        return tuple(self._resource_kinds)

    def agent(self, name: Optional[str]) -> Optional[AgentSpec]:
        if not name:
            return None
        return self._agents.get(name.casefold())

    def extension_for(self, agent: Optional[str], variant: str) -> Optional[ExtensionSpec]:
        spec = self.agent(agent)
        if spec is None:
            return None
        return spec.variants.get((variant or "").lower())

    def transition_for(self, kind: ActionKind) -> Optional[PowerTransition]:
        return self._transitions.get(kind)

    def resource_kind(self, name: Optional[str]) -> Optional[ResourceKind]:
        """Look up a resource kind by short name or full ARM type."""
        if not name:
            return None
        return self._resource_kinds.get(name.lower()) or self._resource_types.get(
            name.casefold()
        )

    def phase_for(self, kind: ActionKind) -> str:
        return ACTION_PHASES[kind]

    def validate(self, action: RequestedAction) -> None:
        """
        Reject actions that can never apply, before any worker starts.

        Raises:
            UnsupportedAction: Unknown agent kind or resource kind
            ConfigurationError: Missing or invalid action parameters
        """
        if action.kind is ActionKind.INSTALL_AGENT:
            spec = self.agent(action.agent)
            if spec is None:
                raise UnsupportedAction(
                    f"Unknown agent kind '{action.agent}'. "
                    f"Supported: {', '.join(self.agent_names())}"
                )
            missing = [p for p in spec.required_params if not action.params.get(p)]
            if missing:
                raise ConfigurationError(
                    f"Agent {spec.name} requires parameters: {', '.join(missing)}"
                )
        elif action.kind in (ActionKind.START, ActionKind.STOP):
            if self.transition_for(action.kind) is None:
                raise UnsupportedAction(f"No power transition for {action.label}")
        elif action.kind is ActionKind.EXPORT:
            kind = action.params.get("resource_kind")
            if kind and self.resource_kind(kind) is None:
                raise UnsupportedAction(
                    f"Unknown resource kind '{kind}'. "
                    f"Supported: {', '.join(self.resource_kind_names())}"
                )
        elif action.kind is ActionKind.SCAN_CREDENTIALS:
            warn_days = action.params.get("warn_days", 30)
            if not isinstance(warn_days, int) or warn_days < 0:
                raise ConfigurationError(
                    f"warn_days must be a non-negative integer, got {warn_days!r}"
                )


DEFAULT_CATALOG = ActionCatalog()
