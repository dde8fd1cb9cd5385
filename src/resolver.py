"""
Idempotency decisions: given observed state and requested action, decide
whether a target needs action.

All functions here are pure; they never call the provider.
"""

from datetime import timedelta

from catalog import DEFAULT_CATALOG, ActionCatalog
from models import (
    ActionKind,
    CredentialState,
    Decision,
    DecisionKind,
    ErrorKind,
    ExtensionState,
    PowerState,
    RequestedAction,
    ResourceState,
)
from probe import has_extension

DEFAULT_WARN_DAYS = 30


def skip(reason: str) -> Decision:
    return Decision(DecisionKind.SKIP, reason)


def act(reason: str) -> Decision:
    return Decision(DecisionKind.ACT, reason)


def reject(reason: str, error_kind: ErrorKind) -> Decision:
    return Decision(DecisionKind.REJECT, reason, error_kind)


def _resolve_agent(state: ExtensionState, action, variant, catalog) -> Decision:
    agent = catalog.agent(action.agent)
    if agent is None:
        return reject(f"Unknown agent kind '{action.agent}'", ErrorKind.UNSUPPORTED_ACTION)
    spec = catalog.extension_for(action.agent, variant)
    if spec is None:
        return reject(
            f"Agent {agent.name} has no extension for variant '{variant}'",
            ErrorKind.UNSUPPORTED_ACTION,
        )
    if has_extension(state, spec.identifier):
        return skip(f"{spec.identifier} already installed")
    return act(f"{spec.identifier} not installed")


def _resolve_power(state: PowerState, action, variant, catalog) -> Decision:
    transition = catalog.transition_for(action.kind)
    if transition is None:
        return reject(f"No power transition for {action.label}", ErrorKind.UNSUPPORTED_ACTION)
    if state.status is transition.target:
        return skip(f"VM already {state.status.value}")
    if state.status in transition.sources:
        return act(f"VM {state.status.value} -> {transition.target.value}")
    return reject(
        f"Inconsistent State: VM is {state.raw or state.status.value}",
        ErrorKind.INCONSISTENT_STATE,
    )


def _resolve_export(state: ResourceState, action, variant, catalog) -> Decision:
    kind = catalog.resource_kind(action.params.get("resource_kind") or variant)
    if kind is None:
        return reject(f"Unknown resource kind '{variant}'", ErrorKind.UNSUPPORTED_ACTION)
    if not state.exists:
        return reject("Resource does not exist", ErrorKind.PROBE_UNAVAILABLE)
    return act(f"Export {kind.resource_type}")


def _resolve_credentials(state: CredentialState, action, variant, catalog) -> Decision:
    warn_days = action.params.get("warn_days", DEFAULT_WARN_DAYS)
    horizon = state.checked_at + timedelta(days=warn_days)
    expiring = [c for c in state.expiries if c.expires_at <= horizon]
    if not expiring:
        return skip(f"No credentials expire within {warn_days} days")
    return act(f"{len(expiring)} credential(s) expire within {warn_days} days")


_RESOLVERS = {
    ActionKind.INSTALL_AGENT: (ExtensionState, _resolve_agent),
    ActionKind.START: (PowerState, _resolve_power),
    ActionKind.STOP: (PowerState, _resolve_power),
    ActionKind.EXPORT: (ResourceState, _resolve_export),
    ActionKind.SCAN_CREDENTIALS: (CredentialState, _resolve_credentials),
}


def resolve(
    state,
    action: RequestedAction,
    variant: str,
    catalog: ActionCatalog = DEFAULT_CATALOG,
) -> Decision:
    """
    Decide Skip, Act or Reject for one target.

    Args:
        state: ObservedState returned by the probe
        action: Requested action
        variant: Target variant (OS kind or resource kind)
        catalog: Action catalog

    Returns:
        Decision

    Raises:
        TypeError: If the state does not belong to the action's family
    """
    state_type, rule = _RESOLVERS[action.kind]
    if not isinstance(state, state_type):
        raise TypeError(
            f"{action.label} expects {state_type.__name__}, got {type(state).__name__}"
        )
    return rule(state, action, variant, catalog)
