"""
Action execution for targets that need reconciling.
"""

import logging
import time
from datetime import timedelta
from typing import Optional

import requests

from catalog import DEFAULT_CATALOG, ActionCatalog
from errors import ProviderError, UnsupportedAction
from models import (
    ActionKind,
    ErrorKind,
    Outcome,
    OutcomeStatus,
    RequestedAction,
    TargetDescriptor,
)
from resolver import DEFAULT_WARN_DAYS

logger = logging.getLogger(__name__)


class ActionExecutor:
    """Invokes provider calls and converts failures into Outcomes."""

    def __init__(self, client, catalog: ActionCatalog = DEFAULT_CATALOG):
        self.client = client
        self.catalog = catalog
        self._handlers = {
            ActionKind.INSTALL_AGENT: self._install_agent,
            ActionKind.START: self._power,
            ActionKind.STOP: self._power,
            ActionKind.EXPORT: self._export,
            ActionKind.SCAN_CREDENTIALS: self._report_credentials,
        }

    def execute(
        self, target: TargetDescriptor, action: RequestedAction, state=None
    ) -> Outcome:
        """
        Execute an action on a target whose decision was Act.

        Provider errors never propagate; they become a failed Outcome whose
        reason is the provider's error message.

        Args:
            target: Target descriptor
            action: Requested action
            state: ObservedState from the probe

        Returns:
            Outcome (SUCCEEDED or FAILED)
        """
        start = time.time()
        try:
            status_code, detail = self._handlers[action.kind](target, action, state)
        except UnsupportedAction as e:
            return self._failed(target, action, str(e), ErrorKind.UNSUPPORTED_ACTION, start)
        except ProviderError as e:
            return self._failed(
                target, action, str(e), ErrorKind.ACTION_FAILED, start, e.status_code
            )
        except requests.RequestException as e:
            return self._failed(target, action, str(e), ErrorKind.ACTION_FAILED, start)

        return Outcome(
            target=target,
            action_label=action.label,
            status=OutcomeStatus.SUCCEEDED,
            status_code=status_code,
            detail=detail,
            duration_seconds=time.time() - start,
        )

    def _failed(
        self,
        target,
        action,
        reason: str,
        error_kind: ErrorKind,
        start: float,
        status_code: Optional[int] = None,
    ) -> Outcome:
        return Outcome(
            target=target,
            action_label=action.label,
            status=OutcomeStatus.FAILED,
            reason=reason,
            error_kind=error_kind,
            status_code=status_code,
            duration_seconds=time.time() - start,
        )

    def _install_agent(self, target, action, state):
        spec = self.catalog.extension_for(action.agent, target.variant)
        if spec is None:
            raise UnsupportedAction(
                f"No extension for agent '{action.agent}' on '{target.variant}'"
            )
        settings, protected = spec.render(action.params)
        status_code = self.client.put_extension(
            target,
            extension_name=spec.type_name,
            publisher=spec.publisher,
            type_name=spec.type_name,
            version=spec.version,
            settings=settings,
            protected_settings=protected,
        )
        return status_code, {"extension": spec.identifier, "version": spec.version}

    def _power(self, target, action, state):
        transition = self.catalog.transition_for(action.kind)
        if transition is None:
            raise UnsupportedAction(f"No power transition for {action.label}")
        status_code = self.client.power_action(target, transition.verb)
        return status_code, {"power_state": transition.target.value}

    def _export(self, target, action, state):
        kind = self.catalog.resource_kind(
            action.params.get("resource_kind") or target.variant
        )
        if kind is None:
            raise UnsupportedAction(f"Unknown resource kind '{target.variant}'")
        resource_id = getattr(state, "resource_id", None) or self.client.resource_id_for(
            target, kind.resource_type
        )
        status_code, template = self.client.export_template(
            target.resource_group, [resource_id]
        )
        return status_code, {"resource_id": resource_id, "template": template}

    def _report_credentials(self, target, action, state):
        warn_days = action.params.get("warn_days", DEFAULT_WARN_DAYS)
        horizon = state.checked_at + timedelta(days=warn_days)
        expiring = [
            {
                "type": c.credential_type,
                "name": c.name,
                "key_id": c.key_id,
                "expires_at": c.expires_at.isoformat(),
                "expired": c.expires_at <= state.checked_at,
            }
            for c in state.expiries
            if c.expires_at <= horizon
        ]
        for item in expiring:
            logger.warning(
                f"{target.name}: {item['type']} credential '{item['name']}' "
                f"{'expired' if item['expired'] else 'expires'} {item['expires_at']}"
            )
        return None, {"expiring": expiring}
