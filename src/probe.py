"""
Read-only state probing for reconciliation targets.
"""

import itertools
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import requests

from catalog import DEFAULT_CATALOG, ActionCatalog
from errors import ProbeUnavailable, ProviderError, UnsupportedAction
from models import (
    ActionKind,
    CredentialExpiry,
    CredentialState,
    ExtensionState,
    PowerState,
    PowerStatus,
    RequestedAction,
    ResourceState,
    TargetDescriptor,
)

logger = logging.getLogger(__name__)

_POWER_CODES = {
    "deallocated": PowerStatus.DEALLOCATED,
    "running": PowerStatus.RUNNING,
    "stopped": PowerStatus.STOPPED,
    "starting": PowerStatus.TRANSITIONING,
    "stopping": PowerStatus.TRANSITIONING,
    "deallocating": PowerStatus.TRANSITIONING,
}


def parse_power_status(code: str) -> PowerStatus:
    """Map an ARM 'PowerState/<x>' code to a PowerStatus."""
    _, _, value = (code or "").partition("/")
    return _POWER_CODES.get(value.strip().lower(), PowerStatus.UNKNOWN)


def has_extension(state: ExtensionState, identifier: str) -> bool:
    """Case-insensitive substring match; providers version-suffix extension names."""
    needle = identifier.lower()
    return any(needle in ext.lower() for ext in state.extensions)


def _parse_timestamp(value: str) -> datetime:
    # Graph returns e.g. 2025-03-01T10:00:00Z or with 7-digit fractions
    text = value.replace("Z", "+00:00")
    if "." in text:
        head, _, tail = text.partition(".")
        digits = "".join(itertools.takewhile(str.isdigit, tail))
        zone = tail[len(digits):]
        text = f"{head}.{digits[:6]}{zone}"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class StateProbe:
    """Fetches the current state of one target through the provider client."""

    def __init__(
        self,
        client,
        catalog: ActionCatalog = DEFAULT_CATALOG,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.catalog = catalog
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._probes: Dict[ActionKind, Callable] = {
            ActionKind.INSTALL_AGENT: self._probe_extensions,
            ActionKind.START: self._probe_power,
            ActionKind.STOP: self._probe_power,
            ActionKind.EXPORT: self._probe_resource,
            ActionKind.SCAN_CREDENTIALS: self._probe_credentials,
        }

    def probe(self, target: TargetDescriptor, action: RequestedAction):
        """
        Probe a target's state relevant to the requested action.

        Args:
            target: Target descriptor
            action: Requested action (selects which state is read)

        Returns:
            ExtensionState, PowerState, ResourceState or CredentialState

        Raises:
            ProbeUnavailable: Target not found, state could not be read or
                the provider payload could not be parsed
            UnsupportedAction: Export of an unknown resource kind
        """
        logger.debug(f"Probing {target.name} for {action.label}")
        try:
            return self._probes[action.kind](target, action)
        except ProviderError as e:
            if e.not_found:
                raise ProbeUnavailable(f"{target.name} not found: {e}") from e
            raise ProbeUnavailable(f"Cannot read state of {target.name}: {e}") from e
        except (requests.RequestException, ValueError, KeyError) as e:
            raise ProbeUnavailable(f"Cannot read state of {target.name}: {e}") from e

    def _probe_extensions(self, target, action) -> ExtensionState:
        identifiers = set()
        for ext in self.client.list_extensions(target):
            props = ext.get("properties", {})
            publisher = props.get("publisher", "")
            type_name = props.get("type", "")
            if type_name:
                identifiers.add(f"{publisher}.{type_name}" if publisher else type_name)
            if ext.get("name"):
                identifiers.add(ext["name"])
        return ExtensionState(extensions=frozenset(identifiers))

    def _probe_power(self, target, action) -> PowerState:
        code = self.client.get_power_status(target)
        return PowerState(status=parse_power_status(code), raw=code)

    def _probe_resource(self, target, action) -> ResourceState:
        kind = self.catalog.resource_kind(
            action.params.get("resource_kind") or target.variant
        )
        if kind is None:
            raise UnsupportedAction(f"Unknown resource kind '{target.variant}'")
        resource_id = self.client.resource_id_for(target, kind.resource_type)
        try:
            definition = self.client.get_resource(resource_id, kind.api_version)
        except ProviderError as e:
            if e.not_found:
                return ResourceState(exists=False, resource_id=resource_id)
            raise
        return ResourceState(
            exists=True, resource_id=definition.get("id", resource_id), definition=definition
        )

    def _probe_credentials(self, target, action) -> CredentialState:
        app = self.client.get_application(target.resource_id or target.name)
        expiries = []
        for cred_type, field_name in (
            ("password", "passwordCredentials"),
            ("key", "keyCredentials"),
        ):
            for cred in app.get(field_name) or []:
                end = cred.get("endDateTime")
                if not end:
                    continue
                expiries.append(
                    CredentialExpiry(
                        credential_type=cred_type,
                        name=cred.get("displayName") or "",
                        key_id=cred.get("keyId", ""),
                        expires_at=_parse_timestamp(end),
                    )
                )
        expiries.sort(key=lambda c: c.expires_at)
        return CredentialState(expiries=tuple(expiries), checked_at=self.clock())
