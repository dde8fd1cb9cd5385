"""
Unit tests for StateProbe.
"""

import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from errors import ProbeUnavailable, ProviderError
from models import (
    ActionKind,
    CredentialState,
    ExtensionState,
    PowerStatus,
    RequestedAction,
    TargetDescriptor,
)
from probe import StateProbe, has_extension, parse_power_status

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)
VM = TargetDescriptor(name="vm1", resource_group="rg", variant="linux")


class TestPowerStatusParsing(unittest.TestCase):
    """Test PowerState code mapping."""

    def test_codes(self):
        self.assertEqual(parse_power_status("PowerState/running"), PowerStatus.RUNNING)
        self.assertEqual(parse_power_status("PowerState/deallocated"), PowerStatus.DEALLOCATED)
        self.assertEqual(parse_power_status("PowerState/stopped"), PowerStatus.STOPPED)
        self.assertEqual(parse_power_status("PowerState/deallocating"), PowerStatus.TRANSITIONING)
        self.assertEqual(parse_power_status("PowerState/starting"), PowerStatus.TRANSITIONING)
        self.assertEqual(parse_power_status(""), PowerStatus.UNKNOWN)
        self.assertEqual(parse_power_status("PowerState/weird"), PowerStatus.UNKNOWN)

    def test_has_extension_is_case_insensitive_substring(self):
        state = ExtensionState(frozenset({"Microsoft.EnterpriseCloud.Monitoring.OmsAgentForLinux"}))
        self.assertTrue(has_extension(state, "omsagentforlinux"))
        self.assertFalse(has_extension(state, "DependencyAgentLinux"))


class TestStateProbe(unittest.TestCase):
    """Test probing through a mocked client."""

    def setUp(self):
        self.client = MagicMock()
        self.probe = StateProbe(self.client, clock=lambda: NOW)

    def test_extensions_collected(self):
        self.client.list_extensions.return_value = [
            {
                "name": "DAExtension",
                "properties": {
                    "publisher": "Microsoft.Azure.Monitoring.DependencyAgent",
                    "type": "DependencyAgentLinux",
                },
            }
        ]

        state = self.probe.probe(VM, RequestedAction(ActionKind.INSTALL_AGENT, agent="Dependency"))

        self.assertIn(
            "Microsoft.Azure.Monitoring.DependencyAgent.DependencyAgentLinux", state.extensions
        )
        self.assertIn("DAExtension", state.extensions)

    def test_power_probe(self):
        self.client.get_power_status.return_value = "PowerState/deallocated"

        state = self.probe.probe(VM, RequestedAction(ActionKind.STOP))

        self.assertEqual(state.status, PowerStatus.DEALLOCATED)
        self.assertEqual(state.raw, "PowerState/deallocated")

    def test_not_found_raises_probe_unavailable(self):
        self.client.get_power_status.side_effect = ProviderError("gone", status_code=404)

        with self.assertRaises(ProbeUnavailable) as ctx:
            self.probe.probe(VM, RequestedAction(ActionKind.START))
        self.assertIn("not found", str(ctx.exception))

    def test_transient_error_raises_probe_unavailable(self):
        self.client.list_extensions.side_effect = ProviderError("Max retries exceeded")

        with self.assertRaises(ProbeUnavailable):
            self.probe.probe(VM, RequestedAction(ActionKind.INSTALL_AGENT, agent="AMA"))

    def test_export_probe_missing_resource(self):
        target = TargetDescriptor(name="nsg1", resource_group="rg", variant="nsg")
        self.client.resource_id_for.return_value = "/subscriptions/s/resourceGroups/rg/providers/Microsoft.Network/networkSecurityGroups/nsg1"
        self.client.get_resource.side_effect = ProviderError("missing", status_code=404)

        state = self.probe.probe(target, RequestedAction(ActionKind.EXPORT))

        self.assertFalse(state.exists)
        self.client.resource_id_for.assert_called_once_with(
            target, "Microsoft.Network/networkSecurityGroups"
        )

    def test_export_probe_existing_resource(self):
        target = TargetDescriptor(name="nsg1", resource_group="rg", variant="nsg")
        self.client.resource_id_for.return_value = "/x/nsg1"
        self.client.get_resource.return_value = {"id": "/x/nsg1", "name": "nsg1"}

        state = self.probe.probe(target, RequestedAction(ActionKind.EXPORT))

        self.assertTrue(state.exists)
        self.assertEqual(state.resource_id, "/x/nsg1")

    def test_credentials_parsed(self):
        target = TargetDescriptor(
            name="app", resource_group="", variant="application", resource_id="obj-1"
        )
        self.client.get_application.return_value = {
            "passwordCredentials": [
                {"displayName": "ci", "keyId": "k1", "endDateTime": "2026-02-01T10:00:00.1234567Z"},
                {"displayName": "no-end", "keyId": "k2"},
            ],
            "keyCredentials": [
                {"displayName": "cert", "keyId": "k3", "endDateTime": "2026-01-15T00:00:00Z"},
            ],
        }

        state = self.probe.probe(target, RequestedAction(ActionKind.SCAN_CREDENTIALS))

        self.assertIsInstance(state, CredentialState)
        self.client.get_application.assert_called_once_with("obj-1")
        self.assertEqual([c.name for c in state.expiries], ["cert", "ci"])
        self.assertEqual(state.expiries[1].expires_at.tzinfo, timezone.utc)
        self.assertEqual(state.checked_at, NOW)

    def test_unparseable_expiry_raises_probe_unavailable(self):
        """Test a malformed endDateTime is a read failure, not an action failure."""
        target = TargetDescriptor(
            name="app", resource_group="", variant="application", resource_id="obj-1"
        )
        self.client.get_application.return_value = {
            "passwordCredentials": [
                {"displayName": "ci", "keyId": "k1", "endDateTime": "not-a-date"},
            ],
        }

        with self.assertRaises(ProbeUnavailable) as ctx:
            self.probe.probe(target, RequestedAction(ActionKind.SCAN_CREDENTIALS))

        self.assertIn("Cannot read state of app", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
