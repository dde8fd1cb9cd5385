"""
Unit tests for the action catalog.
"""

import unittest

from catalog import DEFAULT_CATALOG, ActionCatalog, AgentSpec, ExtensionSpec
from errors import ConfigurationError, UnsupportedAction
from models import ActionKind, PowerStatus, RequestedAction


class TestActionCatalog(unittest.TestCase):
    """Test catalog lookups and validation."""

    def test_extension_selected_by_agent_and_os(self):
        """Test (agent, variant) selects publisher/type/version."""
        linux = DEFAULT_CATALOG.extension_for("Dependency", "linux")
        windows = DEFAULT_CATALOG.extension_for("dependency", "Windows")

        self.assertEqual(linux.type_name, "DependencyAgentLinux")
        self.assertEqual(windows.type_name, "DependencyAgentWindows")
        self.assertEqual(linux.publisher, "Microsoft.Azure.Monitoring.DependencyAgent")

    def test_unknown_agent_or_variant(self):
        self.assertIsNone(DEFAULT_CATALOG.extension_for("Nope", "linux"))
        self.assertIsNone(DEFAULT_CATALOG.extension_for("MMA", "solaris"))
        self.assertIsNone(DEFAULT_CATALOG.extension_for(None, "linux"))

    def test_mma_settings_rendered_from_params(self):
        """Test workspace credentials fill the settings templates."""
        spec = DEFAULT_CATALOG.extension_for("MMA", "windows")
        settings, protected = spec.render({"workspace_id": "ws-1", "workspace_key": "secret"})

        self.assertEqual(settings, {"workspaceId": "ws-1"})
        self.assertEqual(protected, {"workspaceKey": "secret"})

    def test_power_transitions(self):
        start = DEFAULT_CATALOG.transition_for(ActionKind.START)
        stop = DEFAULT_CATALOG.transition_for(ActionKind.STOP)

        self.assertEqual(start.verb, "start")
        self.assertEqual(stop.verb, "deallocate")
        self.assertEqual(stop.target, PowerStatus.DEALLOCATED)

    def test_resource_kind_by_name_or_type(self):
        self.assertEqual(DEFAULT_CATALOG.resource_kind("nsg").name, "nsg")
        self.assertEqual(
            DEFAULT_CATALOG.resource_kind("microsoft.network/virtualnetworks").name, "vnet"
        )
        self.assertIsNone(DEFAULT_CATALOG.resource_kind("firewall"))

    def test_validate_unknown_agent(self):
        with self.assertRaises(UnsupportedAction):
            DEFAULT_CATALOG.validate(RequestedAction(ActionKind.INSTALL_AGENT, agent="Foo"))
        with self.assertRaises(UnsupportedAction):
            DEFAULT_CATALOG.validate(RequestedAction(ActionKind.INSTALL_AGENT))

    def test_validate_missing_params(self):
        with self.assertRaises(ConfigurationError):
            DEFAULT_CATALOG.validate(
                RequestedAction(ActionKind.INSTALL_AGENT, agent="MMA", params={"workspace_id": "x"})
            )
        DEFAULT_CATALOG.validate(
            RequestedAction(
                ActionKind.INSTALL_AGENT,
                agent="MMA",
                params={"workspace_id": "x", "workspace_key": "y"},
            )
        )

    def test_validate_export_and_scan(self):
        with self.assertRaises(UnsupportedAction):
            DEFAULT_CATALOG.validate(
                RequestedAction(ActionKind.EXPORT, params={"resource_kind": "firewall"})
            )
        with self.assertRaises(ConfigurationError):
            DEFAULT_CATALOG.validate(
                RequestedAction(ActionKind.SCAN_CREDENTIALS, params={"warn_days": -1})
            )
        DEFAULT_CATALOG.validate(RequestedAction(ActionKind.EXPORT))
        DEFAULT_CATALOG.validate(RequestedAction(ActionKind.START))

    def test_new_agent_is_a_table_entry(self):
        """Test a custom catalog picks up a new agent without code changes."""
        agent = AgentSpec(
            name="Guest",
            variants={"linux": ExtensionSpec("Contoso.Guest", "GuestLinux", "2.0")},
        )
        catalog = ActionCatalog(agents=(agent,))

        self.assertEqual(catalog.agent_names(), ("Guest",))
        self.assertEqual(catalog.extension_for("guest", "linux").version, "2.0")
        catalog.validate(RequestedAction(ActionKind.INSTALL_AGENT, agent="Guest"))


if __name__ == "__main__":
    unittest.main()
