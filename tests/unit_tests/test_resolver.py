"""
Unit tests for idempotency decisions.
"""

import unittest
from datetime import datetime, timedelta, timezone

from models import (
    ActionKind,
    CredentialExpiry,
    CredentialState,
    DecisionKind,
    ErrorKind,
    ExtensionState,
    PowerState,
    PowerStatus,
    RequestedAction,
    ResourceState,
)
from resolver import resolve

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def power(status, raw=""):
    return PowerState(status=status, raw=raw)


class TestAgentDecisions(unittest.TestCase):
    """Test install-agent decisions."""

    action = RequestedAction(ActionKind.INSTALL_AGENT, agent="Dependency")

    def test_act_when_not_installed(self):
        decision = resolve(ExtensionState(), self.action, "linux")
        self.assertEqual(decision.kind, DecisionKind.ACT)

    def test_skip_when_version_suffixed_extension_present(self):
        """Test substring, case-insensitive match."""
        state = ExtensionState(
            frozenset({"Microsoft.Azure.Monitoring.DependencyAgent.DEPENDENCYAGENTLINUX-9.10"})
        )
        decision = resolve(state, self.action, "linux")
        self.assertEqual(decision.kind, DecisionKind.SKIP)

    def test_other_os_extension_does_not_match(self):
        state = ExtensionState(frozenset({"DependencyAgentWindows"}))
        decision = resolve(state, self.action, "linux")
        self.assertEqual(decision.kind, DecisionKind.ACT)

    def test_unknown_agent_rejected(self):
        action = RequestedAction(ActionKind.INSTALL_AGENT, agent="Telegraf")
        decision = resolve(ExtensionState(), action, "linux")
        self.assertEqual(decision.kind, DecisionKind.REJECT)
        self.assertEqual(decision.error_kind, ErrorKind.UNSUPPORTED_ACTION)

    def test_unknown_variant_rejected(self):
        decision = resolve(ExtensionState(), self.action, "")
        self.assertEqual(decision.kind, DecisionKind.REJECT)
        self.assertEqual(decision.error_kind, ErrorKind.UNSUPPORTED_ACTION)

    def test_wrong_state_family_raises(self):
        with self.assertRaises(TypeError):
            resolve(power(PowerStatus.RUNNING), self.action, "linux")


class TestPowerDecisions(unittest.TestCase):
    """Test start/stop decisions."""

    start = RequestedAction(ActionKind.START)
    stop = RequestedAction(ActionKind.STOP)

    def test_stop_deallocated_skips(self):
        decision = resolve(power(PowerStatus.DEALLOCATED), self.stop, "linux")
        self.assertEqual(decision.kind, DecisionKind.SKIP)

    def test_start_running_skips(self):
        decision = resolve(power(PowerStatus.RUNNING), self.start, "windows")
        self.assertEqual(decision.kind, DecisionKind.SKIP)

    def test_legal_transitions_act(self):
        self.assertEqual(
            resolve(power(PowerStatus.DEALLOCATED), self.start, "linux").kind,
            DecisionKind.ACT,
        )
        self.assertEqual(
            resolve(power(PowerStatus.RUNNING), self.stop, "linux").kind,
            DecisionKind.ACT,
        )
        self.assertEqual(
            resolve(power(PowerStatus.STOPPED), self.stop, "linux").kind,
            DecisionKind.ACT,
        )

    def test_transitioning_rejected(self):
        decision = resolve(
            power(PowerStatus.TRANSITIONING, "PowerState/stopping"), self.stop, "linux"
        )
        self.assertEqual(decision.kind, DecisionKind.REJECT)
        self.assertEqual(decision.error_kind, ErrorKind.INCONSISTENT_STATE)
        self.assertIn("PowerState/stopping", decision.reason)

    def test_unknown_rejected(self):
        decision = resolve(power(PowerStatus.UNKNOWN), self.start, "linux")
        self.assertEqual(decision.error_kind, ErrorKind.INCONSISTENT_STATE)

    def test_deterministic(self):
        """Test same inputs always give the same decision."""
        for status in PowerStatus:
            for action in (self.start, self.stop):
                first = resolve(power(status), action, "linux")
                for _ in range(5):
                    self.assertEqual(resolve(power(status), action, "linux"), first)


class TestExportDecisions(unittest.TestCase):
    """Test export decisions."""

    action = RequestedAction(ActionKind.EXPORT)

    def test_existing_resource_acts(self):
        decision = resolve(ResourceState(exists=True, resource_id="/x"), self.action, "nsg")
        self.assertEqual(decision.kind, DecisionKind.ACT)

    def test_missing_resource_rejected(self):
        decision = resolve(ResourceState(exists=False), self.action, "nsg")
        self.assertEqual(decision.kind, DecisionKind.REJECT)
        self.assertEqual(decision.error_kind, ErrorKind.PROBE_UNAVAILABLE)

    def test_unknown_kind_rejected(self):
        decision = resolve(ResourceState(exists=True), self.action, "firewall")
        self.assertEqual(decision.error_kind, ErrorKind.UNSUPPORTED_ACTION)


class TestCredentialDecisions(unittest.TestCase):
    """Test credential scan decisions."""

    def state(self, *days):
        return CredentialState(
            expiries=tuple(
                CredentialExpiry("password", f"s{d}", f"k{d}", NOW + timedelta(days=d))
                for d in days
            ),
            checked_at=NOW,
        )

    def test_nothing_expiring_skips(self):
        action = RequestedAction(ActionKind.SCAN_CREDENTIALS, params={"warn_days": 30})
        self.assertEqual(resolve(self.state(90, 400), action, "application").kind, DecisionKind.SKIP)

    def test_expiring_within_window_acts(self):
        action = RequestedAction(ActionKind.SCAN_CREDENTIALS, params={"warn_days": 30})
        decision = resolve(self.state(10, 400), action, "application")
        self.assertEqual(decision.kind, DecisionKind.ACT)
        self.assertIn("1 credential", decision.reason)

    def test_no_credentials_skips(self):
        action = RequestedAction(ActionKind.SCAN_CREDENTIALS)
        self.assertEqual(resolve(self.state(), action, "application").kind, DecisionKind.SKIP)


if __name__ == "__main__":
    unittest.main()
