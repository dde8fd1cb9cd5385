"""
Unit tests for the progress reporter.
"""

import threading
import unittest

from progress import FAILED, PROBING, SUCCEEDED, ProgressEvent, ProgressReporter


class TestProgressReporter(unittest.TestCase):
    """Test synchronized progress events."""

    def test_event_format(self):
        event = ProgressEvent("vm1", "stop", FAILED, "inconsistent_state: VM is stopping")
        self.assertEqual(event.format(), "[!] vm1: stop failed - inconsistent_state: VM is stopping")
        self.assertEqual(ProgressEvent("vm1", "stop", "stopping").format(), "[>] vm1: stop stopping")

    def test_failed_logged_as_error(self):
        reporter = ProgressReporter()
        with self.assertLogs("progress", level="INFO") as logs:
            reporter.emit("vm1", "start", PROBING)
            reporter.emit("vm1", "start", FAILED, "boom")

        self.assertTrue(logs.output[0].startswith("INFO:progress:[?] vm1"))
        self.assertTrue(logs.output[1].startswith("ERROR:progress:[!] vm1"))

    def test_concurrent_emitters_keep_per_target_order(self):
        reporter = ProgressReporter(keep_events=True)

        def worker(name):
            for phase in (PROBING, "starting", SUCCEEDED):
                reporter.emit(name, "start", phase)

        with self.assertLogs("progress", level="INFO"):
            threads = [threading.Thread(target=worker, args=(f"vm{i}",)) for i in range(20)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        self.assertEqual(len(reporter.events), 60)
        for i in range(20):
            phases = [e.phase for e in reporter.events_for(f"vm{i}")]
            self.assertEqual(phases, [PROBING, "starting", SUCCEEDED])

    def test_events_not_retained_by_default(self):
        reporter = ProgressReporter()
        with self.assertLogs("progress", level="INFO"):
            reporter.emit("vm1", "start", PROBING)

        self.assertEqual(reporter.events, [])


if __name__ == "__main__":
    unittest.main()
