"""Tests for quirks monitoring system."""

import time
from datetime import datetime

import pytest

from wfsharvest.protocols.quirks import ProtocolQuirks
from wfsharvest.protocols.quirks_monitor import QuirksMonitor, QuirkUsage


class TestQuirkUsage:
    """Test QuirkUsage dataclass."""

    def test_initial_state(self):
        """Test initial state of QuirkUsage."""
        usage = QuirkUsage(host="www.wfs.nrw.de", quirk_type="version")

        assert usage.host == "www.wfs.nrw.de"
        assert usage.quirk_type == "version"
        assert usage.applied_count == 0
        assert usage.first_applied is None
        assert usage.last_applied is None

    def test_record_first_application(self):
        """Test recording the first application."""
        usage = QuirkUsage(host="www.wfs.nrw.de", quirk_type="version")

        before = datetime.now()
        usage.record_application()
        after = datetime.now()

        assert usage.applied_count == 1
        assert before <= usage.first_applied <= after
        assert usage.first_applied == usage.last_applied

    def test_record_multiple_applications(self):
        """Test first application time is kept."""
        usage = QuirkUsage(host="www.wfs.nrw.de", quirk_type="version")

        usage.record_application()
        first_time = usage.first_applied
        time.sleep(0.01)
        usage.record_application()

        assert usage.applied_count == 2
        assert usage.first_applied == first_time
        assert usage.last_applied > usage.first_applied


class TestQuirksMonitor:
    """Test QuirksMonitor class."""

    @pytest.fixture
    def monitor(self):
        """Create a fresh monitor for each test."""
        return QuirksMonitor()

    def test_initial_state(self, monitor):
        """Test initial state of monitor."""
        assert monitor.get_statistics() == {}
        assert monitor.get_most_used_quirks() == []

    def test_record_single_quirk(self, monitor):
        """Test recording a single quirk application."""
        monitor.record_quirk_applied("www.wfs.nrw.de", "version")

        usage = monitor.get_statistics()["www.wfs.nrw.de"]["version"]
        assert usage.host == "www.wfs.nrw.de"
        assert usage.applied_count == 1

    def test_record_labels_strips_values(self, monitor):
        """Test quirk labels are grouped by type, not by value."""
        labels = ProtocolQuirks(
            force_version="2.0.0", custom_timeout=30.0, custom_headers={"A": "1"}
        ).active_quirks()

        monitor.record_labels("www.wfs.nrw.de", labels)
        monitor.record_labels("www.wfs.nrw.de", labels)

        stats = monitor.get_statistics()["www.wfs.nrw.de"]
        assert set(stats) == {"version", "timeout", "headers"}
        assert stats["version"].applied_count == 2

    def test_most_used_quirks_sorted(self, monitor):
        """Test most used quirks come first."""
        for _ in range(3):
            monitor.record_quirk_applied("a.example.de", "timeout")
        monitor.record_quirk_applied("b.example.de", "version")

        top = monitor.get_most_used_quirks(limit=1)
        assert len(top) == 1
        assert top[0].host == "a.example.de"
        assert top[0].applied_count == 3

    def test_disable_and_enable(self, monitor):
        """Test a disabled monitor records nothing."""
        monitor.disable()
        monitor.record_quirk_applied("a.example.de", "timeout")
        assert monitor.get_statistics() == {}

        monitor.enable()
        monitor.record_quirk_applied("a.example.de", "timeout")
        assert monitor.get_statistics()["a.example.de"]["timeout"].applied_count == 1

    def test_reset(self, monitor):
        """Test reset clears statistics."""
        monitor.record_quirk_applied("a.example.de", "timeout")
        monitor.reset()
        assert monitor.get_statistics() == {}

    def test_monitors_are_independent(self):
        """Test two runs do not share statistics."""
        first, second = QuirksMonitor(), QuirksMonitor()
        first.record_quirk_applied("a.example.de", "timeout")

        assert second.get_statistics() == {}

    def test_generate_report(self, monitor):
        """Test report lists hosts and counts."""
        assert "No quirks have been applied yet." in monitor.generate_report()

        monitor.record_quirk_applied("www.wfs.nrw.de", "version")
        report = monitor.generate_report()

        assert "QUIRKS USAGE REPORT" in report
        assert "Host: www.wfs.nrw.de" in report
        assert "version: applied 1 times" in report
