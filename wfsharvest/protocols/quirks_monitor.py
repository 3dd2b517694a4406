"""Quirks monitoring utilities.

Track which host quirks are applied during a harvest run. A monitor is
created per run and passed to the components that apply quirks.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

logger = logging.getLogger("wfsharvest.quirks")


@dataclass
class QuirkUsage:
    """Track usage statistics for a specific quirk."""

    host: str
    quirk_type: str
    applied_count: int = 0
    last_applied: Optional[datetime] = None
    first_applied: Optional[datetime] = None

    def record_application(self):
        """Record that this quirk was applied."""
        self.applied_count += 1
        now = datetime.now()
        self.last_applied = now
        if self.first_applied is None:
            self.first_applied = now


class QuirksMonitor:
    """Monitor quirk usage during a harvest run.

    Examples:
        >>> monitor = QuirksMonitor()
        >>> monitor.record_quirk_applied("www.wfs.nrw.de", "force_version")
        >>> monitor.get_statistics()["www.wfs.nrw.de"]["force_version"].applied_count
        1
    """

    def __init__(self):
        """Initialize quirks monitor."""
        self._usage: dict[str, dict[str, QuirkUsage]] = defaultdict(dict)
        self._enabled = True

    def record_quirk_applied(self, host: str, quirk_type: str):
        """Record that a quirk was applied.

        Args:
            host: Host the quirk is registered for
            quirk_type: Type of quirk (e.g. "force_version")
        """
        if not self._enabled:
            return

        if quirk_type not in self._usage[host]:
            self._usage[host][quirk_type] = QuirkUsage(host=host, quirk_type=quirk_type)

        usage = self._usage[host][quirk_type]
        usage.record_application()

        logger.debug(f"Applied quirk: {host}/{quirk_type} (count: {usage.applied_count})")

    def record_labels(self, host: str, labels: list[str]):
        """Record several quirks at once (labels from ProtocolQuirks.active_quirks)."""
        for label in labels:
            self.record_quirk_applied(host, label.split("=", 1)[0].split("(", 1)[0])

    def get_statistics(self) -> dict[str, dict[str, QuirkUsage]]:
        """Get usage statistics: host -> quirk_type -> QuirkUsage."""
        return dict(self._usage)

    def get_most_used_quirks(self, limit: int = 10) -> list[QuirkUsage]:
        """Get the most frequently used quirks.

        Args:
            limit: Maximum number of results

        Returns:
            List of QuirkUsage sorted by applied_count (descending)
        """
        all_quirks = [usage for quirks in self._usage.values() for usage in quirks.values()]
        all_quirks.sort(key=lambda x: x.applied_count, reverse=True)
        return all_quirks[:limit]

    def reset(self):
        """Reset all statistics."""
        self._usage.clear()
        logger.info("Quirks monitor statistics reset")

    def disable(self):
        """Disable monitoring."""
        self._enabled = False

    def enable(self):
        """Enable monitoring."""
        self._enabled = True

    def generate_report(self) -> str:
        """Human-readable report of quirk usage."""
        lines = ["=" * 70, "QUIRKS USAGE REPORT", "=" * 70]

        if not self._usage:
            lines.append("No quirks have been applied yet.")
            return "\n".join(lines)

        for host, quirks in sorted(self._usage.items()):
            lines.append(f"\nHost: {host}")
            lines.append("-" * 70)
            for quirk_type, usage in quirks.items():
                lines.append(f"  {quirk_type}: applied {usage.applied_count} times")
                if usage.last_applied:
                    lines.append(f"    Last: {usage.last_applied.isoformat()}")

        return "\n".join(lines)
