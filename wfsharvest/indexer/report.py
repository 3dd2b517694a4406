"""Scan results and the harvest report.

Every scanned stream produces a ``StreamScanResult``; a ``ScanSummary``
collects them and renders the pass/fail overview of a harvest run.
"""

import logging
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger("wfsharvest.indexer")


class StreamScanResult(BaseModel):
    """Outcome of scanning one stream."""

    url: str = Field(..., description="URL as given in the source list")
    stream_url: Optional[str] = Field(None, description="URL used as catalog key")
    success: bool
    stream_id: Optional[int] = None
    version: Optional[str] = None
    service_title: Optional[str] = None
    layers_found: int = 0
    layers_inserted: int = 0
    layer_count: int = 0
    url_syntax_valid: bool = False
    server_reachable: bool = False
    xml_response_valid: bool = False
    error_kind: Optional[str] = None
    error: Optional[str] = None
    notes: list[str] = Field(default_factory=list)
    duration: float = 0.0


class ScanSummary(BaseModel):
    """Aggregate of a harvest run."""

    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    results: list[StreamScanResult] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def success_rate(self) -> float:
        """Percentage of successful streams (0.0 for an empty run)."""
        if not self.results:
            return 0.0
        return round(100.0 * self.succeeded / self.total, 1)

    @property
    def layers_found(self) -> int:
        return sum(r.layers_found for r in self.results)

    @property
    def layers_inserted(self) -> int:
        return sum(r.layers_inserted for r in self.results)

    @property
    def failures(self) -> list[tuple[str, str]]:
        """(url, reason) for every failed stream."""
        return [(r.url, r.error or "Unbekannter Fehler") for r in self.results if not r.success]

    def failure_kinds(self) -> dict[str, int]:
        return dict(Counter(r.error_kind or "unknown" for r in self.results if not r.success))

    def generate_report(self, output_path: Optional[Path] = None) -> str:
        """Generate human-readable harvest report.

        Args:
            output_path: Optional path to save report

        Returns:
            Report as string
        """
        lines = []
        lines.append("=" * 80)
        lines.append("WFS HARVEST REPORT")
        lines.append("=" * 80)
        lines.append(f"Started:  {self.started_at.isoformat(timespec='seconds')}")
        if self.finished_at:
            lines.append(f"Finished: {self.finished_at.isoformat(timespec='seconds')}")
        lines.append("")

        lines.append("SUMMARY")
        lines.append("-" * 80)
        lines.append(f"  Streams:         {self.total}")
        lines.append(f"  Successful:      {self.succeeded}")
        lines.append(f"  Failed:          {self.failed}")
        lines.append(f"  Success rate:    {self.success_rate:.1f}%")
        lines.append(f"  Layers found:    {self.layers_found}")
        lines.append(f"  Layers inserted: {self.layers_inserted}")
        lines.append("")

        if self.failures:
            lines.append("FAILED STREAMS")
            lines.append("-" * 80)
            for kind, count in sorted(self.failure_kinds().items()):
                lines.append(f"  {kind}: {count}")
            lines.append("")
            for url, reason in self.failures:
                lines.append(f"  ✗ {url}")
                lines.append(f"    {reason}")
            lines.append("")

        lines.append("=" * 80)
        report = "\n".join(lines)

        if output_path:
            Path(output_path).write_text(report, encoding="utf-8")
            logger.info("Report saved to %s", output_path)

        return report
