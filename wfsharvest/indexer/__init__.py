"""WFS catalog indexer.

This module provides tools to:
1. Scan stream URLs into a catalog store (validate, parse, upsert)
2. Resolve geoportal links to their WFS endpoints before scanning
3. Probe catalogued layers for queryability
4. Generate harvest reports

Usage:
    async with CatalogScanner(store, settings) as scanner:
        summary = await scanner.scan_all(urls)
        await scanner.probe_all(limit_per_stream=10)
    print(summary.generate_report())
"""

from wfsharvest.indexer.report import ScanSummary, StreamScanResult
from wfsharvest.indexer.scanner import CatalogScanner

__all__ = [
    "CatalogScanner",
    "ScanSummary",
    "StreamScanResult",
]
