"""Catalog scanner.

Scans WFS streams into a catalog store:

    portal link? -> resolve -> validate (syntax, reachability, capabilities)
    -> parse -> upsert stream -> append new layers -> update layer_anzahl

Streams are scanned concurrently with a fixed width; inside one stream
every step is sequential. A failing stream never affects the others and
never changes its existing catalog rows.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Iterable, Optional

import httpx

from wfsharvest.catalog.records import LayerRecord, StreamRecord
from wfsharvest.catalog.store import CatalogError, CatalogStore
from wfsharvest.config import HarvestSettings
from wfsharvest.core.cache import TTLCache
from wfsharvest.core.categorize import CategoryPolicy
from wfsharvest.core.region import RegionPolicy
from wfsharvest.indexer.report import ScanSummary, StreamScanResult
from wfsharvest.parser.capabilities import WFSCapabilitiesParser
from wfsharvest.protocols.portal import is_portal_link, resolve_portal_url
from wfsharvest.protocols.quirks import ProtocolQuirks, get_quirks
from wfsharvest.protocols.quirks_monitor import QuirksMonitor
from wfsharvest.protocols.validator import URLValidator
from wfsharvest.protocols.wfs import ProbeResult, WFSProtocol

logger = logging.getLogger("wfsharvest.indexer")


def _unique(urls: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for url in urls:
        url = (url or "").strip()
        if url:
            seen.setdefault(url, None)
    return list(seen)


class CatalogScanner:
    """Harvest WFS streams into a catalog store.

    Examples:
        store = InMemoryCatalogStore()
        async with CatalogScanner(store) as scanner:
            summary = await scanner.scan_all(urls)
            print(summary.generate_report())
    """

    def __init__(
        self,
        store: CatalogStore,
        settings: Optional[HarvestSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[TTLCache] = None,
        quirks_registry: Optional[dict[str, ProtocolQuirks]] = None,
        monitor: Optional[QuirksMonitor] = None,
        category_policy: Optional[CategoryPolicy] = None,
        region_policy: Optional[RegionPolicy] = None,
        resolve_portals: bool = True,
    ):
        """Initialize scanner.

        Args:
            store: Catalog store to write into
            settings: Harvest settings
            client: Optional shared HTTP client
            cache: Capabilities cache (default: TTLCache with settings.cache_ttl)
            quirks_registry: Host quirks (default: KNOWN_QUIRKS)
            monitor: Quirks monitor for this run
            category_policy: Category/keyword tables
            region_policy: Region tables and default country
            resolve_portals: Resolve geoportal links before scanning
        """
        self.store = store
        self.settings = settings or HarvestSettings()
        self.cache = cache if cache is not None else TTLCache(ttl=self.settings.cache_ttl)
        self.quirks_registry = quirks_registry
        self.monitor = monitor or QuirksMonitor()
        self.parser = WFSCapabilitiesParser(category_policy, region_policy)
        self.resolve_portals = resolve_portals
        self._client = client
        self._owns_client = client is None

    def get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True, headers={"User-Agent": self.settings.user_agent}
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CatalogScanner":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    def _validator(self) -> URLValidator:
        return URLValidator(
            settings=self.settings,
            client=self.get_client(),
            cache=self.cache,
            quirks_registry=self.quirks_registry,
            monitor=self.monitor,
        )

    async def _resolve(self, url: str, notes: list[str]) -> str:
        if not self.resolve_portals or not is_portal_link(url):
            return url
        resolution = await resolve_portal_url(
            self.get_client(),
            url,
            timeout=self.settings.capabilities_timeout,
            max_bytes=self.settings.max_response_bytes,
            headers={"User-Agent": self.settings.user_agent},
        )
        if resolution.changed:
            notes.append(f"Portal-Link {url} aufgelöst zu {resolution.resolved_url}")
            return resolution.resolved_url
        if resolution.error:
            notes.append(f"Portal-Link nicht aufgelöst: {resolution.error}")
        return url

    async def scan_stream(self, url: str) -> StreamScanResult:
        """Scan one stream into the store.

        Args:
            url: Stream URL (WFS endpoint or portal link)

        Returns:
            StreamScanResult; failures are reported, not raised
        """
        started = time.monotonic()
        notes: list[str] = []
        target = await self._resolve(url.strip(), notes)

        validation = await self._validator().validate(target)
        notes.extend(validation.validation_notes)
        result = StreamScanResult(
            url=url,
            stream_url=target,
            success=False,
            url_syntax_valid=validation.url_syntax_valid,
            server_reachable=validation.server_reachable,
            xml_response_valid=validation.xml_response_valid,
            notes=notes,
        )

        if not validation.xml_response_valid:
            fetch = validation.fetch
            if not validation.url_syntax_valid:
                result.error_kind = "invalid_url"
            elif not validation.server_reachable:
                result.error_kind = "unreachable"
            elif fetch is not None and fetch.error_kind is not None:
                result.error_kind = fetch.error_kind.value
            result.error = fetch.error if fetch is not None else notes[-1]
            result.duration = time.monotonic() - started
            logger.warning("Scan failed for %s: %s", url, result.error)
            return result

        parsed = self.parser.parse(validation.fetch.text)
        if not parsed.success:
            result.error_kind = "parse"
            result.error = parsed.error
            result.duration = time.monotonic() - started
            logger.warning("Scan failed for %s: %s", url, parsed.error)
            return result

        fields = StreamRecord.metadata_fields(parsed.service)
        fields.update(
            url_syntax_valid=validation.url_syntax_valid,
            server_reachable=validation.server_reachable,
            xml_response_valid=validation.xml_response_valid,
            validation_notes="; ".join(notes),
            zuletzt_geprueft=datetime.now(),
            ist_aktiv=True,
            letzter_fehler=None,
        )
        stream = self.store.upsert_stream(target, fields)

        known = {layer.name for layer in self.store.select_layers(stream.id)}
        new_layers = [
            LayerRecord.from_metadata(stream.id, layer)
            for layer in parsed.layers
            if layer.name not in known
        ]
        inserted = self.store.insert_layers(new_layers) if new_layers else []
        layer_count = len(self.store.select_layers(stream.id))
        stream = self.store.update_stream(stream.id, layer_anzahl=layer_count)

        result.success = True
        result.stream_id = stream.id
        result.version = parsed.service.version
        result.service_title = parsed.service.title
        result.layers_found = parsed.layer_count
        result.layers_inserted = len(inserted)
        result.layer_count = layer_count
        result.duration = time.monotonic() - started
        logger.info(
            "Scanned %s: %d layers (%d new), WFS %s",
            target,
            parsed.layer_count,
            len(inserted),
            parsed.service.version,
        )
        return result

    async def scan_all(self, urls: Iterable[str]) -> ScanSummary:
        """Scan many streams with bounded concurrency.

        Args:
            urls: Stream URLs (duplicates are scanned once)

        Returns:
            ScanSummary with one result per unique URL, in input order
        """
        urls = _unique(urls)
        summary = ScanSummary()
        semaphore = asyncio.Semaphore(self.settings.concurrency)

        async def _guarded(url: str) -> StreamScanResult:
            async with semaphore:
                return await self.scan_stream(url)

        logger.info("Scanning %d streams (concurrency %d)", len(urls), self.settings.concurrency)
        results = await asyncio.gather(*(_guarded(url) for url in urls), return_exceptions=True)

        for url, result in zip(urls, results):
            if isinstance(result, Exception):
                logger.error("Unexpected error while scanning %s: %r", url, result)
                result = StreamScanResult(
                    url=url, success=False, error_kind="internal", error=str(result)
                )
            summary.results.append(result)

        summary.finished_at = datetime.now()
        logger.info(
            "Scan finished: %d/%d streams ok (%.1f%%)",
            summary.succeeded,
            summary.total,
            summary.success_rate,
        )
        return summary

    async def probe_layers(
        self,
        stream_url: str,
        limit: Optional[int] = None,
        only_unchecked: bool = False,
    ) -> list[ProbeResult]:
        """Probe the layers of one stream and store queryability.

        Args:
            stream_url: Catalog key of the stream
            limit: Probe at most this many layers
            only_unchecked: Skip layers that were probed before

        Returns:
            One ProbeResult per probed layer

        Raises:
            CatalogError: If the stream is not in the catalog
        """
        stream = self.store.get_stream(stream_url)
        if stream is None:
            raise CatalogError(f"Unknown stream: {stream_url}")

        layers = self.store.select_layers(stream.id)
        if only_unchecked:
            layers = [layer for layer in layers if layer.ist_abfragbar is None]
        if limit is not None:
            layers = layers[:limit]

        results = []
        async with WFSProtocol(
            stream.url,
            client=self.get_client(),
            settings=self.settings,
            quirks=get_quirks(stream.url, self.quirks_registry),
            monitor=self.monitor,
        ) as wfs:
            for layer in layers:
                probe = await wfs.probe_layer(
                    layer.name,
                    version=stream.wfs_version,
                    formats=layer.outputformate or stream.standard_outputformate,
                    inspire=stream.inspire_konform,
                )
                self.store.update_layer(
                    layer.id,
                    ist_abfragbar=probe.queryable,
                    zuletzt_describe_geprueft=probe.checked_at,
                    letzter_fehler=probe.error,
                )
                results.append(probe)
        return results

    async def probe_all(
        self, limit_per_stream: Optional[int] = None, only_unchecked: bool = True
    ) -> dict[str, list[ProbeResult]]:
        """Probe layers of all active streams with bounded concurrency."""
        streams = self.store.select_streams(ist_aktiv=True)
        semaphore = asyncio.Semaphore(self.settings.concurrency)

        async def _guarded(url: str) -> list[ProbeResult]:
            async with semaphore:
                return await self.probe_layers(url, limit_per_stream, only_unchecked)

        results = await asyncio.gather(*(_guarded(s.url) for s in streams), return_exceptions=True)

        probed: dict[str, list[ProbeResult]] = {}
        for stream, result in zip(streams, results):
            if isinstance(result, Exception):
                logger.error("Probing %s failed: %r", stream.url, result)
                continue
            probed[stream.url] = result
        return probed
