"""Three-stage WFS URL validation.

1. URL syntax (http/https scheme and host)
2. Server reachability (HEAD request)
3. XML response (a real GetCapabilities document)

The three flags are reported separately because consumers of the catalog
key off each of them. Only an invalid URL ends validation early; the XML
stage runs even when the HEAD request fails. Stages 2 and 3 use the same download primitive and
capabilities fetcher as the harvester.
"""

import logging
from datetime import datetime
from typing import Any, Optional
from urllib.parse import parse_qsl, urlsplit

import httpx
from pydantic import BaseModel, Field

from wfsharvest.config import HarvestSettings
from wfsharvest.core.cache import TTLCache
from wfsharvest.protocols.fetcher import (
    CapabilitiesFetcher,
    FetchError,
    FetchErrorKind,
    FetchResult,
    build_capabilities_url,
    download,
)
from wfsharvest.protocols.quirks import ProtocolQuirks
from wfsharvest.protocols.quirks_monitor import QuirksMonitor

logger = logging.getLogger("wfsharvest.validator")


class ValidationResult(BaseModel):
    """Flags and notes of a three-stage validation."""

    url: str
    capabilities_url: Optional[str] = None
    url_syntax_valid: bool = False
    server_reachable: bool = False
    xml_response_valid: bool = False
    validation_notes: list[str] = Field(default_factory=list)
    checked_at: datetime = Field(default_factory=datetime.now)
    fetch: Optional[FetchResult] = None

    @property
    def overall_valid(self) -> bool:
        return self.url_syntax_valid and self.server_reachable and self.xml_response_valid

    def notes_text(self) -> str:
        return "; ".join(self.validation_notes)


def check_url_syntax(url: str) -> tuple[bool, list[str]]:
    """Stage 1: syntax check. Returns (valid, notes)."""
    notes: list[str] = []
    try:
        parts = urlsplit((url or "").strip())
    except ValueError as e:
        return False, [f"URL-Syntax-Fehler: {e}"]

    if parts.scheme.lower() not in ("http", "https"):
        return False, ["Protokoll muss HTTP oder HTTPS sein"]
    if not parts.hostname:
        return False, ["Kein gültiger Hostname"]

    params = {key.lower(): value for key, value in parse_qsl(parts.query)}
    if params.get("service", "").upper() != "WFS" or "request" not in params:
        notes.append("service=WFS/request=GetCapabilities fehlen und werden ergänzt")
    notes.append("URL-Syntax ist gültig")
    return True, notes


class URLValidator:
    """Validate WFS URLs in three stages.

    Examples:
        async with URLValidator() as validator:
            result = await validator.validate("https://example.com/wfs")
            print(result.overall_valid, result.validation_notes)
    """

    def __init__(
        self,
        settings: Optional[HarvestSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[TTLCache] = None,
        quirks_registry: Optional[dict[str, ProtocolQuirks]] = None,
        monitor: Optional[QuirksMonitor] = None,
    ):
        self.settings = settings or HarvestSettings()
        self.fetcher = CapabilitiesFetcher(
            settings=self.settings,
            client=client,
            cache=cache,
            quirks_registry=quirks_registry,
            monitor=monitor,
        )

    async def __aenter__(self) -> "URLValidator":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.fetcher.aclose()

    async def check_reachability(self, capabilities_url: str) -> tuple[bool, str]:
        """Stage 2: any HTTP answer means the server is there."""
        try:
            response = await download(
                self.fetcher.get_client(),
                capabilities_url,
                method="HEAD",
                headers={"User-Agent": self.settings.user_agent},
                timeout=self.settings.validation_timeout,
                max_bytes=self.settings.max_response_bytes,
            )
        except FetchError as e:
            if e.kind == FetchErrorKind.TIMEOUT:
                return False, f"Server-Timeout ({self.settings.validation_timeout:g}s)"
            return False, f"Server nicht erreichbar: {e.message}"

        return True, f"Server erreichbar (HTTP {response.status_code})"

    async def validate(self, url: str) -> ValidationResult:
        """Run all three stages for one URL."""
        url = (url or "").strip()
        result = ValidationResult(url=url)

        valid, notes = check_url_syntax(url)
        result.url_syntax_valid = valid
        result.validation_notes.extend(notes)
        if not valid:
            return result

        result.capabilities_url = build_capabilities_url(url)
        reachable, note = await self.check_reachability(result.capabilities_url)
        result.server_reachable = reachable
        result.validation_notes.append(note)
        if not reachable:
            logger.info("HEAD check failed for %s: %s", url, note)

        fetched = await self.fetcher.fetch(url)
        result.fetch = fetched
        result.xml_response_valid = fetched.success
        if fetched.success:
            result.validation_notes.append(
                f"XML-Response ist gültig (WFS {fetched.version or 'Standardversion'})"
            )
        else:
            result.validation_notes.append(f"XML-Response ungültig: {fetched.error}")

        logger.info(
            "Validated %s: syntax=%s reachable=%s xml=%s",
            url,
            result.url_syntax_valid,
            result.server_reachable,
            result.xml_response_valid,
        )
        return result
