"""GetCapabilities fetching.

The fetcher builds GetCapabilities URLs, tries several WFS versions in
order and hands back the first response that really is a capabilities
document. Every failure is reported as a ``FetchResult`` with a distinct
``FetchErrorKind``; nothing is raised to the caller.

``download`` is the shared HTTP primitive: it streams the body, decompresses
gzip/deflate itself and aborts as soon as the size ceiling is exceeded.
The URL validator and the feature probe use it as well.
"""

import asyncio
import logging
import re
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

import httpx
from pydantic import BaseModel, Field

from wfsharvest.config import HarvestSettings
from wfsharvest.core.cache import TTLCache
from wfsharvest.protocols.quirks import ProtocolQuirks, get_quirks, matched_host
from wfsharvest.protocols.quirks_monitor import QuirksMonitor

logger = logging.getLogger("wfsharvest.fetcher")

MB = 1024 * 1024
DEFAULT_MAX_BYTES = 15 * MB

_GZIP_MAGIC = b"\x1f\x8b"
_CAPABILITIES_PARAMS = {"service", "request", "version", "acceptversions"}
_CHARSET = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)
_XML_DECLARED_ENCODING = re.compile(rb"<\?xml[^>]*encoding\s*=\s*[\"']([\w.:-]+)[\"']")
_CAPABILITIES_MARKER = re.compile(r"<(?:[\w.-]+:)?WFS_Capabilities[\s>/]")


class FetchErrorKind(str, Enum):
    """Why a request did not produce a usable document."""

    INVALID_URL = "invalid_url"
    NETWORK = "network"
    TIMEOUT = "timeout"
    TOO_LARGE = "too_large"
    HTTP_STATUS = "http_status"
    NOT_XML = "not_xml"
    NOT_WFS = "not_wfs"


# Failures that will not go away by asking for another version
STOP_KINDS = frozenset({FetchErrorKind.INVALID_URL})


class FetchError(Exception):
    """Raised by ``download``; converted into a FetchResult by callers."""

    def __init__(self, kind: FetchErrorKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code


@dataclass
class RawResponse:
    """A fully downloaded, decompressed HTTP response."""

    url: str
    status_code: int
    headers: httpx.Headers
    body: bytes
    raw_bytes: int = 0

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")

    @property
    def text(self) -> str:
        return decode_body(self.body, self.content_type)


class _Decompressor:
    """Incremental gzip/deflate decoding with an output ceiling."""

    def __init__(self, encoding: Optional[str], max_bytes: int):
        self.encoding = (encoding or "identity").split(",")[-1].strip().lower()
        self.max_bytes = max_bytes
        self.total = 0
        self._obj: Optional[Any] = None
        self._decided = False
        self._raw_fallback_used = False
        self._head = bytearray()

    def _decide(self, first_chunk: bytes) -> None:
        self._decided = True
        if self.encoding in ("gzip", "x-gzip") or first_chunk.startswith(_GZIP_MAGIC):
            self._obj = zlib.decompressobj(16 + zlib.MAX_WBITS)
        elif self.encoding == "deflate":
            # zlib-wrapped deflate; raw deflate is handled on the first error
            self._obj = zlib.decompressobj(32 + zlib.MAX_WBITS)

    def _inflate(self, data: bytes) -> bytes:
        out = bytearray()
        while data:
            piece = self._obj.decompress(data, self.max_bytes - self.total + 1)
            out += piece
            self.total += len(piece)
            if self.total > self.max_bytes:
                raise FetchError(
                    FetchErrorKind.TOO_LARGE,
                    f"Entpackte Antwort überschreitet {self.max_bytes} Bytes",
                )
            data = self._obj.unconsumed_tail
        return bytes(out)

    def feed(self, chunk: bytes) -> bytes:
        if not chunk:
            return b""
        if not self._decided:
            self._decide(chunk)
        if self._obj is None:
            self.total += len(chunk)
            return chunk

        if self.total == 0:
            self._head += chunk
        try:
            return self._inflate(chunk)
        except zlib.error as e:
            if self.encoding == "deflate" and not self._raw_fallback_used and self.total == 0:
                self._raw_fallback_used = True
                self._obj = zlib.decompressobj(-zlib.MAX_WBITS)
                try:
                    return self._inflate(bytes(self._head))
                except zlib.error as raw_error:
                    raise FetchError(
                        FetchErrorKind.NOT_XML, f"Dekomprimierung fehlgeschlagen: {raw_error}"
                    ) from raw_error
            raise FetchError(FetchErrorKind.NOT_XML, f"Dekomprimierung fehlgeschlagen: {e}") from e

    def flush(self) -> bytes:
        if self._obj is None:
            return b""
        try:
            rest = self._obj.flush()
        except zlib.error as e:
            raise FetchError(FetchErrorKind.NOT_XML, f"Dekomprimierung fehlgeschlagen: {e}") from e
        self.total += len(rest)
        if self.total > self.max_bytes:
            raise FetchError(
                FetchErrorKind.TOO_LARGE, f"Entpackte Antwort überschreitet {self.max_bytes} Bytes"
            )
        return rest


async def download(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    params: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
    timeout: float = 15.0,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> RawResponse:
    """Download a response body with size ceiling and total timeout.

    Args:
        client: HTTP client
        url: Request URL
        method: HTTP method ("GET" or "HEAD")
        params: Extra query parameters
        headers: Extra request headers
        timeout: Deadline for the whole request including the body (seconds)
        max_bytes: Ceiling for raw and decompressed body size

    Returns:
        RawResponse with the decompressed body (any status code)

    Raises:
        FetchError: On invalid URL, network failure, timeout or oversized body
    """

    async def _run() -> RawResponse:
        async with client.stream(
            method, url, params=params, headers=headers, timeout=timeout
        ) as response:
            length = response.headers.get("Content-Length", "")
            if length.isdigit() and int(length) > max_bytes:
                raise FetchError(
                    FetchErrorKind.TOO_LARGE,
                    f"Antwort zu groß ({int(length)} Bytes, Limit {max_bytes})",
                    response.status_code,
                )

            decoder = _Decompressor(response.headers.get("Content-Encoding"), max_bytes)
            body = bytearray()
            raw_bytes = 0
            async for chunk in response.aiter_raw():
                raw_bytes += len(chunk)
                if raw_bytes > max_bytes:
                    raise FetchError(
                        FetchErrorKind.TOO_LARGE,
                        f"Antwort überschreitet {max_bytes} Bytes",
                        response.status_code,
                    )
                body += decoder.feed(chunk)
            body += decoder.flush()

            return RawResponse(
                url=str(response.url),
                status_code=response.status_code,
                headers=response.headers,
                body=bytes(body),
                raw_bytes=raw_bytes,
            )

    try:
        return await asyncio.wait_for(_run(), timeout)
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        raise FetchError(FetchErrorKind.TIMEOUT, f"Timeout nach {timeout:g}s") from e
    except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
        raise FetchError(FetchErrorKind.INVALID_URL, f"Ungültige URL: {e}") from e
    except httpx.HTTPError as e:
        raise FetchError(FetchErrorKind.NETWORK, f"Netzwerkfehler: {e}") from e


def decode_body(body: bytes, content_type: Optional[str] = None) -> str:
    """Decode a body: Content-Type charset, then XML declaration, then UTF-8."""
    candidates = []
    match = _CHARSET.search(content_type or "")
    if match:
        candidates.append(match.group(1))
    match = _XML_DECLARED_ENCODING.search(body[:200])
    if match:
        candidates.append(match.group(1).decode("ascii", errors="ignore"))

    for encoding in candidates:
        try:
            return body.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue
    return body.decode("utf-8", errors="replace")


def is_valid_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    try:
        parts = urlsplit((url or "").strip())
    except ValueError:
        return False
    return parts.scheme.lower() in ("http", "https") and bool(parts.hostname)


def build_capabilities_url(
    base_url: str,
    version: Optional[str] = None,
    extra_params: Optional[dict[str, str]] = None,
) -> str:
    """Build a GetCapabilities URL from any service URL.

    Existing service/request/version parameters are dropped (in any case),
    all other parameters are kept.

    Examples:
        >>> build_capabilities_url("https://example.com/wfs?REQUEST=GetMap&map=x", "2.0.0")
        'https://example.com/wfs?map=x&service=WFS&request=GetCapabilities&version=2.0.0'
    """
    parts = urlsplit(base_url.strip())
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key.lower() not in _CAPABILITIES_PARAMS
    ]
    for key, value in (extra_params or {}).items():
        query = [(k, v) for k, v in query if k != key] + [(key, value)]
    query += [("service", "WFS"), ("request", "GetCapabilities")]
    if version:
        query.append(("version", version))
    return parts._replace(query=urlencode(query), fragment="").geturl()


def looks_like_xml(content_type: str, text: str) -> bool:
    content_type = (content_type or "").lower()
    if "xml" in content_type or "text" in content_type:
        return True
    return text.lstrip("\ufeff \t\r\n").startswith("<")


def has_capabilities_marker(text: str) -> bool:
    return bool(_CAPABILITIES_MARKER.search(text))


class FetchAttempt(BaseModel):
    """One request of the version fallback loop."""

    version: Optional[str] = None
    url: str
    status_code: Optional[int] = None
    error_kind: Optional[FetchErrorKind] = None
    error: Optional[str] = None


class FetchResult(BaseModel):
    """Tagged outcome of a GetCapabilities fetch."""

    success: bool
    base_url: str
    url: Optional[str] = None
    version: Optional[str] = None
    status_code: Optional[int] = None
    content_type: Optional[str] = None
    text: Optional[str] = None
    size: int = 0
    error_kind: Optional[FetchErrorKind] = None
    error: Optional[str] = None
    attempts: list[FetchAttempt] = Field(default_factory=list)
    quirks: list[str] = Field(default_factory=list)
    from_cache: bool = False
    fetched_at: datetime = Field(default_factory=datetime.now)


@dataclass
class CapabilitiesFetcher:
    """Fetch GetCapabilities documents with version fallback.

    Examples:
        async with CapabilitiesFetcher() as fetcher:
            result = await fetcher.fetch("https://example.com/wfs")
            if result.success:
                print(result.version, result.size)
    """

    settings: HarvestSettings = field(default_factory=HarvestSettings)
    client: Optional[httpx.AsyncClient] = None
    cache: Optional[TTLCache] = None
    quirks_registry: Optional[dict[str, ProtocolQuirks]] = None
    monitor: Optional[QuirksMonitor] = None
    quirks: Optional[ProtocolQuirks] = None

    def __post_init__(self):
        self._owns_client = self.client is None

    def get_client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient(follow_redirects=True)
            self._owns_client = True
        return self.client

    async def aclose(self) -> None:
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def __aenter__(self) -> "CapabilitiesFetcher":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    def quirks_for(self, base_url: str) -> ProtocolQuirks:
        """Quirks for a URL; usage is recorded on the monitor."""
        quirks = self.quirks or get_quirks(base_url, self.quirks_registry)
        labels = quirks.active_quirks()
        if labels and self.monitor is not None:
            self.monitor.record_labels(matched_host(base_url, self.quirks_registry) or "", labels)
        return quirks

    def request_headers(self, quirks: ProtocolQuirks) -> dict[str, str]:
        return quirks.apply_to_headers(
            {"User-Agent": self.settings.user_agent, "Accept-Encoding": "gzip, deflate"}
        )

    async def fetch(self, base_url: str) -> FetchResult:
        """Fetch the capabilities document of one service.

        Args:
            base_url: Service URL, with or without query string

        Returns:
            FetchResult; on success ``text`` holds the document and
            ``version`` the version parameter that worked (None = default)
        """
        base_url = (base_url or "").strip()
        if not is_valid_url(base_url):
            return FetchResult(
                success=False,
                base_url=base_url,
                error_kind=FetchErrorKind.INVALID_URL,
                error=f"Ungültige URL: '{base_url}'",
            )

        if self.cache is not None:
            cached = self.cache.get(base_url)
            if cached is not None:
                logger.debug("Capabilities cache hit: %s", base_url)
                return cached.model_copy(update={"from_cache": True})

        quirks = self.quirks_for(base_url)
        versions = quirks.order_versions(self.settings.capabilities_versions)
        headers = self.request_headers(quirks)
        timeout = quirks.get_timeout(self.settings.capabilities_timeout)
        client = self.get_client()
        attempts: list[FetchAttempt] = []

        for version in versions:
            url = build_capabilities_url(
                quirks.apply_to_url(base_url), version, quirks.apply_to_params({})
            )
            logger.debug("GetCapabilities (v%s): %s", version or "default", url)
            attempt = FetchAttempt(version=version, url=url)
            attempts.append(attempt)

            try:
                response = await download(
                    client,
                    url,
                    headers=headers,
                    timeout=timeout,
                    max_bytes=self.settings.max_response_bytes,
                )
            except FetchError as e:
                attempt.error_kind, attempt.error = e.kind, e.message
                attempt.status_code = e.status_code
                logger.debug("Attempt failed (%s): %s", e.kind.value, e.message)
                if e.kind in STOP_KINDS:
                    break
                continue

            attempt.status_code = response.status_code
            if response.status_code != 200:
                attempt.error_kind = FetchErrorKind.HTTP_STATUS
                attempt.error = f"HTTP {response.status_code}"
                continue

            text = response.text
            if not looks_like_xml(response.content_type, text):
                attempt.error_kind = FetchErrorKind.NOT_XML
                attempt.error = f"Keine XML-Antwort (Content-Type '{response.content_type}')"
                continue
            if not has_capabilities_marker(text):
                attempt.error_kind = FetchErrorKind.NOT_WFS
                attempt.error = (
                    f"Antwort für v{version or 'default'} ist kein WFS-Capabilities-Dokument"
                )
                continue

            result = FetchResult(
                success=True,
                base_url=base_url,
                url=url,
                version=version,
                status_code=response.status_code,
                content_type=response.content_type,
                text=text,
                size=len(response.body),
                attempts=attempts,
                quirks=quirks.active_quirks(),
            )
            logger.info(
                "Fetched capabilities (v%s, %d bytes): %s",
                version or "default",
                result.size,
                base_url,
            )
            if self.cache is not None:
                self.cache.set(base_url, result)
            return result

        last = attempts[-1] if attempts else None
        error = last.error if last and last.error else "Unbekannter Fehler nach allen Versionen"
        logger.warning("Capabilities fetch failed for %s: %s", base_url, error)
        return FetchResult(
            success=False,
            base_url=base_url,
            status_code=last.status_code if last else None,
            error_kind=last.error_kind if last else None,
            error=error,
            attempts=attempts,
            quirks=quirks.active_quirks(),
        )
