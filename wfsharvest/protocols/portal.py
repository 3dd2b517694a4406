"""Geoportal link handling.

Stream lists often contain links to geoportal or metadata catalogue pages
instead of the WFS endpoint itself. These helpers recognise such links and
dig the actual WFS URLs out of the HTML or JSON they return.
"""

import html
import json
import logging
import re
from typing import Any, Optional, Union

import httpx
from pydantic import BaseModel, Field

from wfsharvest.protocols.fetcher import (
    DEFAULT_MAX_BYTES,
    FetchError,
    download,
    has_capabilities_marker,
    is_valid_url,
)

logger = logging.getLogger("wfsharvest.portal")

PORTAL_PATTERNS = (
    re.compile(r"/registry/wfs/", re.IGNORECASE),
    re.compile(r"/spatial-objects/", re.IGNORECASE),
    re.compile(r"trefferanzeige", re.IGNORECASE),
    re.compile(r"catalog\.search", re.IGNORECASE),
    re.compile(r"/geonetwork/", re.IGNORECASE),
    re.compile(r"[?&]fileid=", re.IGNORECASE),
    re.compile(r"/gs-json/", re.IGNORECASE),
    re.compile(r"[?&]docuuid=", re.IGNORECASE),
)

WFS_URL_PATTERNS = (
    re.compile(r"https?://[^\"'\s<>]+service=WFS[^\"'\s<>]*", re.IGNORECASE),
    re.compile(r"https?://[^\"'\s<>]+GetCapabilities[^\"'\s<>]*", re.IGNORECASE),
    re.compile(r"https?://[^\"'\s<>]+wfs[^\"'\s<>]*", re.IGNORECASE),
)

_STATIC_SUFFIXES = (".css", ".js", ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".pdf")
_TRAILING = ".,;:)]}\\"


def is_portal_link(url: str) -> bool:
    """True for URLs that look like portal or catalogue pages."""
    return any(pattern.search(url or "") for pattern in PORTAL_PATTERNS)


def _clean(url: str) -> Optional[str]:
    url = html.unescape(url).replace("\\/", "/").strip().rstrip(_TRAILING)
    path = url.split("?", 1)[0].lower()
    if path.endswith(_STATIC_SUFFIXES) or not is_valid_url(url):
        return None
    return url


def _rank(url: str) -> int:
    lowered = url.lower()
    if "service=wfs" in lowered and "getcapabilities" in lowered:
        return 0
    if "service=wfs" in lowered or "getcapabilities" in lowered:
        return 1
    return 2


def _unique_ranked(urls: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for url in urls:
        cleaned = _clean(url)
        if cleaned and cleaned not in seen:
            seen[cleaned] = None
    return sorted(seen, key=_rank)


def extract_wfs_urls_from_html(content: str) -> list[str]:
    """WFS-looking URLs in an HTML page, best candidates first."""
    found = []
    for pattern in WFS_URL_PATTERNS:
        found.extend(pattern.findall(content or ""))
    return _unique_ranked(found)


def _walk_strings(value: Any):
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _walk_strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _walk_strings(item)


def extract_wfs_urls_from_json(data: Union[str, dict, list]) -> list[str]:
    """WFS-looking URLs anywhere in a JSON document (text or parsed)."""
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            return extract_wfs_urls_from_html(data)

    found = []
    for value in _walk_strings(data):
        for pattern in WFS_URL_PATTERNS:
            found.extend(pattern.findall(value))
    return _unique_ranked(found)


class PortalResolution(BaseModel):
    """Outcome of resolving a possible portal link."""

    original_url: str
    is_portal: bool = False
    resolved_url: Optional[str] = None
    candidates: list[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.resolved_url is not None and self.resolved_url != self.original_url


async def resolve_portal_url(
    client: httpx.AsyncClient,
    url: str,
    timeout: float = 15.0,
    max_bytes: int = DEFAULT_MAX_BYTES,
    headers: Optional[dict[str, str]] = None,
) -> PortalResolution:
    """Follow a portal link to the WFS endpoint it describes.

    URLs that already answer with a capabilities document resolve to
    themselves. HTML and JSON pages are searched for WFS URLs.

    Args:
        client: HTTP client
        url: Portal or WFS URL
        timeout: Request timeout (seconds)
        max_bytes: Size ceiling for the page
        headers: Extra request headers

    Returns:
        PortalResolution (never raises for network problems)
    """
    try:
        response = await download(
            client, url, headers=headers, timeout=timeout, max_bytes=max_bytes
        )
    except FetchError as e:
        return PortalResolution(original_url=url, is_portal=is_portal_link(url), error=e.message)

    content_type = response.content_type.lower()
    text = response.text
    if has_capabilities_marker(text):
        return PortalResolution(original_url=url, resolved_url=url)

    if "json" in content_type:
        candidates = extract_wfs_urls_from_json(text)
    elif "html" in content_type or text.lstrip().lower().startswith(("<!doctype html", "<html")):
        candidates = extract_wfs_urls_from_html(text)
    else:
        return PortalResolution(
            original_url=url,
            is_portal=is_portal_link(url),
            error=f"Unbekannter Content-Type '{response.content_type}'",
        )

    candidates = [candidate for candidate in candidates if candidate != url]
    if not candidates:
        return PortalResolution(original_url=url, is_portal=True, error="Keine WFS-URLs gefunden")

    logger.info("Portal %s -> %s (%d candidates)", url, candidates[0], len(candidates))
    return PortalResolution(
        original_url=url, is_portal=True, resolved_url=candidates[0], candidates=candidates
    )
