"""Unit tests for geoportal link handling."""

import httpx
import pytest
from conftest import BB_WFS_200, stream_response, xml_response

from wfsharvest.protocols.portal import (
    extract_wfs_urls_from_html,
    extract_wfs_urls_from_json,
    is_portal_link,
    resolve_portal_url,
)

PORTAL_URL = "https://www.geoportal.example.de/trefferanzeige?docuuid=abc-123"

PORTAL_PAGE = """<!DOCTYPE html>
<html>
<head><link rel="stylesheet" href="https://www.geoportal.example.de/styles/wfs.css"></head>
<body>
  <a href="https://dienste.example.de/alkis_wfs">Dienst</a>
  <a href="https://dienste.example.de/alkis_wfs?service=WFS&amp;request=GetCapabilities">
    Capabilities
  </a>
</body>
</html>
"""


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestPortalDetection:
    """Test portal link recognition."""

    @pytest.mark.parametrize(
        "url",
        [
            PORTAL_URL,
            "https://registry.gdi-de.org/registry/wfs/123",
            "https://geo.example.de/geonetwork/srv/ger/catalog.search#/metadata/1",
            "https://geo.example.de/csw?request=GetRecordById&fileId=1",
        ],
    )
    def test_portal_links(self, url):
        """Test known portal patterns."""
        assert is_portal_link(url)

    def test_plain_wfs(self):
        """Test service URLs are not portal links."""
        assert not is_portal_link("https://geo.example.de/wfs?service=WFS")
        assert not is_portal_link("")


class TestUrlExtraction:
    """Test WFS URL extraction from pages."""

    def test_html(self):
        """Test complete GetCapabilities URLs rank first, static files are dropped."""
        assert extract_wfs_urls_from_html(PORTAL_PAGE) == [
            "https://dienste.example.de/alkis_wfs?service=WFS&request=GetCapabilities",
            "https://dienste.example.de/alkis_wfs",
        ]

    def test_json(self):
        """Test nested JSON values are searched."""
        data = {
            "result": {
                "links": [
                    "https://dienste.example.de/doc.html",
                    "https://dienste.example.de/ows?SERVICE=WFS&REQUEST=GetCapabilities",
                ]
            }
        }

        assert extract_wfs_urls_from_json(data) == [
            "https://dienste.example.de/ows?SERVICE=WFS&REQUEST=GetCapabilities"
        ]

    def test_json_text_with_escaped_slashes(self):
        """Test JSON text is parsed before searching."""
        text = '{"url": "https:\\/\\/dienste.example.de\\/wfs_flur"}'

        assert extract_wfs_urls_from_json(text) == ["https://dienste.example.de/wfs_flur"]

    def test_invalid_json_falls_back_to_text(self):
        """Test broken JSON is searched as text."""
        assert extract_wfs_urls_from_json("not json https://a.example/wfs") == [
            "https://a.example/wfs"
        ]


class TestResolvePortalUrl:
    """Test following portal links."""

    @pytest.mark.asyncio
    async def test_html_page(self):
        """Test the best candidate is chosen."""

        def handler(request):
            return stream_response(
                200, PORTAL_PAGE, {"Content-Type": "text/html; charset=utf-8"}
            )

        async with mock_client(handler) as client:
            resolution = await resolve_portal_url(client, PORTAL_URL)

        assert resolution.is_portal
        assert resolution.changed
        assert resolution.resolved_url == (
            "https://dienste.example.de/alkis_wfs?service=WFS&request=GetCapabilities"
        )
        assert len(resolution.candidates) == 2

    @pytest.mark.asyncio
    async def test_capabilities_resolve_to_themselves(self):
        """Test a URL that already is a WFS is kept."""

        def handler(request):
            return xml_response(BB_WFS_200)

        async with mock_client(handler) as client:
            resolution = await resolve_portal_url(client, PORTAL_URL)

        assert resolution.resolved_url == PORTAL_URL
        assert not resolution.changed

    @pytest.mark.asyncio
    async def test_page_without_wfs(self):
        """Test pages without candidates."""

        def handler(request):
            return stream_response(
                200, "<html><body>Nichts</body></html>", {"Content-Type": "text/html"}
            )

        async with mock_client(handler) as client:
            resolution = await resolve_portal_url(client, PORTAL_URL)

        assert resolution.resolved_url is None
        assert resolution.error == "Keine WFS-URLs gefunden"

    @pytest.mark.asyncio
    async def test_unknown_content_type(self):
        """Test binary answers are not searched."""

        def handler(request):
            return stream_response(200, b"%PDF-1.4", {"Content-Type": "application/pdf"})

        async with mock_client(handler) as client:
            resolution = await resolve_portal_url(client, PORTAL_URL)

        assert not resolution.changed
        assert resolution.error.startswith("Unbekannter Content-Type")

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Test network failures are reported, not raised."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with mock_client(handler) as client:
            resolution = await resolve_portal_url(client, PORTAL_URL)

        assert resolution.is_portal
        assert resolution.resolved_url is None
        assert resolution.error.startswith("Netzwerkfehler")
