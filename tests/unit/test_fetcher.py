"""Unit tests for GetCapabilities fetching."""

import gzip
import zlib

import httpx
import pytest
from conftest import BB_WFS_200, stream_response, xml_response

from wfsharvest.config import HarvestSettings
from wfsharvest.core.cache import TTLCache
from wfsharvest.protocols.fetcher import (
    CapabilitiesFetcher,
    FetchError,
    FetchErrorKind,
    build_capabilities_url,
    decode_body,
    download,
    has_capabilities_marker,
    is_valid_url,
    looks_like_xml,
)
from wfsharvest.protocols.quirks import ProtocolQuirks
from wfsharvest.protocols.quirks_monitor import QuirksMonitor

BASE_URL = "https://geo.example.de/wfs"


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestBuildCapabilitiesUrl:
    """Test GetCapabilities URL construction."""

    def test_plain_url(self):
        """Test parameters are appended."""
        assert build_capabilities_url(BASE_URL, "2.0.0") == (
            "https://geo.example.de/wfs?service=WFS&request=GetCapabilities&version=2.0.0"
        )

    def test_no_version(self):
        """Test None leaves the version out."""
        assert build_capabilities_url(BASE_URL) == (
            "https://geo.example.de/wfs?service=WFS&request=GetCapabilities"
        )

    def test_existing_parameters(self):
        """Test protocol parameters are replaced and others kept."""
        url = build_capabilities_url(
            "https://geo.example.de/cgi?map=/data/alkis.map&SERVICE=WMS&Request=GetMap#top",
            "1.1.0",
        )

        assert url == (
            "https://geo.example.de/cgi?map=%2Fdata%2Falkis.map"
            "&service=WFS&request=GetCapabilities&version=1.1.0"
        )

    def test_extra_params(self):
        """Test quirk parameters override existing ones."""
        url = build_capabilities_url(BASE_URL + "?token=a", "2.0.0", {"token": "b"})

        assert "token=b" in url
        assert "token=a" not in url


class TestHelpers:
    """Test small fetcher helpers."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://example.com/wfs", True),
            ("http://example.com", True),
            ("ftp://example.com/wfs", False),
            ("example.com/wfs", False),
            ("https://", False),
            ("", False),
        ],
    )
    def test_is_valid_url(self, url, expected):
        """Test only absolute http(s) URLs are accepted."""
        assert is_valid_url(url) is expected

    def test_decode_body_declared_encoding(self):
        """Test the XML declaration is honored."""
        body = "<?xml version='1.0' encoding='ISO-8859-1'?><a>Gewässer</a>".encode("latin-1")

        assert "Gewässer" in decode_body(body)

    def test_decode_body_header_wins(self):
        """Test the Content-Type charset is tried first."""
        body = "<a>Flurstück</a>".encode("latin-1")

        assert decode_body(body, "text/xml; charset=ISO-8859-1") == "<a>Flurstück</a>"

    def test_decode_body_fallback(self):
        """Test undecodable bytes do not raise."""
        assert decode_body(b"<a>\xff</a>").startswith("<a>")

    def test_looks_like_xml(self):
        """Test XML detection by header or content."""
        assert looks_like_xml("application/xml", "")
        assert looks_like_xml("application/octet-stream", "\ufeff <WFS_Capabilities/>")
        assert not looks_like_xml("application/json", '{"a": 1}')

    def test_capabilities_marker(self):
        """Test the root marker with and without prefix."""
        assert has_capabilities_marker("<wfs:WFS_Capabilities version='2.0.0'>")
        assert has_capabilities_marker("<WFS_Capabilities>")
        assert not has_capabilities_marker("<WMS_Capabilities>")


class TestDownload:
    """Test the streaming download primitive."""

    @pytest.mark.asyncio
    async def test_gzip_body(self):
        """Test gzip bodies are decompressed."""

        def handler(request):
            return stream_response(
                200, gzip.compress(b"<a>gzip</a>"), {"Content-Encoding": "gzip"}
            )

        async with mock_client(handler) as client:
            response = await download(client, BASE_URL)

        assert response.body == b"<a>gzip</a>"
        assert response.raw_bytes < 100

    @pytest.mark.asyncio
    async def test_gzip_without_header(self):
        """Test gzip is detected from the magic bytes."""

        def handler(request):
            return stream_response(200, gzip.compress(b"<a>magic</a>"))

        async with mock_client(handler) as client:
            response = await download(client, BASE_URL)

        assert response.body == b"<a>magic</a>"

    @pytest.mark.asyncio
    async def test_raw_deflate(self):
        """Test deflate without zlib header."""
        compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
        payload = compressor.compress(b"<a>deflate</a>") + compressor.flush()

        def handler(request):
            return stream_response(200, payload, {"Content-Encoding": "deflate"})

        async with mock_client(handler) as client:
            response = await download(client, BASE_URL)

        assert response.body == b"<a>deflate</a>"

    @pytest.mark.asyncio
    async def test_content_length_ceiling(self):
        """Test oversized bodies are rejected."""

        def handler(request):
            return stream_response(200, b"x" * 2000, {"Content-Length": "2000"})

        async with mock_client(handler) as client:
            with pytest.raises(FetchError) as exc_info:
                await download(client, BASE_URL, max_bytes=1000)

        assert exc_info.value.kind is FetchErrorKind.TOO_LARGE

    @pytest.mark.asyncio
    async def test_decompressed_ceiling(self):
        """Test gzip bombs are stopped at the ceiling."""
        payload = gzip.compress(b"<a>" + b" " * 100_000 + b"</a>")

        def handler(request):
            return stream_response(200, payload, {"Content-Encoding": "gzip"})

        async with mock_client(handler) as client:
            with pytest.raises(FetchError) as exc_info:
                await download(client, BASE_URL, max_bytes=1000)

        assert exc_info.value.kind is FetchErrorKind.TOO_LARGE

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test transport timeouts map to TIMEOUT."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(FetchError) as exc_info:
                await download(client, BASE_URL, timeout=1)

        assert exc_info.value.kind is FetchErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Test connection errors map to NETWORK."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(FetchError) as exc_info:
                await download(client, BASE_URL)

        assert exc_info.value.kind is FetchErrorKind.NETWORK


class TestCapabilitiesFetcher:
    """Test the version fallback loop."""

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        """Test invalid URLs fail without a request."""
        async with CapabilitiesFetcher() as fetcher:
            result = await fetcher.fetch("not a url")

        assert result.success is False
        assert result.error_kind is FetchErrorKind.INVALID_URL
        assert result.attempts == []

    @pytest.mark.asyncio
    async def test_first_version_succeeds(self):
        """Test WFS 2.0.0 is asked first."""
        requested = []

        def handler(request):
            requested.append(request.url.params.get("version"))
            return xml_response(BB_WFS_200)

        async with mock_client(handler) as client:
            result = await CapabilitiesFetcher(client=client).fetch(BASE_URL)

        assert result.success
        assert result.version == "2.0.0"
        assert requested == ["2.0.0"]
        assert "cp:CadastralParcel" in result.text
        assert result.size == len(BB_WFS_200.encode("utf-8"))

    @pytest.mark.asyncio
    async def test_fallback_after_http_error(self):
        """Test a 404 for 2.0.0 falls back to 1.1.0."""

        def handler(request):
            if request.url.params.get("version") == "2.0.0":
                return xml_response("<error/>", status_code=404)
            return xml_response(BB_WFS_200)

        async with mock_client(handler) as client:
            result = await CapabilitiesFetcher(client=client).fetch(BASE_URL)

        assert result.success
        assert result.version == "1.1.0"
        assert [a.version for a in result.attempts] == ["2.0.0", "1.1.0"]
        assert result.attempts[0].error_kind is FetchErrorKind.HTTP_STATUS
        assert result.attempts[0].status_code == 404

    @pytest.mark.asyncio
    async def test_gzip_document(self):
        """Test compressed capabilities are decoded."""

        def handler(request):
            return stream_response(
                200,
                gzip.compress(BB_WFS_200.encode("utf-8")),
                {"Content-Type": "text/xml", "Content-Encoding": "gzip"},
            )

        async with mock_client(handler) as client:
            result = await CapabilitiesFetcher(client=client).fetch(BASE_URL)

        assert result.success
        assert "Flurstücke" in result.text

    @pytest.mark.asyncio
    async def test_not_wfs(self):
        """Test every version is tried when the answer is not a WFS document."""

        def handler(request):
            return xml_response("<WMS_Capabilities/>")

        async with mock_client(handler) as client:
            result = await CapabilitiesFetcher(client=client).fetch(BASE_URL)

        assert result.success is False
        assert result.error_kind is FetchErrorKind.NOT_WFS
        assert [a.version for a in result.attempts] == ["2.0.0", "1.1.0", "1.0.0", None]

    @pytest.mark.asyncio
    async def test_not_xml(self):
        """Test JSON answers are rejected."""

        def handler(request):
            return stream_response(200, '{"error": "no"}', {"Content-Type": "application/json"})

        async with mock_client(handler) as client:
            result = await CapabilitiesFetcher(client=client).fetch(BASE_URL)

        assert result.error_kind is FetchErrorKind.NOT_XML

    @pytest.mark.asyncio
    async def test_too_large(self):
        """Test the size ceiling from the settings."""
        settings = HarvestSettings(max_response_bytes=1000)

        def handler(request):
            return xml_response(BB_WFS_200)

        async with mock_client(handler) as client:
            result = await CapabilitiesFetcher(settings=settings, client=client).fetch(BASE_URL)

        assert result.success is False
        assert result.error_kind is FetchErrorKind.TOO_LARGE

    @pytest.mark.asyncio
    async def test_fallback_after_timeout(self):
        """Test a timeout for 2.0.0 falls back to 1.1.0."""

        def handler(request):
            if request.url.params.get("version") == "2.0.0":
                raise httpx.ReadTimeout("timed out", request=request)
            return xml_response(BB_WFS_200)

        async with mock_client(handler) as client:
            result = await CapabilitiesFetcher(client=client).fetch(BASE_URL)

        assert result.success
        assert result.version == "1.1.0"
        assert [a.version for a in result.attempts] == ["2.0.0", "1.1.0"]
        assert result.attempts[0].error_kind is FetchErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_fallback_after_network_error(self):
        """Test connection errors try every version before failing."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as client:
            result = await CapabilitiesFetcher(client=client).fetch(BASE_URL)

        assert result.success is False
        assert result.error_kind is FetchErrorKind.NETWORK
        assert [a.version for a in result.attempts] == ["2.0.0", "1.1.0", "1.0.0", None]

    @pytest.mark.asyncio
    async def test_cache_hit(self):
        """Test a cached document is returned without a request."""
        calls = []

        def handler(request):
            calls.append(request.url)
            return xml_response(BB_WFS_200)

        async with mock_client(handler) as client:
            fetcher = CapabilitiesFetcher(client=client, cache=TTLCache(ttl=60))
            first = await fetcher.fetch(BASE_URL)
            second = await fetcher.fetch(BASE_URL + "  ")

        assert len(calls) == 1
        assert first.from_cache is False
        assert second.from_cache is True
        assert second.text == first.text

    @pytest.mark.asyncio
    async def test_quirks_applied(self):
        """Test forced version, headers and monitor recording."""
        registry = {
            "geo.example.de": ProtocolQuirks(
                force_version="1.1.0",
                skip_version_fallback=True,
                custom_headers={"X-Token": "abc"},
            )
        }
        monitor = QuirksMonitor()
        seen = []

        def handler(request):
            seen.append((request.url.params.get("version"), request.headers.get("X-Token")))
            return xml_response("<error/>", status_code=500)

        async with mock_client(handler) as client:
            fetcher = CapabilitiesFetcher(client=client, quirks_registry=registry, monitor=monitor)
            result = await fetcher.fetch(BASE_URL)

        assert seen == [("1.1.0", "abc")]
        assert result.quirks == ["version=1.1.0", "no_fallback", "headers(1)"]
        assert set(monitor.get_statistics()["geo.example.de"]) == {
            "version",
            "no_fallback",
            "headers",
        }
