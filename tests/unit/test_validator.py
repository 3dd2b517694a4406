"""Unit tests for three-stage URL validation."""

import httpx
import pytest
from conftest import BB_WFS_200, stream_response, xml_response

from wfsharvest.config import HarvestSettings
from wfsharvest.protocols.validator import URLValidator, check_url_syntax

BASE_URL = "https://geo.example.de/wfs"


def recording_client(body: str, head_status=200, calls=None) -> httpx.AsyncClient:
    def handler(request):
        if calls is not None:
            calls.append(request.method)
        if request.method == "HEAD":
            if isinstance(head_status, Exception):
                raise head_status
            return stream_response(head_status)
        return xml_response(body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestUrlSyntax:
    """Test stage 1."""

    def test_valid_without_params(self):
        """Test missing protocol parameters are noted, not rejected."""
        valid, notes = check_url_syntax(BASE_URL)

        assert valid
        assert notes == [
            "service=WFS/request=GetCapabilities fehlen und werden ergänzt",
            "URL-Syntax ist gültig",
        ]

    def test_valid_with_params(self):
        """Test complete GetCapabilities URLs."""
        valid, notes = check_url_syntax(BASE_URL + "?SERVICE=wfs&REQUEST=GetCapabilities")

        assert valid
        assert notes == ["URL-Syntax ist gültig"]

    def test_wrong_scheme(self):
        """Test non-HTTP schemes."""
        assert check_url_syntax("ftp://geo.example.de/wfs") == (
            False,
            ["Protokoll muss HTTP oder HTTPS sein"],
        )

    def test_missing_host(self):
        """Test URLs without host."""
        assert check_url_syntax("https:///wfs") == (False, ["Kein gültiger Hostname"])


class TestURLValidator:
    """Test the full validation pipeline."""

    @pytest.mark.asyncio
    async def test_all_stages_pass(self):
        """Test a healthy WFS endpoint."""
        calls = []
        async with recording_client(BB_WFS_200, calls=calls) as client:
            result = await URLValidator(client=client).validate(BASE_URL)

        assert result.overall_valid
        assert calls == ["HEAD", "GET"]
        assert result.capabilities_url.endswith("service=WFS&request=GetCapabilities")
        assert result.fetch.version == "2.0.0"
        assert result.validation_notes[-1] == "XML-Response ist gültig (WFS 2.0.0)"

    @pytest.mark.asyncio
    async def test_invalid_syntax_stops(self):
        """Test no request is made for invalid URLs."""
        calls = []
        async with recording_client(BB_WFS_200, calls=calls) as client:
            result = await URLValidator(client=client).validate("ftp://x")

        assert calls == []
        assert not result.url_syntax_valid
        assert not result.server_reachable
        assert not result.xml_response_valid

    @pytest.mark.asyncio
    async def test_head_server_error_is_reachable(self):
        """Test a 5xx answer to HEAD still runs the XML stage."""
        calls = []
        async with recording_client(BB_WFS_200, head_status=501, calls=calls) as client:
            result = await URLValidator(client=client).validate(BASE_URL)

        assert calls == ["HEAD", "GET"]
        assert result.server_reachable
        assert result.xml_response_valid
        assert result.overall_valid
        assert "Server erreichbar (HTTP 501)" in result.validation_notes

    @pytest.mark.asyncio
    async def test_head_not_allowed_is_reachable(self):
        """Test 4xx on HEAD still means the server is there."""
        async with recording_client(BB_WFS_200, head_status=405) as client:
            result = await URLValidator(client=client).validate(BASE_URL)

        assert result.server_reachable
        assert result.xml_response_valid

    @pytest.mark.asyncio
    async def test_head_timeout(self):
        """Test timeouts are reported with the configured limit."""
        settings = HarvestSettings(validation_timeout=3)
        timeout = httpx.ConnectTimeout("timed out")
        async with recording_client(BB_WFS_200, head_status=timeout) as client:
            result = await URLValidator(settings=settings, client=client).validate(BASE_URL)

        assert not result.server_reachable
        assert "Server-Timeout (3s)" in result.validation_notes
        assert result.xml_response_valid
        assert not result.overall_valid

    @pytest.mark.asyncio
    async def test_not_a_wfs(self):
        """Test a reachable server without capabilities."""
        async with recording_client("<html>Portal</html>") as client:
            result = await URLValidator(client=client).validate(BASE_URL)

        assert result.server_reachable
        assert not result.xml_response_valid
        assert result.fetch.error_kind.value == "not_wfs"
        assert result.validation_notes[-1].startswith("XML-Response ungültig")
        assert "; " in result.notes_text()
