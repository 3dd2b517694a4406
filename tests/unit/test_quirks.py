"""Unit tests for the host quirks system."""

from wfsharvest.config import load_quirks
from wfsharvest.protocols.quirks import (
    KNOWN_QUIRKS,
    ProtocolQuirks,
    get_quirks,
    host_of,
    matched_host,
)


class TestProtocolQuirks:
    """Test ProtocolQuirks configuration and application."""

    def test_default_quirks_no_modifications(self):
        """Test default quirks don't modify anything."""
        quirks = ProtocolQuirks()

        assert quirks.apply_to_url("https://example.com/wfs") == "https://example.com/wfs"

        params = {"typeNames": "cp:CadastralParcel", "count": 5}
        assert quirks.apply_to_params(params) == params

        headers = {"Accept": "text/xml"}
        assert quirks.apply_to_headers(headers) == headers

        assert quirks.get_timeout(15.0) == 15.0
        assert quirks.active_quirks() == []

    def test_trailing_slash_quirk(self):
        """Test trailing slash is added to the path, not the query."""
        quirks = ProtocolQuirks(requires_trailing_slash=True)

        assert quirks.apply_to_url("https://example.com/wfs") == "https://example.com/wfs/"
        assert quirks.apply_to_url("https://example.com/wfs/") == "https://example.com/wfs/"
        assert (
            quirks.apply_to_url("https://example.com/wfs?map=alkis")
            == "https://example.com/wfs/?map=alkis"
        )

    def test_preferred_output_format_replaces_negotiated_one(self):
        """Test preferred format only replaces an outputFormat that is sent."""
        quirks = ProtocolQuirks(preferred_output_format="application/gml+xml; version=3.2")

        params = quirks.apply_to_params({"outputFormat": "application/json"})
        assert params["outputFormat"] == "application/gml+xml; version=3.2"

        params = quirks.apply_to_params({"typeName": "x"})
        assert "outputFormat" not in params

    def test_omit_output_format(self):
        """Test outputFormat is dropped entirely."""
        quirks = ProtocolQuirks(omit_output_format=True, preferred_output_format="text/xml")

        params = quirks.apply_to_params({"outputFormat": "application/json", "count": 5})
        assert params == {"count": 5}

    def test_extra_params_do_not_mutate_input(self):
        """Test extra params are merged into a copy."""
        quirks = ProtocolQuirks(extra_params={"map": "/srv/alkis.map"})
        original = {"typeName": "x"}

        result = quirks.apply_to_params(original)

        assert result == {"typeName": "x", "map": "/srv/alkis.map"}
        assert original == {"typeName": "x"}

    def test_custom_timeout_quirk(self):
        """Test custom timeout override."""
        assert ProtocolQuirks(custom_timeout=45.0).get_timeout(15.0) == 45.0

    def test_custom_headers_quirk(self):
        """Test custom header addition."""
        quirks = ProtocolQuirks(custom_headers={"Referer": "https://geoportal.de"})

        headers = quirks.apply_to_headers({"User-Agent": "wfsharvest"})

        assert headers["Referer"] == "https://geoportal.de"
        assert headers["User-Agent"] == "wfsharvest"

    def test_force_version_moves_version_first(self):
        """Test forced version is tried first, fallback kept."""
        quirks = ProtocolQuirks(force_version="1.1.0")

        assert quirks.order_versions(["2.0.0", "1.1.0", "1.0.0", None]) == [
            "1.1.0",
            "2.0.0",
            "1.0.0",
            None,
        ]

    def test_skip_version_fallback(self):
        """Test only the forced version is tried."""
        quirks = ProtocolQuirks(force_version="2.0.0", skip_version_fallback=True)

        assert quirks.order_versions(["2.0.0", "1.1.0", None]) == ["2.0.0"]

    def test_active_quirk_labels(self):
        """Test labels describe every active quirk."""
        quirks = ProtocolQuirks(
            requires_trailing_slash=True,
            force_version="2.0.0",
            custom_timeout=30.0,
            custom_headers={"A": "1", "B": "2"},
        )

        assert quirks.active_quirks() == [
            "trailing_slash",
            "version=2.0.0",
            "timeout=30.0s",
            "headers(2)",
        ]


class TestHostLookup:
    """Test host matching."""

    def test_host_of_url_and_bare_host(self):
        """Test host extraction from URLs and host strings."""
        assert host_of("https://WWW.WFS.NRW.DE:443/geobasis/wfs") == "www.wfs.nrw.de"
        assert host_of("www.wfs.nrw.de/geobasis") == "www.wfs.nrw.de"

    def test_parent_domain_matches(self):
        """Test a quirk registered for a domain applies to its subdomains."""
        registry = {"geodienste.example.de": ProtocolQuirks(custom_timeout=60.0)}

        assert matched_host("https://wfs.geodienste.example.de/x", registry) == (
            "geodienste.example.de"
        )
        assert get_quirks("https://wfs.geodienste.example.de/x", registry).custom_timeout == 60.0

    def test_unknown_host_gets_defaults(self):
        """Test get_quirks() returns default for unknown hosts."""
        quirks = get_quirks("https://unknown.example.org/wfs", {})

        assert isinstance(quirks, ProtocolQuirks)
        assert quirks.force_version is None
        assert quirks.requires_trailing_slash is False


class TestKnownQuirks:
    """Test the shipped quirks registry."""

    def test_nrw_quirks_registered(self):
        """Test NRW quirks are loaded from hosts.yml."""
        assert "www.wfs.nrw.de" in KNOWN_QUIRKS

        quirks = get_quirks("https://www.wfs.nrw.de/geobasis/wfs_nw_alkis_vereinfacht")
        assert quirks.force_version == "2.0.0"
        assert quirks.skip_version_fallback is True

    def test_known_quirks_documented(self):
        """Test every shipped quirk explains itself."""
        for host, quirks in KNOWN_QUIRKS.items():
            assert quirks.description, f"{host} has no description"
            assert quirks.workaround_date, f"{host} has no workaround date"

    def test_registry_matches_hosts_file(self):
        """Test the registry holds exactly the hosts of hosts.yml."""
        assert KNOWN_QUIRKS == load_quirks()
        assert sorted(KNOWN_QUIRKS) == [
            "geodienste.hamburg.de",
            "sgx.geodatenzentrum.de",
            "www.wfs.nrw.de",
        ]
