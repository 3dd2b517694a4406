"""WFS host quirks configuration and handling.

This module defines per-host deviations from standard WFS behavior and how
to handle them. Quirks are keyed by host name; a quirk registered for
``geodienste.example.de`` also applies to ``wfs.geodienste.example.de``.
"""

from typing import Any, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from wfsharvest.config import load_quirks


class ProtocolQuirks(BaseModel):
    """Configuration for host-specific WFS quirks.

    Examples:
        Server that only answers WFS 2.0.0:
            quirks = ProtocolQuirks(force_version="2.0.0", skip_version_fallback=True)

        Slow server:
            quirks = ProtocolQuirks(custom_timeout=45.0)
    """

    # URL Construction Quirks
    requires_trailing_slash: bool = Field(
        False, description="Add trailing slash to the base URL path"
    )

    # Version Quirks
    force_version: Optional[str] = Field(
        None, description="Version to try first (e.g. '2.0.0')"
    )
    skip_version_fallback: bool = Field(
        False, description="Only try force_version, never fall back to other versions"
    )

    # Output Format Quirks
    preferred_output_format: Optional[str] = Field(
        None, description="Output format to request instead of the negotiated one"
    )
    omit_output_format: bool = Field(
        False, description="Never send outputFormat (server default only)"
    )

    # Timeout Quirks
    custom_timeout: Optional[float] = Field(
        None, description="Custom timeout for slow services (seconds)"
    )

    # Request Quirks
    custom_headers: dict[str, str] = Field(
        default_factory=dict, description="Custom HTTP headers required by the service"
    )
    extra_params: dict[str, str] = Field(
        default_factory=dict, description="Extra query parameters (e.g. map=..., SERVICE_NAME=...)"
    )

    # Metadata
    description: Optional[str] = Field(
        None, description="Human-readable description of why these quirks are needed"
    )
    issue_url: Optional[str] = Field(None, description="Link to issue tracker or documentation")
    workaround_date: Optional[str] = Field(
        None, description="Date when workaround was added (YYYY-MM-DD)"
    )

    def apply_to_url(self, url: str) -> str:
        """Apply URL quirks to a base URL.

        Args:
            url: Base URL (may carry a query string)

        Returns:
            Modified URL with quirks applied
        """
        if not self.requires_trailing_slash:
            return url
        parts = urlsplit(url)
        if parts.path.endswith("/"):
            return url
        return parts._replace(path=parts.path + "/").geturl()

    def apply_to_params(self, params: dict[str, Any]) -> dict[str, Any]:
        """Apply parameter quirks to request params.

        Args:
            params: Request parameters

        Returns:
            Modified parameters with quirks applied
        """
        params = params.copy()
        params.update(self.extra_params)

        if self.omit_output_format:
            params.pop("outputFormat", None)
        elif self.preferred_output_format and "outputFormat" in params:
            params["outputFormat"] = self.preferred_output_format

        return params

    def apply_to_headers(self, headers: dict[str, str]) -> dict[str, str]:
        """Apply header quirks.

        Args:
            headers: Request headers

        Returns:
            Modified headers with quirks applied
        """
        headers = headers.copy()
        headers.update(self.custom_headers)
        return headers

    def get_timeout(self, default: float) -> float:
        """Get timeout with quirk applied.

        Args:
            default: Default timeout

        Returns:
            Timeout to use (custom or default)
        """
        return self.custom_timeout if self.custom_timeout else default

    def order_versions(self, versions: list[Optional[str]]) -> list[Optional[str]]:
        """Apply version quirks to a version fallback order."""
        if not self.force_version:
            return list(versions)
        if self.skip_version_fallback:
            return [self.force_version]
        return [self.force_version] + [v for v in versions if v != self.force_version]

    def active_quirks(self) -> list[str]:
        """Short labels of the quirks that change behavior."""
        labels = []
        if self.requires_trailing_slash:
            labels.append("trailing_slash")
        if self.force_version:
            labels.append(f"version={self.force_version}")
        if self.skip_version_fallback:
            labels.append("no_fallback")
        if self.preferred_output_format:
            labels.append("output_format")
        if self.omit_output_format:
            labels.append("omit_output_format")
        if self.custom_timeout:
            labels.append(f"timeout={self.custom_timeout}s")
        if self.custom_headers:
            labels.append(f"headers({len(self.custom_headers)})")
        if self.extra_params:
            labels.append(f"params({len(self.extra_params)})")
        return labels


# Host quirks from config/quirks/hosts.yml (empty if the file is missing)
KNOWN_QUIRKS: dict[str, ProtocolQuirks] = load_quirks(fallback={})


def host_of(url_or_host: str) -> str:
    """Lowercase host name of a URL (or of a bare host)."""
    value = (url_or_host or "").strip()
    if "://" in value:
        return (urlsplit(value).hostname or "").lower()
    return value.split("/", 1)[0].split(":", 1)[0].lower()


def matched_host(
    url_or_host: str, registry: Optional[dict[str, ProtocolQuirks]] = None
) -> Optional[str]:
    """Registry key that applies to a URL or host, walking up parent domains."""
    registry = KNOWN_QUIRKS if registry is None else registry
    host = host_of(url_or_host)
    while host:
        if host in registry:
            return host
        if "." not in host:
            break
        host = host.split(".", 1)[1]
    return None


def get_quirks(
    url_or_host: str, registry: Optional[dict[str, ProtocolQuirks]] = None
) -> ProtocolQuirks:
    """Get known quirks for a service URL or host.

    Args:
        url_or_host: Service URL or host name
        registry: Quirks registry (default: KNOWN_QUIRKS)

    Returns:
        ProtocolQuirks instance (default quirks if unknown)

    Examples:
        >>> get_quirks("https://www.wfs.nrw.de/geobasis/wfs_nw_alkis").force_version
        '2.0.0'
        >>> get_quirks("https://unknown.example.org/wfs").force_version is None
        True
    """
    registry = KNOWN_QUIRKS if registry is None else registry
    key = matched_host(url_or_host, registry)
    return registry[key] if key is not None else ProtocolQuirks()
