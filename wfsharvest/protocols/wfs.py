"""WFS (Web Feature Service) protocol implementation.

Supports WFS 1.0.0, 1.1.0 and 2.0.0 for catalogue work: fetching and
parsing capabilities, and probing layers with small GetFeature requests
to find out whether they are actually queryable.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

import httpx
from pydantic import BaseModel, Field

from wfsharvest.config import HarvestSettings
from wfsharvest.parser.capabilities import WFSCapabilitiesParser
from wfsharvest.protocols.base import Protocol
from wfsharvest.protocols.fetcher import (
    CapabilitiesFetcher,
    FetchError,
    FetchErrorKind,
    FetchResult,
    download,
)
from wfsharvest.protocols.quirks import ProtocolQuirks, get_quirks, matched_host
from wfsharvest.protocols.quirks_monitor import QuirksMonitor
from wfsharvest.protocols.response import ResponseClassification, ResponseKind, classify_response

logger = logging.getLogger("wfsharvest.wfs")

INSPIRE_VERSION = "2.0.0"
INSPIRE_OUTPUT_FORMAT = "text/xml; subtype=gml/3.2.1"
INSPIRE_SRS = "EPSG:4258"
FALLBACK_VERSIONS = ("2.0.0", "1.1.0", "1.0.0")

_GET_FEATURE_PARAMS = {
    "service",
    "request",
    "version",
    "typename",
    "typenames",
    "count",
    "maxfeatures",
    "outputformat",
    "srsname",
}

# Lower is better
_KIND_RANK = {
    ResponseKind.FEATURES: 0,
    ResponseKind.EMPTY: 1,
    ResponseKind.EXCEPTION: 2,
    ResponseKind.MALFORMED: 3,
}


class WFSError(Exception):
    """Raised when WFS requests fail."""

    pass


def is_wfs2(version: Optional[str]) -> bool:
    return bool(version) and version.strip().startswith("2")


def build_get_feature_params(
    type_name: str,
    version: str = "2.0.0",
    output_format: Optional[str] = None,
    count: int = 5,
    srs_name: Optional[str] = None,
) -> dict[str, Any]:
    """Build GetFeature query parameters for a protocol version.

    WFS 2.x uses ``typeNames``/``count``, older versions use
    ``typeName``/``maxFeatures``. Servers silently return nothing when the
    wrong pair is sent.

    Examples:
        >>> build_get_feature_params("cp:CadastralParcel", "1.1.0", count=3)["maxFeatures"]
        3
    """
    if not type_name:
        raise WFSError("GetFeature needs a type name")

    params: dict[str, Any] = {"service": "WFS", "version": version, "request": "GetFeature"}
    if is_wfs2(version):
        params["typeNames"] = type_name
        params["count"] = count
    else:
        params["typeName"] = type_name
        params["maxFeatures"] = count
    if output_format:
        params["outputFormat"] = output_format
    if srs_name:
        params["srsName"] = srs_name
    return params


def build_get_feature_url(base_url: str, params: dict[str, Any]) -> str:
    """Merge GetFeature params into a service URL, replacing conflicting ones."""
    parts = urlsplit(base_url.strip())
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key.lower() not in _GET_FEATURE_PARAMS
    ]
    query += [(key, str(value)) for key, value in params.items()]
    return parts._replace(query=urlencode(query), fragment="").geturl()


def select_output_format(formats: Optional[list[str]], inspire: bool = False) -> Optional[str]:
    """Pick the output format for a probe.

    INSPIRE services always get the INSPIRE GML profile. Otherwise a
    JSON-like advertised format wins, then the first advertised format.
    None means "server default" (no outputFormat parameter).
    """
    if inspire:
        return INSPIRE_OUTPUT_FORMAT
    formats = [f.strip() for f in formats or [] if f and f.strip()]
    for candidate in formats:
        if "json" in candidate.lower():
            return candidate
    return formats[0] if formats else None


@dataclass(frozen=True)
class NegotiationStep:
    """One (version, format, srsName) combination to try."""

    version: str
    output_format: Optional[str] = None
    srs_name: Optional[str] = None


INSPIRE_PLAN = (
    NegotiationStep(INSPIRE_VERSION, INSPIRE_OUTPUT_FORMAT, INSPIRE_SRS),
    NegotiationStep(INSPIRE_VERSION, "application/gml+xml; version=3.2", INSPIRE_SRS),
    NegotiationStep("1.1.0", "text/xml; subtype=gml/3.1.1", INSPIRE_SRS),
    NegotiationStep("1.1.0"),
)


def negotiation_plan(
    declared_version: Optional[str],
    formats: Optional[list[str]] = None,
    inspire: bool = False,
) -> list[NegotiationStep]:
    """Ordered GetFeature variants to try for one layer.

    Args:
        declared_version: Version the service advertised
        formats: Output formats advertised for the layer (or service)
        inspire: Whether the owning service is INSPIRE-conformant

    Returns:
        Steps without duplicates, most promising first
    """
    if inspire:
        return list(INSPIRE_PLAN)

    output_format = select_output_format(formats)
    versions = [declared_version] if declared_version else []
    versions += [v for v in FALLBACK_VERSIONS if v != declared_version]

    steps = [NegotiationStep(version, output_format) for version in versions]
    if output_format is not None:
        steps.append(NegotiationStep(declared_version or "1.1.0"))
    return steps


class ProbeAttempt(BaseModel):
    """One GetFeature request made while probing a layer."""

    version: str
    output_format: Optional[str] = None
    url: str
    status_code: Optional[int] = None
    classification: Optional[ResponseClassification] = None
    error_kind: Optional[FetchErrorKind] = None
    error: Optional[str] = None

    @property
    def rank(self) -> int:
        if self.classification is None:
            return len(_KIND_RANK)
        return _KIND_RANK[self.classification.kind]


class ProbeResult(BaseModel):
    """Outcome of probing one layer."""

    layer: str
    queryable: bool
    kind: Optional[ResponseKind] = None
    version: Optional[str] = None
    output_format: Optional[str] = None
    feature_count: Optional[int] = None
    exception_text: Optional[str] = None
    error: Optional[str] = None
    attempts: list[ProbeAttempt] = Field(default_factory=list)
    checked_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def from_attempts(cls, layer: str, attempts: list[ProbeAttempt]) -> "ProbeResult":
        if not attempts:
            return cls(layer=layer, queryable=False, error="Keine Anfrage durchgeführt")

        best = min(attempts, key=lambda a: a.rank)
        classification = best.classification
        if classification is None:
            return cls(
                layer=layer,
                queryable=False,
                version=best.version,
                output_format=best.output_format,
                error=best.error,
                attempts=attempts,
            )

        error = None
        if classification.kind == ResponseKind.EXCEPTION:
            error = f"Service meldet Exception: {classification.exception_text}"
        elif classification.kind == ResponseKind.MALFORMED:
            error = classification.detail or "Ungültige Antwort"
        return cls(
            layer=layer,
            queryable=classification.queryable,
            kind=classification.kind,
            version=best.version,
            output_format=best.output_format,
            feature_count=classification.feature_count,
            exception_text=classification.exception_text,
            error=error,
            attempts=attempts,
        )


class WFSProtocol(Protocol):
    """WFS protocol implementation for harvesting and probing."""

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[HarvestSettings] = None,
        quirks: Optional[ProtocolQuirks] = None,
        monitor: Optional[QuirksMonitor] = None,
        **kwargs: Any,
    ):
        """Initialize WFS protocol.

        Args:
            base_url: Base URL for WFS endpoint
            timeout: Probe timeout in seconds (default: settings.probe_timeout)
            client: Optional shared HTTP client
            settings: Harvest settings
            quirks: Host quirks (default: looked up by host)
            monitor: Optional quirks monitor
            **kwargs: Additional configuration
        """
        self.settings = settings or HarvestSettings()
        super().__init__(
            base_url,
            timeout=timeout or self.settings.probe_timeout,
            client=client,
            user_agent=self.settings.user_agent,
            **kwargs,
        )
        self.quirks = quirks if quirks is not None else get_quirks(base_url)
        self.monitor = monitor
        self.parser = WFSCapabilitiesParser()

    async def fetch_capabilities(self) -> FetchResult:
        """Fetch the raw capabilities document with version fallback."""
        client = await self._get_client()
        fetcher = CapabilitiesFetcher(
            settings=self.settings,
            client=client,
            monitor=self.monitor,
            quirks=self.quirks,
        )
        return await fetcher.fetch(self.base_url)

    async def get_capabilities(self) -> dict[str, Any]:
        """Get WFS capabilities.

        Returns:
            Dictionary with service metadata

        Raises:
            WFSError: If the document cannot be fetched or parsed
        """
        fetched = await self.fetch_capabilities()
        if not fetched.success:
            raise WFSError(f"GetCapabilities fehlgeschlagen: {fetched.error}")

        result = self.parser.parse(fetched.text)
        if not result.success:
            raise WFSError(result.error)

        service = result.service
        return {
            "type": "wfs",
            "url": self.base_url,
            "title": service.title,
            "version": service.version,
            "layers": [layer.name for layer in result.layers],
            "crs": service.supported_crs,
            "formats": service.output_formats,
            "bbox": list(service.bbox.as_tuple()) if service.bbox else None,
            "inspire": service.is_inspire,
        }

    async def get_features(
        self,
        layer: str,
        version: Optional[str] = None,
        output_format: Optional[str] = None,
        count: Optional[int] = None,
        srs_name: Optional[str] = None,
        **kwargs: Any,
    ) -> ProbeAttempt:
        """Send one GetFeature request and classify the answer.

        Args:
            layer: Layer/typeName to request
            version: Protocol version (default: 2.0.0)
            output_format: outputFormat parameter (None = server default)
            count: Feature limit (default: settings.probe_count)
            srs_name: Optional srsName
            **kwargs: Additional query parameters

        Returns:
            ProbeAttempt; transport failures are recorded, not raised
        """
        version = version or "2.0.0"
        params = build_get_feature_params(
            layer, version, output_format, count or self.settings.probe_count, srs_name
        )
        params.update(kwargs)
        params = self.quirks.apply_to_params(params)
        url = build_get_feature_url(self.quirks.apply_to_url(self.base_url), params)
        attempt = ProbeAttempt(version=version, output_format=params.get("outputFormat"), url=url)

        client = await self._get_client()
        try:
            response = await download(
                client,
                url,
                headers=self.quirks.apply_to_headers({}),
                timeout=self.quirks.get_timeout(self.timeout),
                max_bytes=self.settings.max_response_bytes,
            )
        except FetchError as e:
            attempt.error_kind, attempt.error = e.kind, e.message
            return attempt

        attempt.status_code = response.status_code
        attempt.classification = classify_response(
            response.body, response.content_type, response.status_code
        )
        return attempt

    async def probe_layer(
        self,
        layer: str,
        version: Optional[str] = None,
        formats: Optional[list[str]] = None,
        inspire: bool = False,
    ) -> ProbeResult:
        """Probe a layer for queryability.

        Variants from ``negotiation_plan`` are tried until one returns
        features. Otherwise the best answer wins, in the order
        features > empty > exception > malformed > transport error.

        Args:
            layer: Technical layer name
            version: Version declared by the service
            formats: Output formats advertised for the layer
            inspire: Whether the owning service is INSPIRE-conformant

        Returns:
            ProbeResult
        """
        labels = self.quirks.active_quirks()
        if labels and self.monitor is not None:
            self.monitor.record_labels(matched_host(self.base_url) or self.base_url, labels)

        attempts: list[ProbeAttempt] = []
        for step in negotiation_plan(version, formats, inspire):
            attempt = await self.get_features(
                layer, step.version, step.output_format, srs_name=step.srs_name
            )
            attempts.append(attempt)
            kind = attempt.classification.kind if attempt.classification else None
            logger.debug(
                "Probe %s (v%s, %s): %s",
                layer,
                step.version,
                step.output_format or "default",
                kind.value if kind else attempt.error,
            )
            if kind == ResponseKind.FEATURES:
                break
            if attempt.error_kind in (FetchErrorKind.NETWORK, FetchErrorKind.INVALID_URL):
                break

        result = ProbeResult.from_attempts(layer, attempts)
        logger.info(
            "Probed %s: %s", layer, result.kind.value if result.kind else f"error ({result.error})"
        )
        return result
