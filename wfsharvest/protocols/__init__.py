"""WFS protocol access.

- Capabilities fetching with version fallback (fetcher)
- GetFeature negotiation and probing (wfs, response)
- Three-stage URL validation (validator)
- Geoportal link resolution (portal)

Each host can have quirks configured.
"""

from wfsharvest.protocols.base import Protocol
from wfsharvest.protocols.fetcher import (
    CapabilitiesFetcher,
    FetchError,
    FetchErrorKind,
    FetchResult,
    build_capabilities_url,
    download,
)
from wfsharvest.protocols.portal import (
    PortalResolution,
    extract_wfs_urls_from_html,
    extract_wfs_urls_from_json,
    is_portal_link,
    resolve_portal_url,
)
from wfsharvest.protocols.quirks import KNOWN_QUIRKS, ProtocolQuirks, get_quirks
from wfsharvest.protocols.quirks_monitor import QuirksMonitor
from wfsharvest.protocols.response import (
    Payload,
    PayloadKind,
    ResponseClassification,
    ResponseKind,
    classify_response,
    decode_payload,
)
from wfsharvest.protocols.validator import URLValidator, ValidationResult
from wfsharvest.protocols.wfs import (
    ProbeResult,
    WFSError,
    WFSProtocol,
    build_get_feature_params,
    negotiation_plan,
    select_output_format,
)

__all__ = [
    "Protocol",
    "CapabilitiesFetcher",
    "FetchError",
    "FetchErrorKind",
    "FetchResult",
    "build_capabilities_url",
    "download",
    "PortalResolution",
    "extract_wfs_urls_from_html",
    "extract_wfs_urls_from_json",
    "is_portal_link",
    "resolve_portal_url",
    "KNOWN_QUIRKS",
    "ProtocolQuirks",
    "get_quirks",
    "QuirksMonitor",
    "Payload",
    "PayloadKind",
    "ResponseClassification",
    "ResponseKind",
    "classify_response",
    "decode_payload",
    "URLValidator",
    "ValidationResult",
    "ProbeResult",
    "WFSError",
    "WFSProtocol",
    "build_get_feature_params",
    "negotiation_plan",
    "select_output_format",
]
