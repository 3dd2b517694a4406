"""Capabilities parsing: XML normalization and metadata extraction."""

from wfsharvest.parser.capabilities import (
    ServiceResult,
    WFSCapabilitiesParser,
    exception_message,
    parse_capabilities,
)
from wfsharvest.parser.xmltree import XMLDocument, XMLStructureError, normalize

__all__ = [
    "ServiceResult",
    "WFSCapabilitiesParser",
    "exception_message",
    "parse_capabilities",
    "XMLDocument",
    "XMLStructureError",
    "normalize",
]
