"""WFS GetCapabilities parser.

Ties the normalizer and the extractors together:

    raw XML -> XMLDocument -> layers -> service metadata -> ParseResult

Parsing never raises for bad input. A document that cannot be read as a
capabilities document gives ``ParseResult(success=False, error=...)``;
anything else is a success, even with zero layers.

Usage:
    from wfsharvest.parser import WFSCapabilitiesParser

    parser = WFSCapabilitiesParser()
    result = parser.parse(xml_text)
    if result.success:
        print(result.service.title, result.layer_count)
"""

import logging
from typing import Optional, Union

from pydantic import BaseModel

from wfsharvest.core.categorize import DEFAULT_POLICY, CategoryPolicy
from wfsharvest.core.models import LayerMetadata, ParseResult, ServiceMetadata
from wfsharvest.core.region import DEFAULT_REGION_POLICY, RegionPolicy
from wfsharvest.parser.layers import extract_layers
from wfsharvest.parser.service import extract_service
from wfsharvest.parser.xmltree import XMLDocument, XMLStructureError, attr, find_all, texts

logger = logging.getLogger("wfsharvest.parser")

CAPABILITIES_ROOTS = ("wfs_capabilities", "capabilities")
EXCEPTION_ROOTS = ("exceptionreport", "serviceexceptionreport")


class ServiceResult(BaseModel):
    """Tagged outcome of service-only extraction."""

    success: bool
    service: Optional[ServiceMetadata] = None
    error: Optional[str] = None


def exception_message(doc: XMLDocument) -> str:
    """Readable text of an OGC ExceptionReport / ServiceExceptionReport."""
    messages = texts(find_all(doc.root, "ExceptionText")) or texts(
        find_all(doc.root, "ServiceException")
    )
    if not messages:
        code = attr(next(iter(find_all(doc.root, "Exception")), None), "exceptionCode")
        messages = [code] if code else ["ohne Meldungstext"]
    return "; ".join(messages)


class WFSCapabilitiesParser:
    """Parse GetCapabilities documents into service and layer metadata."""

    def __init__(
        self,
        category_policy: Optional[CategoryPolicy] = None,
        region_policy: Optional[RegionPolicy] = None,
    ):
        """Initialize parser.

        Args:
            category_policy: Tables for categories, keywords and theme codes
            region_policy: Country tables and default region
        """
        self.category_policy = category_policy or DEFAULT_POLICY
        self.region_policy = region_policy or DEFAULT_REGION_POLICY

    def _load(self, xml: Union[str, bytes]) -> tuple[Optional[XMLDocument], Optional[str]]:
        try:
            doc = XMLDocument.from_xml(xml)
        except XMLStructureError as e:
            return None, f"XML-Parsing fehlgeschlagen: {e}"

        root = doc.root_name.lower()
        if root in EXCEPTION_ROOTS:
            return None, f"Service meldet Exception: {exception_message(doc)}"
        if root not in CAPABILITIES_ROOTS:
            return None, f"Kein WFS-Capabilities-Dokument (Wurzelelement '{doc.root_name}')"
        return doc, None

    def parse(self, xml: Union[str, bytes]) -> ParseResult:
        """Parse a complete capabilities document.

        Args:
            xml: Raw GetCapabilities response

        Returns:
            ParseResult with service metadata and layers, or an error
        """
        doc, error = self._load(xml)
        if doc is None:
            logger.debug("Capabilities parse failed: %s", error)
            return ParseResult.failure(error)

        layers = extract_layers(doc, self.category_policy)
        service = extract_service(doc, layers, self.category_policy, self.region_policy)
        logger.debug("Parsed '%s' (WFS %s): %d layers", service.title, service.version, len(layers))
        return ParseResult.ok(service, layers)

    def parse_service_metadata(self, xml: Union[str, bytes]) -> ServiceResult:
        """Extract only the service metadata."""
        result = self.parse(xml)
        return ServiceResult(success=result.success, service=result.service, error=result.error)

    def parse_layer_metadata(self, xml: Union[str, bytes]) -> list[LayerMetadata]:
        """Extract only the layers. Unreadable documents give an empty list."""
        doc, error = self._load(xml)
        if doc is None:
            logger.debug("Layer extraction skipped: %s", error)
            return []
        return extract_layers(doc, self.category_policy)


def parse_capabilities(
    xml: Union[str, bytes],
    category_policy: Optional[CategoryPolicy] = None,
    region_policy: Optional[RegionPolicy] = None,
) -> ParseResult:
    """Shortcut for ``WFSCapabilitiesParser(...).parse(xml)``."""
    return WFSCapabilitiesParser(category_policy, region_policy).parse(xml)
