"""Service metadata extraction.

Each field has an ordered list of strategies (see strategies.py). Title and
abstract always end in a placeholder; provider fields end in None because a
missing provider is legitimate.
"""

import re
from typing import Optional

from wfsharvest.core.categorize import DEFAULT_POLICY, CategoryPolicy, theme_codes_from_text
from wfsharvest.core.models import (
    NO_ABSTRACT,
    UNKNOWN_SERVICE_TITLE,
    BoundingBox,
    LayerMetadata,
    ServiceMetadata,
)
from wfsharvest.core.region import DEFAULT_REGION_POLICY, RegionPolicy, detect_region
from wfsharvest.parser.strategies import (
    ExtractionStrategy,
    raw_attribute,
    raw_element_text,
    run_strategies,
)
from wfsharvest.parser.xmltree import (
    XMLDocument,
    as_list,
    attr,
    child,
    find_all,
    find_first,
    path,
    text,
    texts,
)

DEFAULT_VERSION = "1.1.0"

# Raw-text markers of INSPIRE conformance
INSPIRE_INDICATORS = (
    "inspire.ec.europa.eu",
    "inspire.jrc.ec.europa.eu",
    "inspire-directive",
    "INSPIRE",
    "xmlns:inspire",
    "inspire:",
    "inspire_common",
    "inspire_vs",
    "inspire_dls",
)

_VERSION = re.compile(r"\d+\.\d+(?:\.\d+)?")


def _identification(doc: XMLDocument):
    return child(doc.root, "ServiceIdentification")


# -- Title / abstract ---------------------------------------------------------


def _text_strategies(element: str) -> list[ExtractionStrategy[str]]:
    return [
        ExtractionStrategy(
            "ows_service_identification",
            lambda doc: text(child(_identification(doc), element)),
        ),
        ExtractionStrategy("wfs_service", lambda doc: text(path(doc.root, "Service", element))),
        ExtractionStrategy("root_element", lambda doc: text(child(doc.root, element))),
        ExtractionStrategy(
            "nested_service_identification",
            lambda doc: text(child(find_first(doc.root, "ServiceIdentification"), element)),
        ),
        ExtractionStrategy(
            "raw_service_identification",
            lambda doc: raw_element_text(doc.raw, element, container="ServiceIdentification"),
        ),
        ExtractionStrategy(
            "raw_service", lambda doc: raw_element_text(doc.raw, element, container="Service")
        ),
    ]


TITLE_STRATEGIES = _text_strategies("Title") + [
    ExtractionStrategy("service_name", lambda doc: text(find_first(doc.root, "ServiceName"))),
    ExtractionStrategy("raw_service_name", lambda doc: raw_element_text(doc.raw, "ServiceName")),
]

ABSTRACT_STRATEGIES = _text_strategies("Abstract")


# -- Version --------------------------------------------------------------------


def _type_versions(doc: XMLDocument) -> list[str]:
    values = texts(child(_identification(doc), "ServiceTypeVersion")) or texts(
        find_all(doc.root, "ServiceTypeVersion")
    )
    versions = []
    for value in values:
        versions.extend(v.strip() for v in value.split(",") if v.strip())
    return versions


def _fingerprint_version(doc: XMLDocument) -> Optional[str]:
    if find_first(doc.root, "WGS84BoundingBox") is not None or find_first(
        doc.root, "DefaultCRS"
    ) is not None:
        return "2.0.0"
    if find_first(doc.root, "LatLongBoundingBox") is not None or find_first(
        doc.root, "SRS"
    ) is not None:
        return "1.1.0"
    return None


def _raw_fingerprint_version(doc: XMLDocument) -> Optional[str]:
    if "WGS84BoundingBox" in doc.raw or "DefaultCRS" in doc.raw:
        return "2.0.0"
    if "LatLongBoundingBox" in doc.raw or "SRS" in doc.raw:
        return "1.1.0"
    return None


VERSION_STRATEGIES: list[ExtractionStrategy[str]] = [
    ExtractionStrategy("root_attribute", lambda doc: attr(doc.root, "version")),
    ExtractionStrategy(
        "raw_root_attribute",
        lambda doc: raw_attribute(doc.raw, "WFS_Capabilities", "version")
        or raw_attribute(doc.raw, "Capabilities", "version"),
    ),
    ExtractionStrategy("service_type_version", lambda doc: next(iter(_type_versions(doc)), None)),
    ExtractionStrategy(
        "raw_service_type_version", lambda doc: raw_element_text(doc.raw, "ServiceTypeVersion")
    ),
    ExtractionStrategy("structure_fingerprint", _fingerprint_version),
    ExtractionStrategy("raw_fingerprint", _raw_fingerprint_version),
]


# -- Provider -------------------------------------------------------------------

PROVIDER_NAME_STRATEGIES: list[ExtractionStrategy[str]] = [
    ExtractionStrategy(
        "ows_service_provider", lambda doc: text(path(doc.root, "ServiceProvider", "ProviderName"))
    ),
    ExtractionStrategy("provider_name", lambda doc: text(find_first(doc.root, "ProviderName"))),
    ExtractionStrategy(
        "organisation_name", lambda doc: text(find_first(doc.root, "OrganisationName"))
    ),
    ExtractionStrategy(
        "contact_organization", lambda doc: text(find_first(doc.root, "ContactOrganization"))
    ),
    ExtractionStrategy("raw_provider_name", lambda doc: raw_element_text(doc.raw, "ProviderName")),
    ExtractionStrategy(
        "raw_organisation_name", lambda doc: raw_element_text(doc.raw, "OrganisationName")
    ),
]


def _site_node(doc: XMLDocument):
    return path(doc.root, "ServiceProvider", "ProviderSite") or find_first(
        doc.root, "ProviderSite"
    )


PROVIDER_SITE_STRATEGIES: list[ExtractionStrategy[str]] = [
    # Link attribute before text content
    ExtractionStrategy("provider_site_href", lambda doc: attr(_site_node(doc), "href")),
    ExtractionStrategy("provider_site_text", lambda doc: text(_site_node(doc))),
    ExtractionStrategy(
        "raw_provider_site_href", lambda doc: raw_attribute(doc.raw, "ProviderSite", "href")
    ),
    ExtractionStrategy(
        "raw_provider_site_text", lambda doc: raw_element_text(doc.raw, "ProviderSite")
    ),
    ExtractionStrategy(
        "service_online_resource",
        lambda doc: attr(path(doc.root, "Service", "OnlineResource"), "href")
        or text(path(doc.root, "Service", "OnlineResource")),
    ),
]


# -- Output formats -------------------------------------------------------------


def _named(nodes, name: str) -> list:
    return [n for n in as_list(nodes) if (attr(n, "name") or "").lower() == name.lower()]


def _parameter_values(parameter) -> list[str]:
    return texts(path(parameter, "AllowedValues", "Value")) or texts(child(parameter, "Value"))


def _get_feature_formats(doc: XMLDocument) -> list[str]:
    operations = path(doc.root, "OperationsMetadata", "Operation")
    for operation in _named(operations, "GetFeature"):
        for parameter in _named(child(operation, "Parameter"), "outputFormat"):
            values = _parameter_values(parameter)
            if values:
                return values
    return []


def _global_formats(doc: XMLDocument) -> list[str]:
    for parameter in _named(path(doc.root, "OperationsMetadata", "Parameter"), "outputFormat"):
        values = _parameter_values(parameter)
        if values:
            return values
    return []


def _result_formats(doc: XMLDocument) -> list[str]:
    # WFS 1.0.0: <ResultFormat><GML2/><GEOJSON/></ResultFormat>
    result_format = path(doc.root, "Capability", "Request", "GetFeature", "ResultFormat")
    if not isinstance(result_format, dict):
        result_format = child(find_first(doc.root, "GetFeature"), "ResultFormat")
    if not isinstance(result_format, dict):
        return []
    return [key for key in result_format if not key.startswith(("@", "#"))]


OUTPUT_FORMAT_STRATEGIES: list[ExtractionStrategy[list[str]]] = [
    ExtractionStrategy("get_feature_parameter", _get_feature_formats),
    ExtractionStrategy("global_parameter", _global_formats),
    ExtractionStrategy("result_format", _result_formats),
]


def _dedupe(values: list[str]) -> list[str]:
    return list(dict.fromkeys(v for v in values if v))


def _service_keywords(doc: XMLDocument) -> list[str]:
    keywords: list[str] = []
    container = _identification(doc) or child(doc.root, "Service")
    for entry in as_list(child(container, "Keywords")):
        if isinstance(entry, dict) and child(entry, "Keyword") is not None:
            keywords.extend(texts(child(entry, "Keyword")))
        else:
            raw = text(entry)
            if raw:
                keywords.extend(k.strip() for k in raw.split(","))
    return _dedupe(keywords)


def is_inspire_document(raw: str) -> bool:
    """Whether the raw document carries any INSPIRE marker."""
    return any(indicator in raw for indicator in INSPIRE_INDICATORS)


# -- Public API -----------------------------------------------------------------


def extract_service_title(doc: XMLDocument) -> str:
    """Service title, never empty."""
    return run_strategies(TITLE_STRATEGIES, doc, "title") or UNKNOWN_SERVICE_TITLE


def extract_service_abstract(doc: XMLDocument) -> str:
    """Service abstract, never empty."""
    return run_strategies(ABSTRACT_STRATEGIES, doc, "abstract") or NO_ABSTRACT


def extract_version(doc: XMLDocument) -> str:
    value = run_strategies(VERSION_STRATEGIES, doc, "version")
    match = _VERSION.search(value or "")
    return match.group(0) if match else DEFAULT_VERSION


def extract_versions(doc: XMLDocument) -> list[str]:
    """Primary version followed by every other advertised version."""
    versions = [extract_version(doc)] + _type_versions(doc)
    return _dedupe([m.group(0) for m in map(_VERSION.search, versions) if m])


def extract_provider_name(doc: XMLDocument) -> Optional[str]:
    return run_strategies(PROVIDER_NAME_STRATEGIES, doc, "provider_name")


def extract_provider_site(doc: XMLDocument) -> Optional[str]:
    return run_strategies(PROVIDER_SITE_STRATEGIES, doc, "provider_site")


def extract_output_formats(doc: XMLDocument, layers: list[LayerMetadata]) -> list[str]:
    formats = run_strategies(OUTPUT_FORMAT_STRATEGIES, doc, "output_formats")
    if not formats:
        formats = [fmt for layer in layers for fmt in layer.output_formats]
    return _dedupe(formats or [])


def merge_bboxes(layers: list[LayerMetadata]) -> Optional[BoundingBox]:
    """Union of all layer extents, None when no layer has one."""
    result = None
    for layer in layers:
        if layer.bbox is not None:
            result = layer.bbox if result is None else result.union(layer.bbox)
    return result


def extract_service(
    doc: XMLDocument,
    layers: list[LayerMetadata],
    category_policy: Optional[CategoryPolicy] = None,
    region_policy: Optional[RegionPolicy] = None,
) -> ServiceMetadata:
    """Build ServiceMetadata for a parsed document.

    Args:
        doc: Parsed capabilities document
        layers: Layers already extracted from the document
        category_policy: Tables for theme code detection
        region_policy: Tables and default for region inference

    Returns:
        ServiceMetadata with region fields filled in
    """
    category_policy = category_policy or DEFAULT_POLICY
    region_policy = region_policy or DEFAULT_REGION_POLICY

    title = extract_service_title(doc)
    abstract = extract_service_abstract(doc)
    provider_name = extract_provider_name(doc)
    versions = extract_versions(doc)
    bbox = merge_bboxes(layers)

    supported_crs = _dedupe(
        [crs for layer in layers for crs in [layer.default_crs, *layer.other_crs] if crs]
    )
    service_name = text(path(doc.root, "Service", "Name"))
    region = detect_region([title, abstract, provider_name], bbox, region_policy)

    return ServiceMetadata(
        title=title,
        abstract=abstract,
        version=versions[0],
        versions=versions,
        provider_name=provider_name,
        provider_site=extract_provider_site(doc),
        supported_crs=supported_crs,
        output_formats=extract_output_formats(doc, layers),
        bbox=bbox,
        keywords=_service_keywords(doc),
        inspire_theme_codes=theme_codes_from_text(
            service_name, title, abstract, policy=category_policy
        ),
        is_inspire=is_inspire_document(doc.raw),
        land_code=region.land_code,
        land_name=region.land_name,
        region=region.region,
    )
