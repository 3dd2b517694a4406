"""Layer metadata extraction.

Every FeatureType entry becomes a LayerMetadata. Entries without a usable
name are dropped; this is the only place where the parser discards data
instead of defaulting it.
"""

import logging
from typing import Any, Optional

from wfsharvest.core.categorize import (
    DEFAULT_POLICY,
    CategoryPolicy,
    categorize,
    infer_geometry_type,
    synthesize_keywords,
    theme_code_from_name,
    theme_codes_from_text,
)
from wfsharvest.core.models import BoundingBox, LayerMetadata
from wfsharvest.parser.strategies import ExtractionStrategy, run_strategies
from wfsharvest.parser.xmltree import (
    XMLDocument,
    as_list,
    attr,
    child,
    find_all,
    path,
    text,
    texts,
)

logger = logging.getLogger("wfsharvest.parser")

# Elements some INSPIRE profiles use for explicit theme codes
THEME_ELEMENTS = ("inspire_theme", "InspireTheme", "ThemeCode", "inspire_theme_code")


def _dedupe(values: list[str]) -> list[str]:
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


# -- FeatureType enumeration -------------------------------------------------

FEATURE_TYPE_STRATEGIES: list[ExtractionStrategy[list]] = [
    ExtractionStrategy(
        "feature_type_list",
        lambda doc: as_list(path(doc.root, "FeatureTypeList", "FeatureType")),
    ),
    ExtractionStrategy("feature_type_anywhere", lambda doc: find_all(doc.root, "FeatureType")),
]


def feature_type_nodes(doc: XMLDocument) -> list[dict[str, Any]]:
    """All FeatureType nodes of a document (dicts only)."""
    nodes = run_strategies(FEATURE_TYPE_STRATEGIES, doc, "FeatureType") or []
    return [node for node in nodes if isinstance(node, dict)]


# -- Field helpers -------------------------------------------------------------


def _name(node: dict) -> Optional[str]:
    return text(child(node, "Name")) or attr(node, "name") or text(child(node, "TypeName"))


def _float(value: Any) -> Optional[float]:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def _corner(value: Any) -> Optional[list[float]]:
    raw = text(value)
    if not raw:
        return None
    parts = raw.replace(",", " ").split()
    if len(parts) < 2:
        return None
    lon, lat = _float(parts[0]), _float(parts[1])
    if lon is None or lat is None:
        return None
    return [lon, lat]


def parse_wgs84_bbox(node: Any) -> Optional[BoundingBox]:
    """WFS 1.1.0/2.0.0 ``WGS84BoundingBox`` with LowerCorner/UpperCorner."""
    lower = _corner(child(node, "LowerCorner"))
    upper = _corner(child(node, "UpperCorner"))
    if lower is None or upper is None:
        return None
    return BoundingBox(lower=lower, upper=upper)


def parse_latlong_bbox(node: Any) -> Optional[BoundingBox]:
    """WFS 1.0.0 style ``LatLongBoundingBox`` with minx/miny/maxx/maxy attributes."""
    values = [_float(attr(node, key)) for key in ("minx", "miny", "maxx", "maxy")]
    if any(v is None for v in values):
        return None
    minx, miny, maxx, maxy = values
    return BoundingBox(lower=[minx, miny], upper=[maxx, maxy])


def extract_bbox(node: Any) -> Optional[BoundingBox]:
    """Bounding box in either encoding; multiple boxes are merged."""
    boxes = [parse_wgs84_bbox(n) for n in as_list(child(node, "WGS84BoundingBox"))]
    if not any(boxes):
        boxes = [parse_latlong_bbox(n) for n in as_list(child(node, "LatLongBoundingBox"))]

    result = None
    for bbox in boxes:
        if bbox is not None:
            result = bbox if result is None else result.union(bbox)
    return result


def _crs(node: dict) -> tuple[Optional[str], list[str]]:
    default = (
        text(child(node, "DefaultCRS"))
        or text(child(node, "DefaultSRS"))
        or text(child(node, "SRS"))
    )
    others = (
        texts(child(node, "OtherCRS"))
        + texts(child(node, "OtherSRS"))
        + texts(child(node, "SRS"))
    )
    return default, [crs for crs in _dedupe(others) if crs != default]


def _output_formats(node: dict) -> list[str]:
    formats = texts(path(node, "OutputFormats", "Format"))
    if not formats:
        formats = texts(child(node, "Format"))
    return _dedupe(formats)


def _explicit_keywords(node: dict) -> list[str]:
    keywords: list[str] = []
    for entry in as_list(child(node, "Keywords")):
        if isinstance(entry, dict) and child(entry, "Keyword") is not None:
            keywords.extend(texts(child(entry, "Keyword")))
        else:
            # WFS 1.0.0: comma separated text
            raw = text(entry)
            if raw:
                keywords.extend(k.strip() for k in raw.split(","))
    keywords.extend(texts(child(node, "Keyword")))

    for metadata_url in as_list(child(node, "MetadataURL")):
        link = attr(metadata_url, "href") or text(metadata_url) or ""
        if "inspire" in link.lower():
            keywords.append("INSPIRE")
    return _dedupe(keywords)


def _theme_codes(
    node: dict,
    name: str,
    title: Optional[str],
    abstract: Optional[str],
    policy: CategoryPolicy,
) -> list[str]:
    codes: list[str] = []
    for element in THEME_ELEMENTS:
        for value in texts(find_all(node, element)):
            code = value.strip().lower()
            # Accept full register URIs as well as bare codes
            code = code.rstrip("/").rsplit("/", 1)[-1]
            if code in policy.theme_codes:
                codes.append(code)

    prefix_code = theme_code_from_name(name, policy)
    if prefix_code:
        codes.append(prefix_code)

    codes.extend(theme_codes_from_text(name, title, abstract, policy=policy))
    return _dedupe(codes)


# -- Public API ----------------------------------------------------------------


def extract_layer(node: dict, policy: Optional[CategoryPolicy] = None) -> Optional[LayerMetadata]:
    """Build LayerMetadata from one FeatureType node.

    Args:
        node: Normalized FeatureType node
        policy: Classification tables

    Returns:
        LayerMetadata, or None when the entry has no name
    """
    policy = policy or DEFAULT_POLICY
    name = _name(node)
    if not name:
        logger.debug("Dropping FeatureType without name")
        return None

    title = text(child(node, "Title"))
    abstract = text(child(node, "Abstract"))
    default_crs, other_crs = _crs(node)

    keywords = _explicit_keywords(node) or synthesize_keywords(name, title, abstract, policy)

    return LayerMetadata(
        name=name,
        title=title,
        abstract=abstract,
        default_crs=default_crs,
        other_crs=other_crs,
        output_formats=_output_formats(node),
        bbox=extract_bbox(node),
        keywords=keywords,
        inspire_theme_codes=_theme_codes(node, name, title, abstract, policy),
        geometry_type=infer_geometry_type(name, title, abstract, policy),
        feature_type=categorize(name, title, abstract, policy),
    )


def extract_layers(
    doc: XMLDocument, policy: Optional[CategoryPolicy] = None
) -> list[LayerMetadata]:
    """Extract all named layers of a document, in document order.

    Duplicate names keep their first occurrence.
    """
    layers = []
    seen = set()
    for node in feature_type_nodes(doc):
        layer = extract_layer(node, policy)
        if layer is None or layer.name in seen:
            continue
        seen.add(layer.name)
        layers.append(layer)
    return layers
