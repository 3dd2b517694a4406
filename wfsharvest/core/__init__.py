"""Core models and pure classification logic."""

from wfsharvest.core.cache import TTLCache
from wfsharvest.core.categorize import (
    SMART_CATEGORIES,
    CategoryPolicy,
    categorize,
    infer_geometry_type,
    synthesize_keywords,
    theme_code_from_name,
    theme_codes_from_text,
)
from wfsharvest.core.models import (
    BoundingBox,
    LayerMetadata,
    ParseResult,
    ServiceMetadata,
)
from wfsharvest.core.region import RegionInfo, RegionPolicy, detect_region

__all__ = [
    "TTLCache",
    "SMART_CATEGORIES",
    "CategoryPolicy",
    "categorize",
    "infer_geometry_type",
    "synthesize_keywords",
    "theme_code_from_name",
    "theme_codes_from_text",
    "BoundingBox",
    "LayerMetadata",
    "ParseResult",
    "ServiceMetadata",
    "RegionInfo",
    "RegionPolicy",
    "detect_region",
]
