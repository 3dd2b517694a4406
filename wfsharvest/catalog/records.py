"""Persisted catalog records.

Field names follow the catalog tables the harvester writes into
(``wfs_streams`` / ``wfs_layers``), which is why they are German.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from wfsharvest.core.models import BoundingBox, LayerMetadata, ServiceMetadata


class StreamRecord(BaseModel):
    """One WFS endpoint, keyed by URL."""

    id: Optional[int] = None
    url: str = Field(..., min_length=1)
    service_title: Optional[str] = None
    service_abstract: Optional[str] = None
    wfs_version: Optional[str] = None
    provider_name: Optional[str] = None
    provider_site: Optional[str] = None
    unterstuetzte_crs: list[str] = Field(default_factory=list)
    standard_outputformate: list[str] = Field(default_factory=list)
    bbox_wgs84: Optional[BoundingBox] = None
    layer_anzahl: int = 0
    land_code: Optional[str] = None
    land_name: Optional[str] = None
    bundesland_oder_region: Optional[str] = None
    inspire_konform: bool = False
    url_syntax_valid: bool = False
    server_reachable: bool = False
    xml_response_valid: bool = False
    validation_notes: Optional[str] = None
    zuletzt_geprueft: Optional[datetime] = None
    ist_aktiv: bool = True
    letzter_fehler: Optional[str] = None

    @staticmethod
    def metadata_fields(service: ServiceMetadata) -> dict[str, Any]:
        """Record fields derived from parsed service metadata."""
        return {
            "service_title": service.title,
            "service_abstract": service.abstract,
            "wfs_version": service.version,
            "provider_name": service.provider_name,
            "provider_site": service.provider_site,
            "unterstuetzte_crs": list(service.supported_crs),
            "standard_outputformate": list(service.output_formats),
            "bbox_wgs84": service.bbox,
            "land_code": service.land_code,
            "land_name": service.land_name,
            "bundesland_oder_region": service.region,
            "inspire_konform": service.is_inspire,
        }

    @classmethod
    def from_metadata(cls, url: str, service: ServiceMetadata, **fields: Any) -> "StreamRecord":
        return cls(url=url, **cls.metadata_fields(service), **fields)


class LayerRecord(BaseModel):
    """One FeatureType, owned by exactly one stream."""

    id: Optional[int] = None
    wfs_id: int
    name: str = Field(..., min_length=1)
    titel: Optional[str] = None
    abstract: Optional[str] = None
    default_crs: Optional[str] = None
    weitere_crs: list[str] = Field(default_factory=list)
    outputformate: list[str] = Field(default_factory=list)
    bbox_wgs84: Optional[BoundingBox] = None
    schluesselwoerter: list[str] = Field(default_factory=list)
    inspire_thema_codes: list[str] = Field(default_factory=list)
    geometrietyp: Optional[str] = None
    feature_typ: Optional[str] = None
    ist_abfragbar: Optional[bool] = None
    zuletzt_describe_geprueft: Optional[datetime] = None
    letzter_fehler: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Layer name must not be empty")
        return v

    @classmethod
    def from_metadata(cls, wfs_id: int, layer: LayerMetadata) -> "LayerRecord":
        return cls(
            wfs_id=wfs_id,
            name=layer.name,
            titel=layer.title,
            abstract=layer.abstract,
            default_crs=layer.default_crs,
            weitere_crs=list(layer.other_crs),
            outputformate=list(layer.output_formats),
            bbox_wgs84=layer.bbox,
            schluesselwoerter=list(layer.keywords),
            inspire_thema_codes=list(layer.inspire_theme_codes),
            geometrietyp=layer.geometry_type,
            feature_typ=layer.feature_type,
        )
