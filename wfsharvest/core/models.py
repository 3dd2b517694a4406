"""Metadata models produced by the capabilities parser.

These models are the normalized view of a GetCapabilities document:
- BoundingBox: WGS84 extent as lower/upper [lon, lat] pairs
- ServiceMetadata: service-level fields (title, provider, versions, ...)
- LayerMetadata: one entry per FeatureType
- ParseResult: tagged outcome of parsing a whole document
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

# Placeholders used when a service does not declare title or abstract
UNKNOWN_SERVICE_TITLE = "Unbekannter WFS-Service"
NO_ABSTRACT = "Keine Beschreibung verfügbar"


class BoundingBox(BaseModel):
    """Geographic extent in EPSG:4326 with [lon, lat] corners.

    Examples:
        >>> bbox = BoundingBox(lower=[11.0, 51.0], upper=[15.0, 53.5])
        >>> bbox.model_dump()
        {'lower': [11.0, 51.0], 'upper': [15.0, 53.5], 'crs': 'EPSG:4326'}
    """

    lower: list[float] = Field(..., min_length=2, max_length=2, description="[lon, lat]")
    upper: list[float] = Field(..., min_length=2, max_length=2, description="[lon, lat]")
    crs: str = Field("EPSG:4326", description="CRS of the corner coordinates")

    def union(self, other: "BoundingBox") -> "BoundingBox":
        """Smallest box containing both boxes."""
        return BoundingBox(
            lower=[min(self.lower[0], other.lower[0]), min(self.lower[1], other.lower[1])],
            upper=[max(self.upper[0], other.upper[0]), max(self.upper[1], other.upper[1])],
            crs=self.crs,
        )

    def contained_in(
        self, min_lon: float, min_lat: float, max_lon: float, max_lat: float
    ) -> bool:
        """Check whether the whole box lies inside an envelope."""
        return (
            self.lower[0] >= min_lon
            and self.upper[0] <= max_lon
            and self.lower[1] >= min_lat
            and self.upper[1] <= max_lat
        )

    def as_tuple(self) -> tuple[float, float, float, float]:
        """Return (minx, miny, maxx, maxy)."""
        return (self.lower[0], self.lower[1], self.upper[0], self.upper[1])


class ServiceMetadata(BaseModel):
    """Service-level metadata of a WFS endpoint."""

    title: str = Field(UNKNOWN_SERVICE_TITLE, min_length=1)
    abstract: str = Field(NO_ABSTRACT, min_length=1)
    version: str = Field("1.1.0", description="Preferred protocol version")
    versions: list[str] = Field(default_factory=list, description="All advertised versions")
    provider_name: Optional[str] = None
    provider_site: Optional[str] = None
    supported_crs: list[str] = Field(default_factory=list)
    output_formats: list[str] = Field(default_factory=list)
    bbox: Optional[BoundingBox] = None
    keywords: list[str] = Field(default_factory=list)
    inspire_theme_codes: list[str] = Field(default_factory=list)
    is_inspire: bool = False

    # Filled in by region inference
    land_code: Optional[str] = None
    land_name: Optional[str] = None
    region: Optional[str] = None


class LayerMetadata(BaseModel):
    """Metadata for one FeatureType."""

    name: str = Field(..., min_length=1, description="Technical name, e.g. cp:CadastralParcel")
    title: Optional[str] = None
    abstract: Optional[str] = None
    default_crs: Optional[str] = None
    other_crs: list[str] = Field(default_factory=list)
    output_formats: list[str] = Field(default_factory=list)
    bbox: Optional[BoundingBox] = None
    keywords: list[str] = Field(default_factory=list)
    inspire_theme_codes: list[str] = Field(default_factory=list)
    geometry_type: Optional[str] = None
    feature_type: Optional[str] = Field(None, description="Smart category or None")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        """Reject whitespace-only names."""
        v = v.strip()
        if not v:
            raise ValueError("Layer name must not be empty")
        return v

    @property
    def display_title(self) -> str:
        """Title for display, falling back to the technical name."""
        return self.title or self.name


class ParseResult(BaseModel):
    """Tagged outcome of parsing a capabilities document.

    ``success`` is False only when the document could not be read as a
    capabilities document at all. A valid document with zero layers is a
    success with ``layer_count == 0``.
    """

    success: bool
    service: Optional[ServiceMetadata] = None
    layers: list[LayerMetadata] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def layer_count(self) -> int:
        """Number of extracted layers."""
        return len(self.layers)

    @classmethod
    def ok(cls, service: ServiceMetadata, layers: list[LayerMetadata]) -> "ParseResult":
        return cls(success=True, service=service, layers=layers)

    @classmethod
    def failure(cls, error: str) -> "ParseResult":
        return cls(success=False, error=error or "Unbekannter Parser-Fehler")
