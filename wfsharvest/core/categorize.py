"""Smart categorization of WFS layers.

Pure, table-driven classification of layer text (name, title, abstract):
- smart category from a closed vocabulary (Flurstücke, Gebäudeumrisse, ...)
- synthesized keywords when a layer declares none
- INSPIRE theme codes (cp, bu, hy, ...)
- geometry type (Point, LineString, Polygon, MultiGeometry)

All lookup tables live in a CategoryPolicy, so they can be replaced or
extended (e.g. loaded from YAML) without touching the matching code.

Usage:
    from wfsharvest.core.categorize import categorize

    categorize("ALKIS_Flurstueck", "Flurstücke Berlin")  # -> "Flurstücke"
"""

import re
from typing import Iterable, Optional

from pydantic import BaseModel, Field, field_validator

# Closed vocabulary, in priority order
PARCELS = "Flurstücke"
BUILDINGS = "Gebäudeumrisse"
ADDRESSES = "Adressen"
STREETS = "Straßennetz"
WATER = "Gewässernetz"

SMART_CATEGORIES: tuple[str, ...] = (PARCELS, BUILDINGS, ADDRESSES, STREETS, WATER)

DEFAULT_CATEGORY_TERMS: dict[str, list[str]] = {
    PARCELS: [
        "flurstück",
        "flurstueck",
        "flur",
        "cadastral",
        "parcel",
        "grundstück",
        "grundstueck",
        "parzell",
        "kataster",
        "liegenschaft",
        "ax_flurstueck",
    ],
    BUILDINGS: [
        "gebäude",
        "gebaeude",
        "hausumring",
        "building",
        "bauwerk",
        "bau_",
        "house",
        "construction",
        "ax_gebaeude",
        "bu_building",
    ],
    ADDRESSES: [
        "adresse",
        "address",
        "anschrift",
        "hausnummer",
        "hauskoordinate",
        "ad_address",
    ],
    STREETS: [
        "straße",
        "strasse",
        "street",
        "road",
        "verkehr",
        "transport",
        "autobahn",
        "highway",
        "tn_",
    ],
    WATER: [
        "gewässer",
        "gewaesser",
        "wasser",
        "fluss",
        "teich",
        "hydro",
        "water",
        "river",
        "lake",
        "hy_",
    ],
}

DEFAULT_KEYWORD_TERMS: dict[str, list[str]] = {
    "Flurstück": ["flur", "cadastral", "parcel", "kataster", "liegenschaft", "grundstück"],
    "Gebäude": ["gebäude", "gebaeude", "building", "hausumring", "bauwerk"],
    "Adresse": ["adresse", "address", "hauskoordinate", "anschrift", "hausnummer"],
    "Straße": ["straße", "strasse", "street", "road", "verkehr"],
    "Wasser": ["wasser", "gewässer", "gewaesser", "water", "hydro", "river"],
    "Verwaltung": [
        "verwaltung",
        "administrative",
        "gemeinde",
        "landkreis",
        "bezirk",
        "grenze",
    ],
    "Schutzgebiet": ["schutzgebiet", "protected", "naturschutz", "natura 2000", "natura2000"],
    "Nutzung": ["nutzung", "landuse", "land use", "bebauungsplan", "bauleitplan"],
}

# INSPIRE theme code -> text terms
DEFAULT_THEME_TERMS: dict[str, list[str]] = {
    "cp": ["cadastral", "flurstück", "flurstueck", "flur", "parcel"],
    "bu": ["building", "gebäude", "gebaeude", "hausumring"],
    "ad": ["address", "adresse", "hauskoordinate"],
    "au": ["administrative unit", "verwaltungseinheit", "verwaltungsgrenze"],
    "hy": ["hydro", "wasser", "gewässer", "gewaesser"],
    "tn": ["transport", "verkehr", "straß", "strasse"],
    "ps": ["protected site", "schutzgebiet"],
    "lu": ["land use", "landnutzung", "flächennutzung"],
    "gn": ["geographical name", "geografische namen", "geographische namen"],
}

# Official INSPIRE theme identifiers (Annex I-III)
INSPIRE_THEME_CODES: tuple[str, ...] = (
    "ac", "ad", "af", "am", "au", "br", "bu", "cp", "ef", "el", "er", "ge",
    "gg", "gn", "hb", "hh", "hy", "lc", "lu", "mf", "mr", "nz", "of", "oi",
    "pd", "pf", "ps", "rs", "sd", "so", "sr", "su", "tn", "us",
)

DEFAULT_GEOMETRY_TERMS: dict[str, list[str]] = {
    "Point": ["point", "punkt"],
    "LineString": ["line", "linie", "straß", "strasse"],
    "Polygon": ["polygon", "fläche", "flaeche", "gebäude", "gebaeude", "flur"],
    "MultiGeometry": ["multi"],
}

_THEME_URI = re.compile(r"inspire\.ec\.europa\.eu/theme/([a-z]{2})\b", re.IGNORECASE)
_THEME_PREFIX = re.compile(r"^([a-z]{2})(?:-[a-z0-9]+)?:", re.IGNORECASE)


class CategoryPolicy(BaseModel):
    """Replaceable lookup tables for layer classification.

    The category table only accepts names from SMART_CATEGORIES and is
    always evaluated in that fixed order, whatever order it was given in.

    Examples:
        >>> policy = CategoryPolicy(categories={"Gewässernetz": ["kanal"]})
        >>> categorize("Kanalnetz", policy=policy)
        'Gewässernetz'
    """

    model_config = {"frozen": True}

    categories: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CATEGORY_TERMS.items()},
        description="Smart category -> lowercase substrings",
    )
    keyword_terms: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_KEYWORD_TERMS.items()},
        description="Synthesized keyword -> lowercase substrings",
    )
    theme_terms: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_THEME_TERMS.items()},
        description="INSPIRE theme code -> lowercase substrings",
    )
    geometry_terms: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_GEOMETRY_TERMS.items()},
        description="Geometry type -> lowercase substrings",
    )
    theme_codes: tuple[str, ...] = Field(
        INSPIRE_THEME_CODES, description="Recognized INSPIRE theme codes"
    )

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        """Restrict to the closed vocabulary and apply the fixed priority order."""
        unknown = set(v) - set(SMART_CATEGORIES)
        if unknown:
            raise ValueError(
                f"Unknown smart categories: {sorted(unknown)}. "
                f"Allowed: {', '.join(SMART_CATEGORIES)}"
            )
        return {name: [t.lower() for t in v[name]] for name in SMART_CATEGORIES if name in v}

    @field_validator("keyword_terms", "theme_terms", "geometry_terms")
    @classmethod
    def lowercase_terms(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        return {key: [t.lower() for t in terms] for key, terms in v.items()}


DEFAULT_POLICY = CategoryPolicy()


def _join(parts: Iterable[Optional[str]]) -> str:
    return " ".join(p for p in parts if p).lower()


def _first_match(text: str, table: dict[str, list[str]]) -> Optional[str]:
    for key, terms in table.items():
        if any(term in text for term in terms):
            return key
    return None


def categorize(
    name: Optional[str],
    title: Optional[str] = None,
    abstract: Optional[str] = None,
    policy: Optional[CategoryPolicy] = None,
) -> Optional[str]:
    """Assign a smart category, or None when no keyword matches.

    Args:
        name: Technical layer name
        title: Human title
        abstract: Layer abstract
        policy: Lookup tables (default: DEFAULT_POLICY)

    Returns:
        One of SMART_CATEGORIES or None
    """
    policy = policy or DEFAULT_POLICY
    text = _join((name, title, abstract))
    if not text:
        return None
    return _first_match(text, policy.categories)


def synthesize_keywords(
    name: Optional[str],
    title: Optional[str] = None,
    abstract: Optional[str] = None,
    policy: Optional[CategoryPolicy] = None,
) -> list[str]:
    """Derive keywords from layer text via the keyword table.

    Returns a deduplicated list in table order.
    """
    policy = policy or DEFAULT_POLICY
    text = _join((name, title, abstract))
    return [
        keyword
        for keyword, terms in policy.keyword_terms.items()
        if any(term in text for term in terms)
    ]


def theme_codes_from_text(
    *texts: Optional[str], policy: Optional[CategoryPolicy] = None
) -> list[str]:
    """Find INSPIRE theme codes mentioned in free text.

    Recognizes theme register URIs (inspire.ec.europa.eu/theme/cp) and
    the domain terms of the theme table.
    """
    policy = policy or DEFAULT_POLICY
    text = _join(texts)
    codes: list[str] = []

    for match in _THEME_URI.finditer(text):
        code = match.group(1).lower()
        if code in policy.theme_codes and code not in codes:
            codes.append(code)

    for code, terms in policy.theme_terms.items():
        if code not in codes and any(term in text for term in terms):
            codes.append(code)

    return codes


def theme_code_from_name(name: str, policy: Optional[CategoryPolicy] = None) -> Optional[str]:
    """Theme code encoded in a namespace prefix (``cp:CadastralParcel`` -> ``cp``)."""
    policy = policy or DEFAULT_POLICY
    match = _THEME_PREFIX.match(name or "")
    if match and match.group(1).lower() in policy.theme_codes:
        return match.group(1).lower()
    return None


def infer_geometry_type(
    name: Optional[str],
    title: Optional[str] = None,
    abstract: Optional[str] = None,
    policy: Optional[CategoryPolicy] = None,
) -> Optional[str]:
    """Guess the geometry type from layer text. None if nothing matches."""
    policy = policy or DEFAULT_POLICY
    return _first_match(_join((name, title, abstract)), policy.geometry_terms)
