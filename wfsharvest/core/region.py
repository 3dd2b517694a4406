"""Country and region inference for WFS services.

Two tiers, tried in order:
1. Text: title, abstract and provider are scanned for country names and
   region names (Bundesländer, Austrian Länder, Swiss cantons/cities,
   French regions).
2. Bounding box: the service extent is matched against rough per-country
   envelopes.

If neither tier finds a country, the policy default is used. The shipped
default is Germany / "Unbekannt" because the harvested corpus is mostly
German. Change it via RegionPolicy (or the ``region`` section of a policy
YAML file) when harvesting elsewhere.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from wfsharvest.core.models import BoundingBox

BBOX_REGION = "Aus BBox abgeleitet"


@dataclass(frozen=True)
class RegionInfo:
    """Result of region inference."""

    land_code: str
    land_name: str
    region: str
    source: str  # "text", "bbox" or "default"


class CountryRule(BaseModel):
    """Detection rule for one country."""

    code: str = Field(..., description="ISO 3166 alpha-2 code")
    name: str = Field(..., description="Display name")
    terms: list[str] = Field(default_factory=list, description="Country-level text terms")
    regions: dict[str, list[str]] = Field(
        default_factory=dict, description="Region name -> text terms"
    )
    envelope: Optional[tuple[float, float, float, float]] = Field(
        None, description="(min_lon, min_lat, max_lon, max_lat)"
    )


def _default_countries() -> list[CountryRule]:
    return [
        CountryRule(
            code="DE",
            name="Deutschland",
            terms=["deutschland", "germany", "bundesrepublik"],
            regions={
                "Baden-Württemberg": [
                    "baden-württemberg",
                    "baden-wuerttemberg",
                    "baden württemberg",
                ],
                "Bayern": ["bayern", "bavaria", "bayerisch"],
                "Berlin": ["berlin"],
                "Brandenburg": ["brandenburg"],
                "Bremen": ["bremen"],
                "Hamburg": ["hamburg"],
                "Hessen": ["hessen", "hessisch"],
                "Mecklenburg-Vorpommern": ["mecklenburg", "vorpommern"],
                "Niedersachsen": ["niedersachsen", "niedersächsisch"],
                "Nordrhein-Westfalen": ["nordrhein-westfalen", "nordrhein westfalen", "nrw"],
                "Rheinland-Pfalz": ["rheinland-pfalz", "rheinland pfalz", "rlp"],
                "Saarland": ["saarland"],
                "Sachsen-Anhalt": ["sachsen-anhalt", "sachsen anhalt"],
                "Sachsen": ["sachsen", "sächsisch"],
                "Schleswig-Holstein": ["schleswig-holstein", "schleswig holstein"],
                "Thüringen": ["thüringen", "thueringen"],
            },
            envelope=(5.0, 47.0, 16.0, 55.0),
        ),
        CountryRule(
            code="AT",
            name="Österreich",
            terms=["österreich", "oesterreich", "austria"],
            regions={
                "Wien": ["wien", "vienna"],
                "Niederösterreich": ["niederösterreich", "niederoesterreich"],
                "Oberösterreich": ["oberösterreich", "oberoesterreich"],
                "Salzburg": ["salzburg"],
                "Tirol": ["tirol"],
                "Steiermark": ["steiermark"],
                "Kärnten": ["kärnten", "kaernten"],
                "Vorarlberg": ["vorarlberg"],
                "Burgenland": ["burgenland"],
            },
            envelope=(9.0, 46.0, 18.0, 49.0),
        ),
        CountryRule(
            code="CH",
            name="Schweiz",
            terms=["schweiz", "switzerland", "suisse", "svizzera"],
            regions={
                "Zürich": ["zürich", "zuerich", "zurich"],
                "Bern": ["bern"],
                "Genf": ["genf", "genève", "geneve", "geneva"],
                "Basel": ["basel"],
                "Luzern": ["luzern"],
                "St. Gallen": ["st. gallen", "sankt gallen"],
                "Tessin": ["tessin", "ticino"],
            },
            envelope=(5.0, 45.0, 11.0, 48.0),
        ),
        CountryRule(
            code="FR",
            name="Frankreich",
            terms=["frankreich", "france"],
            regions={
                "Île-de-France": ["île-de-france", "ile-de-france", "paris"],
                "Auvergne-Rhône-Alpes": ["auvergne", "rhône-alpes", "rhone-alpes", "lyon"],
                "Provence-Alpes-Côte d'Azur": ["provence", "marseille"],
                "Occitanie": ["occitanie", "toulouse"],
                "Grand Est": ["grand est", "alsace", "elsass", "lorraine", "strasbourg"],
                "Nouvelle-Aquitaine": ["nouvelle-aquitaine", "bordeaux"],
                "Bretagne": ["bretagne", "rennes"],
            },
            envelope=(-5.0, 41.0, 10.0, 51.0),
        ),
    ]


class RegionPolicy(BaseModel):
    """Country tables and the fallback used when nothing is detected.

    Countries are checked in list order for both tiers.
    """

    model_config = {"frozen": True}

    countries: list[CountryRule] = Field(default_factory=_default_countries)
    default_country_code: str = Field("DE", description="Fallback country code")
    default_country_name: str = Field("Deutschland", description="Fallback country name")
    default_region: str = Field("Unbekannt", description="Region when none is detected")


DEFAULT_REGION_POLICY = RegionPolicy()


def _contains(text: str, term: str) -> bool:
    # A term must not continue a preceding word ("sachsen" in "niedersachsen")
    return re.search(r"(?<![^\W\d_])" + re.escape(term), text) is not None


def _match_region(text: str, rule: CountryRule) -> Optional[str]:
    candidates = [(term, region) for region, terms in rule.regions.items() for term in terms]
    # Longer terms first: "sachsen-anhalt" wins over "sachsen"
    candidates.sort(key=lambda item: len(item[0]), reverse=True)
    for term, region in candidates:
        if _contains(text, term):
            return region
    return None


def detect_region_from_text(
    text: str, policy: Optional[RegionPolicy] = None
) -> Optional[RegionInfo]:
    """Text tier. Returns None when no country is recognized."""
    policy = policy or DEFAULT_REGION_POLICY
    lowered = (text or "").lower()
    if not lowered.strip():
        return None

    for rule in policy.countries:
        region = _match_region(lowered, rule)
        if region is not None:
            return RegionInfo(rule.code, rule.name, region, "text")
        if any(_contains(lowered, term) for term in rule.terms):
            return RegionInfo(rule.code, rule.name, policy.default_region, "text")
    return None


def detect_region_from_bbox(
    bbox: Optional[BoundingBox], policy: Optional[RegionPolicy] = None
) -> Optional[RegionInfo]:
    """Bounding-box tier. The whole box must fit inside a country envelope."""
    policy = policy or DEFAULT_REGION_POLICY
    if bbox is None:
        return None
    for rule in policy.countries:
        if rule.envelope is not None and bbox.contained_in(*rule.envelope):
            return RegionInfo(rule.code, rule.name, BBOX_REGION, "bbox")
    return None


def detect_region(
    texts: Iterable[Optional[str]],
    bbox: Optional[BoundingBox] = None,
    policy: Optional[RegionPolicy] = None,
) -> RegionInfo:
    """Infer country and region from text, then bbox, then the policy default.

    Args:
        texts: Title, abstract, provider name, ... (None entries are skipped)
        bbox: Optional WGS84 extent
        policy: Country tables and default

    Returns:
        RegionInfo (never None)

    Examples:
        >>> detect_region(["ALKIS Berlin Flurstücke"]).region
        'Berlin'
    """
    policy = policy or DEFAULT_REGION_POLICY
    text = " ".join(t for t in texts if t)

    info = detect_region_from_text(text, policy)
    if info is None:
        info = detect_region_from_bbox(bbox, policy)
    if info is None:
        info = RegionInfo(
            policy.default_country_code,
            policy.default_country_name,
            policy.default_region,
            "default",
        )
    return info
