"""Unit tests for layer classification and region inference."""

import pytest
from pydantic import ValidationError

from wfsharvest.core.categorize import (
    BUILDINGS,
    PARCELS,
    WATER,
    CategoryPolicy,
    categorize,
    infer_geometry_type,
    synthesize_keywords,
    theme_code_from_name,
    theme_codes_from_text,
)
from wfsharvest.core.models import BoundingBox
from wfsharvest.core.region import BBOX_REGION, RegionPolicy, detect_region


class TestCategorize:
    """Test smart category assignment."""

    def test_parcels(self):
        """Test the canonical ALKIS parcel layer."""
        assert categorize("ALKIS_Flurstueck", "Flurstücke Berlin") == PARCELS

    def test_title_is_enough(self):
        """Test a generic name with a telling title."""
        assert categorize("layer_7", "Gebäude") == BUILDINGS

    def test_priority_order(self):
        """Test parcels win over buildings when both match."""
        assert categorize("flurstuecke_und_gebaeude") == PARCELS

    def test_no_match(self):
        """Test unknown text gives None."""
        assert categorize("bplan_festsetzung", "Festsetzungen") is None
        assert categorize(None) is None

    def test_case_insensitive(self):
        """Test matching ignores case."""
        assert categorize("HYDRO_NETZ") == WATER


class TestCategoryPolicy:
    """Test replaceable classification tables."""

    def test_unknown_category_rejected(self):
        """Test categories outside the closed vocabulary are rejected."""
        with pytest.raises(ValidationError, match="Unknown smart categories"):
            CategoryPolicy(categories={"Bäume": ["baum"]})

    def test_fixed_order(self):
        """Test table order does not change priority."""
        policy = CategoryPolicy(categories={WATER: ["netz"], PARCELS: ["netz"]})

        assert list(policy.categories) == [PARCELS, WATER]
        assert categorize("netz", policy=policy) == PARCELS

    def test_terms_lowercased(self):
        """Test terms are matched case-insensitively."""
        policy = CategoryPolicy(categories={WATER: ["KANAL"]})

        assert categorize("Kanalnetz", policy=policy) == WATER
        assert categorize("ALKIS_Flurstueck", policy=policy) is None

    def test_frozen(self):
        """Test policies cannot be mutated."""
        policy = CategoryPolicy()

        with pytest.raises(ValidationError):
            policy.categories = {}


class TestKeywordsAndThemes:
    """Test keyword synthesis, theme codes and geometry guesses."""

    def test_synthesize_keywords(self):
        """Test keywords are derived in table order."""
        assert synthesize_keywords("verwaltungsgrenzen_gemeinde") == ["Verwaltung"]
        assert synthesize_keywords("flurstueck", "Flurstück und Gebäude") == [
            "Flurstück",
            "Gebäude",
        ]
        assert synthesize_keywords("xyz") == []

    def test_theme_codes_from_text(self):
        """Test register URIs come first, then domain terms."""
        codes = theme_codes_from_text("http://inspire.ec.europa.eu/theme/bu", "Gewässer")

        assert codes == ["bu", "hy"]

    def test_unknown_register_code_ignored(self):
        """Test URIs with codes outside the register are ignored."""
        assert theme_codes_from_text("http://inspire.ec.europa.eu/theme/zz") == []

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("cp:CadastralParcel", "cp"),
            ("tn-ro:RoadLink", "tn"),
            ("xx:Something", None),
            ("plain_name", None),
        ],
    )
    def test_theme_code_from_name(self, name, expected):
        """Test namespace prefixes are read as theme codes."""
        assert theme_code_from_name(name) == expected

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("strassen_linien", "LineString"),
            ("ALKIS_Gebaeude", "Polygon"),
            ("messpunkte", "Point"),
            ("multi_area", "MultiGeometry"),
            ("abc", None),
        ],
    )
    def test_infer_geometry_type(self, name, expected):
        """Test geometry guesses from the layer name."""
        assert infer_geometry_type(name) == expected


class TestRegionDetection:
    """Test country and region inference."""

    def test_region_from_title(self):
        """Test a Bundesland in the title."""
        info = detect_region(["ALKIS Berlin Flurstücke"])

        assert (info.land_code, info.land_name, info.region, info.source) == (
            "DE",
            "Deutschland",
            "Berlin",
            "text",
        )

    def test_longest_term_wins(self):
        """Test Sachsen-Anhalt is not reported as Sachsen."""
        assert detect_region(["Gewässer Sachsen-Anhalt"]).region == "Sachsen-Anhalt"

    def test_term_must_start_a_word(self):
        """Test Niedersachsen is not reported as Sachsen."""
        assert detect_region(["Geodaten Niedersachsen"]).region == "Niedersachsen"

    def test_country_term_without_region(self):
        """Test a country name alone gives the default region."""
        info = detect_region(["Daten aus Österreich"])

        assert info.land_code == "AT"
        assert info.region == "Unbekannt"

    def test_other_country_region(self):
        """Test regions outside Germany."""
        info = detect_region(["Stadtplan Zürich"])

        assert info.land_code == "CH"
        assert info.region == "Zürich"

    def test_bbox_tier(self):
        """Test the extent is used when the text says nothing."""
        bbox = BoundingBox(lower=[13.0, 52.0], upper=[13.5, 52.5])
        info = detect_region(["Flurstücke"], bbox)

        assert info.land_code == "DE"
        assert info.region == BBOX_REGION
        assert info.source == "bbox"

    def test_bbox_outside_first_envelope(self):
        """Test countries are tried in order for the extent."""
        bbox = BoundingBox(lower=[7.0, 46.0], upper=[8.0, 47.0])

        assert detect_region([], bbox).land_code == "CH"

    def test_default(self):
        """Test the policy default when nothing matches."""
        info = detect_region([None, ""])

        assert (info.land_code, info.region, info.source) == ("DE", "Unbekannt", "default")

    def test_custom_default(self):
        """Test the default can be replaced."""
        policy = RegionPolicy(
            default_country_code="AT", default_country_name="Österreich", default_region="-"
        )
        info = detect_region(["nichts"], policy=policy)

        assert (info.land_code, info.land_name, info.region) == ("AT", "Österreich", "-")
