"""Tests for cityhealth_map data model classes.

Tests: Coordinates, ProviderEntity, DisplayEntity, MarkerStyle, IssueCollector
Focus: Record parsing, delegation, style purity

Note: Fixtures are defined in conftest.py (provider factories, recording backend).
"""

import math

import pytest

from cityhealth_map.constants import MarkerConfig, ProviderType, StyleConfig
from cityhealth_map.model.coordinates import Coordinates
from cityhealth_map.model.issue import DuplicateIdIssue, InvalidCoordinatesIssue, IssueCollector
from cityhealth_map.model.provider import DisplayEntity, ProviderEntity
from cityhealth_map.ui.marker_style import marker_style_for

from conftest import make_provider


# =============================================================================
# TESTS FOR MODEL CLASSES
# =============================================================================


class TestCoordinates:
    """Coordinates - the geometry atom."""

    def test_lat_lon_property(self) -> None:
        """lat_lon returns (lat, lon) tuple - standard geographic order."""
        assert Coordinates(lat=35.2, lon=-0.63).lat_lon == (35.2, -0.63)

    def test_lon_lat_property(self) -> None:
        """lon_lat returns (lon, lat) tuple - GeoJSON/Pydeck order."""
        assert Coordinates(lat=35.2, lon=-0.63).lon_lat == (-0.63, 35.2)

    def test_from_dict_accepts_lng(self) -> None:
        assert Coordinates.from_dict({"lat": "35.2", "lng": -0.63}) == Coordinates(lat=35.2, lon=-0.63)

    def test_from_dict_missing_values_are_not_finite(self) -> None:
        """Broken records are kept (not raised on) so the reconciler can report them."""
        coords = Coordinates.from_dict({"lat": None, "lon": "n/a"})
        assert math.isnan(coords.lat) and math.isnan(coords.lon)
        assert not coords.is_finite

    @pytest.mark.parametrize(
        "lat, lon, expected",
        [
            (35.2, -0.63, True),
            (95.0, 200.0, True),  # out of range but finite
            (float("nan"), 0.0, False),
            (0.0, float("inf"), False),
        ],
    )
    def test_is_finite(self, lat: float, lon: float, expected: bool) -> None:
        assert Coordinates(lat=lat, lon=lon).is_finite == expected


class TestProviderEntity:
    """ProviderEntity - immutable record from the data layer."""

    def test_from_dict_upstream_field_names(self) -> None:
        """Upstream records use name/isOpen/emergency/lat/lng."""
        entity = ProviderEntity.from_dict(
            {
                "id": 42,
                "type": ProviderType.BLOOD_CABIN,
                "name": "CTS Sidi Bel Abbès",
                "address": "Boulevard de la République",
                "lat": 35.19,
                "lng": -0.64,
                "isOpen": True,
                "emergency": False,
                "bloodTypes": ["O-", "A+"],
                "urgentNeed": True,
            }
        )
        assert entity.id == "42"
        assert entity.display_name == "CTS Sidi Bel Abbès"
        assert entity.coordinates == Coordinates(lat=35.19, lon=-0.64)
        assert entity.is_open_now and not entity.is_emergency_capable
        assert entity.blood_types == ("O-", "A+")
        assert entity.urgent_need

    def test_to_dict_from_dict_preserves_record(self) -> None:
        entity = make_provider("p1", ProviderType.PHARMACY, specialty="Garde de nuit")
        assert ProviderEntity.from_dict(entity.to_dict()) == entity

    def test_null_optional_fields_become_empty(self) -> None:
        entity = ProviderEntity.from_dict(
            {"id": "x", "type": ProviderType.DOCTOR, "lat": 35.0, "lon": -0.6, "specialty": None, "phone": None}
        )
        assert entity.specialty == "" and entity.phone == "" and entity.blood_types == ()

    @pytest.mark.parametrize(
        "flag,expected",
        [
            (True, True),
            (False, False),
            (1, True),
            (0, False),
            ("true", True),
            ("True", True),
            ("1", True),
            ("yes", True),
            ("false", False),
            ("0", False),
            ("", False),
            (None, False),
        ],
    )
    def test_string_flags_parsed(self, flag: object, expected: bool) -> None:
        entity = ProviderEntity.from_dict(
            {
                "id": "x",
                "type": ProviderType.HOSPITAL,
                "lat": 35.0,
                "lng": -0.6,
                "isOpen": flag,
                "emergency": flag,
                "urgentNeed": flag,
            }
        )
        assert entity.is_open_now is expected
        assert entity.is_emergency_capable is expected
        assert entity.urgent_need is expected

    def test_non_string_type_rejected(self) -> None:
        with pytest.raises(TypeError):
            ProviderEntity.from_dict({"id": "x", "type": 3, "lat": 35.0, "lng": -0.6})


class TestDisplayEntity:
    """DisplayEntity - per-pass annotation of a provider."""

    def test_delegates_to_entity(self) -> None:
        provider = make_provider("c1", ProviderType.CLINIC, display_name="Clinique El Amal", is_emergency_capable=True)
        display = DisplayEntity(entity=provider, distance_from_user_km=1.5, is_selected=True)
        assert display.id == "c1"
        assert display.type == ProviderType.CLINIC
        assert display.coordinates == provider.coordinates
        assert display.display_name == "Clinique El Amal"
        assert display.is_emergency_capable
        assert display.has_distance

    def test_unknown_distance(self) -> None:
        display = DisplayEntity(entity=make_provider("c1"))
        assert not display.has_distance
        assert "?" in repr(display)


class TestIssueCollector:
    """IssueCollector - non-fatal problems of the latest pass."""

    def test_report_and_clear(self) -> None:
        collector = IssueCollector()
        assert not collector
        collector.report(InvalidCoordinatesIssue(entity_id="a", lat=float("nan"), lon=0.0))
        collector.report(DuplicateIdIssue(entity_id="b"))
        assert len(collector) == 2
        assert collector.entity_ids() == {"a", "b"}
        assert "invalid coordinates" in collector.issues[0].message
        assert "more than once" in str(collector.issues[1])

        collector.clear()
        assert len(collector) == 0


class TestMarkerStyle:
    """marker_style_for - pure function of (type, is_selected, is_emergency)."""

    def test_same_inputs_equal_styles(self) -> None:
        assert marker_style_for(ProviderType.PHARMACY, False, False) == marker_style_for(
            ProviderType.PHARMACY, False, False
        )

    def test_type_encodes_color_and_glyph(self) -> None:
        style = marker_style_for(ProviderType.PHARMACY, False, False)
        fill, border = StyleConfig.TYPE_COLORS_RGBA[ProviderType.PHARMACY]
        assert style.fill_color == tuple(fill)
        assert style.border_color == tuple(border)
        assert style.glyph == StyleConfig.TYPE_GLYPHS[ProviderType.PHARMACY]
        assert style.radius_px == MarkerConfig.RADIUS_PX
        assert not style.pulsing and style.z_boost == 0

    def test_selected_grows_and_draws_on_top(self) -> None:
        normal = marker_style_for(ProviderType.CLINIC, False, False)
        selected = marker_style_for(ProviderType.CLINIC, True, False)
        assert selected.radius_px > normal.radius_px
        assert selected.border_px > normal.border_px
        assert selected.border_color == tuple(MarkerConfig.SELECTED_BORDER_COLOR)
        assert selected.z_boost == MarkerConfig.SELECTED_Z_BOOST
        assert selected.glyph == normal.glyph

    def test_emergency_uses_alert_palette_and_pulses(self) -> None:
        style = marker_style_for(ProviderType.HOSPITAL, False, True)
        assert style.fill_color == tuple(StyleConfig.EMERGENCY_COLORS_RGBA[0])
        assert style.glyph == StyleConfig.EMERGENCY_GLYPH
        assert style.pulsing

    def test_unknown_type_falls_back(self) -> None:
        style = marker_style_for("veterinary", False, False)
        assert style.fill_color == tuple(StyleConfig.FALLBACK_COLORS_RGBA[0])
        assert style.glyph == StyleConfig.FALLBACK_GLYPH

    def test_layer_fields_are_lists(self) -> None:
        fields = marker_style_for(ProviderType.LAB, True, False).to_layer_fields()
        assert fields["fill_color"] == list(StyleConfig.TYPE_COLORS_RGBA[ProviderType.LAB][0])
        assert fields["radius"] == MarkerConfig.SELECTED_RADIUS_PX
