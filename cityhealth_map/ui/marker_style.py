"""Marker visuals derived from provider type, selection and emergency state.

marker_style_for() is pure: the same (type, is_selected, is_emergency) always
yields an equal MarkerStyle, which is what lets the reconciler detect
"visual inputs changed" by comparing styles.
"""

from functools import lru_cache

from cityhealth_map.constants import MarkerConfig, StyleConfig
from cityhealth_map.model.marker import MarkerStyle


@lru_cache(maxsize=64)
def marker_style_for(provider_type: str, is_selected: bool, is_emergency: bool) -> MarkerStyle:
    """Build the marker visual.

    Emergency markers use the red palette, the ambulance glyph and pulse.
    Selected markers grow, get a thicker green ring and draw on top.
    Unknown provider types get a neutral fallback instead of an error.
    """
    if is_emergency:
        fill, border = StyleConfig.EMERGENCY_COLORS_RGBA
        glyph = StyleConfig.EMERGENCY_GLYPH
    else:
        fill, border = StyleConfig.TYPE_COLORS_RGBA.get(provider_type, StyleConfig.FALLBACK_COLORS_RGBA)
        glyph = StyleConfig.TYPE_GLYPHS.get(provider_type, StyleConfig.FALLBACK_GLYPH)

    if is_selected:
        return MarkerStyle(
            fill_color=tuple(fill),
            border_color=tuple(MarkerConfig.SELECTED_BORDER_COLOR),
            radius_px=MarkerConfig.SELECTED_RADIUS_PX,
            border_px=MarkerConfig.SELECTED_BORDER_PX,
            glyph=glyph,
            pulsing=is_emergency,
            z_boost=MarkerConfig.SELECTED_Z_BOOST,
        )
    return MarkerStyle(
        fill_color=tuple(fill),
        border_color=tuple(border),
        radius_px=MarkerConfig.RADIUS_PX,
        border_px=MarkerConfig.BORDER_PX,
        glyph=glyph,
        pulsing=is_emergency,
    )
