"""MarkerStyle and LiveMarker - the rendered side of a provider.

MarkerStyle is the marker visual: a value object derived only from the
provider type, its selection flag and its emergency state.

LiveMarker is the engine's record of one marker drawn on the active cluster
layer. It is keyed by provider id, created on first appearance, restyled in
place on later passes and removed when the id leaves the display set.
"""

from dataclasses import dataclass
from typing import Any

from cityhealth_map.model.coordinates import Coordinates


@dataclass(frozen=True)
class MarkerStyle:
    """Visual state of one marker.

    Colors are RGBA tuples (0-255) as deck.gl expects them.

    Attributes:
        fill_color: Marker body color (encodes provider type)
        border_color: Outline color
        radius_px: Marker radius in screen pixels (grows when selected)
        border_px: Outline width in screen pixels (grows when selected)
        glyph: Emoji drawn inside the marker
        pulsing: Emergency pulse animation active
        z_boost: Draw-order boost (selected markers on top)
    """

    fill_color: tuple[int, int, int, int]
    border_color: tuple[int, int, int, int]
    radius_px: int
    border_px: int
    glyph: str
    pulsing: bool = False
    z_boost: int = 0

    def to_layer_fields(self) -> dict[str, Any]:
        """Flatten into the per-row fields consumed by pydeck layers."""
        return {
            "fill_color": list(self.fill_color),
            "border_color": list(self.border_color),
            "radius": self.radius_px,
            "border": self.border_px,
            "glyph": self.glyph,
            "pulsing": self.pulsing,
        }


@dataclass
class LiveMarker:
    """A marker currently drawn on a cluster layer.

    Attributes:
        entity_id: Provider id (key in the live-marker index)
        layer_key: Mode key of the cluster layer holding the marker
        handle: Opaque handle returned by the map backend
        coordinates: Position the marker was created at
        style: Last style applied
        tooltip: Hover text (provider name)
    """

    entity_id: str
    layer_key: str
    handle: Any
    coordinates: Coordinates
    style: MarkerStyle
    tooltip: str = ""

    def __repr__(self) -> str:
        return f"LiveMarker({self.entity_id}@{self.layer_key}, r={self.style.radius_px})"
