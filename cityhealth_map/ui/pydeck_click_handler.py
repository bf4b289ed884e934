"""Marker and cluster clicks from the deck.gl map.

st.pydeck_chart cannot tell which marker was clicked, so the deck is rendered
with st_deckgl (streamlit-deckgl), which hands back the raw deck.gl onClick
event. st_deckgl spreads the picked row into the event:

    empty map:  {"coordinate": [lon, lat], "eventType": "click"}
    marker:     {"type": "provider", "id": "12", "group_id": "providers", ..., "coordinate": [...]}
    cluster:    {"type": "cluster", "position": [lon, lat], "count": 4, ..., "coordinate": [...]}

The component returns its last event on every rerun, so each click is only
reported once per component instance (see bump_map_version).
"""

import logging
from dataclasses import dataclass
from typing import Any

import pydeck as pdk
import streamlit as st
from streamlit_deckgl import st_deckgl  # type: ignore[import-untyped]

from cityhealth_map.constants import AppConfig
from cityhealth_map.model.coordinates import Coordinates
from cityhealth_map.ui.map_backend import TYPE_CLUSTER, TYPE_PROVIDER

logger = logging.getLogger(__name__)

KIND_MAP = "map"

# Event keys added by deck.gl itself rather than by our layer rows
_EVENT_KEYS = ("coordinate", "eventType", "pixel", "layer", "index")


@dataclass(frozen=True)
class MapClick:
    """One click on the provider map.

    Attributes:
        kind: "provider", "cluster" or "map" (empty basemap)
        picked: The picked layer row, None for basemap clicks
        coordinate: Geographic position of the click, if reported
    """

    kind: str
    picked: dict[str, Any] | None = None
    coordinate: Coordinates | None = None

    @property
    def is_object_click(self) -> bool:
        return self.picked is not None

    @property
    def click_id(self) -> str:
        """Identity used to recognise the same event on a later rerun."""
        parts = [self.kind]
        if self.picked:
            parts.append(str(self.picked.get("id", "")))
        if self.coordinate is not None:
            parts.append(f"{self.coordinate.lon:.5f},{self.coordinate.lat:.5f}")
        return "|".join(parts)


def parse_deckgl_event(event: dict[str, Any] | None) -> MapClick | None:
    """Turn an st_deckgl click event into a MapClick (None if nothing usable)."""
    if not event:
        return None

    coordinate = None
    raw = event.get("coordinate")
    if isinstance(raw, (list, tuple)) and len(raw) >= 2:
        coordinate = Coordinates(lat=float(raw[1]), lon=float(raw[0]))

    kind = event.get("type")
    if kind in (TYPE_PROVIDER, TYPE_CLUSTER):
        picked = {k: v for k, v in event.items() if k not in _EVENT_KEYS}
        return MapClick(kind=kind, picked=picked, coordinate=coordinate)

    if coordinate is None:
        return None
    return MapClick(kind=KIND_MAP, coordinate=coordinate)


def render_pydeck_map(deck: pdk.Deck, key: str, height: int = AppConfig.MAP_HEIGHT_PX) -> MapClick | None:
    """Draw the deck and return the click made since the last rerun, if any.

    Args:
        deck: Scene from PydeckMapBackend.to_deck()
        key: Component key; changing it gives a component with no click memory
        height: Map height in pixels
    """
    seen_key = f"_map_click_seen_{key}"
    event = st_deckgl(deck, key=key, height=height, events=["click"])
    click = parse_deckgl_event(event)
    if click is None:
        return None

    if st.session_state.get(seen_key) == click.click_id:
        return None
    st.session_state[seen_key] = click.click_id
    logger.debug(f"[MAP] Click: {click.click_id}")
    return click
