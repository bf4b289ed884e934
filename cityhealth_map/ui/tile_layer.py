"""Raster basemap styles for the provider map (light and dark themes).

Builds a Mapbox GL style dict with a single raster basemap source.
This is the deck.gl approach for XYZ raster tiles: pydeck's TileLayer alone
only fetches tiles and needs a renderSubLayers callback that pydeck does not
expose to Python.

The style dict defines:
- sources: Where to fetch tiles (a/b/c subdomains for parallel loading)
- layers: How to render them (as raster with zoom limits)

Swapping the theme only swaps the tile URLs inside the style; the map surface,
its camera and its markers are untouched.
"""

import logging

from cityhealth_map.constants import TileConfig

logger = logging.getLogger(__name__)


def tile_urls_for_theme(theme: str) -> list[str]:
    """Tile URL templates for a theme; unknown themes fall back to light."""
    if theme not in TileConfig.URLS:
        logger.warning(f"[MAP] Unknown theme '{theme}', using '{TileConfig.LIGHT}'")
        theme = TileConfig.LIGHT
    return list(TileConfig.URLS[theme])


def raster_style(tile_urls: list[str], attribution: str = TileConfig.ATTRIBUTION) -> dict[str, object]:
    """Build a Mapbox GL style dict rendering the given raster tiles.

    Requires map_provider="mapbox" in pdk.Deck() (works without API key for raster).
    """
    return {
        "version": 8,
        "sources": {
            "basemap": {
                "type": "raster",
                "tiles": list(tile_urls),
                "tileSize": TileConfig.TILE_SIZE_PX,
                "attribution": attribution,
            }
        },
        "layers": [
            {
                "id": "basemap",
                "type": "raster",
                "source": "basemap",
                "minzoom": 0,
                "maxzoom": TileConfig.MAX_ZOOM,
            }
        ],
    }
