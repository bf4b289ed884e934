"""Map backend - the rendering collaborator behind the map engine.

The engine never draws anything itself. It calls a MapBackend for the small
set of primitives it needs:

- create/destroy the map surface
- set the tile layer source, move the zoom control, invalidate the size
- add/remove a clustering group
- create/update/remove a marker with a custom visual
- animate the camera to a coordinate at a zoom level

PydeckMapBackend keeps the resulting scene in memory and turns it into a
GPU-rendered pydeck.Deck on every Streamlit run:
- Raster basemap from the active theme (light OpenStreetMap / dark CARTO)
- Per cluster group: pixel-radius clusters (ScatterplotLayer + count TextLayer)
  and individual markers (ScatterplotLayer + glyph TextLayer)
- Emergency pulse halo under pulsing markers
- User location dot on top

Key pydeck conventions:
- Uses [lon, lat] coordinate order (GeoJSON standard)
- Colors as RGBA lists [R, G, B, A] (0-255)
- Data prepared as list[dict] for GPU streaming
- pickable=True enables click detection
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pydeck as pdk

from cityhealth_map.constants import ClusterConfig, MapConfig, MarkerConfig, TileConfig
from cityhealth_map.core.clustering import ClusterPoint, cluster_points
from cityhealth_map.model.coordinates import Coordinates
from cityhealth_map.model.marker import MarkerStyle
from cityhealth_map.ui.tile_layer import raster_style

logger = logging.getLogger(__name__)

ClickCallback = Callable[[], None]

# Object "type" values carried by pickable rows (used by click dispatch)
TYPE_PROVIDER = "provider"
TYPE_CLUSTER = "cluster"


class CityHealthMapError(Exception):
    """Base class for map engine errors."""


class SurfaceNotReadyError(CityHealthMapError):
    """The map surface does not exist (yet) or its container is detached."""


class LayerNotRegisteredError(CityHealthMapError):
    """A marker operation referenced a cluster group that is not on the map."""


class MapBackend(ABC):
    """Abstract rendering collaborator. Only the map engine calls these."""

    @abstractmethod
    def create_surface(self, container: Any, center: Coordinates, zoom: float, control_position: str) -> None:
        """Create the map surface inside container.

        Raises:
            SurfaceNotReadyError: If the container is not attached yet.
        """

    @abstractmethod
    def destroy_surface(self) -> None:
        """Tear down the surface and everything on it."""

    @abstractmethod
    def set_tile_layer(self, tile_urls: list[str], attribution: str) -> None:
        """Set (or swap in place) the raster tile source."""

    @abstractmethod
    def set_control_position(self, position: str) -> None:
        """Move the zoom control to a corner ("topleft"/"topright")."""

    @abstractmethod
    def invalidate_size(self) -> None:
        """Re-measure the container after a layout change."""

    @abstractmethod
    def add_cluster_group(self, group_id: str, radius_px: float, disable_at_zoom: float) -> None:
        """Attach an empty clustering group to the surface."""

    @abstractmethod
    def remove_cluster_group(self, group_id: str) -> None:
        """Detach a clustering group and all of its markers."""

    @abstractmethod
    def create_marker(
        self,
        group_id: str,
        marker_id: str,
        coordinates: Coordinates,
        style: MarkerStyle,
        tooltip: str,
        on_click: ClickCallback | None,
    ) -> Any:
        """Create a marker in a group and return its handle."""

    @abstractmethod
    def update_marker(
        self, handle: Any, style: MarkerStyle, coordinates: Coordinates, tooltip: str | None = None
    ) -> None:
        """Restyle (and move or relabel) an existing marker in place. A None tooltip keeps the current one."""

    @abstractmethod
    def remove_marker(self, handle: Any) -> None:
        """Remove a marker from its group."""

    @abstractmethod
    def fly_to(self, coordinates: Coordinates, zoom: float, duration_s: float) -> None:
        """Animate the camera to coordinates at zoom."""

    @abstractmethod
    def set_user_marker(self, coordinates: Coordinates | None) -> None:
        """Show the user location dot (None hides it)."""


# =============================================================================
# PYDECK BACKEND
# =============================================================================


@dataclass(eq=False)
class PydeckMarkerHandle:
    """Marker handle returned by PydeckMapBackend.

    Compared by identity: an update keeps the same handle object.
    """

    group_id: str
    marker_id: str
    coordinates: Coordinates
    style: MarkerStyle
    tooltip: str
    on_click: ClickCallback | None = None
    removed: bool = False


@dataclass
class PydeckClusterGroup:
    """Markers of one cluster group, in insertion order."""

    group_id: str
    radius_px: float
    disable_at_zoom: float
    markers: dict[str, PydeckMarkerHandle] = field(default_factory=dict)


@dataclass
class PydeckSurface:
    """In-memory state of the one map surface."""

    center: Coordinates
    zoom: float
    control_position: str
    tile_urls: list[str] = field(default_factory=list)
    attribution: str = TileConfig.ATTRIBUTION
    size_version: int = 0
    transition_duration_ms: int = 0


class PydeckMapBackend(MapBackend):
    """MapBackend rendering to a pydeck.Deck.

    Example:
        backend = PydeckMapBackend()
        lifecycle = MapLifecycleManager(backend=backend)
        ...
        deck = backend.to_deck()
    """

    def __init__(self) -> None:
        self.surface: PydeckSurface | None = None
        self.groups: dict[str, PydeckClusterGroup] = {}
        self.user_position: Coordinates | None = None

    # =========================================================================
    # SURFACE
    # =========================================================================

    def create_surface(self, container: Any, center: Coordinates, zoom: float, control_position: str) -> None:
        if container is None:
            raise SurfaceNotReadyError("Map container is not attached")
        self.surface = PydeckSurface(center=center, zoom=zoom, control_position=control_position)
        logger.info(f"[MAP] Surface created at {center} zoom {zoom}")

    def destroy_surface(self) -> None:
        self.surface = None
        self.groups.clear()
        self.user_position = None
        logger.info("[MAP] Surface destroyed")

    def _require_surface(self) -> PydeckSurface:
        if self.surface is None:
            raise SurfaceNotReadyError("Map surface has not been created")
        return self.surface

    def set_tile_layer(self, tile_urls: list[str], attribution: str) -> None:
        surface = self._require_surface()
        surface.tile_urls = list(tile_urls)
        surface.attribution = attribution

    def set_control_position(self, position: str) -> None:
        self._require_surface().control_position = position

    def invalidate_size(self) -> None:
        self._require_surface().size_version += 1

    def fly_to(self, coordinates: Coordinates, zoom: float, duration_s: float) -> None:
        surface = self._require_surface()
        surface.center = coordinates
        surface.zoom = zoom
        surface.transition_duration_ms = int(duration_s * 1000)

    def set_user_marker(self, coordinates: Coordinates | None) -> None:
        self.user_position = coordinates

    # =========================================================================
    # GROUPS AND MARKERS
    # =========================================================================

    def add_cluster_group(self, group_id: str, radius_px: float, disable_at_zoom: float) -> None:
        self._require_surface()
        if group_id in self.groups:
            return
        self.groups[group_id] = PydeckClusterGroup(
            group_id=group_id, radius_px=radius_px, disable_at_zoom=disable_at_zoom
        )

    def remove_cluster_group(self, group_id: str) -> None:
        group = self.groups.pop(group_id, None)
        if group is not None:
            for handle in group.markers.values():
                handle.removed = True

    def _require_group(self, group_id: str) -> PydeckClusterGroup:
        group = self.groups.get(group_id)
        if group is None:
            raise LayerNotRegisteredError(f"Cluster group '{group_id}' is not on the map")
        return group

    def create_marker(
        self,
        group_id: str,
        marker_id: str,
        coordinates: Coordinates,
        style: MarkerStyle,
        tooltip: str,
        on_click: ClickCallback | None,
    ) -> PydeckMarkerHandle:
        group = self._require_group(group_id)
        handle = PydeckMarkerHandle(
            group_id=group_id,
            marker_id=marker_id,
            coordinates=coordinates,
            style=style,
            tooltip=tooltip,
            on_click=on_click,
        )
        group.markers[marker_id] = handle
        return handle

    def update_marker(
        self, handle: PydeckMarkerHandle, style: MarkerStyle, coordinates: Coordinates, tooltip: str | None = None
    ) -> None:
        handle.style = style
        handle.coordinates = coordinates
        if tooltip is not None:
            handle.tooltip = tooltip

    def remove_marker(self, handle: PydeckMarkerHandle) -> None:
        group = self.groups.get(handle.group_id)
        if group is not None and group.markers.get(handle.marker_id) is handle:
            del group.markers[handle.marker_id]
        handle.removed = True

    def marker_count(self, group_id: str | None = None) -> int:
        if group_id is not None:
            group = self.groups.get(group_id)
            return len(group.markers) if group else 0
        return sum(len(g.markers) for g in self.groups.values())

    # =========================================================================
    # CLICKS
    # =========================================================================

    def dispatch_click(self, clicked_object: dict[str, Any]) -> bool:
        """Route a picked deck.gl object to its marker or cluster.

        Provider markers run their click callback. Clusters zoom the camera
        in on their centroid until they split up.

        Returns:
            True if the click was handled.
        """
        obj_type = clicked_object.get("type")
        if obj_type == TYPE_PROVIDER:
            group = self.groups.get(clicked_object.get("group_id", ""))
            handle = group.markers.get(str(clicked_object.get("id"))) if group else None
            if handle is None or handle.on_click is None:
                logger.debug(f"[MAP] Click on stale marker {clicked_object.get('id')}")
                return False
            handle.on_click()
            return True

        if obj_type == TYPE_CLUSTER and self.surface is not None:
            lon, lat = clicked_object["position"][:2]
            group = self.groups.get(clicked_object.get("group_id", ""))
            max_zoom = group.disable_at_zoom if group else ClusterConfig.DISABLE_CLUSTERING_AT_ZOOM
            zoom = min(self.surface.zoom + 2, max_zoom)
            self.fly_to(Coordinates(lat=lat, lon=lon), zoom=zoom, duration_s=0.5)
            return True

        return False

    # =========================================================================
    # DECK
    # =========================================================================

    def get_view_state(self) -> pdk.ViewState:
        """Create Pydeck ViewState from the surface camera."""
        surface = self._require_surface()
        kwargs: dict[str, Any] = {}
        if surface.transition_duration_ms > 0:
            kwargs["transition_duration"] = surface.transition_duration_ms
            kwargs["transition_interpolator"] = {"@@type": "FlyToInterpolator"}
        return pdk.ViewState(
            latitude=surface.center.lat,
            longitude=surface.center.lon,
            zoom=surface.zoom,
            min_zoom=MapConfig.MIN_ZOOM,
            max_zoom=MapConfig.MAX_ZOOM,
            pitch=0,
            bearing=0,
            **kwargs,
        )

    def to_deck(self) -> pdk.Deck:
        """Render the current scene.

        Z-order (back to front): basemap -> pulse halos -> clusters -> markers -> glyphs -> user dot
        """
        surface = self._require_surface()
        layers: list[pdk.Layer] = []
        for group in self.groups.values():
            layers.extend(self._create_group_layers(group, zoom=surface.zoom))
        if self.user_position is not None:
            layers.append(self._create_user_layer(self.user_position))

        view_state = self.get_view_state()
        # A fly-to animates once; later reruns render the camera where it ended
        surface.transition_duration_ms = 0
        return pdk.Deck(
            map_style=raster_style(surface.tile_urls, surface.attribution),
            map_provider="mapbox",  # Required when map_style is a dict
            initial_view_state=view_state,
            layers=layers,
            tooltip=self._create_tooltip_config(),
        )

    def _create_group_layers(self, group: PydeckClusterGroup, zoom: float) -> list[pdk.Layer]:
        """Create cluster and marker layers for one group at the current zoom."""
        handles = list(group.markers.values())
        if not handles:
            return []

        clusters = cluster_points(
            [ClusterPoint(id=h.marker_id, lon=h.coordinates.lon, lat=h.coordinates.lat) for h in handles],
            zoom=zoom,
            radius_px=group.radius_px,
            disable_at_zoom=group.disable_at_zoom,
        )

        marker_data = []
        cluster_data = []
        for cluster in clusters:
            if cluster.is_single:
                h = group.markers[cluster.member_ids[0]]
                marker_data.append(
                    {
                        "type": TYPE_PROVIDER,
                        "id": h.marker_id,
                        "group_id": group.group_id,
                        "position": [h.coordinates.lon, h.coordinates.lat],
                        "name": h.tooltip,
                        "z": h.style.z_boost,
                        **h.style.to_layer_fields(),
                    }
                )
            else:
                cluster_data.append(
                    {
                        "type": TYPE_CLUSTER,
                        "id": f"{group.group_id}:{cluster.member_ids[0]}",
                        "group_id": group.group_id,
                        "position": [cluster.lon, cluster.lat],
                        "count": cluster.count,
                        "label": str(cluster.count),
                        "radius": min(
                            ClusterConfig.CLUSTER_MAX_RADIUS_PX,
                            ClusterConfig.CLUSTER_MIN_RADIUS_PX + 2 * cluster.count,
                        ),
                        "name": f"{cluster.count} providers",
                    }
                )

        # Selected markers last so they draw on top
        marker_data.sort(key=lambda row: row["z"])

        layers = []
        pulsing = [row for row in marker_data if row["pulsing"]]
        if pulsing:
            layers.append(
                pdk.Layer(
                    "ScatterplotLayer",
                    pulsing,
                    get_position="position",
                    get_radius="radius * 1.6",
                    radius_units="pixels",
                    get_fill_color=[220, 38, 38, 70],
                    id=f"{group.group_id}_pulse",
                )
            )

        if cluster_data:
            layers.append(
                pdk.Layer(
                    "ScatterplotLayer",
                    cluster_data,
                    get_position="position",
                    get_radius="radius",
                    radius_units="pixels",
                    get_fill_color=ClusterConfig.CLUSTER_COLOR,
                    get_line_color=[255, 255, 255, 255],
                    stroked=True,
                    line_width_units="pixels",
                    get_line_width=3,
                    pickable=True,
                    auto_highlight=True,
                    id=f"{group.group_id}_clusters",
                )
            )
            layers.append(
                pdk.Layer(
                    "TextLayer",
                    cluster_data,
                    get_position="position",
                    get_text="label",
                    get_size=14,
                    get_color=ClusterConfig.CLUSTER_TEXT_COLOR,
                    get_text_anchor="'middle'",
                    get_alignment_baseline="'center'",
                    id=f"{group.group_id}_cluster_counts",
                )
            )

        if marker_data:
            layers.append(
                pdk.Layer(
                    "ScatterplotLayer",
                    marker_data,
                    get_position="position",
                    get_radius="radius",
                    radius_units="pixels",
                    get_fill_color="fill_color",
                    get_line_color="border_color",
                    get_line_width="border",
                    line_width_units="pixels",
                    stroked=True,
                    pickable=True,
                    auto_highlight=True,
                    id=f"{group.group_id}_markers",
                )
            )
            layers.append(
                pdk.Layer(
                    "TextLayer",
                    marker_data,
                    get_position="position",
                    get_text="glyph",
                    get_size="radius",
                    size_units="pixels",
                    get_text_anchor="'middle'",
                    get_alignment_baseline="'center'",
                    character_set="auto",
                    id=f"{group.group_id}_glyphs",
                )
            )

        return layers

    def _create_user_layer(self, position: Coordinates) -> pdk.Layer:
        return pdk.Layer(
            "ScatterplotLayer",
            [{"position": [position.lon, position.lat], "name": "Your position"}],
            get_position="position",
            get_radius=MarkerConfig.USER_LOCATION_RADIUS_PX,
            radius_units="pixels",
            get_fill_color=MarkerConfig.USER_LOCATION_COLOR,
            get_line_color=[255, 255, 255, 255],
            stroked=True,
            line_width_min_pixels=4,
            id="user_location",
        )

    def _create_tooltip_config(self) -> dict[str, str | dict[str, str]]:
        """Create Pydeck tooltip configuration - name only, details in side panel."""
        return {
            "html": "<b>{name}</b>",
            "style": {
                "backgroundColor": "rgba(255, 255, 255, 0.95)",
                "color": "#333",
                "padding": "6px 10px",
                "borderRadius": "4px",
            },
        }
