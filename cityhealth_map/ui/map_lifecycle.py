"""Lifecycle of the one shared map surface.

Uses python-statemachine for the surface lifecycle:

States:
    UNINITIALIZED: No surface yet (or after a full unmount)
    READY: Surface created with the initial theme
    THEMED: Surface whose theme was swapped at least once

Transitions:
    UNINITIALIZED -> READY: initialize (first time a container is available)
    READY -> THEMED, THEMED -> THEMED: apply_theme (tile URL swapped in place)
    READY/THEMED -> UNINITIALIZED: teardown (full unmount only)

MapLifecycleManager is the only owner of the surface. Everything else (cluster
layers, camera moves, size invalidation, control placement) goes through it.
Mounting is idempotent: the host calls mount() on every Streamlit run and on
every mode switch, but the surface is created exactly once. A missing
container defers initialization to the next mount() call instead of raising.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from math import log2
from typing import Any

import numpy as np
from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from cityhealth_map.constants import CameraConfig, MapConfig, TileConfig
from cityhealth_map.core.clustering import project_to_pixels
from cityhealth_map.core.geo_calculator import GeoCalculator
from cityhealth_map.model.coordinates import Coordinates
from cityhealth_map.model.provider import ProviderEntity
from cityhealth_map.ui.map_backend import MapBackend, SurfaceNotReadyError
from cityhealth_map.ui.tile_layer import tile_urls_for_theme

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraMove:
    """One requested camera animation."""

    target: Coordinates
    zoom: float
    duration_s: float
    reason: str = ""


@dataclass
class MapSurface:
    """State of the shared map viewport.

    Attributes:
        center: Current (or animating-to) camera center
        zoom: Current (or animating-to) zoom
        theme: Active tile theme
        control_position: Corner of the zoom control
        width_px: Container width
        height_px: Container height
        size_generation: Bumped by every size invalidation
        camera: Last camera move sent to the backend (most recent wins)
        cluster_groups: Cluster groups attached to the surface
    """

    center: Coordinates
    zoom: float
    theme: str = TileConfig.LIGHT
    control_position: str = MapConfig.CONTROL_POSITION_LTR
    width_px: int = MapConfig.DEFAULT_WIDTH_PX
    height_px: int = MapConfig.DEFAULT_HEIGHT_PX
    size_generation: int = 0
    camera: CameraMove | None = None
    cluster_groups: list[str] = field(default_factory=list)


@dataclass
class MapLifecycleContext:
    """Model of the lifecycle state machine.

    Note: The 'state' field is managed by python-statemachine when this
    object is passed as the model.
    """

    state: str | None = None

    surface: MapSurface | None = None
    initialized: bool = False
    mount_attempts: int = 0

    # Requested settings; applied at mount when the surface does not exist yet
    theme: str = TileConfig.LIGHT
    rtl: bool = False
    fullscreen: bool = False
    pending_camera: CameraMove | None = None
    user_position: Coordinates | None = None

    def clear(self) -> None:
        self.surface = None
        self.initialized = False
        self.pending_camera = None


class LifecycleLogListener:
    """Logs every lifecycle transition."""

    def after_transition(self, event: str, source: State, target: State) -> None:
        logger.info(f"[STATE] {source.name} --({event})--> {target.name}")


class MapLifecycleMachine(StateMachine):
    """State machine of the shared map surface."""

    # ==========================================================================
    # State Definitions
    # ==========================================================================

    uninitialized = State("Uninitialized", initial=True)
    ready = State("Ready")
    themed = State("Themed")

    # ==========================================================================
    # Transitions
    # ==========================================================================

    initialize = uninitialized.to(ready)
    apply_theme = ready.to(themed) | themed.to(themed)
    teardown = ready.to(uninitialized) | themed.to(uninitialized)

    # ==========================================================================
    # State Check Properties
    # ==========================================================================

    @property
    def is_uninitialized(self) -> bool:
        return self.uninitialized.is_active

    @property
    def has_surface(self) -> bool:
        """Ready with or without a swapped theme."""
        return self.ready.is_active or self.themed.is_active

    # ==========================================================================
    # Transition Actions
    # ==========================================================================

    def before_initialize(self, surface: MapSurface) -> None:
        self.context.surface = surface
        self.context.initialized = True

    def before_apply_theme(self, theme: str) -> None:
        self.context.surface.theme = theme

    def on_enter_uninitialized(self) -> None:
        self.context.clear()

    # ==========================================================================
    # Initialization
    # ==========================================================================

    def __init__(self, context: MapLifecycleContext | None = None) -> None:
        model = context or MapLifecycleContext()
        super().__init__(model=model)

    @property
    def context(self) -> MapLifecycleContext:
        return self.model

    def get_state_name(self) -> str:
        return self.current_state.name

    def try_transition(self, event: str, **kwargs: Any) -> bool:
        """Attempt a transition, returning success/failure."""
        try:
            self.send(event, **kwargs)
            return True
        except TransitionNotAllowed:
            logger.warning(f"[STATE] Transition '{event}' not allowed from {self.get_state_name()}")
            return False

    def __repr__(self) -> str:
        return f"MapLifecycleMachine(state={self.get_state_name()})"


ReadyCallback = Callable[["MapLifecycleManager"], None]


class MapLifecycleManager:
    """Single owner of the shared map surface.

    Example:
        lifecycle = MapLifecycleManager(backend=PydeckMapBackend())
        lifecycle.mount(container)   # creates the surface once
        lifecycle.set_theme("dark")  # swaps tiles only
        lifecycle.fly_to(coords)     # camera move
    """

    def __init__(self, backend: MapBackend, theme: str = TileConfig.LIGHT, rtl: bool = False) -> None:
        self.backend = backend
        self.context = MapLifecycleContext(theme=theme, rtl=rtl)
        self.machine = MapLifecycleMachine(context=self.context)
        self.machine.add_listener(LifecycleLogListener())
        self._ready_callbacks: list[ReadyCallback] = []

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_ready(self) -> bool:
        return self.machine.has_surface

    @property
    def surface(self) -> MapSurface | None:
        return self.context.surface

    def require_surface(self) -> MapSurface:
        if self.context.surface is None:
            raise SurfaceNotReadyError("Map surface has not been created")
        return self.context.surface

    def on_ready(self, callback: ReadyCallback) -> None:
        """Run callback after the surface is created (immediately if it exists)."""
        self._ready_callbacks.append(callback)
        if self.is_ready:
            callback(self)

    def _control_position(self) -> str:
        return MapConfig.CONTROL_POSITION_RTL if self.context.rtl else MapConfig.CONTROL_POSITION_LTR

    # =========================================================================
    # MOUNT / TEARDOWN
    # =========================================================================

    def mount(self, container: Any) -> bool:
        """Create the surface the first time a container is available.

        Returns:
            True if the surface exists after the call, False if initialization
            was deferred (container not attached yet).
        """
        if self.context.initialized:
            return True

        self.context.mount_attempts += 1
        if container is None:
            logger.info(f"[MAP] Container not attached, mount deferred (attempt {self.context.mount_attempts})")
            return False

        center = Coordinates(lat=MapConfig.START_CENTER_LAT, lon=MapConfig.START_CENTER_LON)
        position = self._control_position()
        try:
            self.backend.create_surface(container, center, MapConfig.DEFAULT_ZOOM, position)
        except SurfaceNotReadyError as e:
            logger.info(f"[MAP] Mount deferred: {e}")
            return False

        surface = MapSurface(
            center=center,
            zoom=MapConfig.DEFAULT_ZOOM,
            theme=self.context.theme,
            control_position=position,
        )
        self.machine.send("initialize", surface=surface)
        self.backend.set_tile_layer(tile_urls_for_theme(self.context.theme), TileConfig.ATTRIBUTION)

        if self.context.user_position is not None:
            self.backend.set_user_marker(self.context.user_position)

        if self.context.pending_camera is not None:
            move = self.context.pending_camera
            self.context.pending_camera = None
            self._send_camera(move)

        for callback in list(self._ready_callbacks):
            callback(self)
        return True

    def teardown(self) -> None:
        """Destroy the surface (full unmount of the map experience)."""
        if not self.is_ready:
            return
        self.backend.destroy_surface()
        self.machine.try_transition("teardown")

    # =========================================================================
    # THEME / LAYOUT
    # =========================================================================

    def set_theme(self, theme: str) -> bool:
        """Swap the tile source in place. Markers and camera are untouched.

        Returns:
            True if the tiles were swapped on a live surface.
        """
        if theme not in TileConfig.THEMES:
            logger.warning(f"[MAP] Unknown theme '{theme}' ignored")
            return False
        self.context.theme = theme
        if not self.is_ready:
            return False
        if self.context.surface.theme == theme:
            return False
        self.backend.set_tile_layer(tile_urls_for_theme(theme), TileConfig.ATTRIBUTION)
        return self.machine.try_transition("apply_theme", theme=theme)

    def set_rtl(self, rtl: bool) -> None:
        """Mirror the zoom control for right-to-left scripts."""
        self.context.rtl = rtl
        if not self.is_ready:
            return
        position = self._control_position()
        if position != self.context.surface.control_position:
            self.backend.set_control_position(position)
            self.context.surface.control_position = position

    def invalidate_size(self) -> bool:
        """Re-measure the container after a layout change."""
        if not self.is_ready:
            return False
        self.backend.invalidate_size()
        self.context.surface.size_generation += 1
        logger.debug(f"[MAP] Size invalidated (generation {self.context.surface.size_generation})")
        return True

    def resize(self, width_px: int, height_px: int) -> bool:
        """Record a new container size and invalidate if it changed."""
        surface = self.context.surface
        if surface is None or (surface.width_px, surface.height_px) == (width_px, height_px):
            return False
        surface.width_px = width_px
        surface.height_px = height_px
        return self.invalidate_size()

    def toggle_fullscreen(self) -> bool:
        """Flip full-screen presentation; the size changes so it is invalidated."""
        self.context.fullscreen = not self.context.fullscreen
        self.invalidate_size()
        return self.context.fullscreen

    # =========================================================================
    # CLUSTER GROUPS
    # =========================================================================

    def add_cluster_group(self, group_id: str, radius_px: float, disable_at_zoom: float) -> None:
        """Attach a cluster group.

        Raises:
            SurfaceNotReadyError: If the surface does not exist yet.
        """
        surface = self.require_surface()
        if group_id in surface.cluster_groups:
            return
        self.backend.add_cluster_group(group_id, radius_px, disable_at_zoom)
        surface.cluster_groups.append(group_id)

    def remove_cluster_group(self, group_id: str) -> None:
        surface = self.context.surface
        if surface is None or group_id not in surface.cluster_groups:
            return
        self.backend.remove_cluster_group(group_id)
        surface.cluster_groups.remove(group_id)

    # =========================================================================
    # CAMERA
    # =========================================================================

    def fly_to(
        self,
        target: Coordinates,
        zoom: float = CameraConfig.DETAIL_ZOOM,
        duration_s: float = CameraConfig.FLY_DURATION_S,
        reason: str = "",
    ) -> bool:
        """Animate the camera. A newer move replaces any move still in flight.

        Before the surface exists the move is kept and played at mount.

        Returns:
            True if the move was sent to the backend.
        """
        target = Coordinates(lat=GeoCalculator.clamp_lat(target.lat), lon=GeoCalculator.clamp_lon(target.lon))
        zoom = min(max(zoom, MapConfig.MIN_ZOOM), MapConfig.MAX_ZOOM)
        move = CameraMove(target=target, zoom=zoom, duration_s=duration_s, reason=reason)
        if not self.is_ready:
            self.context.pending_camera = move
            return False
        self._send_camera(move)
        return True

    def _send_camera(self, move: CameraMove) -> None:
        surface = self.context.surface
        if surface.camera is not None and surface.camera != move:
            logger.debug(f"[MAP] Camera move '{surface.camera.reason}' superseded by '{move.reason}'")
        self.backend.fly_to(move.target, move.zoom, move.duration_s)
        surface.camera = move
        surface.center = move.target
        surface.zoom = move.zoom

    def set_user_position(self, position: Coordinates | None) -> None:
        """Show (or hide with None) the user location dot."""
        self.context.user_position = position
        if self.is_ready:
            self.backend.set_user_marker(position)

    def fit_bounds(
        self,
        points: Sequence[Coordinates],
        padding_px: int = MapConfig.FIT_BOUNDS_PADDING_PX,
        max_zoom: float = MapConfig.FIT_BOUNDS_MAX_ZOOM,
    ) -> bool:
        """Fly to the smallest view containing all points (capped at max_zoom)."""
        finite = [p for p in points if p.is_finite]
        if not finite:
            return False
        surface = self.context.surface
        width = surface.width_px if surface else MapConfig.DEFAULT_WIDTH_PX
        height = surface.height_px if surface else MapConfig.DEFAULT_HEIGHT_PX

        lons = np.array([p.lon for p in finite], dtype=float)
        lats = np.array([p.lat for p in finite], dtype=float)
        px, py = project_to_pixels(lons, lats, zoom=0)
        span_x = float(px.max() - px.min())
        span_y = float(py.max() - py.min())

        usable_w = max(width - 2 * padding_px, 1)
        usable_h = max(height - 2 * padding_px, 1)
        zoom = float(max_zoom)
        if span_x > 0:
            zoom = min(zoom, log2(usable_w / span_x))
        if span_y > 0:
            zoom = min(zoom, log2(usable_h / span_y))

        center = Coordinates(
            lat=float((lats.min() + lats.max()) / 2),
            lon=float((lons.min() + lons.max()) / 2),
        )
        return self.fly_to(center, zoom=zoom, reason="fit_bounds")

    # =========================================================================
    # LINKS
    # =========================================================================

    @staticmethod
    def directions_url(entity: ProviderEntity) -> str:
        """Google Maps directions link to a provider."""
        return MapConfig.DIRECTIONS_URL.format(lat=entity.lat, lon=entity.lon)

    def __repr__(self) -> str:
        return f"MapLifecycleManager(state={self.machine.get_state_name()}, surface={self.context.surface})"
