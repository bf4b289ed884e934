"""Cluster layers - one independently addressable marker layer per map mode.

Each mode (providers / emergency / blood) renders its markers into its own
cluster group on the shared surface. The registry guarantees:

- at most one layer per mode key; registering again returns the same handle
- switching modes removes the old layer before the new one is registered,
  so two modes are never visible at the same time
- a layer registered before the surface exists stays pending and is attached
  when the surface becomes ready; switching away cancels it
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cityhealth_map.constants import ClusterConfig, MapMode
from cityhealth_map.ui.map_lifecycle import MapLifecycleManager
from cityhealth_map.ui.reconciler import MarkerReconciler, SelectCallback

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class LayerHandle:
    """A registered cluster layer.

    Attributes:
        mode_key: Map mode the layer renders
        group_id: Cluster group id on the surface
        radius_px: Cluster radius in screen pixels
        disable_at_zoom: Zoom at which clustering turns off
        reconciler: Owner of the layer's live markers
        attached: Cluster group exists on the surface
        cancelled: Layer was removed; it accepts no further work
    """

    mode_key: str
    group_id: str
    radius_px: float
    disable_at_zoom: float
    reconciler: MarkerReconciler
    attached: bool = False
    cancelled: bool = False

    @property
    def is_pending(self) -> bool:
        return not self.attached and not self.cancelled

    def __repr__(self) -> str:
        status = "cancelled" if self.cancelled else ("attached" if self.attached else "pending")
        return f"LayerHandle({self.mode_key}, {status}, {len(self.reconciler.live_markers)} markers)"


class ClusterLayerRegistry:
    """Registers and removes per-mode cluster layers on the shared surface.

    Example:
        registry = ClusterLayerRegistry(lifecycle, on_select=selection.select)
        handle = registry.switch_mode("emergency")
        handle.reconciler.apply(handle.reconciler.reconcile(None, display_set))
    """

    def __init__(self, lifecycle: MapLifecycleManager, on_select: SelectCallback | None = None) -> None:
        self.lifecycle = lifecycle
        self.on_select = on_select
        self.layers: dict[str, LayerHandle] = {}
        lifecycle.on_ready(self._attach_pending)

    @property
    def active_handle(self) -> LayerHandle | None:
        """The one registered layer (None when no mode is active)."""
        return next(iter(self.layers.values()), None)

    @property
    def active_mode(self) -> str | None:
        handle = self.active_handle
        return handle.mode_key if handle else None

    def get(self, mode_key: str) -> LayerHandle | None:
        return self.layers.get(mode_key)

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register_layer(self, mode_key: str) -> LayerHandle:
        """Register the cluster layer of a mode (idempotent).

        Raises:
            ValueError: If mode_key is not a map mode.
        """
        if not MapMode.is_valid(mode_key):
            raise ValueError(f"Unknown map mode '{mode_key}'")

        existing = self.layers.get(mode_key)
        if existing is not None:
            logger.debug(f"[LAYER] '{mode_key}' already registered")
            return existing

        reconciler = MarkerReconciler(
            backend=self.lifecycle.backend,
            layer_key=mode_key,
            group_id=mode_key,
            on_select=self.on_select,
            emergency_mode=mode_key == MapMode.EMERGENCY,
        )
        handle = LayerHandle(
            mode_key=mode_key,
            group_id=mode_key,
            radius_px=ClusterConfig.RADIUS_BY_MODE.get(mode_key, ClusterConfig.DEFAULT_RADIUS_PX),
            disable_at_zoom=ClusterConfig.DISABLE_CLUSTERING_AT_ZOOM,
            reconciler=reconciler,
        )
        self.layers[mode_key] = handle
        if self.lifecycle.is_ready:
            self._attach(handle)
        else:
            logger.info(f"[LAYER] '{mode_key}' registered, waiting for the map surface")
        return handle

    def remove_layer(self, mode_key: str) -> bool:
        """Remove a mode's layer and all of its markers.

        Returns:
            True if a layer was removed.
        """
        handle = self.layers.pop(mode_key, None)
        if handle is None:
            return False

        handle.cancelled = True
        handle.reconciler.cancel()
        if handle.attached:
            # Removing the group drops its markers on the surface in one call
            self.lifecycle.remove_cluster_group(handle.group_id)
            handle.attached = False
        handle.reconciler.live_markers.clear()
        logger.info(f"[LAYER] '{mode_key}' removed")
        return True

    def switch_mode(self, mode_key: str) -> LayerHandle:
        """Make mode_key the only registered layer.

        Other layers (including ones still waiting for the surface) are
        removed before the new layer is registered.
        """
        for other in [key for key in self.layers if key != mode_key]:
            self.remove_layer(other)
        return self.register_layer(mode_key)

    def clear(self) -> None:
        for mode_key in list(self.layers):
            self.remove_layer(mode_key)

    # =========================================================================
    # ATTACH
    # =========================================================================

    def _attach(self, handle: LayerHandle) -> None:
        self.lifecycle.add_cluster_group(handle.group_id, handle.radius_px, handle.disable_at_zoom)
        handle.attached = True
        logger.info(f"[LAYER] '{handle.mode_key}' attached (radius {handle.radius_px}px)")

    def _attach_pending(self, lifecycle: MapLifecycleManager) -> None:
        attached_groups = lifecycle.require_surface().cluster_groups
        for handle in self.layers.values():
            if handle.cancelled or handle.group_id in attached_groups:
                continue
            if handle.attached:
                # Surface was recreated after a teardown; its old markers are gone
                handle.reconciler.live_markers.clear()
            self._attach(handle)
