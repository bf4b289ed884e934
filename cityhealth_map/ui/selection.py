"""Selection and camera control.

One SelectionController is shared by every mode view of a session. A
selection change:

1. updates SelectionState
2. restyles only the previously selected and the newly selected marker
   (through the reconciler's style-only path, never a full pass)
3. flies the camera to the new selection at detail zoom, if it is on the map

Deselecting skips the camera move. Selecting an id that is not in the
current display set (a deep link to a filtered-out provider) still updates
SelectionState but does not move the camera.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from cityhealth_map.constants import CameraConfig
from cityhealth_map.model.coordinates import Coordinates
from cityhealth_map.ui.cluster_layer import ClusterLayerRegistry
from cityhealth_map.ui.map_lifecycle import MapLifecycleManager

logger = logging.getLogger(__name__)


@dataclass
class SelectionState:
    """The single selected provider (None when nothing is selected)."""

    selected_id: str | None = None

    def is_selected(self, entity_id: str) -> bool:
        return self.selected_id is not None and self.selected_id == entity_id

    def clear(self) -> None:
        self.selected_id = None


SelectionListener = Callable[[SelectionState], None]


class SelectionController:
    """Tracks the selected provider and drives the camera.

    The registry is attached after construction because the registry's
    marker click handlers call back into select().

    Example:
        selection = SelectionController(lifecycle)
        registry = ClusterLayerRegistry(lifecycle, on_select=selection.select)
        selection.attach_layers(registry)
    """

    def __init__(self, lifecycle: MapLifecycleManager, registry: ClusterLayerRegistry | None = None) -> None:
        self.lifecycle = lifecycle
        self.registry = registry
        self.state = SelectionState()
        self._listeners: list[SelectionListener] = []

    def attach_layers(self, registry: ClusterLayerRegistry) -> None:
        self.registry = registry

    def add_listener(self, listener: SelectionListener) -> None:
        self._listeners.append(listener)

    @property
    def selected_id(self) -> str | None:
        return self.state.selected_id

    def select(self, entity_id: str | None) -> bool:
        """Select a provider (None deselects).

        Returns:
            True if the selection changed.
        """
        previous = self.state.selected_id
        if entity_id == previous:
            return False

        self.state.selected_id = entity_id
        logger.info(f"[SELECT] {previous} -> {entity_id}")

        handle = self.registry.active_handle if self.registry else None
        reconciler = handle.reconciler if handle else None
        if reconciler is not None:
            reconciler.restyle([previous, entity_id], selected_id=entity_id)

        if entity_id is not None:
            entity = reconciler.entity(entity_id) if reconciler else None
            if entity is None:
                logger.info(f"[SELECT] {entity_id} is not on the map, camera stays")
            else:
                self.lifecycle.fly_to(
                    entity.coordinates,
                    zoom=CameraConfig.DETAIL_ZOOM,
                    duration_s=CameraConfig.FLY_DURATION_S,
                    reason=f"select {entity_id}",
                )

        for listener in list(self._listeners):
            listener(self.state)
        return True

    def clear(self) -> bool:
        return self.select(None)

    def locate_user(self, position: Coordinates | None) -> bool:
        """Show the user position and fly there at locate zoom.

        Returns:
            False if the position is unknown (geolocation unavailable).
        """
        if position is None or not position.is_finite:
            logger.info("[SELECT] User position unknown, locate skipped")
            return False
        self.lifecycle.set_user_position(position)
        self.lifecycle.fly_to(
            position,
            zoom=CameraConfig.LOCATE_ZOOM,
            duration_s=CameraConfig.FLY_DURATION_S,
            reason="locate user",
        )
        return True
