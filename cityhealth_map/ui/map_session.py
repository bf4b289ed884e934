"""MapSession - the map engine as seen by the surrounding UI.

One MapSession lives in Streamlit session state for the whole map
experience. It wires the collaborators together:

    ProviderSource --snapshot--> FilterPipeline (+ geolocation, selection)
        --> display set --> MarkerReconciler (active ClusterLayer)
        --> MapLifecycleManager's surface

and exposes what the UI needs: the current display set for list views, the
selection for detail cards, and the select_provider / locate_user /
set_filters / set_mode / retry entry points. Filter state round-trips through
the page query string so a shared link reproduces the view.

Every pass is stamped with a generation from a monotonic counter; the
reconciler drops a plan older than the last one applied. Rendering errors
are logged and swallowed here so they never reach the host application.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any

from cityhealth_map.constants import MapMode, TileConfig
from cityhealth_map.core.filter_pipeline import FilterPipeline, ProviderFilters
from cityhealth_map.core.geolocation import GeolocationService, GeolocationState
from cityhealth_map.core.provider_source import ProviderSnapshot, ProviderSource
from cityhealth_map.core.query_params import decode_filters, encode_filters
from cityhealth_map.model.coordinates import Coordinates
from cityhealth_map.model.issue import ReconcileIssue
from cityhealth_map.model.provider import DisplayEntity, ProviderEntity
from cityhealth_map.ui.cluster_layer import ClusterLayerRegistry, LayerHandle
from cityhealth_map.ui.map_backend import CityHealthMapError, MapBackend
from cityhealth_map.ui.map_lifecycle import MapLifecycleManager
from cityhealth_map.ui.reconciler import ReconciliationPlan
from cityhealth_map.ui.selection import SelectionController, SelectionState

logger = logging.getLogger(__name__)


class MapSession:
    """Owns one map experience: surface, layers, selection and data flow.

    Example:
        session = MapSession(source=InMemoryProviderSource.from_records(records), backend=PydeckMapBackend())
        session.mount(container)
        session.set_filters(types={"pharmacy"})
        session.select_provider("12")
    """

    def __init__(
        self,
        source: ProviderSource,
        backend: MapBackend,
        geolocation: GeolocationService | None = None,
        filters: ProviderFilters | None = None,
        theme: str = TileConfig.LIGHT,
        rtl: bool = False,
    ) -> None:
        self.source = source
        self.geolocation = geolocation or GeolocationService()
        self.lifecycle = MapLifecycleManager(backend=backend, theme=theme, rtl=rtl)
        self.selection = SelectionController(self.lifecycle)
        self.layers = ClusterLayerRegistry(self.lifecycle, on_select=self.select_provider)
        self.selection.attach_layers(self.layers)

        self.filters = filters or ProviderFilters()
        self.entities: tuple[ProviderEntity, ...] = ()
        self.display_entities: list[DisplayEntity] = []
        self.data_error: str | None = None
        self.data_version = 0

        self._generation = 0
        self._unsubscribe: Callable[[], None] | None = None
        self._last_position: Coordinates | None = self.geolocation.position

        self.geolocation.add_listener(self._on_position)
        self.lifecycle.on_ready(self._on_surface_ready)
        self._activate_mode(self.filters.mode)

    # =========================================================================
    # READ SIDE (for list views and detail cards)
    # =========================================================================

    @property
    def mode(self) -> str:
        return self.filters.mode

    @property
    def selection_state(self) -> SelectionState:
        return self.selection.state

    @property
    def user_position(self) -> Coordinates | None:
        return self.geolocation.position

    @property
    def active_layer(self) -> LayerHandle | None:
        return self.layers.active_handle

    @property
    def selected_entity(self) -> ProviderEntity | None:
        """Selected provider, even when the filters hide it from the map."""
        selected_id = self.selection.selected_id
        if selected_id is None:
            return None
        return next((e for e in self.entities if e.id == selected_id), None)

    @property
    def issues(self) -> list[ReconcileIssue]:
        handle = self.layers.active_handle
        return list(handle.reconciler.issues.issues) if handle else []

    def available_types(self) -> list[str]:
        return FilterPipeline.available_types(self.entities, self.mode)

    # =========================================================================
    # MOUNT / TEARDOWN
    # =========================================================================

    def mount(self, container: Any) -> bool:
        """Create the surface on first call with a container (idempotent)."""
        return self.lifecycle.mount(container)

    def teardown(self) -> None:
        """Full unmount: stop the subscription, drop layers and the surface."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.layers.clear()
        self.lifecycle.teardown()

    def _on_surface_ready(self, lifecycle: MapLifecycleManager) -> None:
        # Layers were attached by the registry's own ready callback
        self.refresh()

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def select_provider(self, entity_id: str | None) -> bool:
        """Select a provider (None deselects). Only two markers are restyled."""
        try:
            changed = self.selection.select(entity_id)
        except CityHealthMapError as e:
            logger.error(f"[SELECT] Selection of {entity_id} failed on the map: {e}")
            return False
        if changed:
            self.display_entities = [
                replace(d, is_selected=d.id == entity_id) if d.is_selected or d.id == entity_id else d
                for d in self.display_entities
            ]
        return changed

    def locate_user(self) -> bool:
        """Fly to the user position; requests one when it is unknown."""
        position = self.geolocation.position
        if position is None:
            self.geolocation.request()
            return False
        try:
            return self.selection.locate_user(position)
        except CityHealthMapError as e:
            logger.error(f"[MAP] Locate failed: {e}")
            return False

    def set_filters(self, filters: ProviderFilters | None = None, **changes: Any) -> ProviderFilters:
        """Replace the filters (or change some fields) and refresh the map.

        Example:
            session.set_filters(query="pharm", open_now=True)
        """
        if "types" in changes:
            changes["types"] = frozenset(changes["types"])
        new_filters = filters if filters is not None else replace(self.filters, **changes)
        if new_filters == self.filters:
            return self.filters

        mode_changed = new_filters.mode != self.filters.mode
        self.filters = new_filters
        logger.info(f"[FILTER] {encode_filters(new_filters)}")
        if mode_changed:
            self._activate_mode(new_filters.mode)
        else:
            self.refresh()
        return self.filters

    def set_mode(self, mode: str) -> None:
        """Navigate to another map mode; the surface stays, only the layer changes."""
        if not MapMode.is_valid(mode):
            raise ValueError(f"Unknown map mode '{mode}'")
        self.set_filters(self.filters.with_mode(mode))

    def retry(self) -> bool:
        """Re-request the current mode's collection after a fetch failure."""
        logger.info(f"[DATA] Retrying mode '{self.mode}'")
        snapshot = self.source.snapshot(self.mode)
        self._on_snapshot(snapshot)
        return snapshot.ok

    def set_theme(self, theme: str) -> bool:
        return self.lifecycle.set_theme(theme)

    # =========================================================================
    # QUERY STRING
    # =========================================================================

    def query_params(self) -> dict[str, str]:
        return encode_filters(self.filters)

    def apply_query_params(self, params: Mapping[str, str | list[str]]) -> ProviderFilters:
        """Restore filters from a shared link."""
        return self.set_filters(decode_filters(params, default_mode=self.mode))

    # =========================================================================
    # PASSES
    # =========================================================================

    def build_pass(self) -> ReconciliationPlan | None:
        """Recompute the display set and diff it against the active layer.

        Returns:
            Plan stamped with the next generation, or None if no layer exists.
        """
        self.display_entities = FilterPipeline.compute_display_set(
            entities=self.entities,
            filters=self.filters,
            user_position=self.geolocation.position,
            selected_id=self.selection.selected_id,
        )
        handle = self.layers.active_handle
        if handle is None:
            return None
        self._generation += 1
        return handle.reconciler.reconcile(None, self.display_entities, generation=self._generation)

    def apply_pass(self, plan: ReconciliationPlan | None) -> bool:
        """Apply a plan to the layer it was built for."""
        if plan is None:
            return False
        handle = self.layers.get(plan.layer_key)
        if handle is None:
            logger.info(f"[RECONCILE] Layer '{plan.layer_key}' is gone, plan {plan.generation} discarded")
            return False
        if not handle.attached:
            # Applied again once the surface is ready
            return False
        try:
            return handle.reconciler.apply(plan)
        except CityHealthMapError as e:
            logger.error(f"[RECONCILE] Pass {plan.generation} failed on the map: {e}")
            return False

    def refresh(self) -> bool:
        return self.apply_pass(self.build_pass())

    # =========================================================================
    # COLLABORATOR CALLBACKS
    # =========================================================================

    def _activate_mode(self, mode: str) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        # Old layer is torn down before the new one is registered
        self.layers.switch_mode(mode)
        self.entities = ()
        self.display_entities = []
        self.data_error = None
        self._unsubscribe = self.source.subscribe(mode, self._on_snapshot)

    def _on_snapshot(self, snapshot: ProviderSnapshot) -> None:
        if snapshot.mode != self.mode:
            logger.debug(f"[DATA] Snapshot for inactive mode '{snapshot.mode}' ignored")
            return
        if not snapshot.ok:
            # Previously rendered markers stay on the map
            self.data_error = snapshot.error
            logger.warning(f"[DATA] Keeping current markers, fetch failed: {snapshot.error}")
            return
        self.data_error = None
        self.data_version = snapshot.version
        self.entities = snapshot.entities
        self.refresh()

    def _on_position(self, state: GeolocationState) -> None:
        position = state.position if state.has_location else None
        if position == self._last_position:
            return
        self._last_position = position
        try:
            self.lifecycle.set_user_position(position)
        except CityHealthMapError as e:
            logger.error(f"[MAP] User marker update failed: {e}")
        self.refresh()

    def __repr__(self) -> str:
        return (
            f"MapSession(mode={self.mode}, entities={len(self.entities)}, "
            f"displayed={len(self.display_entities)}, selected={self.selection.selected_id})"
        )
