"""Marker reconciliation - keeps the drawn markers in sync with the display set.

A pass has two steps:

1. reconcile() diffs the new display set against the live-marker index and
   returns a ReconciliationPlan (to_add / to_update / to_remove). It touches
   nothing.
2. apply() performs the backend calls for a plan on the layer's cluster group.

Markers are keyed by provider id. An existing marker is only ever restyled
(and moved if the provider moved); it is never destroyed and recreated, which
keeps cluster grouping stable and avoids flicker. After apply() the live ids
equal the drawable ids of the applied display set exactly.

Plans carry a generation number. apply() drops any plan older than the last
one applied, so a late pass built from stale inputs can never overwrite a
newer one. A reconciler whose layer was removed is cancelled and drops every
plan.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from cityhealth_map.core.geo_calculator import GeoCalculator
from cityhealth_map.model.issue import DuplicateIdIssue, InvalidCoordinatesIssue, IssueCollector
from cityhealth_map.model.marker import LiveMarker, MarkerStyle
from cityhealth_map.model.provider import DisplayEntity
from cityhealth_map.ui.map_backend import MapBackend
from cityhealth_map.ui.marker_style import marker_style_for

logger = logging.getLogger(__name__)

SelectCallback = Callable[[str], None]


@dataclass
class ReconciliationPlan:
    """Marker operations that bring one layer in sync with a display set.

    Attributes:
        layer_key: Mode key of the layer the plan was built for
        generation: Ordering stamp; older plans are discarded on apply
        to_add: Entities that get a new marker
        to_update: Entities whose existing marker is restyled in place
        to_remove: Ids of live markers that leave the layer
        drawable_ids: Ids that must be live after apply, in display order
    """

    layer_key: str
    generation: int
    to_add: list[DisplayEntity] = field(default_factory=list)
    to_update: list[DisplayEntity] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)
    drawable_ids: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_add or self.to_update or self.to_remove)

    def summary(self) -> str:
        return f"+{len(self.to_add)} ~{len(self.to_update)} -{len(self.to_remove)}"


class MarkerReconciler:
    """Owns the live-marker index of one cluster layer.

    Example:
        reconciler = MarkerReconciler(backend=backend, layer_key="providers", group_id="providers")
        plan = reconciler.reconcile(previous, display_set)
        reconciler.apply(plan)
    """

    def __init__(
        self,
        backend: MapBackend,
        layer_key: str,
        group_id: str,
        on_select: SelectCallback | None = None,
        emergency_mode: bool = False,
    ) -> None:
        self.backend = backend
        self.layer_key = layer_key
        self.group_id = group_id
        self.on_select = on_select
        self.emergency_mode = emergency_mode

        self.live_markers: dict[str, LiveMarker] = {}
        self.issues = IssueCollector()
        self.cancelled = False
        self.last_applied_generation = -1
        self.discarded_plans = 0

        self._entities: dict[str, DisplayEntity] = {}
        self._next_generation = 0

    # =========================================================================
    # DIFF
    # =========================================================================

    def reconcile(
        self,
        previous_display_set: Sequence[DisplayEntity] | None,
        new_display_set: Sequence[DisplayEntity],
        live_markers: Mapping[str, Any] | None = None,
        generation: int | None = None,
    ) -> ReconciliationPlan:
        """Compute the marker operations for new_display_set.

        Entities with non-finite coordinates are skipped and reported to the
        issue collector. Only the first occurrence of a duplicated id is used.

        Args:
            previous_display_set: Display set of the last pass; stands in for
                the live index when live_markers is not given and the
                reconciler has never drawn anything
            new_display_set: Display set to render
            live_markers: Live index to diff against (defaults to this layer's)
            generation: Ordering stamp (defaults to an internal counter)
        """
        if live_markers is None:
            if self.live_markers or previous_display_set is None:
                live_markers = self.live_markers
            else:
                live_markers = {e.id: e for e in previous_display_set}

        if generation is None:
            generation = self._next_generation
        self._next_generation = max(self._next_generation, generation) + 1

        self.issues.clear()
        plan = ReconciliationPlan(layer_key=self.layer_key, generation=generation)
        seen: set[str] = set()

        for entity in new_display_set:
            if entity.id in seen:
                self.issues.report(DuplicateIdIssue(entity_id=entity.id))
                logger.warning(f"[RECONCILE] Duplicate provider id {entity.id} ignored")
                continue
            seen.add(entity.id)

            coords = entity.coordinates
            if not GeoCalculator.is_valid_coordinate(coords.lat, coords.lon):
                self.issues.report(InvalidCoordinatesIssue(entity_id=entity.id, lat=coords.lat, lon=coords.lon))
                logger.warning(f"[RECONCILE] Skipping provider {entity.id}: invalid coordinates {coords}")
                continue

            plan.drawable_ids.append(entity.id)
            if entity.id in live_markers:
                plan.to_update.append(entity)
            else:
                plan.to_add.append(entity)

        drawable = set(plan.drawable_ids)
        plan.to_remove = [marker_id for marker_id in live_markers if marker_id not in drawable]
        return plan

    # =========================================================================
    # APPLY
    # =========================================================================

    def apply(self, plan: ReconciliationPlan) -> bool:
        """Perform the backend calls of a plan.

        Returns:
            True if the plan was applied, False if it was discarded
            (cancelled layer, foreign layer or stale generation).
        """
        if self.cancelled:
            self.discarded_plans += 1
            logger.info(f"[RECONCILE] {self.layer_key}: layer cancelled, plan {plan.generation} discarded")
            return False
        if plan.layer_key != self.layer_key:
            self.discarded_plans += 1
            logger.warning(f"[RECONCILE] Plan for '{plan.layer_key}' offered to layer '{self.layer_key}', discarded")
            return False
        if plan.generation < self.last_applied_generation:
            self.discarded_plans += 1
            logger.info(
                f"[RECONCILE] {self.layer_key}: stale plan {plan.generation} discarded "
                f"(applied {self.last_applied_generation})"
            )
            return False

        for marker_id in plan.to_remove:
            self._remove(marker_id)

        # The index may have moved on since the plan was built: an "add" for an
        # id that is live becomes an update and vice versa.
        for entity in plan.to_add + plan.to_update:
            if entity.id in self.live_markers:
                self._update(entity)
            else:
                self._create(entity)

        drawable = set(plan.drawable_ids)
        for marker_id in [m for m in self.live_markers if m not in drawable]:
            self._remove(marker_id)

        self.last_applied_generation = plan.generation
        logger.info(
            f"[RECONCILE] {self.layer_key} gen {plan.generation}: {plan.summary()} ({len(self.live_markers)} live)"
        )
        return True

    def restyle(self, entity_ids: Sequence[str | None], selected_id: str | None) -> int:
        """Style-only update of a few live markers after a selection change.

        Args:
            entity_ids: Markers to restyle (None and unknown ids are ignored)
            selected_id: Id that is selected now

        Returns:
            Number of markers restyled.
        """
        if self.cancelled:
            return 0
        count = 0
        for entity_id in dict.fromkeys(entity_ids):
            if entity_id is None or entity_id not in self.live_markers:
                continue
            entity = replace(self._entities[entity_id], is_selected=entity_id == selected_id)
            self._entities[entity_id] = entity
            marker = self.live_markers[entity_id]
            marker.style = self.style_for(entity)
            self.backend.update_marker(marker.handle, marker.style, marker.coordinates)
            count += 1
        if count:
            logger.debug(f"[RECONCILE] {self.layer_key}: restyled {count} marker(s)")
        return count

    def clear(self) -> None:
        """Remove every live marker (layer teardown)."""
        for marker_id in list(self.live_markers):
            self._remove(marker_id)
        self._entities.clear()

    def cancel(self) -> None:
        """Stop accepting plans; the layer is gone."""
        self.cancelled = True

    # =========================================================================
    # HELPERS
    # =========================================================================

    def style_for(self, entity: DisplayEntity) -> MarkerStyle:
        return marker_style_for(
            entity.type,
            entity.is_selected,
            self.emergency_mode and entity.is_emergency_capable,
        )

    def live_ids(self) -> set[str]:
        return set(self.live_markers)

    def entity(self, entity_id: str) -> DisplayEntity | None:
        return self._entities.get(entity_id)

    def _create(self, entity: DisplayEntity) -> None:
        style = self.style_for(entity)
        handle = self.backend.create_marker(
            group_id=self.group_id,
            marker_id=entity.id,
            coordinates=entity.coordinates,
            style=style,
            tooltip=entity.display_name,
            on_click=self._click_handler(entity.id),
        )
        self.live_markers[entity.id] = LiveMarker(
            entity_id=entity.id,
            layer_key=self.layer_key,
            handle=handle,
            coordinates=entity.coordinates,
            style=style,
            tooltip=entity.display_name,
        )
        self._entities[entity.id] = entity

    def _update(self, entity: DisplayEntity) -> None:
        marker = self.live_markers[entity.id]
        style = self.style_for(entity)
        tooltip = entity.display_name
        if style != marker.style or entity.coordinates != marker.coordinates or tooltip != marker.tooltip:
            self.backend.update_marker(marker.handle, style, entity.coordinates, tooltip)
            marker.style = style
            marker.coordinates = entity.coordinates
            marker.tooltip = tooltip
        self._entities[entity.id] = entity

    def _remove(self, marker_id: str) -> None:
        marker = self.live_markers.pop(marker_id, None)
        self._entities.pop(marker_id, None)
        if marker is not None:
            self.backend.remove_marker(marker.handle)

    def _click_handler(self, entity_id: str) -> Callable[[], None]:
        def handle_click() -> None:
            logger.info(f"[SELECT] Marker clicked: {entity_id}")
            if self.on_select is not None:
                self.on_select(entity_id)

        return handle_click
