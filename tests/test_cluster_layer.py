"""Tests for per-mode cluster layers.

Tests: ClusterLayerRegistry register/remove/switch, pending layers
Focus: At most one layer per mode, never two modes on the surface at once
"""

import pytest

from cityhealth_map.constants import ClusterConfig, MapMode
from cityhealth_map.model.provider import DisplayEntity
from cityhealth_map.ui.cluster_layer import ClusterLayerRegistry
from cityhealth_map.ui.map_lifecycle import MapLifecycleManager

from conftest import CONTAINER, RecordingMapBackend, make_provider


@pytest.fixture
def registry(mounted_lifecycle: MapLifecycleManager) -> ClusterLayerRegistry:
    return ClusterLayerRegistry(mounted_lifecycle)


def draw(registry: ClusterLayerRegistry, *ids: str) -> None:
    reconciler = registry.active_handle.reconciler
    reconciler.apply(reconciler.reconcile(None, [DisplayEntity(entity=make_provider(i)) for i in ids]))


class TestRegisterLayer:
    """register_layer() - idempotent, one handle per mode."""

    def test_register_twice_returns_same_handle(self, registry: ClusterLayerRegistry) -> None:
        first = registry.register_layer(MapMode.PROVIDERS)
        second = registry.register_layer(MapMode.PROVIDERS)
        assert first is second
        assert registry.lifecycle.backend.count("add_cluster_group") == 1
        assert first.attached and not first.is_pending

    @pytest.mark.parametrize("mode", MapMode.ALL)
    def test_radius_per_mode(self, registry: ClusterLayerRegistry, mode: str) -> None:
        handle = registry.register_layer(mode)
        assert handle.radius_px == ClusterConfig.RADIUS_BY_MODE[mode]
        assert handle.disable_at_zoom == ClusterConfig.DISABLE_CLUSTERING_AT_ZOOM
        group_id, radius, _ = registry.lifecycle.backend.calls_named("add_cluster_group")[-1]
        assert (group_id, radius) == (mode, ClusterConfig.RADIUS_BY_MODE[mode])

    def test_emergency_layer_uses_emergency_styles(self, registry: ClusterLayerRegistry) -> None:
        assert registry.register_layer(MapMode.EMERGENCY).reconciler.emergency_mode
        assert not registry.register_layer(MapMode.BLOOD).reconciler.emergency_mode

    def test_unknown_mode_rejected(self, registry: ClusterLayerRegistry) -> None:
        with pytest.raises(ValueError, match="Unknown map mode"):
            registry.register_layer("hotels")


class TestSwitchMode:
    """switch_mode() - the old layer is gone before the new one appears."""

    def test_remove_before_add(self, registry: ClusterLayerRegistry) -> None:
        backend: RecordingMapBackend = registry.lifecycle.backend
        registry.switch_mode(MapMode.PROVIDERS)
        backend.reset_calls()

        registry.switch_mode(MapMode.EMERGENCY)
        names = [name for name, _ in backend.calls]
        assert names == ["remove_cluster_group", "add_cluster_group"]
        assert list(registry.layers) == [MapMode.EMERGENCY]
        assert set(backend.groups) == {MapMode.EMERGENCY}

    def test_switch_removes_old_markers(self, registry: ClusterLayerRegistry) -> None:
        old = registry.switch_mode(MapMode.PROVIDERS)
        draw(registry, "a", "b")
        registry.switch_mode(MapMode.BLOOD)
        assert old.cancelled
        assert old.reconciler.live_markers == {}
        assert registry.lifecycle.backend.marker_ids(MapMode.PROVIDERS) == set()

    def test_switch_to_same_mode_keeps_layer(self, registry: ClusterLayerRegistry) -> None:
        handle = registry.switch_mode(MapMode.PROVIDERS)
        draw(registry, "a")
        assert registry.switch_mode(MapMode.PROVIDERS) is handle
        assert handle.reconciler.live_ids() == {"a"}

    def test_remove_unknown_layer(self, registry: ClusterLayerRegistry) -> None:
        assert not registry.remove_layer(MapMode.BLOOD)

    def test_cancelled_layer_discards_late_plan(self, registry: ClusterLayerRegistry) -> None:
        old = registry.switch_mode(MapMode.PROVIDERS)
        late_plan = old.reconciler.reconcile(None, [DisplayEntity(entity=make_provider("late"))])
        registry.switch_mode(MapMode.EMERGENCY)
        assert not old.reconciler.apply(late_plan)
        assert registry.lifecycle.backend.count("create_marker") == 0


class TestPendingLayers:
    """Layers registered before the surface exists."""

    def test_pending_layer_attached_at_mount(self, recording_backend: RecordingMapBackend) -> None:
        lifecycle = MapLifecycleManager(backend=recording_backend)
        registry = ClusterLayerRegistry(lifecycle)
        handle = registry.register_layer(MapMode.BLOOD)
        assert handle.is_pending
        assert recording_backend.count("add_cluster_group") == 0

        lifecycle.mount(CONTAINER)
        assert handle.attached
        assert lifecycle.surface.cluster_groups == [MapMode.BLOOD]

    def test_switch_cancels_pending_layer(self, recording_backend: RecordingMapBackend) -> None:
        lifecycle = MapLifecycleManager(backend=recording_backend)
        registry = ClusterLayerRegistry(lifecycle)
        pending = registry.register_layer(MapMode.PROVIDERS)
        registry.switch_mode(MapMode.EMERGENCY)
        assert pending.cancelled and not pending.is_pending

        lifecycle.mount(CONTAINER)
        assert lifecycle.surface.cluster_groups == [MapMode.EMERGENCY]
        assert recording_backend.count("remove_cluster_group") == 0

    def test_layer_reattached_after_remount(self, registry: ClusterLayerRegistry) -> None:
        handle = registry.switch_mode(MapMode.PROVIDERS)
        draw(registry, "a")
        registry.lifecycle.teardown()
        registry.lifecycle.mount(CONTAINER)

        assert registry.lifecycle.surface.cluster_groups == [MapMode.PROVIDERS]
        assert handle.attached
        assert handle.reconciler.live_markers == {}
