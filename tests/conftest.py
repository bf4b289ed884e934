"""Shared pytest fixtures for cityhealth_map tests.

Provides RecordingMapBackend (a MapBackend that records every call instead
of drawing) and reusable provider data.

COORDINATE SYSTEM:
    Providers are placed around the default map center in Sidi Bel Abbès
    (35.1975, -0.6300). At this latitude 0.01° of latitude ≈ 1.11 km.
"""

from dataclasses import dataclass, field
from typing import Any

import pytest

from cityhealth_map.constants import MapConfig, MapMode, ProviderType
from cityhealth_map.core.geolocation import GeolocationService
from cityhealth_map.core.provider_source import InMemoryProviderSource
from cityhealth_map.model.coordinates import Coordinates
from cityhealth_map.model.marker import MarkerStyle
from cityhealth_map.model.provider import ProviderEntity
from cityhealth_map.ui.map_backend import ClickCallback, LayerNotRegisteredError, MapBackend, SurfaceNotReadyError
from cityhealth_map.ui.map_lifecycle import MapLifecycleManager
from cityhealth_map.ui.map_session import MapSession

CENTER = Coordinates(lat=MapConfig.START_CENTER_LAT, lon=MapConfig.START_CENTER_LON)

# Stand-in for a DOM container; any non-None object counts as attached
CONTAINER = object()


# =============================================================================
# RECORDING MAP BACKEND
# =============================================================================


@dataclass(eq=False)
class RecordedMarker:
    """Marker handle of RecordingMapBackend (compared by identity)."""

    group_id: str
    marker_id: str
    coordinates: Coordinates
    style: MarkerStyle
    tooltip: str
    on_click: ClickCallback | None = None
    removed: bool = False


@dataclass
class RecordingMapBackend(MapBackend):
    """MapBackend that records calls and keeps a minimal scene.

    calls holds (method_name, args) tuples in call order.
    """

    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    has_surface: bool = False
    tile_urls: list[str] = field(default_factory=list)
    control_position: str | None = None
    groups: dict[str, dict[str, RecordedMarker]] = field(default_factory=dict)
    user_position: Coordinates | None = None

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))

    def count(self, name: str) -> int:
        return sum(1 for call_name, _ in self.calls if call_name == name)

    def calls_named(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call_name, args in self.calls if call_name == name]

    def reset_calls(self) -> None:
        self.calls = []

    def marker_ids(self, group_id: str) -> set[str]:
        return set(self.groups.get(group_id, {}))

    # -- MapBackend ---------------------------------------------------------

    def create_surface(self, container: Any, center: Coordinates, zoom: float, control_position: str) -> None:
        if container is None:
            raise SurfaceNotReadyError("container not attached")
        self._record("create_surface", center, zoom, control_position)
        self.has_surface = True
        self.control_position = control_position

    def destroy_surface(self) -> None:
        self._record("destroy_surface")
        self.has_surface = False
        self.groups.clear()

    def set_tile_layer(self, tile_urls: list[str], attribution: str) -> None:
        self._record("set_tile_layer", tuple(tile_urls))
        self.tile_urls = list(tile_urls)

    def set_control_position(self, position: str) -> None:
        self._record("set_control_position", position)
        self.control_position = position

    def invalidate_size(self) -> None:
        self._record("invalidate_size")

    def add_cluster_group(self, group_id: str, radius_px: float, disable_at_zoom: float) -> None:
        if not self.has_surface:
            raise SurfaceNotReadyError("no surface")
        self._record("add_cluster_group", group_id, radius_px, disable_at_zoom)
        self.groups.setdefault(group_id, {})

    def remove_cluster_group(self, group_id: str) -> None:
        self._record("remove_cluster_group", group_id)
        for marker in self.groups.pop(group_id, {}).values():
            marker.removed = True

    def create_marker(
        self,
        group_id: str,
        marker_id: str,
        coordinates: Coordinates,
        style: MarkerStyle,
        tooltip: str,
        on_click: ClickCallback | None,
    ) -> RecordedMarker:
        if group_id not in self.groups:
            raise LayerNotRegisteredError(group_id)
        self._record("create_marker", group_id, marker_id)
        marker = RecordedMarker(
            group_id=group_id,
            marker_id=marker_id,
            coordinates=coordinates,
            style=style,
            tooltip=tooltip,
            on_click=on_click,
        )
        self.groups[group_id][marker_id] = marker
        return marker

    def update_marker(
        self, handle: RecordedMarker, style: MarkerStyle, coordinates: Coordinates, tooltip: str | None = None
    ) -> None:
        self._record("update_marker", handle.group_id, handle.marker_id)
        handle.style = style
        handle.coordinates = coordinates
        if tooltip is not None:
            handle.tooltip = tooltip

    def remove_marker(self, handle: RecordedMarker) -> None:
        self._record("remove_marker", handle.group_id, handle.marker_id)
        self.groups.get(handle.group_id, {}).pop(handle.marker_id, None)
        handle.removed = True

    def fly_to(self, coordinates: Coordinates, zoom: float, duration_s: float) -> None:
        self._record("fly_to", coordinates, zoom, duration_s)

    def set_user_marker(self, coordinates: Coordinates | None) -> None:
        self._record("set_user_marker", coordinates)
        self.user_position = coordinates


# =============================================================================
# PROVIDER FACTORIES
# =============================================================================


def make_provider(
    id: str,
    type: str = ProviderType.CLINIC,
    lat: float = CENTER.lat,
    lon: float = CENTER.lon,
    is_open_now: bool = True,
    is_emergency_capable: bool = False,
    display_name: str | None = None,
    address: str = "Rue principale, Sidi Bel Abbès",
    specialty: str = "",
) -> ProviderEntity:
    """Provider with sensible defaults; only what a test cares about is passed."""
    return ProviderEntity(
        id=id,
        type=type,
        coordinates=Coordinates(lat=lat, lon=lon),
        is_open_now=is_open_now,
        is_emergency_capable=is_emergency_capable,
        display_name=display_name or f"Provider {id}",
        address=address,
        specialty=specialty,
    )


@pytest.fixture
def five_providers_two_pharmacies() -> list[ProviderEntity]:
    """5 providers: 2 pharmacies, 1 hospital (emergency), 1 clinic, 1 doctor.

    Spread north of the center in 0.01° steps (≈1.1 km each).
    """
    return [
        make_provider("h1", ProviderType.HOSPITAL, lat=CENTER.lat + 0.04, is_emergency_capable=True),
        make_provider("p1", ProviderType.PHARMACY, lat=CENTER.lat + 0.03, display_name="Pharmacie Centrale"),
        make_provider("c1", ProviderType.CLINIC, lat=CENTER.lat + 0.02, display_name="Clinique El Amal"),
        make_provider("p2", ProviderType.PHARMACY, lat=CENTER.lat + 0.01, is_open_now=False),
        make_provider(
            "d1",
            ProviderType.DOCTOR,
            lat=CENTER.lat,
            display_name="Dr. Sara Bendaoud",
            specialty="Cardiologie",
        ),
    ]


# =============================================================================
# ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def recording_backend() -> RecordingMapBackend:
    return RecordingMapBackend()


@pytest.fixture
def mounted_lifecycle(recording_backend: RecordingMapBackend) -> MapLifecycleManager:
    """Lifecycle manager whose surface already exists."""
    lifecycle = MapLifecycleManager(backend=recording_backend)
    assert lifecycle.mount(CONTAINER)
    return lifecycle


@pytest.fixture
def provider_source(five_providers_two_pharmacies: list[ProviderEntity]) -> InMemoryProviderSource:
    return InMemoryProviderSource.from_entities(five_providers_two_pharmacies)


@pytest.fixture
def mounted_session(
    provider_source: InMemoryProviderSource,
    recording_backend: RecordingMapBackend,
) -> MapSession:
    """Session in providers mode with the surface mounted and markers drawn."""
    session = MapSession(source=provider_source, backend=recording_backend, geolocation=GeolocationService())
    assert session.mount(CONTAINER)
    assert session.mode == MapMode.PROVIDERS
    return session
