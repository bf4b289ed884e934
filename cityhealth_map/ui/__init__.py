"""Map engine and Streamlit UI components.

This module provides:
- MapSession: The engine as the UI sees it (display set, selection, entry points)
- MapLifecycleManager / MapLifecycleMachine: The one shared map surface
- ClusterLayerRegistry / LayerHandle: One cluster layer per map mode
- MarkerReconciler / ReconciliationPlan: Live markers <-> display set
- SelectionController / SelectionState: Selection and camera moves
- MapBackend / PydeckMapBackend: Rendering collaborator (pydeck)

Streamlit-only helpers (infra, pydeck_click_handler) are imported directly
by app.py.
"""

from cityhealth_map.ui.cluster_layer import ClusterLayerRegistry, LayerHandle
from cityhealth_map.ui.map_backend import (
    CityHealthMapError,
    LayerNotRegisteredError,
    MapBackend,
    PydeckMapBackend,
    SurfaceNotReadyError,
)
from cityhealth_map.ui.map_lifecycle import CameraMove, MapLifecycleMachine, MapLifecycleManager, MapSurface
from cityhealth_map.ui.map_session import MapSession
from cityhealth_map.ui.marker_style import marker_style_for
from cityhealth_map.ui.reconciler import MarkerReconciler, ReconciliationPlan
from cityhealth_map.ui.selection import SelectionController, SelectionState

__all__ = [
    # Session
    "MapSession",
    # Lifecycle
    "MapLifecycleManager",
    "MapLifecycleMachine",
    "MapSurface",
    "CameraMove",
    # Layers and markers
    "ClusterLayerRegistry",
    "LayerHandle",
    "MarkerReconciler",
    "ReconciliationPlan",
    "marker_style_for",
    # Selection
    "SelectionController",
    "SelectionState",
    # Rendering
    "MapBackend",
    "PydeckMapBackend",
    "CityHealthMapError",
    "SurfaceNotReadyError",
    "LayerNotRegisteredError",
]
