"""Data model classes for the provider map.

Separates what the data layer delivers from what the map renders:
- Coordinates: Geometry atom (lat, lon)
- ProviderEntity: Immutable provider record from the data layer
- DisplayEntity: Provider annotated with distance and selection for one pass
- MarkerStyle: Marker visual derived from type/selection/emergency
- LiveMarker: Marker currently drawn on a cluster layer
- ReconcileIssue: Non-fatal problems collected during reconciliation
"""

from cityhealth_map.model.coordinates import Coordinates
from cityhealth_map.model.issue import (
    DuplicateIdIssue,
    InvalidCoordinatesIssue,
    IssueCollector,
    ReconcileIssue,
)
from cityhealth_map.model.marker import LiveMarker, MarkerStyle
from cityhealth_map.model.provider import DisplayEntity, ProviderEntity

__all__ = [
    "Coordinates",
    "ProviderEntity",
    "DisplayEntity",
    "MarkerStyle",
    "LiveMarker",
    "ReconcileIssue",
    "InvalidCoordinatesIssue",
    "DuplicateIdIssue",
    "IssueCollector",
]
