"""ReconcileIssue - non-fatal problems found during a reconciliation pass.

Issues indicate provider records the map could not draw:
- Coordinates that are NaN or infinite
- The same provider id appearing twice in one display set

A pass never aborts because of an issue; the affected provider is skipped
and the issue is collected for the UI and the log.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ReconcileIssue(ABC):
    """Abstract base class for reconciliation issues.

    Subclasses store specific parameters and compute message as property.
    Use isinstance() to check issue type.
    """

    entity_id: str

    @property
    @abstractmethod
    def message(self) -> str:
        """Human-readable description."""

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class InvalidCoordinatesIssue(ReconcileIssue):
    """Provider skipped because its coordinates are not finite.

    Attributes:
        lat: Latitude as received
        lon: Longitude as received
        issue_type: Type identifier for serialization
    """

    lat: float
    lon: float
    issue_type: str = "InvalidCoordinatesIssue"

    @property
    def message(self) -> str:
        return f"📍 Provider {self.entity_id} skipped: invalid coordinates ({self.lat}, {self.lon})"


@dataclass(frozen=True)
class DuplicateIdIssue(ReconcileIssue):
    """Second occurrence of an id in one display set (only the first is drawn)."""

    issue_type: str = "DuplicateIdIssue"

    @property
    def message(self) -> str:
        return f"⚠️ Provider {self.entity_id} appears more than once; extra entries ignored"


@dataclass
class IssueCollector:
    """Collects issues from the most recent pass.

    Cleared at the start of every pass so the UI only shows current problems.
    """

    issues: list[ReconcileIssue] = field(default_factory=list)

    def report(self, issue: ReconcileIssue) -> None:
        self.issues.append(issue)

    def clear(self) -> None:
        self.issues = []

    def entity_ids(self) -> set[str]:
        return {issue.entity_id for issue in self.issues}

    def __len__(self) -> int:
        return len(self.issues)

    def __bool__(self) -> bool:
        return bool(self.issues)
