"""Geolocation collaborator - optional user position.

The browser (or any other position provider) delivers the user position
asynchronously. The map engine only reads the resulting state: a position or
None, plus a loading flag for the UI. Denied or unavailable geolocation is
not an error for the engine; distance features simply degrade.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from cityhealth_map.model.coordinates import Coordinates

logger = logging.getLogger(__name__)


class GeolocationError:
    """Reasons a position request can fail."""

    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"

    MESSAGES = {
        PERMISSION_DENIED: "Location access was denied",
        POSITION_UNAVAILABLE: "Location information is unavailable",
        TIMEOUT: "Location request timed out",
        UNSUPPORTED: "Geolocation is not supported by your browser",
    }

    @staticmethod
    def message(reason: str) -> str:
        return GeolocationError.MESSAGES.get(reason, "Unable to retrieve your location")


@dataclass
class GeolocationState:
    """Latest known user position.

    Attributes:
        position: User coordinates, None when unknown
        accuracy_m: Reported accuracy in meters
        loading: A request is in flight (UI only)
        error: Reason of the last failure (GeolocationError value)
    """

    position: Coordinates | None = None
    accuracy_m: float | None = None
    loading: bool = False
    error: str | None = None

    @property
    def has_location(self) -> bool:
        return self.position is not None and self.position.is_finite


PositionListener = Callable[[GeolocationState], None]


class GeolocationService:
    """Holds geolocation state and notifies listeners on every change.

    request() marks a lookup as in flight; the position provider later calls
    resolve() or fail(). A failure keeps the last known position, matching
    how browsers report errors after a successful fix.
    """

    def __init__(self) -> None:
        self.state = GeolocationState()
        self._listeners: list[PositionListener] = []

    def add_listener(self, listener: PositionListener) -> None:
        self._listeners.append(listener)

    def request(self) -> None:
        self.state.loading = True
        self.state.error = None
        logger.info("[GEO] Position requested")
        self._notify()

    def resolve(self, position: Coordinates, accuracy_m: float | None = None) -> None:
        if not position.is_finite:
            self.fail(GeolocationError.POSITION_UNAVAILABLE)
            return
        self.state.position = position
        self.state.accuracy_m = accuracy_m
        self.state.loading = False
        self.state.error = None
        logger.info(f"[GEO] Position resolved: {position}")
        self._notify()

    def fail(self, reason: str) -> None:
        self.state.loading = False
        self.state.error = reason
        logger.warning(f"[GEO] {GeolocationError.message(reason)}")
        self._notify()

    def clear(self) -> None:
        self.state = GeolocationState()
        self._notify()

    @property
    def position(self) -> Coordinates | None:
        return self.state.position if self.state.has_location else None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.state)
