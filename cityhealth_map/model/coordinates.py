"""Coordinates - The geometry atom for provider locations.

A Coordinates value is a single WGS84 position. It is not
validated on construction: upstream records may carry NaN or infinite values,
and the marker reconciler is the one place that decides to skip them.
"""

from dataclasses import dataclass
from math import isfinite
from typing import Any


@dataclass(frozen=True)
class Coordinates:
    """A WGS84 position in decimal degrees.

    Attributes:
        lat: Latitude in decimal degrees
        lon: Longitude in decimal degrees

    Example:
        center = Coordinates(lat=35.1975, lon=-0.6300)
    """

    lat: float
    lon: float

    @property
    def lat_lon(self) -> tuple[float, float]:
        """Return (lat, lon) tuple - standard geographic order."""
        return (self.lat, self.lon)

    @property
    def lon_lat(self) -> tuple[float, float]:
        """Return (lon, lat) tuple - GeoJSON/Pydeck order."""
        return (self.lon, self.lat)

    @property
    def is_finite(self) -> bool:
        """True if both components are finite numbers (no NaN, no inf)."""
        return isfinite(self.lat) and isfinite(self.lon)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Coordinates":
        """Create from {"lat": .., "lng"|"lon": ..}; missing values become NaN."""
        lon = data.get("lon", data.get("lng"))
        return cls(
            lat=_to_float(data.get("lat")),
            lon=_to_float(lon),
        )

    def __repr__(self) -> str:
        return f"Coordinates(lat={self.lat:.5f}, lon={self.lon:.5f})"


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")
