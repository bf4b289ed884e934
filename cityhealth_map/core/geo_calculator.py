"""Geodesic calculations on Earth's surface.

Provides geographic helper functions for the provider map:
- Distance calculation (Haversine formula), in kilometers
- Coordinate clamping so distance computation never fails
- Distance sorting with unknown distances last
- Display formatting for distance badges

All calculations use a spherical Earth approximation (R = 6,371 km).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from math import atan2, cos, inf, isfinite, radians, sin, sqrt
from typing import TYPE_CHECKING, TypeVar

from cityhealth_map.constants import GeoConfig

if TYPE_CHECKING:
    from cityhealth_map.model.coordinates import Coordinates

T = TypeVar("T")

# Earth's radius in kilometers (spherical approximation)
EARTH_RADIUS_KM = GeoConfig.EARTH_RADIUS_KM


class GeoCalculator:
    """Static methods for geodesic calculations on Earth's surface.

    Coordinates are in decimal degrees (WGS84).
    Distances are in kilometers.
    """

    EARTH_RADIUS_KM = EARTH_RADIUS_KM

    @staticmethod
    def clamp_lat(lat: float) -> float:
        """Clamp latitude into [-90, 90]."""
        return max(-90.0, min(90.0, lat))

    @staticmethod
    def clamp_lon(lon: float) -> float:
        """Clamp longitude into [-180, 180]."""
        return max(-180.0, min(180.0, lon))

    @staticmethod
    def is_valid_coordinate(lat: float, lon: float) -> bool:
        """True if both values are finite numbers.

        Range is not checked here: out-of-range values are clamped by
        distance_km, only NaN/inf make a position unusable.
        """
        return isfinite(lat) and isfinite(lon)

    @staticmethod
    def haversine_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate great-circle distance between two points using Haversine formula.

        Args:
            lat1: Latitude of first point (decimal degrees)
            lon1: Longitude of first point (decimal degrees)
            lat2: Latitude of second point (decimal degrees)
            lon2: Longitude of second point (decimal degrees)

        Returns:
            Distance in kilometers (always >= 0).
        """
        dlat = radians(lat2 - lat1)
        dlon = radians(lon2 - lon1)
        a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2
        # Rounding can push a slightly above 1 for antipodal points
        a = min(1.0, max(0.0, a))
        return EARTH_RADIUS_KM * 2 * atan2(sqrt(a), sqrt(1 - a))

    @staticmethod
    def distance_km(a: Coordinates, b: Coordinates | None) -> float | None:
        """Distance from a to b, or None when b (the user position) is unknown.

        Inputs are clamped to the valid lat/lon range before computing.
        Non-finite inputs yield None instead of raising.

        Args:
            a: Provider position
            b: User position, None when geolocation is unavailable

        Returns:
            Distance in kilometers, or None.
        """
        if b is None:
            return None
        if not (GeoCalculator.is_valid_coordinate(a.lat, a.lon) and GeoCalculator.is_valid_coordinate(b.lat, b.lon)):
            return None
        return GeoCalculator.haversine_distance_km(
            lat1=GeoCalculator.clamp_lat(a.lat),
            lon1=GeoCalculator.clamp_lon(a.lon),
            lat2=GeoCalculator.clamp_lat(b.lat),
            lon2=GeoCalculator.clamp_lon(b.lon),
        )

    @staticmethod
    def round_for_display(distance_km: float | None) -> float | None:
        """Round to the display precision (one decimal place)."""
        if distance_km is None:
            return None
        return round(distance_km, GeoConfig.DISTANCE_DECIMALS)

    @staticmethod
    def format_distance(distance_km: float | None) -> str:
        """Format for a distance badge: "850 m", "1.2 km", or "" when unknown."""
        if distance_km is None:
            return ""
        if distance_km < GeoConfig.METERS_DISPLAY_THRESHOLD_KM:
            return f"{distance_km * 1000:.0f} m"
        return f"{distance_km:.{GeoConfig.DISTANCE_DECIMALS}f} km"

    @staticmethod
    def sort_key(distance_km: float | None) -> float:
        """Sort key treating an unknown distance as +infinity."""
        return inf if distance_km is None else distance_km

    @staticmethod
    def sort_by_distance(items: Iterable[T], distance_of: Callable[[T], float | None]) -> list[T]:
        """Stable ascending sort by distance, unknown distances last.

        Ties keep their input order (Python's sort is stable).
        """
        return sorted(items, key=lambda item: GeoCalculator.sort_key(distance_of(item)))

    @staticmethod
    def within_radius(items: Iterable[T], distance_of: Callable[[T], float | None], radius_km: float) -> list[T]:
        """Keep items whose known distance is at most radius_km."""
        result = []
        for item in items:
            distance = distance_of(item)
            if distance is not None and distance <= radius_km:
                result.append(item)
        return result
