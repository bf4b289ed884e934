"""ProviderEntity and DisplayEntity - health-care providers on the map.

ProviderEntity is the immutable record delivered by the data layer. The map
engine never mutates it; each snapshot from the data layer replaces the
previous collection wholesale.

DisplayEntity annotates a ProviderEntity with the per-pass values the map
needs (distance from the user, selection flag). It is recomputed whenever
filters, geolocation or selection change and is never persisted.
"""

from dataclasses import dataclass, field
from typing import Any

from cityhealth_map.model.coordinates import Coordinates


@dataclass(frozen=True)
class ProviderEntity:
    """One health-care facility or practitioner.

    Attributes:
        id: Stable unique identifier
        type: One of ProviderType.ALL
        coordinates: Location of the facility
        is_open_now: Computed upstream from the opening schedule
        is_emergency_capable: Provider handles emergencies
        display_name: Name shown in lists and tooltips
        address: Street address
        specialty: Free-text specialty (searched by the text filter)
        phone: Contact phone number
        blood_types: Blood groups collected (blood donation centers)
        urgent_need: Blood center currently reports an urgent need
    """

    id: str
    type: str
    coordinates: Coordinates
    is_open_now: bool
    is_emergency_capable: bool
    display_name: str
    address: str
    specialty: str = ""
    phone: str = ""
    blood_types: tuple[str, ...] = field(default_factory=tuple)
    urgent_need: bool = False

    @property
    def lat(self) -> float:
        return self.coordinates.lat

    @property
    def lon(self) -> float:
        return self.coordinates.lon

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderEntity":
        """Create from a data-layer record.

        Accepts both the engine's field names and the upstream record names
        (name, isOpen, emergency, lat/lng).
        """
        if "coordinates" in data:
            coordinates = Coordinates.from_dict(data["coordinates"])
        else:
            coordinates = Coordinates.from_dict(data)
        provider_type = data["type"]
        if not isinstance(provider_type, str):
            raise TypeError(f"Provider type must be a string, got {provider_type!r}")
        return cls(
            id=str(data["id"]),
            type=provider_type,
            coordinates=coordinates,
            is_open_now=_to_bool(data.get("is_open_now", data.get("isOpen", False))),
            is_emergency_capable=_to_bool(data.get("is_emergency_capable", data.get("emergency", False))),
            display_name=data.get("display_name", data.get("name", "")),
            address=data.get("address", ""),
            specialty=data.get("specialty") or "",
            phone=data.get("phone") or "",
            blood_types=tuple(data.get("blood_types", data.get("bloodTypes")) or ()),
            urgent_need=_to_bool(data.get("urgent_need", data.get("urgentNeed", False))),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain record (inverse of from_dict)."""
        return {
            "id": self.id,
            "type": self.type,
            "coordinates": {"lat": self.coordinates.lat, "lon": self.coordinates.lon},
            "is_open_now": self.is_open_now,
            "is_emergency_capable": self.is_emergency_capable,
            "display_name": self.display_name,
            "address": self.address,
            "specialty": self.specialty,
            "phone": self.phone,
            "blood_types": list(self.blood_types),
            "urgent_need": self.urgent_need,
        }

    def __repr__(self) -> str:
        return f"ProviderEntity({self.id}, {self.type}, {self.display_name!r})"


@dataclass(frozen=True)
class DisplayEntity:
    """A provider annotated for one display pass.

    Attributes:
        entity: The underlying provider record
        distance_from_user_km: Great-circle distance, None when user position unknown
        is_selected: True for the single selected provider
    """

    entity: ProviderEntity
    distance_from_user_km: float | None = None
    is_selected: bool = False

    @property
    def id(self) -> str:
        return self.entity.id

    @property
    def type(self) -> str:
        return self.entity.type

    @property
    def coordinates(self) -> Coordinates:
        return self.entity.coordinates

    @property
    def is_emergency_capable(self) -> bool:
        return self.entity.is_emergency_capable

    @property
    def display_name(self) -> str:
        return self.entity.display_name

    @property
    def has_distance(self) -> bool:
        return self.distance_from_user_km is not None

    def __repr__(self) -> str:
        dist = "?" if self.distance_from_user_km is None else f"{self.distance_from_user_km:.2f}km"
        sel = ", selected" if self.is_selected else ""
        return f"DisplayEntity({self.id}, {dist}{sel})"


def _to_bool(value: Any) -> bool:
    """Upstream flags may arrive as strings ("true", "0", ...)."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)
