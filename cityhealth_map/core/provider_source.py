"""Provider data layer - the read interface the map engine consumes.

The real data store (queries, caching, persistence) is an external
collaborator. The engine only needs a subscription-style read per map mode
that delivers the whole current collection each time; diffing is done by the
marker reconciler, never by the data layer.

InMemoryProviderSource implements that interface over a loader callable
(a JSON file or a fixed list), which is what the demo app and the tests use.
A failing loader produces a snapshot carrying an error instead of raising,
so the UI can show a retry button while the map keeps its last markers.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from math import floor, sin
from pathlib import Path
from typing import Any

from cityhealth_map.constants import MapConfig, MapMode, ProviderType
from cityhealth_map.core.filter_pipeline import FilterPipeline
from cityhealth_map.model.provider import ProviderEntity

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[["ProviderSnapshot"], None]


class ProviderFetchError(Exception):
    """Raised by loaders when the upstream store cannot be read."""


@dataclass(frozen=True)
class ProviderSnapshot:
    """Wholesale provider collection for one mode.

    Attributes:
        mode: Map mode the snapshot belongs to
        entities: Complete current collection (empty when error is set)
        error: Upstream failure description, None on success
        version: Increases with every snapshot delivered for the mode
    """

    mode: str
    entities: tuple[ProviderEntity, ...] = field(default_factory=tuple)
    error: str | None = None
    version: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class ProviderSource(ABC):
    """Abstract read interface of the provider data layer."""

    @abstractmethod
    def snapshot(self, mode: str) -> ProviderSnapshot:
        """Return the current collection for a mode."""

    @abstractmethod
    def subscribe(self, mode: str, callback: SnapshotCallback) -> Callable[[], None]:
        """Call callback with every new snapshot for mode.

        Returns:
            Unsubscribe function.
        """


class InMemoryProviderSource(ProviderSource):
    """Provider source backed by a loader callable returning raw records.

    Example:
        source = InMemoryProviderSource.from_records(demo_provider_records())
        snap = source.snapshot(MapMode.EMERGENCY)
    """

    def __init__(self, loader: Callable[[], list[dict[str, Any]]]) -> None:
        self._loader = loader
        self._subscribers: dict[str, list[SnapshotCallback]] = defaultdict(list)
        self._versions: dict[str, int] = defaultdict(int)

    @classmethod
    def from_records(cls, records: list[dict[str, Any]]) -> "InMemoryProviderSource":
        return cls(loader=lambda: list(records))

    @classmethod
    def from_entities(cls, entities: list[ProviderEntity]) -> "InMemoryProviderSource":
        return cls.from_records([e.to_dict() for e in entities])

    @classmethod
    def from_json(cls, path: Path) -> "InMemoryProviderSource":
        """Source reading a JSON list of provider records on every refresh."""

        def load() -> list[dict[str, Any]]:
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = json.load(fh)
            except (OSError, json.JSONDecodeError) as e:
                raise ProviderFetchError(f"Cannot read providers from {path}: {e}") from e
            if not isinstance(data, list):
                raise ProviderFetchError(f"Expected a JSON list in {path}")
            return data

        return cls(loader=load)

    def set_loader(self, loader: Callable[[], list[dict[str, Any]]]) -> None:
        """Replace the loader (the next refresh delivers its data)."""
        self._loader = loader

    def snapshot(self, mode: str) -> ProviderSnapshot:
        if not MapMode.is_valid(mode):
            raise ValueError(f"Unknown map mode '{mode}'")
        self._versions[mode] += 1
        version = self._versions[mode]
        try:
            records = self._loader()
        except ProviderFetchError as e:
            logger.error(f"[DATA] Fetch failed for mode '{mode}': {e}")
            return ProviderSnapshot(mode=mode, error=str(e), version=version)

        entities = []
        for record in records:
            if not isinstance(record, Mapping):
                logger.warning(f"[DATA] Dropping non-object provider record {record!r}")
                continue
            try:
                entity = ProviderEntity.from_dict(record)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"[DATA] Dropping malformed provider record {record!r}: {e}")
                continue
            if FilterPipeline.in_mode(entity, mode):
                entities.append(entity)
        return ProviderSnapshot(mode=mode, entities=tuple(entities), version=version)

    def subscribe(self, mode: str, callback: SnapshotCallback) -> Callable[[], None]:
        self._subscribers[mode].append(callback)
        callback(self.snapshot(mode))

        def unsubscribe() -> None:
            if callback in self._subscribers[mode]:
                self._subscribers[mode].remove(callback)

        return unsubscribe

    def refresh(self, mode: str | None = None) -> None:
        """Push a fresh snapshot to subscribers of one mode (or all modes)."""
        modes = [mode] if mode is not None else list(self._subscribers.keys())
        for m in modes:
            callbacks = list(self._subscribers.get(m, ()))
            if not callbacks:
                continue
            snap = self.snapshot(m)
            for callback in callbacks:
                callback(snap)

    def subscriber_count(self, mode: str) -> int:
        return len(self._subscribers.get(mode, ()))


# =============================================================================
# DEMO DATA
# =============================================================================

_AREAS = ["Centre Ville", "Hay El Badr", "Sidi Bel Abbès Est", "Sidi Bel Abbès Ouest", "Périphérie Nord"]
_SPECIALTIES = ["Cardiologie", "Pédiatrie", "Dermatologie", "Gynécologie", "Ophtalmologie", "Médecine générale"]
_NAMES = {
    ProviderType.DOCTOR: ["Dr. Ahmed Benali", "Dr. Sara Bendaoud", "Dr. Youssef Merabet", "Dr. Imen Saadi"],
    ProviderType.CLINIC: ["Clinique El Amal", "Clinique El Chifa", "Clinique Ibn Sina", "Clinique An Nasr"],
    ProviderType.PHARMACY: ["Pharmacie Centrale", "Pharmacie El Fajr", "Pharmacie El Baraka", "Pharmacie El Wafa"],
    ProviderType.LAB: ["Laboratoire Atlas", "Laboratoire Pasteur", "Laboratoire BioLab"],
    ProviderType.HOSPITAL: ["Hôpital Universitaire", "Hôpital Régional", "Hôpital Privé Al Hayat"],
    ProviderType.BIRTH_HOSPITAL: ["Maternité El Feth", "Maternité Es Salam"],
    ProviderType.BLOOD_CABIN: ["Centre de Transfusion Sanguine", "Cabine de Don du Sang"],
    ProviderType.RADIOLOGY_CENTER: ["Centre d'Imagerie El Nour", "Radiologie Ibn Rochd"],
    ProviderType.MEDICAL_EQUIPMENT: ["Matériel Médical Es Sahha", "Équipement Médical Atlas"],
}
assert set(_NAMES.keys()) == set(ProviderType.ALL)


def _pseudo_random(i: int, low: float, high: float) -> float:
    """Deterministic value in [low, high] derived from an index."""
    x = sin(i + 1) * 10000
    frac = x - floor(x)
    return low + frac * (high - low)


def demo_provider_records(count: int = 50) -> list[dict[str, Any]]:
    """Deterministic provider records scattered around the default map center."""
    records = []
    for i in range(count):
        provider_type = ProviderType.ALL[i % len(ProviderType.ALL)]
        names = _NAMES[provider_type]
        area = _AREAS[i % len(_AREAS)]
        record: dict[str, Any] = {
            "id": str(i + 1),
            "type": provider_type,
            "name": names[i % len(names)],
            "lat": MapConfig.START_CENTER_LAT + _pseudo_random(i, -0.03, 0.03),
            "lng": MapConfig.START_CENTER_LON + _pseudo_random(i + 3, -0.03, 0.03),
            "isOpen": i % 5 != 0,
            "emergency": provider_type in (ProviderType.HOSPITAL, ProviderType.BIRTH_HOSPITAL) or i % 17 == 0,
            "address": f"{1 + i % 90} Rue principale, {area}",
            "specialty": _SPECIALTIES[i % len(_SPECIALTIES)] if provider_type == ProviderType.DOCTOR else "",
            "phone": f"+213 48 {50 + i % 50:02d} {10 + i % 40:02d} {10 + (i * 3) % 40:02d}",
        }
        if provider_type == ProviderType.BLOOD_CABIN:
            record["bloodTypes"] = ["A+", "B+", "O+", "AB+"][: (i % 4) + 1]
            record["urgentNeed"] = i % 7 == 0
        records.append(record)
    return records
