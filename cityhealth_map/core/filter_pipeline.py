"""Entity filter pipeline - from provider collection to display set.

compute_display_set() is a pure function: the same inputs always produce the
same list in the same order. The marker reconciler relies on this to keep
its diffs stable.

Pipeline stages:
    1. Mode base set (emergency -> emergency-capable only, blood -> hospitals + blood cabins)
    2. Predicates, all ANDed: free-text query, type membership, open now
    3. Distance annotation from the user position (None when unknown)
    4. Stable sort by distance, unknown distances last
    5. Selection flag for the single selected id
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from cityhealth_map.constants import MapMode, ProviderType
from cityhealth_map.core.geo_calculator import GeoCalculator
from cityhealth_map.model.provider import DisplayEntity, ProviderEntity

if TYPE_CHECKING:
    from cityhealth_map.model.coordinates import Coordinates


Predicate = Callable[[ProviderEntity], bool]


@dataclass(frozen=True)
class ProviderFilters:
    """Filter state for one map mode.

    Attributes:
        mode: One of MapMode.ALL, restricts the base collection
        query: Case-insensitive substring matched against name/address/type/specialty
        types: Selected provider types; empty means no restriction
        open_now: Keep only providers currently open
    """

    mode: str = MapMode.PROVIDERS
    query: str = ""
    types: frozenset[str] = field(default_factory=frozenset)
    open_now: bool = False

    def __post_init__(self) -> None:
        if not MapMode.is_valid(self.mode):
            raise ValueError(f"Unknown map mode '{self.mode}'")

    @property
    def is_default(self) -> bool:
        """True when no user predicate is active (mode aside)."""
        return not self.query.strip() and not self.types and not self.open_now

    def with_mode(self, mode: str) -> ProviderFilters:
        return replace(self, mode=mode)

    def with_query(self, query: str) -> ProviderFilters:
        return replace(self, query=query)

    def with_types(self, types: Iterable[str]) -> ProviderFilters:
        return replace(self, types=frozenset(types))

    def with_open_now(self, open_now: bool) -> ProviderFilters:
        return replace(self, open_now=open_now)

    def toggle_type(self, provider_type: str) -> ProviderFilters:
        """Add the type if absent, remove it if present."""
        return self.with_types(self.types ^ {provider_type})


class FilterPipeline:
    """Static methods composing provider predicates into a display set."""

    # =========================================================================
    # MODE BASE SETS
    # =========================================================================

    @staticmethod
    def in_mode(entity: ProviderEntity, mode: str) -> bool:
        """Check if entity belongs to the base collection of a mode."""
        if mode == MapMode.EMERGENCY:
            return entity.is_emergency_capable
        if mode == MapMode.BLOOD:
            return entity.type in ProviderType.BLOOD_TYPES
        return True

    # =========================================================================
    # PREDICATES
    # =========================================================================

    @staticmethod
    def matches_query(entity: ProviderEntity, query: str) -> bool:
        """Case-insensitive substring match on name, address, type and specialty."""
        needle = query.strip().casefold()
        if not needle:
            return True
        haystacks = (
            entity.display_name,
            entity.address,
            entity.type,
            ProviderType.DISPLAY_NAMES.get(entity.type, ""),
            entity.specialty,
        )
        return any(needle in text.casefold() for text in haystacks if text)

    @staticmethod
    def matches_types(entity: ProviderEntity, types: frozenset[str]) -> bool:
        """Type membership; an empty selection matches everything."""
        return not types or entity.type in types

    @staticmethod
    def matches_open_now(entity: ProviderEntity, open_now: bool) -> bool:
        return not open_now or entity.is_open_now

    @staticmethod
    def build_predicates(filters: ProviderFilters) -> list[Predicate]:
        """Compose the filter state into a list of predicates (all must hold)."""
        return [
            lambda e: FilterPipeline.in_mode(e, filters.mode),
            lambda e: FilterPipeline.matches_query(e, filters.query),
            lambda e: FilterPipeline.matches_types(e, filters.types),
            lambda e: FilterPipeline.matches_open_now(e, filters.open_now),
        ]

    # =========================================================================
    # DISPLAY SET
    # =========================================================================

    @staticmethod
    def compute_display_set(
        entities: Sequence[ProviderEntity],
        filters: ProviderFilters,
        user_position: Coordinates | None,
        selected_id: str | None,
    ) -> list[DisplayEntity]:
        """Filter, annotate and sort providers for display.

        Args:
            entities: Current provider snapshot from the data layer
            filters: Mode and predicate state
            user_position: User location, None when unknown
            selected_id: Currently selected provider id, if any

        Returns:
            DisplayEntity list sorted by ascending distance; providers without
            a known distance come last, ties keep input order. With no user
            position the filtered input order is preserved.
        """
        predicates = FilterPipeline.build_predicates(filters)
        kept = [e for e in entities if all(predicate(e) for predicate in predicates)]

        annotated = [
            DisplayEntity(
                entity=e,
                distance_from_user_km=GeoCalculator.distance_km(e.coordinates, user_position),
                is_selected=selected_id is not None and e.id == selected_id,
            )
            for e in kept
        ]
        return GeoCalculator.sort_by_distance(annotated, distance_of=lambda d: d.distance_from_user_km)

    @staticmethod
    def available_types(entities: Iterable[ProviderEntity], mode: str) -> list[str]:
        """Types present in the mode's base set, in ProviderType.ALL order."""
        present = {e.type for e in entities if FilterPipeline.in_mode(e, mode)}
        return [t for t in ProviderType.ALL if t in present]
