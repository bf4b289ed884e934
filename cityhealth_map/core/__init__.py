"""Core logic for the provider map, free of any rendering code.

This module provides the pure backbone of the map engine:
- GeoCalculator: Distance calculations and distance sorting
- FilterPipeline / ProviderFilters: Provider collection -> display set
- query_params: Filter state <-> shared-link query string
- clustering: Pixel-radius marker clustering in Web Mercator
- ProviderSource: Read interface of the provider data layer
- GeolocationService: Optional user position
"""

from cityhealth_map.core.clustering import Cluster, ClusterPoint, cluster_points
from cityhealth_map.core.filter_pipeline import FilterPipeline, ProviderFilters
from cityhealth_map.core.geo_calculator import GeoCalculator
from cityhealth_map.core.geolocation import GeolocationError, GeolocationService, GeolocationState
from cityhealth_map.core.provider_source import (
    InMemoryProviderSource,
    ProviderFetchError,
    ProviderSnapshot,
    ProviderSource,
    demo_provider_records,
)
from cityhealth_map.core.query_params import decode_filters, encode_filters

__all__ = [
    # Geo calculator
    "GeoCalculator",
    # Filter pipeline
    "FilterPipeline",
    "ProviderFilters",
    "encode_filters",
    "decode_filters",
    # Clustering
    "Cluster",
    "ClusterPoint",
    "cluster_points",
    # Data layer
    "ProviderSource",
    "InMemoryProviderSource",
    "ProviderSnapshot",
    "ProviderFetchError",
    "demo_provider_records",
    # Geolocation
    "GeolocationService",
    "GeolocationState",
    "GeolocationError",
]
