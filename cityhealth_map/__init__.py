"""CityHealth Map - Interactive health-care provider map.

Keeps a clustered set of map markers in sync with a changing collection of
health-care providers across three map modes (all providers, emergency,
blood donation) sharing a single persistent map surface.

Modules:
    core: Pure logic (geo calculations, filter pipeline, clustering, data sources)
    model: Data structures (Coordinates, ProviderEntity, DisplayEntity, LiveMarker)
    ui: Map synchronization engine (reconciler, cluster layers, lifecycle, selection)

Example:
    from cityhealth_map.core import FilterPipeline, ProviderFilters
    from cityhealth_map.ui import MapSession
"""
