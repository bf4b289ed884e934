"""Pixel-radius marker clustering in Web Mercator.

Markers closer than a fixed number of screen pixels at the current zoom are
merged into one cluster. Above a high zoom threshold clustering is disabled so
that neighbouring facilities stay individually clickable.

The projection is done with pyproj (EPSG:4326 -> EPSG:3857), then scaled to
screen pixels: the whole world is 256 px wide at zoom 0 and doubles in width
with every zoom level.

Grouping is greedy in input order (the first unassigned marker seeds a
cluster and absorbs all unassigned markers within the radius), using a grid of
radius-sized cells so each seed only inspects its 3x3 neighbourhood.
"""

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache

import numpy as np
from pyproj import Transformer

from cityhealth_map.constants import ClusterConfig

logger = logging.getLogger(__name__)

# Web Mercator is undefined at the poles
MAX_MERCATOR_LAT = 85.05112878


@dataclass(frozen=True)
class ClusterPoint:
    """Input to clustering: one marker position."""

    id: str
    lon: float
    lat: float


@dataclass(frozen=True)
class Cluster:
    """A group of markers drawn as one symbol.

    Attributes:
        member_ids: Marker ids in input order
        lon: Centroid longitude
        lat: Centroid latitude
    """

    member_ids: tuple[str, ...]
    lon: float
    lat: float

    @property
    def count(self) -> int:
        return len(self.member_ids)

    @property
    def is_single(self) -> bool:
        return len(self.member_ids) == 1


@lru_cache(maxsize=1)
def _to_web_mercator() -> Transformer:
    return Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)


def project_to_pixels(lons: np.ndarray, lats: np.ndarray, zoom: float) -> tuple[np.ndarray, np.ndarray]:
    """Project lon/lat arrays to world pixel coordinates at a zoom level.

    Returns:
        Tuple (px, py); y grows downwards like screen coordinates.
    """
    lats = np.clip(lats, -MAX_MERCATOR_LAT, MAX_MERCATOR_LAT)
    xs, ys = _to_web_mercator().transform(lons, lats)
    half = ClusterConfig.WEB_MERCATOR_HALF_WORLD_M
    world_px = ClusterConfig.WORLD_SIZE_PX_AT_ZOOM_0 * (2.0**zoom)
    px = (np.asarray(xs) + half) / (2 * half) * world_px
    py = (half - np.asarray(ys)) / (2 * half) * world_px
    return px, py


def cluster_points(
    points: Sequence[ClusterPoint],
    zoom: float,
    radius_px: float = ClusterConfig.DEFAULT_RADIUS_PX,
    disable_at_zoom: float = ClusterConfig.DISABLE_CLUSTERING_AT_ZOOM,
) -> list[Cluster]:
    """Group points within radius_px screen pixels of a seed point.

    Args:
        points: Marker positions (finite coordinates)
        zoom: Current map zoom
        radius_px: Cluster radius in screen pixels
        disable_at_zoom: At or above this zoom every point is its own cluster

    Returns:
        Clusters in seed order. Every input id appears in exactly one cluster.
    """
    if not points:
        return []

    if zoom >= disable_at_zoom or radius_px <= 0:
        return [Cluster(member_ids=(p.id,), lon=p.lon, lat=p.lat) for p in points]

    lons = np.array([p.lon for p in points], dtype=float)
    lats = np.array([p.lat for p in points], dtype=float)
    px, py = project_to_pixels(lons, lats, zoom)

    cells: dict[tuple[int, int], list[int]] = defaultdict(list)
    cell_x = np.floor(px / radius_px).astype(int)
    cell_y = np.floor(py / radius_px).astype(int)
    for idx in range(len(points)):
        cells[(int(cell_x[idx]), int(cell_y[idx]))].append(idx)

    assigned = np.zeros(len(points), dtype=bool)
    clusters: list[Cluster] = []

    for seed in range(len(points)):
        if assigned[seed]:
            continue
        cx, cy = int(cell_x[seed]), int(cell_y[seed])
        candidates = [
            idx
            for dx in (-1, 0, 1)
            for dy in (-1, 0, 1)
            for idx in cells.get((cx + dx, cy + dy), ())
            if not assigned[idx]
        ]
        candidate_arr = np.array(sorted(candidates), dtype=int)
        dist = np.hypot(px[candidate_arr] - px[seed], py[candidate_arr] - py[seed])
        members = candidate_arr[dist <= radius_px]
        assigned[members] = True

        clusters.append(
            Cluster(
                member_ids=tuple(points[i].id for i in members),
                lon=float(lons[members].mean()),
                lat=float(lats[members].mean()),
            )
        )

    logger.debug(f"[CLUSTER] {len(points)} points -> {len(clusters)} clusters at zoom {zoom}")
    return clusters
