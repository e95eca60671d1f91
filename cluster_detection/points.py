"""Weighted point storage and spatial indexing.

Population and case events are loaded into two ``WeightedPointIndex``
instances. Each index answers bounding-box range queries through a shapely
STRtree and k-nearest-neighbour queries through a scikit-learn KD-tree.
Both indexes are read-only once built, so concurrent readers are safe.
"""

from typing import Any, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import shapely
from shapely.geometry.base import BaseGeometry
from sklearn.neighbors import KDTree

from cluster_detection.utils import (
    Extent,
    WeightSelector,
    evaluate_weights,
    frame_bounds,
    point_coordinates,
)


class WeightedPoint(NamedTuple):
    """A single weighted event location."""
    id: str
    x: float
    y: float
    value: float


class WeightedPointIndex:
    """Spatial index over a fixed set of weighted points.

    Args:
        ids: Point identifiers.
        xy: Coordinates, shape (n, 2).
        values: Point weights, all > 0.
    """

    def __init__(
        self,
        ids: Sequence[str],
        xy: np.ndarray,
        values: np.ndarray
    ):
        self.ids = np.asarray(ids, dtype=object)
        self.xy = np.asarray(xy, dtype=float).reshape(-1, 2)
        self.values = np.asarray(values, dtype=float)

        if not (len(self.ids) == len(self.xy) == len(self.values)):
            raise ValueError("ids, xy and values must have the same length")

        self.geometries = shapely.points(self.xy) if len(self.xy) else np.empty(0, dtype=object)
        self._tree = shapely.STRtree(self.geometries)
        self._knn: Optional[KDTree] = KDTree(self.xy) if len(self.xy) else None

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self):
        for i in range(len(self)):
            yield self.point(i)

    def point(self, i: int) -> WeightedPoint:
        return WeightedPoint(
            str(self.ids[i]), float(self.xy[i, 0]), float(self.xy[i, 1]), float(self.values[i])
        )

    @property
    def total(self) -> float:
        return float(self.values.sum())

    def query_bounds(self, bounds: Extent) -> np.ndarray:
        """Indices of points whose location falls in a bounding box."""
        if len(self) == 0:
            return np.empty(0, dtype=np.intp)
        return self._tree.query(shapely.box(*bounds))

    def query_polygon(self, polygon: BaseGeometry) -> np.ndarray:
        """Indices of points intersecting a polygon.

        A bounding-box query narrows the candidates, then each candidate is
        tested exactly against the prepared polygon.
        """
        candidates = self.query_bounds(polygon.bounds)
        if len(candidates) == 0:
            return candidates
        shapely.prepare(polygon)
        hits = shapely.intersects(polygon, self.geometries[candidates])
        return candidates[hits]

    def bulk_query(self, polygons: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Match many polygons against the index at once.

        Returns:
            Tuple of (polygon_indices, point_indices) for every intersecting pair.
        """
        if len(self) == 0 or len(polygons) == 0:
            empty = np.empty(0, dtype=np.intp)
            return empty, empty
        pairs = self._tree.query(polygons, predicate="intersects")
        return pairs[0], pairs[1]

    def sum_values(self, indices: np.ndarray) -> float:
        return float(self.values[indices].sum())

    def nearest(self, i: int, k: int) -> Tuple[np.ndarray, np.ndarray]:
        """k nearest neighbours of point ``i``, excluding the point itself.

        Self-exclusion compares positions in the index, so coincident points
        with different positions are still returned as neighbours.

        Args:
            i: Position of the query point in this index.
            k: Number of neighbours wanted.

        Returns:
            Tuple of (indices, distances), sorted by distance. Fewer than ``k``
            entries are returned when the index holds fewer than ``k + 1`` points.
        """
        if self._knn is None or k <= 0:
            return np.empty(0, dtype=np.intp), np.empty(0, dtype=float)

        n_query = min(len(self), k + 1)
        distances, indices = self._knn.query(self.xy[i:i + 1], k=n_query)
        distances, indices = distances[0], indices[0]

        keep = indices != i
        return indices[keep][:k], distances[keep][:k]


def _build_index(frame: pd.DataFrame, weight: WeightSelector, x_col: str, y_col: str) -> WeightedPointIndex:
    xy = point_coordinates(frame, x_col, y_col)
    values = evaluate_weights(frame, weight)

    # absent, NaN, infinite and non-positive weights never enter the index
    valid = np.isfinite(values) & (values > 0) & np.isfinite(xy).all(axis=1)
    ids = frame.index.astype(str).to_numpy()

    return WeightedPointIndex(ids[valid], xy[valid], values[valid])


class WeightedPointSet:
    """Population and case indexes with the global density baseline.

    Attributes:
        population: Index of population points.
        cases: Index of case points.
        density: Total case weight / total population weight (0 if no population).
        extent: Bounds of all population geometries, or None for empty input.
        crs: CRS of the population frame, if any.
    """

    def __init__(
        self,
        population: WeightedPointIndex,
        cases: WeightedPointIndex,
        extent: Optional[Extent] = None,
        crs: Any = None
    ):
        self.population = population
        self.cases = cases
        self.extent = extent
        self.crs = crs

        pop_sum = population.total
        self.density = 0.0 if pop_sum == 0 else cases.total / pop_sum

    @classmethod
    def load(
        cls,
        population: pd.DataFrame,
        pop_weight: WeightSelector,
        cases: pd.DataFrame,
        case_weight: WeightSelector,
        x_col: str = "x",
        y_col: str = "y",
        crs: Any = None
    ) -> "WeightedPointSet":
        """Build both indexes from population and case frames.

        Args:
            population: Population points (GeoDataFrame or DataFrame with x/y columns).
            pop_weight: Column name or callable giving population weights.
            cases: Case points (GeoDataFrame or DataFrame with x/y columns).
            case_weight: Column name or callable giving case weights.
            x_col: Name of x column for plain DataFrames.
            y_col: Name of y column for plain DataFrames.
            crs: CRS override. Defaults to the population frame's CRS.

        Returns:
            Loaded WeightedPointSet.

        Raises:
            ValueError: If either frame is missing.
        """
        if population is None:
            raise ValueError("Population features are required")
        if cases is None:
            raise ValueError("Case features are required")

        if crs is None:
            crs = getattr(population, "crs", None)

        pop_index = _build_index(population, pop_weight, x_col, y_col)
        case_index = _build_index(cases, case_weight, x_col, y_col)

        return cls(pop_index, case_index, frame_bounds(population, x_col, y_col), crs)
