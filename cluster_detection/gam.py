"""Openshaw's Geographical Analysis Machine (GAM).

Lays a grid of overlapping circles over the study area for a range of radii
and keeps every circle whose case count is significantly above the count
expected from its population.

Reference: Openshaw, S., Charlton, M., Wymer, C. and Craft, A. (1987).
A Mark 1 Geographical Analysis Machine for the automated analysis of point
data sets. International Journal of GIS, 1(4), 335-358.
"""

import math
import warnings
from typing import List, Optional

import numpy as np
import shapely
from joblib import Parallel, delayed

from cluster_detection.base import ClusterScanner
from cluster_detection.circle import (
    QUADRANT_SEGMENTS,
    ClusterCircle,
    EvaluatedCircle,
    evaluate_circle,
)
from cluster_detection.fitness import FitnessFunction
from cluster_detection.points import WeightedPointSet
from cluster_detection.utils import Extent, expand_extent, extent_height, extent_width


DEFAULT_OVERLAP_RATIO = 0.5
MIN_RADIUS_DIVISOR = 150.0
MAX_RADIUS_FACTOR = 5.0

# tolerance for the inclusive upper bound of stepped ranges
_STEP_EPS = 1e-9


def stepped_range(start: float, stop: float, step: float) -> np.ndarray:
    """Values ``start + i * step`` for every i with the value <= stop."""
    count = int(math.floor((stop - start) / step + _STEP_EPS)) + 1
    return start + step * np.arange(max(count, 0))


class GAMScanner(ClusterScanner):
    """Dense radius/position circle scan.

    Args:
        min_radius: Radius of the smallest circle. None or <= 0 derives it from
            the study extent: min(width, height) / 150.
        max_radius: Radius of the largest circle. None or <= min_radius uses
            5 * min_radius.
        radius_increment: Radius step. None or <= 0 uses min_radius / 2.
        overlap_ratio: Centre spacing as a fraction of the radius, clamped to
            [0, 1] (default: 0.5). A ratio of 0 falls back to the default.
        n_jobs: Number of joblib workers over radii (default: 1 = serial).
        **kwargs: Additional arguments passed to ClusterScanner base class.
    """

    def __init__(
        self,
        min_radius: Optional[float] = None,
        max_radius: Optional[float] = None,
        radius_increment: Optional[float] = None,
        overlap_ratio: float = DEFAULT_OVERLAP_RATIO,
        n_jobs: int = 1,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.min_radius = min_radius
        self.max_radius = max_radius
        self.radius_increment = radius_increment
        self.overlap_ratio = self._clamp_overlap(overlap_ratio)
        self.n_jobs = n_jobs
        self.method = "gam"

        self.min_radius_: Optional[float] = None
        self.max_radius_: Optional[float] = None
        self.radius_increment_: Optional[float] = None

        self.params.update({
            "min_radius": min_radius,
            "max_radius": max_radius,
            "radius_increment": radius_increment,
            "overlap_ratio": self.overlap_ratio,
        })

    @staticmethod
    def _clamp_overlap(overlap_ratio: float) -> float:
        ratio = min(max(float(overlap_ratio), 0.0), 1.0)
        if ratio == 0.0:
            warnings.warn(
                f"The overlapRatio must be greater than 0. Using the default of {DEFAULT_OVERLAP_RATIO}."
            )
            ratio = DEFAULT_OVERLAP_RATIO
        return ratio

    def resolve_radii(self, extent: Extent):
        """Substitute defaults for missing or invalid radius parameters.

        Returns:
            Tuple of (min_radius, max_radius, radius_increment).

        Raises:
            ValueError: If the extent is too small to derive a positive radius.
        """
        min_radius, max_radius, increment = self.min_radius, self.max_radius, self.radius_increment

        if min_radius is None or min_radius <= 0:
            if min_radius is not None:
                warnings.warn(
                    "The minRadius parameter must be greater than 0. "
                    "Set the minRadius parameter value to the default."
                )
                max_radius = None
            min_radius = min(extent_width(extent), extent_height(extent)) / MIN_RADIUS_DIVISOR
            if min_radius <= 0:
                raise ValueError(
                    f"Study extent {extent} is degenerate; cannot derive a default minRadius"
                )

        if max_radius is None or max_radius <= min_radius:
            if max_radius is not None:
                warnings.warn(
                    "The maxRadius parameter must be greater than minRadius. "
                    f"Using {MAX_RADIUS_FACTOR:g} * minRadius."
                )
            max_radius = min_radius * MAX_RADIUS_FACTOR

        if increment is None or increment <= 0:
            if increment is not None:
                warnings.warn(
                    "The radiusIncrement parameter must be greater than 0. Using minRadius / 2."
                )
            increment = min_radius / 2.0

        return float(min_radius), float(max_radius), float(increment)

    def scan(self, points: WeightedPointSet, fitness: FitnessFunction) -> List[EvaluatedCircle]:
        min_radius, max_radius, increment = self.resolve_radii(points.extent)
        self.min_radius_, self.max_radius_, self.radius_increment_ = min_radius, max_radius, increment

        # circles may be centred just outside the data and still overlap it
        extent = expand_extent(points.extent, max_radius / 2.0)
        self.extent_ = extent

        radii = stepped_range(min_radius, max_radius, increment)
        if self.n_jobs == 1:
            shards = [self.scan_radius(points, fitness, radius, extent) for radius in radii]
        else:
            shards = Parallel(n_jobs=self.n_jobs, prefer="threads")(
                delayed(self.scan_radius)(points, fitness, radius, extent) for radius in radii
            )

        return [circle for shard in shards for circle in shard]

    def scan_radius(
        self,
        points: WeightedPointSet,
        fitness: FitnessFunction,
        radius: float,
        extent: Extent
    ) -> List[EvaluatedCircle]:
        """Evaluate every grid position for one radius.

        Reads the two indexes only, so radii can be scanned concurrently.
        """
        radius = float(radius)
        step = radius * self.overlap_ratio
        minx, miny, maxx, maxy = extent

        xs = stepped_range(minx, maxx, step)
        ys = stepped_range(miny, maxy, step)
        gx, gy = np.meshgrid(xs, ys, indexing="ij")
        centers = np.column_stack([gx.ravel(), gy.ravel()])
        polygons = shapely.buffer(shapely.points(centers), radius, quad_segs=QUADRANT_SEGMENTS)

        pop_circles, pop_points = points.population.bulk_query(polygons)
        population = np.bincount(
            pop_circles, weights=points.population.values[pop_points], minlength=len(polygons)
        )
        case_circles, case_points = points.cases.bulk_query(polygons)
        cases = np.bincount(
            case_circles, weights=points.cases.values[case_points], minlength=len(polygons)
        )
        expected = population * points.density

        circles = []
        for i in range(len(polygons)):
            if not fitness.is_worth_testing(expected[i], cases[i]):
                continue
            circle = ClusterCircle(float(centers[i, 0]), float(centers[i, 1]), radius)
            evaluated = evaluate_circle(circle, fitness, population[i], expected[i], cases[i])
            if evaluated is not None:
                circles.append(evaluated)

        return circles
