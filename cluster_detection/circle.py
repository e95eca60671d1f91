"""Candidate circles and their evaluated statistics."""

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

from shapely.geometry import Point, Polygon

from cluster_detection.fitness import FitnessFunction


# 6 segments per quadrant -> 24-sided circle approximation
QUADRANT_SEGMENTS = 6


@dataclass(frozen=True)
class ClusterCircle:
    """Circular search region. Geometry is derived once and never mutated."""
    x: float
    y: float
    radius: float
    polygon: Polygon = field(init=False, repr=False, compare=False)
    bounds: Tuple[float, float, float, float] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        polygon = Point(self.x, self.y).buffer(self.radius, quad_segs=QUADRANT_SEGMENTS)
        object.__setattr__(self, "polygon", polygon)
        object.__setattr__(self, "bounds", tuple(polygon.bounds))

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class EvaluatedCircle:
    """A circle that passed the significance test, with its statistics."""
    circle: ClusterCircle
    fitness: float
    population: float
    expected: float
    cases: float

    @property
    def center(self) -> Tuple[float, float]:
        return self.circle.center

    @property
    def radius(self) -> float:
        return self.circle.radius

    @property
    def polygon(self) -> Polygon:
        return self.circle.polygon

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return self.circle.bounds


def evaluate_circle(
    circle: ClusterCircle,
    fitness: FitnessFunction,
    population: float,
    expected: float,
    cases: float
) -> Optional[EvaluatedCircle]:
    """Run the significance test on a circle's accumulated counts.

    Returns:
        EvaluatedCircle if significant, otherwise None.
    """
    if not fitness.is_worth_testing(expected, cases):
        return None

    stat = fitness.stat(expected, cases)
    if stat is None or math.isnan(stat):
        return None

    return EvaluatedCircle(circle, float(stat), float(population), float(expected), float(cases))
