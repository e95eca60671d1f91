"""Besag-Newell cluster detection.

Each case point is the centre of a circle just large enough to reach its
k nearest neighbouring cases. The neighbours' weights are the observed count;
the population inside the circle sets the expected count.

Reference: Besag, J. and Newell, J. (1991). The detection of clusters in rare
diseases. Journal of the Royal Statistical Society, Series A, 154(1), 143-155.
"""

import warnings
from typing import List

from cluster_detection.base import ClusterScanner
from cluster_detection.circle import ClusterCircle, EvaluatedCircle
from cluster_detection.fitness import FitnessFunction
from cluster_detection.points import WeightedPointSet


DEFAULT_NEIGHBOURS = 10


class BesagNewellScanner(ClusterScanner):
    """k-nearest-neighbour circle scan.

    Args:
        neighbours: Number of neighbouring cases each circle must reach (default: 10).
        **kwargs: Additional arguments passed to ClusterScanner base class.
    """

    def __init__(self, neighbours: int = DEFAULT_NEIGHBOURS, **kwargs):
        if neighbours is None or neighbours <= 0:
            warnings.warn(
                f"The neighbours value must be greater than 0. "
                f"Using the default of {DEFAULT_NEIGHBOURS}."
            )
            neighbours = DEFAULT_NEIGHBOURS

        super().__init__(**kwargs)
        self.neighbours = int(neighbours)
        self.method = "besag_newell"
        self.params.update({"neighbours": self.neighbours})

    def scan(self, points: WeightedPointSet, fitness: FitnessFunction) -> List[EvaluatedCircle]:
        self.extent_ = points.extent

        circles = []
        case_index = points.cases
        for i, start in enumerate(case_index):
            neighbours, distances = case_index.nearest(i, self.neighbours)
            if len(neighbours) == 0:
                continue

            radius = float(distances.max())
            if radius <= 0:
                # every neighbour is coincident; a zero-area circle holds no population
                continue
            cases = case_index.sum_values(neighbours)

            circle = ClusterCircle(start.x, start.y, radius)
            evaluated = self.evaluate(points, fitness, circle, cases)
            if evaluated is not None:
                circles.append(evaluated)

        return circles
