"""Base scanner interface for spatial cluster detection.

Defines the abstract base class ClusterScanner that both scan strategies
implement, providing consistent fit, circles, hotspots and density_raster
operations.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from datetime import datetime

import pandas as pd
import geopandas as gpd

from cluster_detection.circle import ClusterCircle, EvaluatedCircle, evaluate_circle
from cluster_detection.fitness import FitnessFunction, FitnessKind
from cluster_detection.points import WeightedPointSet
from cluster_detection.raster import DensityRaster, DensityRasterizer
from cluster_detection.utils import (
    Extent,
    WeightSelector,
    canonical_params_json,
    param_hash_from_json,
    HYPERPARAM_KEYS,
)


class ClusterScanner(ABC):
    """Abstract base class for cluster scan strategies.

    Attributes:
        function_type: Fitness formula used for significant circles.
        threshold: Significance threshold for the Poisson tail probability.
        cell_size: Density raster cell size (0 = default).
        standardize: Whether raster kernels are standardized to sum to 1.
        params: Dictionary of scan parameters.
        points_: Loaded population/case indexes (populated by fit()).
        circles_: Significant circles (populated by fit()).
        extent_: Output extent of the density raster (populated by fit()).
    """

    def __init__(
        self,
        function_type: Any = FitnessKind.POISSON,
        threshold: float = 0.01,
        cell_size: float = 0.0,
        standardize: bool = False,
        **params
    ):
        self.function_type = FitnessKind.parse(function_type)
        self.threshold = threshold
        self.cell_size = cell_size
        self.standardize = standardize
        self.params = params
        self.params.update({
            "function_type": self.function_type.value,
            "threshold": threshold,
        })

        self.points_: Optional[WeightedPointSet] = None
        self.circles_: Optional[List[EvaluatedCircle]] = None
        self.extent_: Optional[Extent] = None
        self.crs = None

        # Store method name (set by subclasses)
        self.method: Optional[str] = None

    def make_fitness(self) -> FitnessFunction:
        return FitnessFunction(self.function_type, self.threshold)

    def fit(
        self,
        population: pd.DataFrame,
        pop_weight: WeightSelector,
        cases: pd.DataFrame,
        case_weight: WeightSelector,
        x_col: str = "x",
        y_col: str = "y",
        crs: Any = None
    ) -> "ClusterScanner":
        """Load points and run the scan.

        Args:
            population: Population points (GeoDataFrame or DataFrame with x/y columns).
            pop_weight: Column name or callable giving population weights.
            cases: Case points (GeoDataFrame or DataFrame with x/y columns).
            case_weight: Column name or callable giving case weights.
            x_col: Name of x column for plain DataFrames.
            y_col: Name of y column for plain DataFrames.
            crs: CRS override for plain DataFrames (optional).

        Returns:
            self for method chaining.

        Raises:
            ValueError: If inputs are missing or the study extent cannot be derived.
        """
        points = WeightedPointSet.load(
            population, pop_weight, cases, case_weight, x_col, y_col, crs
        )
        if points.extent is None:
            raise ValueError("Population features are empty; cannot derive the study extent")

        self.points_ = points
        self.crs = points.crs
        self.circles_ = self.scan(points, self.make_fitness())
        return self

    @abstractmethod
    def scan(self, points: WeightedPointSet, fitness: FitnessFunction) -> List[EvaluatedCircle]:
        """Enumerate candidate circles and return the significant ones.

        Implementations must also set ``self.extent_`` to the raster extent.
        """
        pass

    def evaluate(
        self,
        points: WeightedPointSet,
        fitness: FitnessFunction,
        circle: ClusterCircle,
        cases: float
    ) -> Optional[EvaluatedCircle]:
        """Accumulate population inside a circle and test its significance."""
        inside = points.population.query_polygon(circle.polygon)
        population = points.population.sum_values(inside)
        expected = population * points.density
        return evaluate_circle(circle, fitness, population, expected, cases)

    def circles(self) -> List[EvaluatedCircle]:
        """Return significant circles.

        Raises:
            RuntimeError: If model has not been fitted.
        """
        if self.circles_ is None:
            raise RuntimeError("Model not fitted. Run .fit() first.")
        return self.circles_

    def hotspots(
        self,
        top_n: Optional[int] = None,
        min_fitness: Optional[float] = None
    ) -> gpd.GeoDataFrame:
        """Significant circles as polygon features.

        Args:
            top_n: Keep only the ``top_n`` circles by fitness (optional).
            min_fitness: Keep only circles with at least this fitness (optional).
                Applied before ``top_n`` when both are given.

        Returns:
            GeoDataFrame with columns:
                - geometry: circle polygon (in the input CRS)
                - radius, fitness, pop, expected, cases
                - method: Scanner name
                - params_hash: 10-character SHA-1 hash
                - params_json: Canonical JSON string
                - crs: CRS string of the input, if known
        """
        circles = self.circles()

        gdf = gpd.GeoDataFrame(
            {
                "radius": [c.radius for c in circles],
                "fitness": [c.fitness for c in circles],
                "pop": [c.population for c in circles],
                "expected": [c.expected for c in circles],
                "cases": [c.cases for c in circles],
            },
            geometry=[c.polygon for c in circles],
            crs=self.crs
        )

        info = self.info()
        gdf["method"] = self.method
        gdf["params_hash"] = info["params_hash"]
        gdf["params_json"] = info["params_json"]
        gdf["crs"] = str(self.crs) if self.crs is not None else None

        if min_fitness is not None:
            gdf = gdf[gdf["fitness"] >= min_fitness]
        if top_n is not None:
            gdf = gdf.nlargest(top_n, "fitness")

        return gdf.reset_index(drop=True)

    def density_raster(
        self,
        cell_size: Optional[float] = None,
        standardize: Optional[bool] = None
    ) -> DensityRaster:
        """Render significant circles as a kernel density raster.

        Args:
            cell_size: Override the scanner's cell size (optional).
            standardize: Override the scanner's standardize flag (optional).

        Returns:
            DensityRaster covering the scan extent.
        """
        circles = self.circles()
        rasterizer = DensityRasterizer(
            self.extent_,
            cell_size=self.cell_size if cell_size is None else cell_size,
            crs=self.crs,
            standardize=self.standardize if standardize is None else standardize,
        )
        return rasterizer.accumulate(circles).raster()

    def info(self) -> Dict[str, Any]:
        """Return scanner information.

        Returns:
            Dictionary with method name, params, params_json, params_hash,
            density, point counts, n_circles, extent, timestamp.

        Note:
            Can be called before fitting; fit-dependent values are None.
        """
        if self.method is None:
            raise RuntimeError("Method name not set. This should not happen.")

        include = HYPERPARAM_KEYS.get(self.method, set())
        params_json = canonical_params_json(self.method, self.params, include)
        params_hash = param_hash_from_json(params_json)

        points = self.points_
        return {
            "method": self.method,
            "params": self.params,
            "params_json": params_json,
            "params_hash": params_hash,
            "density": points.density if points is not None else None,
            "n_population": len(points.population) if points is not None else None,
            "n_cases": len(points.cases) if points is not None else None,
            "n_circles": len(self.circles_) if self.circles_ is not None else None,
            "extent": self.extent_,
            "crs": str(self.crs) if self.crs is not None else None,
            "timestamp": datetime.now().isoformat(),
        }
