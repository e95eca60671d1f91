"""Spatial cluster detection for weighted case and population points.

Provides Besag-Newell (k-nearest-neighbour circles) and GAM (dense
radius/position grid) scans with a Poisson significance test, plus kernel
density rasterization of the significant circles.
"""

from cluster_detection.base import ClusterScanner
from cluster_detection.besag_newell import BesagNewellScanner
from cluster_detection.gam import GAMScanner
from cluster_detection.circle import ClusterCircle, EvaluatedCircle, evaluate_circle
from cluster_detection.fitness import FitnessFunction, FitnessKind, MAX_CASES
from cluster_detection.points import WeightedPoint, WeightedPointIndex, WeightedPointSet
from cluster_detection.raster import DensityRaster, DensityRasterizer, epanechnikov_kernel
from cluster_detection.config import load_config, scanner_kwargs
from cluster_detection.utils import (
    canonical_params_json,
    param_hash_from_json,
    HYPERPARAM_KEYS,
    load_points_df,
    circles_to_geojson,
)


def make_scanner(name: str, **kwargs) -> ClusterScanner:
    """Factory function to create scanner instances.

    Args:
        name: Scan strategy ("gam" or "besag_newell").
        **kwargs: Strategy-specific parameters.

    Returns:
        ClusterScanner instance.

    Raises:
        ValueError: If strategy name is unknown.

    Examples:
        >>> scanner = make_scanner("besag_newell", neighbours=10, threshold=0.01)
        >>> scanner = make_scanner("gam", min_radius=500.0, max_radius=2500.0)
    """
    key = name.strip().lower().replace("-", "_")
    if key == "gam":
        return GAMScanner(**kwargs)
    elif key in ("besag_newell", "besagnewell"):
        return BesagNewellScanner(**kwargs)
    else:
        raise ValueError(f"Unknown algorithm: {name}. Must be one of: gam, besag_newell")


__all__ = [
    "ClusterScanner",
    "BesagNewellScanner",
    "GAMScanner",
    "ClusterCircle",
    "EvaluatedCircle",
    "evaluate_circle",
    "FitnessFunction",
    "FitnessKind",
    "MAX_CASES",
    "WeightedPoint",
    "WeightedPointIndex",
    "WeightedPointSet",
    "DensityRaster",
    "DensityRasterizer",
    "epanechnikov_kernel",
    "load_config",
    "scanner_kwargs",
    "make_scanner",
    "canonical_params_json",
    "param_hash_from_json",
    "HYPERPARAM_KEYS",
    "load_points_df",
    "circles_to_geojson",
]
