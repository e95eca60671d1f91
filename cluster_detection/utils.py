"""Utility functions for cluster detection.

Provides helpers for extent handling, CRS inspection, weight evaluation,
coordinate extraction, parameter hashing, and point/circle file I/O.
"""

import json
import hashlib
import os
from typing import Callable, Dict, Any, Optional, Set, Tuple, Union

import numpy as np
import pandas as pd
import geopandas as gpd
from pyproj import CRS


Extent = Tuple[float, float, float, float]
WeightSelector = Union[str, Callable[[pd.DataFrame], Any]]


def validate_extent(extent: Optional[Extent]) -> Extent:
    """Validate an extent tuple.

    Args:
        extent: Extent as (minx, miny, maxx, maxy).

    Returns:
        The extent as a tuple of floats.

    Raises:
        ValueError: If the extent is missing, non-finite, or inverted.
    """
    if extent is None:
        raise ValueError("Extent is required")
    if len(extent) != 4:
        raise ValueError(f"Extent must be (minx, miny, maxx, maxy), got {extent!r}")

    minx, miny, maxx, maxy = (float(v) for v in extent)
    if not all(np.isfinite([minx, miny, maxx, maxy])):
        raise ValueError(f"Extent is empty or not finite: {extent!r}")
    if maxx < minx or maxy < miny:
        raise ValueError(f"Extent is inverted: {extent!r}")

    return minx, miny, maxx, maxy


def extent_width(extent: Extent) -> float:
    return extent[2] - extent[0]


def extent_height(extent: Extent) -> float:
    return extent[3] - extent[1]


def expand_extent(extent: Extent, distance: float) -> Extent:
    """Grow an extent by ``distance`` on every side."""
    minx, miny, maxx, maxy = extent
    return (minx - distance, miny - distance, maxx + distance, maxy + distance)


def is_geographic_crs(crs: Any) -> bool:
    """Check whether a CRS is geographic (degrees).

    Args:
        crs: Anything accepted by ``pyproj.CRS.from_user_input`` or None.

    Returns:
        True for geographic CRSs, False for projected ones or when crs is None.
    """
    if crs is None:
        return False
    return bool(CRS.from_user_input(crs).is_geographic)


def point_coordinates(
    frame: pd.DataFrame,
    x_col: str = "x",
    y_col: str = "y"
) -> np.ndarray:
    """Extract point coordinates from a DataFrame or GeoDataFrame.

    GeoDataFrames use the centroid of each geometry; plain DataFrames use the
    coordinate columns.

    Args:
        frame: Input frame.
        x_col: Name of x/longitude column for plain DataFrames.
        y_col: Name of y/latitude column for plain DataFrames.

    Returns:
        Array of shape (n, 2). Rows with missing geometry are NaN.

    Raises:
        ValueError: If a plain DataFrame lacks the coordinate columns.
    """
    if isinstance(frame, gpd.GeoDataFrame):
        xy = np.full((len(frame), 2), np.nan)
        geoms = frame.geometry
        valid = (~geoms.isna() & ~geoms.is_empty).to_numpy()
        if valid.any():
            centroids = geoms[valid].centroid
            xy[valid, 0] = centroids.x.to_numpy()
            xy[valid, 1] = centroids.y.to_numpy()
        return xy

    # a zero-row frame is empty input, whatever its columns
    if len(frame) == 0:
        return np.empty((0, 2))

    missing = {x_col, y_col} - set(frame.columns)
    if missing:
        raise ValueError(
            f"Missing required columns: {sorted(missing)}. "
            f"Available columns: {sorted(map(str, frame.columns))}"
        )
    return np.column_stack([
        pd.to_numeric(frame[x_col], errors="coerce").to_numpy(dtype=float),
        pd.to_numeric(frame[y_col], errors="coerce").to_numpy(dtype=float),
    ])


def frame_bounds(
    frame: pd.DataFrame,
    x_col: str = "x",
    y_col: str = "y"
) -> Optional[Extent]:
    """Bounds of every geometry in a frame, or None if there are none."""
    if isinstance(frame, gpd.GeoDataFrame):
        geoms = frame.geometry
        geoms = geoms[~geoms.isna() & ~geoms.is_empty]
        if len(geoms) == 0:
            return None
        return tuple(float(v) for v in geoms.total_bounds)

    xy = point_coordinates(frame, x_col, y_col)
    xy = xy[np.isfinite(xy).all(axis=1)]
    if len(xy) == 0:
        return None
    return (
        float(xy[:, 0].min()), float(xy[:, 1].min()),
        float(xy[:, 0].max()), float(xy[:, 1].max())
    )


def evaluate_weights(frame: pd.DataFrame, weight: WeightSelector) -> np.ndarray:
    """Evaluate a weight selector against every row of a frame.

    Args:
        frame: Input frame.
        weight: Column name, or a callable taking the frame and returning a
            Series/array of weights (one per row).

    Returns:
        Float array of weights. Missing or non-numeric values become NaN.

    Raises:
        ValueError: If the column is missing or the callable returns the wrong length.
    """
    if len(frame) == 0:
        return np.empty(0)

    if callable(weight):
        values = weight(frame)
    else:
        if weight not in frame.columns:
            raise ValueError(
                f"Weight column '{weight}' not found. "
                f"Available columns: {sorted(map(str, frame.columns))}"
            )
        values = frame[weight]

    values = pd.to_numeric(pd.Series(values, copy=False), errors="coerce").to_numpy(dtype=float)
    if len(values) != len(frame):
        raise ValueError(
            f"Weight selector returned {len(values)} values for {len(frame)} rows"
        )
    return values


HYPERPARAM_KEYS: Dict[str, Set[str]] = {
    "besag_newell": {"neighbours", "function_type", "threshold"},
    "gam": {
        "min_radius", "max_radius", "radius_increment", "overlap_ratio",
        "function_type", "threshold"
    }
}


def canonical_params_json(method: str, params: Dict[str, Any], include: Set[str]) -> str:
    """Create canonical JSON representation of scan parameters.

    Args:
        method: Scanner method name (e.g., "gam", "besag_newell").
        params: Dictionary of all parameters.
        include: Set of parameter keys to include in hash.

    Returns:
        Canonical JSON string (sorted keys, compact separators).

    Note:
        Only includes parameters specified in `include` set.
        Always includes __method__ for cross-method collision prevention.
    """
    filtered = {k: params[k] for k in sorted(params.keys()) if k in include}
    filtered["__method__"] = method
    return json.dumps(filtered, sort_keys=True, separators=(",", ":"), default=str)


def param_hash_from_json(params_json: str) -> str:
    """Generate deterministic SHA-1 hash from parameter JSON.

    Args:
        params_json: Canonical JSON string of parameters.

    Returns:
        10-character hex digest of SHA-1 hash.
    """
    return hashlib.sha1(params_json.encode()).hexdigest()[:10]


def load_points_df(path: str, x_col: str = "x", y_col: str = "y") -> pd.DataFrame:
    """Load a point table from CSV, JSON or JSONL.

    Args:
        path: Path to input file (.csv, .json or .jsonl).
        x_col: Name of x column.
        y_col: Name of y column.

    Returns:
        DataFrame with rows lacking coordinates removed.

    Raises:
        FileNotFoundError: If input file doesn't exist.
        ValueError: If required columns are missing or file format is unsupported.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Input file not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    if ext == ".csv":
        df = pd.read_csv(path)
    elif ext == ".jsonl":
        df = pd.read_json(path, lines=True)
    elif ext == ".json":
        with open(path, "r", encoding="utf-8") as f:
            records = json.load(f)
        df = pd.DataFrame(records)
    else:
        raise ValueError(f"Unsupported file format: {ext} (use .csv, .json or .jsonl)")

    missing = {x_col, y_col} - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}. "
                         f"Available columns: {sorted(df.columns.tolist())}")

    return df.dropna(subset=[x_col, y_col]).reset_index(drop=True)


def circles_to_geojson(gdf: gpd.GeoDataFrame, out_path: str) -> None:
    """Write significant circles to a GeoJSON file.

    Attribute values keep their frame types, so ``params_json`` is written as
    a JSON string rather than a nested object.

    Args:
        gdf: GeoDataFrame from a scanner's hotspots() method.
        out_path: Output file path.
    """
    out_dir = os.path.dirname(out_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    if len(gdf) == 0:
        text = json.dumps({"type": "FeatureCollection", "features": []})
    else:
        text = gdf.to_json(drop_id=True)

    with open(out_path, "w", encoding="utf-8") as f:
        f.write(text)
