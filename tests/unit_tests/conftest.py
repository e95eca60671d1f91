"""Pytest fixtures for cluster_detection unit tests.

This module provides shared point sets for testing scanners, the fitness
function and the density rasterizer in isolation.
"""

import numpy as np
import pandas as pd
import pytest


CLUSTER_CENTER = (500.0, 500.0)
CLUSTER_RADIUS = 40.0


@pytest.fixture
def population_grid():
    """20 x 20 population grid at 50-unit spacing, 10 people per point.

    Returns:
        pd.DataFrame: DataFrame with 'x', 'y' and 'pop' columns (total pop 4000).
    """
    coords = np.arange(0.0, 1000.0, 50.0)
    gx, gy = np.meshgrid(coords, coords, indexing="ij")
    return pd.DataFrame({
        "x": gx.ravel(),
        "y": gy.ravel(),
        "pop": 10.0,
    })


@pytest.fixture
def clustered_cases():
    """Sparse background cases plus a dense ring of cases around (500, 500).

    Background: weight 1 at every other population grid point (100 points).
    Cluster: 20 points on a 40-unit ring, weight 5 each.

    Returns:
        pd.DataFrame: DataFrame with 'x', 'y' and 'count' columns (total 200).
    """
    coords = np.arange(0.0, 1000.0, 100.0)
    gx, gy = np.meshgrid(coords, coords, indexing="ij")
    background = pd.DataFrame({"x": gx.ravel(), "y": gy.ravel(), "count": 1.0})

    angles = np.linspace(0.0, 2.0 * np.pi, 20, endpoint=False)
    cluster = pd.DataFrame({
        "x": CLUSTER_CENTER[0] + CLUSTER_RADIUS * np.cos(angles),
        "y": CLUSTER_CENTER[1] + CLUSTER_RADIUS * np.sin(angles),
        "count": 5.0,
    })
    return pd.concat([background, cluster], ignore_index=True)


@pytest.fixture
def uniform_cases(population_grid):
    """Cases exactly proportional to population (no cluster anywhere).

    Returns:
        pd.DataFrame: One case of weight 0.05 at every population point.
    """
    cases = population_grid[["x", "y"]].copy()
    cases["count"] = 0.05
    return cases
