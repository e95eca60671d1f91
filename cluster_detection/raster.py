"""Kernel density rasterization of significant circles.

Each circle spreads its fitness over a circular Epanechnikov kernel sized to
the circle's radius in grid cells. Kernels are added into one float32 grid,
so overlapping circles intensify into hot spots.
"""

import math
import os
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import numpy as np
import rasterio
from rasterio.transform import Affine, from_origin, rowcol

from cluster_detection.circle import EvaluatedCircle
from cluster_detection.utils import (
    Extent,
    extent_height,
    extent_width,
    is_geographic_crs,
    validate_extent,
)


DEFAULT_CELL_DIVISOR = 500.0


def epanechnikov_kernel(radius: int) -> np.ndarray:
    """Circular Epanechnikov kernel of ``radius`` cells.

    Args:
        radius: Kernel radius in cells (>= 1).

    Returns:
        float32 array of shape (2 * radius + 1, 2 * radius + 1). Weights fall
        off as 0.75 * (1 - d^2 / r^2) and are zero at and beyond the radius.
    """
    if radius < 1:
        raise ValueError(f"Kernel radius must be at least 1 cell, got {radius}")

    offsets = np.arange(-radius, radius + 1)
    yy, xx = np.meshgrid(offsets, offsets, indexing="ij")
    d2 = (xx * xx + yy * yy).astype(np.float64)
    r2 = float(radius * radius)

    kernel = np.where(d2 <= r2, 0.75 * (1.0 - d2 / r2), 0.0)
    return kernel.astype(np.float32)


def default_cell_size(extent: Extent, crs: Any = None) -> float:
    """Default cell size: the longer extent side over 500 cells.

    Projected (or unknown) CRSs round up to a whole unit; geographic CRSs keep
    the fractional degree value.
    """
    cell_size = max(extent_width(extent), extent_height(extent)) / DEFAULT_CELL_DIVISOR
    if is_geographic_crs(crs):
        return cell_size
    return float(math.ceil(cell_size))


@dataclass
class DensityRaster:
    """Density grid with its georeferencing.

    Attributes:
        data: float32 array of shape (height, width); row 0 is the top (max y) edge.
        transform: Affine transform from (col, row) to world coordinates.
        cell_size: Cell size in CRS units.
        extent: Grid extent (minx, miny, maxx, maxy), tiling exactly by whole cells.
        crs: Coordinate reference system, if known.
    """
    data: np.ndarray
    transform: Affine
    cell_size: float
    extent: Extent
    crs: Any = None

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    def to_geotiff(self, out_path: str) -> None:
        """Write the grid as a single-band float32 GeoTIFF."""
        out_dir = os.path.dirname(out_path)
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)

        profile = {
            "driver": "GTiff",
            "height": self.height,
            "width": self.width,
            "count": 1,
            "dtype": "float32",
            "transform": self.transform,
            "compress": "deflate",
        }
        if self.crs is not None:
            profile["crs"] = self.crs

        with rasterio.open(out_path, "w", **profile) as dst:
            dst.write(self.data.astype("float32"), 1)


class DensityRasterizer:
    """Accumulates significant circles into a kernel density grid.

    Args:
        extent: Output extent (minx, miny, maxx, maxy).
        cell_size: Cell size in CRS units. 0 or None selects the default.
        crs: Coordinate reference system of the extent.
        standardize: Rescale each kernel to sum to 1.0 before accumulation.

    Raises:
        ValueError: If the extent is missing, empty, or has no area to tile.
    """

    def __init__(
        self,
        extent: Extent,
        cell_size: Optional[float] = 0.0,
        crs: Any = None,
        standardize: bool = False
    ):
        extent = validate_extent(extent)

        if not cell_size or cell_size <= 0:
            cell_size = default_cell_size(extent, crs)
        if cell_size <= 0:
            raise ValueError(f"Extent {extent} is degenerate; cannot derive a cell size")

        self.cell_size = float(cell_size)
        self.crs = crs
        self.standardize = standardize

        self.width = max(1, int(math.floor(extent_width(extent) / self.cell_size + 0.5)))
        self.height = max(1, int(math.floor(extent_height(extent) / self.cell_size + 0.5)))

        minx, miny = extent[0], extent[1]
        self.extent = (
            minx,
            miny,
            minx + self.width * self.cell_size,
            miny + self.height * self.cell_size,
        )
        self.transform = from_origin(minx, self.extent[3], self.cell_size, self.cell_size)
        self.pixels = np.zeros((self.height, self.width), dtype=np.float32)

    def world_to_grid(self, x: float, y: float):
        """Convert world coordinates to (row, col) grid indices."""
        row, col = rowcol(self.transform, x, y)
        return int(row), int(col)

    def kernel_for(self, circle: EvaluatedCircle) -> np.ndarray:
        """Kernel for one circle, with its centre weight set to the fitness."""
        cell_radius = int(math.floor((circle.radius + self.cell_size) / self.cell_size))
        kernel = epanechnikov_kernel(cell_radius)
        kernel[cell_radius, cell_radius] = circle.fitness

        if self.standardize:
            total = float(kernel.sum())
            if total != 0.0:
                kernel = kernel / total

        return kernel

    def quantize(self, circle: EvaluatedCircle) -> None:
        """Add one circle's kernel contribution into the grid."""
        kernel = self.kernel_for(circle) * np.float32(circle.fitness)
        radius = kernel.shape[0] // 2
        row, col = self.world_to_grid(*circle.center)

        # clip the kernel window to the grid
        r0, r1 = row - radius, row + radius + 1
        c0, c1 = col - radius, col + radius + 1
        gr0, gr1 = max(r0, 0), min(r1, self.height)
        gc0, gc1 = max(c0, 0), min(c1, self.width)
        if gr0 >= gr1 or gc0 >= gc1:
            return

        self.pixels[gr0:gr1, gc0:gc1] += kernel[gr0 - r0:gr1 - r0, gc0 - c0:gc1 - c0]

    def accumulate(self, circles: Iterable[EvaluatedCircle]) -> "DensityRasterizer":
        for circle in circles:
            self.quantize(circle)
        return self

    def raster(self) -> DensityRaster:
        return DensityRaster(
            data=self.pixels,
            transform=self.transform,
            cell_size=self.cell_size,
            extent=self.extent,
            crs=self.crs,
        )
