"""Unit tests for cluster_detection.raster module."""

import numpy as np
import pytest
import rasterio

from cluster_detection.circle import ClusterCircle, EvaluatedCircle
from cluster_detection.raster import (
    DensityRasterizer,
    default_cell_size,
    epanechnikov_kernel,
)


def make_circle(x, y, radius, fitness):
    """Significant circle with placeholder statistics."""
    return EvaluatedCircle(ClusterCircle(x, y, radius), fitness, 0.0, 0.0, 0.0)


@pytest.fixture
def rasterizer():
    """20 x 20 grid of 10-unit cells over (0, 0, 200, 200)."""
    return DensityRasterizer((0.0, 0.0, 200.0, 200.0), cell_size=10.0)


class TestEpanechnikovKernel:
    """Test suite for epanechnikov_kernel."""

    def test_shape_and_peak(self):
        kernel = epanechnikov_kernel(2)

        assert kernel.shape == (5, 5)
        assert kernel.dtype == np.float32
        assert kernel[2, 2] == pytest.approx(0.75)

    def test_zero_at_and_beyond_radius(self):
        kernel = epanechnikov_kernel(2)

        assert kernel[2, 0] == 0.0
        assert kernel[0, 0] == 0.0
        assert kernel[2, 1] == pytest.approx(0.75 * (1.0 - 1.0 / 4.0))

    def test_radius_below_one_raises(self):
        with pytest.raises(ValueError, match="at least 1 cell"):
            epanechnikov_kernel(0)


class TestDensityRasterizer:
    """Test suite for DensityRasterizer grid setup and accumulation."""

    def test_single_circle_kernel(self, rasterizer):
        """Radius 50 in 10-unit cells spans 6 cells; the centre holds fitness^2."""
        rasterizer.accumulate([make_circle(100.0, 100.0, 50.0, 2.0)])
        data = rasterizer.raster().data

        assert data.shape == (20, 20)
        assert data[10, 10] == pytest.approx(4.0)
        assert data[10, 13] == pytest.approx(0.75 * (1.0 - 9.0 / 36.0) * 2.0)
        # kernel weight is zero at exactly the cell radius
        assert data[10, 16] == 0.0
        assert data[10, 17] == 0.0
        assert data[10, 3] == 0.0

    def test_non_overlapping_circles_add_independently(self):
        extent = (0.0, 0.0, 400.0, 200.0)
        a = make_circle(100.0, 100.0, 40.0, 1.5)
        b = make_circle(300.0, 100.0, 40.0, 3.0)

        both = DensityRasterizer(extent, 10.0).accumulate([a, b]).raster().data
        only_a = DensityRasterizer(extent, 10.0).accumulate([a]).raster().data
        only_b = DensityRasterizer(extent, 10.0).accumulate([b]).raster().data

        assert both.sum() == pytest.approx(only_a.sum() + only_b.sum(), rel=1e-5)
        np.testing.assert_allclose(both, only_a + only_b, rtol=1e-6)

    def test_overlapping_circles_intensify(self, rasterizer):
        circle = make_circle(100.0, 100.0, 30.0, 1.0)
        single = DensityRasterizer((0.0, 0.0, 200.0, 200.0), 10.0).accumulate([circle]).raster().data

        rasterizer.accumulate([circle, circle])

        np.testing.assert_allclose(rasterizer.raster().data, 2.0 * single, rtol=1e-6)

    def test_standardized_kernel_sums_to_fitness(self):
        rasterizer = DensityRasterizer((0.0, 0.0, 200.0, 200.0), 10.0, standardize=True)
        rasterizer.accumulate([make_circle(100.0, 100.0, 50.0, 2.5)])

        assert float(rasterizer.raster().data.sum()) == pytest.approx(2.5, rel=1e-5)

    def test_kernel_is_clipped_at_grid_edges(self, rasterizer):
        rasterizer.accumulate([make_circle(0.0, 0.0, 50.0, 2.0)])
        data = rasterizer.raster().data

        full = DensityRasterizer((0.0, 0.0, 200.0, 200.0), 10.0)
        full.accumulate([make_circle(100.0, 100.0, 50.0, 2.0)])

        # row 0 is the top edge, so (0, 0) lands on the bottom-left corner
        assert data[19, 0] > 0.0
        assert data[0, 19] == 0.0
        assert 0.0 < data.sum() < full.raster().data.sum()

    def test_circle_outside_grid_contributes_nothing(self, rasterizer):
        rasterizer.accumulate([make_circle(1000.0, 1000.0, 50.0, 2.0)])
        assert rasterizer.raster().data.sum() == 0.0

    def test_world_to_grid_puts_row_zero_at_top(self, rasterizer):
        assert rasterizer.world_to_grid(5.0, 195.0) == (0, 0)
        assert rasterizer.world_to_grid(195.0, 5.0) == (19, 19)
        assert rasterizer.world_to_grid(100.0, 100.0) == (10, 10)

    def test_extent_is_recomputed_from_whole_cells(self):
        rasterizer = DensityRasterizer((0.0, 0.0, 105.0, 42.0), cell_size=10.0)

        assert rasterizer.width == 11
        assert rasterizer.height == 4
        assert rasterizer.extent == (0.0, 0.0, 110.0, 40.0)

    def test_zero_area_extent_with_cell_size_has_one_cell(self):
        rasterizer = DensityRasterizer((5.0, 5.0, 5.0, 5.0), cell_size=1.0)
        assert (rasterizer.height, rasterizer.width) == (1, 1)

    def test_default_cell_size_is_used_for_zero(self):
        rasterizer = DensityRasterizer((0.0, 0.0, 950.0, 400.0), cell_size=0.0)

        assert rasterizer.cell_size == 2.0
        assert rasterizer.width == 475
        assert rasterizer.height == 200

    def test_missing_extent_raises(self):
        with pytest.raises(ValueError, match="Extent is required"):
            DensityRasterizer(None, 10.0)

    def test_inverted_extent_raises(self):
        with pytest.raises(ValueError, match="inverted"):
            DensityRasterizer((10.0, 0.0, 0.0, 10.0), 1.0)

    def test_degenerate_extent_without_cell_size_raises(self):
        with pytest.raises(ValueError, match="degenerate"):
            DensityRasterizer((5.0, 5.0, 5.0, 5.0))


class TestDefaultCellSize:
    """Test suite for default_cell_size."""

    def test_projected_rounds_up(self):
        assert default_cell_size((0.0, 0.0, 950.0, 400.0), "EPSG:32145") == 2.0

    def test_unknown_crs_rounds_up(self):
        assert default_cell_size((0.0, 0.0, 2600.0, 100.0)) == 6.0

    def test_geographic_keeps_fraction(self):
        size = default_cell_size((-80.0, 35.0, -75.0, 40.0), "EPSG:4326")
        assert size == pytest.approx(0.01)


class TestDensityRaster:
    """Test suite for DensityRaster GeoTIFF export."""

    def test_to_geotiff_round_trip(self, tmp_path):
        rasterizer = DensityRasterizer((0.0, 0.0, 200.0, 100.0), 10.0, crs="EPSG:32145")
        rasterizer.accumulate([make_circle(100.0, 50.0, 30.0, 1.5)])
        raster = rasterizer.raster()

        out_path = tmp_path / "nested" / "density.tif"
        raster.to_geotiff(str(out_path))

        with rasterio.open(out_path) as src:
            assert (src.height, src.width) == (10, 20)
            assert src.dtypes[0] == "float32"
            assert src.crs.to_epsg() == 32145
            assert src.transform == raster.transform
            np.testing.assert_array_equal(src.read(1), raster.data)

    def test_to_geotiff_without_crs(self, tmp_path):
        raster = DensityRasterizer((0.0, 0.0, 50.0, 50.0), 10.0).raster()
        out_path = tmp_path / "density.tif"

        raster.to_geotiff(str(out_path))

        with rasterio.open(out_path) as src:
            assert src.crs is None
            assert src.read(1).sum() == 0.0
