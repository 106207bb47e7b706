"""
Unit tests for spiso.utils functions.
Tests coordinate normalization, grid generation and field simulation.
"""

import unittest

import numpy as np
import pandas as pd

from spiso.exceptions import InvalidSample, InvalidSpacing
from spiso.utils import (
    as_sample,
    coords_aniso,
    get_grid_coords,
    scale_coords,
    simulate_gaussian_field,
)


class TestAsSample(unittest.TestCase):
    """Test coercion and shape checks of spatial data."""

    def test_accepts_dataframe(self):
        df = pd.DataFrame({"x": [0, 1, 0, 1], "y": [0, 0, 1, 1], "z": [1.0, 2.0, 3.0, 4.0]})
        sample = as_sample(df)
        assert sample.shape == (4, 3)
        assert sample.dtype == float
        np.testing.assert_array_equal(sample[:, 2], [1.0, 2.0, 3.0, 4.0])

    def test_returns_copy(self):
        data = np.arange(12, dtype=float).reshape(4, 3)
        sample = as_sample(data)
        sample[0, 0] = 100.0
        assert data[0, 0] == 0.0

    def test_wrong_number_of_columns(self):
        with self.assertRaises(InvalidSample) as context:
            as_sample(np.zeros((5, 2)))
        self.assertIn("3 columns", str(context.exception))

    def test_too_few_rows(self):
        with self.assertRaises(InvalidSample) as context:
            as_sample(np.zeros((3, 3)))
        self.assertIn("at least 4 rows", str(context.exception))

    def test_non_finite_entries(self):
        data = np.zeros((4, 3))
        data[2, 1] = np.nan
        with self.assertRaises(InvalidSample):
            as_sample(data)


class TestScaleCoords(unittest.TestCase):
    """Test the coordinate normalizer."""

    def test_docstring_example(self):
        spdata = np.array([[0.0, 0.5, 1.2], [0.5, 0.5, -0.3]])
        scaled = scale_coords(spdata, delta=0.5)
        np.testing.assert_allclose(scaled[:, :2], [[0.0, 1.0], [1.0, 1.0]])

    def test_values_untouched(self):
        spdata = np.array([[2.0, 4.0, 1.5], [6.0, 8.0, -2.5]])
        scaled = scale_coords(spdata, delta=2.0)
        np.testing.assert_array_equal(scaled[:, 2], spdata[:, 2])
        np.testing.assert_allclose(scaled[:, :2], [[1.0, 2.0], [3.0, 4.0]])

    def test_does_not_modify_input(self):
        spdata = np.array([[2.0, 4.0, 1.5], [6.0, 8.0, -2.5]])
        scale_coords(spdata, delta=2.0)
        assert spdata[0, 0] == 2.0

    def test_invalid_spacing(self):
        spdata = np.zeros((4, 3))
        for delta in [0.0, -1.0, np.inf]:
            with self.assertRaises(InvalidSpacing):
                scale_coords(spdata, delta)

    def test_invalid_spacing_is_value_error(self):
        with self.assertRaises(ValueError):
            scale_coords(np.zeros((4, 3)), 0.0)


class TestGetGridCoords(unittest.TestCase):
    """Test integer grid coordinate generation."""

    def test_docstring_example(self):
        coords, dims = get_grid_coords(n_rows=18, n_cols=12)
        assert coords.shape == (216, 2)
        assert dims == (18, 12)

    def test_coordinate_ranges(self):
        coords, _ = get_grid_coords(n_rows=4, n_cols=7)
        # First column is x (columns), second is y (rows)
        np.testing.assert_array_equal(np.unique(coords[:, 0]), np.arange(7))
        np.testing.assert_array_equal(np.unique(coords[:, 1]), np.arange(4))

    def test_locations_unique(self):
        coords, _ = get_grid_coords(n_rows=5, n_cols=6)
        assert len(np.unique(coords, axis=0)) == 30


class TestCoordsAniso(unittest.TestCase):
    """Test the geometric anisotropy transform."""

    def setUp(self):
        np.random.seed(42)
        self.coords = np.random.uniform(0, 10, size=(20, 2))

    def test_identity(self):
        out = coords_aniso(self.coords, angle=0.0, ratio=1.0)
        np.testing.assert_allclose(out, self.coords)

    def test_rotation_preserves_distances(self):
        out = coords_aniso(self.coords, angle=np.pi / 3, ratio=1.0)
        d_in = np.linalg.norm(self.coords[0] - self.coords[1])
        d_out = np.linalg.norm(out[0] - out[1])
        self.assertAlmostEqual(d_in, d_out, places=10)

    def test_ratio_shrinks_minor_axis(self):
        coords = np.array([[0.0, 0.0], [0.0, 2.0]])
        out = coords_aniso(coords, angle=0.0, ratio=2.0)
        np.testing.assert_allclose(out, [[0.0, 0.0], [0.0, 1.0]])

    def test_reverse_round_trip(self):
        fwd = coords_aniso(self.coords, angle=np.pi / 4, ratio=2.0)
        back = coords_aniso(fwd, angle=np.pi / 4, ratio=2.0, reverse=True)
        np.testing.assert_allclose(back, self.coords, atol=1e-10)

    def test_invalid_ratio(self):
        with self.assertRaises(ValueError):
            coords_aniso(self.coords, angle=0.0, ratio=0.0)


class TestSimulateGaussianField(unittest.TestCase):
    """Test Gaussian field simulation."""

    def setUp(self):
        self.coords, _ = get_grid_coords(n_rows=6, n_cols=5)

    def test_shape_and_centering(self):
        z = simulate_gaussian_field(self.coords, rng=1)
        assert z.shape == (30,)
        self.assertAlmostEqual(z.mean(), 0.0, places=10)

    def test_reproducible_with_seed(self):
        z1 = simulate_gaussian_field(self.coords, rng=7)
        z2 = simulate_gaussian_field(self.coords, rng=7)
        np.testing.assert_array_equal(z1, z2)

    def test_nugget_only(self):
        # Zero partial sill leaves pure nugget noise
        z = simulate_gaussian_field(self.coords, sigma_sq=0.0, phi=1.0, tau_sq=1.0, rng=3)
        assert np.all(np.isfinite(z))


if __name__ == "__main__":
    unittest.main()
