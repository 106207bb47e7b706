"""
Unit tests for lag pair enumeration.
"""

import unittest

import numpy as np

from spiso.exceptions import InvalidLags, InvalidSample
from spiso.lags import as_lattice_lag, lattice_index, lattice_lag_pairs, pair_displacements
from spiso.utils import get_grid_coords


class TestLatticeIndex(unittest.TestCase):
    """Test snapping of normalized coordinates to the lattice."""

    def test_snaps_float_noise(self):
        coords = np.array([[0.0, 0.0], [1.0, 0.0], [0.3 / 0.1, 1.0]])
        ij = lattice_index(coords)
        np.testing.assert_array_equal(ij, [[0, 0], [1, 0], [3, 1]])
        assert ij.dtype.kind == "i"

    def test_off_lattice(self):
        coords = np.array([[0.0, 0.0], [0.5, 0.0]])
        with self.assertRaises(InvalidSample):
            lattice_index(coords)

    def test_duplicate_locations(self):
        coords = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 0.0]])
        with self.assertRaises(InvalidSample) as context:
            lattice_index(coords)
        self.assertIn("unique", str(context.exception))


class TestAsLatticeLag(unittest.TestCase):
    def test_integer_lag(self):
        np.testing.assert_array_equal(as_lattice_lag(np.array([2.0, -1.0])), [2, -1])

    def test_fractional_lag(self):
        with self.assertRaises(InvalidLags):
            as_lattice_lag(np.array([0.5, 1.0]))


class TestLatticeLagPairs(unittest.TestCase):
    """Test exact lag matching on a lattice."""

    def setUp(self):
        np.random.seed(42)
        coords, _ = get_grid_coords(n_rows=3, n_cols=3)
        self.ij = coords.astype(int)
        self.values = np.random.randn(9)

    def test_docstring_example(self):
        ij = np.array([[0, 0], [1, 0], [0, 1], [1, 1]])
        z_s, z_lag = lattice_lag_pairs(ij, np.array([1.0, 2.0, 3.0, 4.0]), np.array([1, 0]))
        np.testing.assert_array_equal(z_s, [1.0, 3.0])
        np.testing.assert_array_equal(z_lag, [2.0, 4.0])

    def test_pair_counts(self):
        """Pair counts on a full 3x3 grid."""
        expected = {(1, 0): 6, (0, 1): 6, (1, 1): 4, (-1, 1): 4, (2, 0): 3, (3, 0): 0}
        for lag, count in expected.items():
            z_s, z_lag = lattice_lag_pairs(self.ij, self.values, np.array(lag))
            self.assertEqual(len(z_s), count, msg=f"lag {lag}")
            self.assertEqual(len(z_lag), count, msg=f"lag {lag}")

    def test_opposite_lags_give_same_pairs(self):
        for lag in [(1, 0), (1, 1), (-1, 1), (2, 1)]:
            lag = np.array(lag)
            a_s, a_lag = lattice_lag_pairs(self.ij, self.values, lag)
            b_s, b_lag = lattice_lag_pairs(self.ij, self.values, -lag)
            pairs_a = sorted(zip(a_s, a_lag))
            pairs_b = sorted(zip(b_lag, b_s))
            self.assertEqual(pairs_a, pairs_b)

    def test_missing_location(self):
        """Removing the center of a 3x3 grid removes the pairs through it."""
        keep = ~np.all(self.ij == [1, 1], axis=1)
        z_s, _ = lattice_lag_pairs(self.ij[keep], self.values[keep], np.array([1, 0]))
        self.assertEqual(len(z_s), 4)

    def test_offset_origin(self):
        """Matching does not depend on where the lattice starts."""
        z1, _ = lattice_lag_pairs(self.ij, self.values, np.array([1, 1]))
        z2, _ = lattice_lag_pairs(self.ij + np.array([-5, 7]), self.values, np.array([1, 1]))
        np.testing.assert_array_equal(z1, z2)

    def test_empty_input(self):
        z_s, z_lag = lattice_lag_pairs(np.empty((0, 2), dtype=int), np.empty(0), np.array([1, 0]))
        self.assertEqual(len(z_s), 0)
        self.assertEqual(len(z_lag), 0)


class TestPairDisplacements(unittest.TestCase):
    """Test the all-pairs displacement table."""

    def setUp(self):
        np.random.seed(0)
        self.coords = np.random.uniform(0, 5, size=(6, 2))
        self.values = np.random.randn(6)

    def test_number_of_pairs(self):
        disp, half_sq = pair_displacements(self.coords, self.values)
        assert disp.shape == (15, 2)
        assert half_sq.shape == (15,)

    def test_first_pairs(self):
        disp, half_sq = pair_displacements(self.coords, self.values)
        # pdist ordering: (0, 1), (0, 2), ...
        np.testing.assert_allclose(disp[0], self.coords[1] - self.coords[0])
        np.testing.assert_allclose(disp[1], self.coords[2] - self.coords[0])
        self.assertAlmostEqual(half_sq[0], 0.5 * (self.values[1] - self.values[0]) ** 2)

    def test_last_pair(self):
        disp, half_sq = pair_displacements(self.coords, self.values)
        np.testing.assert_allclose(disp[-1], self.coords[5] - self.coords[4])
        self.assertAlmostEqual(half_sq[-1], 0.5 * (self.values[5] - self.values[4]) ** 2)

    def test_single_location(self):
        disp, half_sq = pair_displacements(self.coords[:1], self.values[:1])
        assert disp.shape == (0, 2)
        assert half_sq.shape == (0,)


if __name__ == "__main__":
    unittest.main()
