"""
Pair enumeration by spatial lag.

Two flavours are provided: exact lag matching on an integer lattice (grid
designs) and the full table of pairwise displacements (uniform designs),
which is weighted downstream by a smoothing kernel. Both work on whatever
subset of locations they are handed, so subblock estimation can call them
window by window.
"""

import numpy as np
from scipy.spatial.distance import pdist

from spiso.exceptions import InvalidLags, InvalidSample

_LATTICE_TOL = 1e-8


def lattice_index(coords: np.ndarray, tol: float = _LATTICE_TOL) -> np.ndarray:
    """
    Snap normalized coordinates to integer lattice indices.

    Parameters
    ----------
    coords : np.ndarray
        Normalized coordinates of shape (n, 2).
    tol : float, default 1e-8
        Maximum distance from the nearest lattice point.

    Returns
    -------
    np.ndarray
        Integer indices of shape (n, 2).

    Raises
    ------
    InvalidSample
        If a location is off the lattice or appears more than once.
    """
    coords = np.asarray(coords, dtype=float)
    snapped = np.rint(coords)
    if np.any(np.abs(coords - snapped) > tol):
        raise InvalidSample(
            "sampling locations do not fall on a regular grid with spacing delta"
        )
    ij = snapped.astype(np.int64)
    if len(np.unique(ij, axis=0)) != len(ij):
        raise InvalidSample("sampling locations on the grid must be unique")
    return ij


def as_lattice_lag(lag: np.ndarray, tol: float = _LATTICE_TOL) -> np.ndarray:
    """Return ``lag`` as an integer vector, or raise InvalidLags if it is off-lattice."""
    lag = np.asarray(lag, dtype=float)
    snapped = np.rint(lag)
    if np.any(np.abs(lag - snapped) > tol):
        raise InvalidLags(f"lag {tuple(lag)} is not a whole number of grid steps")
    return snapped.astype(np.int64)


def lattice_lag_pairs(
    ij: np.ndarray, values: np.ndarray, lag: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """
    Find all pairs of observations separated exactly by ``lag`` on a lattice.

    Parameters
    ----------
    ij : np.ndarray
        Integer lattice indices of shape (n, 2), as returned by :func:`lattice_index`.
    values : np.ndarray
        Observed values of shape (n,).
    lag : np.ndarray
        Integer lag vector (dx, dy) in grid units.

    Returns
    -------
    z_s : np.ndarray
        Values Z(s) for every observed s with s + lag also observed.
    z_s_lag : np.ndarray
        Matching values Z(s + lag).

    Notes
    -----
    Matching is combinatorial (no tolerance) through a dense lookup table
    spanning the bounding box of ``ij``. The lags ``h`` and ``-h`` yield the
    same set of unordered pairs.

    Examples
    --------
    >>> ij = np.array([[0, 0], [1, 0], [0, 1], [1, 1]])
    >>> z_s, z_lag = lattice_lag_pairs(ij, np.array([1.0, 2.0, 3.0, 4.0]), np.array([1, 0]))
    >>> z_s, z_lag
    (array([1., 3.]), array([2., 4.]))
    """
    lag = as_lattice_lag(lag)
    values = np.asarray(values, dtype=float)
    if len(ij) == 0:
        return np.empty(0), np.empty(0)

    origin = ij.min(axis=0)
    local = ij - origin
    shape = local.max(axis=0) + 1

    # Point index at each lattice cell, -1 where unobserved
    table = np.full(shape, -1, dtype=np.int64)
    table[local[:, 0], local[:, 1]] = np.arange(len(local))

    target = local + lag
    inside = np.all((target >= 0) & (target < shape), axis=1)
    src = np.flatnonzero(inside)
    dst = table[target[inside, 0], target[inside, 1]]

    matched = dst >= 0
    return values[src[matched]], values[dst[matched]]


def pair_displacements(
    coords: np.ndarray, values: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """
    Tabulate displacements and half squared differences over all pairs.

    Parameters
    ----------
    coords : np.ndarray
        Coordinates of shape (n, 2).
    values : np.ndarray
        Observed values of shape (n,).

    Returns
    -------
    displacements : np.ndarray
        Displacement ``s_j - s_i`` for each unordered pair i < j, shape (m, 2)
        with m = n(n-1)/2.
    half_sq_diffs : np.ndarray
        ``0.5 * (Z(s_j) - Z(s_i))**2`` for each pair, shape (m,).

    Notes
    -----
    Pairs are ordered as in :func:`scipy.spatial.distance.pdist`.
    """
    coords = np.asarray(coords, dtype=float)
    values = np.asarray(values, dtype=float)
    n = len(values)
    if n < 2:
        return np.empty((0, 2)), np.empty(0)

    i, j = np.triu_indices(n, k=1)
    displacements = coords[j] - coords[i]
    half_sq_diffs = 0.5 * pdist(values.reshape(-1, 1), metric="sqeuclidean")
    return displacements, half_sq_diffs
