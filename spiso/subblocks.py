"""
Subsampling estimate of the asymptotic covariance of semivariogram estimates.

The domain is tiled by non-overlapping rectangular windows. The semivariogram
is re-estimated in every whole window and the spread of these block estimates
gives the covariance estimate used by the test statistic.
"""

import warnings
from enum import Enum
from typing import Any, NamedTuple

import numpy as np
from joblib import Parallel, delayed
from tqdm import tqdm

from spiso.exceptions import DegenerateGamma, PartialWindowWarning
from spiso.kernels import PairWeighting
from spiso.semivariogram import EdgeCorrection, estimate_gamma

_TOL = 1e-9


class Recentering(Enum):
    """
    Reference value subtracted from block estimates when forming Sigma.

    GRAND_MEAN
        Mean of the block estimates (plain empirical covariance).
    POINT_ESTIMATE
        The full-domain estimate; the finite-sample correction of
        Guan et al. (2004), Eq. 5.
    """

    GRAND_MEAN = "grand_mean"
    POINT_ESTIMATE = "point_estimate"

    @classmethod
    def resolve(cls, finite: "bool | str | Recentering") -> "Recentering":
        """Map a finite-sample flag, a name, or a member to a policy."""
        if isinstance(finite, cls):
            return finite
        if isinstance(finite, (bool, np.bool_)):
            return cls.POINT_ESTIMATE if finite else cls.GRAND_MEAN
        return cls(finite)


class SubblockEstimate(NamedTuple):
    """Covariance estimate and the per-window semivariogram estimates behind it."""

    sigma_hat: np.ndarray
    block_ghats: np.ndarray
    n_subblocks: int
    block_size: float


def count_windows(extent: float, window: float, axis: str) -> int:
    """
    Number of whole windows along one axis.

    Emits a :class:`PartialWindowWarning` when ``window`` does not divide
    ``extent`` evenly.
    """
    ratio = extent / window
    n_windows = int(np.floor(ratio + _TOL))
    if abs(ratio - round(ratio)) > _TOL:
        warnings.warn(PartialWindowWarning(axis, extent, window, n_windows), stacklevel=3)
    return n_windows


def window_masks(
    coords: np.ndarray,
    origin: np.ndarray,
    extent: np.ndarray,
    window_size: np.ndarray,
    n_windows: tuple[int, int],
) -> list[np.ndarray]:
    """
    Assign locations to a non-overlapping tiling of the domain.

    Parameters
    ----------
    coords : np.ndarray
        Coordinates of shape (n, 2).
    origin : np.ndarray
        Lower-left corner of the domain, (x, y).
    extent : np.ndarray
        Domain width and height.
    window_size : np.ndarray
        Window width and height, in the units of ``coords``.
    n_windows : tuple of int
        Whole windows along x and y (see :func:`count_windows`).

    Returns
    -------
    list of np.ndarray
        One boolean mask per window, ordered row by row from the origin.

    Notes
    -----
    Windows are half-open ``[lo, lo + size)``; a location lying exactly on the
    closing edge of the domain belongs to the last window along that axis.
    Locations beyond the last whole window are not assigned.
    """
    coords = np.asarray(coords, dtype=float)
    origin = np.asarray(origin, dtype=float)
    window_size = np.asarray(window_size, dtype=float)
    upper = origin + np.asarray(extent, dtype=float)
    n_windows = np.asarray(n_windows)

    rel = (coords - origin) / window_size
    idx = np.floor(rel + _TOL).astype(np.int64)
    on_edge = np.isclose(coords, upper, rtol=0.0, atol=_TOL * np.maximum(1.0, np.abs(upper)))
    idx = np.where(on_edge & (idx == n_windows), n_windows - 1, idx)

    inside = np.all((idx >= 0) & (idx < n_windows), axis=1)
    labels = np.where(inside, idx[:, 0] + n_windows[0] * idx[:, 1], -1)

    return [labels == b for b in range(int(np.prod(n_windows)))]


def _window_worker(
    weighting: PairWeighting, lagmat: np.ndarray, edge: EdgeCorrection
) -> np.ndarray:
    """Estimate the semivariogram inside a single window."""
    return estimate_gamma(weighting, lagmat, edge=edge, warn_empty=False)


def covariance_from_blocks(
    block_ghats: np.ndarray, center: np.ndarray, block_size: float
) -> np.ndarray:
    """
    Scaled outer-product sum of centered block estimates.

    .. math::
       \\hat\\Sigma = \\frac{b}{k_n} \\sum_{i=1}^{k_n} (\\hat g_i - c)(\\hat g_i - c)^T

    Each block estimate has covariance of order Sigma / b, so the mean outer
    product over the k_n blocks is rescaled by b (Guan et al. 2004, Eq. 5).

    Parameters
    ----------
    block_ghats : np.ndarray
        Block estimates of shape (n_subblocks, k).
    center : np.ndarray
        Reference vector c of shape (k,).
    block_size : float
        Number of locations per window, b.

    Returns
    -------
    np.ndarray
        Symmetric matrix of shape (k, k).
    """
    block_ghats = np.atleast_2d(np.asarray(block_ghats, dtype=float))
    resid = block_ghats - np.asarray(center, dtype=float)
    sigma = (block_size / block_ghats.shape[0]) * resid.T @ resid
    return 0.5 * (sigma + sigma.T)


def estimate_sigma(
    weighting: PairWeighting,
    lagmat: np.ndarray,
    gamma_hat: np.ndarray,
    masks: list[np.ndarray],
    block_size: float,
    edge: bool | str | EdgeCorrection = EdgeCorrection.PAIR_COUNT,
    finite: bool | str | Recentering = Recentering.POINT_ESTIMATE,
    n_jobs: int = 1,
    show_progress: bool = False,
    **overrides: Any,
) -> SubblockEstimate:
    """
    Estimate the covariance of the semivariogram estimates by subsampling.

    Parameters
    ----------
    weighting : PairWeighting
        Weighting over the full domain; restricted to each window in turn.
    lagmat : np.ndarray
        Lags of shape (k, 2).
    gamma_hat : np.ndarray
        Full-domain estimates of shape (k,), used when recentering on the
        point estimate.
    masks : list of np.ndarray
        Window membership masks (see :func:`window_masks`).
    block_size : float
        Number of locations per window.
    edge : bool, str or EdgeCorrection, default EdgeCorrection.PAIR_COUNT
        Edge-correction policy applied inside each window.
    finite : bool, str or Recentering, default Recentering.POINT_ESTIMATE
        Recentering policy. True (finite-sample correction) recenters on
        ``gamma_hat``; False on the mean of block estimates.
    n_jobs : int, default 1
        Number of parallel jobs. -1 uses all available cores.
    show_progress : bool, default False
        If True, displays a progress bar over windows.
    **overrides : dict
        Weighting parameters to change inside windows (e.g. bandwidth).

    Returns
    -------
    SubblockEstimate
        (sigma_hat, block_ghats, n_subblocks, block_size).

    Raises
    ------
    DegenerateGamma
        If some window has no pairs at one of the lags.

    Notes
    -----
    Windows are independent; each job writes one row of ``block_ghats``.
    """
    edge = EdgeCorrection.resolve(edge)
    finite = Recentering.resolve(finite)
    lagmat = np.atleast_2d(np.asarray(lagmat, dtype=float))

    rows = Parallel(n_jobs=n_jobs)(
        delayed(_window_worker)(weighting.restrict(mask, **overrides), lagmat, edge)
        for mask in tqdm(
            masks,
            desc="Subblocks",
            disable=not show_progress,
            bar_format="{l_bar}{bar:30}{r_bar}{bar:-30b}",
        )
    )
    block_ghats = np.vstack(rows) if rows else np.empty((0, lagmat.shape[0]))
    n_subblocks = block_ghats.shape[0]

    bad = np.isnan(block_ghats)
    if np.any(bad):
        lags = [tuple(lagmat[j]) for j in np.flatnonzero(bad.any(axis=0))]
        raise DegenerateGamma(
            f"{int(bad.any(axis=1).sum())} of {n_subblocks} subblocks have no pairs at lag(s) "
            f"{lags}; use larger subblocks or shorter lags"
        )

    if finite is Recentering.POINT_ESTIMATE:
        center = np.asarray(gamma_hat, dtype=float)
    else:
        center = block_ghats.mean(axis=0)

    sigma_hat = covariance_from_blocks(block_ghats, center, block_size)
    return SubblockEstimate(sigma_hat, block_ghats, n_subblocks, block_size)
