"""
Point estimation of the semivariogram at a set of spatial lags.
"""

import warnings
from enum import Enum

import numpy as np
import pandas as pd

from spiso.exceptions import EmptyLagBin
from spiso.kernels import PairWeighting


class EdgeCorrection(Enum):
    """
    Normalization policy for lattice semivariogram estimates.

    PAIR_COUNT
        Divide the summed half squared differences by the number of pairs
        matched at the lag. This is the uncorrected estimate multiplied by
        the boundary factor ``|D| / |D ∩ (D - h)|``, which removes the
        downward bias at lags comparable to the domain extent.
    NONE
        Divide by the number of locations ``|D|`` in the region.
    """

    NONE = "none"
    PAIR_COUNT = "pair_count"

    @classmethod
    def resolve(cls, edge: "bool | str | EdgeCorrection") -> "EdgeCorrection":
        """Map a boolean flag, a name, or a member to a policy."""
        if isinstance(edge, cls):
            return edge
        if isinstance(edge, (bool, np.bool_)):
            return cls.PAIR_COUNT if edge else cls.NONE
        return cls(edge)

    def normalizer(self, total_weight: float, n_locations: int) -> float:
        if self is EdgeCorrection.PAIR_COUNT:
            return total_weight
        return float(n_locations)


def estimate_gamma(
    weighting: PairWeighting,
    lagmat: np.ndarray,
    edge: bool | str | EdgeCorrection = EdgeCorrection.PAIR_COUNT,
    warn_empty: bool = True,
) -> np.ndarray:
    """
    Estimate the semivariogram at each lag as a weighted average of pair terms.

    .. math::
       \\hat\\gamma(h) = \\frac{\\sum_p w_p(h) \\tfrac12 (Z(u_p) - Z(v_p))^2}{N(h)}

    where :math:`w_p(h)` comes from the pair-weighting strategy and
    :math:`N(h)` from the edge-correction policy (always :math:`\\sum_p w_p(h)`
    for kernel weightings).

    Parameters
    ----------
    weighting : PairWeighting
        Pair-weighting strategy built on the locations of interest.
    lagmat : np.ndarray
        Lags of shape (k, 2).
    edge : bool, str or EdgeCorrection, default EdgeCorrection.PAIR_COUNT
        Edge-correction policy for lattice weightings. True maps to
        PAIR_COUNT, False to NONE. Ignored by kernel weightings.
    warn_empty : bool, default True
        If True, emit an :class:`EmptyLagBin` warning for each lag without
        contributing pairs.

    Returns
    -------
    np.ndarray
        Estimates of shape (k,), in the row order of ``lagmat``. Lags with
        no contributing pairs are NaN.

    Examples
    --------
    >>> coords, _ = get_grid_coords(n_rows=5, n_cols=5)
    >>> weighting = LatticePairWeighting(coords, np.random.randn(25))
    >>> ghat = estimate_gamma(weighting, np.array([[1, 0], [0, 1]]), edge=True)
    """
    edge = EdgeCorrection.resolve(edge)
    if not weighting.edge_correctable:
        edge = EdgeCorrection.PAIR_COUNT

    lagmat = np.atleast_2d(np.asarray(lagmat, dtype=float))
    gamma_hat = np.full(lagmat.shape[0], np.nan)

    for i, lag in enumerate(lagmat):
        half_sq, weights = weighting.lag_terms(lag)
        total_weight = weights.sum()
        if total_weight <= 0:
            if warn_empty:
                warnings.warn(EmptyLagBin(tuple(lag)), stacklevel=2)
            continue
        gamma_hat[i] = np.dot(weights, half_sq) / edge.normalizer(total_weight, weighting.n)

    return gamma_hat


def gamma_table(lagmat: np.ndarray, gamma_hat: np.ndarray) -> np.ndarray:
    """
    Pair each estimate with its lag.

    Returns
    -------
    np.ndarray
        Array of shape (k, 3): [[x_lag, y_lag, gamma_hat], ...].
    """
    lagmat = np.atleast_2d(np.asarray(lagmat, dtype=float))
    return np.column_stack([lagmat, np.asarray(gamma_hat, dtype=float)])


def gamma_frame(gamma_hat: np.ndarray) -> pd.DataFrame:
    """Convert a (k, 3) lag/estimate table to a DataFrame."""
    return pd.DataFrame(np.asarray(gamma_hat), columns=["x_lag", "y_lag", "gamma_hat"])
