from dataclasses import dataclass
from typing import NamedTuple

import numpy as np
import pandas as pd
from scipy.linalg import inv
from scipy.stats import chi2

from spiso.exceptions import (
    DegenerateGamma,
    InvalidKernel,
    InvalidLags,
    InvalidWindow,
    IsotropyValidationError,
    NonConformableContrast,
    SingularContrastCovariance,
    SingularSigma,
)
from spiso.kernels import KernelPairWeighting, LatticePairWeighting
from spiso.lags import as_lattice_lag, lattice_index
from spiso.semivariogram import EdgeCorrection, estimate_gamma, gamma_frame, gamma_table
from spiso.subblocks import Recentering, count_windows, estimate_sigma, window_masks
from spiso.utils import as_sample, scale_coords

# Short names accepted for the smoothing kernels
_KERNEL_ALIASES = {"norm": "normal", "ep": "epanechnikov", "cos": "cosine", "unif": "uniform"}


@dataclass(frozen=True)
class IsotropyTestResult:
    """
    Outcome of a nonparametric test of isotropy.

    Attributes
    ----------
    gamma_hat : np.ndarray
        Lags and semivariogram point estimates, shape (k, 3):
        [[x_lag, y_lag, gamma_hat], ...].
    sigma_hat : np.ndarray
        Estimated asymptotic covariance of the estimates, shape (k, k).
    n_subblocks : int
        Number of moving windows (blocks) used to estimate Sigma.
    test_stat : float
        The contrast test statistic.
    pvalue_finite : float
        Finite-sample p-value from the subsampling distribution of block
        statistics (Guan et al. 2004, Section 3.3).
    pvalue_chisq : float
        P-value from the asymptotic chi-squared distribution.

    Notes
    -----
    Array fields are stored as read-only copies.
    """

    gamma_hat: np.ndarray
    sigma_hat: np.ndarray
    n_subblocks: int
    test_stat: float
    pvalue_finite: float
    pvalue_chisq: float

    def __post_init__(self):
        for name in ("gamma_hat", "sigma_hat"):
            arr = np.array(getattr(self, name), dtype=float)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    def to_frame(self) -> pd.DataFrame:
        """Return the lag/estimate table as a DataFrame."""
        return gamma_frame(self.gamma_hat)

    def __str__(self):
        lines = [
            "IsotropyTestResult",
            f"- Test statistic: {self.test_stat:.4f}",
            f"- P-value (chi-squared): {self.pvalue_chisq:.4g}",
            f"- P-value (finite sample): {self.pvalue_finite:.4g}",
            f"- Subblocks: {self.n_subblocks}",
            "- Semivariogram estimates:",
        ]
        for x_lag, y_lag, g in self.gamma_hat:
            lines.append(f"    ({x_lag:g}, {y_lag:g}): {g:.4f}")
        return "\n".join(lines)


class ContrastTestOutcome(NamedTuple):
    test_stat: float
    block_stats: np.ndarray
    pvalue_finite: float
    pvalue_chisq: float


def inverse_contrast_covariance(A: np.ndarray, sigma_hat: np.ndarray) -> np.ndarray:
    """
    Invert ``A @ sigma_hat @ A.T``.

    Raises
    ------
    SingularSigma
        If ``sigma_hat`` itself has rank below the number of contrasts,
        typically because there are too few subblocks.
    SingularContrastCovariance
        If the contrast covariance is otherwise not invertible.
    """
    A = np.atleast_2d(np.asarray(A, dtype=float))
    sigma_hat = np.asarray(sigma_hat, dtype=float)
    d = A.shape[0]

    M = A @ sigma_hat @ A.T
    if not np.all(np.isfinite(M)) or np.linalg.matrix_rank(M) < d:
        if np.all(np.isfinite(sigma_hat)) and np.linalg.matrix_rank(sigma_hat) < d:
            raise SingularSigma(
                f"estimated Sigma has rank {np.linalg.matrix_rank(sigma_hat)} < {d} contrasts; "
                "use more (smaller) subblocks"
            )
        raise SingularContrastCovariance("A @ sigma_hat @ A.T is not invertible")
    return inv(M)


def _quad_form(v: np.ndarray, M_inv: np.ndarray) -> float:
    return float(v @ M_inv @ v)


def finite_sample_pvalue(block_stats: np.ndarray, test_stat: float) -> float:
    """
    Empirical upper-tail probability of ``test_stat`` among the block statistics.

    Parameters
    ----------
    block_stats : np.ndarray
        Block-level statistics T_i, shape (n_subblocks,).
    test_stat : float
        The full-domain statistic T.

    Returns
    -------
    float
        ``count(T_i >= T) / n_subblocks``.
    """
    block_stats = np.asarray(block_stats, dtype=float)
    if block_stats.size == 0:
        raise ValueError("at least one block statistic is required")
    return float(np.sum(block_stats >= test_stat) / block_stats.size)


def contrast_test(
    gamma_hat: np.ndarray,
    sigma_hat: np.ndarray,
    A: np.ndarray,
    df: int,
    block_ghats: np.ndarray,
    block_size: float,
    n_points: int,
) -> ContrastTestOutcome:
    """
    Contrast test statistic with asymptotic and finite-sample p-values.

    Parameters
    ----------
    gamma_hat : np.ndarray
        Full-domain semivariogram estimates, shape (k,).
    sigma_hat : np.ndarray
        Estimated asymptotic covariance, shape (k, k).
    A : np.ndarray
        Contrast matrix, shape (d, k).
    df : int
        Row rank of A; degrees of freedom of the chi-squared reference.
    block_ghats : np.ndarray
        Subblock estimates, shape (n_subblocks, k).
    block_size : float
        Number of locations per subblock, b.
    n_points : int
        Total number of locations, n.

    Returns
    -------
    ContrastTestOutcome
        (test_stat, block_stats, pvalue_finite, pvalue_chisq).

    Raises
    ------
    DegenerateGamma
        If any entry of ``gamma_hat`` is NaN.
    SingularContrastCovariance
        If ``A @ sigma_hat @ A.T`` is singular.

    Notes
    -----
    .. math::
       T = n (A\\hat\\gamma)^T (A\\hat\\Sigma A^T)^{-1} (A\\hat\\gamma), \\qquad
       T_i = b (A\\hat g_i)^T (A\\hat\\Sigma A^T)^{-1} (A\\hat g_i)

    Under the null hypothesis :math:`A\\gamma = 0`, T is asymptotically
    :math:`\\chi^2_{df}`. The finite-sample p-value is the fraction of block
    statistics at least as large as T.
    """
    gamma_hat = np.asarray(gamma_hat, dtype=float).ravel()
    A = np.atleast_2d(np.asarray(A, dtype=float))
    block_ghats = np.atleast_2d(np.asarray(block_ghats, dtype=float))

    if np.any(np.isnan(gamma_hat)):
        raise DegenerateGamma("semivariogram estimate is NaN at one or more lags")

    M_inv = inverse_contrast_covariance(A, sigma_hat)

    test_stat = n_points * _quad_form(A @ gamma_hat, M_inv)
    block_stats = np.array([block_size * _quad_form(A @ g, M_inv) for g in block_ghats])

    pvalue_finite = finite_sample_pvalue(block_stats, test_stat)
    pvalue_chisq = float(chi2.sf(test_stat, df))

    return ContrastTestOutcome(test_stat, block_stats, pvalue_finite, pvalue_chisq)


def _check_lags_and_contrast(lagmat, A, df) -> tuple[np.ndarray, np.ndarray]:
    lagmat = np.asarray(lagmat, dtype=float)
    if lagmat.ndim == 1 and lagmat.size == 2:
        lagmat = lagmat.reshape(1, 2)
    if lagmat.ndim != 2 or lagmat.shape[1] != 2:
        raise InvalidLags("matrix of spatial lags must have 2 columns")
    if not np.all(np.isfinite(lagmat)):
        raise InvalidLags("spatial lags must be finite")

    A = np.atleast_2d(np.asarray(A, dtype=float))
    if A.ndim != 2 or A.shape[1] != lagmat.shape[0]:
        raise NonConformableContrast("non-conformable A matrix")
    if A.shape[0] > A.shape[1]:
        raise NonConformableContrast("A must not have more rows than lags")

    if int(df) != df or df <= 0:
        raise IsotropyValidationError("df must be a positive integer")

    return lagmat, A


def _check_pair(value, name: str) -> np.ndarray:
    value = np.asarray(value, dtype=float).ravel()
    if value.size != 2:
        raise InvalidWindow(f"{name} must be length 2")
    return value


def grid_isotropy_test(
    spdata: np.ndarray | pd.DataFrame,
    delta: float,
    lagmat: np.ndarray,
    A: np.ndarray,
    df: int,
    window_dims: tuple[int, int],
    pt_est_edge: bool = True,
    sig_est_edge: bool = True,
    sig_est_finite: bool = True,
    n_jobs: int = 1,
    show_progress: bool = False,
    verbose: bool = False,
) -> IsotropyTestResult:
    """
    Nonparametric test of isotropy for data observed on a regular grid.

    Implements the subsampling test of Guan, Sherman & Calvin (2004) using
    the sample semivariogram at the lags in ``lagmat``.

    Parameters
    ----------
    spdata : np.ndarray or pd.DataFrame
        Spatial data of shape (n, 3): x, y coordinates and observed value.
    delta : float
        Distance between neighboring grid locations, equal in x and y.
        Coordinates are divided by ``delta``; lags are in units of ``delta``.
    lagmat : np.ndarray
        Lags of shape (k, 2), each (x_lag, y_lag) in grid steps.
    A : np.ndarray
        Contrast matrix of shape (d, k) matching the rows of ``lagmat``.
    df : int
        Row rank of A (degrees of freedom of the chi-squared reference).
    window_dims : tuple of int
        Width and height of the moving windows in columns and rows of data.
        Each must be smaller than the corresponding grid extent. Windows that
        do not divide the grid evenly drop trailing data with a
        :class:`~spiso.exceptions.PartialWindowWarning`.
    pt_est_edge : bool, default True
        If True, correct for edge effects in the point estimate.
    sig_est_edge : bool, default True
        If True, correct for edge effects in the window estimates.
    sig_est_finite : bool, default True
        If True, recenter window estimates on the point estimate
        (finite-sample correction); otherwise on their mean.
    n_jobs : int, default 1
        Number of parallel jobs for window estimation. -1 uses all cores.
    show_progress : bool, default False
        If True, displays a progress bar over windows.
    verbose : bool, default False
        If True, prints progress messages.

    Returns
    -------
    IsotropyTestResult

    Raises
    ------
    InvalidSample, InvalidSpacing, InvalidLags, NonConformableContrast, InvalidWindow
        On malformed inputs, before any estimation.
    DegenerateGamma
        If some lag has no pairs in the domain or in a window.
    SingularContrastCovariance
        If the contrast covariance cannot be inverted (``SingularSigma`` when
        there are too few windows).

    Notes
    -----
    The grid extent is the bounding box of the observed lattice indices,
    ``max - min + 1`` cells per axis, and windows tile that box from its
    lower-left corner. Missing locations, including a whole missing interior
    row or column, leave the tiling unchanged; the affected windows simply
    hold fewer points. Counting only the distinct observed x and y values
    instead would shrink the extent and shift every later window.

    Sigma is estimated as ``(b / n_subblocks) * sum_i (g_i - c)(g_i - c)^T``
    with ``b = width * height`` (see :func:`spiso.subblocks.covariance_from_blocks`).

    Examples
    --------
    >>> coords, (nr, nc) = get_grid_coords(n_rows=18, n_cols=12)
    >>> z = simulate_gaussian_field(coords, sigma_sq=1.0, phi=0.25, rng=1)
    >>> spdata = np.column_stack([coords, z])
    >>> lags = np.array([[1, 0], [0, 1], [1, 1], [-1, 1]])
    >>> A = np.array([[1, -1, 0, 0], [0, 0, 1, -1]])
    >>> res = grid_isotropy_test(spdata, 1, lags, A, df=2, window_dims=(3, 2))
    >>> print(res)
    """
    sample = as_sample(spdata)
    scaled = scale_coords(sample, delta)
    lagmat, A = _check_lags_and_contrast(lagmat, A, df)

    window_dims = _check_pair(window_dims, "window_dims")
    if np.any(window_dims <= 0):
        raise InvalidWindow("subblock dimensions must be positive")
    if np.any(window_dims != np.rint(window_dims)):
        raise InvalidWindow("subblock dimensions must be whole numbers of grid cells")

    ij = lattice_index(scaled[:, :2])
    for lag in lagmat:
        as_lattice_lag(lag)

    origin = ij.min(axis=0)
    ncols, nrows = ij.max(axis=0) - origin + 1
    if window_dims[0] >= ncols:
        raise InvalidWindow("subblock width must be less than the number of columns of data")
    if window_dims[1] >= nrows:
        raise InvalidWindow("subblock height must be less than the number of rows of data")

    n_windows = (
        count_windows(ncols, window_dims[0], "x"),
        count_windows(nrows, window_dims[1], "y"),
    )

    # Policies are resolved once here and passed down unchanged
    pt_edge = EdgeCorrection.resolve(pt_est_edge)
    sig_edge = EdgeCorrection.resolve(sig_est_edge)
    recentering = Recentering.resolve(sig_est_finite)

    n_points = sample.shape[0]
    weighting = LatticePairWeighting(ij.astype(float), sample[:, 2])

    if verbose:
        print(f"Estimating semivariogram at {len(lagmat)} lags (n_points={n_points})...")
    gamma_hat = estimate_gamma(weighting, lagmat, edge=pt_edge)
    if np.any(np.isnan(gamma_hat)):
        raise DegenerateGamma("no pairs of locations at one or more lags")

    masks = window_masks(ij.astype(float), origin, (ncols, nrows), window_dims, n_windows)
    block_size = float(np.prod(window_dims))

    if verbose:
        print(f"Estimating Sigma from {len(masks)} subblocks of size {window_dims.astype(int)}...")
    sub = estimate_sigma(
        weighting,
        lagmat,
        gamma_hat,
        masks,
        block_size,
        edge=sig_edge,
        finite=recentering,
        n_jobs=n_jobs,
        show_progress=show_progress,
    )

    outcome = contrast_test(
        gamma_hat, sub.sigma_hat, A, df, sub.block_ghats, sub.block_size, n_points
    )

    return IsotropyTestResult(
        gamma_hat=gamma_table(lagmat, gamma_hat),
        sigma_hat=sub.sigma_hat,
        n_subblocks=sub.n_subblocks,
        test_stat=outcome.test_stat,
        pvalue_finite=outcome.pvalue_finite,
        pvalue_chisq=outcome.pvalue_chisq,
    )


def uniform_isotropy_test(
    spdata: np.ndarray | pd.DataFrame,
    lagmat: np.ndarray,
    A: np.ndarray,
    df: int,
    bandwidth: float = 0.7,
    kernel: str = "normal",
    truncation: float | None = 1.5,
    xlims: tuple[float, float] | None = None,
    ylims: tuple[float, float] | None = None,
    grid_spacing: tuple[float, float] = (1.0, 1.0),
    window_dims: tuple[float, float] = (2.0, 2.0),
    subblock_bandwidth: float | None = None,
    sig_est_finite: bool = True,
    n_jobs: int = 1,
    show_progress: bool = False,
    verbose: bool = False,
) -> IsotropyTestResult:
    """
    Nonparametric test of isotropy for uniformly distributed sampling locations.

    The semivariogram at each lag is a kernel-weighted average of half
    squared differences over all pairs (Guan, Sherman & Calvin 2004).

    Parameters
    ----------
    spdata : np.ndarray or pd.DataFrame
        Spatial data of shape (n, 3): x, y coordinates and observed value.
    lagmat : np.ndarray
        Lags of shape (k, 2) in coordinate units.
    A : np.ndarray
        Contrast matrix of shape (d, k).
    df : int
        Row rank of A.
    bandwidth : float, default 0.7
        Kernel bandwidth for the point estimates.
    kernel : {'normal', 'epanechnikov', 'cosine', 'uniform'}, default 'normal'
        Smoothing kernel. The short names 'norm', 'ep', 'cos', 'unif' are
        also accepted.
    truncation : float or None, default 1.5
        Normal kernel weights beyond ``truncation * bandwidth`` are zero.
    xlims, ylims : tuple of float
        Sampling domain bounds. Must contain all observations; this is not
        checked, and locations outside are ignored by the windows.
    grid_spacing : tuple of float, default (1, 1)
        Spacing of an imaginary grid over the domain.
    window_dims : tuple of float, default (2, 2)
        Window width and height in units of ``grid_spacing``; windows have
        extent ``grid_spacing * window_dims``.
    subblock_bandwidth : float, optional
        Bandwidth inside windows. Defaults to ``bandwidth``.
    sig_est_finite : bool, default True
        If True, recenter window estimates on the point estimate.
    n_jobs : int, default 1
        Number of parallel jobs for window estimation.
    show_progress : bool, default False
        If True, displays a progress bar over windows.
    verbose : bool, default False
        If True, prints progress messages.

    Returns
    -------
    IsotropyTestResult

    Notes
    -----
    The block size b used for window statistics is the expected number of
    locations per window, ``n * |window| / |domain|``.
    """
    sample = as_sample(spdata)
    lagmat, A = _check_lags_and_contrast(lagmat, A, df)

    kernel = _KERNEL_ALIASES.get(kernel, kernel)
    if kernel not in KernelPairWeighting._available_kernels:
        raise InvalidKernel(
            f"Kernel '{kernel}' not recognized. Must be one of {KernelPairWeighting._available_kernels}."
        )
    if not bandwidth > 0:
        raise InvalidKernel("bandwidth must be positive")
    if subblock_bandwidth is None:
        subblock_bandwidth = bandwidth
    elif not subblock_bandwidth > 0:
        raise InvalidKernel("subblock bandwidth must be positive")

    if xlims is None or ylims is None:
        raise InvalidWindow("xlims and ylims must be supplied")
    xlims = _check_pair(xlims, "xlims")
    ylims = _check_pair(ylims, "ylims")
    if xlims[1] <= xlims[0] or ylims[1] <= ylims[0]:
        raise InvalidWindow("xlims and ylims must be increasing")

    grid_spacing = _check_pair(grid_spacing, "grid_spacing")
    window_dims = _check_pair(window_dims, "window_dims")
    if np.any(grid_spacing <= 0):
        raise InvalidWindow("grid spacing must be positive")
    if np.any(window_dims <= 0):
        raise InvalidWindow("subblock dimensions must be positive")

    origin = np.array([xlims[0], ylims[0]])
    extent = np.array([xlims[1] - xlims[0], ylims[1] - ylims[0]])
    window_size = grid_spacing * window_dims
    if window_size[0] >= extent[0]:
        raise InvalidWindow("subblock width must be less than the width of the sampling region")
    if window_size[1] >= extent[1]:
        raise InvalidWindow("subblock height must be less than the height of the sampling region")

    n_windows = (
        count_windows(extent[0], window_size[0], "x"),
        count_windows(extent[1], window_size[1], "y"),
    )
    recentering = Recentering.resolve(sig_est_finite)

    n_points = sample.shape[0]
    weighting = KernelPairWeighting(
        sample[:, :2], sample[:, 2], kernel=kernel, bandwidth=bandwidth, truncation=truncation
    )

    if verbose:
        print(f"Estimating semivariogram at {len(lagmat)} lags ({kernel} kernel, n_points={n_points})...")
    gamma_hat = estimate_gamma(weighting, lagmat)
    if np.any(np.isnan(gamma_hat)):
        raise DegenerateGamma("no pairs of locations near one or more lags")

    masks = window_masks(sample[:, :2], origin, extent, window_size, n_windows)
    block_size = n_points * np.prod(window_size) / np.prod(extent)

    if verbose:
        print(f"Estimating Sigma from {len(masks)} subblocks...")
    sub = estimate_sigma(
        weighting,
        lagmat,
        gamma_hat,
        masks,
        block_size,
        finite=recentering,
        n_jobs=n_jobs,
        show_progress=show_progress,
        bandwidth=subblock_bandwidth,
    )

    outcome = contrast_test(
        gamma_hat, sub.sigma_hat, A, df, sub.block_ghats, sub.block_size, n_points
    )

    return IsotropyTestResult(
        gamma_hat=gamma_table(lagmat, gamma_hat),
        sigma_hat=sub.sigma_hat,
        n_subblocks=sub.n_subblocks,
        test_stat=outcome.test_stat,
        pvalue_finite=outcome.pvalue_finite,
        pvalue_chisq=outcome.pvalue_chisq,
    )
