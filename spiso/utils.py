import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist, squareform

from spiso.exceptions import InvalidSample, InvalidSpacing


def as_sample(spdata: np.ndarray | pd.DataFrame) -> np.ndarray:
    """
    Coerce spatial data to a float array of (x, y, value) rows.

    Parameters
    ----------
    spdata : np.ndarray or pd.DataFrame
        Spatial data of shape (n, 3). DataFrame columns are taken in order.

    Returns
    -------
    np.ndarray
        Float copy of shape (n, 3).

    Raises
    ------
    InvalidSample
        If the data does not have exactly 3 columns, has fewer than 4 rows,
        or contains non-finite entries.
    """
    if isinstance(spdata, pd.DataFrame):
        spdata = spdata.to_numpy()
    sample = np.array(spdata, dtype=float)

    if sample.ndim != 2 or sample.shape[1] != 3:
        raise InvalidSample("matrix of spatial data must have 3 columns")
    if sample.shape[0] <= 3:
        raise InvalidSample("matrix of spatial data must have at least 4 rows")
    if not np.all(np.isfinite(sample)):
        raise InvalidSample("spatial data must contain only finite coordinates and values")

    return sample


def scale_coords(spdata: np.ndarray, delta: float) -> np.ndarray:
    """
    Rescale sampling locations onto a unit-spaced lattice.

    Divides the x and y coordinates by the grid spacing so that lags can be
    expressed in grid units. The value column is left untouched.

    Parameters
    ----------
    spdata : np.ndarray
        Spatial data of shape (n, 3): [[x, y, value], ...].
    delta : float
        Distance between neighboring grid locations (same in x and y).

    Returns
    -------
    np.ndarray
        Rescaled copy of shape (n, 3).

    Raises
    ------
    InvalidSpacing
        If ``delta`` is not a positive finite number.

    Examples
    --------
    >>> spdata = np.array([[0.0, 0.5, 1.2], [0.5, 0.5, -0.3]])
    >>> scale_coords(spdata, delta=0.5)[:, :2]
    array([[0., 1.],
           [1., 1.]])
    """
    if not np.isfinite(delta) or delta <= 0:
        raise InvalidSpacing("spacing between points (delta) must be positive")

    scaled = np.array(spdata, dtype=float)
    scaled[:, :2] = scaled[:, :2] / delta
    return scaled


def get_grid_coords(n_rows: int = 18, n_cols: int = 12) -> tuple[np.ndarray, tuple[int, int]]:
    """
    Generate integer grid coordinates with unit spacing.

    Parameters
    ----------
    n_rows : int, default 18
        Number of rows (distinct y values).
    n_cols : int, default 12
        Number of columns (distinct x values).

    Returns
    -------
    coords : np.ndarray
        Grid coordinates of shape (N, 2) where N = n_rows × n_cols.
        Format: [[x₀, y₀], [x₁, y₁], ...], column index first.
    grid_dims : tuple of int
        (n_rows, n_cols) - the grid dimensions.

    Examples
    --------
    >>> coords, dims = get_grid_coords(n_rows=18, n_cols=12)
    >>> coords.shape
    (216, 2)
    >>> dims
    (18, 12)
    """
    x = np.arange(n_cols)
    y = np.arange(n_rows)
    xx, yy = np.meshgrid(x, y, indexing="xy")
    return np.column_stack([xx.ravel(), yy.ravel()]).astype(float), (n_rows, n_cols)


def coords_aniso(
    coords: np.ndarray, angle: float, ratio: float, reverse: bool = False
) -> np.ndarray:
    """
    Apply a geometric anisotropy transformation to coordinates.

    Rotates the coordinates by ``angle`` and shrinks the minor axis by
    ``1 / ratio``. Isotropic covariance functions evaluated on the
    transformed coordinates give geometrically anisotropic fields on the
    original ones.

    Parameters
    ----------
    coords : np.ndarray
        Coordinates of shape (n, 2).
    angle : float
        Anisotropy angle in radians.
    ratio : float
        Anisotropy ratio (>= 1). A ratio of 1 leaves distances unchanged.
    reverse : bool, default False
        If True, undo a previous transformation.

    Returns
    -------
    np.ndarray
        Transformed coordinates of shape (n, 2).

    Notes
    -----
    With :math:`R = \\begin{pmatrix}\\cos\\theta & \\sin\\theta \\\\ -\\sin\\theta & \\cos\\theta\\end{pmatrix}`
    and :math:`T = \\mathrm{diag}(1, 1/r)` the forward transform is
    :math:`s' = s R T` and the reverse transform is :math:`s = s' T^{-1} R^{-1}`.
    """
    coords = np.asarray(coords, dtype=float)
    if ratio <= 0:
        raise ValueError("anisotropy ratio must be positive")

    c, s = np.cos(angle), np.sin(angle)
    R = np.array([[c, s], [-s, c]])
    T = np.diag([1.0, 1.0 / ratio])

    if reverse:
        return coords @ np.linalg.inv(T) @ R.T
    return coords @ R @ T


def simulate_gaussian_field(
    coords: np.ndarray,
    sigma_sq: float = 1.0,
    phi: float = 0.25,
    tau_sq: float = 0.0,
    rng: np.random.Generator | int | None = None,
) -> np.ndarray:
    """
    Draw a zero-mean Gaussian field with exponential covariance.

    The covariance between locations at distance d is
    ``sigma_sq * exp(-phi * d)`` plus a nugget ``tau_sq`` on the diagonal.
    The draw is centered to have sample mean zero.

    Parameters
    ----------
    coords : np.ndarray
        Coordinates of shape (n, 2). Pass coordinates from
        :func:`coords_aniso` to simulate an anisotropic field.
    sigma_sq : float, default 1.0
        Partial sill.
    phi : float, default 0.25
        Decay rate (inverse range).
    tau_sq : float, default 0.0
        Nugget variance.
    rng : np.random.Generator, int or None
        Random generator or seed.

    Returns
    -------
    np.ndarray
        Simulated values of shape (n,).
    """
    rng = np.random.default_rng(rng)
    dists = squareform(pdist(np.asarray(coords, dtype=float), metric="euclidean"))
    cov = sigma_sq * np.exp(-phi * dists)
    cov[np.diag_indices_from(cov)] += tau_sq

    z = rng.multivariate_normal(np.zeros(cov.shape[0]), cov, method="cholesky")
    return z - z.mean()
