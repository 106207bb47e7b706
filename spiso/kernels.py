from abc import ABC, abstractmethod
from typing import Any

import numpy as np
from scipy.stats import norm

from spiso.exceptions import InvalidKernel
from spiso.lags import lattice_index, lattice_lag_pairs, pair_displacements


def _normal_profile(u: np.ndarray, truncation: float | None) -> np.ndarray:
    w = norm.pdf(u)
    if truncation is not None:
        w[u > truncation] = 0.0
    return w


def _epanechnikov_profile(u: np.ndarray, truncation: float | None) -> np.ndarray:
    return np.where(u <= 1, 0.75 * (1 - u**2), 0.0)


def _cosine_profile(u: np.ndarray, truncation: float | None) -> np.ndarray:
    return np.where(u <= 1, np.pi / 4 * np.cos(np.pi * u / 2), 0.0)


def _uniform_profile(u: np.ndarray, truncation: float | None) -> np.ndarray:
    return np.where(u <= 1, 0.5, 0.0)


_PROFILES = {
    "normal": _normal_profile,
    "epanechnikov": _epanechnikov_profile,
    "cosine": _cosine_profile,
    "uniform": _uniform_profile,
}


def kernel_profile(u: np.ndarray, kernel: str = "normal", truncation: float | None = 1.5) -> np.ndarray:
    """
    Evaluate a radial smoothing kernel at scaled distances.

    Parameters
    ----------
    u : np.ndarray
        Non-negative scaled distances ``||d - h|| / bandwidth``.
    kernel : {'normal', 'epanechnikov', 'cosine', 'uniform'}, default 'normal'
        Kernel shape.
    truncation : float or None, default 1.5
        For the normal kernel, weights at ``u > truncation`` are set to zero.
        None keeps the full Gaussian tail. Ignored by the compact kernels,
        which already vanish for ``u > 1``.

    Returns
    -------
    np.ndarray
        Kernel weights, same shape as ``u``.
    """
    if kernel not in _PROFILES:
        raise InvalidKernel(f"Kernel '{kernel}' not recognized. Must be one of {list(_PROFILES)}.")
    return _PROFILES[kernel](np.asarray(u, dtype=float), truncation)


class PairWeighting(ABC):
    """
    Abstract base class for pair-weighting strategies.

    A weighting is built once for a set of locations (the full domain or a
    single subblock) and, for each lag, returns the half squared differences
    of candidate pairs together with their weights. The semivariogram
    estimator is a weighted average of these terms, so grid and uniform
    designs share one estimation pipeline.

    Attributes
    ----------
    n : int
        Number of locations.
    method : str
        Weighting method ('lattice' or a kernel name).
    edge_correctable : bool
        If True, the estimator may apply an explicit edge-correction policy.
        Kernel weightings handle edges implicitly and always normalize by
        the total weight.
    params : dict
        Additional weighting parameters (bandwidth, truncation, ...).
    """

    edge_correctable = False

    def __init__(self, coords: np.ndarray, values: np.ndarray, method: str, **kwargs) -> None:
        """
        Initialize the weighting.

        Parameters
        ----------
        coords : np.ndarray
            Coordinates of shape (n, 2).
        values : np.ndarray
            Observed values of shape (n,).
        method : str
            Weighting method.
        **kwargs : dict
            Method-specific parameters.
        """
        self.coords = np.asarray(coords, dtype=float)
        self.values = np.asarray(values, dtype=float)
        self.n = len(self.values)
        self.method = method
        self.params = kwargs

        # Pair structures are built once and reused for every lag
        self._pairs = self._build_pairs()

    @abstractmethod
    def _build_pairs(self):
        """Construct the pair lookup structure for these locations."""
        pass

    @abstractmethod
    def lag_terms(self, lag: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Return ``(half_sq_diffs, weights)`` of the pairs contributing to ``lag``.
        """
        pass

    def restrict(self, mask: np.ndarray, **overrides: Any) -> "PairWeighting":
        """
        Build the same weighting on a subset of the locations.

        Parameters
        ----------
        mask : np.ndarray
            Boolean mask (or index array) selecting the locations to keep.
        **overrides : dict
            Parameters replacing the current ones (e.g. a subblock bandwidth).

        Returns
        -------
        PairWeighting
            New weighting of the same type over the selected locations.
        """
        params = {**self.params, **overrides}
        return type(self)(self.coords[mask], self.values[mask], **params)

    def _format_params(self):
        if not self.params:
            return "None"
        return ", ".join(f"{k}={v}" for k, v in self.params.items())

    def __repr__(self):
        return (
            f"<{type(self).__name__} method={self.method} n={self.n} "
            f"params={{ {self._format_params()} }}>"
        )

    def __str__(self):
        return (
            f"{type(self).__name__}\n"
            f"- Method: {self.method}\n"
            f"- Locations: {self.n}\n"
            f"- Params: {self._format_params()}"
        )


class LatticePairWeighting(PairWeighting):
    """
    Indicator weighting for locations on an integer lattice.

    Pairs separated exactly by the lag get weight one; every other pair is
    excluded. Coordinates must already be normalized to unit spacing
    (see :func:`spiso.utils.scale_coords`).

    Examples
    --------
    >>> coords, _ = get_grid_coords(n_rows=4, n_cols=4)
    >>> weighting = LatticePairWeighting(coords, np.random.randn(16))
    >>> half_sq, w = weighting.lag_terms(np.array([1, 0]))
    >>> len(w)
    12
    """

    edge_correctable = True

    def __init__(self, coords: np.ndarray, values: np.ndarray) -> None:
        super().__init__(coords, values, method="lattice")

    def _build_pairs(self):
        return lattice_index(self.coords)

    def lag_terms(self, lag: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        z_s, z_s_lag = lattice_lag_pairs(self._pairs, self.values, lag)
        half_sq = 0.5 * (z_s_lag - z_s) ** 2
        return half_sq, np.ones_like(half_sq)


class KernelPairWeighting(PairWeighting):
    """
    Kernel weighting for irregularly (uniformly) distributed locations.

    Every pair (u, v) with displacement d = v - u contributes to lag h with
    weight ``K(||d - h|| / bw) + K(||d + h|| / bw)``; both orientations are
    counted so that the estimate at h equals the estimate at -h.

    Parameters
    ----------
    coords : np.ndarray
        Coordinates of shape (n, 2), in the same units as the lags.
    values : np.ndarray
        Observed values of shape (n,).
    kernel : {'normal', 'epanechnikov', 'cosine', 'uniform'}, default 'normal'
        Smoothing kernel.
    **kwargs : dict
        bandwidth (float, default 0.7) and truncation (float or None,
        default 1.5, normal kernel only).

    Examples
    --------
    >>> coords = np.random.uniform(0, 10, size=(100, 2))
    >>> weighting = KernelPairWeighting(coords, np.random.randn(100), kernel='epanechnikov', bandwidth=0.5)
    >>> half_sq, w = weighting.lag_terms(np.array([1.0, 0.0]))
    """

    _available_kernels = list(_PROFILES)

    def __init__(
        self, coords: np.ndarray, values: np.ndarray, kernel: str = "normal", **kwargs
    ) -> None:
        if kernel not in self._available_kernels:
            raise InvalidKernel(
                f"Kernel '{kernel}' not recognized. Must be one of {self._available_kernels}."
            )

        # Update kernel parameters from defaults
        params = self._get_default_params(kernel).copy()
        for key, value in kwargs.items():
            if key in params:
                params[key] = value
            else:
                raise InvalidKernel(f"Unknown parameter '{key}' for kernel '{kernel}'")

        if not params["bandwidth"] > 0:
            raise InvalidKernel("bandwidth must be positive")
        if params["truncation"] is not None and not params["truncation"] > 0:
            raise InvalidKernel("truncation must be positive or None")

        self.kernel = kernel
        super().__init__(coords, values, method=kernel, **params)

    def _get_default_params(self, kernel: str) -> dict[str, Any]:
        """
        Returns default parameters for a smoothing kernel.

        Parameters
        ----------
        kernel : str
            Kernel name. Should be one of _available_kernels.

        Returns
        -------
        dict[str, Any]
            bandwidth for all kernels; truncation, which only the normal kernel uses.
        """
        kernel_defaults = {
            "normal": {"bandwidth": 0.7, "truncation": 1.5},
            "epanechnikov": {"bandwidth": 0.7, "truncation": None},
            "cosine": {"bandwidth": 0.7, "truncation": None},
            "uniform": {"bandwidth": 0.7, "truncation": None},
        }
        return kernel_defaults[kernel]

    def restrict(self, mask: np.ndarray, **overrides: Any) -> "KernelPairWeighting":
        params = {**self.params, **overrides}
        return type(self)(self.coords[mask], self.values[mask], kernel=self.kernel, **params)

    def _build_pairs(self):
        return pair_displacements(self.coords, self.values)

    def lag_terms(self, lag: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        lag = np.asarray(lag, dtype=float)
        displacements, half_sq = self._pairs
        bw = self.params["bandwidth"]
        truncation = self.params["truncation"]

        u_fwd = np.linalg.norm(displacements - lag, axis=1) / bw
        u_bwd = np.linalg.norm(displacements + lag, axis=1) / bw
        weights = kernel_profile(u_fwd, self.kernel, truncation) + kernel_profile(
            u_bwd, self.kernel, truncation
        )
        return half_sq, weights
