"""
Error and warning taxonomy for the isotropy tests.

Validation errors are raised before any estimation work. Numerical errors
propagate out of the estimation pipeline; no partial result is returned.
Warnings are non-fatal diagnostics emitted through :mod:`warnings`.
"""


class IsotropyValidationError(ValueError):
    """Malformed input detected before estimation."""


class InvalidSample(IsotropyValidationError):
    """Spatial data matrix has the wrong shape or non-finite entries."""


class InvalidSpacing(IsotropyValidationError):
    """Grid spacing ``delta`` is not a positive finite number."""


class InvalidLags(IsotropyValidationError):
    """Lag matrix has the wrong shape or non-lattice entries."""


class NonConformableContrast(IsotropyValidationError):
    """Contrast matrix does not match the number of lags."""


class InvalidWindow(IsotropyValidationError):
    """Subblock (moving window) dimensions are malformed or too large."""


class InvalidKernel(IsotropyValidationError):
    """Unknown smoothing kernel or invalid kernel parameter."""


class IsotropyNumericalError(ArithmeticError):
    """Estimation reached a degenerate numerical state."""


class DegenerateGamma(IsotropyNumericalError):
    """A semivariogram estimate is not a number (no pairs at some lag)."""


class SingularContrastCovariance(IsotropyNumericalError):
    """``A @ sigma_hat @ A.T`` cannot be inverted."""


class SingularSigma(SingularContrastCovariance):
    """Too few subblocks to estimate a covariance of the required rank."""


class PartialWindowWarning(UserWarning):
    """
    Window size does not divide the domain extent; trailing data is dropped.

    Attributes
    ----------
    axis : str
        'x' or 'y'.
    extent : float
        Domain extent along the axis (cells for grids, coordinate units otherwise).
    window : float
        Window size along the axis, in the same units.
    n_windows : int
        Number of whole windows kept along the axis.
    """

    def __init__(self, axis: str, extent: float, window: float, n_windows: int) -> None:
        self.axis = axis
        self.extent = float(extent)
        self.window = float(window)
        self.n_windows = int(n_windows)
        dim = "width" if axis == "x" else "height"
        super().__init__(
            f"Subblock {dim} ({self.window:g}) does not divide the {axis}-extent of the data "
            f"({self.extent:g}) evenly; data beyond {self.n_windows} whole windows is omitted "
            "during subsampling."
        )


class EmptyLagBin(RuntimeWarning):
    """
    No pairs contribute to a requested lag; its estimate is set to NaN.

    Attributes
    ----------
    lag : tuple of float
        The lag with no contributing pairs.
    """

    def __init__(self, lag: tuple[float, float]) -> None:
        self.lag = tuple(lag)
        super().__init__(f"No pairs of locations found at lag {self.lag}; estimate set to NaN.")
