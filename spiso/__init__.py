"""
spiso: Nonparametric tests of spatial isotropy

This package implements the subsampling-based test of second-order
isotropy of Guan, Sherman & Calvin (2004) for two-dimensional
geostatistical data observed on a regular grid or at uniformly
distributed locations.
"""

__version__ = "0.1.0"

# Import core classes and functions
from spiso.exceptions import (
    DegenerateGamma,
    EmptyLagBin,
    IsotropyNumericalError,
    IsotropyValidationError,
    PartialWindowWarning,
    SingularContrastCovariance,
    SingularSigma,
)
from spiso.kernels import KernelPairWeighting, LatticePairWeighting
from spiso.semivariogram import EdgeCorrection, estimate_gamma
from spiso.statistics import (
    IsotropyTestResult,
    contrast_test,
    grid_isotropy_test,
    uniform_isotropy_test,
)
from spiso.subblocks import Recentering, estimate_sigma
from spiso.utils import coords_aniso, get_grid_coords, scale_coords, simulate_gaussian_field

# Define public API
__all__ = [
    # Tests
    "grid_isotropy_test",
    "uniform_isotropy_test",
    "IsotropyTestResult",
    # Estimation building blocks
    "LatticePairWeighting",
    "KernelPairWeighting",
    "EdgeCorrection",
    "Recentering",
    "estimate_gamma",
    "estimate_sigma",
    "contrast_test",
    # Helpers
    "scale_coords",
    "get_grid_coords",
    "coords_aniso",
    "simulate_gaussian_field",
    # Errors and warnings
    "IsotropyValidationError",
    "IsotropyNumericalError",
    "DegenerateGamma",
    "SingularContrastCovariance",
    "SingularSigma",
    "PartialWindowWarning",
    "EmptyLagBin",
]
