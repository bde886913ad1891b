"""
Radiation Module
================

Surface geometry and Monte Carlo view factors.
"""

from .geometry import Surface, rectangle_surface, parallel_plates_view_factor, perpendicular_plates_view_factor
from .monte_carlo import MonteCarloViewFactor, RayQuality, ViewFactorEstimate
from .job import (
    ViewFactorJob,
    ProgressMessage,
    ResultMessage,
    ErrorMessage,
    compute_view_factors,
    radiation_pairs,
    apply_view_factors,
)

__all__ = [
    'Surface',
    'rectangle_surface',
    'parallel_plates_view_factor',
    'perpendicular_plates_view_factor',
    'MonteCarloViewFactor',
    'RayQuality',
    'ViewFactorEstimate',
    'ViewFactorJob',
    'ProgressMessage',
    'ResultMessage',
    'ErrorMessage',
    'compute_view_factors',
    'radiation_pairs',
    'apply_view_factors',
]
