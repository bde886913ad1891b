"""
Environment Module
==================

Orbital heat-flux environment models.
"""

from .sun import SunModel
from .eclipse import EclipseModel
from .orbital_environment import OrbitalEnvironment, EnvironmentSample, EnvironmentProfile, OrbitalFluxTable

__all__ = [
    'SunModel',
    'EclipseModel',
    'OrbitalEnvironment',
    'EnvironmentSample',
    'EnvironmentProfile',
    'OrbitalFluxTable',
]
