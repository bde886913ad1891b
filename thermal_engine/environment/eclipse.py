"""
Eclipse Model
=============

Earth shadow for orbital heat loads.
"""

import math

import numpy as np

from ..core.config import EARTH_RADIUS_KM


class EclipseModel:
    """
    Cylindrical Earth shadow.

    The satellite is eclipsed when it is on the anti-sun side of Earth and
    within one Earth radius of the Earth-sun line.
    """

    RE = EARTH_RADIUS_KM

    def in_eclipse(self, sat_pos_eci: np.ndarray, sun_dir_eci: np.ndarray) -> np.ndarray:
        """
        Args:
            sat_pos_eci: Satellite positions [km], shape (N, 3)
            sun_dir_eci: Unit vectors towards the sun, shape (N, 3) or (3,)

        Returns:
            Boolean array, True inside the shadow cylinder
        """
        pos = np.atleast_2d(sat_pos_eci)
        sun = np.broadcast_to(sun_dir_eci, pos.shape)
        along = np.sum(pos * sun, axis=1)
        perp = pos - along[:, None] * sun
        return (along <= 0) & (np.linalg.norm(perp, axis=1) < self.RE)

    def eclipse_fraction(self, altitude_km: float, beta_rad: float) -> float:
        """
        Analytical fraction of a circular orbit spent in shadow.

        Args:
            altitude_km: Orbit altitude
            beta_rad: Beta angle (sun elevation above the orbit plane)

        Returns:
            Fraction of the period in eclipse (0.0 to 0.5)
        """
        r = self.RE + altitude_km
        beta_star = math.asin(self.RE / r)
        if abs(beta_rad) >= beta_star:
            return 0.0
        cos_arg = math.sqrt(altitude_km**2 + 2 * self.RE * altitude_km) / (r * math.cos(beta_rad))
        return math.acos(min(1.0, cos_arg)) / math.pi
