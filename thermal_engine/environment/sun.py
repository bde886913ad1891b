"""
Sun Ephemeris
=============

Low-precision sun position for orbital heat loads.
"""

import numpy as np

from ..core.time_manager import EpochTime


class SunModel:
    """
    Sun direction and irradiance.

    Position accuracy is about 0.01 deg over 1950-2050, far below what
    lumped thermal models resolve.
    """

    AU_KM = 149597870.7

    # Solar constant at 1 AU [W/m^2]
    SOLAR_CONSTANT = 1361.0

    def position_eci(self, julian_date: float) -> np.ndarray:
        """
        Sun position in the ECI (mean equator) frame.

        Args:
            julian_date: Julian date

        Returns:
            Sun position [km]
        """
        T = (julian_date - EpochTime.J2000_JD) / 36525.0

        L0 = (280.46646 + 36000.76983 * T + 0.0003032 * T**2) % 360
        M = 357.52911 + 35999.05029 * T - 0.0001537 * T**2
        M_rad = np.radians(M % 360)
        e = 0.016708634 - 0.000042037 * T - 0.0000001267 * T**2

        # Equation of center
        C = ((1.914602 - 0.004817 * T - 0.000014 * T**2) * np.sin(M_rad)
             + (0.019993 - 0.000101 * T) * np.sin(2 * M_rad)
             + 0.000289 * np.sin(3 * M_rad))

        true_lon = np.radians(L0 + C)
        true_anom = np.radians(M + C)
        distance_au = 1.000001018 * (1 - e**2) / (1 + e * np.cos(true_anom))
        obliquity = np.radians(23.439291 - 0.0130042 * T)

        r = distance_au * self.AU_KM
        return np.array([
            r * np.cos(true_lon),
            r * np.sin(true_lon) * np.cos(obliquity),
            r * np.sin(true_lon) * np.sin(obliquity),
        ])

    def direction_eci(self, julian_date: float) -> np.ndarray:
        """Unit vector from Earth towards the sun."""
        pos = self.position_eci(julian_date)
        return pos / np.linalg.norm(pos)
