"""
Epoch Time
==========

Conversions between run time (seconds after the orbit epoch) and
calendar/Julian time used by the sun ephemeris.
"""

from datetime import datetime, timezone


class EpochTime:
    """Maps simulation seconds onto Julian dates."""

    J2000_JD = 2451545.0

    def __init__(self, epoch: datetime):
        """
        Args:
            epoch: UTC instant corresponding to simulation time 0
        """
        if epoch.tzinfo is None:
            epoch = epoch.replace(tzinfo=timezone.utc)
        self.epoch = epoch
        self.epoch_jd = self.datetime_to_jd(epoch)

    def julian_date(self, t: float) -> float:
        """Julian Date at ``t`` seconds after the epoch."""
        return self.epoch_jd + t / 86400.0

    @staticmethod
    def datetime_to_jd(dt: datetime) -> float:
        """
        Convert datetime to Julian Date.

        Args:
            dt: datetime object (aware datetimes are converted to UTC)

        Returns:
            Julian Date
        """
        if dt.tzinfo is not None:
            dt = dt.astimezone(timezone.utc)
        year = dt.year
        month = dt.month
        day = dt.day
        hours = dt.hour + dt.minute / 60 + (dt.second + dt.microsecond / 1e6) / 3600

        if month <= 2:
            year -= 1
            month += 12

        A = int(year / 100)
        B = 2 - A + int(A / 4)

        return (int(365.25 * (year + 4716)) + int(30.6001 * (month + 1))
                + day + B - 1524.5 + hours / 24)

    def __repr__(self) -> str:
        return f"EpochTime(epoch={self.epoch.isoformat()})"
