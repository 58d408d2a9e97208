"""Geodesic calculations on Earth's surface.

Horizontal segment lengths use the Haversine great-circle formula on a
spherical Earth with the IUGG mean radius (R = 6,371,008.8 m). Geographic
coordinates are not locally isometric, so planar distance in degrees is never
used for slope.
"""

from math import atan2, cos, radians, sin, sqrt

from wayslope.constants import GeoConfig

EARTH_RADIUS_M = GeoConfig.EARTH_RADIUS_M


class GeoCalculator:
    """Static methods for geodesic calculations.

    Coordinates are in decimal degrees (WGS84). Distances are in meters.
    """

    EARTH_RADIUS_M = EARTH_RADIUS_M

    @staticmethod
    def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate great-circle distance between two points using Haversine formula.

        Identical coordinates give exactly 0.0.

        Args:
            lat1: Latitude of first point (decimal degrees)
            lon1: Longitude of first point (decimal degrees)
            lat2: Latitude of second point (decimal degrees)
            lon2: Longitude of second point (decimal degrees)

        Returns:
            Distance in meters.
        """
        dlat = radians(lat2 - lat1)
        dlon = radians(lon2 - lon1)
        a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2
        return EARTH_RADIUS_M * 2 * atan2(sqrt(a), sqrt(1 - a))

    @staticmethod
    def meters_per_degree_lat() -> float:
        """Length of one degree of latitude on the spherical model."""
        return radians(1.0) * EARTH_RADIUS_M
