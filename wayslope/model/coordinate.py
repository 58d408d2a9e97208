"""Coordinate - The geometry atom of the pipeline.

A Coordinate is a WGS84 latitude/longitude pair. Points in the extract,
vertices of resolved features and raster sample locations all use it.
"""

from dataclasses import dataclass

from wayslope.core.geo_calculator import GeoCalculator


@dataclass(frozen=True)
class Coordinate:
    """A geographic position in decimal degrees.

    Attributes:
        lat: Latitude in decimal degrees (WGS84)
        lon: Longitude in decimal degrees (WGS84)

    Example:
        coord = Coordinate(lat=46.985, lon=10.295)
    """

    lat: float
    lon: float

    @property
    def lat_lon(self) -> tuple[float, float]:
        """Return (lat, lon) tuple - standard geographic order."""
        return (self.lat, self.lon)

    @property
    def lon_lat(self) -> tuple[float, float]:
        """Return (lon, lat) tuple - GeoJSON / raster x,y order."""
        return (self.lon, self.lat)

    def distance_to(self, other: "Coordinate") -> float:
        """Great-circle distance to another coordinate in meters."""
        return GeoCalculator.haversine_distance_m(
            lat1=self.lat,
            lon1=self.lon,
            lat2=other.lat,
            lon2=other.lon,
        )

    def __repr__(self) -> str:
        return f"Coordinate(lat={self.lat:.7f}, lon={self.lon:.7f})"
