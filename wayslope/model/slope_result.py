"""Slope metrics per segment and per feature.

Absent values are None throughout. A segment keeps its place in the profile
even when its slope is undefined, so segments map one-to-one onto the
feature's geometry.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from wayslope.model.coordinate import Coordinate


@dataclass(frozen=True)
class SlopeSegment:
    """Slope between two consecutive vertices.

    Attributes:
        start: First vertex
        end: Second vertex
        distance_m: Haversine distance in meters
        elevation_delta_m: elevation(end) - elevation(start), None if either is absent
        slope: elevation_delta_m / distance_m, None if the delta is absent or distance is 0
    """

    start: Coordinate
    end: Coordinate
    distance_m: float
    elevation_delta_m: Optional[float]
    slope: Optional[float]

    @property
    def has_slope(self) -> bool:
        return self.slope is not None


@dataclass(frozen=True)
class SlopeAggregate:
    """Statistics over the segments of one feature that have a defined slope.

    All three statistics are None when no segment has a slope, which keeps
    "no measurement" distinguishable from a measured flat 0.0.
    """

    min_slope: Optional[float]
    max_slope: Optional[float]
    mean_slope: Optional[float]
    absent_slope_count: int

    @property
    def is_absent(self) -> bool:
        return self.mean_slope is None


@dataclass(frozen=True)
class FeatureSlopeResult:
    """Complete slope profile of one way.

    Attributes:
        feature_id: Way id
        tags: Tag set of the way
        coordinates: Ordered vertices
        elevations: One elevation (or None) per vertex
        segments: One SlopeSegment per pair of consecutive vertices
        aggregate: Min/max/mean slope and absent count
    """

    feature_id: int
    tags: dict[str, str] = field(hash=False)
    coordinates: tuple[Coordinate, ...]
    elevations: tuple[Optional[float], ...]
    segments: tuple[SlopeSegment, ...]
    aggregate: SlopeAggregate

    @property
    def distance_m(self) -> float:
        """Total horizontal length of the way."""
        return sum(s.distance_m for s in self.segments)

    @property
    def climb_m(self) -> float:
        """Sum of positive elevation deltas."""
        return sum(
            s.elevation_delta_m for s in self.segments if s.elevation_delta_m is not None and s.elevation_delta_m > 0
        )

    @property
    def descent_m(self) -> float:
        """Sum of negative elevation deltas, as a positive number."""
        return -sum(
            s.elevation_delta_m for s in self.segments if s.elevation_delta_m is not None and s.elevation_delta_m < 0
        )

    @property
    def climb_distance_m(self) -> float:
        """Horizontal distance covered by climbing segments."""
        return sum(s.distance_m for s in self.segments if s.elevation_delta_m is not None and s.elevation_delta_m > 0)

    @property
    def descent_distance_m(self) -> float:
        """Horizontal distance covered by descending segments."""
        return sum(s.distance_m for s in self.segments if s.elevation_delta_m is not None and s.elevation_delta_m < 0)

    def to_dict(self, decimals: int = 7) -> dict[str, Any]:
        """Serialize to JSON-ready primitives; absent values become None."""
        return {
            "id": self.feature_id,
            "tags": dict(self.tags),
            "coordinates": [[round(c.lon, decimals), round(c.lat, decimals)] for c in self.coordinates],
            "elevations": list(self.elevations),
            "segments": [
                {
                    "distance_m": s.distance_m,
                    "elevation_delta_m": s.elevation_delta_m,
                    "slope": s.slope,
                }
                for s in self.segments
            ],
            "aggregate": {
                "min_slope": self.aggregate.min_slope,
                "max_slope": self.aggregate.max_slope,
                "mean_slope": self.aggregate.mean_slope,
                "absent_slope_count": self.aggregate.absent_slope_count,
            },
            "distance_m": self.distance_m,
            "climb_m": self.climb_m,
            "descent_m": self.descent_m,
            "climb_distance_m": self.climb_distance_m,
            "descent_distance_m": self.descent_distance_m,
        }

    def __repr__(self) -> str:
        return f"FeatureSlopeResult({self.feature_id}, {len(self.segments)} segments, mean={self.aggregate.mean_slope})"
