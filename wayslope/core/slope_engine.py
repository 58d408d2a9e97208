"""Slope derivation along resolved ways.

For each way:
1. Sample elevation at every vertex
2. For each consecutive vertex pair compute the Haversine distance and the
   elevation delta (end - start)
3. slope = delta / distance, defined only when distance > 0 and both
   elevations are present
4. Aggregate min/max/mean over the defined slopes

Undefined slopes stay in the segment list (as None) so the profile has one
segment per geometry segment; they are excluded from the aggregates. A way
without a single defined slope gets None aggregates, not 0.0.
"""

from typing import Optional, Protocol, Sequence

from wayslope.core.geo_calculator import GeoCalculator
from wayslope.model.coordinate import Coordinate
from wayslope.model.feature import ResolvedFeature
from wayslope.model.slope_result import FeatureSlopeResult, SlopeAggregate, SlopeSegment


class ElevationSource(Protocol):
    """Anything that can answer point elevation queries (RasterSampler, test mocks)."""

    def sample(self, coordinate: Coordinate) -> Optional[float]: ...


class SlopeEngine:
    """Computes FeatureSlopeResults from ResolvedFeatures.

    Stateless apart from the elevation source, so one engine can be shared
    across worker threads.

    Example:
        engine = SlopeEngine(sampler=RasterSampler.from_path("dem.tif"))
        result = engine.compute(feature)
        print(f"Mean slope: {result.aggregate.mean_slope}")
    """

    def __init__(self, sampler: ElevationSource) -> None:
        self._sampler = sampler

    @property
    def sampler(self) -> ElevationSource:
        return self._sampler

    def compute(self, feature: ResolvedFeature) -> FeatureSlopeResult:
        """Build the slope profile of one way."""
        elevations = tuple(self._sampler.sample(c) for c in feature.coordinates)
        segments = self.compute_segments(coordinates=feature.coordinates, elevations=elevations)
        return FeatureSlopeResult(
            feature_id=feature.id,
            tags=feature.tags,
            coordinates=feature.coordinates,
            elevations=elevations,
            segments=segments,
            aggregate=self.aggregate(segments),
        )

    @staticmethod
    def compute_segment(
        start: Coordinate,
        end: Coordinate,
        start_elevation: Optional[float],
        end_elevation: Optional[float],
    ) -> SlopeSegment:
        """Distance, elevation delta and slope between two vertices."""
        distance = GeoCalculator.haversine_distance_m(lat1=start.lat, lon1=start.lon, lat2=end.lat, lon2=end.lon)

        delta: Optional[float] = None
        if start_elevation is not None and end_elevation is not None:
            delta = end_elevation - start_elevation

        slope: Optional[float] = None
        if delta is not None and distance > 0:
            slope = delta / distance

        return SlopeSegment(start=start, end=end, distance_m=distance, elevation_delta_m=delta, slope=slope)

    @staticmethod
    def compute_segments(
        coordinates: Sequence[Coordinate],
        elevations: Sequence[Optional[float]],
    ) -> tuple[SlopeSegment, ...]:
        """One SlopeSegment per consecutive vertex pair.

        Args:
            coordinates: Ordered vertices
            elevations: Elevation (or None) per vertex

        Returns:
            len(coordinates) - 1 segments (empty for fewer than 2 vertices).
        """
        if len(coordinates) != len(elevations):
            raise ValueError(f"{len(coordinates)} coordinates but {len(elevations)} elevations")
        return tuple(
            SlopeEngine.compute_segment(
                start=coordinates[i],
                end=coordinates[i + 1],
                start_elevation=elevations[i],
                end_elevation=elevations[i + 1],
            )
            for i in range(len(coordinates) - 1)
        )

    @staticmethod
    def aggregate(segments: Sequence[SlopeSegment]) -> SlopeAggregate:
        """Min/max/mean over the segments that have a slope."""
        slopes = [s.slope for s in segments if s.slope is not None]
        absent = len(segments) - len(slopes)
        if not slopes:
            return SlopeAggregate(min_slope=None, max_slope=None, mean_slope=None, absent_slope_count=absent)
        return SlopeAggregate(
            min_slope=min(slopes),
            max_slope=max(slopes),
            mean_slope=sum(slopes) / len(slopes),
            absent_slope_count=absent,
        )
