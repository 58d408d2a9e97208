"""Data model classes for the slope pipeline.

Follows the separation of Geometry (where things are) vs Topology (what references what):
- Coordinate: Geometry atom (lat, lon)
- RawFeature: Way as decoded, referencing point ids
- ResolvedFeature: Way with coordinates substituted for ids
- ElevationGrid / ElevationSample: Raster data and per-vertex samples
- SlopeSegment / SlopeAggregate / FeatureSlopeResult: Slope metrics
"""

from wayslope.model.coordinate import Coordinate
from wayslope.model.elevation import ElevationGrid, ElevationSample
from wayslope.model.feature import RawFeature, ResolvedFeature
from wayslope.model.slope_result import FeatureSlopeResult, SlopeAggregate, SlopeSegment

__all__ = [
    "Coordinate",
    "RawFeature",
    "ResolvedFeature",
    "ElevationGrid",
    "ElevationSample",
    "SlopeSegment",
    "SlopeAggregate",
    "FeatureSlopeResult",
]
