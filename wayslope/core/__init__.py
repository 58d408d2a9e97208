"""Core pipeline components.

- pbf_reader: Extract Reader (OSM PBF blocks -> points and raw ways)
- point_index: Point Coordinate Index (builder, sealed read-only index)
- tag_filter: Tag Predicate Evaluator
- feature_resolver: Feature Resolver (raw ways -> coordinate sequences)
- raster_sampler: Raster Sampler (elevation at a coordinate)
- slope_engine: Slope Engine (segments and aggregates per way)
- geo_calculator: Haversine distance
- errors: Fatal and recoverable error taxonomy
"""

from wayslope.core.errors import (
    DegenerateGeometryError,
    DuplicatePointIdError,
    ExtractDecodeError,
    FatalError,
    FilterParseError,
    RasterLoadError,
    RecoverableError,
    UnresolvedPointError,
    UnsupportedRasterError,
    WaySlopeError,
)
from wayslope.core.geo_calculator import GeoCalculator

# Components depending on wayslope.model have a circular import with
# model.coordinate -> core.geo_calculator. Import them directly:
#   from wayslope.core.pbf_reader import PbfReader

__all__ = [
    # Geo calculator
    "GeoCalculator",
    # Errors
    "WaySlopeError",
    "FatalError",
    "RecoverableError",
    "ExtractDecodeError",
    "RasterLoadError",
    "UnsupportedRasterError",
    "FilterParseError",
    "DuplicatePointIdError",
    "UnresolvedPointError",
    "DegenerateGeometryError",
]
