"""Configuration constants for wayslope.

All configurable parameters are centralized here for easy tuning.

Classes:
    GeoConfig: Earth model used for horizontal distances
    ExtractConfig: OSM PBF format limits and supported capabilities
    RasterConfig: Elevation raster band and sampling defaults
    PipelineConfig: Worker pool sizing
    OutputConfig: Output formats and JSON layout
    LogConfig: Logging defaults for the command line entry point
"""

import os
from enum import Enum


class SamplingMethod(str, Enum):
    """How a coordinate is turned into a raster value.

    NEAREST truncates the fractional pixel index to the containing cell.
    BILINEAR weights the four surrounding cell centers.
    """

    NEAREST = "nearest"
    BILINEAR = "bilinear"


class GeoConfig:
    """Earth model for geodesic distances."""

    # IUGG mean Earth radius in meters
    EARTH_RADIUS_M = 6_371_008.8


class ExtractConfig:
    """OSM PBF format limits and decoder capabilities."""

    # Size of the big-endian length prefix in front of every BlobHeader
    HEADER_LENGTH_PREFIX_BYTES = 4

    # Hard limits from the format definition
    MAX_BLOB_HEADER_BYTES = 64 * 1024
    MAX_BLOB_BYTES = 32 * 1024 * 1024

    # Blob types
    HEADER_BLOCK_TYPE = "OSMHeader"
    DATA_BLOCK_TYPE = "OSMData"

    # Header "required_features" this decoder understands
    SUPPORTED_REQUIRED_FEATURES = frozenset({"OsmSchema-V0.6", "DenseNodes"})

    # PrimitiveBlock defaults (nanodegrees)
    DEFAULT_GRANULARITY = 100
    DEFAULT_LAT_OFFSET = 0
    DEFAULT_LON_OFFSET = 0
    NANODEGREES_PER_DEGREE = 1e9

    # Longest valid protobuf varint
    MAX_VARINT_BYTES = 10

    # Cumulative delta sums at or beyond this magnitude overflowed int64
    DELTA_OVERFLOW_LIMIT = 2.0**62

    LAT_RANGE = (-90.0, 90.0)
    LON_RANGE = (-180.0, 180.0)


class RasterConfig:
    """Elevation raster defaults."""

    # Single-band elevation rasters; band numbers are 1-based in rasterio
    ELEVATION_BAND = 1

    DEFAULT_SAMPLING = SamplingMethod.NEAREST


class PipelineConfig:
    """Parallel feature processing parameters."""

    # Threads used for the resolve + slope stage once the point index is sealed
    DEFAULT_WORKERS = min(8, os.cpu_count() or 1)

    # Features handed to a worker per task
    CHUNK_SIZE = 256


class OutputConfig:
    """Output serialization settings."""

    FORMATS = ("json", "geojson")
    DEFAULT_FORMAT = "json"
    JSON_INDENT = None  # Compact output; country extracts are large

    # Decimal places kept for coordinates in output (7 ≈ 1cm, PBF resolution)
    COORDINATE_DECIMALS = 7


assert OutputConfig.DEFAULT_FORMAT in OutputConfig.FORMATS


class LogConfig:
    """Logging defaults for the command line entry point."""

    DEFAULT_LEVEL = "INFO"
    LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
    FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    # Individual per-feature diagnostics logged before switching to a summary
    MAX_LOGGED_DIAGNOSTICS = 20


assert LogConfig.DEFAULT_LEVEL in LogConfig.LEVELS
