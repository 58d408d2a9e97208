"""Wayslope - Slope profiles of OpenStreetMap ways on real terrain.

Joins the ways of an OSM PBF extract with a georeferenced elevation raster
and reports per-segment and per-way slope statistics:
- Streaming PBF decoding with NumPy-vectorized delta decoding
- Compact sealed point index shared read-only by worker threads
- Tag filtering, nearest-cell or bilinear raster sampling
- JSON or GeoJSON output with structured diagnostics for dropped ways

Modules:
    core: Pipeline components (reader, point index, filter, resolver, sampler, slope engine)
    model: Data structures (Coordinate, RawFeature, ElevationGrid, FeatureSlopeResult)
    pipeline: End-to-end run and RunReport
    output: JSON / GeoJSON serialization
    cli: Command line entry point

Example:
    from wayslope.pipeline import run
    report = run("monaco.osm.pbf", "srtm.tif", filter_expression="highway")
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("wayslope")
except PackageNotFoundError:
    # Running from a source checkout that was never installed
    __version__ = "unknown"
