"""Shared pytest fixtures for wayslope tests.

Provides MockRasterSampler, synthetic GeoTIFFs and small PBF extracts.
All fixtures use explicit values with documented rationale.

COORDINATE SYSTEM:
    Mock sampler tests walk along the prime meridian (lon=0), where the
    haversine distance between two latitudes is exactly R * Δφ. Points spaced
    by STEP_100M degrees are therefore exactly 100m apart, which keeps
    expected slopes exact (10m rise over 100m = 0.1).

    GeoTIFF tests use the 10x10 DEM from raster_builder (lon 10.00-10.01,
    lat 46.00-46.01) with a unique value per cell.
"""

from math import radians
from pathlib import Path
from typing import Optional

import pytest
from rasterio.transform import Affine, from_origin

from pbf_builder import simple_extract
from raster_builder import write_geotiff
from wayslope.constants import GeoConfig
from wayslope.core.point_index import PointIndex, PointIndexBuilder
from wayslope.model.coordinate import Coordinate
from wayslope.model.feature import ResolvedFeature

# Degrees of latitude that span exactly 100m on the haversine sphere
STEP_100M = 100.0 / (radians(1.0) * GeoConfig.EARTH_RADIUS_M)


# =============================================================================
# MOCK RASTER SAMPLER
# =============================================================================


class MockRasterSampler:
    """Mock elevation source with a simple linear north-south slope.

    Elevation formula:
        elevation = base_elevation + (lat / STEP_100M) * rise_per_100m

    Individual coordinates can be overridden, including with None to
    simulate no-data cells or coverage gaps.
    """

    def __init__(
        self,
        base_elevation: float = 1000.0,
        rise_per_100m: float = 0.0,
        overrides: Optional[dict[tuple[float, float], Optional[float]]] = None,
    ) -> None:
        self.base_elevation = base_elevation
        self.rise_per_100m = rise_per_100m
        self.overrides = overrides or {}
        self.calls = 0

    def sample(self, coordinate: Coordinate) -> Optional[float]:
        self.calls += 1
        if coordinate.lat_lon in self.overrides:
            return self.overrides[coordinate.lat_lon]
        return self.base_elevation + (coordinate.lat / STEP_100M) * self.rise_per_100m


def meridian_coordinates(count: int) -> list[Coordinate]:
    """count coordinates on lon=0, 100m apart going north from the equator."""
    return [Coordinate(lat=i * STEP_100M, lon=0.0) for i in range(count)]


# =============================================================================
# MOCK SAMPLER FIXTURES
# =============================================================================


@pytest.fixture
def mock_sampler_flat() -> MockRasterSampler:
    """Flat terrain at 1000m everywhere."""
    return MockRasterSampler(base_elevation=1000.0, rise_per_100m=0.0)


@pytest.fixture
def mock_sampler_10pct_north() -> MockRasterSampler:
    """Terrain rising 10m per 100m going north (slope +0.1 northbound)."""
    return MockRasterSampler(base_elevation=1000.0, rise_per_100m=10.0)


@pytest.fixture
def mock_sampler_hill() -> MockRasterSampler:
    """Elevations [100, 110, 100] at the first three meridian points."""
    coords = meridian_coordinates(3)
    return MockRasterSampler(
        overrides={
            coords[0].lat_lon: 100.0,
            coords[1].lat_lon: 110.0,
            coords[2].lat_lon: 100.0,
        }
    )


# =============================================================================
# FEATURE FIXTURES
# =============================================================================


@pytest.fixture
def feature_3pts_north() -> ResolvedFeature:
    """Three vertices on the meridian, 100m apart, heading north."""
    coords = meridian_coordinates(3)
    return ResolvedFeature(id=7, coordinates=tuple(coords), tags={"highway": "track"}, node_ids=(1, 2, 3))


@pytest.fixture
def point_index_5pts() -> PointIndex:
    """Sealed index with points 1-5 on the meridian, 100m apart."""
    builder = PointIndexBuilder()
    for i, coord in enumerate(meridian_coordinates(5), start=1):
        builder.insert(i, coord, block_index=1)
    return builder.seal()


# =============================================================================
# GEOTIFF FIXTURES
# =============================================================================


@pytest.fixture
def dem_geotiff(tmp_path: Path) -> Path:
    """Standard 10x10 test DEM in EPSG:4326 with one no-data cell."""
    return write_geotiff(tmp_path / "dem.tif")


@pytest.fixture
def projected_geotiff(tmp_path: Path) -> Path:
    """Same values in UTM 32N; must be rejected since there is no reprojection."""
    return write_geotiff(
        tmp_path / "utm.tif",
        transform=from_origin(600_000.0, 5_100_000.0, 30.0, 30.0),
        crs="EPSG:32632",
    )


@pytest.fixture
def rotated_geotiff(tmp_path: Path) -> Path:
    """North-up violated: non-zero rotation terms in the geotransform."""
    return write_geotiff(
        tmp_path / "rotated.tif",
        transform=Affine(0.001, 0.0002, 10.0, 0.0002, -0.001, 46.01),
    )


# =============================================================================
# EXTRACT FIXTURES
# =============================================================================

# Points sit at cell centers of the test DEM: lat = 46.01 - (row + 0.5) * 0.001,
# lon = 10.0 + (col + 0.5) * 0.001
DEM_NODES = [
    (1, 46.0095, 10.0005),  # cell (0, 0): 1000m
    (2, 46.0085, 10.0005),  # cell (1, 0): 1010m
    (3, 46.0075, 10.0005),  # cell (2, 0): 1020m
    (4, 46.0095, 10.0015),  # cell (0, 1): 1001m
    (5, 46.0005, 10.0095),  # cell (9, 9): no-data
    (6, 46.0005, 10.0085),  # cell (9, 8): 1098m
    (7, 45.5, 9.5),  # outside the raster
]

DEM_WAYS = [
    (200, [1, 2, 3], {"highway": "track"}),  # climbs 20m southbound
    (100, [1, 4], {"highway": "primary", "name": "Dorfstrasse"}),
    (300, [6, 5], {"highway": "path"}),  # ends on no-data
    (400, [1, 99], {"highway": "residential"}),  # point 99 does not exist
    (500, [2, 3], {"waterway": "stream"}),
    (600, [3], {"highway": "track"}),  # degenerate
    (700, [7, 1], {"cycleway": "lane"}),  # starts outside the raster
]


@pytest.fixture
def dem_extract(tmp_path: Path) -> Path:
    """PBF extract whose points lie on the standard test DEM (see DEM_WAYS)."""
    path = tmp_path / "dem.osm.pbf"
    path.write_bytes(simple_extract(DEM_NODES, DEM_WAYS))
    return path
