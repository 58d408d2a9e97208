"""Elevation raster sampling.

Loads a single-band georeferenced elevation raster (GeoTIFF or any format
rasterio reads) fully into memory and answers point elevation queries:
- O(1) lookup into a pre-loaded NumPy array
- Geographic coordinate -> pixel via the inverted geotransform
- Absent (None) outside the grid and on no-data or non-finite cells

The raster must already be in geographic coordinates and north-up; rotated
or projected rasters are rejected instead of being reprojected.

Sampling policy is nearest cell by default: fractional pixel indices are
floored to the containing cell. At routing-relevant DEM resolutions (30 m or
finer) the difference to bilinear interpolation is small next to tag and
geometry noise. BILINEAR is available as an alternative; a sampler applies
one method to every sample.
"""

import logging
import time
from math import floor
from pathlib import Path
from typing import Iterable, Optional, Union

import numpy as np
import rasterio
from rasterio.errors import RasterioError

from wayslope.constants import RasterConfig, SamplingMethod
from wayslope.core.errors import RasterLoadError, UnsupportedRasterError
from wayslope.model.coordinate import Coordinate
from wayslope.model.elevation import ElevationGrid, ElevationSample

logger = logging.getLogger(__name__)


def load_elevation_grid(path: Union[str, Path], band: int = RasterConfig.ELEVATION_BAND) -> ElevationGrid:
    """Read an elevation band and its geotransform (all-or-nothing).

    Args:
        path: Raster file path
        band: 1-based band number

    Returns:
        ElevationGrid with read-only values.

    Raises:
        RasterLoadError: File missing, unreadable, lacking the band or a geotransform.
        UnsupportedRasterError: Rotated geotransform or projected CRS.
    """
    source = str(path)
    logger.info(f"Loading elevation raster from {source}...")
    start_time = time.time()

    try:
        with rasterio.open(path) as dataset:
            if band > dataset.count:
                raise RasterLoadError(f"raster has {dataset.count} band(s), band {band} requested", source=source)

            transform = dataset.transform
            if dataset.crs is None and transform.is_identity:
                raise RasterLoadError("raster has no geotransform; a georeferenced raster is required", source=source)
            if transform.b != 0 or transform.d != 0:
                raise UnsupportedRasterError(
                    f"geotransform has rotation terms ({transform.b}, {transform.d}); only north-up rasters are supported",
                    source=source,
                )
            if dataset.crs is not None and not dataset.crs.is_geographic:
                raise UnsupportedRasterError(
                    f"raster CRS {dataset.crs.to_string()} is projected; reproject it to EPSG:4326 first",
                    source=source,
                )
            if dataset.crs is None:
                logger.warning(f"{source} declares no CRS; assuming WGS84 longitude/latitude")

            values = dataset.read(band).astype(np.float64, copy=False)
            nodata = dataset.nodatavals[band - 1]
            grid = ElevationGrid(
                transform=transform,
                width=dataset.width,
                height=dataset.height,
                values=values,
                nodata=None if nodata is None else float(nodata),
            )
    except (RasterioError, OSError) as exc:
        raise RasterLoadError(str(exc), source=source) from exc

    elapsed = time.time() - start_time
    logger.info(
        f"Elevation raster loaded in {elapsed:.2f}s "
        f"(shape: {grid.height}x{grid.width}, pixel: {grid.pixel_size}, nodata: {grid.nodata})"
    )
    return grid


class RasterSampler:
    """Point-to-elevation sampling over an ElevationGrid.

    Read-only after construction; safe to share across threads.

    Example:
        sampler = RasterSampler.from_path("srtm_38_03.tif")
        elevation = sampler.sample(Coordinate(lat=46.985, lon=10.295))
    """

    def __init__(self, grid: ElevationGrid, method: SamplingMethod = RasterConfig.DEFAULT_SAMPLING) -> None:
        self._grid = grid
        self._method = SamplingMethod(method)
        self._inverse = ~grid.transform

    @classmethod
    def from_path(
        cls,
        path: Union[str, Path],
        method: SamplingMethod = RasterConfig.DEFAULT_SAMPLING,
    ) -> "RasterSampler":
        return cls(load_elevation_grid(path), method=method)

    @property
    def grid(self) -> ElevationGrid:
        return self._grid

    @property
    def method(self) -> SamplingMethod:
        return self._method

    def pixel_of(self, coordinate: Coordinate) -> tuple[float, float]:
        """Fractional (col, row) of a coordinate via the inverse geotransform."""
        col, row = self._inverse @ coordinate.lon_lat
        return col, row

    def sample(self, coordinate: Coordinate) -> Optional[float]:
        """Elevation at a coordinate.

        Args:
            coordinate: WGS84 position

        Returns:
            Elevation in raster units (meters), or None if the coordinate lies
            outside [0, width) x [0, height) or on a no-data cell.
        """
        col, row = self.pixel_of(coordinate)
        if not (0 <= col < self._grid.width and 0 <= row < self._grid.height):
            return None
        if self._method is SamplingMethod.BILINEAR:
            return self._bilinear(col, row)
        return self._cell(floor(row), floor(col))

    def sample_profile(self, coordinates: Iterable[Coordinate]) -> list[ElevationSample]:
        """Sample every vertex of a path in order."""
        return [ElevationSample(coordinate=c, elevation=self.sample(c)) for c in coordinates]

    def _cell(self, row: int, col: int) -> Optional[float]:
        value = float(self._grid.values[row, col])
        if self._grid.is_nodata(value):
            return None
        return value

    def _bilinear(self, col: float, row: float) -> Optional[float]:
        """Interpolate between the four cell centers around (col, row).

        Cell centers sit at half-integer pixel positions; indices are clamped
        at the raster edge. Any no-data neighbour makes the sample absent.
        """
        x = col - 0.5
        y = row - 0.5
        col0 = min(max(floor(x), 0), self._grid.width - 1)
        row0 = min(max(floor(y), 0), self._grid.height - 1)
        col1 = min(col0 + 1, self._grid.width - 1)
        row1 = min(row0 + 1, self._grid.height - 1)
        fx = min(max(x - col0, 0.0), 1.0)
        fy = min(max(y - row0, 0.0), 1.0)

        corners = [self._cell(row0, col0), self._cell(row0, col1), self._cell(row1, col0), self._cell(row1, col1)]
        if any(v is None for v in corners):
            return None
        top_left, top_right, bottom_left, bottom_right = corners
        top = top_left * (1 - fx) + top_right * fx
        bottom = bottom_left * (1 - fx) + bottom_right * fx
        return top * (1 - fy) + bottom * fy
