"""Synthetic elevation rasters for tests.

The standard test DEM is a 10x10 grid of 0.001° pixels whose upper-left
corner is at (lon=10.0, lat=46.01). Cell (row, col) holds
1000 + 10 * row + col meters, except the bottom-right cell (9, 9) which is
no-data. Values are unique per cell, so a sample identifies its cell.
"""

from pathlib import Path
from typing import Optional

import numpy as np
import rasterio
from rasterio.transform import Affine, from_origin

from wayslope.model.coordinate import Coordinate
from wayslope.model.elevation import ElevationGrid

DEM_WEST = 10.0
DEM_NORTH = 46.01
DEM_PIXEL = 0.001
DEM_SIZE = 10
DEM_NODATA = -9999.0
NODATA_CELL = (9, 9)


def dem_values() -> np.ndarray:
    rows, cols = np.indices((DEM_SIZE, DEM_SIZE))
    values = 1000.0 + 10.0 * rows + cols
    values[NODATA_CELL] = DEM_NODATA
    return values


def dem_transform() -> Affine:
    return from_origin(DEM_WEST, DEM_NORTH, DEM_PIXEL, DEM_PIXEL)


def cell_value(row: int, col: int) -> float:
    return 1000.0 + 10.0 * row + col


def cell_point(row: int, col: int, fx: float = 0.5, fy: float = 0.5) -> Coordinate:
    """Coordinate at fractional position (fx, fy) inside cell (row, col); 0.5 is the center."""
    return Coordinate(lat=DEM_NORTH - (row + fy) * DEM_PIXEL, lon=DEM_WEST + (col + fx) * DEM_PIXEL)


def make_grid() -> ElevationGrid:
    """The standard test DEM in memory, without touching disk."""
    return ElevationGrid(
        transform=dem_transform(),
        width=DEM_SIZE,
        height=DEM_SIZE,
        values=dem_values(),
        nodata=DEM_NODATA,
    )


def write_geotiff(
    path: Path,
    values: Optional[np.ndarray] = None,
    transform: Optional[Affine] = None,
    crs: Optional[str] = "EPSG:4326",
    nodata: Optional[float] = DEM_NODATA,
    count: int = 1,
    georeferenced: bool = True,
) -> Path:
    """Write a float32 GeoTIFF; defaults produce the standard test DEM.

    georeferenced=False omits the geotransform entirely (pixel space only).
    """
    values = dem_values() if values is None else values
    transform = dem_transform() if transform is None else transform
    height, width = values.shape
    profile = {
        "driver": "GTiff",
        "height": height,
        "width": width,
        "count": count,
        "dtype": "float32",
    }
    if georeferenced:
        profile["transform"] = transform
    if crs is not None:
        profile["crs"] = crs
    if nodata is not None:
        profile["nodata"] = nodata
    with rasterio.open(path, "w", **profile) as dst:
        for band in range(1, count + 1):
            dst.write(values.astype(np.float32), band)
    return path
