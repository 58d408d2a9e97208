"""Elevation raster data and per-vertex samples."""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from rasterio.transform import Affine

from wayslope.model.coordinate import Coordinate


@dataclass(frozen=True, eq=False)
class ElevationGrid:
    """An axis-aligned elevation raster held in memory.

    Attributes:
        transform: Pixel (col, row) to geographic (lon, lat) affine mapping
        width: Number of columns
        height: Number of rows
        values: Row-major elevation array of shape (height, width), read-only
        nodata: No-data sentinel, or None if the raster declares none
    """

    transform: Affine
    width: int
    height: int
    values: np.ndarray
    nodata: Optional[float] = None

    def __post_init__(self) -> None:
        if self.values.shape != (self.height, self.width):
            raise ValueError(f"Grid values shape {self.values.shape} does not match {self.height}x{self.width}")
        self.values.flags.writeable = False

    @property
    def origin(self) -> tuple[float, float]:
        """Geographic (lon, lat) of the upper-left corner of pixel (0, 0)."""
        return (self.transform.c, self.transform.f)

    @property
    def pixel_size(self) -> tuple[float, float]:
        """(x, y) pixel size in degrees; y is negative for north-up rasters."""
        return (self.transform.a, self.transform.e)

    def is_nodata(self, value: float) -> bool:
        """True if a cell value carries no measurement (sentinel, NaN or infinite)."""
        if not np.isfinite(value):
            return True
        return self.nodata is not None and value == self.nodata


@dataclass(frozen=True)
class ElevationSample:
    """Elevation at a coordinate; elevation is None outside coverage or on no-data."""

    coordinate: Coordinate
    elevation: Optional[float]

    @property
    def is_present(self) -> bool:
        return self.elevation is not None
