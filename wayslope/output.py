"""Serialize a RunReport to JSON or GeoJSON.

Both formats carry the same per-way properties; absent measurements are
written as null. The file is produced from a complete RunReport, so a run
that fails fatally never leaves a partial output behind.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Union

from shapely.geometry import LineString, mapping

from wayslope.constants import OutputConfig
from wayslope.model.slope_result import FeatureSlopeResult
from wayslope.pipeline import RunReport

logger = logging.getLogger(__name__)


def report_to_json(report: RunReport, decimals: int = OutputConfig.COORDINATE_DECIMALS) -> dict[str, Any]:
    """Plain JSON document: {"summary", "features", "diagnostics"}."""
    return {
        "summary": report.summary(),
        "features": [result.to_dict(decimals=decimals) for result in report.results],
        "diagnostics": [diagnostic.to_error_dict() for diagnostic in report.diagnostics],
    }


def result_to_geojson_feature(
    result: FeatureSlopeResult, decimals: int = OutputConfig.COORDINATE_DECIMALS
) -> dict[str, Any]:
    """One GeoJSON Feature with a LineString geometry.

    Vertex elevations are kept in the properties rather than as a third
    coordinate, since they may be absent.
    """
    properties = result.to_dict(decimals=decimals)
    coordinates = properties.pop("coordinates")
    return {
        "type": "Feature",
        "id": result.feature_id,
        "geometry": mapping(LineString(coordinates)),
        "properties": properties,
    }


def report_to_geojson(report: RunReport, decimals: int = OutputConfig.COORDINATE_DECIMALS) -> dict[str, Any]:
    """GeoJSON FeatureCollection; run summary and diagnostics as foreign members."""
    return {
        "type": "FeatureCollection",
        "features": [result_to_geojson_feature(result, decimals=decimals) for result in report.results],
        "summary": report.summary(),
        "diagnostics": [diagnostic.to_error_dict() for diagnostic in report.diagnostics],
    }


_SERIALIZERS = {
    "json": report_to_json,
    "geojson": report_to_geojson,
}

assert set(_SERIALIZERS) == set(OutputConfig.FORMATS)


def write_report(report: RunReport, path: Union[str, Path], output_format: str = OutputConfig.DEFAULT_FORMAT) -> Path:
    """Write a report to disk.

    The document goes to a sibling temporary file that is renamed into place,
    so readers never see a half-written file.

    Args:
        report: Completed run
        path: Destination file
        output_format: One of OutputConfig.FORMATS

    Returns:
        The written path.
    """
    if output_format not in _SERIALIZERS:
        raise ValueError(f"Unknown output format {output_format!r}, expected one of {OutputConfig.FORMATS}")

    path = Path(path)
    document = _SERIALIZERS[output_format](report)
    temp_path = path.with_name(f".{path.name}.tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=OutputConfig.JSON_INDENT, allow_nan=False)
        os.replace(temp_path, path)
    finally:
        if temp_path.exists():
            temp_path.unlink()

    logger.info(f"Wrote {len(report.results)} ways as {output_format} to {path}")
    return path
