"""Tests for JSON / GeoJSON output.

Tests: report_to_json, report_to_geojson, write_report
Focus: Logical schema, null for absence, no partial files.
"""

import json
from pathlib import Path

import pytest
from shapely.geometry import shape

from wayslope.output import report_to_geojson, report_to_json, write_report
from wayslope.pipeline import RunReport, run


@pytest.fixture
def dem_report(dem_extract: Path, dem_geotiff: Path) -> RunReport:
    """Full run over the standard DEM test data (5 ways, 2 diagnostics)."""
    return run(dem_extract, dem_geotiff)


class TestJsonOutput:
    """Plain JSON document."""

    def test_document_layout(self, dem_report: RunReport) -> None:
        """summary, features and diagnostics at the top level."""
        document = report_to_json(dem_report)
        assert set(document) == {"summary", "features", "diagnostics"}
        assert [f["id"] for f in document["features"]] == [100, 200, 300, 500, 700]
        assert [d["code"] for d in document["diagnostics"]] == ["UNRESOLVED_POINT", "DEGENERATE_GEOMETRY"]
        assert document["diagnostics"][0]["category"] == "recoverable"

    def test_feature_fields(self, dem_report: RunReport) -> None:
        """Each way exposes tags, coordinates, per-segment values and aggregates."""
        feature = report_to_json(dem_report)["features"][0]
        assert feature["tags"] == {"highway": "primary", "name": "Dorfstrasse"}
        assert feature["coordinates"] == [[10.0005, 46.0095], [10.0015, 46.0095]]
        assert feature["elevations"] == [1000.0, 1001.0]
        assert set(feature["segments"][0]) == {"distance_m", "elevation_delta_m", "slope"}
        assert feature["aggregate"]["absent_slope_count"] == 0

    def test_written_file_has_nulls(self, dem_report: RunReport, tmp_path: Path) -> None:
        """Absent elevation and slope serialize as JSON null."""
        path = write_report(dem_report, tmp_path / "out.json")
        document = json.loads(path.read_text(encoding="utf-8"))

        way_300 = next(f for f in document["features"] if f["id"] == 300)
        assert way_300["elevations"][1] is None
        assert way_300["segments"][0]["slope"] is None
        assert way_300["aggregate"] == {
            "min_slope": None,
            "max_slope": None,
            "mean_slope": None,
            "absent_slope_count": 1,
        }
        assert "null" in path.read_text(encoding="utf-8")
        assert not list(tmp_path.glob(".*.tmp"))


class TestGeoJsonOutput:
    """GeoJSON FeatureCollection."""

    def test_feature_collection(self, dem_report: RunReport) -> None:
        """One LineString feature per way, properties without coordinates."""
        document = report_to_geojson(dem_report)
        assert document["type"] == "FeatureCollection"
        assert len(document["features"]) == 5

        feature = document["features"][1]
        assert feature["id"] == 200
        assert feature["geometry"]["type"] == "LineString"
        assert "coordinates" not in feature["properties"]
        assert feature["properties"]["aggregate"]["mean_slope"] > 0

    def test_geometry_is_valid_linestring(self, dem_report: RunReport) -> None:
        """Geometry parses back with shapely in lon/lat order."""
        feature = report_to_geojson(dem_report)["features"][0]
        line = shape(feature["geometry"])
        assert list(line.coords) == [(10.0005, 46.0095), (10.0015, 46.0095)]

    def test_write_geojson(self, dem_report: RunReport, tmp_path: Path) -> None:
        """write_report writes a parseable GeoJSON file."""
        path = write_report(dem_report, tmp_path / "out.geojson", output_format="geojson")
        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["summary"]["features_dropped"] == 2

    def test_unknown_format(self, dem_report: RunReport, tmp_path: Path) -> None:
        """Only json and geojson are supported."""
        with pytest.raises(ValueError, match="csv"):
            write_report(dem_report, tmp_path / "out.csv", output_format="csv")
        assert not (tmp_path / "out.csv").exists()
