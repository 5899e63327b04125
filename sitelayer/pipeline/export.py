"""Monitoring site layer export: GeoJSON, flat CSV and optional GeoPackage."""

from __future__ import annotations

from pathlib import Path

from sitelayer.common.constants import WGS84_EPSG
from sitelayer.common.fs import ensure_dir, write_csv, write_json
from sitelayer.common.geometry import COORDINATE_PROPERTIES, feature_collection

DEFAULT_LAYER_NAME = "monitoring_sites"


def _serialize_row(row: dict, columns: list[str]) -> dict:
    out = {}
    for key in columns:
        value = row.get(key)
        if value is None:
            out[key] = ""
        elif isinstance(value, bool):
            out[key] = "true" if value else "false"
        else:
            out[key] = value
    return out


def write_geojson(path: Path, rows: list[dict]) -> Path:
    write_json(path, feature_collection(rows))
    return path


def write_layer_csv(path: Path, columns: list[str], rows: list[dict]) -> Path:
    write_csv(path, columns, [_serialize_row(row, columns) for row in rows])
    return path


def write_geopackage(path: Path, columns: list[str], rows: list[dict], layer: str = DEFAULT_LAYER_NAME) -> Path:
    import geopandas as gpd

    ensure_dir(path.parent)
    if path.exists():
        # GPKG appends layers to an existing file; every run rebuilds from scratch.
        path.unlink()
    attributes = [column for column in columns if column not in COORDINATE_PROPERTIES]
    frame = gpd.GeoDataFrame(
        [{column: row.get(column) for column in attributes} for row in rows],
        columns=attributes,
        geometry=gpd.points_from_xy([row["longitude"] for row in rows], [row["latitude"] for row in rows]),
        crs=f"EPSG:{WGS84_EPSG}",
    )
    frame.to_file(path, layer=layer, driver="GPKG")
    return path


def export_layer(output_cfg: dict, data_dir: Path, columns: list[str], rows: list[dict]) -> dict[str, Path]:
    out_dir = data_dir / "out"
    written = {
        "geojson": write_geojson(out_dir / output_cfg["geojson_filename"], rows),
        "csv": write_layer_csv(out_dir / output_cfg["csv_filename"], columns, rows),
    }
    if output_cfg.get("geopackage_filename"):
        written["geopackage"] = write_geopackage(
            out_dir / output_cfg["geopackage_filename"],
            columns,
            rows,
            layer=output_cfg.get("layer_name", DEFAULT_LAYER_NAME),
        )
    return written
