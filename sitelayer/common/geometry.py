"""Geometry helpers."""

from __future__ import annotations

from typing import Any

from sitelayer.common.errors import ContractError

COORDINATE_PROPERTIES = ("latitude", "longitude")


def point_feature(row: dict[str, Any]) -> dict[str, Any]:
    lat = row.get("latitude")
    lon = row.get("longitude")
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        raise ContractError(f"Cannot build point for site {row.get('site_uid')!r} without numeric coordinates")
    properties = {key: value for key, value in row.items() if key not in COORDINATE_PROPERTIES}
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": properties,
    }


def feature_collection(rows: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "crs": {"type": "name", "properties": {"name": "urn:ogc:def:crs:OGC:1.3:CRS84"}},
        "features": [point_feature(row) for row in rows],
    }
