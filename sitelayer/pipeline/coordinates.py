"""Coordinate normalisation to WGS84 decimal degrees.

Supported raw encodings are decimal degrees, degrees-minutes-seconds text,
UTM easting/northing in a fixed zone, and generic projected x/y with an EPSG
code. Per-source privacy truncation and longitude sign forcing are applied
here, each exactly once.
"""

from __future__ import annotations

import math
import re
from functools import lru_cache
from typing import Any

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from sitelayer.common.constants import WGS84_EPSG
from sitelayer.common.errors import CoordinateParseError

_DMS_GLYPHS_RE = re.compile(r"[°º˚'’′\"”″]")
_DMS_TRIPLET_RE = re.compile(
    r"(?P<sign>-)?\s*(?P<deg>\d+(?:\.\d+)?)\s+(?P<min>\d+(?:\.\d+)?)(?:\s+(?P<sec>\d+(?:\.\d+)?))?\s*(?P<hemi>[NSEW])?"
)
_AXIS_HEMISPHERES = {"latitude": ("N", "S"), "longitude": ("E", "W")}


def _safe_float(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed):
        return None
    return parsed


def _valid_lat_lon(lat: float | None, lon: float | None) -> bool:
    if lat is None or lon is None:
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def truncate_decimal_text(value: Any, chars: int) -> str:
    """Drop the last ``chars`` characters of the textual value.

    String truncation, not rounding: ``"51.1234567"`` with 2 gives ``"51.12345"``.
    """
    text = str(value).strip()
    if chars <= 0:
        return text
    return text[:-chars]


def parse_decimal(value: Any, *, source: str | None = None, truncate_chars: int = 0) -> float:
    raw = value
    if truncate_chars:
        value = truncate_decimal_text(value, truncate_chars)
    parsed = _safe_float(value)
    if parsed is None:
        raise CoordinateParseError(f"Non-numeric coordinate {raw!r}", source=source, raw_value=raw)
    return parsed


def parse_dms(text: Any, axis: str, *, source: str | None = None) -> float:
    """Convert DMS text such as ``51°30'00"N`` to signed decimal degrees.

    The text may hold both axes (``53°54'10"N, 122°49'05"W``); the triplet whose
    hemisphere letter belongs to ``axis`` is used. Without a hemisphere letter for
    ``axis`` the single unlettered triplet is used; its sign comes from a leading
    minus.
    """
    if axis not in _AXIS_HEMISPHERES:
        raise ValueError(f"Unknown axis: {axis}")
    if text is None or not str(text).strip():
        raise CoordinateParseError(f"Empty {axis} DMS value", source=source, raw_value=text)

    cleaned = _DMS_GLYPHS_RE.sub(" ", str(text)).upper()
    matches = list(_DMS_TRIPLET_RE.finditer(cleaned))
    positive, negative = _AXIS_HEMISPHERES[axis]

    chosen = None
    for match in matches:
        if match.group("hemi") in (positive, negative):
            chosen = match
            break
    if chosen is None:
        bare = [match for match in matches if match.group("hemi") is None]
        if len(bare) == 1:
            chosen = bare[0]
    if chosen is None:
        raise CoordinateParseError(f"Unparsable {axis} DMS value {text!r}", source=source, raw_value=text)

    degrees = float(chosen.group("deg"))
    minutes = float(chosen.group("min"))
    seconds = float(chosen.group("sec") or 0.0)
    if minutes >= 60 or seconds >= 60:
        raise CoordinateParseError(f"Minutes/seconds out of range in {text!r}", source=source, raw_value=text)

    decimal = degrees + minutes / 60 + seconds / 3600
    if chosen.group("hemi") == negative or chosen.group("sign"):
        decimal = -decimal
    return decimal


@lru_cache(maxsize=64)
def _transformer(source_epsg: int) -> Transformer:
    return Transformer.from_crs(CRS.from_epsg(source_epsg), CRS.from_epsg(WGS84_EPSG), always_xy=True)


def utm_epsg(zone: int, hemisphere: str = "north") -> int:
    if not 1 <= zone <= 60:
        raise ValueError(f"UTM zone out of range: {zone}")
    return (32600 if hemisphere == "north" else 32700) + zone


def transform_to_wgs84(x: float, y: float, source_epsg: int, *, source: str | None = None) -> tuple[float, float]:
    """Project ``x``/``y`` in ``source_epsg`` to ``(lat, lon)`` in WGS84."""
    if source_epsg == WGS84_EPSG:
        return y, x
    try:
        lon, lat = _transformer(int(source_epsg)).transform(x, y)
    except (CRSError, ProjError) as exc:
        raise CoordinateParseError(
            f"Cannot transform from EPSG:{source_epsg}: {exc}", source=source, raw_value=(x, y)
        ) from exc
    if not math.isfinite(lat) or not math.isfinite(lon):
        raise CoordinateParseError(
            f"Projection from EPSG:{source_epsg} produced no finite result", source=source, raw_value=(x, y)
        )
    return lat, lon


def utm_to_wgs84(
    easting: Any,
    northing: Any,
    zone: int,
    hemisphere: str = "north",
    *,
    source: str | None = None,
) -> tuple[float, float]:
    x = _safe_float(easting)
    y = _safe_float(northing)
    if x is None or y is None:
        raise CoordinateParseError(
            f"Non-numeric UTM easting/northing {easting!r}/{northing!r}", source=source, raw_value=(easting, northing)
        )
    return transform_to_wgs84(x, y, utm_epsg(zone, hemisphere), source=source)


def normalise_coordinates(row: dict, coords_cfg: dict, *, source: str | None = None) -> tuple[float, float]:
    """Apply one source's coordinate policy to one raw row, returning ``(lat, lon)``."""
    encoding = coords_cfg["encoding"]
    truncate = int(coords_cfg.get("truncate_chars", 0))

    if encoding == "decimal":
        if "combined" in coords_cfg:
            combined = row.get(coords_cfg["combined"])
            parts = [] if combined is None else str(combined).split(coords_cfg.get("separator", ","))
            if len(parts) != 2:
                raise CoordinateParseError(
                    f"Expected 'lat{coords_cfg.get('separator', ',')}lon' in {combined!r}",
                    source=source,
                    raw_value=combined,
                )
            raw_lat, raw_lon = parts
        else:
            raw_lat = row.get(coords_cfg["latitude"])
            raw_lon = row.get(coords_cfg["longitude"])
        lat = parse_decimal(raw_lat, source=source, truncate_chars=truncate)
        lon = parse_decimal(raw_lon, source=source, truncate_chars=truncate)
    elif encoding == "dms":
        lat = parse_dms(row.get(coords_cfg["latitude"]), "latitude", source=source)
        lon = parse_dms(row.get(coords_cfg["longitude"]), "longitude", source=source)
    elif encoding == "utm":
        lat, lon = utm_to_wgs84(
            row.get(coords_cfg["easting"]),
            row.get(coords_cfg["northing"]),
            int(coords_cfg["zone"]),
            coords_cfg.get("hemisphere", "north"),
            source=source,
        )
    elif encoding == "projected":
        x = parse_decimal(row.get(coords_cfg["x"]), source=source)
        y = parse_decimal(row.get(coords_cfg["y"]), source=source)
        epsg = coords_cfg.get("epsg")
        if epsg is None:
            epsg = _safe_float(row.get(coords_cfg["epsg_field"]))
        if epsg is None:
            raise CoordinateParseError("Projected coordinate without a CRS", source=source, raw_value=(x, y))
        lat, lon = transform_to_wgs84(x, y, int(epsg), source=source)
    else:
        raise CoordinateParseError(f"Unknown coordinate encoding {encoding}", source=source)

    if coords_cfg.get("force_negative_longitude"):
        lon = -abs(lon)

    if not _valid_lat_lon(lat, lon):
        raise CoordinateParseError(f"Coordinates out of range: {lat}, {lon}", source=source, raw_value=(lat, lon))
    return lat, lon
