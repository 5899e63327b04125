"""Raw-row readers, one per reader ``kind``.

Every reader returns a list of plain ``dict`` rows in source order. Failures to
obtain rows (missing file, HTTP error, malformed container) surface as
``SourceReadError`` so the runner can skip the source and carry on.
"""

from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from sitelayer.common.errors import SourceReadError
from sitelayer.common.fs import parse_csv_text, read_csv_rows, read_text_lines
from sitelayer.common.http import HttpClient

DEFAULT_METADATA_MARKER = r"^Metadata:"
DATASTREAM_PAGE_LIMIT = 1000
DEFAULT_DATASTREAM_SELECT = ("Id", "Name", "Latitude", "Longitude")


@dataclass(frozen=True)
class ReaderContext:
    data_dir: Path
    client: HttpClient
    ckan_base_url: str | None = None
    datastream_base_url: str | None = None
    datastream_api_key_env: str | None = None


def _local_path(ctx: ReaderContext, raw_path: str) -> Path:
    path = Path(raw_path)
    if path.is_absolute():
        return path
    return ctx.data_dir / "raw" / path


def _clean_cell(value: Any) -> Any:
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def read_csv(reader_cfg: dict, ctx: ReaderContext) -> list[dict]:
    path = _local_path(ctx, reader_cfg["path"])
    try:
        return read_csv_rows(path, encoding=reader_cfg.get("encoding", "utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceReadError(f"Cannot read CSV {path}: {exc}") from exc


def read_remote_csv(reader_cfg: dict, ctx: ReaderContext) -> list[dict]:
    text = ctx.client.get_text(reader_cfg["url"], source_type="download")
    return parse_csv_text(text)


def read_ckan_resource(reader_cfg: dict, ctx: ReaderContext) -> list[dict]:
    base_url = reader_cfg.get("base_url") or ctx.ckan_base_url
    if not base_url:
        raise SourceReadError("No CKAN base_url configured")
    resource_id = reader_cfg["resource_id"]
    payload = ctx.client.get_json(
        f"{base_url.rstrip('/')}/api/3/action/resource_show",
        source_type="ckan",
        params={"id": resource_id},
    )
    if not payload.get("success"):
        raise SourceReadError(f"CKAN resource_show failed for {resource_id}: {payload.get('error')}")
    download_url = (payload.get("result") or {}).get("url")
    if not download_url:
        raise SourceReadError(f"CKAN resource {resource_id} has no download url")
    return parse_csv_text(ctx.client.get_text(download_url, source_type="ckan"))


def read_datastream_locations(reader_cfg: dict, ctx: ReaderContext) -> list[dict]:
    if not ctx.datastream_base_url or not ctx.datastream_api_key_env:
        raise SourceReadError("DataStream reader needs datastream.base_url and datastream.api_key_env")
    api_key = os.environ.get(ctx.datastream_api_key_env)
    if not api_key:
        raise SourceReadError(f"Environment variable {ctx.datastream_api_key_env} is not set")

    select = reader_cfg.get("select") or list(DEFAULT_DATASTREAM_SELECT)
    url: str | None = f"{ctx.datastream_base_url.rstrip('/')}/Locations"
    params: dict[str, Any] | None = {
        "$select": ",".join(select),
        "$filter": f"DOI='{reader_cfg['doi']}'",
        "$top": DATASTREAM_PAGE_LIMIT,
    }
    headers = {"x-api-key": api_key}

    rows: list[dict] = []
    while url:
        payload = ctx.client.get_json(url, source_type="datastream", params=params, headers=headers)
        rows.extend(dict(item) for item in payload.get("value") or [])
        # nextLink carries the full query string.
        url = payload.get("@odata.nextLink")
        params = None
    return rows


def read_shapefile(reader_cfg: dict, ctx: ReaderContext) -> list[dict]:
    import geopandas as gpd

    path = _local_path(ctx, reader_cfg["path"])
    if not path.exists():
        raise SourceReadError(f"Missing shapefile {path}")
    try:
        frame = gpd.read_file(path)
    except Exception as exc:
        raise SourceReadError(f"Cannot read shapefile {path}: {exc}") from exc

    epsg = frame.crs.to_epsg() if frame.crs is not None else None
    rows: list[dict] = []
    for record in frame.to_dict("records"):
        geometry = record.pop("geometry", None)
        row = {key: _clean_cell(value) for key, value in record.items()}
        if geometry is not None and not geometry.is_empty:
            # Multi-part or polygon features fall back to their centroid.
            point = geometry if geometry.geom_type == "Point" else geometry.centroid
            row["_x"], row["_y"] = point.x, point.y
        else:
            row["_x"], row["_y"] = None, None
        row["_epsg"] = epsg
        rows.append(row)
    return rows


def read_xlsx(reader_cfg: dict, ctx: ReaderContext) -> list[dict]:
    import pandas as pd

    path = _local_path(ctx, reader_cfg["path"])
    if not path.exists():
        raise SourceReadError(f"Missing workbook {path}")
    column_names = reader_cfg.get("column_names")
    try:
        frame = pd.read_excel(
            path,
            sheet_name=reader_cfg.get("sheet", 0),
            skiprows=reader_cfg.get("skip", 0),
            nrows=reader_cfg.get("max_rows"),
            header=None if column_names else 0,
            names=column_names,
            engine="openpyxl",
        )
    except (OSError, ValueError) as exc:
        raise SourceReadError(f"Cannot read workbook {path}: {exc}") from exc
    return [{key: _clean_cell(value) for key, value in record.items()} for record in frame.to_dict("records")]


def read_text_metadata(reader_cfg: dict, ctx: ReaderContext) -> list[dict]:
    """Pair each marker line with the label line just above it."""
    path = _local_path(ctx, reader_cfg["path"])
    try:
        lines = read_text_lines(path, encoding=reader_cfg.get("encoding", "utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceReadError(f"Cannot read text metadata {path}: {exc}") from exc

    marker = re.compile(reader_cfg.get("marker", DEFAULT_METADATA_MARKER))
    rows: list[dict] = []
    for idx, line in enumerate(lines):
        if idx == 0 or not marker.search(line):
            continue
        rows.append({"label": lines[idx - 1].strip(), "metadata": line.strip()})
    return rows


READERS: dict[str, Callable[[dict, ReaderContext], list[dict]]] = {
    "csv": read_csv,
    "remote_csv": read_remote_csv,
    "ckan_resource": read_ckan_resource,
    "datastream_locations": read_datastream_locations,
    "shapefile": read_shapefile,
    "xlsx": read_xlsx,
    "text_metadata": read_text_metadata,
}


def read_rows(reader_cfg: dict, ctx: ReaderContext) -> list[dict]:
    try:
        reader = READERS[reader_cfg["kind"]]
    except KeyError as exc:
        raise SourceReadError(f"Unsupported reader kind: {reader_cfg.get('kind')}") from exc
    return reader(reader_cfg, ctx)


def build_reader_context(pipeline_cfg: dict, data_dir: Path, client: HttpClient) -> ReaderContext:
    datastream = pipeline_cfg.get("datastream") or {}
    return ReaderContext(
        data_dir=data_dir,
        client=client,
        ckan_base_url=(pipeline_cfg.get("ckan") or {}).get("base_url"),
        datastream_base_url=datastream.get("base_url"),
        datastream_api_key_env=datastream.get("api_key_env"),
    )
