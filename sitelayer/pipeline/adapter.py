"""Declarative source adapter: raw rows to canonical site records.

One engine serves every source. A source record from ``sources.yml`` names the
raw fields to read and the rules to apply; the adapter runs them in a fixed
order:

1. schema check (every referenced field exists in the raw columns)
2. row filters (include / exclude / require / require_numeric)
3. row selection (``first`` row only, or first row per ``dedupe_on`` key)
4. per row: dataset identifier rules, coordinates, ``site_uid``, ``site_name``
5. collapse duplicate ``site_uid`` values, first encountered wins

Row order is preserved throughout so "first encountered" is reproducible.
"""

from __future__ import annotations

import math
import re
from typing import Any, Iterable

from sitelayer.common.constants import CANONICAL_FIELDS
from sitelayer.common.deterministic import first_by_key
from sitelayer.common.errors import CoordinateParseError, SchemaMismatchError
from sitelayer.common.models import CanonicalSiteRecord, SourceResult
from sitelayer.pipeline.coordinates import _safe_float, normalise_coordinates

_COORDINATE_FIELD_KEYS = ("latitude", "longitude", "combined", "easting", "northing", "x", "y", "epsg_field")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def as_text(value: Any) -> str | None:
    """Render a raw cell as identifier text; integral floats lose their ``.0``."""
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _value_spec_fields(spec: Any) -> list[str]:
    if isinstance(spec, str):
        return [spec]
    fields = []
    if "field" in spec:
        fields.append(spec["field"])
    fields.extend(spec.get("concat", []))
    return fields


def resolve_value(spec: Any, row: dict, *, index: int, site_uid: str | None = None) -> str | None:
    """Evaluate a value spec against one raw row.

    A bare string names a raw field. ``index`` is the 1-based position of the
    row after filtering and selection, used by ``sequence`` specs.
    """
    if isinstance(spec, str):
        return as_text(row.get(spec))

    if "constant" in spec:
        value = as_text(spec["constant"])
    elif "same_as" in spec:
        value = site_uid
    elif "concat" in spec:
        parts = [as_text(row.get(name)) for name in spec["concat"]]
        if any(part is None for part in parts):
            return None
        value = spec.get("separator", "").join(parts)
    elif spec.get("sequence"):
        value = str(index)
    else:
        value = as_text(row.get(spec["field"]))
        if value is not None and "pattern" in spec:
            match = re.search(spec["pattern"], value)
            value = match.group(1).strip() if match else None
        if "map" in spec:
            value = spec["map"].get(value, spec.get("default"))
            value = as_text(value)

    if value is not None and "prefix" in spec:
        value = f"{spec['prefix']}{value}"
    return value


def predicate_matches(predicate: dict, row: dict) -> bool:
    value = row.get(predicate["field"])
    if "is_null" in predicate:
        return _is_blank(value) == bool(predicate["is_null"])
    if _is_blank(value):
        return False
    text = str(value)
    if "equals" in predicate:
        return text == str(predicate["equals"])
    if "in" in predicate:
        return text in {str(option) for option in predicate["in"]}
    if "non_ascii" in predicate:
        return (not text.isascii()) == bool(predicate["non_ascii"])
    if "matches" in predicate:
        return re.search(predicate["matches"], text) is not None
    return False


def assign_dataset_id(spec: Any, row: dict) -> str | None:
    """Constant identifier, or ordered rules evaluated top-to-bottom; first match wins."""
    if isinstance(spec, str):
        return spec
    for rule in spec["rules"]:
        if predicate_matches(rule["when"], row):
            return rule["id"]
    return spec.get("default")


class SourceAdapter:
    def __init__(self, source_cfg: dict) -> None:
        self.cfg = source_cfg
        self.name: str = source_cfg["name"]
        self.filters: dict = source_cfg.get("filters") or {}
        self.select = source_cfg.get("select")
        self.keep_columns: list[str] = [
            column for column in source_cfg.get("keep_columns") or [] if column not in CANONICAL_FIELDS
        ]

    def referenced_fields(self) -> list[str]:
        fields: list[str] = []
        fields.extend(_value_spec_fields(self.cfg["site_uid"]))
        fields.extend(_value_spec_fields(self.cfg["site_name"]))

        dataset_spec = self.cfg["dataset_id"]
        if isinstance(dataset_spec, dict):
            fields.extend(rule["when"]["field"] for rule in dataset_spec["rules"])

        coords = self.cfg["coordinates"]
        fields.extend(coords[key] for key in _COORDINATE_FIELD_KEYS if key in coords)

        for key in ("include", "exclude"):
            fields.extend((self.filters.get(key) or {}).keys())
        fields.extend(self.filters.get("require") or [])
        fields.extend(self.filters.get("require_numeric") or [])
        if isinstance(self.select, dict):
            fields.append(self.select["dedupe_on"])
        fields.extend(self.keep_columns)

        return list(dict.fromkeys(fields))

    def check_schema(self, rows: Iterable[dict]) -> None:
        columns: set[str] = set()
        for row in rows:
            columns.update(row)
        missing = [name for name in self.referenced_fields() if name not in columns]
        if missing:
            raise SchemaMismatchError(
                f"Source {self.name} is missing expected fields: {', '.join(missing)}",
                source=self.name,
                missing=missing,
            )

    def filter_rows(self, rows: list[dict], result: SourceResult) -> list[dict]:
        include = self.filters.get("include") or {}
        exclude = self.filters.get("exclude") or {}
        require = self.filters.get("require") or []
        require_numeric = self.filters.get("require_numeric") or []

        kept = []
        for row in rows:
            if any(as_text(row.get(name)) not in {str(v) for v in values} for name, values in include.items()):
                result.drop("FILTERED_INCLUDE")
                continue
            if any(as_text(row.get(name)) in {str(v) for v in values} for name, values in exclude.items()):
                result.drop("FILTERED_EXCLUDE")
                continue
            if any(_is_blank(row.get(name)) for name in require):
                result.drop("MISSING_REQUIRED")
                continue
            if any(_safe_float(row.get(name)) is None for name in require_numeric):
                result.drop("NON_NUMERIC_REQUIRED")
                continue
            kept.append(row)
        return kept

    def select_rows(self, rows: list[dict], result: SourceResult) -> list[dict]:
        if self.select is None:
            return rows
        if self.select == "first":
            selected = rows[:1]
        else:
            key_field = self.select["dedupe_on"]
            selected = first_by_key(rows, key=lambda row: as_text(row.get(key_field)))
        if len(rows) > len(selected):
            result.drop("DEDUPLICATED", len(rows) - len(selected))
        return selected

    def build_record(self, row: dict, index: int, result: SourceResult) -> CanonicalSiteRecord | None:
        dataset_id = assign_dataset_id(self.cfg["dataset_id"], row)
        if dataset_id is None:
            result.drop("UNASSIGNED_DATASET_ID")
            result.note(f"row {index}: no dataset identifier rule matched")
            return None

        lat, lon = normalise_coordinates(row, self.cfg["coordinates"], source=self.name)

        site_uid = resolve_value(self.cfg["site_uid"], row, index=index)
        if site_uid is None:
            result.drop("MISSING_SITE_UID")
            result.note(f"row {index}: empty site_uid")
            return None
        site_name = resolve_value(self.cfg["site_name"], row, index=index, site_uid=site_uid)

        return CanonicalSiteRecord(
            site_uid=site_uid,
            site_name=site_name if site_name is not None else site_uid,
            latitude=lat,
            longitude=lon,
            dataset_unique_identifier=dataset_id,
            extra={column: row.get(column) for column in self.keep_columns},
        )

    def adapt(self, rows: list[dict]) -> SourceResult:
        result = SourceResult(name=self.name, rows_in=len(rows))
        if not rows:
            return result

        self.check_schema(rows)
        selected = self.select_rows(self.filter_rows(rows, result), result)

        records: list[CanonicalSiteRecord] = []
        coordinate_failures = 0
        for index, row in enumerate(selected, start=1):
            try:
                record = self.build_record(row, index, result)
            except CoordinateParseError as exc:
                coordinate_failures += 1
                result.drop("COORDINATE_PARSE_ERROR")
                result.note(f"row {index}: {exc}")
                continue
            if record is not None:
                records.append(record)

        reached_coordinates = len(selected) - result.dropped.get("UNASSIGNED_DATASET_ID", 0)
        if coordinate_failures and coordinate_failures == reached_coordinates:
            raise CoordinateParseError(
                f"Source {self.name}: coordinates failed to parse for every row ({coordinate_failures})",
                source=self.name,
            )

        unique = first_by_key(records, key=lambda record: record.site_uid)
        if len(unique) < len(records):
            result.drop("DUPLICATE_SITE_UID", len(records) - len(unique))
        result.records = unique
        return result


def adapt_rows(source_cfg: dict, rows: list[dict]) -> SourceResult:
    return SourceAdapter(source_cfg).adapt(rows)
