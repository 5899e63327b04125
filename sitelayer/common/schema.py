"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

import re

from sitelayer.common.constants import COORDINATE_ENCODINGS, MAX_WORKERS, READER_KINDS
from sitelayer.common.errors import ConfigError
from sitelayer.common.ids import is_dataset_identifier

SOURCE_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")

READER_KEYS = {
    "csv": ({"path"}, {"encoding"}),
    "remote_csv": ({"url"}, set()),
    "ckan_resource": ({"resource_id"}, {"base_url"}),
    "datastream_locations": ({"doi"}, {"select"}),
    "shapefile": ({"path"}, set()),
    "xlsx": ({"path"}, {"sheet", "skip", "max_rows", "column_names"}),
    "text_metadata": ({"path"}, {"marker", "encoding"}),
}
COORDINATE_KEYS = {
    "decimal": (set(), {"latitude", "longitude", "combined", "separator"}),
    "dms": ({"latitude", "longitude"}, set()),
    "utm": ({"easting", "northing", "zone"}, {"hemisphere"}),
    "projected": ({"x", "y"}, {"epsg", "epsg_field"}),
}
COORDINATE_POLICY_KEYS = {"encoding", "truncate_chars", "force_negative_longitude"}
VALUE_SPEC_KEYS = {"field", "constant", "concat", "separator", "sequence", "prefix", "map", "default", "pattern", "same_as"}
VALUE_SPEC_ANCHORS = {"field", "constant", "concat", "sequence", "same_as"}
PREDICATE_TESTS = {"equals", "in", "is_null", "non_ascii", "matches"}
FILTER_KEYS = {"include", "exclude", "require", "require_numeric"}
SOURCE_REQUIRED = {"name", "reader", "site_uid", "site_name", "dataset_id", "coordinates"}
SOURCE_OPTIONAL = {"description", "enabled", "filters", "select", "keep_columns"}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_pattern(pattern: object, ctx: str) -> None:
    if not isinstance(pattern, str):
        raise ConfigError(f"{ctx} must be a regular expression string")
    try:
        compiled = re.compile(pattern)
    except re.error as exc:
        raise ConfigError(f"Invalid regular expression in {ctx}: {exc}") from exc
    if compiled.groups < 1:
        raise ConfigError(f"{ctx} must contain a capture group")


def validate_reader_config(reader: dict, ctx: str, *, allow_unknown: bool = False) -> dict:
    _assert_required_keys(reader, {"kind"}, ctx)
    kind = reader["kind"]
    if kind not in READER_KINDS:
        raise ConfigError(f"Unknown reader kind in {ctx}: {kind}")
    required, optional = READER_KEYS[kind]
    _assert_required_keys(reader, required, ctx)
    _assert_no_unknown_keys(reader, required | optional | {"kind"}, ctx, allow_unknown)
    return reader


def validate_value_spec(spec: object, ctx: str) -> None:
    if isinstance(spec, str):
        return
    _assert_required_keys(spec, set(), ctx)
    _assert_no_unknown_keys(spec, VALUE_SPEC_KEYS, ctx, allow_unknown=False)
    if not VALUE_SPEC_ANCHORS & set(spec) and not ("map" in spec and "field" in spec):
        raise ConfigError(f"{ctx} needs one of: {', '.join(sorted(VALUE_SPEC_ANCHORS))}")
    if "concat" in spec and (not isinstance(spec["concat"], list) or len(spec["concat"]) < 2):
        raise ConfigError(f"{ctx}.concat must list at least two fields")
    if "map" in spec and not isinstance(spec["map"], dict):
        raise ConfigError(f"{ctx}.map must be a mapping")
    if "pattern" in spec:
        _assert_pattern(spec["pattern"], f"{ctx}.pattern")
    if "same_as" in spec and spec["same_as"] != "site_uid":
        raise ConfigError(f"{ctx}.same_as only supports site_uid")


def _validate_predicate(predicate: dict, ctx: str) -> None:
    _assert_required_keys(predicate, {"field"}, ctx)
    tests = set(predicate) - {"field"}
    if len(tests) != 1 or not tests <= PREDICATE_TESTS:
        raise ConfigError(f"{ctx} needs exactly one of: {', '.join(sorted(PREDICATE_TESTS))}")
    if "matches" in predicate:
        try:
            re.compile(predicate["matches"])
        except re.error as exc:
            raise ConfigError(f"Invalid regular expression in {ctx}.matches: {exc}") from exc
    if "in" in predicate and not isinstance(predicate["in"], list):
        raise ConfigError(f"{ctx}.in must be a list")


def validate_dataset_id_config(spec: object, ctx: str) -> None:
    if isinstance(spec, str):
        if not is_dataset_identifier(spec):
            raise ConfigError(f"Invalid dataset identifier in {ctx}: {spec}")
        return
    _assert_required_keys(spec, {"rules"}, ctx)
    _assert_no_unknown_keys(spec, {"rules", "default"}, ctx, allow_unknown=False)
    if not isinstance(spec["rules"], list) or not spec["rules"]:
        raise ConfigError(f"{ctx}.rules must be a non-empty list")
    for idx, rule in enumerate(spec["rules"]):
        rule_ctx = f"{ctx}.rules[{idx}]"
        _assert_required_keys(rule, {"when", "id"}, rule_ctx)
        _assert_no_unknown_keys(rule, {"when", "id"}, rule_ctx, allow_unknown=False)
        _validate_predicate(rule["when"], f"{rule_ctx}.when")
        if not is_dataset_identifier(rule["id"]):
            raise ConfigError(f"Invalid dataset identifier in {rule_ctx}: {rule['id']}")
    default = spec.get("default")
    if default is not None and not is_dataset_identifier(default):
        raise ConfigError(f"Invalid dataset identifier in {ctx}.default: {default}")


def validate_coordinates_config(coords: dict, ctx: str) -> None:
    _assert_required_keys(coords, {"encoding"}, ctx)
    encoding = coords["encoding"]
    if encoding not in COORDINATE_ENCODINGS:
        raise ConfigError(f"Unknown coordinate encoding in {ctx}: {encoding}")
    required, optional = COORDINATE_KEYS[encoding]
    _assert_required_keys(coords, required, ctx)
    _assert_no_unknown_keys(coords, required | optional | COORDINATE_POLICY_KEYS, ctx, allow_unknown=False)

    if encoding == "decimal" and "combined" not in coords:
        _assert_required_keys(coords, {"latitude", "longitude"}, ctx)
    if encoding == "utm":
        zone = coords["zone"]
        if not isinstance(zone, int) or not 1 <= zone <= 60:
            raise ConfigError(f"{ctx}.zone must be an integer in 1..60")
        if coords.get("hemisphere", "north") not in ("north", "south"):
            raise ConfigError(f"{ctx}.hemisphere must be north or south")
    if encoding == "projected" and "epsg" not in coords and "epsg_field" not in coords:
        raise ConfigError(f"{ctx} needs epsg or epsg_field")
    truncate = coords.get("truncate_chars", 0)
    if not isinstance(truncate, int) or truncate < 0:
        raise ConfigError(f"{ctx}.truncate_chars must be a non-negative integer")


def validate_source_config(
    src: dict,
    *,
    allow_unknown: bool = False,
    reserved_columns: list[str] | tuple[str, ...] = (),
) -> dict:
    _assert_required_keys(src, SOURCE_REQUIRED, "source")
    name = src["name"]
    ctx = f"source {name}"
    if not isinstance(name, str) or not SOURCE_NAME_RE.match(name):
        raise ConfigError(f"Invalid source name: {name!r}")
    _assert_no_unknown_keys(src, SOURCE_REQUIRED | SOURCE_OPTIONAL, ctx, allow_unknown)

    validate_reader_config(src["reader"], f"{ctx}.reader", allow_unknown=allow_unknown)
    validate_value_spec(src["site_uid"], f"{ctx}.site_uid")
    validate_value_spec(src["site_name"], f"{ctx}.site_name")
    if isinstance(src["site_uid"], dict) and "same_as" in src["site_uid"]:
        raise ConfigError(f"{ctx}.site_uid cannot use same_as")
    validate_dataset_id_config(src["dataset_id"], f"{ctx}.dataset_id")
    validate_coordinates_config(src["coordinates"], f"{ctx}.coordinates")

    filters = src.get("filters") or {}
    _assert_no_unknown_keys(filters, FILTER_KEYS, f"{ctx}.filters", allow_unknown=False)
    for key in ("include", "exclude"):
        for field_name, values in (filters.get(key) or {}).items():
            if not isinstance(values, list):
                raise ConfigError(f"{ctx}.filters.{key}.{field_name} must be a list")

    select = src.get("select")
    if select is not None and select != "first":
        _assert_required_keys(select, {"dedupe_on"}, f"{ctx}.select")
        _assert_no_unknown_keys(select, {"dedupe_on"}, f"{ctx}.select", allow_unknown=False)

    keep = src.get("keep_columns")
    if keep is not None and not isinstance(keep, list):
        raise ConfigError(f"{ctx}.keep_columns must be a list")
    clashes = sorted(set(keep or []) & set(reserved_columns))
    if clashes:
        raise ConfigError(f"{ctx}.keep_columns collides with excluded catalog columns: {', '.join(clashes)}")
    return src


def validate_sources_config(
    cfg: dict,
    *,
    allow_unknown: bool = False,
    reserved_columns: list[str] | tuple[str, ...] = (),
) -> list[dict]:
    _assert_required_keys(cfg, {"sources"}, "sources")
    _assert_no_unknown_keys(cfg, {"sources", "disabled"}, "sources", allow_unknown)
    if not isinstance(cfg["sources"], list) or not cfg["sources"]:
        raise ConfigError("sources.sources must be a non-empty list")

    names: list[str] = []
    for src in cfg["sources"]:
        validate_source_config(src, allow_unknown=allow_unknown, reserved_columns=reserved_columns)
        names.append(src["name"])

    dupes = {name for name in names if names.count(name) > 1}
    if dupes:
        raise ConfigError(f"Duplicate source names: {', '.join(sorted(dupes))}")
    return cfg["sources"]


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"run", "http", "catalog", "output"}
    top_known = top_required | {"datastream", "ckan"}
    _assert_required_keys(cfg, top_required, "pipeline config")
    _assert_no_unknown_keys(cfg, top_known, "pipeline config", allow_unknown)

    _assert_required_keys(cfg["run"], {"workers", "source_timeout_seconds"}, "run")
    workers = cfg["run"]["workers"]
    if not isinstance(workers, int) or not 1 <= workers <= MAX_WORKERS:
        raise ConfigError(f"run.workers must be an integer in 1..{MAX_WORKERS}")
    _assert_required_keys(cfg["http"], {"connect_timeout", "read_timeout", "max_attempts"}, "http")

    _assert_required_keys(cfg["catalog"], {"reader", "key", "exclude_columns"}, "catalog")
    _assert_no_unknown_keys(
        cfg["catalog"], {"reader", "key", "exclude_columns", "descriptive_columns"}, "catalog", allow_unknown
    )
    validate_reader_config(cfg["catalog"]["reader"], "catalog.reader", allow_unknown=allow_unknown)
    if not isinstance(cfg["catalog"]["exclude_columns"], list):
        raise ConfigError("catalog.exclude_columns must be a list")

    _assert_required_keys(cfg["output"], {"geojson_filename", "csv_filename"}, "output")
    if "datastream" in cfg:
        _assert_required_keys(cfg["datastream"], {"base_url", "api_key_env"}, "datastream")
    if "ckan" in cfg:
        _assert_required_keys(cfg["ckan"], {"base_url"}, "ckan")
    return cfg
