import copy

import pytest

from sitelayer.common.errors import ConfigError
from sitelayer.common.schema import validate_pipeline_config, validate_source_config, validate_sources_config


BASE_SOURCE = {
    "name": "valley_streamkeepers",
    "reader": {"kind": "csv", "path": "valley/sites.csv"},
    "site_uid": {"field": "station", "prefix": "valley_"},
    "site_name": "name",
    "dataset_id": "SWP_DTS_A001",
    "coordinates": {"encoding": "decimal", "latitude": "lat", "longitude": "lon"},
}

BASE_PIPELINE = {
    "run": {"workers": 8, "source_timeout_seconds": 300},
    "http": {"connect_timeout": 20, "read_timeout": 120, "max_attempts": 5},
    "catalog": {
        "reader": {"kind": "csv", "path": "catalog/dataset_catalog.csv"},
        "key": "dataset_unique_identifier",
        "exclude_columns": ["comments"],
    },
    "output": {"geojson_filename": "a.geojson", "csv_filename": "a.csv"},
}


def _source(**changes):
    src = copy.deepcopy(BASE_SOURCE)
    src.update(changes)
    return src


def test_validate_source_config_accepts_valid_shape():
    validated = validate_source_config(_source())
    assert validated["name"] == "valley_streamkeepers"


def test_validate_source_config_rejects_unknown_key_by_default():
    with pytest.raises(ConfigError, match="unexpected"):
        validate_source_config(_source(unexpected=True))


def test_validate_source_config_allows_unknown_when_enabled():
    validate_source_config(_source(extra=1), allow_unknown=True)


def test_rejects_malformed_dataset_identifier():
    with pytest.raises(ConfigError, match="SWP-A001"):
        validate_source_config(_source(dataset_id="SWP-A001"))


def test_rejects_rule_with_two_predicate_tests():
    rules = {"rules": [{"when": {"field": "x", "equals": "a", "is_null": True}, "id": "SWP_DTS_A001"}]}
    with pytest.raises(ConfigError):
        validate_source_config(_source(dataset_id=rules))


def test_rejects_unknown_reader_kind():
    with pytest.raises(ConfigError, match="Unknown reader kind"):
        validate_source_config(_source(reader={"kind": "ftp", "path": "x"}))


def test_rejects_pattern_without_capture_group():
    with pytest.raises(ConfigError, match="capture group"):
        validate_source_config(_source(site_uid={"field": "label", "pattern": "[A-Z]+"}))


def test_rejects_site_uid_same_as():
    with pytest.raises(ConfigError):
        validate_source_config(_source(site_uid={"same_as": "site_uid"}))


def test_rejects_utm_zone_out_of_range():
    coords = {"encoding": "utm", "easting": "e", "northing": "n", "zone": 61}
    with pytest.raises(ConfigError, match="zone"):
        validate_source_config(_source(coordinates=coords))


def test_projected_needs_a_crs():
    with pytest.raises(ConfigError, match="epsg"):
        validate_source_config(_source(coordinates={"encoding": "projected", "x": "_x", "y": "_y"}))


def test_validate_sources_config_rejects_duplicate_names():
    with pytest.raises(ConfigError, match="Duplicate source names"):
        validate_sources_config({"sources": [_source(), _source()]})


def test_validate_pipeline_config_checks_worker_bounds():
    validate_pipeline_config(copy.deepcopy(BASE_PIPELINE))

    bad = copy.deepcopy(BASE_PIPELINE)
    bad["run"]["workers"] = 0
    with pytest.raises(ConfigError, match="workers"):
        validate_pipeline_config(bad)


def test_validate_pipeline_config_requires_catalog_key():
    bad = copy.deepcopy(BASE_PIPELINE)
    del bad["catalog"]["key"]
    with pytest.raises(ConfigError, match="catalog"):
        validate_pipeline_config(bad)


def test_rejects_keep_columns_that_collide_with_excluded_catalog_columns():
    with pytest.raises(ConfigError, match="keep_columns collides with excluded catalog columns: comments"):
        validate_source_config(_source(keep_columns=["depth_m", "comments"]), reserved_columns=["comments"])


def test_sources_config_passes_reserved_columns_to_each_source():
    cfg = {"sources": [_source(keep_columns=["comments"])]}
    validate_sources_config(cfg)
    with pytest.raises(ConfigError, match="valley_streamkeepers"):
        validate_sources_config(cfg, reserved_columns=BASE_PIPELINE["catalog"]["exclude_columns"])
