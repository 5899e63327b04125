from pathlib import Path

import pytest

from sitelayer.common.config_loader import load_all_configs, resolve_sources
from sitelayer.common.errors import ConfigError
from tests.conftest import PIPELINE_YML, SOURCES_YML


def _write_base(root: Path) -> Path:
    base = root / "base"
    base.mkdir()
    (base / "pipeline.yml").write_text(PIPELINE_YML, encoding="utf-8")
    (base / "sources.yml").write_text(SOURCES_YML, encoding="utf-8")
    return base


def test_load_all_configs_from_repo_config_dir():
    bundle = load_all_configs(Path("config"))

    names = bundle.source_names()
    assert len(names) == len(set(names))
    assert {"bc_compiled_stations", "hakai_kwakshua", "unbc_dery"} <= set(names)
    assert bundle.pipeline["catalog"]["key"] == "dataset_unique_identifier"
    assert "comments" in bundle.pipeline["catalog"]["exclude_columns"]


def test_repo_sources_reuse_shared_anchors():
    bundle = load_all_configs(Path("config"))
    by_name = {src["name"]: src for src in bundle.sources}

    hakai_rules = by_name["hakai_kwakshua"]["dataset_id"]["rules"]
    assert [rule["id"] for rule in hakai_rules][:2] == ["SWP_DTS_A006", "SWP_DTS_A007"]
    assert by_name["unbc_dery"]["coordinates"]["force_negative_longitude"] is True


def test_overlay_merges_sources_by_name(tmp_path: Path):
    base = _write_base(tmp_path)
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "pipeline.yml").write_text("run:\n  workers: 2\n", encoding="utf-8")
    (overlay / "sources.yml").write_text(
        """sources:
  - name: coastal_lab
    coordinates: {zone: 10}
  - name: late_addition
    reader: {kind: csv, path: late.csv}
    site_uid: id
    site_name: id
    dataset_id: SWP_DTS_A004
    coordinates: {encoding: decimal, latitude: lat, longitude: lon}
""",
        encoding="utf-8",
    )

    bundle = load_all_configs(base, overlay_config_dir=overlay)
    by_name = {src["name"]: src for src in bundle.sources}

    assert bundle.pipeline["run"]["workers"] == 2
    assert bundle.pipeline["run"]["source_timeout_seconds"] == 60
    assert by_name["coastal_lab"]["coordinates"]["zone"] == 10
    assert by_name["coastal_lab"]["coordinates"]["encoding"] == "utm"
    assert bundle.source_names()[-1] == "late_addition"


def test_overlay_disables_sources(tmp_path: Path):
    base = _write_base(tmp_path)
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "sources.yml").write_text("disabled: [unlisted_partner]\n", encoding="utf-8")

    bundle = load_all_configs(base, overlay_config_dir=overlay)

    assert "unlisted_partner" not in bundle.source_names()
    assert len(bundle.sources) == 3


def test_load_all_configs_ignores_empty_overlay_file(tmp_path: Path):
    base = _write_base(tmp_path)
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "sources.yml").write_text("", encoding="utf-8")

    bundle = load_all_configs(base, overlay_config_dir=overlay)

    assert len(bundle.sources) == 4


def test_load_all_configs_rejects_non_mapping_overlay(tmp_path: Path):
    base = _write_base(tmp_path)
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "pipeline.yml").write_text("- not\n- a\n- mapping\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_all_configs(base, overlay_config_dir=overlay)


def test_keep_columns_overlapping_catalog_exclusions_fail_at_load(tmp_path: Path):
    base = _write_base(tmp_path)
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "sources.yml").write_text(
        "sources:\n  - name: coastal_lab\n    keep_columns: [comments]\n", encoding="utf-8"
    )

    with pytest.raises(ConfigError, match="source coastal_lab.keep_columns"):
        load_all_configs(base, overlay_config_dir=overlay)


def test_missing_config_file_raises(tmp_path: Path):
    with pytest.raises(ConfigError, match="Missing config file"):
        load_all_configs(tmp_path)


def test_resolve_sources(tmp_path: Path):
    bundle = load_all_configs(_write_base(tmp_path))

    assert len(resolve_sources(bundle)) == 4
    assert [src["name"] for src in resolve_sources(bundle, ["coastal_lab"])] == ["coastal_lab"]
    with pytest.raises(ConfigError, match="no_such_source"):
        resolve_sources(bundle, ["no_such_source"])
