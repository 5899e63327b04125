from pathlib import Path

import pytest

from sitelayer.cli import list_sources, parse_args
from sitelayer.common.config_loader import load_all_configs
from tests.conftest import write_fixture_repo


def test_parse_args_defaults():
    args = parse_args(["build"])
    assert args.command == "build"
    assert args.config_dir == "./config"
    assert args.data_dir == "./data"
    assert args.sources is None
    assert args.workers is None
    assert args.overlay_config_dir is None
    assert args.strict is False


def test_parse_args_collects_repeated_sources():
    args = parse_args(["build", "--source", "coastal_lab", "--source", "unbc_dery", "--workers", "2"])
    assert args.sources == ["coastal_lab", "unbc_dery"]
    assert args.workers == 2


def test_parse_args_rejects_unknown_command():
    with pytest.raises(SystemExit):
        parse_args(["discover"])


def test_list_sources_describes_reader_and_dataset(tmp_path: Path):
    config_dir, _ = write_fixture_repo(tmp_path)
    bundle = load_all_configs(config_dir)

    lines = list_sources(bundle)

    assert lines[0] == "valley_streamkeepers\tcsv\tSWP_DTS_A001"
    assert "northern_nation\ttext_metadata\tSWP_DTS_A003" in lines
    assert list_sources(bundle, ["coastal_lab"]) == ["coastal_lab\tcsv\tSWP_DTS_A002"]
