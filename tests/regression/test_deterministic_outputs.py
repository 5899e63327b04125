from pathlib import Path

import pytest

from sitelayer.cli import parse_args, run_command
from sitelayer.common.constants import EXIT_PARTIAL
from tests.conftest import write_fixture_repo


def _run_once(root: Path, run_id: str, workers: str) -> Path:
    config_dir, data_dir = write_fixture_repo(root)
    args = parse_args(
        [
            "build",
            "--config-dir",
            str(config_dir),
            "--data-dir",
            str(data_dir),
            "--run-date",
            "2026-02-17",
            "--run-id",
            run_id,
            "--workers",
            workers,
        ]
    )
    assert run_command(args) == EXIT_PARTIAL
    return data_dir / "out"


@pytest.mark.regression
def test_layer_outputs_are_byte_stable_for_same_inputs(tmp_path: Path):
    first = _run_once(tmp_path / "first", "run-a", "1")
    second = _run_once(tmp_path / "second", "run-b", "4")

    for filename in ("sites.geojson", "sites.csv"):
        assert (first / filename).read_bytes() == (second / filename).read_bytes()


@pytest.mark.regression
def test_layer_outputs_are_unchanged_by_a_rerun_in_place(tmp_path: Path):
    out_dir = _run_once(tmp_path, "run-a", "4")
    before = (out_dir / "sites.csv").read_bytes()

    _run_once(tmp_path, "run-b", "4")

    assert (out_dir / "sites.csv").read_bytes() == before
