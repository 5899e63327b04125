from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from sitelayer.common.errors import SourceReadError
from sitelayer.harvest.readers import ReaderContext
from sitelayer.harvest.runner import run_source, run_sources


def _source(name: str) -> dict:
    return {
        "name": name,
        "reader": {"kind": "csv", "path": f"{name}.csv"},
        "site_uid": "site",
        "site_name": "site",
        "dataset_id": "SWP_DTS_A001",
        "coordinates": {"encoding": "decimal", "latitude": "lat", "longitude": "lon"},
    }


def _ctx(tmp_path: Path) -> ReaderContext:
    return ReaderContext(data_dir=tmp_path, client=None)


def _fake_reader(reader_cfg: dict, _ctx: ReaderContext) -> list[dict]:
    stem = reader_cfg["path"].removesuffix(".csv")
    if stem == "source_03":
        raise SourceReadError("portal unreachable")
    if stem == "source_07":
        raise KeyError("surprise")
    return [{"site": f"{stem}-1", "lat": "49.5", "lon": "-120.5"}]


@pytest.mark.integration
def test_one_failing_source_does_not_stop_the_rest(tmp_path: Path):
    sources = [_source(f"source_{idx:02d}") for idx in range(10)]

    results = run_sources(sources, _ctx(tmp_path), workers=4, timeout_seconds=30, reader=_fake_reader)

    assert [result.name for result in results] == sorted(src["name"] for src in sources)
    failed = {result.name: result for result in results if not result.ok}
    assert set(failed) == {"source_03", "source_07"}
    assert failed["source_03"].error_code == "SOURCE_READ_ERROR"
    assert failed["source_03"].error_message == "portal unreachable"
    assert failed["source_07"].error_code == "UNEXPECTED_ERROR"
    assert sum(result.rows_out for result in results if result.ok) == 8


@pytest.mark.integration
def test_schema_mismatch_fails_only_that_source(tmp_path: Path):
    def reader(reader_cfg, _ctx):
        return [{"site": "A", "latitude": "49", "longitude": "-120"}]

    result = run_source(_source("renamed_columns"), _ctx(tmp_path), reader=reader)

    assert result.error_code == "SCHEMA_MISMATCH"
    assert "lat" in result.error_message
    assert result.duration_ms is not None


@pytest.mark.integration
def test_overdue_source_becomes_timeout_result(tmp_path: Path):
    release = threading.Event()

    def reader(reader_cfg, _ctx):
        if reader_cfg["path"] == "slow.csv":
            release.wait(5)
        return [{"site": "A", "lat": "49.5", "lon": "-120.5"}]

    try:
        results = run_sources(
            [_source("fast"), _source("slow")],
            _ctx(tmp_path),
            workers=2,
            timeout_seconds=0.5,
            reader=reader,
        )
    finally:
        release.set()

    by_name = {result.name: result for result in results}
    assert by_name["fast"].ok
    assert by_name["slow"].error_code == "SOURCE_TIMEOUT"


@pytest.mark.integration
def test_timeout_is_counted_per_source_not_per_run(tmp_path: Path):
    def reader(reader_cfg, _ctx):
        time.sleep(0.3)
        return [{"site": "A", "lat": "49.5", "lon": "-120.5"}]

    sources = [_source(f"s{idx}") for idx in range(4)]

    # Together the sources take well over the budget; each one fits inside it.
    results = run_sources(sources, _ctx(tmp_path), workers=1, timeout_seconds=0.5, reader=reader)

    assert [(result.name, result.error_code) for result in results] == [
        ("s0", None),
        ("s1", None),
        ("s2", None),
        ("s3", None),
    ]


@pytest.mark.integration
def test_queued_source_behind_an_overdue_one_still_runs(tmp_path: Path):
    def reader(reader_cfg, _ctx):
        if reader_cfg["path"] == "a_slow.csv":
            time.sleep(1.0)
        return [{"site": "A", "lat": "49.5", "lon": "-120.5"}]

    results = run_sources(
        [_source("a_slow"), _source("b_queued")],
        _ctx(tmp_path),
        workers=1,
        timeout_seconds=0.5,
        reader=reader,
    )

    by_name = {result.name: result for result in results}
    assert by_name["a_slow"].error_code == "SOURCE_TIMEOUT"
    assert by_name["b_queued"].ok
    assert by_name["b_queued"].rows_out == 1


@pytest.mark.integration
def test_empty_source_list_returns_no_results(tmp_path: Path):
    assert run_sources([], _ctx(tmp_path)) == []
