"""Filesystem helpers."""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path
from typing import Iterable, Mapping


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def read_yaml(path: Path):
    import yaml

    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def write_json(path: Path, payload) -> None:
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2, sort_keys=True)
        f.write("\n")


def write_csv(path: Path, headers: list[str], rows: Iterable[Mapping[str, object]]) -> None:
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=headers, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow(row)


def parse_csv_text(text: str) -> list[dict]:
    # Exports from spreadsheet tools often carry a BOM on the first header.
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    return [dict(row) for row in reader]


def read_csv_rows(path: Path, encoding: str = "utf-8") -> list[dict]:
    with path.open("r", encoding=encoding, newline="") as f:
        return parse_csv_text(f.read())


def read_text_lines(path: Path, encoding: str = "utf-8") -> list[str]:
    with path.open("r", encoding=encoding) as f:
        return [line.rstrip("\r\n") for line in f]
