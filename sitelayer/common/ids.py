"""Run and dataset identifier helpers."""

from __future__ import annotations

import re
from datetime import datetime, timezone

DATASET_ID_RE = re.compile(r"^SWP_DTS_A\d{3}$")


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime("run-%Y%m%dT%H%M%S%fZ")


def is_dataset_identifier(value: object) -> bool:
    return isinstance(value, str) and bool(DATASET_ID_RE.match(value))
