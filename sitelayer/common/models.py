"""Data models used across the pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from sitelayer.common.constants import DATASET_ID_KEY
from sitelayer.common.errors import ContractError, CatalogJoinWarning


@dataclass(frozen=True)
class CanonicalSiteRecord:
    site_uid: str
    site_name: str
    latitude: float
    longitude: float
    dataset_unique_identifier: str
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        for axis in ("latitude", "longitude"):
            value = getattr(self, axis)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
                raise ContractError(f"{axis} must be numeric for site {self.site_uid!r}, got {value!r}")
        if not -90 <= self.latitude <= 90 or not -180 <= self.longitude <= 180:
            raise ContractError(
                f"Coordinates out of range for site {self.site_uid!r}: {self.latitude}, {self.longitude}"
            )
        if not self.dataset_unique_identifier:
            raise ContractError(f"Missing dataset identifier for site {self.site_uid!r}")

    def to_dict(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "site_uid": self.site_uid,
            "site_name": self.site_name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            DATASET_ID_KEY: self.dataset_unique_identifier,
        }
        for key, value in self.extra.items():
            row.setdefault(key, value)
        return row


@dataclass(frozen=True)
class CatalogEntry:
    dataset_unique_identifier: str
    attributes: dict[str, Any]


@dataclass
class SourceResult:
    """Outcome of running one source: its records or its failure."""

    name: str
    records: list[CanonicalSiteRecord] = field(default_factory=list)
    rows_in: int = 0
    dropped: dict[str, int] = field(default_factory=dict)
    issues: list[str] = field(default_factory=list)
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int | None = None

    @property
    def ok(self) -> bool:
        return self.error_code is None

    @property
    def rows_out(self) -> int:
        return len(self.records)

    def drop(self, reason: str, count: int = 1) -> None:
        self.dropped[reason] = self.dropped.get(reason, 0) + count

    def note(self, message: str, limit: int = 20) -> None:
        if len(self.issues) < limit:
            self.issues.append(message)

    def to_summary(self) -> dict[str, Any]:
        return {
            "status": "ok" if self.ok else "failed",
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "dropped": dict(sorted(self.dropped.items())),
            "issues": list(self.issues),
            "error_code": self.error_code,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
        }


@dataclass
class JoinResult:
    rows: list[dict[str, Any]]
    descriptive_columns: list[str]
    warnings: list[CatalogJoinWarning] = field(default_factory=list)

    @property
    def unmatched_ids(self) -> list[str]:
        return [warning.dataset_id for warning in self.warnings]
