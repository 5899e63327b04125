"""Site registry union and layer assembly."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from sitelayer.common.constants import CANONICAL_FIELDS
from sitelayer.common.deterministic import ordered_columns, stable_sorted
from sitelayer.common.models import JoinResult, SourceResult
from sitelayer.pipeline.catalog import join_catalog


@dataclass
class SiteRegistry:
    """Union of every successful source's records, in source-name order."""

    rows: list[dict] = field(default_factory=list)
    row_sources: list[str] = field(default_factory=list)
    columns: list[str] = field(default_factory=lambda: list(CANONICAL_FIELDS))

    def duplicate_site_uids(self) -> dict[str, list[str]]:
        """``site_uid`` values shared by more than one source. Informational only."""
        sources_by_uid: dict[str, list[str]] = defaultdict(list)
        for row, source in zip(self.rows, self.row_sources):
            names = sources_by_uid[row["site_uid"]]
            if source not in names:
                names.append(source)
        return {uid: sorted(names) for uid, names in sorted(sources_by_uid.items()) if len(names) > 1}


def union_results(results: list[SourceResult]) -> SiteRegistry:
    """Row-wise concatenation; columns missing from one source are ``None`` for its rows."""
    registry = SiteRegistry()
    raw_rows: list[dict] = []
    for result in stable_sorted(results, key=lambda item: item.name):
        if not result.ok:
            continue
        for record in result.records:
            raw_rows.append(record.to_dict())
            registry.row_sources.append(result.name)

    registry.columns = ordered_columns(raw_rows, leading=CANONICAL_FIELDS)
    registry.rows = [{column: row.get(column) for column in registry.columns} for row in raw_rows]
    return registry


def assemble_layer(
    results: list[SourceResult],
    catalog_rows: list[dict],
    catalog_cfg: dict,
) -> tuple[SiteRegistry, JoinResult]:
    registry = union_results(results)
    joined = join_catalog(
        registry.rows,
        catalog_rows,
        key=catalog_cfg["key"],
        exclude_columns=catalog_cfg.get("exclude_columns") or [],
        descriptive_columns=catalog_cfg.get("descriptive_columns"),
        row_sources=registry.row_sources,
    )
    return registry, joined
