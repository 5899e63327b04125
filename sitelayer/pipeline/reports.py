"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from sitelayer.common.errors import CatalogJoinWarning
from sitelayer.common.fs import write_json
from sitelayer.common.models import SourceResult


def run_status(results: list[SourceResult], warnings: list[CatalogJoinWarning]) -> str:
    if any(not result.ok for result in results) or warnings:
        return "partial"
    return "success"


def build_run_summary(
    *,
    run_id: str,
    run_date: str,
    results: list[SourceResult],
    warnings: list[CatalogJoinWarning],
    duplicate_site_uids: dict[str, list[str]],
    site_count: int,
    outputs: dict[str, Path] | None = None,
) -> dict:
    """One consolidated diagnostic: failed sources and unmatched identifiers together."""
    failed = [result for result in results if not result.ok]
    totals = {
        "sources_configured": len(results),
        "sources_ok": len(results) - len(failed),
        "sources_failed": len(failed),
        "sources_empty": sum(1 for result in results if result.ok and result.rows_out == 0),
        "rows_in": sum(result.rows_in for result in results),
        "sites": site_count,
        "unmatched_dataset_identifiers": len(warnings),
    }
    return {
        "run_id": run_id,
        "run_date": run_date,
        "status": run_status(results, warnings),
        "totals": totals,
        "failed_sources": [
            {"source": result.name, "error_code": result.error_code, "error_message": result.error_message}
            for result in failed
        ],
        "unmatched_dataset_identifiers": [
            {"dataset_unique_identifier": warning.dataset_id, "rows": warning.row_count, "sources": warning.sources}
            for warning in warnings
        ],
        "duplicate_site_uids_across_sources": duplicate_site_uids,
        "sources": {result.name: result.to_summary() for result in results},
        "outputs": {kind: str(path) for kind, path in sorted((outputs or {}).items())},
    }


def write_run_summary(data_dir: Path, summary: dict) -> Path:
    summary_path = data_dir / "out" / "reports" / "run_summary.json"
    write_json(summary_path, summary)
    return summary_path
