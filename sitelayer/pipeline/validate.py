"""Layer validation and quality report generation."""

from __future__ import annotations

from collections import Counter
from pathlib import Path

from sitelayer.common.constants import DATASET_ID_KEY
from sitelayer.common.errors import ContractError
from sitelayer.common.fs import write_json
from sitelayer.common.ids import is_dataset_identifier


def _compute_fill_rates(header: list[str], rows: list[dict]) -> list[dict]:
    total = len(rows)
    stats = []
    for column in header:
        filled = sum(1 for row in rows if row.get(column, "") not in ("", None))
        null = total - filled
        fill_percent = 0.0 if total == 0 else round((filled / total) * 100, 2)
        stats.append({"column": column, "filled": filled, "null": null, "fill_percent": fill_percent})
    return stats


def validate_layer(
    columns: list[str],
    rows: list[dict],
    *,
    row_sources: list[str],
    excluded_columns: list[str] | tuple[str, ...] = (),
) -> dict:
    """Check the joined layer before export.

    Broken output contracts raise ``ContractError``; data-quality findings are
    returned as warnings.
    """
    errors: list[str] = []
    warnings: list[str] = []

    leaked = sorted(set(excluded_columns) & set(columns))
    if leaked:
        errors.append(f"HOUSEKEEPING_COLUMNS_PRESENT:{','.join(leaked)}")

    bad_coordinates = 0
    for row in rows:
        lat, lon = row.get("latitude"), row.get("longitude")
        if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
            bad_coordinates += 1
        elif not (-90 <= lat <= 90 and -180 <= lon <= 180):
            bad_coordinates += 1
    if bad_coordinates:
        errors.append("INVALID_COORDINATES_PRESENT")

    if errors:
        raise ContractError(";".join(errors))

    per_source = Counter((source, row["site_uid"]) for source, row in zip(row_sources, rows))
    duplicates_within_source = sum(count - 1 for count in per_source.values() if count > 1)
    if duplicates_within_source:
        warnings.append("DUPLICATE_SITE_UID_WITHIN_SOURCE")

    malformed_ids = sorted({str(row.get(DATASET_ID_KEY)) for row in rows if not is_dataset_identifier(row.get(DATASET_ID_KEY))})
    if malformed_ids:
        warnings.append("MALFORMED_DATASET_IDENTIFIERS")

    return {
        "counts": {
            "sites": len(rows),
            "sources": len(set(row_sources)),
            "datasets": len({row.get(DATASET_ID_KEY) for row in rows}),
        },
        "sites_by_dataset": dict(sorted(Counter(str(row.get(DATASET_ID_KEY)) for row in rows).items())),
        "quality": {
            "duplicate_site_uid_within_source": duplicates_within_source,
            "malformed_dataset_identifiers": malformed_ids,
        },
        "fill": _compute_fill_rates(columns, rows),
        "warnings": warnings,
        "errors": errors,
    }


def write_layer_report(data_dir: Path, run_id: str, run_date: str, report: dict) -> Path:
    report_path = data_dir / "out" / "reports" / "layer_report.json"
    write_json(report_path, {"run_id": run_id, "run_date": run_date, **report})
    return report_path
