"""Dataset catalog loading and the site-to-catalog left join."""

from __future__ import annotations

from collections import Counter

from sitelayer.common.constants import CANONICAL_FIELDS, DATASET_ID_KEY
from sitelayer.common.errors import CatalogIntegrityError, CatalogJoinWarning, CatalogReadError, SourceError
from sitelayer.common.models import CatalogEntry, JoinResult
from sitelayer.harvest.readers import ReaderContext, read_rows


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def index_catalog(catalog_rows: list[dict], key: str = DATASET_ID_KEY) -> dict[str, CatalogEntry]:
    """Index catalog rows by dataset identifier; duplicate identifiers are rejected outright."""
    if catalog_rows and not any(key in row for row in catalog_rows):
        raise CatalogReadError(f"Catalog has no {key} column")

    keys = [str(row.get(key) or "").strip() for row in catalog_rows]
    duplicates = sorted(value for value, count in Counter(keys).items() if value and count > 1)
    if duplicates:
        raise CatalogIntegrityError(f"Duplicate catalog keys: {', '.join(duplicates)}")

    index: dict[str, CatalogEntry] = {}
    for dataset_id, row in zip(keys, catalog_rows):
        if not dataset_id:
            continue
        attributes = {column: _blank_to_none(value) for column, value in row.items() if column != key}
        index[dataset_id] = CatalogEntry(dataset_unique_identifier=dataset_id, attributes=attributes)
    return index


def load_catalog(catalog_cfg: dict, ctx: ReaderContext) -> list[dict]:
    try:
        rows = read_rows(catalog_cfg["reader"], ctx)
    except SourceError as exc:
        raise CatalogReadError(f"Cannot read dataset catalog: {exc}") from exc
    if not rows:
        raise CatalogReadError("Dataset catalog is empty")
    return rows


def descriptive_columns_for(
    catalog_rows: list[dict],
    *,
    key: str = DATASET_ID_KEY,
    exclude_columns: list[str] | tuple[str, ...] = (),
    descriptive_columns: list[str] | None = None,
) -> list[str]:
    available: list[str] = []
    for row in catalog_rows:
        for column in row:
            if column not in available:
                available.append(column)

    excluded = set(exclude_columns) | {key} | set(CANONICAL_FIELDS)
    if descriptive_columns is not None:
        missing = [column for column in descriptive_columns if column not in available]
        if missing:
            raise CatalogReadError(f"Catalog lacks descriptive columns: {', '.join(missing)}")
        return [column for column in descriptive_columns if column not in excluded]
    return [column for column in available if column not in excluded]


def join_catalog(
    rows: list[dict],
    catalog_rows: list[dict],
    *,
    key: str = DATASET_ID_KEY,
    exclude_columns: list[str] | tuple[str, ...] = (),
    descriptive_columns: list[str] | None = None,
    row_sources: list[str] | None = None,
) -> JoinResult:
    """Left join site rows onto the catalog.

    Every site row is kept. Rows whose identifier has no catalog entry get
    ``None`` for every descriptive column, and each distinct unmatched
    identifier yields exactly one ``CatalogJoinWarning``.
    """
    index = index_catalog(catalog_rows, key=key)
    columns = descriptive_columns_for(
        catalog_rows,
        key=key,
        exclude_columns=exclude_columns,
        descriptive_columns=descriptive_columns,
    )

    joined: list[dict] = []
    unmatched_counts: Counter[str] = Counter()
    unmatched_sources: dict[str, list[str]] = {}
    for position, row in enumerate(rows):
        dataset_id = row.get(DATASET_ID_KEY)
        entry = index.get(dataset_id)
        out = dict(row)
        for column in columns:
            out[column] = entry.attributes.get(column) if entry is not None else None
        joined.append(out)

        if entry is None:
            unmatched_counts[dataset_id] += 1
            if row_sources is not None:
                names = unmatched_sources.setdefault(dataset_id, [])
                if row_sources[position] not in names:
                    names.append(row_sources[position])

    warnings = [
        CatalogJoinWarning(
            dataset_id,
            row_count=unmatched_counts[dataset_id],
            sources=sorted(unmatched_sources.get(dataset_id, [])),
        )
        for dataset_id in sorted(unmatched_counts, key=str)
    ]
    return JoinResult(rows=joined, descriptive_columns=columns, warnings=warnings)
