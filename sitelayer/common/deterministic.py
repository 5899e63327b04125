"""Helpers for deterministic ordering and de-duplication."""

from __future__ import annotations

from typing import Callable, Hashable, Iterable, TypeVar

T = TypeVar("T")


def stable_sorted(items: Iterable[T], key: Callable[[T], object]) -> list[T]:
    return sorted(items, key=key)


def first_by_key(items: Iterable[T], key: Callable[[T], Hashable]) -> list[T]:
    """Keep the first item seen for each key, preserving input order.

    Idempotent: applying it to its own output returns the same list.
    """
    seen: set[Hashable] = set()
    out: list[T] = []
    for item in items:
        marker = key(item)
        if marker in seen:
            continue
        seen.add(marker)
        out.append(item)
    return out


def ordered_columns(rows: Iterable[dict], leading: Iterable[str] = ()) -> list[str]:
    """Union of row keys, ``leading`` first, then in first-seen order."""
    columns = list(leading)
    known = set(columns)
    for row in rows:
        for column in row:
            if column not in known:
                known.add(column)
                columns.append(column)
    return columns
