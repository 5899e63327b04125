"""Source orchestration with fail-soft semantics.

Each source is one job: read raw rows, then adapt them. Jobs share no mutable
state beyond their start stamps and run on a bounded thread pool. A failing or
overdue source becomes a failed ``SourceResult``; it never aborts the run.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable

from sitelayer.common.constants import DEFAULT_SOURCE_TIMEOUT_SECONDS, DEFAULT_WORKERS
from sitelayer.common.deterministic import stable_sorted
from sitelayer.common.errors import SourceError, SourceTimeoutError
from sitelayer.common.logging import log_event
from sitelayer.common.models import SourceResult
from sitelayer.common.time_utils import elapsed_ms
from sitelayer.harvest.readers import ReaderContext, read_rows
from sitelayer.pipeline.adapter import adapt_rows

RowReader = Callable[[dict, ReaderContext], list[dict]]

# Upper bound on one wait while queued jobs have not started yet.
_POLL_SECONDS = 0.5


def run_source(
    source_cfg: dict,
    ctx: ReaderContext,
    *,
    reader: RowReader = read_rows,
    started_at: dict[str, float] | None = None,
) -> SourceResult:
    name = source_cfg["name"]
    started = time.monotonic()
    if started_at is not None:
        started_at[name] = started
    try:
        rows = reader(source_cfg["reader"], ctx)
        result = adapt_rows(source_cfg, rows)
    except SourceError as exc:
        result = SourceResult(name=name, error_code=exc.error_code, error_message=str(exc))
    except Exception as exc:
        result = SourceResult(name=name, error_code="UNEXPECTED_ERROR", error_message=f"{type(exc).__name__}: {exc}")
    result.duration_ms = elapsed_ms(started)
    return result


def _log_result(logger: logging.Logger | None, run_id: str | None, result: SourceResult) -> None:
    if logger is None:
        return
    common = {
        "run_id": run_id,
        "stage": "harvest",
        "source": result.name,
        "duration_ms": result.duration_ms,
        "rows_in": result.rows_in,
        "rows_out": result.rows_out,
    }
    if not result.ok:
        log_event(
            logger,
            f"source {result.name} failed: {result.error_message}",
            level=logging.WARNING,
            event="SOURCE_FAIL",
            status="error",
            error_code=result.error_code,
            **common,
        )
        return

    if result.rows_out == 0:
        log_event(logger, f"source {result.name} yielded no sites", event="SOURCE_EMPTY", status="ok", **common)
    else:
        log_event(logger, f"source {result.name} ok", event="SOURCE_OK", status="ok", **common)
    if result.dropped:
        log_event(
            logger,
            f"rows dropped for source {result.name}",
            level=logging.DEBUG,
            event="ROW_DROPPED",
            status="ok",
            details={"dropped": dict(sorted(result.dropped.items())), "issues": result.issues},
            **common,
        )


def _timeout_result(name: str, timeout_seconds: float) -> SourceResult:
    exc = SourceTimeoutError(f"Source {name} exceeded {timeout_seconds}s", source=name)
    return SourceResult(
        name=name,
        error_code=exc.error_code,
        error_message=str(exc),
        duration_ms=int(timeout_seconds * 1000),
    )


def run_sources(
    sources: list[dict],
    ctx: ReaderContext,
    *,
    workers: int = DEFAULT_WORKERS,
    timeout_seconds: float = DEFAULT_SOURCE_TIMEOUT_SECONDS,
    reader: RowReader = read_rows,
    logger: logging.Logger | None = None,
    run_id: str | None = None,
) -> list[SourceResult]:
    """Run every source concurrently and return results ordered by source name.

    ``timeout_seconds`` bounds each source on its own, counted from the moment
    its job starts on a worker. Jobs still queued are never timed out.
    """
    results: dict[str, SourceResult] = {}
    if not sources:
        return []

    started_at: dict[str, float] = {}
    pool = ThreadPoolExecutor(max_workers=max(1, min(workers, len(sources))), thread_name_prefix="source")
    futures: dict[Future, str] = {
        pool.submit(run_source, cfg, ctx, reader=reader, started_at=started_at): cfg["name"] for cfg in sources
    }
    pending = set(futures)
    try:
        while pending:
            now = time.monotonic()
            remaining = [
                max(0.0, started_at[futures[future]] + timeout_seconds - now)
                for future in pending
                if futures[future] in started_at
            ]
            done, pending = wait(pending, timeout=min([*remaining, _POLL_SECONDS]), return_when=FIRST_COMPLETED)
            for future in done:
                results[futures[future]] = future.result()

            now = time.monotonic()
            for future in list(pending):
                name = futures[future]
                started = started_at.get(name)
                if started is not None and now - started >= timeout_seconds:
                    pending.discard(future)
                    results[name] = _timeout_result(name, timeout_seconds)
    finally:
        # Overdue reads keep their thread until the HTTP read timeout fires; do not block on them.
        pool.shutdown(wait=False, cancel_futures=True)

    ordered = stable_sorted(results.values(), key=lambda result: result.name)
    for result in ordered:
        _log_result(logger, run_id, result)
    return ordered
