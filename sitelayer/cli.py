"""CLI entrypoint for the freshwater monitoring site layer pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from sitelayer.common.config_loader import ConfigBundle, load_all_configs, resolve_sources
from sitelayer.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, MAX_WORKERS
from sitelayer.common.errors import ConfigError, PipelineError, StageError
from sitelayer.common.http import HttpClient, RetryConfig, TimeoutConfig
from sitelayer.common.ids import generate_run_id
from sitelayer.common.logging import build_logger, close_logger, log_event
from sitelayer.common.time_utils import parse_run_date
from sitelayer.harvest.readers import build_reader_context
from sitelayer.harvest.runner import run_sources
from sitelayer.pipeline.assemble import assemble_layer
from sitelayer.pipeline.catalog import index_catalog, load_catalog
from sitelayer.pipeline.export import export_layer
from sitelayer.pipeline.reports import build_run_summary, write_run_summary
from sitelayer.pipeline.validate import validate_layer, write_layer_report


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--run-date", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--source", action="append", default=None, dest="sources")
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def _load_bundle(args: argparse.Namespace) -> ConfigBundle:
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    return load_all_configs(Path(args.config_dir), overlay_config_dir=overlay_config_dir)


def _http_client(pipeline_cfg: dict) -> HttpClient:
    http_cfg = pipeline_cfg["http"]
    return HttpClient(
        timeout=TimeoutConfig(connect=float(http_cfg["connect_timeout"]), read=float(http_cfg["read_timeout"])),
        retry=RetryConfig(max_attempts=int(http_cfg["max_attempts"])),
    )


def _workers(args: argparse.Namespace, pipeline_cfg: dict) -> int:
    workers = args.workers if args.workers is not None else pipeline_cfg["run"]["workers"]
    if not 1 <= workers <= MAX_WORKERS:
        raise ConfigError(f"--workers must be in 1..{MAX_WORKERS}")
    return workers


def _describe_dataset_ids(source_cfg: dict) -> str:
    spec = source_cfg["dataset_id"]
    if isinstance(spec, str):
        return spec
    ids = [rule["id"] for rule in spec["rules"]]
    if spec.get("default"):
        ids.append(spec["default"])
    return ",".join(dict.fromkeys(ids))


def list_sources(bundle: ConfigBundle, names: list[str] | None = None) -> list[str]:
    lines = []
    for src in resolve_sources(bundle, names):
        lines.append(f"{src['name']}\t{src['reader']['kind']}\t{_describe_dataset_ids(src)}")
    return lines


def run_build(
    args: argparse.Namespace,
    bundle: ConfigBundle,
    logger: logging.Logger,
    data_dir: Path,
    run_id: str,
    run_date: str,
) -> int:
    pipeline_cfg = bundle.pipeline
    catalog_cfg = pipeline_cfg["catalog"]
    sources = resolve_sources(bundle, args.sources)
    workers = _workers(args, pipeline_cfg)

    with _http_client(pipeline_cfg) as client:
        ctx = build_reader_context(pipeline_cfg, data_dir, client)

        # Without a catalog there is nothing to join against; fail before touching any source.
        catalog_rows = load_catalog(catalog_cfg, ctx)
        catalog_index = index_catalog(catalog_rows, key=catalog_cfg["key"])
        log_event(
            logger,
            "catalog loaded",
            run_id=run_id,
            stage="catalog",
            event="CATALOG_LOADED",
            status="ok",
            rows_in=len(catalog_rows),
            rows_out=len(catalog_index),
        )

        results = run_sources(
            sources,
            ctx,
            workers=workers,
            timeout_seconds=float(pipeline_cfg["run"]["source_timeout_seconds"]),
            logger=logger,
            run_id=run_id,
        )

    registry, joined = assemble_layer(results, catalog_rows, catalog_cfg)
    for warning in joined.warnings:
        log_event(
            logger,
            str(warning),
            level=logging.WARNING,
            run_id=run_id,
            stage="join",
            event="JOIN_UNMATCHED",
            status="warning",
            rows_in=warning.row_count,
            details={"dataset_unique_identifier": warning.dataset_id, "sources": warning.sources},
        )

    columns = [*registry.columns, *joined.descriptive_columns]
    layer_report = validate_layer(
        columns,
        joined.rows,
        row_sources=registry.row_sources,
        excluded_columns=catalog_cfg.get("exclude_columns") or [],
    )
    write_layer_report(data_dir, run_id, run_date, layer_report)

    outputs = export_layer(pipeline_cfg["output"], data_dir, columns, joined.rows)
    for kind, path in sorted(outputs.items()):
        log_event(
            logger,
            f"{kind} written to {path}",
            run_id=run_id,
            stage="export",
            event="EXPORT_WRITTEN",
            status="ok",
            rows_out=len(joined.rows),
        )

    summary = build_run_summary(
        run_id=run_id,
        run_date=run_date,
        results=results,
        warnings=joined.warnings,
        duplicate_site_uids=registry.duplicate_site_uids(),
        site_count=len(joined.rows),
        outputs=outputs,
    )
    write_run_summary(data_dir, summary)
    log_event(
        logger,
        "run summary",
        run_id=run_id,
        stage="report",
        event="RUN_SUMMARY",
        status=summary["status"],
        rows_out=len(joined.rows),
        details={
            "failed_sources": [item["source"] for item in summary["failed_sources"]],
            "unmatched_dataset_identifiers": joined.unmatched_ids,
        },
    )

    failed = [result.name for result in results if not result.ok]
    if failed and args.strict:
        raise StageError(f"Sources failed in strict mode: {', '.join(failed)}")
    if summary["status"] == "partial":
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    run_date = parse_run_date(args.run_date)
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    log_event(logger, "run start", run_id=run_id, stage=args.command, event="RUN_START", status="ok")
    try:
        bundle = _load_bundle(args)
        log_event(
            logger,
            f"config loaded with {len(bundle.sources)} sources",
            run_id=run_id,
            stage="config",
            event="CONFIG_LOADED",
            status="ok",
        )

        if args.command == "check-config":
            exit_code = EXIT_SUCCESS
        elif args.command == "list-sources":
            for line in list_sources(bundle, args.sources):
                print(line)
            exit_code = EXIT_SUCCESS
        elif args.command == "build":
            exit_code = run_build(args, bundle, logger, data_dir, run_id, run_date)
        else:
            raise ValueError(f"Unknown command: {args.command}")
    except PipelineError as exc:
        log_event(
            logger,
            str(exc),
            level=logging.ERROR,
            run_id=run_id,
            stage=args.command,
            event="RUN_END",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL
    else:
        log_event(logger, "run end", run_id=run_id, stage=args.command, event="RUN_END", status="ok")
        return exit_code
    finally:
        close_logger(logger)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
