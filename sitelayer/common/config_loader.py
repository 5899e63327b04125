"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sitelayer.common.errors import ConfigError
from sitelayer.common.fs import read_yaml
from sitelayer.common.schema import validate_pipeline_config, validate_sources_config

PIPELINE_FILENAME = "pipeline.yml"
SOURCES_FILENAME = "sources.yml"


@dataclass(frozen=True)
class ConfigBundle:
    pipeline: dict
    sources: list[dict]

    def source_names(self) -> list[str]:
        return [src["name"] for src in self.sources]


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _read_mapping(path: Path) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    payload = read_yaml(path)
    if not isinstance(payload, dict):
        raise ConfigError(f"Config file must hold a mapping: {path}")
    return payload


def _read_overlay(overlay_path: Path | None) -> dict | None:
    if overlay_path is None or not overlay_path.exists():
        return None
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return None
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must hold a mapping: {overlay_path}")
    return overlay


def _merge_sources(base: dict, overlay: dict) -> dict:
    """Overlay source entries merge by name; ``disabled`` names are removed."""
    by_name = {src["name"]: src for src in base.get("sources", []) if isinstance(src, dict) and "name" in src}
    order = list(by_name)
    for src in overlay.get("sources") or []:
        if not isinstance(src, dict) or "name" not in src:
            raise ConfigError("Overlay source entries must be mappings with a name")
        name = src["name"]
        if name in by_name:
            by_name[name] = _deep_merge(by_name[name], src)
        else:
            by_name[name] = src
            order.append(name)

    disabled = set(base.get("disabled") or []) | set(overlay.get("disabled") or [])
    return {"sources": [by_name[name] for name in order if name not in disabled]}


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def overlay_for(filename: str) -> Path | None:
        return (overlay_config_dir / filename) if overlay_config_dir is not None else None

    pipeline = _read_mapping(config_dir / PIPELINE_FILENAME)
    pipeline_overlay = _read_overlay(overlay_for(PIPELINE_FILENAME))
    if pipeline_overlay is not None:
        pipeline = _deep_merge(pipeline, pipeline_overlay)

    sources_cfg = _read_mapping(config_dir / SOURCES_FILENAME)
    sources_overlay = _read_overlay(overlay_for(SOURCES_FILENAME))
    sources_cfg = _merge_sources(sources_cfg, sources_overlay or {})

    pipeline = validate_pipeline_config(pipeline, allow_unknown=allow_unknown)
    sources = validate_sources_config(
        sources_cfg,
        allow_unknown=allow_unknown,
        reserved_columns=pipeline["catalog"]["exclude_columns"],
    )
    return ConfigBundle(pipeline=pipeline, sources=sources)


def resolve_sources(bundle: ConfigBundle, names: list[str] | None = None) -> list[dict]:
    enabled = [src for src in bundle.sources if src.get("enabled", True)]
    if not names:
        return enabled
    known = set(bundle.source_names())
    unknown = [name for name in names if name not in known]
    if unknown:
        raise ConfigError(f"Unknown source names: {', '.join(sorted(unknown))}")
    wanted = set(names)
    return [src for src in bundle.sources if src["name"] in wanted]
