"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from permitbot.common.errors import ConfigError
from permitbot.common.fs import read_yaml
from permitbot.common.schema import validate_settings_config, validate_sources_config


@dataclass(frozen=True)
class ConfigBundle:
    settings: dict
    sources: dict[str, dict]

    def enabled_sources(self) -> dict[str, dict]:
        return {origin: cfg for origin, cfg in self.sources.items() if cfg.get("enabled", True)}


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


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if not isinstance(base, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay file must contain a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def overlay_for(name: str) -> Path | None:
        if overlay_config_dir is None:
            return None
        return overlay_config_dir / name

    settings = validate_settings_config(
        _load_yaml_with_overlay(config_dir / "settings.yml", overlay_for("settings.yml"))
    )
    sources = validate_sources_config(
        _load_yaml_with_overlay(config_dir / "sources.yml", overlay_for("sources.yml")),
        allow_unknown=allow_unknown,
    )
    return ConfigBundle(settings=settings, sources=sources["sources"])


def resolve_database_url(settings: dict, data_dir: Path, override: str | None = None) -> str:
    if override:
        return override
    configured = settings["database"].get("url")
    if configured:
        return configured
    return f"sqlite:///{data_dir / 'permits.db'}"
