"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from permitbot.common.constants import ADAPTER_FAMILY_NAMES
from permitbot.common.errors import ConfigError

CANONICAL_FIELDS = {
    "id",
    "location_text",
    "category",
    "value_estimate",
    "responsible_party",
    "event_date",
    "lifecycle_status",
    "area_key",
    "notes",
}


def _assert_mapping(obj: object, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive_number(value: object, ctx: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive number")


def _validate_candidates(candidates: object, ctx: str) -> None:
    if not isinstance(candidates, list):
        raise ConfigError(f"{ctx} must be a list of field names")
    for candidate in candidates:
        if isinstance(candidate, str):
            continue
        if isinstance(candidate, list) and candidate and all(isinstance(part, str) for part in candidate):
            continue
        raise ConfigError(f"{ctx} entries must be field names or lists of field names")


def validate_source_config(origin: str, cfg: dict, *, allow_unknown: bool = False) -> dict:
    ctx = f"sources.{origin}"
    _assert_mapping(cfg, ctx)
    required = {"family", "endpoint", "id_prefix", "fields"}
    known = required | {"enabled", "order", "row_cap", "timeout_seconds", "defaults", "where", "table", "columns"}
    _assert_required_keys(cfg, required, ctx)
    _assert_no_unknown_keys(cfg, known, ctx, allow_unknown)

    if cfg["family"] not in ADAPTER_FAMILY_NAMES:
        raise ConfigError(f"{ctx}.family must be one of {', '.join(ADAPTER_FAMILY_NAMES)}")
    if not cfg["id_prefix"]:
        raise ConfigError(f"{ctx}.id_prefix must not be empty")

    fields = _assert_mapping(cfg["fields"], f"{ctx}.fields")
    _assert_required_keys(fields, {"location_text"}, f"{ctx}.fields")
    _assert_no_unknown_keys(fields, CANONICAL_FIELDS, f"{ctx}.fields", allow_unknown=False)
    for name, candidates in fields.items():
        _validate_candidates(candidates or [], f"{ctx}.fields.{name}")

    if "defaults" in cfg:
        defaults = _assert_mapping(cfg["defaults"], f"{ctx}.defaults")
        _assert_no_unknown_keys(defaults, CANONICAL_FIELDS, f"{ctx}.defaults", allow_unknown=False)
    if "row_cap" in cfg:
        _assert_positive_number(cfg["row_cap"], f"{ctx}.row_cap")
    if "timeout_seconds" in cfg:
        _assert_positive_number(cfg["timeout_seconds"], f"{ctx}.timeout_seconds")

    if cfg["family"] == "carto":
        _assert_required_keys(cfg, {"table", "columns"}, ctx)
        if not isinstance(cfg["columns"], list) or not cfg["columns"]:
            raise ConfigError(f"{ctx}.columns must be a non-empty list")

    return cfg


def validate_sources_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "sources config")
    _assert_required_keys(cfg, {"sources"}, "sources config")
    sources = _assert_mapping(cfg["sources"], "sources")
    if not sources:
        raise ConfigError("sources must define at least one origin")

    prefixes: list[str] = []
    for origin, source_cfg in sources.items():
        validate_source_config(origin, source_cfg, allow_unknown=allow_unknown)
        prefixes.append(source_cfg["id_prefix"])

    dupes = {prefix for prefix in prefixes if prefixes.count(prefix) > 1}
    if dupes:
        raise ConfigError(f"Duplicate source id prefixes: {', '.join(sorted(dupes))}")

    return cfg


def validate_settings_config(cfg: dict) -> dict:
    _assert_mapping(cfg, "settings")
    _assert_required_keys(cfg, {"database", "http", "records", "query", "enrichment", "schedule"}, "settings")

    _assert_required_keys(cfg["http"], {"connect_timeout_seconds", "max_attempts"}, "http")
    _assert_positive_number(cfg["http"]["max_attempts"], "http.max_attempts")

    _assert_required_keys(cfg["records"], {"notes_max_length"}, "records")
    _assert_positive_number(cfg["records"]["notes_max_length"], "records.notes_max_length")

    query = cfg["query"]
    _assert_required_keys(query, {"default_limit", "max_limit"}, "query")
    _assert_positive_number(query["default_limit"], "query.default_limit")
    _assert_positive_number(query["max_limit"], "query.max_limit")
    if query["default_limit"] > query["max_limit"]:
        raise ConfigError("query.default_limit must not exceed query.max_limit")

    enrichment = cfg["enrichment"]
    _assert_required_keys(
        enrichment,
        {"endpoint", "geography", "indicators", "batch_size", "batch_delay_seconds", "timeout_seconds"},
        "enrichment",
    )
    _assert_required_keys(
        enrichment["indicators"],
        {"poverty_numerator", "poverty_denominator", "median_build_year"},
        "enrichment.indicators",
    )
    _assert_positive_number(enrichment["batch_size"], "enrichment.batch_size")
    if enrichment["batch_delay_seconds"] < 0:
        raise ConfigError("enrichment.batch_delay_seconds must not be negative")

    _assert_required_keys(cfg["schedule"], {"refresh_cron", "enrich_cron", "run_on_start"}, "schedule")

    return cfg
