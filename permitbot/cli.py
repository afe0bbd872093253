"""CLI entrypoint for the permit ingestion and risk enrichment pipeline."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path

from permitbot.common.config_loader import ConfigBundle, load_all_configs, resolve_database_url
from permitbot.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from permitbot.common.errors import PipelineError
from permitbot.common.fs import dump_json, ensure_dir
from permitbot.common.http import HttpClient, RetryConfig, TimeoutConfig
from permitbot.common.ids import generate_run_id
from permitbot.common.logging import build_logger, log_event
from permitbot.harvest.registry import build_adapters
from permitbot.harvest.runner import FetchOrchestrator
from permitbot.pipeline.enrich import EnrichmentEngine, EnrichmentSettings
from permitbot.pipeline.reports import build_stats
from permitbot.pipeline.scheduler import RefreshScheduler
from permitbot.pipeline.store import RecordFilter, RecordStore, open_store


@dataclass
class Pipeline:
    store: RecordStore
    orchestrator: FetchOrchestrator
    enrichment: EnrichmentEngine
    client: HttpClient

    def close(self) -> None:
        self.client.close()
        self.store.close()


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--database-url", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--strict", action="store_true", help="exit non-zero when any source fails")

    query = parser.add_argument_group("query filters")
    query.add_argument("--origin", default=None)
    query.add_argument("--type", dest="category", default=None)
    query.add_argument("--min-value", default=None)
    query.add_argument("--zip", dest="area_key", default=None)
    query.add_argument("--days", default=None)
    query.add_argument("--risk", default=None, choices=["high", "medium"])
    query.add_argument("--limit", default=None)
    return parser.parse_args(argv)


def build_pipeline(bundle: ConfigBundle, database_url: str, logger, run_id: str) -> Pipeline:
    settings = bundle.settings
    query_cfg = settings["query"]
    store, risk_store = open_store(database_url, max_limit=int(query_cfg["max_limit"]))

    http_cfg = settings["http"]
    client = HttpClient(
        timeout=TimeoutConfig(connect=float(http_cfg["connect_timeout_seconds"])),
        retry=RetryConfig(max_attempts=int(http_cfg["max_attempts"])),
    )
    enrichment = EnrichmentEngine(
        store,
        risk_store,
        client,
        EnrichmentSettings.from_config(settings["enrichment"]),
        logger=logger,
        run_id=run_id,
    )
    adapters = build_adapters(
        bundle.enabled_sources(),
        client,
        notes_max_length=int(settings["records"]["notes_max_length"]),
    )
    orchestrator = FetchOrchestrator(adapters, store, enrichment=enrichment, logger=logger, run_id=run_id)
    return Pipeline(store=store, orchestrator=orchestrator, enrichment=enrichment, client=client)


def _query_params(args: argparse.Namespace) -> dict:
    return {
        "origin": args.origin,
        "category": args.category,
        "min_value": args.min_value,
        "area_key": args.area_key,
        "days": args.days,
        "risk": args.risk,
        "limit": args.limit,
    }


def describe_sources(bundle: ConfigBundle) -> list[dict]:
    return [
        {
            "origin": origin,
            "family": cfg["family"],
            "endpoint": cfg["endpoint"],
            "enabled": bool(cfg.get("enabled", True)),
        }
        for origin, cfg in bundle.sources.items()
    ]


def execute_command(args: argparse.Namespace, bundle: ConfigBundle, pipeline: Pipeline) -> int:
    if args.command == "refresh":
        result = pipeline.orchestrator.refresh_all()
        print(dump_json(result.to_dict()))
        if result.had_failures:
            return EXIT_HARD_FAIL if args.strict else EXIT_PARTIAL
        return EXIT_SUCCESS

    if args.command == "enrich":
        summary = pipeline.enrichment.rescore_all()
        print(dump_json(summary.to_dict()))
        return EXIT_PARTIAL if summary.failed_batches else EXIT_SUCCESS

    if args.command == "query":
        query_cfg = bundle.settings["query"]
        record_filter = RecordFilter.from_params(
            _query_params(args),
            default_limit=int(query_cfg["default_limit"]),
            max_limit=int(query_cfg["max_limit"]),
        )
        results = pipeline.store.query(record_filter)
        print(dump_json({"count": len(results), "results": results}))
        return EXIT_SUCCESS

    if args.command == "stats":
        print(dump_json(build_stats(pipeline.store)))
        return EXIT_SUCCESS

    if args.command == "schedule":
        schedule_cfg = bundle.settings["schedule"]
        scheduler = RefreshScheduler(
            pipeline.orchestrator.refresh_all,
            pipeline.enrichment.rescore_all,
            refresh_cron=schedule_cfg["refresh_cron"],
            enrich_cron=schedule_cfg["enrich_cron"],
            run_on_start=bool(schedule_cfg["run_on_start"]),
            logger=pipeline.orchestrator.logger,
        )
        scheduler.start()
        try:
            scheduler.wait()
        except KeyboardInterrupt:
            scheduler.stop(timeout=5.0)
        return EXIT_SUCCESS

    raise ValueError(f"Unknown command: {args.command}")


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    data_dir = Path(args.data_dir)
    ensure_dir(data_dir)
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    try:
        bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
    except PipelineError as exc:
        log_event(logger, f"config load failed: {exc}", run_id=run_id, event="CONFIG_FAIL", status="error", error_code=exc.error_code)
        return EXIT_HARD_FAIL

    if args.command == "sources":
        print(dump_json(describe_sources(bundle)))
        return EXIT_SUCCESS

    database_url = resolve_database_url(bundle.settings, data_dir, args.database_url)
    try:
        pipeline = build_pipeline(bundle, database_url, logger, run_id)
    except PipelineError as exc:
        log_event(logger, f"startup failed: {exc}", run_id=run_id, event="STARTUP_FAIL", status="error", error_code=exc.error_code)
        return EXIT_HARD_FAIL

    try:
        return execute_command(args, bundle, pipeline)
    finally:
        pipeline.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
