"""Derived risk scoring per postal area from Census ACS indicators."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterator

from permitbot.common.area_key import normalise_area_key
from permitbot.common.http import HttpClient, MalformedEnvelope, TransportError, timeout_from_seconds
from permitbot.common.logging import default_logger, log_event
from permitbot.common.models import AreaRisk
from permitbot.common.scoring import poverty_rate, score_area
from permitbot.common.time_utils import current_year, utc_timestamp_iso
from permitbot.pipeline.store import RecordStore, RiskStore


@dataclass(frozen=True)
class EnrichmentSettings:
    endpoint: str
    geography: str
    poverty_numerator: str
    poverty_denominator: str
    median_build_year: str
    batch_size: int = 50
    batch_delay_seconds: float = 0.2
    timeout_seconds: float = 15.0
    api_key: str | None = None

    @classmethod
    def from_config(cls, cfg: dict) -> "EnrichmentSettings":
        indicators = cfg["indicators"]
        return cls(
            endpoint=cfg["endpoint"],
            geography=cfg["geography"],
            poverty_numerator=indicators["poverty_numerator"],
            poverty_denominator=indicators["poverty_denominator"],
            median_build_year=indicators["median_build_year"],
            batch_size=int(cfg["batch_size"]),
            batch_delay_seconds=float(cfg["batch_delay_seconds"]),
            timeout_seconds=float(cfg["timeout_seconds"]),
            api_key=cfg.get("api_key") or None,
        )

    @property
    def indicator_codes(self) -> tuple[str, str, str]:
        return self.poverty_numerator, self.poverty_denominator, self.median_build_year


@dataclass(frozen=True)
class EnrichmentSummary:
    area_keys: int
    batches: int
    failed_batches: int
    scored_count: int
    skipped_count: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def _chunked(values: list[str], size: int) -> Iterator[list[str]]:
    for i in range(0, len(values), size):
        yield values[i : i + size]


def _indicator(value: object) -> float | None:
    # ACS marks unavailable estimates with large negative sentinels.
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number < 0:
        return None
    return number


def _build_year(value: object) -> int | None:
    number = _indicator(value)
    if not number:
        return None
    return int(number)


class EnrichmentEngine:
    def __init__(
        self,
        store: RecordStore,
        risk_store: RiskStore,
        client: HttpClient,
        settings: EnrichmentSettings,
        *,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
        year: int | None = None,
    ) -> None:
        self.store = store
        self.risk_store = risk_store
        self.client = client
        self.settings = settings
        self.logger = logger or default_logger()
        self.run_id = run_id
        self.sleep = sleep
        self.year = year

    def _column_indexes(self, header: list) -> tuple[int, int, int, int]:
        codes = [*self.settings.indicator_codes, self.settings.geography]
        if all(code in header for code in codes):
            numerator, denominator, build_year, area_key = (header.index(code) for code in codes)
            return numerator, denominator, build_year, area_key
        return 0, 1, 2, 3

    def fetch_indicators(self, area_keys: list[str]) -> list[list]:
        params: dict[str, Any] = {
            "get": ",".join(self.settings.indicator_codes),
            "for": f"{self.settings.geography}:{','.join(area_keys)}",
        }
        if self.settings.api_key:
            params["key"] = self.settings.api_key
        payload = self.client.get_json(
            self.settings.endpoint,
            params=params,
            timeout=timeout_from_seconds(self.settings.timeout_seconds),
        )
        if not isinstance(payload, list) or not payload or not isinstance(payload[0], list):
            raise MalformedEnvelope(f"Unexpected census payload for {len(area_keys)} area keys")
        return payload

    def score_rows(self, payload: list[list], *, year: int, updated_at: str) -> tuple[list[AreaRisk], int]:
        numerator_idx, denominator_idx, build_year_idx, key_idx = self._column_indexes(payload[0])
        risks: list[AreaRisk] = []
        skipped = 0
        for row in payload[1:]:
            if not isinstance(row, list) or len(row) <= max(numerator_idx, denominator_idx, build_year_idx, key_idx):
                skipped += 1
                continue
            area_key = normalise_area_key(row[key_idx])
            rate = poverty_rate(_indicator(row[numerator_idx]), _indicator(row[denominator_idx]))
            build_year = _build_year(row[build_year_idx])
            scored = score_area(rate, build_year, year=year)
            if not area_key or scored is None:
                skipped += 1
                continue
            crime, fire, level = scored
            risks.append(
                AreaRisk(
                    area_key=area_key,
                    poverty_rate=rate,
                    median_build_year=build_year,
                    crime_score=crime,
                    fire_score=fire,
                    risk_level=level,
                    updated_at=updated_at,
                )
            )
        return risks, skipped

    def rescore_all(self) -> EnrichmentSummary:
        started = time.monotonic()
        area_keys = self.store.distinct_area_keys()
        year = self.year or current_year()
        batches = list(_chunked(area_keys, self.settings.batch_size))
        failed_batches = 0
        scored = 0
        skipped = 0

        log_event(
            self.logger,
            "enrichment start",
            run_id=self.run_id,
            stage="enrich",
            event="ENRICH_START",
            status="ok",
            rows_in=len(area_keys),
        )

        for number, batch in enumerate(batches, start=1):
            if number > 1 and self.settings.batch_delay_seconds > 0:
                self.sleep(self.settings.batch_delay_seconds)
            try:
                payload = self.fetch_indicators(batch)
            except TransportError as exc:
                failed_batches += 1
                log_event(
                    self.logger,
                    f"census batch {number} failed: {exc}",
                    run_id=self.run_id,
                    stage="enrich",
                    event="ENRICH_BATCH_FAIL",
                    status="error",
                    rows_in=len(batch),
                    error_code=exc.error_code,
                )
                continue

            risks, batch_skipped = self.score_rows(payload, year=year, updated_at=utc_timestamp_iso())
            try:
                self.risk_store.replace_many(risks)
            except Exception as exc:
                failed_batches += 1
                log_event(
                    self.logger,
                    f"census batch {number} not stored: {exc}",
                    run_id=self.run_id,
                    stage="enrich",
                    event="ENRICH_BATCH_FAIL",
                    status="error",
                    rows_in=len(batch),
                    error_code="STORE_WRITE_ERROR",
                )
                continue
            scored += len(risks)
            skipped += batch_skipped
            log_event(
                self.logger,
                f"census batch {number} scored",
                run_id=self.run_id,
                stage="enrich",
                event="ENRICH_BATCH",
                status="ok",
                rows_in=len(batch),
                rows_out=len(risks),
            )

        summary = EnrichmentSummary(
            area_keys=len(area_keys),
            batches=len(batches),
            failed_batches=failed_batches,
            scored_count=scored,
            skipped_count=skipped,
        )
        log_event(
            self.logger,
            "enrichment end",
            run_id=self.run_id,
            stage="enrich",
            event="ENRICH_END",
            status="ok",
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_in=len(area_keys),
            rows_out=scored,
        )
        return summary
