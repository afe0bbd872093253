"""Refresh orchestration with fail-soft semantics.

Adapters fetch concurrently; each settles independently and a failing origin
contributes zero rows for the cycle. Writes for one adapter go into the store
as a single transaction once its batch has been normalised.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Sequence

from permitbot.common.errors import MalformedRecord, PipelineError
from permitbot.common.logging import default_logger, log_event
from permitbot.common.models import CanonicalRecord, SourceOutcome
from permitbot.common.time_utils import utc_timestamp_iso
from permitbot.harvest.base import SourceAdapter
from permitbot.pipeline.enrich import EnrichmentEngine, EnrichmentSummary
from permitbot.pipeline.store import RecordStore


@dataclass(frozen=True)
class CollectedBatch:
    records: list[CanonicalRecord]
    fetched_count: int
    malformed_count: int


@dataclass
class RefreshResult:
    outcomes: list[SourceOutcome] = field(default_factory=list)
    enrichment: EnrichmentSummary | None = None

    @property
    def had_failures(self) -> bool:
        return any(outcome.failed for outcome in self.outcomes)

    @property
    def inserted_total(self) -> int:
        return sum(outcome.inserted_count for outcome in self.outcomes)

    def to_dict(self) -> dict:
        return {
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "inserted_total": self.inserted_total,
            "enrichment": self.enrichment.to_dict() if self.enrichment else None,
        }


def collect_batch(adapter: SourceAdapter, observed_at: str) -> CollectedBatch:
    natives = adapter.fetch_batch()
    records: list[CanonicalRecord] = []
    malformed = 0
    for native in natives:
        try:
            record = adapter.normalize(native, observed_at)
        except MalformedRecord:
            malformed += 1
            continue
        if not record.is_persistable():
            malformed += 1
            continue
        records.append(record)
    return CollectedBatch(records=records, fetched_count=len(natives), malformed_count=malformed)


class FetchOrchestrator:
    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        store: RecordStore,
        *,
        enrichment: EnrichmentEngine | None = None,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.adapters = list(adapters)
        self.store = store
        self.enrichment = enrichment
        self.logger = logger or default_logger()
        self.run_id = run_id
        self.max_workers = max_workers

    def _failure(self, adapter: SourceAdapter, exc: Exception, error_code: str) -> SourceOutcome:
        log_event(
            self.logger,
            f"{adapter.origin} refresh failed: {exc}",
            run_id=self.run_id,
            stage="refresh",
            source=adapter.origin,
            event="SOURCE_FAIL",
            status="error",
            rows_out=0,
            error_code=error_code,
        )
        return SourceOutcome(origin=adapter.origin, inserted_count=0, status="error", error_code=error_code)

    def _settle(self, adapter: SourceAdapter, future, started: float) -> SourceOutcome:
        try:
            batch: CollectedBatch = future.result()
        except PipelineError as exc:
            return self._failure(adapter, exc, exc.error_code)
        except Exception as exc:
            return self._failure(adapter, exc, "UNEXPECTED_ERROR")

        try:
            inserted = self.store.upsert_many(batch.records)
        except Exception as exc:
            return self._failure(adapter, exc, "STORE_WRITE_ERROR")

        log_event(
            self.logger,
            f"{adapter.origin}: {inserted} records stored",
            run_id=self.run_id,
            stage="refresh",
            source=adapter.origin,
            event="SOURCE_STORED",
            status="ok",
            duration_ms=int((time.monotonic() - started) * 1000),
            rows_in=batch.fetched_count,
            rows_out=inserted,
        )
        return SourceOutcome(
            origin=adapter.origin,
            inserted_count=inserted,
            fetched_count=batch.fetched_count,
            malformed_count=batch.malformed_count,
        )

    def refresh_sources(self) -> list[SourceOutcome]:
        if not self.adapters:
            return []
        observed_at = utc_timestamp_iso()
        started = time.monotonic()
        outcomes: dict[str, SourceOutcome] = {}
        workers = self.max_workers or len(self.adapters)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="permitbot-fetch") as pool:
            futures = {pool.submit(collect_batch, adapter, observed_at): adapter for adapter in self.adapters}
            for future in as_completed(futures):
                adapter = futures[future]
                outcome = self._settle(adapter, future, started)
                outcomes[adapter.origin] = outcome
                try:
                    self.store.record_outcome(outcome, observed_at)
                except Exception as exc:
                    log_event(
                        self.logger,
                        f"could not record outcome for {adapter.origin}: {exc}",
                        run_id=self.run_id,
                        stage="refresh",
                        source=adapter.origin,
                        event="OUTCOME_WRITE_FAIL",
                        status="error",
                        error_code="STORE_WRITE_ERROR",
                    )

        return [outcomes[adapter.origin] for adapter in self.adapters]

    def run_enrichment(self) -> EnrichmentSummary | None:
        if self.enrichment is None:
            return None
        try:
            return self.enrichment.rescore_all()
        except Exception as exc:
            log_event(
                self.logger,
                f"enrichment failed: {exc}",
                run_id=self.run_id,
                stage="enrich",
                event="ENRICH_FAIL",
                status="error",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )
            return None

    def refresh_all(self) -> RefreshResult:
        log_event(self.logger, "refresh start", run_id=self.run_id, stage="refresh", event="REFRESH_START", status="ok")
        outcomes = self.refresh_sources()
        result = RefreshResult(outcomes=outcomes, enrichment=self.run_enrichment())
        log_event(
            self.logger,
            "refresh end",
            run_id=self.run_id,
            stage="refresh",
            event="REFRESH_END",
            status="error" if result.had_failures else "ok",
            rows_out=result.inserted_total,
        )
        return result
