"""Cron-driven refresh and enrichment cadences."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable

from croniter import croniter

from permitbot.common.errors import ConfigError
from permitbot.common.logging import default_logger, log_event


def next_fire_time(cron_expression: str, now: datetime) -> datetime:
    try:
        return croniter(cron_expression, now).get_next(datetime)
    except (ValueError, KeyError) as exc:
        raise ConfigError(f"Invalid cron expression: {cron_expression}") from exc


class RefreshScheduler:
    """Two independent timer threads; the shared lock keeps jobs from overlapping."""

    def __init__(
        self,
        refresh_job: Callable[[], object],
        enrich_job: Callable[[], object],
        *,
        refresh_cron: str,
        enrich_cron: str,
        run_on_start: bool = True,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        # Validate both expressions up front so a typo fails at startup.
        self.clock = clock or (lambda: datetime.now(tz=timezone.utc))
        next_fire_time(refresh_cron, self.clock())
        next_fire_time(enrich_cron, self.clock())
        self.jobs = {"refresh": (refresh_cron, refresh_job), "enrich": (enrich_cron, enrich_job)}
        self.run_on_start = run_on_start
        self.logger = logger or default_logger()
        self.stop_event = threading.Event()
        self.run_lock = threading.Lock()
        self.threads: list[threading.Thread] = []

    def run_job(self, name: str) -> None:
        _cron, job = self.jobs[name]
        with self.run_lock:
            log_event(self.logger, f"{name} job start", stage="schedule", event="JOB_START", status="ok")
            try:
                job()
            except Exception as exc:
                log_event(
                    self.logger,
                    f"{name} job failed: {exc}",
                    stage="schedule",
                    event="JOB_FAIL",
                    status="error",
                    error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
                )
                return
            log_event(self.logger, f"{name} job end", stage="schedule", event="JOB_END", status="ok")

    def _loop(self, name: str) -> None:
        cron_expression, _job = self.jobs[name]
        while not self.stop_event.is_set():
            now = self.clock()
            wait_seconds = max((next_fire_time(cron_expression, now) - now).total_seconds(), 0.0)
            if self.stop_event.wait(wait_seconds):
                return
            self.run_job(name)

    def start(self) -> None:
        if self.run_on_start:
            startup = threading.Thread(target=self.run_job, args=("refresh",), name="permitbot-startup", daemon=True)
            startup.start()
            self.threads.append(startup)
        for name in self.jobs:
            thread = threading.Thread(target=self._loop, args=(name,), name=f"permitbot-{name}", daemon=True)
            thread.start()
            self.threads.append(thread)

    def stop(self, timeout: float | None = None) -> None:
        self.stop_event.set()
        for thread in self.threads:
            thread.join(timeout)

    def wait(self) -> None:
        while not self.stop_event.wait(1.0):
            pass
