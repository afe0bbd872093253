import threading
from datetime import datetime, timezone

import pytest

from permitbot.common.errors import ConfigError
from permitbot.pipeline.scheduler import RefreshScheduler, next_fire_time


def test_next_fire_time_daily_and_weekly():
    now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)  # a Saturday

    assert next_fire_time("0 2 * * *", now) == datetime(2026, 10, 18, 2, 0, tzinfo=timezone.utc)
    assert next_fire_time("0 3 * * 0", now) == datetime(2026, 10, 18, 3, 0, tzinfo=timezone.utc)


def test_scheduler_rejects_invalid_cron():
    with pytest.raises(ConfigError):
        RefreshScheduler(lambda: None, lambda: None, refresh_cron="not a cron", enrich_cron="0 3 * * 0")


def test_run_job_logs_failures_and_keeps_going():
    calls = []

    def failing_refresh():
        calls.append("refresh")
        raise RuntimeError("boom")

    scheduler = RefreshScheduler(
        failing_refresh,
        lambda: calls.append("enrich"),
        refresh_cron="0 2 * * *",
        enrich_cron="0 3 * * 0",
    )

    scheduler.run_job("refresh")
    scheduler.run_job("enrich")

    assert calls == ["refresh", "enrich"]


def test_start_runs_refresh_on_start_then_stops():
    calls = []
    scheduler = RefreshScheduler(
        lambda: calls.append("refresh"),
        lambda: calls.append("enrich"),
        refresh_cron="0 2 * * *",
        enrich_cron="0 3 * * 0",
        run_on_start=True,
        clock=lambda: datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc),
    )

    scheduler.start()
    for _ in range(100):
        if calls:
            break
        scheduler.stop_event.wait(0.01)
    scheduler.stop(timeout=1.0)

    assert calls == ["refresh"]
    assert all(not thread.is_alive() for thread in scheduler.threads)


def test_stop_waits_for_startup_refresh_to_finish():
    started = threading.Event()
    release = threading.Event()
    finished = []

    def slow_refresh():
        started.set()
        release.wait(2.0)
        finished.append("refresh")

    scheduler = RefreshScheduler(
        slow_refresh,
        lambda: None,
        refresh_cron="0 2 * * *",
        enrich_cron="0 3 * * 0",
        run_on_start=True,
        clock=lambda: datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc),
    )

    scheduler.start()
    assert started.wait(2.0)
    threading.Timer(0.05, release.set).start()
    scheduler.stop(timeout=5.0)

    assert finished == ["refresh"]
