from __future__ import annotations

import pytest

from permitbot.common.http import TransportError
from permitbot.common.models import AreaRisk
from permitbot.pipeline.enrich import EnrichmentEngine, EnrichmentSettings

YEAR = 2026
HEADER = ["B17001_002E", "B17001_001E", "B25037_001E", "zip code tabulation area"]


def _settings(batch_size: int = 50) -> EnrichmentSettings:
    return EnrichmentSettings(
        endpoint="https://census.example.test/data/2022/acs/acs5",
        geography="zip code tabulation area",
        poverty_numerator="B17001_002E",
        poverty_denominator="B17001_001E",
        median_build_year="B25037_001E",
        batch_size=batch_size,
        batch_delay_seconds=0.2,
    )


class FakeCensusClient:
    def __init__(self, rows_by_key: dict[str, list], failing_batches: set[int] | None = None):
        self.rows_by_key = rows_by_key
        self.failing_batches = failing_batches or set()
        self.calls: list[dict] = []

    def get_json(self, url: str, **kwargs):
        params = kwargs["params"]
        self.calls.append(params)
        if len(self.calls) in self.failing_batches:
            raise TransportError("HTTP status: 500")
        keys = params["for"].split(":", 1)[1].split(",")
        return [HEADER] + [self.rows_by_key[key] for key in keys if key in self.rows_by_key]


def _engine(stores, client, batch_size: int = 50, sleeps: list | None = None) -> EnrichmentEngine:
    store, risk_store = stores
    return EnrichmentEngine(
        store,
        risk_store,
        client,
        _settings(batch_size),
        sleep=(sleeps.append if sleeps is not None else (lambda _seconds: None)),
        year=YEAR,
    )


@pytest.mark.integration
def test_rescore_all_scores_area_keys_present_in_store(stores, record_factory):
    store, risk_store = stores
    store.upsert_many([record_factory("a-1", area_key="78701"), record_factory("a-2", area_key="7870")])
    client = FakeCensusClient({"78701": ["200", "1000", str(YEAR - 60), "78701"]})

    summary = _engine(stores, client).rescore_all()

    risk = risk_store.get("78701")
    assert summary.scored_count == 1
    assert risk.poverty_rate == 20.0
    assert risk.median_build_year == YEAR - 60
    assert (risk.crime_score, risk.fire_score, risk.risk_level) == (8, 6, "HIGH")
    assert client.calls[0]["get"] == "B17001_002E,B17001_001E,B25037_001E"
    assert client.calls[0]["for"] == "zip code tabulation area:78701"


@pytest.mark.integration
def test_keys_without_indicators_are_not_scored(stores, record_factory):
    store, risk_store = stores
    store.upsert_many([record_factory("a-1", area_key="11111"), record_factory("a-2", area_key="22222")])
    client = FakeCensusClient(
        {
            "11111": ["0", "0", "0", "11111"],
            "22222": ["-666666666", "-666666666", "-666666666", "22222"],
        }
    )

    summary = _engine(stores, client).rescore_all()

    assert summary.scored_count == 0
    assert summary.skipped_count == 2
    assert risk_store.get("11111") is None
    assert risk_store.get("22222") is None


@pytest.mark.integration
def test_batches_are_sequential_with_delay_between(stores, record_factory):
    store, _ = stores
    keys = [f"{10000 + i}" for i in range(5)]
    store.upsert_many([record_factory(f"a-{key}", area_key=key) for key in keys])
    client = FakeCensusClient({key: ["10", "100", "1990", key] for key in keys})
    sleeps: list[float] = []

    summary = _engine(stores, client, batch_size=2, sleeps=sleeps).rescore_all()

    assert summary.batches == 3
    assert len(client.calls) == 3
    assert sleeps == [0.2, 0.2]
    assert summary.scored_count == 5


@pytest.mark.integration
def test_failed_batch_leaves_existing_rows_untouched(stores, record_factory):
    store, risk_store = stores
    store.upsert_many([record_factory("a-1", area_key="10001"), record_factory("a-2", area_key="10002")])
    stale = AreaRisk("10001", 1.0, 2020, 1, 1, "LOW", "2026-01-01T00:00:00.000+00:00")
    risk_store.replace_many([stale])
    client = FakeCensusClient(
        {"10001": ["500", "1000", "1900", "10001"], "10002": ["500", "1000", "1900", "10002"]},
        failing_batches={1},
    )

    summary = _engine(stores, client, batch_size=1).rescore_all()

    assert summary.failed_batches == 1
    assert summary.scored_count == 1
    assert risk_store.get("10001") == stale
    assert risk_store.get("10002").risk_level == "HIGH"


@pytest.mark.integration
def test_rescore_replaces_existing_rows(stores, record_factory):
    store, risk_store = stores
    store.upsert(record_factory("a-1", area_key="10001"))
    risk_store.replace_many([AreaRisk("10001", 1.0, 2020, 1, 1, "LOW", "2026-01-01T00:00:00.000+00:00")])
    client = FakeCensusClient({"10001": ["500", "1000", "1900", "10001"]})

    _engine(stores, client).rescore_all()

    assert risk_store.get("10001").risk_level == "HIGH"


@pytest.mark.integration
def test_malformed_census_payload_counts_as_failed_batch(stores, record_factory):
    store, _ = stores
    store.upsert(record_factory("a-1", area_key="10001"))

    class ErrorClient:
        def get_json(self, _url, **_kwargs):
            return {"error": "unknown variable"}

    summary = _engine(stores, ErrorClient()).rescore_all()

    assert summary.failed_batches == 1
    assert summary.scored_count == 0


class FlakyRiskStore:
    def __init__(self, risk_store, failing_writes: set[int]):
        self.risk_store = risk_store
        self.failing_writes = failing_writes
        self.writes = 0

    def replace_many(self, risks):
        self.writes += 1
        if self.writes in self.failing_writes:
            raise RuntimeError("disk full")
        return self.risk_store.replace_many(risks)


@pytest.mark.integration
def test_store_failure_in_one_batch_does_not_stop_later_batches(stores, record_factory):
    store, risk_store = stores
    keys = ["10001", "10002", "10003"]
    store.upsert_many([record_factory(f"a-{key}", area_key=key) for key in keys])
    client = FakeCensusClient({key: ["500", "1000", "1900", key] for key in keys})
    flaky = FlakyRiskStore(risk_store, failing_writes={1})

    summary = _engine((store, flaky), client, batch_size=1).rescore_all()

    assert len(client.calls) == 3
    assert summary.failed_batches == 1
    assert summary.scored_count == 2
    assert risk_store.get("10001") is None
    assert risk_store.get("10002").risk_level == "HIGH"
    assert risk_store.get("10003").risk_level == "HIGH"
