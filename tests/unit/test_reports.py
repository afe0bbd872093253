from permitbot.common.models import AreaRisk, SourceOutcome
from permitbot.pipeline.reports import build_stats


def test_build_stats_summarises_store(stores, record_factory):
    store, risk_store = stores
    store.upsert_many(
        [
            record_factory("a-1", observed_at="2026-10-16T02:00:00.000+00:00"),
            record_factory("a-2", observed_at="2026-10-17T02:00:00.000+00:00"),
            record_factory("philly-1", origin="philadelphia", area_key="19103"),
        ]
    )
    risk_store.replace_many(
        [
            AreaRisk("78701", 20.0, 1966, 8, 7, "HIGH", "2026-10-17T03:00:00.000+00:00"),
            AreaRisk("19103", 5.0, 2000, 3, 3, "LOW", "2026-10-17T03:00:00.000+00:00"),
        ]
    )
    store.record_outcome(SourceOutcome(origin="austin", inserted_count=2, fetched_count=2), "t1")
    store.record_outcome(SourceOutcome(origin="san_diego", inserted_count=0, status="error", error_code="TRANSPORT_ERROR"), "t1")

    stats = build_stats(store)

    assert stats["total_records"] == 3
    assert stats["per_origin_counts"] == {"austin": 2, "philadelphia": 1}
    assert stats["risk_level_counts"] == {"LOW": 1, "MEDIUM": 0, "HIGH": 1}
    assert stats["scored_areas"] == 2
    assert stats["last_observed_at"] == "2026-10-17T02:00:00.000+00:00"
    assert stats["failing_sources"] == ["san_diego"]
    assert stats["source_outcomes"]["austin"]["inserted_count"] == 2


def test_build_stats_on_empty_store(stores):
    store, _ = stores
    stats = build_stats(store)

    assert stats["total_records"] == 0
    assert stats["per_origin_counts"] == {}
    assert stats["last_observed_at"] is None
    assert stats["failing_sources"] == []
