"""Store-level statistics for operators."""

from __future__ import annotations

from permitbot.common.constants import RISK_LEVELS
from permitbot.pipeline.store import RecordStore


def build_stats(store: RecordStore) -> dict:
    per_origin = store.per_origin_counts()
    risk_counts = store.risk_level_counts()
    outcomes = store.source_outcomes()

    failing = sorted(origin for origin, outcome in outcomes.items() if outcome["consecutive_failures"] > 0)

    return {
        "total_records": store.count(),
        "per_origin_counts": per_origin,
        "risk_level_counts": {level: int(risk_counts.get(level, 0)) for level in RISK_LEVELS},
        "scored_areas": store.scored_area_count(),
        "last_observed_at": store.last_observed_at(),
        "source_outcomes": outcomes,
        "failing_sources": failing,
    }
