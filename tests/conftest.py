from __future__ import annotations

from pathlib import Path

import pytest

from permitbot.common.models import CanonicalRecord
from permitbot.pipeline.store import open_store


def make_record(record_id: str = "austin-1", **overrides) -> CanonicalRecord:
    values = {
        "id": record_id,
        "origin": "austin",
        "location_text": "100 Congress Ave",
        "category": "Residential Remodel",
        "value_estimate": 25000.0,
        "responsible_party": "Acme Builders",
        "event_date": "2026-10-01",
        "lifecycle_status": "issued",
        "area_key": "78701",
        "notes": "Kitchen remodel",
        "observed_at": "2026-10-16T02:00:00.000+00:00",
    }
    values.update(overrides)
    return CanonicalRecord(**values)


@pytest.fixture
def stores(tmp_path: Path):
    store, risk_store = open_store(f"sqlite:///{tmp_path / 'permits.db'}")
    yield store, risk_store
    store.close()


@pytest.fixture
def record_factory():
    return make_record
