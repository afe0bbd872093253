"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Mapping


@dataclass(frozen=True)
class CanonicalRecord:
    id: str
    origin: str
    location_text: str
    category: str
    value_estimate: float
    responsible_party: str
    event_date: str
    lifecycle_status: str
    area_key: str
    notes: str
    observed_at: str

    def is_persistable(self) -> bool:
        return bool(self.id) and bool(self.location_text)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "CanonicalRecord":
        return cls(**{f.name: row[f.name] for f in fields(cls)})


@dataclass(frozen=True)
class AreaRisk:
    area_key: str
    poverty_rate: float | None
    median_build_year: int | None
    crime_score: int
    fire_score: int
    risk_level: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SourceOutcome:
    origin: str
    inserted_count: int
    fetched_count: int = 0
    malformed_count: int = 0
    status: str = "ok"
    error_code: str | None = None

    @property
    def failed(self) -> bool:
        return self.status != "ok"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
