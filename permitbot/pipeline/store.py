"""Durable record store over SQLAlchemy Core.

Three tables live here:

- ``permits``: canonical records, replaced wholesale by ``id`` on every cycle.
- ``area_risk``: derived risk per postal area, written only by the enrichment
  engine through :class:`RiskStore`.
- ``source_outcomes``: latest refresh outcome per origin, used by ``stats``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from sqlalchemy import (
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from permitbot.common.constants import (
    AREA_KEY_LENGTH,
    DEFAULT_QUERY_LIMIT,
    MAX_QUERY_LIMIT,
    RISK_HIGH,
    RISK_MEDIUM,
)
from permitbot.common.errors import StoreError
from permitbot.common.models import AreaRisk, CanonicalRecord, SourceOutcome
from permitbot.common.time_utils import days_ago_iso

metadata = MetaData()

permits = Table(
    "permits",
    metadata,
    Column("id", String, primary_key=True),
    Column("origin", String, nullable=False),
    Column("location_text", Text, nullable=False),
    Column("category", Text, nullable=False, default=""),
    Column("value_estimate", Float, nullable=False, default=0.0),
    Column("responsible_party", Text, nullable=False, default=""),
    Column("event_date", String(10), nullable=False, default=""),
    Column("lifecycle_status", Text, nullable=False, default=""),
    Column("area_key", String, nullable=False, default=""),
    Column("notes", Text, nullable=False, default=""),
    Column("observed_at", String, nullable=False),
    Index("idx_permits_origin", "origin"),
    Index("idx_permits_event_date", "event_date"),
    Index("idx_permits_area_key", "area_key"),
    Index("idx_permits_value_estimate", "value_estimate"),
)

area_risk = Table(
    "area_risk",
    metadata,
    Column("area_key", String, primary_key=True),
    Column("poverty_rate", Float, nullable=True),
    Column("median_build_year", Integer, nullable=True),
    Column("crime_score", Integer, nullable=False),
    Column("fire_score", Integer, nullable=False),
    Column("risk_level", String(6), nullable=False),
    Column("updated_at", String, nullable=False),
)

source_outcomes = Table(
    "source_outcomes",
    metadata,
    Column("origin", String, primary_key=True),
    Column("status", String, nullable=False),
    Column("inserted_count", Integer, nullable=False),
    Column("fetched_count", Integer, nullable=False),
    Column("malformed_count", Integer, nullable=False),
    Column("error_code", String, nullable=True),
    Column("consecutive_failures", Integer, nullable=False),
    Column("last_attempt_at", String, nullable=False),
    Column("last_success_at", String, nullable=True),
)

RECORD_COLUMNS = tuple(c.name for c in permits.columns)
RISK_JOIN_COLUMNS = ("crime_score", "fire_score", "risk_level", "poverty_rate", "median_build_year")
RISK_FLOORS = {
    "high": (RISK_HIGH,),
    "medium": (RISK_HIGH, RISK_MEDIUM),
}


def _insert_or_replace(conn: Connection, table: Table, rows: list[dict], key: str) -> None:
    if not rows:
        return
    dialect = conn.dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        conn.execute(table.delete().where(table.c[key].in_([row[key] for row in rows])))
        conn.execute(table.insert(), rows)
        return

    stmt = insert(table)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c[key]],
        set_={c.name: stmt.excluded[c.name] for c in table.columns if c.name != key},
    )
    conn.execute(stmt, rows)


def clamp_limit(raw: object, *, default: int = DEFAULT_QUERY_LIMIT, ceiling: int = MAX_QUERY_LIMIT) -> int:
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return min(default, ceiling)
    if limit <= 0:
        return min(default, ceiling)
    return min(limit, ceiling)


def _optional_float(raw: object) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _optional_int(raw: object) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _optional_text(raw: object) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


@dataclass(frozen=True)
class RecordFilter:
    origin: str | None = None
    category: str | None = None
    min_value: float | None = None
    area_key: str | None = None
    days: int | None = None
    risk: str | None = None
    limit: int = DEFAULT_QUERY_LIMIT

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        *,
        default_limit: int = DEFAULT_QUERY_LIMIT,
        max_limit: int = MAX_QUERY_LIMIT,
    ) -> "RecordFilter":
        """Parse query-string style parameters (``type``/``zip`` aliases accepted)."""
        risk = _optional_text(params.get("risk"))
        risk = risk.lower() if risk else None
        days = _optional_int(params.get("days"))
        return cls(
            origin=_optional_text(params.get("origin", params.get("city"))),
            category=_optional_text(params.get("category", params.get("type"))),
            min_value=_optional_float(params.get("min_value")),
            area_key=_optional_text(params.get("area_key", params.get("zip"))),
            days=days if days is not None and days >= 0 else None,
            risk=risk if risk in RISK_FLOORS else None,
            limit=clamp_limit(params.get("limit"), default=default_limit, ceiling=max_limit),
        )


class RecordStore:
    def __init__(self, engine: Engine, *, max_limit: int = MAX_QUERY_LIMIT) -> None:
        self.engine = engine
        self.max_limit = max_limit

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def upsert(self, record: CanonicalRecord) -> bool:
        return self.upsert_many([record]) == 1

    def upsert_many(self, records: Iterable[CanonicalRecord]) -> int:
        """Persist one adapter batch atomically; returns the number of rows written."""
        by_id: dict[str, dict] = {}
        for record in records:
            if record.is_persistable():
                by_id[record.id] = record.to_dict()
        rows = list(by_id.values())
        with self.engine.begin() as conn:
            _insert_or_replace(conn, permits, rows, "id")
        return len(rows)

    def get(self, record_id: str) -> CanonicalRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(permits).where(permits.c.id == record_id)).mappings().first()
        return CanonicalRecord.from_mapping(row) if row is not None else None

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(permits)).scalar_one()

    def distinct_area_keys(self) -> list[str]:
        stmt = (
            select(permits.c.area_key)
            .where(permits.c.area_key != "")
            .where(func.length(permits.c.area_key) == AREA_KEY_LENGTH)
            .distinct()
            .order_by(permits.c.area_key)
        )
        with self.engine.connect() as conn:
            return [row[0] for row in conn.execute(stmt)]

    def query(self, record_filter: RecordFilter) -> list[dict]:
        joined = permits.outerjoin(area_risk, permits.c.area_key == area_risk.c.area_key)
        stmt = select(
            *[permits.c[name] for name in RECORD_COLUMNS],
            *[area_risk.c[name] for name in RISK_JOIN_COLUMNS],
        ).select_from(joined)

        if record_filter.origin:
            stmt = stmt.where(func.lower(permits.c.origin) == record_filter.origin.lower())
        if record_filter.category:
            stmt = stmt.where(permits.c.category.ilike(f"%{record_filter.category}%"))
        if record_filter.min_value is not None:
            stmt = stmt.where(permits.c.value_estimate >= record_filter.min_value)
        if record_filter.area_key:
            stmt = stmt.where(permits.c.area_key == record_filter.area_key)
        if record_filter.days is not None:
            stmt = stmt.where(permits.c.event_date >= days_ago_iso(record_filter.days))
        if record_filter.risk in RISK_FLOORS:
            stmt = stmt.where(area_risk.c.risk_level.in_(RISK_FLOORS[record_filter.risk]))

        limit = clamp_limit(record_filter.limit, ceiling=self.max_limit)
        stmt = stmt.order_by(permits.c.event_date.desc(), permits.c.value_estimate.desc()).limit(limit)

        with self.engine.connect() as conn:
            return [dict(row) for row in conn.execute(stmt).mappings()]

    def per_origin_counts(self) -> dict[str, int]:
        stmt = (
            select(permits.c.origin, func.count().label("n"))
            .group_by(permits.c.origin)
            .order_by(func.count().desc(), permits.c.origin)
        )
        with self.engine.connect() as conn:
            return {row.origin: row.n for row in conn.execute(stmt)}

    def last_observed_at(self) -> str | None:
        with self.engine.connect() as conn:
            return conn.execute(select(func.max(permits.c.observed_at))).scalar_one()

    def risk_level_counts(self) -> dict[str, int]:
        stmt = select(area_risk.c.risk_level, func.count().label("n")).group_by(area_risk.c.risk_level)
        with self.engine.connect() as conn:
            return {row.risk_level: row.n for row in conn.execute(stmt)}

    def scored_area_count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(area_risk)).scalar_one()

    def record_outcome(self, outcome: SourceOutcome, attempted_at: str) -> None:
        with self.engine.begin() as conn:
            previous = conn.execute(
                select(source_outcomes).where(source_outcomes.c.origin == outcome.origin)
            ).mappings().first()
            failures = 0
            last_success_at = attempted_at
            if outcome.failed:
                failures = (previous["consecutive_failures"] if previous else 0) + 1
                last_success_at = previous["last_success_at"] if previous else None
            row = {
                "origin": outcome.origin,
                "status": outcome.status,
                "inserted_count": outcome.inserted_count,
                "fetched_count": outcome.fetched_count,
                "malformed_count": outcome.malformed_count,
                "error_code": outcome.error_code,
                "consecutive_failures": failures,
                "last_attempt_at": attempted_at,
                "last_success_at": last_success_at,
            }
            _insert_or_replace(conn, source_outcomes, [row], "origin")

    def source_outcomes(self) -> dict[str, dict]:
        stmt = select(source_outcomes).order_by(source_outcomes.c.origin)
        with self.engine.connect() as conn:
            return {
                row["origin"]: {key: value for key, value in row.items() if key != "origin"}
                for row in conn.execute(stmt).mappings()
            }


class RiskStore:
    """Writer for ``area_risk``; owned by the enrichment engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def replace_many(self, risks: Iterable[AreaRisk]) -> int:
        rows = [risk.to_dict() for risk in risks]
        with self.engine.begin() as conn:
            _insert_or_replace(conn, area_risk, rows, "area_key")
        return len(rows)

    def get(self, area_key: str) -> AreaRisk | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(area_risk).where(area_risk.c.area_key == area_key)).mappings().first()
        return AreaRisk(**row) if row is not None else None


def open_store(database_url: str, *, max_limit: int = MAX_QUERY_LIMIT) -> tuple[RecordStore, RiskStore]:
    try:
        engine = create_engine(database_url, future=True)
        store = RecordStore(engine, max_limit=max_limit)
        store.create_schema()
    except SQLAlchemyError as exc:
        raise StoreError(f"Cannot open record store at {database_url}: {exc}") from exc
    return store, RiskStore(engine)
