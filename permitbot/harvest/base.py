"""Shared adapter contract and config-driven field mapping.

Every adapter family fetches one batch of native records from its origin and
maps each of them onto a :class:`CanonicalRecord`. Families only differ in
transport and envelope shape; the mapping itself is configuration data taken
from ``config/sources.yml``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Sequence, Union

from permitbot.common.area_key import normalise_area_key
from permitbot.common.constants import DEFAULT_LIFECYCLE_STATUS, DEFAULT_NOTES_LENGTH, DEFAULT_ROW_CAP
from permitbot.common.errors import MalformedRecord
from permitbot.common.http import HttpClient, TimeoutConfig, timeout_from_seconds
from permitbot.common.ids import content_hash_id, record_id
from permitbot.common.models import CanonicalRecord
from permitbot.common.time_utils import iso_date_prefix

Candidate = Union[str, Sequence[str]]

_CURRENCY_NOISE = str.maketrans("", "", "$,€£ ")


@dataclass(frozen=True)
class SourceConfig:
    origin: str
    family: str
    endpoint: str
    id_prefix: str
    fields: dict[str, list[Candidate]]
    defaults: dict[str, Any] = field(default_factory=dict)
    order: str | None = None
    row_cap: int = DEFAULT_ROW_CAP
    timeout_seconds: float = 20.0
    where: str | None = None
    table: str | None = None
    columns: tuple[str, ...] = ()
    enabled: bool = True

    @classmethod
    def from_config(cls, origin: str, cfg: dict) -> "SourceConfig":
        return cls(
            origin=origin,
            family=cfg["family"],
            endpoint=cfg["endpoint"],
            id_prefix=cfg["id_prefix"],
            fields={name: list(candidates or []) for name, candidates in cfg["fields"].items()},
            defaults=dict(cfg.get("defaults") or {}),
            order=cfg.get("order"),
            row_cap=int(cfg.get("row_cap", DEFAULT_ROW_CAP)),
            timeout_seconds=float(cfg.get("timeout_seconds", 20.0)),
            where=cfg.get("where"),
            table=cfg.get("table"),
            columns=tuple(cfg.get("columns") or ()),
            enabled=bool(cfg.get("enabled", True)),
        )


def _present(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _lookup_candidate(native: dict, candidate: Candidate) -> object | None:
    if isinstance(candidate, str):
        value = native.get(candidate)
        return value if _present(value) else None
    parts = [str(native[key]).strip() for key in candidate if _present(native.get(key))]
    joined = " ".join(parts)
    return joined or None


def _lookup_first(native: dict, candidates: list[Candidate]) -> object | None:
    for candidate in candidates:
        value = _lookup_candidate(native, candidate)
        if value is not None:
            return value
    return None


def parse_value_estimate(native: dict, candidates: list[Candidate]) -> float:
    """First candidate parsing to a positive finite amount; 0.0 when unknown.

    A non-numeric candidate falls through to the next one. The record is only
    rejected when no candidate parsed as a number at all.
    """
    malformed: object | None = None
    parsed = False
    for candidate in candidates:
        raw = _lookup_candidate(native, candidate)
        if raw is None:
            continue
        try:
            if isinstance(raw, bool):
                raise ValueError(raw)
            amount = float(raw) if isinstance(raw, (int, float)) else float(str(raw).translate(_CURRENCY_NOISE))
        except (OverflowError, ValueError):
            if malformed is None:
                malformed = raw
            continue
        parsed = True
        if not math.isfinite(amount) or amount <= 0:
            continue
        return amount
    if malformed is not None and not parsed:
        raise MalformedRecord(f"Non-numeric value estimate: {malformed!r}")
    return 0.0


class SourceAdapter:
    """Base class for one origin; subclasses implement :meth:`fetch_batch`."""

    family = ""

    def __init__(
        self,
        source: SourceConfig,
        client: HttpClient,
        *,
        notes_max_length: int = DEFAULT_NOTES_LENGTH,
    ) -> None:
        self.source = source
        self.client = client
        self.notes_max_length = notes_max_length

    @property
    def origin(self) -> str:
        return self.source.origin

    @property
    def timeout(self) -> TimeoutConfig:
        return timeout_from_seconds(self.source.timeout_seconds)

    def fetch_batch(self) -> list[dict]:
        raise NotImplementedError

    def coerce_date(self, value: object) -> str:
        return iso_date_prefix(value)

    def _text(self, native: dict, name: str, default: str = "") -> str:
        value = _lookup_first(native, self.source.fields.get(name, []))
        if value is None:
            return str(self.source.defaults.get(name, default))
        return str(value).strip()

    def normalize(self, native: dict, observed_at: str) -> CanonicalRecord:
        if not isinstance(native, dict):
            raise MalformedRecord(f"{self.origin}: native record is not an object")

        fields = self.source.fields
        location_text = self._text(native, "location_text")
        if not location_text:
            raise MalformedRecord(f"{self.origin}: record has no location")

        raw_date = _lookup_first(native, fields.get("event_date", []))
        event_date = self.coerce_date(raw_date) if raw_date is not None else ""
        category = self._text(native, "category")
        responsible_party = self._text(native, "responsible_party")

        native_id = _lookup_first(native, fields.get("id", []))
        if native_id is not None:
            record_key = str(native_id).strip()
        else:
            record_key = content_hash_id(self.origin, location_text, event_date, category, responsible_party)

        raw_area = _lookup_first(native, fields.get("area_key", []))
        area_key = normalise_area_key(raw_area if raw_area is not None else self.source.defaults.get("area_key"))

        return CanonicalRecord(
            id=record_id(self.source.id_prefix, record_key),
            origin=self.origin,
            location_text=location_text,
            category=category,
            value_estimate=parse_value_estimate(native, fields.get("value_estimate", [])),
            responsible_party=responsible_party,
            event_date=event_date,
            lifecycle_status=self._text(native, "lifecycle_status", DEFAULT_LIFECYCLE_STATUS),
            area_key=area_key,
            notes=self._text(native, "notes")[: self.notes_max_length],
            observed_at=observed_at,
        )

