"""CARTO SQL API adapter: records arrive under the `rows` envelope key."""

from __future__ import annotations

from permitbot.common.http import MalformedEnvelope
from permitbot.harvest.base import SourceAdapter


class CartoAdapter(SourceAdapter):
    family = "carto"

    def build_sql(self) -> str:
        source = self.source
        sql = f"SELECT {', '.join(source.columns)} FROM {source.table}"
        if source.where:
            sql += f" WHERE {source.where}"
        if source.order:
            sql += f" ORDER BY {source.order}"
        return f"{sql} LIMIT {int(source.row_cap)}"

    def fetch_batch(self) -> list[dict]:
        payload = self.client.get_json(
            self.source.endpoint,
            params={"q": self.build_sql(), "format": "json"},
            timeout=self.timeout,
        )
        if not isinstance(payload, dict):
            raise MalformedEnvelope(f"CARTO query for {self.origin} returned {type(payload).__name__}")
        if "error" in payload:
            raise MalformedEnvelope(f"CARTO query failed for {self.origin}: {payload['error']}")
        rows = payload.get("rows")
        if not isinstance(rows, list):
            raise MalformedEnvelope(f"CARTO response for {self.origin} has no rows")
        return rows
