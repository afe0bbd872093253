"""Socrata open-data adapter: the endpoint returns a flat list of records."""

from __future__ import annotations

from permitbot.common.http import MalformedEnvelope
from permitbot.harvest.base import SourceAdapter

DEFAULT_ORDER = ":created_at DESC"


class SocrataAdapter(SourceAdapter):
    family = "socrata"

    def fetch_batch(self) -> list[dict]:
        payload = self.client.get_json(
            self.source.endpoint,
            params={
                "$limit": self.source.row_cap,
                "$order": self.source.order or DEFAULT_ORDER,
            },
            timeout=self.timeout,
        )
        # Errors come back as an object with `error`/`message` instead of a list.
        if not isinstance(payload, list):
            detail = payload.get("message") if isinstance(payload, dict) else type(payload).__name__
            raise MalformedEnvelope(f"Socrata query failed for {self.origin}: {detail}")
        return payload
