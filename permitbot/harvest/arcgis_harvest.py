"""ArcGIS feature-service adapter.

Query results are feature collections; each record sits under the feature's
``attributes`` key and date fields are milliseconds since the epoch.
"""

from __future__ import annotations

from urllib.parse import urlparse

from permitbot.common.http import MalformedEnvelope
from permitbot.common.time_utils import epoch_ms_to_iso_date
from permitbot.harvest.base import SourceAdapter


def _query_url(layer_url: str) -> str:
    layer_url = layer_url.rstrip("/")
    suffix = urlparse(layer_url).path.rstrip("/").split("/")[-1]
    if suffix == "query":
        return layer_url
    return f"{layer_url}/query"


class ArcGISAdapter(SourceAdapter):
    family = "arcgis"

    def coerce_date(self, value: object) -> str:
        return epoch_ms_to_iso_date(value)

    def fetch_batch(self) -> list[dict]:
        params = {
            "where": self.source.where or "1=1",
            "outFields": "*",
            "returnGeometry": "false",
            "resultRecordCount": self.source.row_cap,
            "f": "json",
        }
        if self.source.order:
            params["orderByFields"] = self.source.order

        payload = self.client.get_json(
            _query_url(self.source.endpoint),
            params=params,
            timeout=self.timeout,
        )
        if not isinstance(payload, dict):
            raise MalformedEnvelope(f"ArcGIS query for {self.origin} returned {type(payload).__name__}")
        if "error" in payload:
            raise MalformedEnvelope(f"ArcGIS query failed for {self.origin}: {payload['error']}")

        features = payload.get("features")
        if not isinstance(features, list):
            raise MalformedEnvelope(f"ArcGIS response for {self.origin} has no features")

        rows: list[dict] = []
        for feature in features:
            attributes = feature.get("attributes") if isinstance(feature, dict) else None
            # Kept as-is so normalize() reports the bad feature without aborting the batch.
            rows.append(attributes if isinstance(attributes, dict) else feature)
        return rows
