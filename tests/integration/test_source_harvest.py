from __future__ import annotations

import pytest

from permitbot.common.http import MalformedEnvelope, TransportError
from permitbot.harvest.registry import build_adapter


class FakeHttpClient:
    def __init__(self, payload):
        self.payload = payload
        self.calls: list[tuple[str, dict]] = []

    def get_json(self, url: str, **kwargs):
        self.calls.append((url, kwargs))
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    def close(self):
        return None


SOCRATA = {
    "family": "socrata",
    "endpoint": "https://data.example.test/resource/3syk-w9eu.json",
    "id_prefix": "austin",
    "fields": {"id": ["permit_num"], "location_text": ["original_address1"], "event_date": ["issue_date"]},
}

ARCGIS = {
    "family": "arcgis",
    "endpoint": "https://gis.example.test/arcgis/rest/services/Permits/FeatureServer/0",
    "order": "Date_Issued DESC",
    "row_cap": 250,
    "id_prefix": "nashville",
    "fields": {"id": ["Permit__"], "location_text": ["Address"], "event_date": ["Date_Issued"]},
}

CARTO = {
    "family": "carto",
    "endpoint": "https://carto.example.test/api/v2/sql",
    "table": "permits",
    "columns": ["permitnumber", "address", "permitissuedate"],
    "order": "permitissuedate DESC",
    "id_prefix": "philly",
    "fields": {"id": ["permitnumber"], "location_text": ["address"], "event_date": ["permitissuedate"]},
}


@pytest.mark.integration
def test_socrata_fetch_sends_limit_and_default_order():
    client = FakeHttpClient([{"permit_num": "1", "original_address1": "1 Main"}])
    adapter = build_adapter("austin", SOCRATA, client)

    rows = adapter.fetch_batch()

    url, kwargs = client.calls[0]
    assert rows == [{"permit_num": "1", "original_address1": "1 Main"}]
    assert url == SOCRATA["endpoint"]
    assert kwargs["params"] == {"$limit": 1000, "$order": ":created_at DESC"}
    assert kwargs["timeout"].read == 20.0


@pytest.mark.integration
def test_socrata_error_object_is_malformed_envelope():
    client = FakeHttpClient({"error": True, "message": "dataset not found"})
    adapter = build_adapter("austin", SOCRATA, client)

    with pytest.raises(MalformedEnvelope):
        adapter.fetch_batch()


@pytest.mark.integration
def test_arcgis_fetch_unwraps_attributes():
    client = FakeHttpClient(
        {
            "features": [
                {"attributes": {"Permit__": "P1", "Address": "1 Broadway", "Date_Issued": 1709251200000}},
                {"attributes": {"Permit__": "P2", "Address": "2 Broadway", "Date_Issued": None}},
            ]
        }
    )
    adapter = build_adapter("nashville", ARCGIS, client)

    rows = adapter.fetch_batch()
    records = [adapter.normalize(row, "2026-10-17T02:00:00.000+00:00") for row in rows]

    url, kwargs = client.calls[0]
    assert url.endswith("/FeatureServer/0/query")
    assert kwargs["params"]["orderByFields"] == "Date_Issued DESC"
    assert kwargs["params"]["resultRecordCount"] == 250
    assert kwargs["params"]["f"] == "json"
    assert [record.id for record in records] == ["nashville-P1", "nashville-P2"]
    assert records[0].event_date == "2024-03-01"
    assert records[1].event_date == ""


@pytest.mark.integration
def test_arcgis_error_payload_is_malformed_envelope():
    client = FakeHttpClient({"error": {"code": 400, "message": "Invalid query"}})
    adapter = build_adapter("nashville", ARCGIS, client)

    with pytest.raises(MalformedEnvelope):
        adapter.fetch_batch()


@pytest.mark.integration
def test_carto_fetch_builds_sql_and_reads_rows():
    client = FakeHttpClient({"rows": [{"permitnumber": "X1", "address": "1 Market St"}], "fields": {}})
    adapter = build_adapter("philadelphia", CARTO, client)

    rows = adapter.fetch_batch()

    _url, kwargs = client.calls[0]
    assert kwargs["params"]["q"] == (
        "SELECT permitnumber, address, permitissuedate FROM permits ORDER BY permitissuedate DESC LIMIT 1000"
    )
    assert kwargs["params"]["format"] == "json"
    assert rows == [{"permitnumber": "X1", "address": "1 Market St"}]


@pytest.mark.integration
def test_carto_error_envelope_is_malformed():
    client = FakeHttpClient({"error": ["relation \"permits\" does not exist"]})
    adapter = build_adapter("philadelphia", CARTO, client)

    with pytest.raises(MalformedEnvelope):
        adapter.fetch_batch()


@pytest.mark.integration
def test_transport_errors_propagate_from_fetch():
    adapter = build_adapter("austin", SOCRATA, FakeHttpClient(TransportError("HTTP status: 500")))

    with pytest.raises(TransportError):
        adapter.fetch_batch()
