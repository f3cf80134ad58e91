"""Unit tests for AirtableClient."""
import json
from urllib.parse import parse_qs, urlparse

import pytest
import requests
import responses

from errors import CatalogStoreError
from storage.airtable_client import AirtableClient, batched

EVENTS_URL = "https://api.airtable.com/v0/appTEST/Events"


def query(call):
    return parse_qs(urlparse(call.request.url).query)


@pytest.fixture
def client():
    return AirtableClient(api_key="key123", base_id="appTEST", timeout=5)


def test_batched_splits_without_losing_items():
    assert [len(b) for b in batched(list(range(23)), 10)] == [10, 10, 3]
    assert list(batched([], 10)) == []


class TestAirtableClient:
    """Test cases for AirtableClient."""

    @responses.activate
    def test_iter_records_follows_offset(self, client):
        responses.add(responses.GET, EVENTS_URL, status=200, json={
            "records": [{"id": "rec1", "fields": {}}], "offset": "itr1"
        })
        responses.add(responses.GET, EVENTS_URL, status=200, json={
            "records": [{"id": "rec2", "fields": {}}]
        })

        records = list(client.iter_records("Events", formula="{Status}='Approved'"))

        assert [r["id"] for r in records] == ["rec1", "rec2"]
        assert len(responses.calls) == 2
        assert "offset" not in query(responses.calls[0])
        assert query(responses.calls[1])["offset"] == ["itr1"]
        assert query(responses.calls[1])["filterByFormula"] == ["{Status}='Approved'"]
        assert responses.calls[0].request.headers["Authorization"] == "Bearer key123"

    @responses.activate
    def test_iter_pages_is_lazy(self, client):
        responses.add(responses.GET, EVENTS_URL, status=200, json={
            "records": [{"id": "rec1", "fields": {}}], "offset": "itr1"
        })

        pages = client.iter_pages("Events")
        first = next(pages)

        assert [r["id"] for r in first] == ["rec1"]
        assert len(responses.calls) == 1

    @responses.activate
    def test_create_records(self, client):
        responses.add(responses.POST, EVENTS_URL, status=200, json={
            "records": [{"id": "recA", "fields": {"Event": "Gig"}}]
        })

        created = client.create_records("Events", [{"Event": "Gig"}])

        assert created[0]["id"] == "recA"
        body = json.loads(responses.calls[0].request.body)
        assert body == {"records": [{"fields": {"Event": "Gig"}}]}

    def test_create_records_rejects_oversized_batch(self, client):
        with pytest.raises(ValueError):
            client.create_records("Events", [{"Event": str(i)} for i in range(11)])

    @responses.activate
    def test_update_record_patches_fields(self, client):
        responses.add(responses.PATCH, f"{EVENTS_URL}/rec1", status=200, json={
            "id": "rec1", "fields": {"Playlist": ["plA"]}
        })

        client.update_record("Events", "rec1", {"Playlist": ["plA"]})

        body = json.loads(responses.calls[0].request.body)
        assert body == {"fields": {"Playlist": ["plA"]}}

    @responses.activate
    def test_delete_record(self, client):
        responses.add(responses.DELETE, f"{EVENTS_URL}/rec1", status=200, json={
            "id": "rec1", "deleted": True
        })

        assert client.delete_record("Events", "rec1") is True

    @responses.activate
    def test_error_response_raises_store_error(self, client):
        responses.add(responses.POST, EVENTS_URL, status=422, json={
            "error": {"type": "INVALID_VALUE_FOR_COLUMN", "message": "Field Playlist is invalid"}
        })

        with pytest.raises(CatalogStoreError) as exc_info:
            client.create_records("Events", [{"Event": "Gig"}])

        assert exc_info.value.status_code == 422
        assert "Field Playlist is invalid" in str(exc_info.value)

    @responses.activate
    def test_connection_error_raises_store_error(self, client):
        responses.add(
            responses.GET, EVENTS_URL,
            body=requests.exceptions.ConnectionError("Connection refused")
        )

        with pytest.raises(CatalogStoreError) as exc_info:
            list(client.iter_records("Events"))

        assert exc_info.value.status_code is None
