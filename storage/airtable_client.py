"""Airtable REST client for record-level table operations."""
import logging
from typing import Any, Dict, Iterator, List, Optional

import requests

from errors import CatalogStoreError

logger = logging.getLogger(__name__)


def batched(items: List[Any], size: int) -> Iterator[List[Any]]:
    """Yield consecutive slices of at most ``size`` items."""
    for i in range(0, len(items), size):
        yield items[i:i + size]


class AirtableClient:
    """Thin client over the Airtable REST API for a single base."""

    API_URL = "https://api.airtable.com/v0"
    BATCH_SIZE = 10  # Airtable per-request record limit

    def __init__(
        self,
        api_key: str,
        base_id: str,
        timeout: int = 30,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            api_key: Airtable personal access token
            base_id: Airtable base identifier
            timeout: HTTP request timeout in seconds (default: 30)
            session: Optional pre-configured requests session
        """
        self.base_id = base_id
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json'
        })
        logger.info(f"Initialized AirtableClient for base: {base_id}")

    def iter_pages(
        self,
        table: str,
        formula: Optional[str] = None
    ) -> Iterator[List[Dict[str, Any]]]:
        """
        Lazily fetch pages of records, following the offset token.

        Args:
            table: Table name
            formula: Optional filterByFormula expression

        Yields:
            Lists of raw records (``{"id", "fields", "createdTime"}``)

        Raises:
            CatalogStoreError: If any page request fails
        """
        params = {}
        if formula:
            params['filterByFormula'] = formula

        page_number = 0
        while True:
            data = self._request('GET', table, params=params)
            page_number += 1
            records = data.get('records', [])
            logger.debug(
                f"Fetched page {page_number} of {table}: {len(records)} records"
            )
            yield records

            offset = data.get('offset')
            if not offset:
                break
            params = dict(params, offset=offset)

    def iter_records(
        self,
        table: str,
        formula: Optional[str] = None
    ) -> Iterator[Dict[str, Any]]:
        for page in self.iter_pages(table, formula):
            yield from page

    def create_records(
        self,
        table: str,
        fields_list: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """
        Create up to 10 records in one request.

        Args:
            table: Table name
            fields_list: Field dicts, one per record

        Returns:
            Created records in request order, with assigned ids
        """
        self._check_batch(fields_list)
        data = self._request(
            'POST', table,
            json={'records': [{'fields': fields} for fields in fields_list]}
        )
        return data.get('records', [])

    def update_records(
        self,
        table: str,
        updates: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """
        Patch up to 10 records in one request.

        Args:
            table: Table name
            updates: ``{"id": ..., "fields": {...}}`` dicts; omitted fields
                are left untouched

        Returns:
            Updated records
        """
        self._check_batch(updates)
        data = self._request('PATCH', table, json={'records': updates})
        return data.get('records', [])

    def update_record(
        self,
        table: str,
        record_id: str,
        fields: Dict[str, Any]
    ) -> Dict[str, Any]:
        return self._request('PATCH', f"{table}/{record_id}", json={'fields': fields})

    def delete_record(self, table: str, record_id: str) -> bool:
        data = self._request('DELETE', f"{table}/{record_id}")
        return bool(data.get('deleted'))

    def _check_batch(self, items: List[Any]) -> None:
        if len(items) > self.BATCH_SIZE:
            raise ValueError(
                f"Airtable accepts at most {self.BATCH_SIZE} records per "
                f"request, got {len(items)}"
            )

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.API_URL}/{self.base_id}/{path}"
        try:
            response = self.session.request(
                method, url, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error(f"Airtable {method} {path} failed: {e}")
            raise CatalogStoreError(f"Airtable request failed: {e}") from e

        if not response.ok:
            message = self._error_message(response)
            logger.error(
                f"Airtable {method} {path} returned {response.status_code}: "
                f"{message}"
            )
            raise CatalogStoreError(
                f"Airtable {method} {path} failed "
                f"({response.status_code}): {message}",
                status_code=response.status_code
            )

        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            error = response.json().get('error')
        except ValueError:
            return response.text[:200]
        if isinstance(error, dict):
            return error.get('message') or error.get('type') or str(error)
        return str(error) if error else response.reason or ''
