"""Configurable adapter for ticketing APIs that return structured events."""
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import requests

from errors import ConfigurationError, UpstreamFetchError
from processor.dedup_engine import DedupEngine
from processor.models import EventDraft, EventLink, SyncResult

logger = logging.getLogger(__name__)

# raw provider record -> (title, ISO date, link), or None to drop it
FieldMapping = Callable[[Dict[str, Any]], Optional[Tuple[str, str, str]]]

_ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


@dataclass
class ProviderQuery:
    """One search against a provider, feeding one playlist."""
    label: str
    params: Dict[str, Any]
    playlist_handle: str


@dataclass
class ProviderConfig:
    """Everything that differs between ticketing providers."""
    name: str
    url: str
    results_path: Tuple[str, ...]
    map_event: FieldMapping
    queries: List[ProviderQuery] = field(default_factory=list)
    api_key_param: Optional[str] = None  # None sends a bearer token
    max_per_query: Optional[int] = None

    @property
    def playlist_handles(self) -> List[str]:
        return list(dict.fromkeys(query.playlist_handle for query in self.queries))


def extract_path(data: Any, path: Sequence[str]) -> List[Dict[str, Any]]:
    """Walk nested dicts along ``path``; missing keys yield an empty list."""
    for key in path:
        if not isinstance(data, dict):
            return []
        data = data.get(key)
    return data if isinstance(data, list) else []


class ProviderAdapter:
    """Fetches provider events and stages the ones not seen before."""

    def __init__(
        self,
        config: ProviderConfig,
        api_key: str,
        store,
        engine: Optional[DedupEngine] = None,
        timeout: int = 30,
        max_workers: int = 4
    ):
        """
        Initialize the adapter.

        Args:
            config: Provider configuration
            api_key: Provider API key or token
            store: CatalogStore used for staging reads and writes
            engine: DedupEngine (default: new instance)
            timeout: HTTP request timeout in seconds (default: 30)
            max_workers: Concurrent provider queries (default: 4)
        """
        if not api_key:
            raise ConfigurationError(f"No API key configured for {config.name}")
        self.config = config
        self.api_key = api_key
        self.store = store
        self.engine = engine or DedupEngine()
        self.timeout = timeout
        self.max_workers = max_workers

    def run(self) -> SyncResult:
        """
        Fetch, deduplicate against this provider's staging partition, and
        stage new events.

        Returns:
            SyncResult with synced, skipped and failed counts

        Raises:
            UpstreamFetchError: If any provider query fails (nothing is written)
            ConfigurationError: If a configured playlist does not exist
            CatalogStoreError: If reading staging or playlists fails
        """
        logger.info(f"Starting {self.config.name} sync")

        raw_events = self.fetch_events()
        drafts = self.to_drafts(raw_events)

        self.verify_playlists()
        existing_keys = self.store.get_staged_keys([self.config.name])
        dedup = self.engine.classify(drafts, existing_keys)

        write = self.store.insert_staged(dedup.new)

        result = SyncResult(
            synced=write.written,
            total=len(raw_events),
            skipped=len(raw_events) - len(dedup.new),
            failed=write.failed,
            errors=write.errors
        )
        logger.info(
            f"{self.config.name} sync complete: {result.synced} synced, "
            f"{result.skipped} skipped, {result.failed} failed "
            f"of {result.total} fetched"
        )
        return result

    def fetch_events(self) -> List[Tuple[ProviderQuery, Dict[str, Any]]]:
        """
        Run every configured query concurrently.

        Returns:
            (query, raw event) pairs, grouped in query order

        Raises:
            UpstreamFetchError: If any query fails
        """
        workers = max(1, min(self.max_workers, len(self.config.queries)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            pages = list(executor.map(self._fetch_query, self.config.queries))

        raw_events = [
            (query, item)
            for query, items in zip(self.config.queries, pages)
            for item in items
        ]
        logger.info(f"Fetched {len(raw_events)} raw events from {self.config.name}")
        return raw_events

    def to_drafts(
        self,
        raw_events: List[Tuple[ProviderQuery, Dict[str, Any]]]
    ) -> List[EventDraft]:
        """Map raw provider records to drafts, dropping unusable ones."""
        drafts = []
        for query, item in raw_events:
            if not isinstance(item, dict):
                logger.warning(
                    f"Skipping malformed {self.config.name} record: {item!r}"
                )
                continue
            try:
                mapped = self.config.map_event(item)
            except (KeyError, TypeError, AttributeError, IndexError) as e:
                logger.warning(
                    f"Failed to map {self.config.name} event {item.get('id')}: {e}"
                )
                continue

            if mapped is None:
                continue
            title, date, link = mapped
            if not title or not date or not _ISO_DATE_RE.match(date):
                logger.warning(
                    f"Skipping {self.config.name} event with bad title/date: "
                    f"{title!r} {date!r}"
                )
                continue

            drafts.append(EventDraft(
                title=title,
                date=date,
                link=link or '',
                source_tag=self.config.name,
                playlist_handle=query.playlist_handle,
                links=[EventLink(playlist_handle=query.playlist_handle, url=link or '')]
            ))
        return drafts

    def verify_playlists(self) -> None:
        """
        Check that every configured playlist handle exists.

        Raises:
            ConfigurationError: Naming the missing handles
        """
        handles = self.config.playlist_handles
        found = {playlist.handle for playlist in self.store.get_playlists(handles)}
        missing = [handle for handle in handles if handle not in found]
        if missing:
            raise ConfigurationError(
                f"Playlists not found: {', '.join(missing)}. "
                f"Create them in Airtable first."
            )

    def _fetch_query(self, query: ProviderQuery) -> List[Dict[str, Any]]:
        params = dict(query.params)
        headers = {}
        if self.config.api_key_param:
            params[self.config.api_key_param] = self.api_key
        else:
            headers['Authorization'] = f'Bearer {self.api_key}'

        try:
            logger.info(f"Querying {self.config.name} for {query.label}")
            response = requests.get(
                self.config.url,
                params=params,
                headers=headers,
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"{self.config.name} query '{query.label}' failed: {e}")
            raise UpstreamFetchError(
                self.config.name, f"query '{query.label}' failed: {e}"
            ) from e

        items = extract_path(data, self.config.results_path)
        if self.config.max_per_query is not None:
            items = items[:self.config.max_per_query]
        return items
