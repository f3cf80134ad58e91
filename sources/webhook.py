"""Receiver for scraper webhook deliveries.

Scrapers post captured lists of loosely structured items::

    {
        "source": "brighton-dome",          # optional named profile
        "task": {
            "capturedLists": {
                "Events": [
                    {"Title": "...", "Subtitle": "...", "Date": "Fri 3 - Sun 5 Oct",
                     "Link": "https://..."}
                ]
            }
        }
    }

``result`` is accepted in place of ``task``, and a single item may be posted
as ``{"source": ..., "data": {...}}``.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from errors import InvalidPayloadError
from processor.dedup_engine import DedupEngine
from processor.event_processor import EventProcessor
from processor.models import EventDraft, WebhookResult

logger = logging.getLogger(__name__)


@dataclass
class SourceProfile:
    """Fixed provenance for a known scraper."""
    source_tag: str
    playlist_handle: str


SOURCE_PROFILES: Dict[str, SourceProfile] = {
    'brighton-dome': SourceProfile('Brighton Dome', '@BrightonDome'),
}

FIELD_ALIASES = {
    'name': ('title', 'name', 'event', 'event name'),
    'subtitle': ('subtitle', 'support'),
    'category': ('category', 'type', 'genre'),
    'venue': ('venue', 'location'),
    'date': ('date', 'dates', 'when'),
    'link': ('link', 'url', 'event link'),
    'playlist': ('playlist',),
}


def _field(item: Dict[str, Any], name: str) -> Optional[str]:
    lowered = {str(key).strip().lower(): value for key, value in item.items()}
    for alias in FIELD_ALIASES[name]:
        value = lowered.get(alias)
        if value not in (None, ''):
            return str(value)
    return None


class WebhookAdapter:
    """Turns webhook items into staged drafts, skipping known events."""

    def __init__(
        self,
        store,
        engine: Optional[DedupEngine] = None,
        processor: Optional[EventProcessor] = None
    ):
        self.store = store
        self.engine = engine or DedupEngine()
        self.processor = processor or EventProcessor()

    def handle(self, payload: Dict[str, Any]) -> WebhookResult:
        """
        Stage the new events in a webhook delivery.

        Items are deduplicated against staged records from the same sources.
        Items without a parseable date are dropped and counted as skipped.

        Args:
            payload: Decoded webhook body

        Returns:
            WebhookResult; ``total`` counts candidate events (one per day of
            each parseable item plus one per dropped item)

        Raises:
            InvalidPayloadError: If the payload shape or source is unknown
            CatalogStoreError: If reading staging fails
        """
        profile = self._profile(payload.get('source'))
        items = self.extract_items(payload)
        drafts, dropped = self.to_drafts(items, profile)

        source_tags = [draft.source_tag for draft in drafts]
        existing_keys = self.store.get_staged_keys(source_tags)
        dedup = self.engine.classify(drafts, existing_keys)
        write = self.store.insert_staged(dedup.new)

        total = len(drafts) + dropped
        result = WebhookResult(
            inserted=write.written,
            skipped=total - len(dedup.new),
            total=total,
            failed=write.failed,
            errors=write.errors
        )
        logger.info(
            f"Webhook processed: {result.inserted} inserted, "
            f"{result.skipped} skipped of {result.total}"
        )
        return result

    def extract_items(self, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Pull raw items out of the delivery wrapper.

        Raises:
            InvalidPayloadError: If no captured items can be found
        """
        if not isinstance(payload, dict):
            raise InvalidPayloadError("Webhook payload must be a JSON object")

        wrapper = payload.get('task') or payload.get('result')
        if isinstance(wrapper, dict):
            captured = wrapper.get('capturedLists')
            if not isinstance(captured, dict):
                raise InvalidPayloadError("Webhook payload has no capturedLists")

            list_name = payload.get('list')
            if list_name is not None:
                if list_name not in captured:
                    raise InvalidPayloadError(f"Captured list not found: {list_name}")
                lists = [captured[list_name]]
            else:
                lists = list(captured.values())

            return [
                item for items in lists if isinstance(items, list)
                for item in items if isinstance(item, dict)
            ]

        data = payload.get('data')
        if isinstance(data, dict):
            return [data]
        if isinstance(data, list):
            return [item for item in data if isinstance(item, dict)]

        raise InvalidPayloadError("Webhook payload has no task, result or data")

    def to_drafts(
        self,
        items: List[Dict[str, Any]],
        profile: Optional[SourceProfile] = None
    ) -> Tuple[List[EventDraft], int]:
        """
        Build drafts for every item.

        Returns:
            (drafts, number of items dropped)
        """
        drafts = []
        dropped = 0
        for item in items:
            playlist = _field(item, 'playlist')
            item_drafts = self.processor.build_drafts(
                name=_field(item, 'name'),
                date_text=_field(item, 'date'),
                link=_field(item, 'link'),
                subtitle=_field(item, 'subtitle'),
                category=_field(item, 'category'),
                venue=_field(item, 'venue'),
                source_tag=profile.source_tag if profile else None,
                playlist_handle=playlist or (profile.playlist_handle if profile else None)
            )
            if not item_drafts:
                dropped += 1
            drafts.extend(item_drafts)
        return drafts, dropped

    @staticmethod
    def _profile(source: Optional[str]) -> Optional[SourceProfile]:
        if source is None:
            return None
        profile = SOURCE_PROFILES.get(source)
        if profile is None:
            raise InvalidPayloadError(f"Unknown source: {source}")
        return profile
