"""Typed access to the Events, Staging and Playlists tables."""
import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from errors import CatalogStoreError
from processor.models import (
    CatalogEvent, DraftStatus, EventDraft, EventLink, Playlist, StagedEvent,
    WriteResult, identity_key
)
from storage import formulas
from storage.airtable_client import AirtableClient, batched

logger = logging.getLogger(__name__)


class CatalogStore:
    """Manager for catalog, staging and playlist records."""

    def __init__(
        self,
        client: AirtableClient,
        events_table: str = 'Events',
        staging_table: str = 'Staging',
        playlists_table: str = 'Playlists'
    ):
        self.client = client
        self.events_table = events_table
        self.staging_table = staging_table
        self.playlists_table = playlists_table

    # Staging

    def get_staged_keys(self, source_tags: Iterable[str]) -> Set[str]:
        """
        Collect identity keys of staged records from the given sources.

        Args:
            source_tags: Source partition to read

        Returns:
            Set of ``title|date`` keys
        """
        source_tags = list(dict.fromkeys(source_tags))
        if not source_tags:
            return set()

        formula = formulas.any_equals('Source', source_tags)
        keys = {
            identity_key(
                record['fields'].get('Event', ''),
                record['fields'].get('When', '')
            )
            for record in self.client.iter_records(self.staging_table, formula)
        }
        logger.info(
            f"Loaded {len(keys)} staged keys for sources: {', '.join(source_tags)}"
        )
        return keys

    def get_publishable_staged(self) -> List[StagedEvent]:
        """Fetch Approved staged records not yet linked to a catalog event."""
        formula = formulas.and_(
            formulas.equals('Status', DraftStatus.APPROVED.value),
            formulas.is_blank('Published Event ID')
        )
        staged = []
        for record in self.client.iter_records(self.staging_table, formula):
            item = self._record_to_staged_event(record)
            if item:
                staged.append(item)
        logger.info(f"Found {len(staged)} staged records to publish")
        return staged

    def insert_staged(self, drafts: List[EventDraft]) -> WriteResult:
        """
        Write drafts to Staging in batches of 10.

        A failed batch is logged and skipped; later batches still run.

        Args:
            drafts: Drafts to insert

        Returns:
            WriteResult with written/failed counts and new record ids
        """
        result = WriteResult()
        if not drafts:
            return result

        logger.info(f"Writing {len(drafts)} drafts to {self.staging_table}")
        for number, batch in enumerate(batched(drafts, AirtableClient.BATCH_SIZE), 1):
            try:
                created = self.client.create_records(
                    self.staging_table,
                    [self._draft_to_fields(draft) for draft in batch]
                )
            except CatalogStoreError as e:
                keys = ', '.join(draft.identity_key for draft in batch)
                logger.error(f"Error writing staging batch {number}: {e} [{keys}]")
                result.failed += len(batch)
                result.errors.append(f"Staging batch {number}: {e}")
                continue

            result.written += len(created)
            result.record_ids.extend(record['id'] for record in created)

        logger.info(
            f"Wrote {result.written} staged records, {result.failed} failed"
        )
        return result

    def mark_published(self, links: List[Tuple[str, str]]) -> WriteResult:
        """
        Set staged records to Published and link them to catalog events.

        Args:
            links: (staged record id, catalog event id) pairs

        Returns:
            WriteResult with written/failed counts
        """
        result = WriteResult()
        updates = [
            {
                'id': staged_id,
                'fields': {
                    'Status': DraftStatus.PUBLISHED.value,
                    'Published Event ID': [event_id]
                }
            }
            for staged_id, event_id in links
        ]

        for number, batch in enumerate(batched(updates, AirtableClient.BATCH_SIZE), 1):
            try:
                updated = self.client.update_records(self.staging_table, batch)
            except CatalogStoreError as e:
                ids = ', '.join(update['id'] for update in batch)
                logger.error(f"Error updating staging batch {number}: {e} [{ids}]")
                result.failed += len(batch)
                result.errors.append(f"Staging update batch {number}: {e}")
                continue
            result.written += len(updated)
            result.record_ids.extend(record['id'] for record in updated)

        return result

    # Playlists

    def get_playlists(self, handles: Optional[Iterable[str]] = None) -> List[Playlist]:
        """
        Fetch playlists, optionally restricted to the given handles.

        Returns:
            List of Playlist objects
        """
        formula = None
        if handles is not None:
            handles = list(handles)
            if not handles:
                return []
            formula = formulas.any_equals('Handle', handles)

        playlists = []
        for record in self.client.iter_records(self.playlists_table, formula):
            fields = record.get('fields', {})
            if not fields.get('Handle'):
                continue
            playlists.append(Playlist(
                record_id=record['id'],
                handle=fields['Handle'],
                name=fields.get('Playlist Name'),
                owner_ids=fields.get('Playlist Owner') or [],
                verification_status=fields.get('Playlist_Verification_Status')
            ))
        return playlists

    def get_playlist_map(self, handles: Optional[Iterable[str]] = None) -> Dict[str, str]:
        """Map playlist handle to record id."""
        return {
            playlist.handle: playlist.record_id
            for playlist in self.get_playlists(handles)
        }

    # Events

    def get_catalog_events(self, formula: Optional[str] = None) -> List[CatalogEvent]:
        """
        Fetch catalog events in API order.

        Args:
            formula: Optional filterByFormula expression

        Returns:
            List of CatalogEvent objects
        """
        events = []
        for record in self.client.iter_records(self.events_table, formula):
            event = self._record_to_catalog_event(record)
            if event:
                events.append(event)
        logger.info(f"Retrieved {len(events)} catalog events")
        return events

    def find_catalog_event(self, title: str, date: str) -> Optional[CatalogEvent]:
        """Return the first catalog event with this title and date, if any."""
        formula = formulas.and_(
            formulas.equals('Event', title),
            formulas.equals('When', date)
        )
        events = self.get_catalog_events(formula)
        return events[0] if events else None

    def create_events(self, fields_list: List[Dict[str, Any]]) -> List[str]:
        """
        Create up to 10 catalog events in one request.

        Args:
            fields_list: Field dicts built with ``event_fields``

        Returns:
            Record ids of the created events, in request order
        """
        created = self.client.create_records(self.events_table, fields_list)
        return [record['id'] for record in created]

    def update_event_playlists(self, record_id: str, playlist_ids: List[str]) -> None:
        self.client.update_record(
            self.events_table, record_id, {'Playlist': playlist_ids}
        )

    def delete_event(self, record_id: str) -> None:
        self.client.delete_record(self.events_table, record_id)

    @staticmethod
    def event_fields(
        title: str,
        date: str,
        link: str,
        playlist_ids: List[str],
        submitted_by: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        fields = {
            'Event': title,
            'When': date,
            'Link': link or '',
            'Playlist': playlist_ids
        }
        if submitted_by:
            fields['Submitted_By'] = submitted_by
        return fields

    # Conversions

    def _draft_to_fields(self, draft: EventDraft) -> Dict[str, Any]:
        return {
            'Event': draft.title,
            'When': draft.date,
            'Link': draft.link,
            'Links': json.dumps([
                {'playlist': link.playlist_handle, 'url': link.url}
                for link in draft.links
            ]),
            'Playlist': draft.playlist_handle,
            'Source': draft.source_tag,
            'Status': draft.status.value
        }

    def _record_to_staged_event(self, record: dict) -> Optional[StagedEvent]:
        """
        Convert a Staging record to a StagedEvent.

        Returns:
            StagedEvent or None if required fields are missing
        """
        fields = record.get('fields', {})
        try:
            published = fields.get('Published Event ID') or []
            return StagedEvent(
                record_id=record['id'],
                title=fields['Event'],
                date=fields['When'],
                link=fields.get('Link', ''),
                source_tag=fields.get('Source', ''),
                playlist_handle=fields.get('Playlist', ''),
                links=self._parse_links(fields.get('Links')),
                status=DraftStatus(fields.get('Status', DraftStatus.APPROVED.value)),
                published_event_id=published[0] if published else None
            )
        except (KeyError, ValueError) as e:
            logger.warning(
                f"Failed to convert staging record {record.get('id')}: {e}"
            )
            return None

    def _record_to_catalog_event(self, record: dict) -> Optional[CatalogEvent]:
        fields = record.get('fields', {})
        try:
            return CatalogEvent(
                record_id=record['id'],
                title=fields['Event'],
                date=fields['When'],
                link=fields.get('Link', ''),
                playlist_ids=list(fields.get('Playlist') or []),
                submitted_by=list(fields.get('Submitted_By') or []),
                verification_status=fields.get('Playlist_Verification_Status')
            )
        except KeyError as e:
            logger.warning(
                f"Failed to convert event record {record.get('id')}: missing {e}"
            )
            return None

    @staticmethod
    def _parse_links(raw: Optional[str]) -> List[EventLink]:
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed Links value: {raw!r}")
            return []
        return [
            EventLink(playlist_handle=entry.get('playlist', ''), url=entry.get('url', ''))
            for entry in entries
            if isinstance(entry, dict)
        ]
