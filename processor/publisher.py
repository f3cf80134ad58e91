"""Publication of approved staged events into the catalog."""
import logging
from typing import Dict, List, Optional, Tuple

from errors import CatalogStoreError, ConfigurationError
from processor.dedup_engine import DedupEngine
from processor.merge_resolver import union_playlists
from processor.models import CatalogEvent, PublishResult, StagedEvent
from storage.airtable_client import AirtableClient, batched

logger = logging.getLogger(__name__)


class PublicationPipeline:
    """
    Promotes Approved staged records into the Events table.

    Staged records are deduplicated before publication: records sharing an
    identity key become one catalog event carrying all of their playlists,
    and a key that already exists in the catalog is attached to the existing
    event instead of creating a new one.
    """

    def __init__(self, store, engine: Optional[DedupEngine] = None):
        """
        Args:
            store: CatalogStore for staging, playlist and event access
            engine: DedupEngine used to group records by identity key
        """
        self.store = store
        self.engine = engine or DedupEngine()

    def publish(self) -> PublishResult:
        """
        Publish every eligible staged record.

        Returns:
            PublishResult with created, attached and failed counts

        Raises:
            ConfigurationError: If a staged record names an unknown playlist
            CatalogStoreError: If a read from the store fails
        """
        staged = self.store.get_publishable_staged()
        if not staged:
            logger.info("No new events to publish")
            return PublishResult(published=0, merged=0, total=0)

        playlist_map = self._resolve_playlists(staged)
        catalog = self._index_catalog(self.store.get_catalog_events())

        result = PublishResult(published=0, merged=0, total=len(staged))
        links: List[Tuple[str, str]] = []
        pending: List[Tuple[List[StagedEvent], List[str]]] = []

        for key, members in self.engine.group_by_key(staged).items():
            playlist_ids = union_playlists(
                [playlist_map[member.playlist_handle] for member in members]
            )
            existing = catalog.get(key)
            if existing is None:
                pending.append((members, playlist_ids))
                result.merged += len(members) - 1
                continue

            if self._attach(existing, playlist_ids, result):
                links.extend((member.record_id, existing.record_id) for member in members)
                result.merged += len(members)
            else:
                result.failed += len(members)

        links.extend(self._create_events(pending, result))

        update = self.store.mark_published(links)
        result.failed += update.failed
        result.errors.extend(update.errors)

        logger.info(
            f"Publication complete: {result.published} created, "
            f"{result.merged} merged, {result.failed} failed "
            f"of {result.total} staged"
        )
        return result

    def _resolve_playlists(self, staged: List[StagedEvent]) -> Dict[str, str]:
        playlist_map = self.store.get_playlist_map()
        missing = sorted({
            item.playlist_handle for item in staged
            if item.playlist_handle not in playlist_map
        })
        if missing:
            raise ConfigurationError(
                f"Playlists not found for handles: {', '.join(missing)}. "
                f"Create them before publishing."
            )
        return playlist_map

    def _index_catalog(self, events: List[CatalogEvent]) -> Dict[str, CatalogEvent]:
        index = {}
        for event in events:
            index.setdefault(event.identity_key, event)
        return index

    def _attach(
        self,
        existing: CatalogEvent,
        playlist_ids: List[str],
        result: PublishResult
    ) -> bool:
        union = union_playlists(existing.playlist_ids, playlist_ids)
        if union == existing.playlist_ids:
            return True
        try:
            self.store.update_event_playlists(existing.record_id, union)
        except CatalogStoreError as e:
            error = f"Failed to attach playlists to {existing.record_id} ({existing.identity_key}): {e}"
            logger.error(error)
            result.errors.append(error)
            return False
        existing.playlist_ids = union
        return True

    def _create_events(
        self,
        pending: List[Tuple[List[StagedEvent], List[str]]],
        result: PublishResult
    ) -> List[Tuple[str, str]]:
        """Create one catalog event per pending group, 10 per request."""
        links = []
        for number, batch in enumerate(batched(pending, AirtableClient.BATCH_SIZE), 1):
            fields_list = [
                self.store.event_fields(
                    members[0].title, members[0].date, members[0].link, playlist_ids
                )
                for members, playlist_ids in batch
            ]
            try:
                created = self.store.create_events(fields_list)
            except CatalogStoreError as e:
                keys = ', '.join(members[0].identity_key for members, _ in batch)
                logger.error(f"Error creating event batch {number}: {e} [{keys}]")
                result.failed += sum(len(members) for members, _ in batch)
                result.errors.append(f"Event batch {number}: {e}")
                continue

            if len(created) != len(batch):
                logger.warning(
                    f"Event batch {number}: requested {len(batch)}, "
                    f"created {len(created)}"
                )
                result.failed += sum(len(members) for members, _ in batch[len(created):])

            # Airtable returns created records in request order.
            for (members, _), event_id in zip(batch, created):
                result.published += 1
                links.extend((member.record_id, event_id) for member in members)

        return links
