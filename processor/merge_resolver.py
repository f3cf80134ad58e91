"""Merging of catalog events that share an identity key."""
import logging
from typing import Iterable, List

from errors import CatalogStoreError
from processor.models import MergeGroup, MergeResult, SweepResult

logger = logging.getLogger(__name__)


def union_playlists(*playlist_lists: Iterable[str]) -> List[str]:
    """Union playlist ids, keeping first-seen order."""
    return list(dict.fromkeys(
        playlist_id
        for playlist_ids in playlist_lists
        for playlist_id in playlist_ids
    ))


class MergeResolver:
    """Folds duplicate catalog events into their keeper."""

    def __init__(self, store):
        """
        Args:
            store: CatalogStore used to update keepers and delete duplicates
        """
        self.store = store

    def merge(self, group: MergeGroup) -> MergeResult:
        """
        Merge one duplicate group into its keeper.

        The keeper receives the union of every member's playlists; each
        duplicate is then deleted individually. A failed delete does not stop
        the others. If the keeper cannot be updated the duplicates are kept,
        since deleting them would lose their playlist links.

        Args:
            group: Keeper and duplicates sharing one identity key

        Returns:
            MergeResult with deleted and failed duplicate ids
        """
        keeper = group.keeper
        playlist_ids = union_playlists(
            keeper.playlist_ids,
            *(duplicate.playlist_ids for duplicate in group.duplicates)
        )
        result = MergeResult(keeper_id=keeper.record_id, playlist_ids=playlist_ids)

        if playlist_ids != keeper.playlist_ids:
            try:
                self.store.update_event_playlists(keeper.record_id, playlist_ids)
            except CatalogStoreError as e:
                error = f"Failed to update keeper {keeper.record_id} ({group.key}): {e}"
                logger.error(error)
                result.errors.append(error)
                result.failed = [duplicate.record_id for duplicate in group.duplicates]
                return result
            keeper.playlist_ids = playlist_ids
            result.keeper_updated = True

        for duplicate in group.duplicates:
            try:
                self.store.delete_event(duplicate.record_id)
            except CatalogStoreError as e:
                error = f"Failed to delete duplicate {duplicate.record_id} ({group.key}): {e}"
                logger.error(error)
                result.errors.append(error)
                result.failed.append(duplicate.record_id)
                continue
            result.deleted.append(duplicate.record_id)

        logger.info(
            f"Merged '{group.key}': kept {keeper.record_id}, "
            f"deleted {len(result.deleted)}, failed {len(result.failed)}"
        )
        return result

    def resolve(self, groups: List[MergeGroup], total: int = 0) -> SweepResult:
        """
        Merge every group, one after another.

        Args:
            groups: Duplicate groups to merge
            total: Number of catalog records the groups were drawn from

        Returns:
            SweepResult with merged-group, deleted and failed counts
        """
        sweep = SweepResult(total=total, groups=len(groups), merged=0, deleted=0)

        for group in groups:
            result = self.merge(group)
            sweep.deleted += len(result.deleted)
            sweep.failed += len(result.failed)
            sweep.errors.extend(result.errors)
            if not result.failed:
                sweep.merged += 1

        logger.info(
            f"Sweep complete: {sweep.merged}/{sweep.groups} groups merged, "
            f"{sweep.deleted} deleted, {sweep.failed} failed"
        )
        return sweep
