"""Identity-key based duplicate detection."""
import logging
from collections import OrderedDict
from typing import Iterable, List, Sequence

from processor.models import CatalogEvent, DedupResult, MergeGroup

logger = logging.getLogger(__name__)


class DedupEngine:
    """
    Classifies records as new, duplicate or mergeable by identity key.

    Keys are exact ``title|date`` strings. The set of keys already seen is
    passed in and handed back rather than kept on the engine, so one engine
    can serve any number of runs.
    """

    def classify(self, candidates: Sequence, seen_keys: Iterable[str]) -> DedupResult:
        """
        Split candidates into new and duplicate items.

        Args:
            candidates: Items exposing an ``identity_key`` attribute
            seen_keys: Identity keys of the existing reference records

        Returns:
            DedupResult with new items, duplicate items and the updated key
            set (reference keys plus every new item's key)
        """
        working = set(seen_keys)
        new = []
        duplicates = []

        for candidate in candidates:
            key = candidate.identity_key
            if key in working:
                duplicates.append(candidate)
                logger.debug(f"Duplicate: {key}")
                continue
            working.add(key)
            new.append(candidate)

        logger.info(
            f"Classified {len(candidates)} candidates: {len(new)} new, "
            f"{len(duplicates)} duplicate"
        )
        return DedupResult(new=new, duplicates=duplicates, seen_keys=working)

    def group_by_key(self, records: Iterable) -> 'OrderedDict[str, list]':
        """Group records by identity key, preserving first-seen order."""
        by_key = OrderedDict()
        for record in records:
            by_key.setdefault(record.identity_key, []).append(record)
        return by_key

    def find_mergeable_groups(self, records: Iterable[CatalogEvent]) -> List[MergeGroup]:
        """
        Group catalog records that share an identity key.

        The keeper of each group is the first record in fetch order.

        Args:
            records: Catalog events in the order they were fetched

        Returns:
            MergeGroups for every key held by more than one record
        """
        by_key = self.group_by_key(records)
        groups = [
            MergeGroup(key=key, keeper=members[0], duplicates=members[1:])
            for key, members in by_key.items()
            if len(members) > 1
        ]

        logger.info(
            f"Found {len(groups)} duplicate groups across {len(by_key)} keys"
        )
        return groups
