"""Data models for event ingestion and publication."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DraftStatus(str, Enum):
    """Staging lifecycle marker."""
    APPROVED = 'Approved'
    PUBLISHED = 'Published'


def identity_key(title: str, date: str) -> str:
    """Deduplication fingerprint shared by drafts, staged and catalog events."""
    return f"{title}|{date}"


@dataclass
class EventLink:
    """Provenance link collected for an event, keyed by playlist handle."""
    playlist_handle: str
    url: str


@dataclass
class EventDraft:
    """Canonical event produced by a source adapter before persistence."""
    title: str
    date: str
    link: str
    source_tag: str
    playlist_handle: str
    links: List[EventLink] = field(default_factory=list)
    status: DraftStatus = DraftStatus.APPROVED

    @property
    def identity_key(self) -> str:
        return identity_key(self.title, self.date)


@dataclass
class StagedEvent:
    """Draft persisted in the Staging table."""
    record_id: str
    title: str
    date: str
    link: str
    source_tag: str
    playlist_handle: str
    links: List[EventLink] = field(default_factory=list)
    status: DraftStatus = DraftStatus.APPROVED
    published_event_id: Optional[str] = None

    @property
    def identity_key(self) -> str:
        return identity_key(self.title, self.date)


@dataclass
class CatalogEvent:
    """Published event in the Events table."""
    record_id: str
    title: str
    date: str
    link: str
    playlist_ids: List[str] = field(default_factory=list)
    submitted_by: List[str] = field(default_factory=list)
    verification_status: Optional[str] = None

    @property
    def identity_key(self) -> str:
        return identity_key(self.title, self.date)


@dataclass
class Playlist:
    """Curation channel that events are listed under."""
    record_id: str
    handle: str
    name: Optional[str] = None
    owner_ids: List[str] = field(default_factory=list)
    verification_status: Optional[str] = None


@dataclass
class DedupResult:
    """Classification of a candidate batch against known identity keys."""
    new: List[Any]
    duplicates: List[Any]
    seen_keys: set


@dataclass
class MergeGroup:
    """Catalog events sharing one identity key."""
    key: str
    keeper: CatalogEvent
    duplicates: List[CatalogEvent]


@dataclass
class MergeResult:
    """Outcome of merging one group."""
    keeper_id: str
    playlist_ids: List[str]
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    keeper_updated: bool = False
    errors: List[str] = field(default_factory=list)


@dataclass
class WriteResult:
    """Result of a batched write."""
    written: int = 0
    failed: int = 0
    record_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class SyncResult:
    """Result of an adapter run into Staging."""
    synced: int
    total: int
    skipped: int
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_summary(self) -> Dict[str, Any]:
        return {
            'success': True,
            'synced': self.synced,
            'total': self.total,
            'skipped': self.skipped,
            'failed': self.failed,
            'errors': self.errors
        }


@dataclass
class PublishResult:
    """Result of a publication run."""
    published: int
    merged: int
    total: int
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_summary(self) -> Dict[str, Any]:
        return {
            'success': True,
            'published': self.published,
            'merged': self.merged,
            'total': self.total,
            'failed': self.failed,
            'errors': self.errors
        }


@dataclass
class SweepResult:
    """Result of a catalog-level dedup sweep."""
    total: int
    groups: int
    merged: int
    deleted: int
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_summary(self) -> Dict[str, Any]:
        return {
            'success': True,
            'total': self.total,
            'groups': self.groups,
            'merged': self.merged,
            'deleted': self.deleted,
            'failed': self.failed,
            'errors': self.errors
        }


@dataclass
class WebhookResult:
    """Result of a webhook delivery."""
    inserted: int
    skipped: int
    total: int
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_summary(self) -> Dict[str, Any]:
        return {
            'success': True,
            'inserted': self.inserted,
            'skipped': self.skipped,
            'total': self.total,
            'failed': self.failed,
            'errors': self.errors
        }


@dataclass
class SubmissionResult:
    """Result of a manual event submission."""
    created: bool
    record_id: Optional[str]
    date: str

    def to_summary(self) -> Dict[str, Any]:
        return {
            'success': True,
            'created': self.created,
            'skipped': not self.created,
            'record_id': self.record_id,
            'date': self.date
        }
