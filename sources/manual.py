"""Manual event submission straight into the catalog."""
import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional

from errors import ConfigurationError, InvalidPayloadError
from processor.date_parser import parse_dates
from processor.event_processor import EventProcessor
from processor.models import SubmissionResult

logger = logging.getLogger(__name__)

_ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


class ManualSubmission:
    """Creates a user-submitted event unless the catalog already has it."""

    def __init__(self, store, processor: Optional[EventProcessor] = None):
        self.store = store
        self.processor = processor or EventProcessor()

    def submit(self, payload: Dict[str, Any]) -> SubmissionResult:
        """
        Validate and create one catalog event.

        Args:
            payload: ``title``, ``date``, ``playlist`` handle, optional
                ``link`` and ``submitted_by`` user record id

        Returns:
            SubmissionResult; ``created`` is False when an event with the same
            title and date already exists

        Raises:
            InvalidPayloadError: If a required field is missing or the date
                cannot be parsed
            ConfigurationError: If the playlist handle does not exist
        """
        title = self.processor.clean_text(self._text(payload, 'title'))
        date_text = self._text(payload, 'date').strip()
        handle = self._text(payload, 'playlist').strip()
        link = self._text(payload, 'link').strip()
        submitted_by = self._text(payload, 'submitted_by').strip()

        missing = [
            name for name, value in
            (('title', title), ('date', date_text), ('playlist', handle))
            if not value
        ]
        if missing:
            raise InvalidPayloadError(f"Missing required fields: {', '.join(missing)}")

        date = self._normalize_date(date_text)

        playlist_map = self.store.get_playlist_map([handle])
        if handle not in playlist_map:
            raise ConfigurationError(f"Playlist not found: {handle}")

        existing = self.store.find_catalog_event(title, date)
        if existing is not None:
            logger.info(
                f"Submission '{title}' on {date} already in catalog as "
                f"{existing.record_id}"
            )
            return SubmissionResult(created=False, record_id=existing.record_id, date=date)

        fields = self.store.event_fields(
            title, date, link, [playlist_map[handle]],
            submitted_by=[submitted_by] if submitted_by else None
        )
        created = self.store.create_events([fields])
        record_id = created[0] if created else None
        logger.info(f"Created submitted event '{title}' on {date}: {record_id}")
        return SubmissionResult(created=True, record_id=record_id, date=date)

    @staticmethod
    def _text(payload: Dict[str, Any], name: str) -> str:
        value = payload.get(name)
        if value is None:
            return ''
        if not isinstance(value, str):
            raise InvalidPayloadError(
                f"Field '{name}' must be a string, got {type(value).__name__}"
            )
        return value

    @staticmethod
    def _normalize_date(date_text: str) -> str:
        if _ISO_DATE_RE.match(date_text):
            try:
                datetime.strptime(date_text, "%Y-%m-%d")
            except ValueError as e:
                raise InvalidPayloadError(f"Invalid date: {date_text}") from e
            return date_text
        dates = parse_dates(date_text)
        if not dates:
            raise InvalidPayloadError(f"Unparseable date: {date_text}")
        return dates[0]
