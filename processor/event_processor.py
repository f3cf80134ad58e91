"""Event processor for turning scraped fields into canonical drafts."""
import logging
from datetime import date
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from processor.date_parser import parse_dates
from processor.models import EventDraft, EventLink

logger = logging.getLogger(__name__)

# Registrable domain -> (source tag, playlist handle)
KNOWN_DOMAINS: Dict[str, Tuple[str, str]] = {
    'brightondome.org': ('Brighton Dome', '@BrightonDome'),
    'skiddle.com': ('Skiddle', '@Skiddle'),
    'ticketmaster.co.uk': ('Ticketmaster', '@Ticketmaster'),
    'ticketmaster.com': ('Ticketmaster', '@Ticketmaster'),
    'eventbrite.co.uk': ('Eventbrite', '@Eventbrite'),
    'eventbrite.com': ('Eventbrite', '@Eventbrite'),
    'dice.fm': ('DICE', '@DICE'),
    'seetickets.com': ('See Tickets', '@SeeTickets'),
}

_SECOND_LEVEL_SUFFIXES = {
    'co.uk', 'org.uk', 'ac.uk', 'gov.uk', 'ltd.uk', 'plc.uk',
    'com.au', 'net.au', 'org.au', 'co.nz', 'co.ie',
}


def extract_domain(url: str) -> Optional[str]:
    """
    Extract the registrable domain of a URL.

    Args:
        url: Absolute URL

    Returns:
        Lowercased domain without ``www.``, or None if the URL has no host
    """
    if not url:
        return None

    host = urlparse(url.strip()).hostname
    if not host:
        return None

    host = host.lower()
    if host.startswith('www.'):
        host = host[4:]

    labels = host.split('.')
    if len(labels) <= 2:
        return host
    if '.'.join(labels[-2:]) in _SECOND_LEVEL_SUFFIXES:
        return '.'.join(labels[-3:])
    return '.'.join(labels[-2:])


def infer_source(url: str) -> Optional[Tuple[str, str]]:
    """
    Infer the source tag and playlist handle for an event link.

    Known domains map to their provider; any other domain gets a tag built
    from its first label (``example.com`` -> ``example``, ``@example``).

    Args:
        url: Event link

    Returns:
        (source_tag, playlist_handle) or None if the link has no domain
    """
    domain = extract_domain(url)
    if not domain:
        return None

    if domain in KNOWN_DOMAINS:
        return KNOWN_DOMAINS[domain]

    tag = domain.split('.')[0]
    return tag, f"@{tag}"


class EventProcessor:
    """Builds EventDrafts from loosely structured scraped fields."""

    MAX_TITLE_LENGTH = 200
    UNTITLED = 'Untitled Event'

    def __init__(self, today: Optional[date] = None):
        """
        Initialize the processor.

        Args:
            today: Reference date for year defaulting (default: today)
        """
        self.today = today

    def build_drafts(
        self,
        name: Optional[str],
        date_text: Optional[str],
        link: Optional[str],
        subtitle: Optional[str] = None,
        category: Optional[str] = None,
        venue: Optional[str] = None,
        source_tag: Optional[str] = None,
        playlist_handle: Optional[str] = None
    ) -> List[EventDraft]:
        """
        Build one draft per day covered by the item's date text.

        Args:
            name: Primary event name
            date_text: Free-text date or date range
            link: Ticket/info URL
            subtitle: Optional subtitle
            category: Optional category or event type
            venue: Optional venue name
            source_tag: Explicit source tag, if known
            playlist_handle: Explicit playlist handle, if known

        Returns:
            List of EventDraft objects; empty if the date is unparseable or
            no source can be determined
        """
        title = self.assemble_title(name, subtitle, category, venue)
        link = (link or '').strip()

        dates = parse_dates(self.clean_text(date_text), today=self.today)
        if not dates:
            logger.warning(
                f"Dropping event '{title}': unparseable date {date_text!r}"
            )
            return []

        source = self._resolve_source(link, source_tag, playlist_handle)
        if source is None:
            logger.warning(
                f"Dropping event '{title}': no playlist and no link to infer one"
            )
            return []
        tag, handle = source

        links = [EventLink(playlist_handle=handle, url=link)] if link else []
        return [
            EventDraft(
                title=title,
                date=day,
                link=link,
                source_tag=tag,
                playlist_handle=handle,
                links=list(links)
            )
            for day in dates
        ]

    def assemble_title(
        self,
        name: Optional[str],
        subtitle: Optional[str] = None,
        category: Optional[str] = None,
        venue: Optional[str] = None
    ) -> str:
        """
        Assemble a display title as ``name - subtitle (category) @ venue``.

        Empty parts are omitted along with their separator.

        Returns:
            Title string, ``Untitled Event`` if every part is empty
        """
        name = self.clean_text(name)
        subtitle = self.clean_text(subtitle)
        category = self.clean_text(category)
        venue = self.clean_text(venue)

        title = ' - '.join(part for part in (name, subtitle) if part)
        if category:
            title = f"{title} ({category})" if title else category
        if venue:
            title = f"{title} @ {venue}" if title else venue

        if not title:
            return self.UNTITLED
        return title[:self.MAX_TITLE_LENGTH]

    def clean_text(self, value: Optional[str]) -> str:
        """Strip HTML markup and entities and collapse whitespace."""
        if not value:
            return ''
        if '<' in value or '&' in value:
            value = BeautifulSoup(value, 'html.parser').get_text(' ')
        return ' '.join(value.split())

    def _resolve_source(
        self,
        link: str,
        source_tag: Optional[str],
        playlist_handle: Optional[str]
    ) -> Optional[Tuple[str, str]]:
        if playlist_handle:
            handle = playlist_handle.strip()
            if not handle.startswith('@'):
                handle = f"@{handle}"
            return source_tag or handle[1:], handle

        inferred = infer_source(link)
        if inferred is None:
            return None
        if source_tag:
            return source_tag, inferred[1]
        return inferred
