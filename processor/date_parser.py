"""Free-text date parsing for scraped event listings.

Scrapers hand us strings such as ``"Sat 25 October 2025 (doors 7pm)"`` or
``"Mon 3 - Wed 5 March 2026"``. Everything below day granularity is noise, so
times and annotations are dropped and ranges are expanded to one ISO date per
calendar day.
"""
import logging
import re
from datetime import date, timedelta
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

MONTHS = {
    'january': 1, 'february': 2, 'march': 3, 'april': 4,
    'may': 5, 'june': 6, 'july': 7, 'august': 8,
    'september': 9, 'october': 10, 'november': 11, 'december': 12,
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'jun': 6, 'jul': 7,
    'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}

WEEKDAYS = (
    'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday',
    'mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun',
)

_CLOCK = r'\d{1,2}(?:[.:]\d{2})?\s*(?:am|pm)'

_PARENTHETICAL_RE = re.compile(r'\([^)]*\)')
_TIME_RANGE_RE = re.compile(
    rf'\b{_CLOCK}\s*[-–]\s*{_CLOCK}\b|\b\d{{1,2}}:\d{{2}}\s*[-–]\s*\d{{1,2}}:\d{{2}}\b',
    re.IGNORECASE
)
_CLOCK_TIME_RE = re.compile(rf'\b{_CLOCK}\b|\b\d{{1,2}}:\d{{2}}\b', re.IGNORECASE)
_WEEKDAY_RE = re.compile(
    r'^(?:' + '|'.join(WEEKDAYS) + r')\b\.?,?\s*', re.IGNORECASE
)
_RANGE_RE = re.compile(r' [-–] ')
_TOKEN_SPLIT_RE = re.compile(r'[\s,]+')
_YEAR_RE = re.compile(r'^\d{4}$')
_DAY_RE = re.compile(r'^(\d{1,2})(?:st|nd|rd|th)?$', re.IGNORECASE)
_ISO_RE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')

Components = Tuple[Optional[int], Optional[int], Optional[int]]


def parse_dates(raw: str, today: Optional[date] = None) -> List[str]:
    """
    Parse a free-text date or date range into ISO calendar dates.

    Args:
        raw: Date text as captured by a scraper
        today: Reference date supplying the default year (default: today)

    Returns:
        List of ``YYYY-MM-DD`` strings, one per day; empty if unparseable
    """
    if not raw or not raw.strip():
        return []

    default_year = (today or date.today()).year
    text = _clean(raw)

    parts = _RANGE_RE.split(text, maxsplit=1)
    if len(parts) == 2 and parts[0].strip() and parts[1].strip():
        start, end = _parse_range(parts[0], parts[1], default_year)
        if start is None or end is None:
            logger.debug(f"Unparseable date range: {raw!r}")
            return []
        return expand_range(start, end)

    single = _parse_fragment(text.strip(' -–'), default_year)
    if single is None:
        logger.debug(f"Unparseable date: {raw!r}")
        return []
    return [single.isoformat()]


def expand_range(start: date, end: date) -> List[str]:
    """
    Expand an inclusive date range into ISO dates, one per day.

    Args:
        start: First day
        end: Last day

    Returns:
        ISO date strings; empty if start is after end
    """
    days = []
    current = start
    while current <= end:
        days.append(current.isoformat())
        current += timedelta(days=1)
    return days


def _clean(raw: str) -> str:
    text = _PARENTHETICAL_RE.sub(' ', raw)
    text = _TIME_RANGE_RE.sub(' ', text)
    text = _CLOCK_TIME_RE.sub(' ', text)
    return re.sub(r'\s+', ' ', text).strip()


def _parse_range(
    start_text: str,
    end_text: str,
    default_year: int
) -> Tuple[Optional[date], Optional[date]]:
    # End first: it carries the month and year a bare start borrows.
    end = _parse_fragment(end_text, default_year)
    if end is None:
        return None, end

    if _ISO_RE.match(start_text.strip()):
        start = _parse_fragment(start_text, default_year)
    elif _has_month(start_text):
        start_year, month, day = _components(start_text)
        start = _resolve(start_year or end.year, month, day)
        if start is not None and start_year is None and start > end:
            start = _resolve(end.year - 1, month, day)
    else:
        _, _, day = _components(start_text)
        start = _resolve(end.year, end.month, day)

    if start is not None and start > end:
        return None, end
    return start, end


def _parse_fragment(fragment: str, default_year: int) -> Optional[date]:
    iso = _ISO_RE.match(fragment.strip())
    if iso:
        return _resolve(*(int(part) for part in iso.groups()))
    year, month, day = _components(fragment)
    return _resolve(year or default_year, month, day)


def _components(fragment: str) -> Components:
    """Classify tokens into (year, month, day); first match of each wins."""
    year = month = day = None

    for token in _tokens(fragment):
        if _YEAR_RE.match(token):
            if year is None:
                year = int(token)
            continue

        day_match = _DAY_RE.match(token)
        if day_match:
            if day is None:
                day = int(day_match.group(1))
            continue

        lowered = token.lower()
        if month is None and lowered in MONTHS:
            month = MONTHS[lowered]

    return year, month, day


def _tokens(fragment: str) -> List[str]:
    fragment = _WEEKDAY_RE.sub('', fragment.strip(), count=1)
    tokens = [token.strip('.') for token in _TOKEN_SPLIT_RE.split(fragment)]
    return [token for token in tokens if token]


def _has_month(fragment: str) -> bool:
    return any(token.lower() in MONTHS for token in _tokens(fragment))


def _resolve(
    year: Optional[int],
    month: Optional[int],
    day: Optional[int]
) -> Optional[date]:
    if year is None or month is None or day is None:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None
