"""Skiddle events search API source.

Title format: ``{eventname} ({EventCode}) @ {venue}``, e.g.
"Spirit with Inner City (CLUB) @ The British Engineerium".
"""
from typing import Any, Dict, Optional, Tuple

from sources.base import ProviderConfig, ProviderQuery

SOURCE_NAME = "Skiddle"
BASE_URL = "https://www.skiddle.com/api/v1/events/search/"
PLAYLIST = "@Skiddle"


def map_event(data: Dict[str, Any]) -> Optional[Tuple[str, str, str]]:
    """Map a Skiddle event to (title, date, link)."""
    name = (data.get("eventname") or "").strip()
    if not name:
        return None

    code = data.get("EventCode")
    venue = (data.get("venue") or {}).get("name") or "Unknown Venue"
    title = f"{name}{f' ({code})' if code else ''} @ {venue}"
    return title, data.get("date") or "", data.get("link") or ""


def _query(keyword: str) -> ProviderQuery:
    return ProviderQuery(
        label=keyword,
        params={"keyword": keyword, "limit": 50},
        playlist_handle=PLAYLIST
    )


CONFIG = ProviderConfig(
    name=SOURCE_NAME,
    url=BASE_URL,
    results_path=("results",),
    map_event=map_event,
    queries=[_query("Brighton"), _query("Worthing")],
    api_key_param="api_key"
)
