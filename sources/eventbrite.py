"""Eventbrite destination search source.

Each region feeds its own playlist, so both must exist before a sync.
"""
from typing import Any, Dict, Optional, Tuple

from sources.base import ProviderConfig, ProviderQuery

SOURCE_NAME = "Eventbrite"
BASE_URL = "https://www.eventbriteapi.com/v3/destination/events/"


def map_event(data: Dict[str, Any]) -> Optional[Tuple[str, str, str]]:
    """Map an Eventbrite event to (title, date, link)."""
    name = ((data.get("name") or {}).get("text") or "").strip()
    start = (data.get("start") or {}).get("local") or ""
    if not name or not start:
        return None
    return name, start.split("T")[0], data.get("url") or ""


CONFIG = ProviderConfig(
    name=SOURCE_NAME,
    url=BASE_URL,
    results_path=("events",),
    map_event=map_event,
    queries=[
        ProviderQuery(
            label="Brighton",
            params={"q": "Brighton", "page_size": 20},
            playlist_handle="@EventbriteBrighton"
        ),
        ProviderQuery(
            label="Worthing",
            params={"q": "Worthing", "page_size": 20},
            playlist_handle="@EventbriteWorthing"
        ),
    ],
    max_per_query=10
)
