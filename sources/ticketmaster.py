"""Ticketmaster Discovery API source.

API Docs: https://developer.ticketmaster.com/products-and-docs/apis/discovery-api/v2/
"""
from typing import Any, Dict, Optional, Tuple

from sources.base import ProviderConfig, ProviderQuery

SOURCE_NAME = "Ticketmaster"
BASE_URL = "https://app.ticketmaster.com/discovery/v2/events.json"
PLAYLIST = "@Ticketmaster"


def map_event(data: Dict[str, Any]) -> Optional[Tuple[str, str, str]]:
    """Map a Ticketmaster event to (title, date, link)."""
    name = (data.get("name") or "").strip()
    date = data.get("dates", {}).get("start", {}).get("localDate")
    if not name or not date:
        return None
    return name, date, data.get("url") or ""


def _query(city: str) -> ProviderQuery:
    return ProviderQuery(
        label=city,
        params={"city": city, "countryCode": "GB", "size": 50},
        playlist_handle=PLAYLIST
    )


CONFIG = ProviderConfig(
    name=SOURCE_NAME,
    url=BASE_URL,
    results_path=("_embedded", "events"),
    map_event=map_event,
    queries=[_query("Brighton"), _query("Worthing")],
    api_key_param="apikey"
)
