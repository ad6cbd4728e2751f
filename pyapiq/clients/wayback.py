"""Queries the Internet Archive Wayback Machine.

Two endpoints are used: the availability API, which returns the snapshot
closest to a timestamp, and the CDX API, which lists captures.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..core.base_client import BaseClient, query_string

logger = logging.getLogger(__name__)

AVAILABILITY_URL = "https://archive.org/wayback/available"
CDX_URL = "https://web.archive.org/cdx/search/cdx"
ARCHIVE_URL = "https://web.archive.org/web"


class WaybackClient(BaseClient):
    """Looks up archived snapshots of a URL."""

    name = "wayback"
    description = "Snapshot lookups against the Wayback Machine."
    default_ttl = 3600

    async def availability(self, url: str, timestamp: Optional[str] = None, bypass_cache: bool = False) -> Optional[Dict[str, Any]]:
        """Returns the closest archived snapshot of `url`, if any.

        Args:
            url (str): The page URL to look up.
            timestamp (Optional[str]): A `YYYYMMDDhhmmss` prefix to aim for.
                Defaults to the most recent snapshot.
            bypass_cache (bool): Ignore any cached copy.

        Returns:
            Optional[Dict[str, Any]]: The `closest` snapshot (url, timestamp,
            status, available), or None when the page was never archived.
        """
        api_url = f"{AVAILABILITY_URL}?{query_string({'url': url, 'timestamp': timestamp})}"
        data = await self.fetch(api_url, bypass_cache=bypass_cache)
        closest = (data.get("archived_snapshots") or {}).get("closest")
        if not closest or not closest.get("available"):
            return None
        return closest

    async def list_captures(
        self,
        url: str,
        limit: int = 10,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        bypass_cache: bool = False,
    ) -> List[Dict[str, str]]:
        """Lists captures of `url` from the CDX index.

        The CDX API answers with a list of rows whose first row holds the
        column names; rows are returned here as dicts keyed by those names.
        A negative `limit` asks for the most recent captures.

        Args:
            url (str): The page URL.
            limit (int): Maximum number of captures.
            from_date (Optional[str]): Earliest timestamp prefix.
            to_date (Optional[str]): Latest timestamp prefix.
            bypass_cache (bool): Ignore any cached copy.

        Returns:
            List[Dict[str, str]]: Captures with `timestamp`, `original`,
            `statuscode`, `mimetype` and the other CDX columns.
        """
        params = {"url": url, "output": "json", "limit": limit, "from": from_date, "to": to_date}
        rows = await self.fetch(f"{CDX_URL}?{query_string(params)}", bypass_cache=bypass_cache, parse_response=_parse_cdx)
        if not rows:
            return []
        header, *records = rows
        return [dict(zip(header, record)) for record in records]


def _parse_cdx(response: httpx.Response) -> List[List[str]]:
    # An empty body means no captures, not a malformed response.
    if not response.content.strip():
        return []
    rows = response.json()
    if not isinstance(rows, list):
        raise ValueError("CDX response is not a list")
    return rows


def build_archive_url(timestamp: str, url: str, modifier: str = "id_") -> str:
    """Builds a replay URL. "id_" returns the raw archived bytes, "im_" a screenshot."""
    return f"{ARCHIVE_URL}/{timestamp}{modifier}/{url}"


def format_timestamp(ts: str) -> str:
    """Formats `YYYYMMDDhhmmss` as `YYYY-MM-DD hh:mm:ss`."""
    ts = ts.ljust(14, "0")
    return f"{ts[0:4]}-{ts[4:6]}-{ts[6:8]} {ts[8:10]}:{ts[10:12]}:{ts[12:14]}"
