"""Queries the npm registry and the npm downloads API."""
import logging
import re
import time
from typing import Any, Dict, List, Optional, Union

from ..core.base_client import BaseClient, query_string
from ..core.exceptions import NotFoundError

logger = logging.getLogger(__name__)

REGISTRY_URL = "https://registry.npmjs.org"
DOWNLOADS_URL = "https://api.npmjs.org/downloads"


class NpmClient(BaseClient):
    """Searches npm and fetches package documents and download counts."""

    name = "npm-registry"
    description = "Package search, metadata and downloads from the npm registry."
    default_ttl = 21600

    SEARCH_TTL = 3600
    EXISTS_TTL = 3600
    DOWNLOADS_TTL = 86400

    async def search(self, query: str, size: int = 20, offset: int = 0, bypass_cache: bool = False) -> List[Dict[str, Any]]:
        """Searches the registry.

        Args:
            query (str): Free-text search terms.
            size (int): Maximum number of results.
            offset (int): Number of results to skip.
            bypass_cache (bool): Ignore any cached copy.

        Returns:
            List[Dict[str, Any]]: One dict per hit with name, version,
            description and score.
        """
        url = f"{REGISTRY_URL}/-/v1/search?{query_string({'text': query, 'size': size, 'from': offset})}"
        data = await self.fetch(url, ttl=self.SEARCH_TTL, bypass_cache=bypass_cache)
        results = []
        for item in data.get("objects", []):
            package = item.get("package", {})
            results.append({
                "name": package.get("name"),
                "version": package.get("version"),
                "description": package.get("description") or "",
                "score": (item.get("score") or {}).get("final"),
                "links": package.get("links") or {},
            })
        return results

    async def get_package(self, name: str, bypass_cache: bool = False) -> Dict[str, Any]:
        """Fetches the registry document for a package.

        Raises:
            NotFoundError: If the package does not exist.
        """
        return await self.fetch(f"{REGISTRY_URL}/{_encode_name(name)}", bypass_cache=bypass_cache)

    async def exists(self, name: str, bypass_cache: bool = False) -> bool:
        """Checks whether a package name is taken, using a HEAD request."""
        try:
            await self.fetch(
                f"{REGISTRY_URL}/{_encode_name(name)}",
                ttl=self.EXISTS_TTL,
                bypass_cache=bypass_cache,
                cache_key=f"exists-{_encode_name(name)}",
                fetch_options={"method": "HEAD"},
                parse_response=lambda response: {"exists": True, "timestamp": int(time.time() * 1000)},
            )
        except NotFoundError:
            return False
        return True

    async def downloads(self, name: str, period: str = "last-month", bypass_cache: bool = False) -> Dict[str, Any]:
        """Fetches daily download counts for a period.

        Args:
            name (str): The package name.
            period (str): "last-day", "last-week", "last-month", "last-year"
                or a "YYYY-MM-DD:YYYY-MM-DD" range.
            bypass_cache (bool): Ignore any cached copy.

        Returns:
            Dict[str, Any]: The API payload plus a computed `total`.
        """
        data = await self.fetch(
            f"{DOWNLOADS_URL}/range/{period}/{_encode_name(name)}",
            ttl=self.DOWNLOADS_TTL,
            bypass_cache=bypass_cache,
        )
        data["total"] = sum(day.get("downloads", 0) for day in data.get("downloads", []))
        return data


def _encode_name(name: str) -> str:
    # Scoped packages keep the "@" but need their slash escaped.
    return name.replace("/", "%2F")


def parse_repository_url(repo: Optional[Union[str, Dict[str, Any]]]) -> Optional[str]:
    """Normalizes the `repository` field of a package document to a web URL."""
    if not repo:
        return None
    url = repo if isinstance(repo, str) else repo.get("url")
    if not url:
        return None
    url = re.sub(r"^git\+", "", url)
    url = re.sub(r"^git:", "https:", url)
    url = re.sub(r"^git@github\.com:", "https://github.com/", url)
    url = re.sub(r"^ssh://git@github\.com/", "https://github.com/", url)
    return re.sub(r"\.git$", "", url)


def latest_version(package: Dict[str, Any]) -> Optional[str]:
    return (package.get("dist-tags") or {}).get("latest")
