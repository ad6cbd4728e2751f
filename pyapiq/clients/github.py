"""Queries the GitHub REST API for repositories, READMEs, users and quota."""
import base64
import logging
import os
import re
import time
from typing import Any, Dict, Optional, Tuple

from ..core.base_client import BaseClient

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"

_REPO_PATTERNS = (
    re.compile(r"^(?:git\+)?https?://(?:www\.)?github\.com/([^/\s]+)/([^/\s#?]+)"),
    re.compile(r"^(?:www\.)?github\.com/([^/\s]+)/([^/\s#?]+)"),
    re.compile(r"^git@github\.com:([^/\s]+)/([^/\s]+)"),
    re.compile(r"^ssh://git@github\.com/([^/\s]+)/([^/\s]+)"),
    re.compile(r"^([A-Za-z0-9][\w.-]*)/([\w.-]+)$"),
)


def parse_repository(value: str) -> Optional[Tuple[str, str]]:
    """Extracts `(owner, repo)` from a GitHub URL, SSH remote or "owner/repo".

    Returns:
        Optional[Tuple[str, str]]: The pair, or None if `value` is not a
        GitHub repository reference.
    """
    value = value.strip()
    for pattern in _REPO_PATTERNS:
        match = pattern.match(value)
        if match:
            owner, repo = match.groups()
            return owner, re.sub(r"\.git$", "", repo)
    return None


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_reset_time(reset: float, now: Optional[float] = None) -> str:
    """Describes how long until an epoch-seconds reset time, e.g. "1 hour 5 minutes"."""
    remaining = reset - (time.time() if now is None else now)
    if remaining <= 0:
        return "Now"
    minutes = int(remaining // 60)
    if minutes < 1:
        return _plural(int(remaining), "second")
    if minutes < 60:
        return _plural(minutes, "minute")
    hours, minutes = divmod(minutes, 60)
    if minutes:
        return f"{_plural(hours, 'hour')} {_plural(minutes, 'minute')}"
    return _plural(hours, "hour")


class GitHubClient(BaseClient):
    """Reads public GitHub data, authenticated when a token is configured.

    The token comes from the `github_token` setting, or the `GITHUB_TOKEN`
    environment variable when that is unset.
    """

    name = "github-api"
    description = "Repository, README, user and rate-limit lookups on GitHub."
    default_ttl = 3600

    REPO_TTL = 1800
    README_TTL = 3600
    USER_TTL = 3600
    RATE_LIMIT_TTL = 300

    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        token = self.config.get("github_token") or os.getenv("GITHUB_TOKEN")
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _get(self, path: str, cache_key: str, ttl: int, bypass_cache: bool) -> Any:
        return await self.fetch(
            f"{API_URL}{path}",
            ttl=ttl,
            cache_key=cache_key,
            bypass_cache=bypass_cache,
            fetch_options={"headers": self.headers()},
        )

    async def repo(self, owner: str, repo: str, bypass_cache: bool = False) -> Dict[str, Any]:
        """Fetches repository metadata.

        Raises:
            NotFoundError: If the repository does not exist or is private.
        """
        return await self._get(f"/repos/{owner}/{repo}", f"repo-{owner}-{repo}", self.REPO_TTL, bypass_cache)

    async def readme(self, owner: str, repo: str, bypass_cache: bool = False) -> Dict[str, Any]:
        """Fetches the README and decodes its base64 `content` into `text`."""
        data = await self._get(f"/repos/{owner}/{repo}/readme", f"readme-{owner}-{repo}", self.README_TTL, bypass_cache)
        if data.get("encoding") == "base64" and data.get("content"):
            data["text"] = base64.b64decode(data["content"]).decode("utf-8", errors="replace")
        return data

    async def user(self, username: str, bypass_cache: bool = False) -> Dict[str, Any]:
        return await self._get(f"/users/{username}", f"user-{username}", self.USER_TTL, bypass_cache)

    async def rate_limit(self, bypass_cache: bool = False) -> Dict[str, Any]:
        """Fetches the current quota. Only the `core` and `search` buckets are kept."""
        data = await self._get("/rate_limit", "rate-limit", self.RATE_LIMIT_TTL, bypass_cache)
        resources = data.get("resources") or {}
        return {name: resources[name] for name in ("core", "search") if name in resources}
