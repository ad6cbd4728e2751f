"""File-backed JSON cache store for a single namespace.

Each entry lives in its own `{key}.json` file inside
`{root}/{namespace}-cache/`. The store only records when an entry was
written; whether it is still fresh is decided by whoever reads it.
"""
import json
import logging
import os
import tempfile
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import aiofiles
import aiofiles.os

from ..core.exceptions import CacheError

logger = logging.getLogger(__name__)

TIMESTAMP_FIELD = "localCacheTimestamp"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CacheEntry:
    """A cached value and the time it was stored.

    Attributes:
        data (Any): The cached JSON-compatible value.
        stored_at (int): Write time in milliseconds since the epoch.
    """

    data: Any
    stored_at: int

    def age_seconds(self, now_ms: Optional[int] = None) -> float:
        """Returns how long ago the entry was written."""
        now_ms = _now_ms() if now_ms is None else now_ms
        return (now_ms - self.stored_at) / 1000

    def is_expired(self, ttl: float, now_ms: Optional[int] = None) -> bool:
        """Checks the entry against a reader-supplied TTL in seconds."""
        now_ms = _now_ms() if now_ms is None else now_ms
        return now_ms > self.stored_at + ttl * 1000


class CacheStore:
    """Persists one JSON document per key under a namespace directory.

    Filesystem problems are reported as `CacheError`. Deciding whether to
    ignore them is left to the caller (normally `CacheManager`).

    Attributes:
        namespace (str): The logical cache name, e.g. "npm-registry".
        cache_dir (Path): The directory holding this namespace's entries.
    """

    def __init__(self, namespace: str, root: Optional[Union[str, Path]] = None) -> None:
        """Initializes the store. No filesystem access happens here.

        Args:
            namespace (str): The cache namespace. Must be a plain name.
            root (Optional[Union[str, Path]]): The parent directory for
                namespace directories. Defaults to the system temp dir.

        Raises:
            ValueError: If the namespace is empty or contains a path
                separator.
        """
        if not namespace or "/" in namespace or "\\" in namespace or namespace in (".", ".."):
            raise ValueError(f"Invalid cache namespace: {namespace!r}")
        self.namespace = namespace
        base = Path(root) if root else Path(tempfile.gettempdir())
        self.cache_dir = base / f"{namespace}-cache"

    def path_for(self, key: str) -> Path:
        """Returns the file path backing `key`."""
        return self.cache_dir / f"{key}.json"

    async def read(self, key: str, ttl: float) -> Optional[CacheEntry]:
        """Loads an entry if it exists and is younger than `ttl` seconds.

        An expired entry is deleted on the way out. Failure to delete it is
        ignored, since the next write replaces it anyway.

        Args:
            key (str): The cache key.
            ttl (float): The maximum acceptable age in seconds.

        Returns:
            Optional[CacheEntry]: The entry, or None if absent or expired.

        Raises:
            CacheError: If the file exists but cannot be read or decoded.
        """
        path = self.path_for(key)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise CacheError(f"Could not read cache entry {path}: {e}") from e

        try:
            payload = json.loads(content)
            entry = CacheEntry(data=payload["data"], stored_at=int(payload[TIMESTAMP_FIELD]))
        except (ValueError, KeyError, TypeError, OverflowError) as e:
            raise CacheError(f"Malformed cache entry {path}: {e}") from e

        if entry.is_expired(ttl):
            logger.debug(f"Cache entry {key} in '{self.namespace}' expired after {entry.age_seconds():.0f}s")
            try:
                await aiofiles.os.remove(path)
            except OSError:
                pass
            return None

        return entry

    async def write(self, key: str, data: Any) -> CacheEntry:
        """Stores `data` under `key`, stamped with the current time.

        The document is written to a temporary sibling first and then moved
        into place, so readers never see a half-written file.

        Args:
            key (str): The cache key.
            data (Any): A JSON-serializable value.

        Returns:
            CacheEntry: The entry that was written.

        Raises:
            CacheError: If the directory cannot be created, the value cannot
                be serialized, or the file cannot be written.
        """
        entry = CacheEntry(data=data, stored_at=_now_ms())
        try:
            document = json.dumps({"data": entry.data, TIMESTAMP_FIELD: entry.stored_at})
        except (TypeError, ValueError) as e:
            raise CacheError(f"Value for cache key {key} is not JSON-serializable: {e}") from e

        path = self.path_for(key)
        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.{uuid.uuid4().hex}.tmp")
        try:
            await aiofiles.os.makedirs(self.cache_dir, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(document)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            try:
                await aiofiles.os.remove(tmp_path)
            except OSError:
                pass
            raise CacheError(f"Could not write cache entry {path}: {e}") from e

        return entry

    async def clear(self) -> int:
        """Deletes every entry in the namespace.

        Returns:
            int: The number of entries removed. A missing directory counts
            as zero.

        Raises:
            CacheError: If the directory cannot be listed or an entry cannot
                be removed.
        """
        try:
            names = await aiofiles.os.listdir(self.cache_dir)
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise CacheError(f"Could not list cache directory {self.cache_dir}: {e}") from e

        removed = 0
        for name in names:
            if not name.endswith(".json"):
                continue
            try:
                await aiofiles.os.remove(self.cache_dir / name)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise CacheError(f"Could not remove cache entry {name}: {e}") from e
            removed += 1
        return removed
