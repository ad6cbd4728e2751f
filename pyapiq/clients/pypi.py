"""Provides a client for the PyPI JSON API.

This module fetches package metadata from the Python Package Index through
the shared cache and retry layer, and extracts the fields the CLI displays.
"""

import functools
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..core.base_client import BaseClient
from ..utils.formatting import compare_versions

# Initialize a logger for this module.
logger = logging.getLogger(__name__)

PYPI_URL = "https://pypi.org/pypi/"


class PyPIClient(BaseClient):
    """Fetches package metadata from PyPI.

    PyPI metadata changes only when a release is published, so responses
    are cached for six hours by default.
    """

    name = "pypi-json"
    description = "Package metadata from the PyPI JSON API."
    default_ttl = 21600
    retry_defaults = {"max_retries": 3, "initial_delay": 1.0, "retryable_statuses": [429, 500, 502, 503, 504]}

    def package_url(self, pkg_name: str, version: Optional[str] = None) -> str:
        """Builds the JSON API URL for a package or a specific release.

        Args:
            pkg_name (str): The name of the package.
            version (Optional[str]): A specific version. If None, the URL for
                the latest release is returned.

        Returns:
            str: The API URL.
        """
        base = self.config.get("pypi_url", PYPI_URL)
        if not base.endswith("/"):
            base += "/"
        if version:
            return f"{base}{quote(pkg_name, safe='')}/{quote(version, safe='')}/json"
        return f"{base}{quote(pkg_name, safe='')}/json"

    async def get_metadata(self, pkg_name: str, version: Optional[str] = None, bypass_cache: bool = False) -> Dict[str, Any]:
        """Fetches the full JSON metadata for a package.

        Args:
            pkg_name (str): The name of the package to fetch.
            version (Optional[str]): A specific version to fetch.
            bypass_cache (bool): Ignore any cached copy.

        Returns:
            Dict[str, Any]: The complete package metadata.

        Raises:
            NotFoundError: If the package (or version) does not exist.
            FetchExhausted: If PyPI kept failing after all retries.
        """
        logger.info(f"Fetching metadata for package: {pkg_name}")
        return await self.fetch(
            self.package_url(pkg_name, version),
            bypass_cache=bypass_cache,
            parse_response=_parse_metadata,
        )


def _parse_metadata(response: httpx.Response) -> Dict[str, Any]:
    data = response.json()
    if not isinstance(data, dict) or not isinstance(data.get("info"), dict):
        raise ValueError("response has no 'info' object")
    data.setdefault("releases", {})
    data.setdefault("urls", [])
    return data


def get_package_info(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Extracts a curated set of package information from the raw metadata.

    Args:
        metadata (Dict[str, Any]): The raw metadata dictionary from the PyPI API.

    Returns:
        Dict[str, Any]: A dictionary containing key package details.
    """
    info = metadata.get("info", {})
    return {
        "name": info.get("name"),
        "version": info.get("version"),
        "summary": info.get("summary"),
        "description": info.get("description"),
        "author": info.get("author"),
        "maintainer": info.get("maintainer"),
        "license": info.get("license"),
        "home_page": info.get("home_page"),
        "project_urls": info.get("project_urls") or {},
        "classifiers": info.get("classifiers") or [],
        "keywords": info.get("keywords"),
        "requires_dist": info.get("requires_dist") or [],
        "requires_python": info.get("requires_python"),
        "yanked": info.get("yanked", False),
        "yanked_reason": info.get("yanked_reason"),
    }


def get_release_info(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Summarizes the release history from the package metadata.

    Versions are ordered numerically (newest first), so "1.10" sorts after
    "1.9".

    Args:
        metadata (Dict[str, Any]): The raw metadata dictionary from the PyPI API.

    Returns:
        Dict[str, Any]: A dictionary summarizing the release history.
    """
    releases = metadata.get("releases") or {}
    versions = sorted(releases, key=functools.cmp_to_key(compare_versions), reverse=True)
    history = []
    for version in versions:
        files = releases.get(version) or []
        history.append({
            "version": version,
            "upload_time": files[0].get("upload_time") if files else None,
            "has_wheel": any(f.get("filename", "").endswith(".whl") for f in files),
            "has_source": any(f.get("filename", "").endswith((".tar.gz", ".zip")) for f in files),
            "yanked": bool(files) and all(f.get("yanked") for f in files),
        })

    return {
        "total_releases": len(versions),
        "latest_release": versions[0] if versions else None,
        "first_release": versions[-1] if versions else None,
        "history": history,
        "has_prerelease": any(tag in v for v in versions for tag in ("a", "b", "rc", "dev")),
    }


def format_python_requirement(requires_python: Optional[str]) -> str:
    if not requires_python:
        return "Any Python version"
    return f"Python {requires_python}"


def format_classifier(classifier: str) -> str:
    """Shortens a trove classifier for display."""
    if classifier.startswith("Topic :: "):
        return classifier[len("Topic :: "):].replace(" :: ", " > ")
    for prefix in ("Development Status :: ", "License :: ", "Programming Language :: "):
        if classifier.startswith(prefix):
            return classifier[len(prefix):]
    return classifier


def get_main_classifiers(classifiers: Optional[List[str]]) -> List[str]:
    """Drops the noisiest classifiers and keeps at most ten."""
    if not classifiers:
        return []
    return [
        c for c in classifiers
        if "Operating System" not in c and "Programming Language :: Python :: Implementation" not in c
    ][:10]


def get_distribution_type(filename: str) -> str:
    if filename.endswith(".whl"):
        return "wheel"
    if filename.endswith(".tar.gz"):
        return "source (tar.gz)"
    if filename.endswith(".zip"):
        return "source (zip)"
    if filename.endswith(".egg"):
        return "egg"
    return "other"
