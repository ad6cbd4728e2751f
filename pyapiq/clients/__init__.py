"""API clients for apiq.

Each module wraps one public web API on top of a namespaced `CacheManager`.
"""
from .github import GitHubClient
from .gravatar import GravatarClient
from .json_schema import JsonSchemaClient
from .npm import NpmClient
from .pypi import PyPIClient
from .wayback import WaybackClient

__all__ = ["GitHubClient", "GravatarClient", "JsonSchemaClient", "NpmClient", "PyPIClient", "WaybackClient"]
