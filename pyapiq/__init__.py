"""apiq: cached, retrying command-line queries against public web APIs.

This package provides small command-line tools for the PyPI JSON API, the npm
registry, GitHub, the Wayback Machine and Gravatar, plus JSON Schema
validation against remote schemas, all sharing one on-disk cache and retry
layer.
"""

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = ["__version__", "__license__"]
