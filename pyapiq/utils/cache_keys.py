"""Derives short, stable cache keys from a request identity."""
import hashlib
from typing import Mapping, Optional, Union

ParamValue = Union[str, int, float, bool]

# 16 hex chars (64 bits) keeps file names short. Collisions are possible at
# scale; widening this changes every on-disk file name.
KEY_LENGTH = 16


def _format_value(value: ParamValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def derive_cache_key(identifier: str, params: Optional[Mapping[str, ParamValue]] = None) -> str:
    """Builds a cache key from a base identifier and a parameter mapping.

    Parameters are sorted by name before hashing, so insertion order does
    not matter. Values are not escaped: a value containing `&` or `=` can
    produce the same input string as a different parameter set.

    Args:
        identifier (str): The base URL or any other identifier.
        params (Optional[Mapping[str, ParamValue]]): Extra parameters that
            distinguish requests sharing the same identifier.

    Returns:
        str: A 16-character lowercase hex string.
    """
    params = params or {}
    param_string = "&".join(f"{k}={_format_value(params[k])}" for k in sorted(params))
    digest = hashlib.sha256(f"{identifier}?{param_string}".encode("utf-8")).hexdigest()
    return digest[:KEY_LENGTH]
