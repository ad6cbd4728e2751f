"""Validates JSON documents against JSON Schema.

Schemas referenced by URL are fetched through the cache and kept for a day.
Validation itself runs locally with the `jsonschema` library, using the
validator class that matches the schema's draft.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

import aiofiles
import httpx
from jsonschema import (
    Draft4Validator,
    Draft6Validator,
    Draft7Validator,
    Draft201909Validator,
    Draft202012Validator,
    FormatChecker,
)
from jsonschema.exceptions import SchemaError

from ..core.base_client import BaseClient
from ..core.exceptions import InputError

logger = logging.getLogger(__name__)

DEFAULT_DRAFT = "2020-12"

# Checked in order; the longer "draft/..." forms resolve to the same drafts.
DRAFT_PATTERNS = {
    "draft-04": "draft-04",
    "draft-06": "draft-06",
    "draft-07": "draft-07",
    "2019-09": "2019-09",
    "2020-12": "2020-12",
    "draft/2019-09": "2019-09",
    "draft/2020-12": "2020-12",
}

META_SCHEMAS = {
    "draft-04": "http://json-schema.org/draft-04/schema#",
    "draft-06": "http://json-schema.org/draft-06/schema#",
    "draft-07": "http://json-schema.org/draft-07/schema#",
    "2019-09": "https://json-schema.org/draft/2019-09/schema",
    "2020-12": "https://json-schema.org/draft/2020-12/schema",
}

VALIDATORS = {
    "draft-04": Draft4Validator,
    "draft-06": Draft6Validator,
    "draft-07": Draft7Validator,
    "2019-09": Draft201909Validator,
    "2020-12": Draft202012Validator,
}


def detect_draft_version(schema_uri: Optional[str]) -> str:
    """Maps a `$schema` URI to a draft name, defaulting to 2020-12."""
    if not schema_uri:
        return DEFAULT_DRAFT
    for pattern, version in DRAFT_PATTERNS.items():
        if pattern in schema_uri:
            return version
    return DEFAULT_DRAFT


def validator_class(draft: str) -> Type[Any]:
    return VALIDATORS.get(draft, Draft202012Validator)


def validate(data: Any, schema: Dict[str, Any], draft: Optional[str] = None, all_errors: bool = False) -> List[Dict[str, Any]]:
    """Validates `data` against `schema`.

    Args:
        data (Any): The decoded JSON instance.
        schema (Dict[str, Any]): The decoded schema.
        draft (Optional[str]): Draft name. Detected from the schema's own
            `$schema` if None.
        all_errors (bool): Report every error instead of only the first.

    Returns:
        List[Dict[str, Any]]: Errors with `path`, `message`, `keyword` and
        `params`. Empty when the instance is valid.

    Raises:
        InputError: If the schema itself is not valid for its draft.
    """
    cls = validator_class(draft or detect_draft_version(schema.get("$schema")))
    try:
        cls.check_schema(schema)
    except SchemaError as e:
        raise InputError(f"Schema is invalid: {e.message}") from e

    validator = cls(schema, format_checker=FormatChecker())
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    if not all_errors:
        errors = errors[:1]
    return [_error_dict(error) for error in errors]


def meta_validate(schema: Dict[str, Any], draft: Optional[str] = None) -> List[Dict[str, Any]]:
    """Checks a schema against its draft's meta-schema.

    Returns:
        List[Dict[str, Any]]: Every meta-schema violation, empty if the
        schema is well formed.
    """
    cls = validator_class(draft or detect_draft_version(schema.get("$schema")))
    meta = cls(cls.META_SCHEMA)
    errors = sorted(meta.iter_errors(schema), key=lambda e: [str(p) for p in e.absolute_path])
    return [_error_dict(error) for error in errors]


def _error_dict(error) -> Dict[str, Any]:
    return {
        "path": "/" + "/".join(str(p) for p in error.absolute_path),
        "message": error.message,
        "keyword": error.validator,
        "params": {error.validator: error.validator_value},
    }


def _parse_schema(response: httpx.Response) -> Dict[str, Any]:
    schema = response.json()
    if not isinstance(schema, dict):
        raise ValueError("Schema must be a JSON object")
    return schema


async def load_json(path: Path) -> Any:
    """Reads and decodes a local JSON file.

    Raises:
        InputError: If the file cannot be read or is not valid JSON.
    """
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise InputError(f"Could not read {path}: {e}") from e
    try:
        return json.loads(content)
    except ValueError as e:
        raise InputError(f"Could not parse {path}: {e}") from e


def format_validation_result(result: Dict[str, Any], verbose: bool = False) -> str:
    """Renders a validation result as the plain-text report the CLI prints."""
    lines = []
    if result["valid"]:
        lines.append("✓ Valid" + (f" ({result['draft']})" if result.get("draft") else ""))
        if result.get("schema"):
            lines.append(f"  Schema: {result['schema']}")
        if result.get("file"):
            lines.append(f"  File: {result['file']}")
        return "\n".join(lines)

    count = len(result["errors"])
    lines.append(f"✗ Invalid ({count} error{'' if count == 1 else 's'})")
    if result.get("schema"):
        lines.append(f"  Schema: {result['schema']}")
    for index, error in enumerate(result["errors"], start=1):
        lines.append(f"  {index}. {error['path']}: {error['message']}")
        if verbose and error.get("params"):
            lines.append(f"     {json.dumps(error['params'], default=str)}")
    return "\n".join(lines)


class JsonSchemaClient(BaseClient):
    """Resolves `$schema` references and validates documents against them."""

    name = "json-schema"
    description = "JSON Schema validation with remote schemas cached for a day."
    default_ttl = 86400

    async def fetch_schema(self, url: str, bypass_cache: bool = False) -> Dict[str, Any]:
        """Fetches a remote schema.

        Raises:
            ParseError: If the response is not a JSON object.
        """
        return await self.fetch(url, bypass_cache=bypass_cache, parse_response=_parse_schema)

    async def resolve_schema(self, ref: str, base_dir: Path, bypass_cache: bool = False) -> Dict[str, Any]:
        """Loads a schema from a URL or from a path relative to `base_dir`."""
        if ref.startswith(("http://", "https://")):
            return await self.fetch_schema(ref, bypass_cache=bypass_cache)
        path = (base_dir / ref).resolve()
        logger.debug(f"Loading schema from {path}")
        schema = await load_json(path)
        if not isinstance(schema, dict):
            raise InputError(f"Schema must be a JSON object: {ref}")
        return schema

    async def check(self, file: str, all_errors: bool = False, bypass_cache: bool = False) -> Dict[str, Any]:
        """Validates a JSON file against the schema named by its own `$schema`.

        Args:
            file (str): Path of the JSON document.
            all_errors (bool): Report every error instead of only the first.
            bypass_cache (bool): Refetch a remote schema.

        Returns:
            Dict[str, Any]: `valid`, `errors`, `schema`, `file` and `draft`.

        Raises:
            InputError: If the file or its schema cannot be loaded, or the
                file has no string `$schema`.
        """
        path = Path(file)
        data = await load_json(path)
        if not isinstance(data, dict) or "$schema" not in data:
            raise InputError(f"No $schema property found in {file}")
        ref = data["$schema"]
        if not isinstance(ref, str):
            raise InputError(f"$schema must be a string in {file}")

        schema = await self.resolve_schema(ref, path.resolve().parent, bypass_cache=bypass_cache)
        draft = detect_draft_version(schema.get("$schema") or ref)
        errors = validate(data, schema, draft=draft, all_errors=all_errors)
        return {"valid": not errors, "errors": errors, "schema": ref, "file": file, "draft": draft}

    async def validate_file(self, file: str, schema_ref: str, all_errors: bool = False, bypass_cache: bool = False) -> Dict[str, Any]:
        """Validates a JSON file against an explicitly given schema path or URL."""
        data = await load_json(Path(file))
        schema = await self.resolve_schema(schema_ref, Path.cwd(), bypass_cache=bypass_cache)
        draft = detect_draft_version(schema.get("$schema"))
        errors = validate(data, schema, draft=draft, all_errors=all_errors)
        return {"valid": not errors, "errors": errors, "schema": schema_ref, "file": file, "draft": draft}
