"""Small formatting helpers shared by the CLI commands."""
import re
from typing import List


def format_number(num: float) -> str:
    """Formats a count with K/M suffixes, e.g. 1234567 -> "1.2M"."""
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return str(num)


def format_bytes(size: int) -> str:
    """Formats a byte count, e.g. 1536 -> "1.5 KB"."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{round(value, 2):g} {unit}"
        value /= 1024
    return f"{size} B"


def parse_version(version: str) -> List[int]:
    """Splits a dotted version into integers, ignoring non-digit characters."""
    parts = []
    for part in version.split("."):
        digits = re.sub(r"[^0-9]", "", part)
        parts.append(int(digits) if digits else 0)
    return parts


def compare_versions(v1: str, v2: str) -> int:
    """Compares two dotted versions numerically.

    This is a loose ordering good enough for display. Pre-release tags are
    dropped rather than ordered per PEP 440.

    Returns:
        int: -1, 0 or 1.
    """
    a, b = parse_version(v1), parse_version(v2)
    length = max(len(a), len(b))
    a += [0] * (length - len(a))
    b += [0] * (length - len(b))
    return (a > b) - (a < b)
