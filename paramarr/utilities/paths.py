"""Nested value lookup for structured backend payloads.

Field paths use dots and brackets: "database.hosts[0].name" or
"database.hosts.0.name".
"""

import json
import re
from typing import Any

MISSING = object()

_TOKEN_PATTERN = re.compile(r"[^.\[\]]+")


def split_path(path: str) -> list[str]:
    """Split "a.b[0].c" into ["a", "b", "0", "c"]."""
    return _TOKEN_PATTERN.findall(path)


def get_path(data: Any, path: str | None) -> Any:
    """Walk `path` through dicts and lists.

    Returns:
        The value at `path`, `data` itself for an empty path, or MISSING
    """
    if not path:
        return data

    current = data
    for part in split_path(path):
        if isinstance(current, dict):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


def to_text(value: Any) -> str:
    """Render an extracted value as placeholder text.

    Strings pass through; everything else becomes compact JSON.
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), default=str)
