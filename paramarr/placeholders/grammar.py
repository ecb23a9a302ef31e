"""Placeholder grammar.

    <name:source#key>
    <name:source#key|default>

- name excludes ':'
- source excludes '#'
- key excludes '|' and '>'
- default excludes '>' and is used verbatim

There is no escaping. A key containing '|' or '>' ends at the first
delimiter, and nested angle brackets are not supported: the first
left-to-right match wins and anything that does not match stays literal
text.
"""

import re
from collections.abc import Iterator

from paramarr.core.errors import InvalidSyntax
from paramarr.core.types import Placeholder, PlaceholderMatch

# Groups: name(1), source(2), key(3), default(4)
PLACEHOLDER_PATTERN = re.compile(r"<([^:]+):([^#]+)#([^|>]+)(?:\|([^>]+))?>")


def _to_placeholder(match: re.Match) -> Placeholder:
    name, source, key, default_value = match.groups()
    return Placeholder(name=name, source=source, key=key, default_value=default_value)


def scan_placeholders(text: str) -> Iterator[PlaceholderMatch]:
    """Lazily yield every non-overlapping placeholder in `text`, left to right.

    Stateless: safe to call repeatedly on the same text. Malformed
    placeholders are skipped silently.
    """
    if not text:
        return
    for match in PLACEHOLDER_PATTERN.finditer(text):
        yield PlaceholderMatch(
            placeholder=_to_placeholder(match),
            text=match.group(0),
            start=match.start(),
            end=match.end(),
        )


def parse_placeholder(text: str) -> Placeholder:
    """Strictly parse a single placeholder.

    The whole string must be exactly one placeholder.

    Raises:
        InvalidSyntax: If `text` is not a well-formed placeholder
    """
    match = PLACEHOLDER_PATTERN.fullmatch(text or "")
    if match is None:
        raise InvalidSyntax(text)
    return _to_placeholder(match)


def create_placeholder(
    name: str,
    source: str,
    key: str,
    default_value: str | None = None,
) -> str:
    """Serialize a placeholder. Exact inverse of parse_placeholder().

    Raises:
        InvalidSyntax: If a component cannot be represented in the grammar
    """
    text = f"<{name}:{source}#{key}"
    if default_value is not None:
        text += f"|{default_value}"
    text += ">"

    reason = None
    if not name or ":" in name:
        reason = "name must be non-empty and must not contain ':'"
    elif not source or "#" in source:
        reason = "source must be non-empty and must not contain '#'"
    elif not key or "|" in key or ">" in key:
        reason = "key must be non-empty and must not contain '|' or '>'"
    elif default_value is not None and (not default_value or ">" in default_value):
        reason = "default must be non-empty and must not contain '>'"
    if reason:
        raise InvalidSyntax(text, reason)

    return text


def contains_placeholders(text: str) -> bool:
    return bool(text) and PLACEHOLDER_PATTERN.search(text) is not None
