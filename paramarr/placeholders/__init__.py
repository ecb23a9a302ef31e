"""Placeholder grammar: scan documents, parse and serialize placeholders.

Usage:
    from paramarr.placeholders import scan_placeholders, create_placeholder

    for match in scan_placeholders("Hello <user:env#USER|world>!"):
        print(match.placeholder.key, match.span)

    create_placeholder("user", "env", "USER", "world")  # "<user:env#USER|world>"
"""

from paramarr.placeholders.grammar import (
    PLACEHOLDER_PATTERN,
    contains_placeholders,
    create_placeholder,
    parse_placeholder,
    scan_placeholders,
)

__all__ = [
    "PLACEHOLDER_PATTERN",
    "contains_placeholders",
    "create_placeholder",
    "parse_placeholder",
    "scan_placeholders",
]
