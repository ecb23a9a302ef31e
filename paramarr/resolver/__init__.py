"""Placeholder resolution: precedence walk and whole-document engine."""

from paramarr.resolver.engine import ParamResolver
from paramarr.resolver.precedence import (
    RESOLVED_BY_CACHE,
    RESOLVED_BY_DEFAULT,
    PrecedenceResolver,
    build_fallback_chain,
)

__all__ = [
    "ParamResolver",
    "PrecedenceResolver",
    "RESOLVED_BY_CACHE",
    "RESOLVED_BY_DEFAULT",
    "build_fallback_chain",
]
