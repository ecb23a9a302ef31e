"""Core types and interfaces for Paramarr.

All data structures are dataclasses with attribute access.
Backends implement the ParamSource interface.
"""

from paramarr.core.errors import (
    ConfigError,
    InitializationError,
    InvalidSyntax,
    ParamarrError,
    ResolutionError,
    UnresolvedPlaceholder,
    ValidationError,
)
from paramarr.core.interfaces import ParamSource
from paramarr.core.types import (
    BatchResult,
    FileFailure,
    Placeholder,
    PlaceholderMatch,
    PlaceholderStatistics,
    ResolutionOutcome,
    SourceAttempt,
    SourceInitResult,
    ValidationResults,
)

__all__ = [
    # Types
    "BatchResult",
    "FileFailure",
    "Placeholder",
    "PlaceholderMatch",
    "PlaceholderStatistics",
    "ResolutionOutcome",
    "SourceAttempt",
    "SourceInitResult",
    "ValidationResults",
    # Errors
    "ConfigError",
    "InitializationError",
    "InvalidSyntax",
    "ParamarrError",
    "ResolutionError",
    "UnresolvedPlaceholder",
    "ValidationError",
    # Interfaces
    "ParamSource",
]
