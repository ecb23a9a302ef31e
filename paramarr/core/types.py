"""Core data types for Paramarr.

All data structures are pure dataclasses with attribute access.
Placeholders are ephemeral: parsed fresh from each document and
discarded after substitution.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Placeholder:
    """A parsed `<name:source#key|default>` placeholder.

    `name` is a descriptive label only; resolution uses `source` and `key`.
    `default_value` is literal text, never resolved further.
    """

    name: str
    source: str
    key: str
    default_value: str | None = None

    @property
    def has_default(self) -> bool:
        return self.default_value is not None

    @property
    def cache_key(self) -> tuple[str, str, str]:
        """Identity used by the top-level resolved-value cache."""
        return (self.name, self.source, self.key)


@dataclass(frozen=True)
class PlaceholderMatch:
    """A placeholder found in a document, with its position."""

    placeholder: Placeholder
    text: str  # full matched text, e.g. "<user:env#USER>"
    start: int
    end: int

    @property
    def span(self) -> tuple[int, int]:
        return (self.start, self.end)


@dataclass(frozen=True)
class SourceAttempt:
    """One failed backend call during a fallback walk."""

    source: str
    error: str  # already masked


@dataclass(frozen=True)
class ResolutionOutcome:
    """Result of walking the precedence chain for one placeholder.

    Either `value` is set (resolved, from a source, the cache or the
    default) or it is None and `attempts` records every backend error
    in the order the sources were tried.
    """

    placeholder: Placeholder
    value: str | None = None
    resolved_by: str | None = None  # source id, "cache" or "default"
    attempts: tuple[SourceAttempt, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.value is not None

    @property
    def last_error(self) -> str | None:
        return self.attempts[-1].error if self.attempts else None


@dataclass(frozen=True)
class SourceInitResult:
    """Outcome of initializing one adapter at engine startup."""

    source: str
    enabled: bool = True
    error: str | None = None  # masked

    @property
    def ok(self) -> bool:
        return self.enabled and self.error is None


@dataclass
class FileFailure:
    """A batch-mode document that could not be resolved."""

    path: str
    error: str


@dataclass
class BatchResult:
    """Summary of a preprocess run over a directory tree."""

    processed: list[str] = field(default_factory=list)
    copied: list[str] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        """True only if no document failed (copy-through counts as failure)."""
        return not self.failures and not self.cancelled


@dataclass
class ValidationResults:
    """Summary of a validation pass (resolve without writing)."""

    total_files: int = 0
    processed_files: int = 0
    errors: list[FileFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class PlaceholderStatistics:
    """Placeholder usage across a directory of spec files."""

    total_files: int = 0
    files_with_placeholders: int = 0
    total_placeholders: int = 0
    source_types: dict[str, int] = field(default_factory=dict)
    details: list[dict] = field(default_factory=list)

    @property
    def most_used_sources(self) -> list[tuple[str, int]]:
        return sorted(self.source_types.items(), key=lambda item: item[1], reverse=True)

    def to_dict(self) -> dict:
        return {
            "total_files": self.total_files,
            "files_with_placeholders": self.files_with_placeholders,
            "total_placeholders": self.total_placeholders,
            "source_types": dict(self.source_types),
            "most_used_sources": [
                {"source": source, "count": count} for source, count in self.most_used_sources
            ],
            "placeholder_details": self.details,
        }
