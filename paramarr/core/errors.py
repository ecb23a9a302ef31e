"""Error taxonomy.

Adapter-level errors (InitializationError, ResolutionError) are converted
into fallback signals by the engine. Only UnresolvedPlaceholder escapes
resolve_text, and batch mode turns it into a per-file ValidationError.
"""

from paramarr.utilities.masking import mask_secrets


class ParamarrError(Exception):
    """Base class for all Paramarr errors."""


class ConfigError(ParamarrError):
    """Configuration file could not be read or is invalid."""


class InvalidSyntax(ParamarrError):
    """Malformed placeholder passed to the strict single-placeholder parser."""

    def __init__(self, text: str, reason: str | None = None):
        self.text = text
        message = f"Invalid placeholder syntax: {text}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InitializationError(ParamarrError):
    """A source adapter could not start. Non-fatal: the source is dropped."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(message)


class ResolutionError(ParamarrError):
    """An adapter could not produce a value for a key. Triggers fallback."""

    def __init__(self, source: str, key: str, message: str):
        self.source = source
        self.key = key
        super().__init__(message)


class UnresolvedPlaceholder(ParamarrError):
    """Every source in the chain failed and no default was supplied."""

    def __init__(self, placeholder, attempts=()):
        self.placeholder = placeholder
        self.source = placeholder.source
        self.key = placeholder.key
        self.attempts = tuple(attempts)
        last_error = self.attempts[-1].error if self.attempts else "No sources available"
        super().__init__(
            mask_secrets(
                f"Could not resolve placeholder for key '{self.key}' from source "
                f"'{self.source}'. Last error: {last_error}"
            )
        )


class ValidationError(ParamarrError):
    """A batch-mode document has a required placeholder that cannot be resolved."""

    def __init__(self, path: str, message: str):
        self.path = path
        # Paths are long slash-separated runs; mask only the message
        super().__init__(f"{path}: {mask_secrets(message)}")
