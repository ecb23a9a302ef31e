"""Text resolution engine.

ParamResolver is the entry point used by every consumer (API, CLI,
preprocessor):

    with ParamResolver("paramarr.json") as resolver:
        resolver.resolve_text("Hello <user:env#USER|world>!")

resolve_text() is all-or-nothing per document: distinct placeholders are
resolved concurrently, and substitution only happens once every one of
them produced a value. If any required placeholder fails, the first such
failure in document order is raised and the caller never sees partially
resolved text.
"""

import logging
import threading
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from paramarr.config import ParamarrConfig, load_config
from paramarr.core.errors import ParamarrError, UnresolvedPlaceholder
from paramarr.core.interfaces import ParamSource
from paramarr.core.types import Placeholder, PlaceholderMatch, ResolutionOutcome, SourceInitResult
from paramarr.placeholders import scan_placeholders
from paramarr.resolver.precedence import PrecedenceResolver
from paramarr.sources import EMPTY_REGISTRATION, SourceRegistration, build_registration
from paramarr.utilities.cache import CacheStats
from paramarr.utilities.masking import mask_secrets

logger = logging.getLogger(__name__)


class ParamResolver:
    """Resolves `<name:source#key|default>` placeholders in text.

    Args:
        config_path: Config file to load on initialize() (default ./paramarr.json)
        config: Already-loaded configuration; takes precedence over config_path
        sources: Pre-built adapters keyed by source id, used instead of the
            registered variants (embedding, tests)
        clock: Time source for the top-level cache (tests)
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        *,
        config: ParamarrConfig | None = None,
        sources: Mapping[str, ParamSource] | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.config_path = config_path
        self.config = config
        self._source_overrides = sources
        self._clock = clock
        self._registration: SourceRegistration = EMPTY_REGISTRATION
        self._precedence: PrecedenceResolver | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_initialized(self) -> bool:
        return self._precedence is not None

    def initialize(self) -> list[SourceInitResult]:
        """Load configuration and build the source registration.

        Adapter failures are logged and the adapter dropped; they never
        abort startup. Calling initialize() again tears down the previous
        registration first.

        Returns:
            One result per known source (enabled or not)

        Raises:
            ConfigError: Config file exists but is unreadable/invalid
        """
        with self._lock:
            if self.is_initialized:
                self._teardown()

            if self.config is None:
                self.config = load_config(self.config_path)
            config = self.config

            self._registration = build_registration(config, self._source_overrides)
            self._precedence = PrecedenceResolver(
                self._registration,
                cache_ttl=config.cache_timeout,
                default_timeout=config.source_timeout,
                max_workers=config.max_workers,
                clock=self._clock,
            )
            self._executor = ThreadPoolExecutor(
                max_workers=config.max_workers, thread_name_prefix="paramarr-resolve"
            )

        logger.info(
            "[ENGINE] Initialized with sources: %s",
            ", ".join(self._registration.names()) or "(none)",
        )
        return list(self._registration.results)

    def refresh_caches(self) -> None:
        """Clear the top-level cache and every adapter cache."""
        if self._precedence:
            self._precedence.clear_cache()
        for name in self._registration:
            try:
                self._registration.get(name).refresh_cache()
            except Exception as e:
                logger.warning("[ENGINE] Failed to refresh cache for %s source: %s", name, mask_secrets(str(e)))
        logger.debug("[ENGINE] Caches refreshed")

    def cleanup(self) -> None:
        """Release every adapter. The resolver can be initialized again afterwards."""
        with self._lock:
            self._teardown()
        logger.info("[ENGINE] Cleaned up")

    def _teardown(self) -> None:
        for name in self._registration:
            try:
                self._registration.get(name).cleanup()
            except Exception as e:
                logger.warning("[ENGINE] Failed to cleanup %s source: %s", name, mask_secrets(str(e)))
        if self._precedence:
            self._precedence.shutdown()
        if self._executor:
            self._executor.shutdown(wait=True)
        self._registration = EMPTY_REGISTRATION
        self._precedence = None
        self._executor = None

    def __enter__(self) -> "ParamResolver":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    # =========================================================================
    # Resolution
    # =========================================================================

    def _require_precedence(self) -> PrecedenceResolver:
        if self._precedence is None:
            raise ParamarrError("ParamResolver is not initialized; call initialize() first")
        return self._precedence

    def resolve(self, placeholder: Placeholder) -> ResolutionOutcome:
        """Walk the fallback chain for one parsed placeholder. Never raises for source failures."""
        return self._require_precedence().resolve(placeholder)

    def resolve_placeholder(
        self,
        name: str,
        source: str,
        key: str,
        default_value: str | None = None,
    ) -> str:
        """Resolve one placeholder to its value.

        Raises:
            UnresolvedPlaceholder: Every source failed and no default given
        """
        placeholder = Placeholder(name=name, source=source, key=key, default_value=default_value)
        outcome = self.resolve(placeholder)
        if not outcome.resolved:
            error = UnresolvedPlaceholder(placeholder, outcome.attempts)
            logger.error("[ENGINE] %s", error)
            raise error
        return outcome.value

    def resolve_text(self, text: str) -> str:
        """Substitute every placeholder in `text`.

        Identical placeholder texts are resolved once and substituted
        everywhere they occur.

        Raises:
            UnresolvedPlaceholder: A placeholder without default could not be
                resolved (the first one in document order)
        """
        if not text:
            return text

        matches = list(scan_placeholders(text))
        if not matches:
            return text

        precedence = self._require_precedence()

        # One resolution per distinct placeholder text, in first-seen order
        distinct: dict[str, Placeholder] = {}
        for match in matches:
            distinct.setdefault(match.text, match.placeholder)

        if len(distinct) == 1 or self._executor is None:
            outcomes = {raw: precedence.resolve(p) for raw, p in distinct.items()}
        else:
            futures = {raw: self._executor.submit(precedence.resolve, p) for raw, p in distinct.items()}
            outcomes = {raw: future.result() for raw, future in futures.items()}

        for raw, outcome in outcomes.items():
            if not outcome.resolved:
                error = UnresolvedPlaceholder(outcome.placeholder, outcome.attempts)
                logger.error("[ENGINE] Failed to resolve required placeholder %s: %s", mask_secrets(raw), error)
                raise error

        return _substitute(text, matches, {raw: outcome.value for raw, outcome in outcomes.items()})

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def registration(self) -> SourceRegistration:
        return self._registration

    @property
    def available_sources(self) -> list[str]:
        return self._registration.names()

    def cache_stats(self) -> CacheStats | None:
        return self._precedence.cache_stats() if self._precedence else None


def _substitute(text: str, matches: list[PlaceholderMatch], values: Mapping[str, str]) -> str:
    """Replace each match span with its value. Values are inserted literally."""
    parts = []
    position = 0
    for match in matches:
        parts.append(text[position : match.start])
        parts.append(values[match.text])
        position = match.end
    parts.append(text[position:])
    return "".join(parts)
