"""Precedence resolver: walk the fallback chain for one placeholder.

Order of work for resolve(placeholder):
1. Top-level cache hit -> done (no source is touched)
2. Chain = declared source, then SOURCE_PRECEDENCE minus the declared
   source, keeping only sources present in the registration
3. First source returning a non-None value wins; its value is cached and
   no later source is tried
4. All failed: the literal default (never cached), else an unresolved
   outcome carrying every attempt

Each adapter call runs on a worker pool owned by its source and is
bounded by the adapter's timeout, counted from the moment the call
starts running. Time queued behind other calls to the same source is
bounded separately by the same timeout. A timeout is an ordinary
failure and falls through to the next source. A timed-out call keeps
running in the background; its result is discarded.
"""

import logging
import threading
from collections.abc import Callable, Container, Iterable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from paramarr.core.errors import ResolutionError
from paramarr.core.interfaces import ParamSource
from paramarr.core.types import Placeholder, ResolutionOutcome, SourceAttempt
from paramarr.sources.registry import SOURCE_PRECEDENCE, SourceRegistration
from paramarr.utilities.cache import CACHE_TTL_RESOLVED, CacheStats, TTLCache
from paramarr.utilities.masking import mask_secrets

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_TIMEOUT = 30.0

RESOLVED_BY_CACHE = "cache"
RESOLVED_BY_DEFAULT = "default"


def build_fallback_chain(
    declared: str,
    registration: Container[str],
    precedence: Iterable[str] = SOURCE_PRECEDENCE,
) -> list[str]:
    """Ordered source ids to try for a placeholder declaring `declared`.

    The declared source comes first even if it is not in the precedence
    list (a custom source), then the precedence list in order. Ids not
    present in `registration` are skipped.
    """
    chain = [declared] if declared in registration else []
    chain.extend(name for name in precedence if name != declared and name in registration)
    return chain


class PrecedenceResolver:
    """Resolves placeholders against one SourceRegistration.

    Args:
        registration: Initialized sources for this run
        cache_ttl: Top-level cache TTL in seconds
        default_timeout: Bound for adapters that declare no timeout
        max_workers: Threads per source for concurrent adapter calls
        clock: Time source for the top-level cache (tests)
    """

    def __init__(
        self,
        registration: SourceRegistration,
        cache_ttl: float = CACHE_TTL_RESOLVED,
        *,
        default_timeout: float = DEFAULT_SOURCE_TIMEOUT,
        max_workers: int = 8,
        clock: Callable[[], float] | None = None,
    ):
        self._registration = registration
        self._default_timeout = default_timeout
        self._cache = TTLCache(ttl=cache_ttl, clock=clock)
        self._executors = {
            name: ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"paramarr-{name}")
            for name in registration
        }

    @property
    def registration(self) -> SourceRegistration:
        return self._registration

    def chain_for(self, placeholder: Placeholder) -> list[str]:
        return build_fallback_chain(placeholder.source, self._registration)

    def resolve(self, placeholder: Placeholder) -> ResolutionOutcome:
        cached = self._cache.get(placeholder.cache_key)
        if cached is not None:
            return ResolutionOutcome(placeholder=placeholder, value=cached, resolved_by=RESOLVED_BY_CACHE)

        attempts: list[SourceAttempt] = []
        for name in self.chain_for(placeholder):
            source = self._registration.get(name)
            try:
                value = self._call(name, source, placeholder.key)
            except ResolutionError as e:
                attempts.append(self._record_failure(name, placeholder, str(e)))
                continue
            except Exception as e:
                # A misbehaving adapter is still just a failed source
                attempts.append(self._record_failure(name, placeholder, f"{type(e).__name__}: {e}"))
                continue

            if value is None:
                logger.debug("[ENGINE] %s source returned nothing for key '%s'", name, placeholder.key)
                continue

            self._cache.set(placeholder.cache_key, value)
            logger.debug("[ENGINE] Resolved <%s> via %s", placeholder.name, name)
            return ResolutionOutcome(
                placeholder=placeholder,
                value=value,
                resolved_by=name,
                attempts=tuple(attempts),
            )

        if placeholder.has_default:
            logger.debug("[ENGINE] Using default value for <%s>", placeholder.name)
            return ResolutionOutcome(
                placeholder=placeholder,
                value=placeholder.default_value,
                resolved_by=RESOLVED_BY_DEFAULT,
                attempts=tuple(attempts),
            )

        return ResolutionOutcome(placeholder=placeholder, attempts=tuple(attempts))

    def _call(self, name: str, source: ParamSource, key: str) -> str | None:
        """Run one adapter call bounded by its timeout.

        Raises:
            ResolutionError: Adapter failure or timeout
        """
        timeout = source.timeout or self._default_timeout
        started = threading.Event()

        def run() -> str | None:
            started.set()
            return source.resolve(key)

        future = self._executors[name].submit(run)
        try:
            if not started.wait(timeout):
                future.cancel()
                raise ResolutionError(name, key, f"Source '{name}' had no free worker within {timeout}s")
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise ResolutionError(name, key, f"Source '{name}' timed out after {timeout}s") from e

    @staticmethod
    def _record_failure(name: str, placeholder: Placeholder, message: str) -> SourceAttempt:
        masked = mask_secrets(message)
        logger.warning("[ENGINE] Source %s failed for key '%s': %s", name, mask_secrets(placeholder.key), masked)
        return SourceAttempt(source=name, error=masked)

    # =========================================================================
    # Cache management
    # =========================================================================

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def shutdown(self) -> None:
        self._cache.clear()
        # Do not wait on adapter calls that already timed out
        for executor in self._executors.values():
            executor.shutdown(wait=False, cancel_futures=True)
