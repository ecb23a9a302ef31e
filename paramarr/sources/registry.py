"""Source registry - single source of truth for backend adapters.

Adding a new source:
1. Implement ParamSource in sources/<name>.py
2. Register it in sources/__init__.py using SourceRegistry.register()
3. Add its config model to paramarr.config.SourcesConfig

Engine startup calls build_registration(), which instantiates every
enabled variant with its explicit config, initializes it, and drops the
ones that fail. The resulting SourceRegistration is immutable for the
lifetime of a run.
"""

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

from paramarr.core.errors import InitializationError
from paramarr.core.interfaces import ParamSource
from paramarr.core.types import SourceInitResult
from paramarr.utilities.masking import mask_secrets

if TYPE_CHECKING:
    from paramarr.config import ParamarrConfig, SourceConfig

logger = logging.getLogger(__name__)


class SourceType(str, Enum):
    """Built-in source identifiers."""

    ENV = "env"
    FILE = "file"
    VAULT = "vault"
    AWS = "aws"
    K8S = "k8s"
    HTTP = "http"


# Global fallback order after the declared source
SOURCE_PRECEDENCE: tuple[str, ...] = tuple(t.value for t in SourceType)


@dataclass
class SourceVariant:
    """A registered adapter class and how to build it."""

    name: str
    source_class: type[ParamSource]
    factory: Callable[["SourceConfig"], ParamSource] | None = None

    def create(self, config: "SourceConfig") -> ParamSource:
        if self.factory:
            return self.factory(config)
        return self.source_class(config)


class SourceRegistry:
    """Central lookup table of source variants.

    Usage:
        # Registration (in sources/__init__.py)
        SourceRegistry.register("env", EnvSource)

        # Discovery (engine startup)
        registration = build_registration(config)
    """

    _variants: dict[str, SourceVariant] = {}

    @classmethod
    def register(
        cls,
        name: str,
        source_class: type[ParamSource],
        *,
        factory: Callable[["SourceConfig"], ParamSource] | None = None,
    ) -> None:
        if name in cls._variants:
            logger.warning("[SOURCES] Source '%s' already registered, overwriting", name)
        cls._variants[name] = SourceVariant(name=name, source_class=source_class, factory=factory)
        logger.debug("[SOURCES] Registered source variant: %s", name)

    @classmethod
    def get(cls, name: str) -> SourceVariant | None:
        return cls._variants.get(name)

    @classmethod
    def names(cls) -> list[str]:
        """Registered names, precedence order first, extras after."""
        ordered = [name for name in SOURCE_PRECEDENCE if name in cls._variants]
        ordered.extend(name for name in cls._variants if name not in SOURCE_PRECEDENCE)
        return ordered

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._variants

    @classmethod
    def unregister(cls, name: str) -> bool:
        """Unregister a variant (mainly for testing)."""
        return cls._variants.pop(name, None) is not None


@dataclass(frozen=True)
class SourceRegistration:
    """Initialized sources for one engine run. Immutable."""

    sources: Mapping[str, ParamSource]
    results: tuple[SourceInitResult, ...] = ()

    def __contains__(self, name: object) -> bool:
        return name in self.sources

    def __iter__(self) -> Iterator[str]:
        return iter(self.sources)

    def __len__(self) -> int:
        return len(self.sources)

    def get(self, name: str) -> ParamSource | None:
        return self.sources.get(name)

    def names(self) -> list[str]:
        return list(self.sources)

    @property
    def failures(self) -> list[SourceInitResult]:
        return [r for r in self.results if r.enabled and r.error is not None]


EMPTY_REGISTRATION = SourceRegistration(sources=MappingProxyType({}))


def _initialize(name: str, source: ParamSource) -> SourceInitResult:
    """Initialize one adapter, converting failure into a result."""
    try:
        source.initialize()
    except InitializationError as e:
        message = mask_secrets(str(e))
        logger.warning("[SOURCES] Failed to initialize %s source: %s", name, message)
        return SourceInitResult(source=name, error=message)
    except Exception as e:
        message = mask_secrets(f"{type(e).__name__}: {e}")
        logger.warning("[SOURCES] Unexpected error initializing %s source: %s", name, message)
        return SourceInitResult(source=name, error=message)

    logger.info("[SOURCES] Initialized %s source", name)
    return SourceInitResult(source=name)


def build_registration(
    config: "ParamarrConfig",
    sources: Mapping[str, ParamSource] | None = None,
) -> SourceRegistration:
    """Build and initialize the source table for a run.

    Args:
        config: Engine configuration (per-source `enabled` flags and options)
        sources: Pre-built adapters keyed by identifier. When given, these
            are used instead of the registered variants.

    Returns:
        Registration holding only the sources that initialized cleanly.
        Initialization failures are recorded, never raised.
    """
    candidates: dict[str, ParamSource] = {}
    results: list[SourceInitResult] = []

    if sources is not None:
        candidates.update(sources)
    else:
        for name in SourceRegistry.names():
            source_config = config.sources.get(name)
            if source_config is None or not source_config.enabled:
                logger.debug("[SOURCES] Source %s disabled", name)
                results.append(SourceInitResult(source=name, enabled=False))
                continue
            variant = SourceRegistry.get(name)
            candidates[name] = variant.create(source_config)

    initialized: dict[str, ParamSource] = {}
    for name, source in candidates.items():
        result = _initialize(name, source)
        results.append(result)
        if result.ok:
            initialized[name] = source

    return SourceRegistration(sources=MappingProxyType(initialized), results=tuple(results))
