"""Shared fixtures: fake sources and a controllable clock."""

import time

import pytest

from paramarr.config import ParamarrConfig
from paramarr.core.errors import InitializationError, ResolutionError
from paramarr.core.interfaces import ParamSource
from paramarr.resolver import ParamResolver


class FakeSource(ParamSource):
    """In-memory source that records every resolve() call."""

    def __init__(
        self,
        name: str,
        values: dict | None = None,
        *,
        fail_init: bool = False,
        delay: float = 0.0,
        timeout: float | None = None,
        on_resolve=None,
    ):
        self.name = name
        self.values = dict(values or {})
        self.fail_init = fail_init
        self.delay = delay
        self.timeout = timeout
        self.on_resolve = on_resolve
        self.calls: list[str] = []
        self.initialized = 0
        self.refreshed = 0
        self.cleaned = 0

    def initialize(self) -> None:
        self.initialized += 1
        if self.fail_init:
            raise InitializationError(self.name, f"{self.name} backend unreachable")

    def resolve(self, key: str) -> str | None:
        self.calls.append(key)
        if self.on_resolve:
            self.on_resolve(key)
        if self.delay:
            time.sleep(self.delay)
        if key in self.values:
            return self.values[key]
        raise ResolutionError(self.name, key, f"{self.name} has no key '{key}'")

    def refresh_cache(self) -> None:
        self.refreshed += 1

    def cleanup(self) -> None:
        self.cleaned += 1


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_resolver(clock):
    """Build an initialized resolver over the given sources; cleaned up after the test."""
    created = []

    def _make(sources: dict, **config_kwargs) -> ParamResolver:
        resolver = ParamResolver(config=ParamarrConfig(**config_kwargs), sources=sources, clock=clock)
        resolver.initialize()
        created.append(resolver)
        return resolver

    yield _make

    for resolver in created:
        resolver.cleanup()
