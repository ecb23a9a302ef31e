"""Source contract implemented by every backend adapter."""

from abc import ABC, abstractmethod


class ParamSource(ABC):
    """Capability interface for a placeholder source.

    Lifecycle: initialize() once, resolve() any number of times
    (concurrently, for different keys), refresh_cache() between logical
    test units, cleanup() at the end of the run.

    Key grammar is adapter-specific but always a single string; any
    sub-structure (field path, HTTP method, namespace) is parsed by the
    adapter itself.
    """

    #: Source identifier used in placeholders (e.g. "env", "vault")
    name: str = ""

    #: Upper bound in seconds for one resolve() call, enforced by the caller
    timeout: float | None = None

    def initialize(self) -> None:
        """Connect/validate the backend.

        Raises:
            InitializationError: Backend unreachable or misconfigured
        """

    @abstractmethod
    def resolve(self, key: str) -> str | None:
        """Return the value for `key`.

        Raises:
            ResolutionError: Key/path/field absent, access denied, or
                backend unreachable
        """

    def refresh_cache(self) -> None:
        """Drop everything in the adapter-owned cache."""

    def cleanup(self) -> None:
        """Release clients and clear caches."""
