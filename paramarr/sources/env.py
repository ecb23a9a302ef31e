"""Environment variable source.

Key format: the variable name. The configured prefix is prepended and
the configured case transform applied before lookup.

    <user:env#USER>               -> $USER
    <url:env#database_url>        -> $APP_DATABASE_URL  (prefix "APP_", upper)
"""

import os
from collections.abc import Mapping

from paramarr.config import EnvSourceConfig
from paramarr.core.errors import ResolutionError
from paramarr.core.interfaces import ParamSource


class EnvSource(ParamSource):
    """Reads values from a process environment mapping.

    No backend cache: the environment is already in memory.
    """

    name = "env"

    def __init__(self, config: EnvSourceConfig | None = None, environ: Mapping[str, str] | None = None):
        self._config = config or EnvSourceConfig()
        self._environ = environ if environ is not None else os.environ
        self.timeout = self._config.resolve_timeout

    def _env_key(self, key: str) -> str:
        env_key = f"{self._config.prefix}{key}" if self._config.prefix else key
        if self._config.transform_case == "upper":
            return env_key.upper()
        if self._config.transform_case == "lower":
            return env_key.lower()
        return env_key

    def resolve(self, key: str) -> str:
        env_key = self._env_key(key)
        value = self._environ.get(env_key)
        if value is None:
            raise ResolutionError(
                self.name,
                key,
                f"EnvSource failed to resolve key '{key}': Environment variable '{env_key}' not found",
            )
        return value

    def exists(self, key: str) -> bool:
        return self._env_key(key) in self._environ

    def list_available(self) -> list[dict]:
        """List variables visible through the configured prefix.

        Values are never returned, only whether they are non-empty.
        """
        prefix = self._config.prefix
        available = []
        for env_key, value in self._environ.items():
            if prefix and not env_key.startswith(prefix):
                continue
            available.append(
                {
                    "key": env_key[len(prefix) :] if prefix else env_key,
                    "original_key": env_key,
                    "has_value": bool(value),
                }
            )
        return available
