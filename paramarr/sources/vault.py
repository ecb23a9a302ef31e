"""HashiCorp Vault KV source.

Key format: "path/to/secret" (whole secret as JSON) or
"path/to/secret:field.path".

    <db_pass:vault#apps/shop/db:password>

Supports KV v1 and v2 under the configured mount. Secrets are cached per
secret path for `cacheTimeout` seconds, so several fields of the same
secret cost one read.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

import hvac
from hvac import exceptions as hvac_exceptions

from paramarr.config import VaultSourceConfig
from paramarr.core.errors import InitializationError, ResolutionError
from paramarr.core.interfaces import ParamSource
from paramarr.utilities.cache import TTLCache
from paramarr.utilities.paths import MISSING, get_path, to_text
from paramarr.utilities.retry import call_with_retry, retry_budget

logger = logging.getLogger(__name__)

# Transient failures worth another attempt; requests' connection errors are OSErrors
_RETRYABLE = (
    hvac_exceptions.VaultDown,
    hvac_exceptions.InternalServerError,
    hvac_exceptions.BadGateway,
    OSError,
)


class VaultSource(ParamSource):
    name = "vault"

    def __init__(
        self,
        config: VaultSourceConfig | None = None,
        client: hvac.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config or VaultSourceConfig()
        self._client = client
        self._injected_client = client is not None
        self._sleep = sleep
        self._secret_cache = TTLCache(ttl=self._config.cache_timeout)
        self.timeout = self._config.resolve_timeout or retry_budget(
            self._config.timeout, self._config.retries, self._config.retry_delay
        )

    def initialize(self) -> None:
        if not self._injected_client:
            if self._config.token is None:
                raise InitializationError(
                    self.name,
                    "Vault token is required. Set VAULT_TOKEN or provide 'token' in config.",
                )
            self._client = hvac.Client(
                url=self._config.url,
                token=self._config.token.get_secret_value(),
                namespace=self._config.namespace,
                verify=self._config.verify,
                timeout=self._config.timeout,
            )

        try:
            authenticated = self._client.is_authenticated()
        except (hvac_exceptions.VaultError, OSError) as e:
            raise InitializationError(self.name, f"Vault connection failed: {e}") from e
        if not authenticated:
            raise InitializationError(self.name, "Vault authentication failed - check token validity")

        logger.info("[VAULT] Connected to %s (KV %s, mount=%s)", self._config.url, self._config.version, self._config.mount)

    @staticmethod
    def parse_key(key: str) -> tuple[str, str | None]:
        secret_path, _, field = key.partition(":")
        return secret_path, field or None

    def resolve(self, key: str) -> str:
        secret_path, field = self.parse_key(key)
        try:
            secret = self._secret_cache.get(secret_path, MISSING)
            if secret is MISSING:
                secret = self.fetch_secret(secret_path)
                self._secret_cache.set(secret_path, secret)
            return self._extract_field(secret, field)
        except ValueError as e:
            raise ResolutionError(self.name, key, f"VaultSource failed to resolve key '{key}': {e}") from e

    def fetch_secret(self, secret_path: str) -> dict[str, Any]:
        """Read the data dict of a secret.

        Raises:
            ValueError: Not found, access denied, or backend failure
        """
        if self._client is None:
            raise ValueError("Vault client not initialized")

        def read() -> dict:
            if self._config.version == "v2":
                return self._client.secrets.kv.v2.read_secret_version(
                    path=secret_path,
                    mount_point=self._config.mount,
                    raise_on_deleted_version=True,
                )
            return self._client.secrets.kv.v1.read_secret(
                path=secret_path,
                mount_point=self._config.mount,
            )

        try:
            response = call_with_retry(
                read,
                retries=self._config.retries,
                delay=self._config.retry_delay,
                retry_on=_RETRYABLE,
                label=f"vault read {secret_path}",
                sleep=self._sleep,
            )
        except hvac_exceptions.Forbidden as e:
            raise ValueError(f"Access denied to secret '{secret_path}'. Check token permissions.") from e
        except hvac_exceptions.InvalidPath as e:
            raise ValueError(f"Secret not found at path '{secret_path}'") from e
        except (hvac_exceptions.VaultError, OSError) as e:
            raise ValueError(f"Failed to fetch secret: {e}") from e

        data = (response or {}).get("data")
        if self._config.version == "v2":
            data = (data or {}).get("data")
        if not data:
            raise ValueError(f"Secret not found at path '{secret_path}'")
        return data

    @staticmethod
    def _extract_field(secret: dict, field: str | None) -> str:
        if not field:
            return to_text(secret)
        value = get_path(secret, field)
        if value is MISSING:
            raise ValueError(f"Field '{field}' not found in secret")
        return to_text(value)

    def list_secrets(self, path: str = "") -> list[str]:
        """List secret names under `path` (empty list if none)."""
        if self._client is None:
            raise ResolutionError(self.name, path, "Vault client not initialized")
        try:
            if self._config.version == "v2":
                response = self._client.secrets.kv.v2.list_secrets(path=path, mount_point=self._config.mount)
            else:
                response = self._client.secrets.kv.v1.list_secrets(path=path, mount_point=self._config.mount)
        except hvac_exceptions.InvalidPath:
            return []
        except (hvac_exceptions.VaultError, OSError) as e:
            raise ResolutionError(self.name, path, f"Failed to list secrets: {e}") from e
        return (response.get("data") or {}).get("keys", [])

    def refresh_cache(self) -> None:
        self._secret_cache.clear()

    def cleanup(self) -> None:
        self._secret_cache.clear()
        # hvac.Client has no close; drop the reference
        if not self._injected_client:
            self._client = None
