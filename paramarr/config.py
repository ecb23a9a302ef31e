"""Configuration loading.

The config document is read once at engine initialization. Keys are
camelCase in the file (cacheTimeout, basePath, ...) and snake_case in
Python. A missing file is not an error: the default configuration
enables env, file and http and leaves vault, aws and k8s disabled.

Ambient credential lookups (VAULT_TOKEN, AWS_PROFILE, KUBECONFIG, ...)
happen here, as field defaults. Adapters only read the explicit config
object they are constructed with.
"""

import json
import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from paramarr.core.errors import ConfigError
from paramarr.utilities.cache import (
    CACHE_TTL_AWS,
    CACHE_TTL_HTTP,
    CACHE_TTL_K8S,
    CACHE_TTL_RESOLVED,
    CACHE_TTL_VAULT,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "paramarr.json"


def _env(name: str) -> str | None:
    return os.environ.get(name) or None


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_default=True,
        extra="ignore",
    )


# =============================================================================
# SOURCE CONFIGS
# =============================================================================


class SourceConfig(_ConfigModel):
    """Options shared by every adapter."""

    enabled: bool = True
    # Engine-side bound for one resolve() call; None derives it from the
    # adapter timeout and retry policy
    resolve_timeout: float | None = Field(default=None, gt=0)


class EnvSourceConfig(SourceConfig):
    prefix: str = ""
    transform_case: Literal["none", "upper", "lower"] = "none"


class FileSourceConfig(SourceConfig):
    base_path: Path = Field(default_factory=Path.cwd)
    allowed_extensions: list[str] = Field(default_factory=lambda: [".json", ".yaml", ".yml"])
    cache_files: bool = True
    max_file_size: int = 1024 * 1024


class HttpAuthConfig(_ConfigModel):
    token: SecretStr | None = None
    username: str | None = None
    password: SecretStr | None = None


class HttpSourceConfig(SourceConfig):
    timeout: float = Field(default=3.0, gt=0)
    base_url: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    auth: HttpAuthConfig | None = None
    retries: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    cache_responses: bool = True
    cache_timeout: float = CACHE_TTL_HTTP


class VaultSourceConfig(SourceConfig):
    enabled: bool = False
    timeout: float = Field(default=5.0, gt=0)
    url: str = "http://localhost:8200"
    token: SecretStr | None = Field(default_factory=lambda: _env("VAULT_TOKEN"))
    namespace: str | None = Field(default_factory=lambda: _env("VAULT_NAMESPACE"))
    mount: str = "secret"
    version: Literal["v1", "v2"] = "v2"
    verify: bool = True
    retries: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    cache_timeout: float = CACHE_TTL_VAULT


class AwsSourceConfig(SourceConfig):
    enabled: bool = False
    timeout: float = Field(default=5.0, gt=0)
    region: str = Field(default_factory=lambda: _env("AWS_DEFAULT_REGION") or "us-east-1")
    access_key_id: str | None = None
    secret_access_key: SecretStr | None = None
    session_token: SecretStr | None = None
    profile: str | None = Field(default_factory=lambda: _env("AWS_PROFILE"))
    role_arn: str | None = None
    endpoint_url: str | None = None
    retries: int = Field(default=2, ge=0)
    cache_timeout: float = CACHE_TTL_AWS


class K8sSourceConfig(SourceConfig):
    enabled: bool = False
    timeout: float = Field(default=5.0, gt=0)
    api_server: str | None = None
    token: SecretStr | None = None
    ca_cert: str | None = None
    kubeconfig: str | None = Field(default_factory=lambda: _env("KUBECONFIG"))
    context: str | None = None
    namespace: str = "default"
    verify: bool = True
    retries: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    cache_timeout: float = CACHE_TTL_K8S


class SourcesConfig(_ConfigModel):
    env: EnvSourceConfig = Field(default_factory=EnvSourceConfig)
    file: FileSourceConfig = Field(default_factory=FileSourceConfig)
    http: HttpSourceConfig = Field(default_factory=HttpSourceConfig)
    vault: VaultSourceConfig = Field(default_factory=VaultSourceConfig)
    aws: AwsSourceConfig = Field(default_factory=AwsSourceConfig)
    k8s: K8sSourceConfig = Field(default_factory=K8sSourceConfig)

    def get(self, name: str) -> SourceConfig | None:
        return getattr(self, name, None) if name in type(self).model_fields else None


# =============================================================================
# TOP-LEVEL CONFIG
# =============================================================================


class ParamarrConfig(_ConfigModel):
    """Engine configuration."""

    cache_timeout: float = Field(default=CACHE_TTL_RESOLVED, ge=0)
    max_workers: int = Field(default=4, ge=1)
    # Bound for sources that do not derive their own
    source_timeout: float = Field(default=30.0, gt=0)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)


def default_config() -> ParamarrConfig:
    return ParamarrConfig()


def _read_document(path: Path) -> dict:
    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(content)
    else:
        data = json.loads(content)
    return data or {}


def load_config(path: str | Path | None = None) -> ParamarrConfig:
    """Load configuration from `path` (default ./paramarr.json).

    Raises:
        ConfigError: File exists but cannot be read or fails validation
    """
    config_path = Path(path) if path else Path.cwd() / DEFAULT_CONFIG_FILENAME

    if not config_path.exists():
        logger.warning("[CONFIG] Config file not found at %s, using defaults", config_path)
        return default_config()

    try:
        data = _read_document(config_path)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Failed to load config {config_path}: top level must be a mapping")

    try:
        config = ParamarrConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid config {config_path}: {e}") from e

    logger.info("[CONFIG] Loaded config from %s", config_path)
    return config
