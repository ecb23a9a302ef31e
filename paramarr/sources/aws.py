"""AWS Secrets Manager source.

Key formats:
    "secretName"                      whole secret
    "secretName:field.path"           field of a JSON secret
    "secretName@<uuid>:field"         specific VersionId
    "secretName@AWSPENDING:field"     specific VersionStage

Secrets are cached per (name, version) for `cacheTimeout` seconds.
Retries are delegated to botocore's retry config.
"""

import base64
import json
import logging
import re
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from paramarr.config import AwsSourceConfig
from paramarr.core.errors import InitializationError, ResolutionError
from paramarr.core.interfaces import ParamSource
from paramarr.utilities.cache import TTLCache, make_cache_key
from paramarr.utilities.paths import MISSING, get_path, to_text

logger = logging.getLogger(__name__)

_VERSION_ID_PATTERN = re.compile(r"^[a-f0-9-]{36}$", re.IGNORECASE)
DEFAULT_VERSION_STAGE = "AWSCURRENT"

# ClientError code -> message template
_ERROR_MESSAGES = {
    "ResourceNotFoundException": "Secret '{name}' not found",
    "AccessDeniedException": "Access denied to secret '{name}'. Check IAM permissions.",
    "InvalidParameterException": "Invalid parameter for secret '{name}'",
    "DecryptionFailureException": "Failed to decrypt secret '{name}'. Check KMS permissions.",
}


def parse_key(key: str) -> dict[str, str | None]:
    secret_name = key
    field = None
    version_id = None
    version_stage = None

    if "@" in key:
        secret_name, _, version_part = key.partition("@")
        version, _, field = version_part.partition(":")
        if _VERSION_ID_PATTERN.match(version):
            version_id = version
        else:
            version_stage = version
    elif ":" in key:
        secret_name, _, field = key.partition(":")

    return {
        "secret_name": secret_name,
        "field": field or None,
        "version_id": version_id,
        "version_stage": version_stage,
    }


class AwsSecretsSource(ParamSource):
    name = "aws"

    def __init__(self, config: AwsSourceConfig | None = None, client: Any = None):
        self._config = config or AwsSourceConfig()
        self._client = client
        self._injected_client = client is not None
        self._secret_cache = TTLCache(ttl=self._config.cache_timeout)
        # botocore handles retries inside one call; each attempt is bounded by connect+read timeouts
        self.timeout = self._config.resolve_timeout or self._config.timeout * 2 * (self._config.retries + 1)

    def _session_kwargs(self) -> dict[str, Any]:
        cfg = self._config
        kwargs: dict[str, Any] = {"region_name": cfg.region}
        if cfg.access_key_id and cfg.secret_access_key:
            kwargs["aws_access_key_id"] = cfg.access_key_id
            kwargs["aws_secret_access_key"] = cfg.secret_access_key.get_secret_value()
            if cfg.session_token:
                kwargs["aws_session_token"] = cfg.session_token.get_secret_value()
        elif cfg.profile:
            kwargs["profile_name"] = cfg.profile
        return kwargs

    def _build_client(self):
        cfg = self._config
        session = boto3.Session(**self._session_kwargs())
        client_config = Config(
            connect_timeout=cfg.timeout,
            read_timeout=cfg.timeout,
            retries={"max_attempts": cfg.retries + 1, "mode": "standard"},
        )
        client_kwargs: dict[str, Any] = {"config": client_config}
        if cfg.endpoint_url:
            client_kwargs["endpoint_url"] = cfg.endpoint_url

        if cfg.role_arn:
            sts = session.client("sts", **client_kwargs)
            assumed = sts.assume_role(RoleArn=cfg.role_arn, RoleSessionName="paramarr")
            creds = assumed["Credentials"]
            session = boto3.Session(
                region_name=cfg.region,
                aws_access_key_id=creds["AccessKeyId"],
                aws_secret_access_key=creds["SecretAccessKey"],
                aws_session_token=creds["SessionToken"],
            )

        return session.client("secretsmanager", **client_kwargs)

    def initialize(self) -> None:
        try:
            if not self._injected_client:
                self._client = self._build_client()
            # Cheapest authenticated call
            self._client.list_secrets(MaxResults=1)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("UnauthorizedOperation", "AccessDenied", "AccessDeniedException"):
                message = f"AWS credentials are invalid or have insufficient permissions: {e}"
            elif code == "SignatureDoesNotMatch":
                message = "AWS signature validation failed. Check credentials and region."
            else:
                message = f"AWS connection test failed: {e}"
            raise InitializationError(self.name, message) from e
        except BotoCoreError as e:
            raise InitializationError(self.name, f"Failed to initialize AWS Secrets Manager: {e}") from e

        logger.info("[AWS] Secrets Manager ready (region=%s)", self._config.region)

    def resolve(self, key: str) -> str:
        parts = parse_key(key)
        secret_name = parts["secret_name"]
        version = parts["version_id"] or parts["version_stage"] or DEFAULT_VERSION_STAGE
        cache_key = make_cache_key(secret_name, version)
        try:
            secret = self._secret_cache.get(cache_key, MISSING)
            if secret is MISSING:
                secret = self.fetch_secret(secret_name, parts["version_id"], parts["version_stage"])
                self._secret_cache.set(cache_key, secret)
            return self._extract_field(secret, parts["field"])
        except ValueError as e:
            raise ResolutionError(self.name, key, f"AwsSecretsSource failed to resolve key '{key}': {e}") from e

    def fetch_secret(
        self,
        secret_name: str,
        version_id: str | None = None,
        version_stage: str | None = None,
    ) -> Any:
        """Fetch and decode a secret value.

        JSON secrets are parsed, other strings returned as-is, binary
        secrets returned base64-encoded.

        Raises:
            ValueError: On any Secrets Manager failure
        """
        if self._client is None:
            raise ValueError("Secrets Manager client not initialized")

        params: dict[str, str] = {"SecretId": secret_name}
        if version_id:
            params["VersionId"] = version_id
        elif version_stage:
            params["VersionStage"] = version_stage

        try:
            result = self._client.get_secret_value(**params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            template = _ERROR_MESSAGES.get(code)
            if template:
                raise ValueError(template.format(name=secret_name)) from e
            raise ValueError(f"AWS Secrets Manager error: {e}") from e
        except BotoCoreError as e:
            raise ValueError(f"AWS Secrets Manager error: {e}") from e

        if result.get("SecretString") is not None:
            try:
                return json.loads(result["SecretString"])
            except ValueError:
                return result["SecretString"]
        if result.get("SecretBinary") is not None:
            return base64.b64encode(result["SecretBinary"]).decode("ascii")
        raise ValueError("Secret contains no data")

    @staticmethod
    def _extract_field(secret: Any, field: str | None) -> str:
        if not field:
            return to_text(secret)
        if isinstance(secret, str):
            raise ValueError(f"Cannot extract field '{field}' from string secret. Secret must be JSON.")
        value = get_path(secret, field)
        if value is MISSING:
            raise ValueError(f"Field '{field}' not found in secret")
        return to_text(value)

    def list_secrets(self, max_results: int = 100) -> list[dict]:
        if self._client is None:
            raise ResolutionError(self.name, "", "Secrets Manager client not initialized")
        try:
            result = self._client.list_secrets(MaxResults=max_results)
        except (ClientError, BotoCoreError) as e:
            raise ResolutionError(self.name, "", f"Failed to list secrets: {e}") from e
        return [
            {
                "name": secret.get("Name"),
                "arn": secret.get("ARN"),
                "description": secret.get("Description"),
                "last_changed": secret.get("LastChangedDate"),
            }
            for secret in result.get("SecretList", [])
        ]

    def refresh_cache(self) -> None:
        self._secret_cache.clear()

    def cleanup(self) -> None:
        self._secret_cache.clear()
        if not self._injected_client:
            self._client = None
