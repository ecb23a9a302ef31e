"""Kubernetes Secret / ConfigMap source.

Key formats:
    "secret:name"                 whole secret data as JSON
    "secret:name:field"           one field (base64-decoded)
    "configmap:name:field.path"   ConfigMap field
    "secret:namespace/name:field" explicit namespace

Talks to the API server over plain REST with httpx. Connection settings
come from, in order: explicit apiServer/token, a kubeconfig file, the
in-cluster service account.
"""

import base64
import logging
import os
import ssl
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import yaml

from paramarr.config import K8sSourceConfig
from paramarr.core.errors import InitializationError, ResolutionError
from paramarr.core.interfaces import ParamSource
from paramarr.utilities.cache import TTLCache, make_cache_key
from paramarr.utilities.paths import MISSING, get_path, to_text
from paramarr.utilities.retry import call_with_retry, retry_budget

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
RESOURCE_TYPES = {"secret": "secrets", "configmap": "configmaps"}


@dataclass(frozen=True)
class K8sKey:
    resource_type: str
    name: str
    field: str | None = None
    namespace: str | None = None


@dataclass
class ClusterConnection:
    server: str
    token: str | None = None
    verify: bool | str = True
    cert: tuple[str, str] | None = None
    ca_data: str | None = None  # PEM text
    cert_data: tuple[bytes, bytes] | None = None  # (certificate PEM, key PEM)

    @property
    def has_client_cert(self) -> bool:
        return self.cert is not None or self.cert_data is not None


class _ServerError(Exception):
    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}: {response.reason_phrase}")


def parse_key(key: str) -> K8sKey:
    """Split a k8s key.

    Raises:
        ValueError: Fewer than two ':'-separated parts
    """
    parts = key.split(":", 2)
    if len(parts) < 2 or not parts[1]:
        raise ValueError(f"Invalid key format. Expected 'type:name' or 'type:name:field', got: {key}")

    resource_type, name = parts[0], parts[1]
    field = parts[2] if len(parts) > 2 and parts[2] else None
    namespace = None
    if "/" in name:
        namespace, _, name = name.partition("/")
    return K8sKey(resource_type=resource_type, name=name, field=field, namespace=namespace or None)


def _resolve_relative(path: str | None, base: Path) -> str | None:
    if not path:
        return None
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    return str(candidate)


def _named(entries: list[dict] | None, name: str | None, kind: str) -> dict:
    for entry in entries or []:
        if entry.get("name") == name:
            return entry.get(kind) or {}
    raise ValueError(f"{kind} '{name}' not found in kubeconfig")


def _decode_data(entry: dict, field: str) -> bytes | None:
    value = entry.get(field)
    if not value:
        return None
    try:
        return base64.b64decode(value, validate=True)
    except ValueError as e:
        raise ValueError(f"kubeconfig field '{field}' is not valid base64") from e


def _user_token(user: dict, base: Path) -> str | None:
    if user.get("exec") or user.get("auth-provider"):
        plugin = "exec" if user.get("exec") else "auth-provider"
        raise ValueError(
            f"kubeconfig user uses an {plugin} credential plugin, which is not supported. "
            "Configure token or client certificates, or set apiServer and token."
        )
    if user.get("token"):
        return user["token"]
    token_file = _resolve_relative(user.get("tokenFile"), base)
    if token_file:
        return Path(token_file).read_text(encoding="utf-8").strip()
    return None


def load_kubeconfig(path: str | Path, context: str | None = None) -> ClusterConnection:
    """Read server, token and TLS settings for one kubeconfig context.

    Certificates may be given as files or inline as base64 `*-data`
    fields; inline data wins, as with kubectl. Credential plugins (exec,
    auth-provider) are rejected.

    Raises:
        ValueError: Malformed kubeconfig or unknown context
        OSError: File not readable
    """
    kubeconfig_path = Path(path).expanduser()
    with open(kubeconfig_path, encoding="utf-8") as f:
        document = yaml.safe_load(f) or {}
    base = kubeconfig_path.parent

    context_name = context or document.get("current-context")
    if not context_name:
        raise ValueError("kubeconfig has no current-context and none was configured")

    ctx = _named(document.get("contexts"), context_name, "context")
    cluster = _named(document.get("clusters"), ctx.get("cluster"), "cluster")
    user = _named(document.get("users"), ctx.get("user"), "user") if ctx.get("user") else {}

    server = cluster.get("server")
    if not server:
        raise ValueError(f"cluster '{ctx.get('cluster')}' has no server")

    connection = ClusterConnection(server=server, token=_user_token(user, base))

    ca_data = _decode_data(cluster, "certificate-authority-data")
    if cluster.get("insecure-skip-tls-verify"):
        connection.verify = False
    elif ca_data:
        connection.ca_data = ca_data.decode("utf-8")
    elif cluster.get("certificate-authority"):
        connection.verify = _resolve_relative(cluster["certificate-authority"], base)

    cert_data = _decode_data(user, "client-certificate-data")
    key_data = _decode_data(user, "client-key-data")
    if cert_data and key_data:
        connection.cert_data = (cert_data, key_data)
    elif user.get("client-certificate") and user.get("client-key"):
        connection.cert = (
            _resolve_relative(user["client-certificate"], base),
            _resolve_relative(user["client-key"], base),
        )

    return connection


def load_in_cluster(account_dir: Path = SERVICE_ACCOUNT_DIR) -> ClusterConnection:
    """Connection settings for a pod's mounted service account.

    Raises:
        ValueError: Not running inside a cluster
    """
    host = os.environ.get("KUBERNETES_SERVICE_HOST")
    port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
    token_file = account_dir / "token"
    if not host or not token_file.exists():
        raise ValueError("Not running in a cluster and no kubeconfig/apiServer configured")
    ca_file = account_dir / "ca.crt"
    return ClusterConnection(
        server=f"https://{host}:{port}",
        token=token_file.read_text(encoding="utf-8").strip(),
        verify=str(ca_file) if ca_file.exists() else True,
    )


def _load_cert_data(context: ssl.SSLContext, cert_pem: bytes, key_pem: bytes) -> None:
    # load_cert_chain only reads files; they are removed once loaded
    with tempfile.TemporaryDirectory(prefix="paramarr-k8s-") as tmp:
        cert_file = Path(tmp) / "client.crt"
        key_file = Path(tmp) / "client.key"
        cert_file.write_bytes(cert_pem)
        key_file.write_bytes(key_pem)
        key_file.chmod(0o600)
        context.load_cert_chain(str(cert_file), str(key_file))


def _ssl_verify(connection: ClusterConnection) -> bool | ssl.SSLContext:
    cafile = connection.verify if isinstance(connection.verify, str) else None
    if connection.verify is False:
        if not connection.has_client_cert:
            return False
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    elif cafile is None and connection.ca_data is None and not connection.has_client_cert:
        return True
    else:
        context = ssl.create_default_context(cafile=cafile, cadata=connection.ca_data)

    if connection.cert:
        context.load_cert_chain(*connection.cert)
    elif connection.cert_data:
        _load_cert_data(context, *connection.cert_data)
    return context


class K8sSource(ParamSource):
    name = "k8s"

    def __init__(
        self,
        config: K8sSourceConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config or K8sSourceConfig()
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.Client | None = None
        self._resource_cache = TTLCache(ttl=self._config.cache_timeout)
        self.timeout = self._config.resolve_timeout or retry_budget(
            self._config.timeout, self._config.retries, self._config.retry_delay
        )

    # =========================================================================
    # Connection
    # =========================================================================

    def _connection(self) -> ClusterConnection:
        cfg = self._config
        if cfg.api_server:
            verify: bool | str = cfg.verify
            if cfg.verify and cfg.ca_cert:
                verify = cfg.ca_cert
            token = cfg.token.get_secret_value() if cfg.token else None
            return ClusterConnection(server=cfg.api_server, token=token, verify=verify)
        if cfg.kubeconfig:
            return load_kubeconfig(cfg.kubeconfig, cfg.context)
        return load_in_cluster()

    def initialize(self) -> None:
        try:
            connection = self._connection()
            verify = _ssl_verify(connection)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise InitializationError(self.name, f"Failed to initialize Kubernetes client: {e}") from e

        headers = {"Accept": "application/json"}
        if connection.token:
            headers["Authorization"] = f"Bearer {connection.token}"

        self._client = httpx.Client(
            base_url=connection.server,
            headers=headers,
            verify=verify,
            timeout=self._config.timeout,
            transport=self._transport,
        )
        try:
            self.test_connection()
        except InitializationError:
            self._client.close()
            self._client = None
            raise
        logger.info("[K8S] Connected to %s (namespace=%s)", connection.server, self._config.namespace)

    def test_connection(self) -> None:
        """Raises InitializationError if the API server rejects us."""
        try:
            response = self._client.get("/version")
        except httpx.HTTPError as e:
            raise InitializationError(self.name, f"Kubernetes connection test failed: {e}") from e
        if response.status_code == 401:
            raise InitializationError(self.name, "Kubernetes authentication failed. Check credentials.")
        if response.status_code == 403:
            raise InitializationError(self.name, "Kubernetes authorization failed. Check RBAC permissions.")
        if not response.is_success:
            raise InitializationError(
                self.name,
                f"Kubernetes connection test failed: HTTP {response.status_code}: {response.reason_phrase}",
            )

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve(self, key: str) -> str:
        try:
            parsed = parse_key(key)
            if parsed.resource_type not in RESOURCE_TYPES:
                raise ValueError(
                    f"Unsupported Kubernetes resource type: {parsed.resource_type}. "
                    "Supported types: secret, configmap"
                )
            namespace = parsed.namespace or self._config.namespace
            data = self.get_resource(parsed.resource_type, parsed.name, namespace)
            return self._extract_field(data, parsed.field)
        except ValueError as e:
            raise ResolutionError(self.name, key, f"K8sSource failed to resolve key '{key}': {e}") from e

    def get_resource(self, resource_type: str, name: str, namespace: str) -> dict[str, Any]:
        """Fetch the data of a Secret (decoded) or ConfigMap, cached.

        Raises:
            ValueError: Not found, forbidden, empty, or API failure
        """
        cache_key = make_cache_key(resource_type, namespace, name)
        data = self._resource_cache.get(cache_key, MISSING)
        if data is not MISSING:
            return data

        label = "Secret" if resource_type == "secret" else "ConfigMap"
        body = self._get(f"/api/v1/namespaces/{namespace}/{RESOURCE_TYPES[resource_type]}/{name}", label, name, namespace)

        data = body.get("data")
        if not data:
            raise ValueError(f"{label} '{name}' in namespace '{namespace}' has no data")
        if resource_type == "secret":
            data = {k: base64.b64decode(v).decode("utf-8", errors="replace") for k, v in data.items()}

        self._resource_cache.set(cache_key, data)
        return data

    def _get(self, path: str, label: str, name: str, namespace: str) -> dict:
        if self._client is None:
            raise ValueError("Kubernetes client not initialized")

        def send() -> httpx.Response:
            response = self._client.get(path)
            if response.is_server_error:
                raise _ServerError(response)
            return response

        try:
            response = call_with_retry(
                send,
                retries=self._config.retries,
                delay=self._config.retry_delay,
                retry_on=(httpx.TransportError, _ServerError),
                label=f"k8s GET {path}",
                sleep=self._sleep,
            )
        except (httpx.HTTPError, _ServerError) as e:
            raise ValueError(f"Failed to fetch {label}: {e}") from e

        if response.status_code == 404:
            raise ValueError(f"{label} '{name}' not found in namespace '{namespace}'")
        if response.status_code == 403:
            raise ValueError(
                f"Access denied to {label} '{name}' in namespace '{namespace}'. Check RBAC permissions."
            )
        if not response.is_success:
            raise ValueError(f"Failed to fetch {label}: HTTP {response.status_code}: {response.reason_phrase}")
        return response.json()

    @staticmethod
    def _extract_field(data: dict, field: str | None) -> str:
        if not field:
            return to_text(data)
        # Data keys often contain dots ("app.properties"); try the literal key first
        value = data.get(field, MISSING)
        if value is MISSING:
            value = get_path(data, field)
        if value is MISSING:
            raise ValueError(f"Field '{field}' not found in resource data")
        return to_text(value)

    # =========================================================================
    # Utilities
    # =========================================================================

    def list_resources(self, resource_type: str, namespace: str | None = None) -> list[dict]:
        """List names and key sets of Secrets/ConfigMaps in a namespace."""
        if resource_type not in RESOURCE_TYPES:
            raise ResolutionError(self.name, resource_type, f"Unsupported Kubernetes resource type: {resource_type}")
        target = namespace or self._config.namespace
        path = f"/api/v1/namespaces/{target}/{RESOURCE_TYPES[resource_type]}"
        try:
            body = self._get(path, resource_type, "*", target)
        except ValueError as e:
            raise ResolutionError(self.name, resource_type, f"Failed to list {resource_type}s: {e}") from e
        return [
            {
                "name": item.get("metadata", {}).get("name"),
                "namespace": item.get("metadata", {}).get("namespace"),
                "keys": sorted((item.get("data") or {}).keys()),
            }
            for item in body.get("items", [])
        ]

    def refresh_cache(self) -> None:
        self._resource_cache.clear()

    def cleanup(self) -> None:
        self._resource_cache.clear()
        if self._client:
            self._client.close()
            self._client = None
