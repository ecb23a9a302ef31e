"""Tests for K8sSource against a mocked API server."""

import base64
import ssl
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from paramarr.config import K8sSourceConfig
from paramarr.core.errors import InitializationError, ResolutionError
from paramarr.sources import K8sSource
from paramarr.sources.k8s import ClusterConnection, _ssl_verify, load_kubeconfig, parse_key


def b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


SECRET = {
    "metadata": {"name": "db-creds", "namespace": "default"},
    "data": {"username": b64("svc"), "password": b64("pa55")},
}
CONFIGMAP = {
    "metadata": {"name": "app-config", "namespace": "staging"},
    "data": {"app.properties": "debug=true", "LOG_LEVEL": "info"},
}


class ApiServer:
    def __init__(self, routes: dict | None = None, version_status: int = 200):
        self.routes = {
            "/api/v1/namespaces/default/secrets/db-creds": (200, SECRET),
            "/api/v1/namespaces/staging/configmaps/app-config": (200, CONFIGMAP),
            **(routes or {}),
        }
        self.version_status = version_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/version":
            return httpx.Response(self.version_status, json={"gitVersion": "v1.29.0"})
        route = self.routes.get(request.url.path, (404, {"kind": "Status", "code": 404}))
        if callable(route):
            route = route(request)
        status, body = route
        return httpx.Response(status, json=body)


@pytest.fixture
def server():
    return ApiServer()


@pytest.fixture
def source(server):
    config = K8sSourceConfig(enabled=True, api_server="https://k8s.test", token="sa-token", retry_delay=0)
    k8s = K8sSource(config, transport=httpx.MockTransport(server), sleep=lambda s: None)
    k8s.initialize()
    yield k8s
    k8s.cleanup()


class TestParseKey:
    def test_type_and_name(self):
        parsed = parse_key("secret:db-creds")
        assert (parsed.resource_type, parsed.name, parsed.field, parsed.namespace) == (
            "secret",
            "db-creds",
            None,
            None,
        )

    def test_field_keeps_colons(self):
        assert parse_key("configmap:cfg:a:b").field == "a:b"

    def test_namespace(self):
        parsed = parse_key("secret:prod/db-creds:password")
        assert (parsed.namespace, parsed.name, parsed.field) == ("prod", "db-creds", "password")

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid key format"):
            parse_key("secret")


class TestInitialize:
    def test_sends_bearer_token(self, source, server):
        assert server.requests[0].url.path == "/version"
        assert server.requests[0].headers["Authorization"] == "Bearer sa-token"

    def test_unauthorized(self):
        config = K8sSourceConfig(enabled=True, api_server="https://k8s.test", token="bad")
        k8s = K8sSource(config, transport=httpx.MockTransport(ApiServer(version_status=401)))

        with pytest.raises(InitializationError, match="authentication failed"):
            k8s.initialize()

    def test_no_connection_settings(self, monkeypatch, tmp_path):
        monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)
        config = K8sSourceConfig(enabled=True, kubeconfig=None)

        with pytest.raises(InitializationError, match="Not running in a cluster"):
            K8sSource(config).initialize()

    def test_kubeconfig(self, tmp_path):
        kubeconfig = tmp_path / "config"
        kubeconfig.write_text(
            """
apiVersion: v1
current-context: dev
clusters:
- name: dev-cluster
  cluster:
    server: https://k8s.test
    insecure-skip-tls-verify: true
- name: prod-cluster
  cluster:
    server: https://prod.k8s.test
contexts:
- name: dev
  context: {cluster: dev-cluster, user: dev-user}
- name: prod
  context: {cluster: prod-cluster, user: prod-user}
users:
- name: dev-user
  user: {token: dev-token}
- name: prod-user
  user: {token: prod-token}
"""
        )

        dev = load_kubeconfig(kubeconfig)
        assert (dev.server, dev.token, dev.verify) == ("https://k8s.test", "dev-token", False)

        prod = load_kubeconfig(kubeconfig, context="prod")
        assert (prod.server, prod.token, prod.verify) == ("https://prod.k8s.test", "prod-token", True)

        with pytest.raises(ValueError, match="context 'staging' not found"):
            load_kubeconfig(kubeconfig, context="staging")

    def test_initialize_from_kubeconfig(self, tmp_path):
        kubeconfig = tmp_path / "config"
        kubeconfig.write_text(
            "current-context: dev\n"
            "clusters: [{name: c, cluster: {server: 'https://k8s.test'}}]\n"
            "contexts: [{name: dev, context: {cluster: c, user: u}}]\n"
            "users: [{name: u, user: {token: kube-token}}]\n"
        )
        server = ApiServer()
        k8s = K8sSource(
            K8sSourceConfig(enabled=True, kubeconfig=str(kubeconfig)), transport=httpx.MockTransport(server)
        )

        k8s.initialize()
        try:
            assert server.requests[0].headers["Authorization"] == "Bearer kube-token"
        finally:
            k8s.cleanup()


class TestResolve:
    def test_secret_field_decoded(self, source):
        assert source.resolve("secret:db-creds:password") == "pa55"

    def test_whole_secret(self, source):
        assert source.resolve("secret:db-creds") == '{"username":"svc","password":"pa55"}'

    def test_configmap_in_namespace(self, source):
        assert source.resolve("configmap:staging/app-config:LOG_LEVEL") == "info"

    def test_dotted_data_key(self, source):
        assert source.resolve("configmap:staging/app-config:app.properties") == "debug=true"

    def test_not_found(self, source):
        with pytest.raises(ResolutionError, match="Secret 'nope' not found in namespace 'default'"):
            source.resolve("secret:nope:x")

    def test_forbidden(self, server, source):
        server.routes["/api/v1/namespaces/kube-system/secrets/admin"] = (403, {"code": 403})

        with pytest.raises(ResolutionError, match="Check RBAC permissions"):
            source.resolve("secret:kube-system/admin:token")

    def test_unsupported_type(self, source):
        with pytest.raises(ResolutionError, match="Unsupported Kubernetes resource type: pod"):
            source.resolve("pod:web:name")

    def test_missing_field(self, source):
        with pytest.raises(ResolutionError, match="Field 'token' not found in resource data"):
            source.resolve("secret:db-creds:token")

    def test_cached(self, source, server):
        source.resolve("secret:db-creds:username")
        source.resolve("secret:db-creds:password")

        resource_calls = [r for r in server.requests if r.url.path != "/version"]
        assert len(resource_calls) == 1

    def test_retries_server_error(self, server, source):
        responses = iter([(500, {}), (503, {}), (200, SECRET)])
        server.routes["/api/v1/namespaces/default/secrets/flaky"] = lambda request: next(responses)

        assert source.resolve("secret:flaky:username") == "svc"

    def test_gives_up_on_persistent_server_error(self, server, source):
        server.routes["/api/v1/namespaces/default/secrets/down"] = (500, {})

        with pytest.raises(ResolutionError, match="Failed to fetch Secret"):
            source.resolve("secret:down:username")


class TestListResources:
    def test_list_secrets(self, server, source):
        server.routes["/api/v1/namespaces/default/secrets"] = (200, {"items": [SECRET]})

        items = source.list_resources("secret")

        assert items == [{"name": "db-creds", "namespace": "default", "keys": ["password", "username"]}]


INLINE_KUBECONFIG = f"""
current-context: kind
clusters:
- name: kind-cluster
  cluster:
    server: https://127.0.0.1:6443
    certificate-authority-data: {b64("CA PEM")}
contexts:
- name: kind
  context: {{cluster: kind-cluster, user: kind-user}}
users:
- name: kind-user
  user:
    client-certificate-data: {b64("CERT PEM")}
    client-key-data: {b64("KEY PEM")}
"""


class TestKubeconfigCredentials:
    def test_inline_certificate_data(self, tmp_path):
        kubeconfig = tmp_path / "config"
        kubeconfig.write_text(INLINE_KUBECONFIG)

        connection = load_kubeconfig(kubeconfig)

        assert connection.server == "https://127.0.0.1:6443"
        assert connection.verify is True
        assert connection.ca_data == "CA PEM"
        assert connection.cert_data == (b"CERT PEM", b"KEY PEM")
        assert connection.has_client_cert

    def test_ssl_context_built_from_inline_data(self):
        connection = ClusterConnection(
            server="https://k8s.test", ca_data="CA PEM", cert_data=(b"CERT PEM", b"KEY PEM")
        )
        loaded = {}

        def capture(certfile, keyfile):
            loaded["files"] = (certfile, keyfile)
            loaded["cert"] = Path(certfile).read_bytes()
            loaded["key"] = Path(keyfile).read_bytes()

        with patch("paramarr.sources.k8s.ssl.create_default_context") as create:
            create.return_value.load_cert_chain.side_effect = capture
            context = _ssl_verify(connection)

        create.assert_called_once_with(cafile=None, cadata="CA PEM")
        assert context is create.return_value
        assert (loaded["cert"], loaded["key"]) == (b"CERT PEM", b"KEY PEM")
        assert not any(Path(f).exists() for f in loaded["files"])

    def test_skip_verify_keeps_client_cert(self):
        connection = ClusterConnection(server="https://k8s.test", verify=False, cert=("/c.crt", "/c.key"))

        with patch("paramarr.sources.k8s.ssl.create_default_context") as create:
            context = _ssl_verify(connection)

        assert context.check_hostname is False
        assert context.verify_mode == ssl.CERT_NONE
        context.load_cert_chain.assert_called_once_with("/c.crt", "/c.key")

    def test_plain_connection_uses_system_trust(self):
        assert _ssl_verify(ClusterConnection(server="https://k8s.test")) is True
        assert _ssl_verify(ClusterConnection(server="https://k8s.test", verify=False)) is False

    def test_token_file(self, tmp_path):
        (tmp_path / "token").write_text("file-token\n")
        kubeconfig = tmp_path / "config"
        kubeconfig.write_text(
            "current-context: dev\n"
            "clusters: [{name: c, cluster: {server: 'https://k8s.test'}}]\n"
            "contexts: [{name: dev, context: {cluster: c, user: u}}]\n"
            "users: [{name: u, user: {tokenFile: token}}]\n"
        )

        assert load_kubeconfig(kubeconfig).token == "file-token"

    def test_invalid_base64(self, tmp_path):
        kubeconfig = tmp_path / "config"
        kubeconfig.write_text(INLINE_KUBECONFIG.replace(b64("CA PEM"), "not*base64"))

        with pytest.raises(ValueError, match="certificate-authority-data' is not valid base64"):
            load_kubeconfig(kubeconfig)

    def test_exec_plugin_rejected(self, tmp_path):
        kubeconfig = tmp_path / "config"
        kubeconfig.write_text(
            "current-context: eks\n"
            "clusters: [{name: c, cluster: {server: 'https://eks.test'}}]\n"
            "contexts: [{name: eks, context: {cluster: c, user: u}}]\n"
            "users: [{name: u, user: {exec: {command: aws, args: [eks, get-token]}}}]\n"
        )

        with pytest.raises(ValueError, match="exec credential plugin"):
            load_kubeconfig(kubeconfig)

        source = K8sSource(K8sSourceConfig(enabled=True, kubeconfig=str(kubeconfig)))
        with pytest.raises(InitializationError, match="exec credential plugin"):
            source.initialize()
