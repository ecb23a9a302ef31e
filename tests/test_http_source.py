"""Tests for HttpSource using httpx.MockTransport."""

import json

import httpx
import pytest

from paramarr.config import HttpAuthConfig, HttpSourceConfig
from paramarr.core.errors import ResolutionError
from paramarr.sources import EnvSource, HttpSource
from paramarr.sources.http import parse_key


class Recorder:
    """MockTransport handler serving canned responses per (method, path)."""

    def __init__(self, routes: dict):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404)
        if callable(route):
            return route(request)
        # Fresh copy per request; a Response object is single-use
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)


@pytest.fixture
def make_source():
    created = []

    def _make(routes: dict, **config_kwargs) -> tuple[HttpSource, Recorder, list]:
        recorder = Recorder(routes)
        waits: list[float] = []
        config = HttpSourceConfig(base_url="https://api.test", retry_delay=0.5, **config_kwargs)
        source = HttpSource(config, transport=httpx.MockTransport(recorder), sleep=waits.append)
        source.initialize()
        created.append(source)
        return source, recorder, waits

    yield _make

    for source in created:
        source.cleanup()


class TestParseKey:
    def test_plain_url(self):
        spec = parse_key("https://api.test/config")
        assert (spec.method, spec.url, spec.body, spec.json_path) == ("GET", "https://api.test/config", None, None)

    def test_json_path(self):
        assert parse_key("/config#db.host").json_path == "db.host"

    def test_method_and_json_body(self):
        spec = parse_key('POST:/auth/token:{"user":"svc"}#access_token')
        assert spec.method == "POST"
        assert spec.url == "/auth/token"
        assert spec.body == {"user": "svc"}
        assert spec.json_path == "access_token"

    def test_port_is_not_a_body_separator(self):
        spec = parse_key("POST:http://localhost:8080/token:raw-body")
        assert spec.url == "http://localhost:8080/token"
        assert spec.body == "raw-body"

    def test_get_never_has_body(self):
        spec = parse_key("GET:http://localhost:8080/a:b")
        assert spec.url == "http://localhost:8080/a:b"
        assert spec.body is None


class TestResolve:
    def test_json_field(self, make_source):
        source, _, _ = make_source({("GET", "/config"): httpx.Response(200, json={"db": {"host": "db1"}})})
        assert source.resolve("/config#db.host") == "db1"

    def test_whole_json_body(self, make_source):
        source, _, _ = make_source({("GET", "/flags"): httpx.Response(200, json={"beta": True})})
        assert source.resolve("/flags") == '{"beta":true}'

    def test_text_body(self, make_source):
        source, _, _ = make_source({("GET", "/plain"): httpx.Response(200, text="hello")})
        assert source.resolve("/plain") == "hello"

    def test_post_sends_json_body(self, make_source):
        source, recorder, _ = make_source(
            {("POST", "/auth/token"): httpx.Response(200, json={"access_token": "tok"})}
        )

        assert source.resolve('POST:/auth/token:{"user":"svc"}#access_token') == "tok"
        assert json.loads(recorder.requests[0].content) == {"user": "svc"}

    def test_http_error_status(self, make_source):
        source, _, _ = make_source({})

        with pytest.raises(ResolutionError, match="HTTP 404"):
            source.resolve("/missing#a")

    def test_missing_path(self, make_source):
        source, _, _ = make_source({("GET", "/config"): httpx.Response(200, json={"db": {}})})

        with pytest.raises(ResolutionError, match="Path 'db.host' not found in response"):
            source.resolve("/config#db.host")

    def test_retries_server_errors(self, make_source):
        responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, json={"v": 1})])
        source, recorder, waits = make_source({("GET", "/flaky"): lambda request: next(responses)})

        assert source.resolve("/flaky#v") == "1"
        assert len(recorder.requests) == 3
        assert waits == [0.5, 1.0]

    def test_gives_up_after_retries(self, make_source):
        source, recorder, _ = make_source({("GET", "/down"): httpx.Response(500)}, retries=1)

        with pytest.raises(ResolutionError, match="HTTP 500"):
            source.resolve("/down")
        assert len(recorder.requests) == 2

    def test_client_errors_not_retried(self, make_source):
        source, recorder, _ = make_source({("GET", "/forbidden"): httpx.Response(403)})

        with pytest.raises(ResolutionError, match="HTTP 403"):
            source.resolve("/forbidden")
        assert len(recorder.requests) == 1

    def test_network_error(self, make_source):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        source, _, _ = make_source({("GET", "/x"): refuse}, retries=0)

        with pytest.raises(ResolutionError, match="Network error"):
            source.resolve("/x")

    def test_timeout(self, make_source):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        source, _, _ = make_source({("GET", "/slow"): slow}, retries=0)

        with pytest.raises(ResolutionError, match="Request timeout after 3.0s"):
            source.resolve("/slow")


class TestResponseCache:
    def test_cached_per_key(self, make_source):
        source, recorder, _ = make_source({("GET", "/config"): httpx.Response(200, json={"a": 1})})

        source.resolve("/config#a")
        source.resolve("/config#a")

        assert len(recorder.requests) == 1

    def test_refresh_cache(self, make_source):
        source, recorder, _ = make_source({("GET", "/config"): httpx.Response(200, json={"a": 1})})

        source.resolve("/config#a")
        source.refresh_cache()
        source.resolve("/config#a")

        assert len(recorder.requests) == 2

    def test_caching_disabled(self, make_source):
        source, recorder, _ = make_source(
            {("GET", "/config"): httpx.Response(200, json={"a": 1})}, cache_responses=False
        )

        source.resolve("/config#a")
        source.resolve("/config#a")

        assert len(recorder.requests) == 2


class TestAuth:
    def test_bearer_token(self, make_source):
        source, recorder, _ = make_source(
            {("GET", "/me"): httpx.Response(200, json={"id": 7})},
            auth=HttpAuthConfig(token="abc123"),
        )

        source.resolve("/me#id")

        assert recorder.requests[0].headers["Authorization"] == "Bearer abc123"

    def test_basic_auth(self, make_source):
        source, recorder, _ = make_source(
            {("GET", "/me"): httpx.Response(200, json={"id": 7})},
            auth=HttpAuthConfig(username="svc", password="pw"),
        )

        source.resolve("/me#id")

        assert recorder.requests[0].headers["Authorization"].startswith("Basic ")

    def test_custom_headers(self, make_source):
        source, recorder, _ = make_source(
            {("GET", "/me"): httpx.Response(200, json={"id": 7})},
            headers={"X-Env": "ci"},
        )

        source.resolve("/me#id")

        assert recorder.requests[0].headers["X-Env"] == "ci"


class TestConnection:
    def test_test_connection(self, make_source):
        source, _, _ = make_source({("GET", "/health"): httpx.Response(200)})

        result = source.test_connection("/health")

        assert result["success"] is True
        assert result["status"] == 200

    def test_test_connection_failure(self, make_source):
        source, _, _ = make_source({})

        result = source.test_connection("/health")

        assert result == {"success": False, "status": 404, "error": result["error"]}


class TestKeysThatAreNotUrls:
    def test_schemeless_key_without_base_url_fails_fast(self):
        requests = []
        waits: list[float] = []
        source = HttpSource(
            HttpSourceConfig(retry_delay=1.0),
            transport=httpx.MockTransport(lambda request: requests.append(request) or httpx.Response(200)),
            sleep=waits.append,
        )
        source.initialize()
        try:
            with pytest.raises(ResolutionError, match="Not an HTTP URL and no baseUrl configured"):
                source.resolve("MISSING")
        finally:
            source.cleanup()

        assert requests == []
        assert waits == []

    def test_unsupported_protocol_not_retried(self, make_source):
        def unsupported(request):
            raise httpx.UnsupportedProtocol("Request URL has an unsupported protocol", request=request)

        source, recorder, waits = make_source({("GET", "/x"): unsupported}, retries=2)

        with pytest.raises(ResolutionError, match="Network error"):
            source.resolve("/x")
        assert len(recorder.requests) == 1
        assert waits == []

    def test_default_reached_without_backoff(self, make_resolver):
        waits: list[float] = []
        resolver = make_resolver(
            {
                "env": EnvSource(environ={}),
                "http": HttpSource(HttpSourceConfig(retry_delay=1.0), sleep=waits.append),
            }
        )

        assert resolver.resolve_text("<x:env#MISSING|fallback_value>") == "fallback_value"
        assert waits == []
