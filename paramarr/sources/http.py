"""HTTP endpoint source.

Key formats:
    "url"                      GET, whole body
    "url#path.to.value"        GET, extract a JSON field
    "POST:url#path"            any of GET/POST/PUT/PATCH/DELETE
    "POST:url:body#path"       POST/PUT/PATCH with a body (JSON if it parses)

For absolute URLs the body separator is the first ':' after the start of
the URL path, so "POST:http://host:8080/token:{...}" keeps the port.

Responses are cached per key for `cacheTimeout` seconds.
"""

import json
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import httpx

from paramarr.config import HttpSourceConfig
from paramarr.core.errors import ResolutionError
from paramarr.core.interfaces import ParamSource
from paramarr.utilities.cache import TTLCache
from paramarr.utilities.paths import MISSING, get_path, to_text
from paramarr.utilities.retry import call_with_retry, retry_budget

logger = logging.getLogger(__name__)

_METHOD_PATTERN = re.compile(r"^(GET|POST|PUT|PATCH|DELETE):")
_BODY_METHODS = ("POST", "PUT", "PATCH")

# The request itself is malformed; sending it again cannot help
_NOT_RETRYABLE = (httpx.UnsupportedProtocol, httpx.LocalProtocolError)


@dataclass(frozen=True)
class HttpRequestSpec:
    method: str
    url: str
    body: Any = None
    json_path: str | None = None


class _ServerError(Exception):
    """5xx response, eligible for retry."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}: {response.reason_phrase}")


def _split_body(target: str) -> tuple[str, str | None]:
    search_from = 0
    scheme_end = target.find("://")
    if scheme_end != -1:
        path_start = target.find("/", scheme_end + 3)
        if path_start == -1:
            return target, None
        search_from = path_start

    sep = target.find(":", search_from)
    if sep == -1:
        return target, None
    return target[:sep], target[sep + 1 :]


def parse_key(key: str) -> HttpRequestSpec:
    method = "GET"
    rest = key
    match = _METHOD_PATTERN.match(key)
    if match:
        method = match.group(1)
        rest = key[match.end() :]

    rest, _, json_path = rest.partition("#")

    body: Any = None
    url = rest
    if method in _BODY_METHODS:
        url, raw_body = _split_body(rest)
        if raw_body is not None:
            try:
                body = json.loads(raw_body)
            except ValueError:
                body = raw_body

    return HttpRequestSpec(method=method, url=url, body=body, json_path=json_path or None)


class HttpSource(ParamSource):
    """Fetches values from HTTP endpoints with retry and response caching."""

    name = "http"

    def __init__(
        self,
        config: HttpSourceConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config or HttpSourceConfig()
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.Client | None = None
        self._response_cache = TTLCache(ttl=self._config.cache_timeout)
        self.timeout = self._config.resolve_timeout or retry_budget(
            self._config.timeout, self._config.retries, self._config.retry_delay
        )

    def initialize(self) -> None:
        headers = dict(self._config.headers)
        auth = None
        if self._config.auth:
            if self._config.auth.token:
                headers["Authorization"] = f"Bearer {self._config.auth.token.get_secret_value()}"
            elif self._config.auth.username and self._config.auth.password:
                auth = (self._config.auth.username, self._config.auth.password.get_secret_value())

        self._client = httpx.Client(
            base_url=self._config.base_url,
            headers=headers,
            auth=auth,
            timeout=self._config.timeout,
            transport=self._transport,
        )

    def resolve(self, key: str) -> str:
        try:
            spec = parse_key(key)
            self._check_url(spec.url)
            data = MISSING
            if self._config.cache_responses:
                data = self._response_cache.get(key, MISSING)
            if data is MISSING:
                data = self._fetch(spec)
                if self._config.cache_responses:
                    self._response_cache.set(key, data)
            return self._extract_value(data, spec.json_path)
        except (httpx.HTTPError, httpx.InvalidURL, _ServerError, ValueError, RuntimeError) as e:
            raise ResolutionError(self.name, key, f"HttpSource failed to resolve key '{key}': {e}") from e

    def _check_url(self, url: str) -> None:
        """Reject keys that cannot be a request before anything is sent.

        Relative URLs are fine once a baseUrl is configured.
        """
        if self._config.base_url:
            return
        if urlsplit(url).scheme not in ("http", "https"):
            raise ValueError(f"Not an HTTP URL and no baseUrl configured: '{url}'")

    def _fetch(self, spec: HttpRequestSpec) -> Any:
        if self._client is None:
            raise RuntimeError("HTTP client not initialized")

        kwargs: dict[str, Any] = {}
        if spec.body is not None and spec.method in _BODY_METHODS:
            if isinstance(spec.body, str):
                kwargs["content"] = spec.body
                kwargs["headers"] = {"Content-Type": "text/plain"}
            else:
                kwargs["json"] = spec.body

        def send() -> httpx.Response:
            response = self._client.request(spec.method, spec.url, **kwargs)
            if response.is_server_error:
                raise _ServerError(response)
            return response

        try:
            response = call_with_retry(
                send,
                retries=self._config.retries,
                delay=self._config.retry_delay,
                retry_on=(httpx.TransportError, _ServerError),
                give_up_on=_NOT_RETRYABLE,
                label=f"{spec.method} {spec.url}",
                sleep=self._sleep,
            )
        except httpx.TimeoutException as e:
            raise ValueError(f"Request timeout after {self._config.timeout}s") from e
        except httpx.RequestError as e:
            raise ValueError(f"Network error: {e}") from e

        if not response.is_success:
            raise ValueError(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _extract_value(data: Any, json_path: str | None) -> str:
        value = get_path(data, json_path)
        if value is MISSING:
            raise ValueError(f"Path '{json_path}' not found in response")
        return to_text(value)

    def test_connection(self, url: str) -> dict:
        """Probe a URL without caching. Never raises."""
        if self._client is None:
            return {"success": False, "error": "HTTP client not initialized"}
        started = time.monotonic()
        try:
            response = self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            return {"success": False, "status": e.response.status_code, "error": str(e)}
        except httpx.RequestError as e:
            return {"success": False, "error": str(e)}
        return {
            "success": True,
            "status": response.status_code,
            "response_time": time.monotonic() - started,
        }

    def refresh_cache(self) -> None:
        self._response_cache.clear()

    def cleanup(self) -> None:
        self._response_cache.clear()
        if self._client:
            self._client.close()
            self._client = None
