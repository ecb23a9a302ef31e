"""Tests for ParamResolver: whole-document resolution and lifecycle."""

import pytest

from paramarr.config import ParamarrConfig
from paramarr.core.errors import ParamarrError, UnresolvedPlaceholder
from paramarr.resolver import ParamResolver
from paramarr.sources import EnvSource

from tests.conftest import FakeSource


class TestResolveText:
    def test_env_scenario(self, make_resolver):
        resolver = make_resolver({"env": EnvSource(environ={"TEST_VAR": "test_value"})})
        assert resolver.resolve_text("Hello <user:env#TEST_VAR>!") == "Hello test_value!"

    def test_default_scenario(self, make_resolver):
        resolver = make_resolver({"env": EnvSource(environ={})})
        assert resolver.resolve_text("<x:env#MISSING|fallback_value>") == "fallback_value"

    def test_text_without_placeholders_unchanged(self, make_resolver):
        resolver = make_resolver({"env": FakeSource("env")})
        assert resolver.resolve_text("Nothing <to> resolve here") == "Nothing <to> resolve here"
        assert resolver.resolve_text("") == ""

    def test_multiple_placeholders(self, make_resolver):
        env = FakeSource("env", {"USER": "alice", "HOST": "db.local"})
        resolver = make_resolver({"env": env})

        text = "Login as <u:env#USER> on <h:env#HOST> port <p:env#PORT|5432>"

        assert resolver.resolve_text(text) == "Login as alice on db.local port 5432"

    def test_repeated_placeholder_resolved_once(self, make_resolver):
        env = FakeSource("env", {"A": "1"})
        resolver = make_resolver({"env": env})

        assert resolver.resolve_text("<a:env#A>+<a:env#A>=2") == "1+1=2"
        assert env.calls == ["A"]

    def test_values_inserted_literally(self, make_resolver):
        env = FakeSource("env", {"A": "<b:env#B>", "B": "nope"})
        resolver = make_resolver({"env": env})

        assert resolver.resolve_text("<a:env#A>") == "<b:env#B>"

    def test_all_or_nothing(self, make_resolver):
        env = FakeSource("env", {"OK": "fine"})
        resolver = make_resolver({"env": env})

        with pytest.raises(UnresolvedPlaceholder) as exc_info:
            resolver.resolve_text("<ok:env#OK> and <bad:env#MISSING>")

        assert exc_info.value.key == "MISSING"
        assert exc_info.value.source == "env"
        assert "Could not resolve placeholder for key 'MISSING' from source 'env'" in str(exc_info.value)

    def test_first_failure_in_document_order(self, make_resolver):
        resolver = make_resolver({"env": FakeSource("env")})

        with pytest.raises(UnresolvedPlaceholder) as exc_info:
            resolver.resolve_text("<one:env#FIRST> <two:env#SECOND>")

        assert exc_info.value.key == "FIRST"

    def test_unresolved_message_is_masked(self, make_resolver):
        secret_key = "QUJDREVGR0hJSktMTU5PUFFSU1RVVg"
        resolver = make_resolver({"env": FakeSource("env")})

        with pytest.raises(UnresolvedPlaceholder) as exc_info:
            resolver.resolve_text(f"<s:env#{secret_key}>")

        assert secret_key not in str(exc_info.value)

    def test_no_sources_available(self, make_resolver):
        resolver = make_resolver({})

        with pytest.raises(UnresolvedPlaceholder, match="No sources available"):
            resolver.resolve_text("<x:env#X>")

    def test_requires_initialize(self):
        resolver = ParamResolver(config=ParamarrConfig(), sources={})
        with pytest.raises(ParamarrError, match="not initialized"):
            resolver.resolve_text("<x:env#X>")


class TestResolvePlaceholder:
    def test_returns_value(self, make_resolver):
        resolver = make_resolver({"env": FakeSource("env", {"K": "v"})})
        assert resolver.resolve_placeholder("n", "env", "K") == "v"

    def test_default(self, make_resolver):
        resolver = make_resolver({"env": FakeSource("env")})
        assert resolver.resolve_placeholder("n", "env", "K", "d") == "d"

    def test_raises_unresolved_with_attempts(self, make_resolver):
        resolver = make_resolver({"env": FakeSource("env"), "file": FakeSource("file")})

        with pytest.raises(UnresolvedPlaceholder) as exc_info:
            resolver.resolve_placeholder("n", "file", "K")

        assert [a.source for a in exc_info.value.attempts] == ["file", "env"]
        assert "Last error: env has no key 'K'" in str(exc_info.value)


class TestLifecycle:
    def test_failed_source_dropped(self, make_resolver):
        broken = FakeSource("vault", fail_init=True)
        env = FakeSource("env", {"K": "v"})
        resolver = make_resolver({"env": env, "vault": broken})

        assert resolver.available_sources == ["env"]
        failures = resolver.registration.failures
        assert [f.source for f in failures] == ["vault"]
        assert "unreachable" in failures[0].error
        # Dropped source is never called
        resolver.resolve_text("<k:vault#K>")
        assert broken.calls == []

    def test_initialize_returns_results(self):
        resolver = ParamResolver(config=ParamarrConfig(), sources={"env": FakeSource("env")})
        results = resolver.initialize()
        try:
            assert [(r.source, r.ok) for r in results] == [("env", True)]
        finally:
            resolver.cleanup()

    def test_refresh_caches_clears_both_tiers(self, make_resolver):
        env = FakeSource("env", {"K": "v"})
        resolver = make_resolver({"env": env})

        resolver.resolve_text("<k:env#K>")
        resolver.resolve_text("<k:env#K>")
        assert env.calls == ["K"]

        resolver.refresh_caches()
        resolver.resolve_text("<k:env#K>")

        assert env.calls == ["K", "K"]
        assert env.refreshed == 1

    def test_refresh_continues_past_failing_adapter(self, make_resolver):
        class BadRefresh(FakeSource):
            def refresh_cache(self):
                raise RuntimeError("refresh broke")

        good = FakeSource("file")
        resolver = make_resolver({"env": BadRefresh("env"), "file": good})

        resolver.refresh_caches()

        assert good.refreshed == 1

    def test_cleanup_releases_sources(self):
        env = FakeSource("env", {"K": "v"})
        resolver = ParamResolver(config=ParamarrConfig(), sources={"env": env})
        resolver.initialize()

        resolver.cleanup()

        assert env.cleaned == 1
        assert not resolver.is_initialized
        assert resolver.available_sources == []

    def test_context_manager(self):
        env = FakeSource("env", {"K": "v"})
        with ParamResolver(config=ParamarrConfig(), sources={"env": env}) as resolver:
            assert resolver.resolve_text("<k:env#K>") == "v"
        assert env.initialized == 1
        assert env.cleaned == 1

    def test_reinitialize_tears_down_first(self):
        env = FakeSource("env")
        resolver = ParamResolver(config=ParamarrConfig(), sources={"env": env})
        resolver.initialize()
        resolver.initialize()
        try:
            assert env.initialized == 2
            assert env.cleaned == 1
        finally:
            resolver.cleanup()

    def test_loads_config_file(self, tmp_path, monkeypatch):
        config_file = tmp_path / "paramarr.json"
        config_file.write_text(
            '{"cacheTimeout": 5, "sources": {"file": {"enabled": false}, "http": {"enabled": false}}}'
        )
        monkeypatch.setenv("PARAMARR_TEST_VALUE", "from-env")

        with ParamResolver(config_file) as resolver:
            assert resolver.config.cache_timeout == 5
            assert resolver.available_sources == ["env"]
            assert resolver.resolve_text("<v:env#PARAMARR_TEST_VALUE>") == "from-env"

    def test_cache_stats(self, make_resolver):
        resolver = make_resolver({"env": FakeSource("env", {"K": "v"})}, cache_timeout=30)
        resolver.resolve_text("<k:env#K>")
        resolver.resolve_text("<k:env#K>")

        stats = resolver.cache_stats()

        assert stats.size == 1
        assert stats.hits == 1
        assert stats.ttl_seconds == 30
