"""Tests for token handling, the verification cache and owner resolution."""

import time

import pytest

from vaultgen.core.auth import get_token_cache, verify_token
from vaultgen.core.config import settings
from vaultgen.core.token_factory import create_token, decode_token
from vaultgen.core.ttl_cache import TTLCache
from vaultgen.exceptions import AuthenticationError
from vaultgen.main import app

from factories import auth_headers


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestTokenFactory:

    def test_create_and_decode(self):
        token = create_token("owner-a", "test-secret")
        payload = decode_token(token, "test-secret")
        assert payload is not None
        assert payload.sub == "owner-a"

    def test_wrong_secret_returns_none(self):
        token = create_token("owner-a", "correct-secret")
        assert decode_token(token, "wrong-secret") is None

    def test_expired_token_returns_none(self):
        token = create_token("owner-a", "secret", expires_hours=-1)
        assert decode_token(token, "secret") is None

    def test_expiry_uses_injected_time(self):
        token = create_token("owner-a", "secret", expires_hours=1, now=1000.0)
        assert decode_token(token, "secret", now=1000.0 + 3599) is not None
        assert decode_token(token, "secret", now=1000.0 + 3601) is None

    def test_malformed_token_returns_none(self):
        assert decode_token("not.a.token", "secret") is None
        assert decode_token("", "secret") is None


class TestTTLCache:

    def test_entry_expires(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("k", "v")
        clock.now = 9.9
        assert cache.get("k") == "v"
        clock.now = 10
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_per_entry_ttl_only_shortens(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("short", 1, ttl_seconds=2)
        cache.set("long", 2, ttl_seconds=100)
        clock.now = 5
        assert cache.get("short") is None
        assert cache.get("long") == 2
        clock.now = 10
        assert cache.get("long") is None

    def test_non_positive_ttl_not_stored(self):
        cache = TTLCache(ttl_seconds=10, clock=FakeClock())
        cache.set("k", "v", ttl_seconds=-5)
        assert cache.get("k") is None

    def test_evicts_least_recently_used(self):
        cache = TTLCache(ttl_seconds=10, max_entries=2, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            TTLCache(ttl_seconds=0)
        with pytest.raises(ValueError):
            TTLCache(ttl_seconds=1, max_entries=0)


class TestVerifyToken:

    def test_verified_token_cached(self):
        cache = TTLCache(ttl_seconds=60, clock=FakeClock())
        token = create_token("owner-a", settings.jwt_secret_key)
        payload = verify_token(token, cache)
        assert cache.get(token) == payload

    def test_cached_token_skips_decode(self, monkeypatch):
        cache = TTLCache(ttl_seconds=60, clock=FakeClock())
        token = create_token("owner-a", settings.jwt_secret_key)
        verify_token(token, cache)

        monkeypatch.setattr("vaultgen.core.auth.decode_token", lambda *a, **k: None)
        assert verify_token(token, cache).sub == "owner-a"
        with pytest.raises(AuthenticationError):
            verify_token(token, None)

    def test_cache_entry_never_outlives_token(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=3600, clock=clock)
        token = create_token("owner-a", settings.jwt_secret_key, expires_hours=10 / 3600)
        verify_token(token, cache)
        clock.now = 11
        assert cache.get(token) is None

    def test_invalid_token_not_cached(self):
        cache = TTLCache(ttl_seconds=60, clock=FakeClock())
        with pytest.raises(AuthenticationError):
            verify_token("garbage", cache)
        assert len(cache) == 0


class TestRequireAuth:

    def test_auth_disabled_uses_dev_owner(self, client):
        resp = client.get("/api/generation/jobs")
        assert resp.status_code == 200

    def test_missing_token_rejected(self, client, auth_enabled):
        resp = client.get("/api/generation/jobs")
        assert resp.status_code == 401
        assert resp.json()["error"] == "UNAUTHORIZED"

    def test_bad_token_rejected(self, client, auth_enabled):
        resp = client.get("/api/generation/jobs", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_valid_token_accepted_and_cached(self, client, auth_enabled):
        cache = TTLCache(ttl_seconds=60)
        app.dependency_overrides[get_token_cache] = lambda: cache
        headers = auth_headers("owner-a")

        resp = client.get("/api/generation/jobs", headers=headers)

        assert resp.status_code == 200
        assert len(cache) == 1
        assert cache.get(headers["Authorization"].split()[1]).sub == "owner-a"

    def test_token_cache_created_at_startup(self, client):
        assert isinstance(client.app.state.token_cache, TTLCache)
        assert client.app.state.token_cache.ttl_seconds == settings.auth_cache_ttl_seconds


def test_token_expiry_is_in_the_future():
    token = create_token("owner-a", "s", expires_hours=1)
    assert decode_token(token, "s").exp > time.time()
