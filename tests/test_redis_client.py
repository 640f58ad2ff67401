"""Tests for the Redis client factory and the fail-open cache."""

from unittest.mock import MagicMock

import pytest
import redis

from app.core import redis_client
from app.core.redis_client import CacheManager


@pytest.fixture
def fresh_client(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Replace the redis.Redis constructor and drop any cached client."""
    factory = MagicMock()
    monkeypatch.setattr(redis_client, "_redis_client", None)
    monkeypatch.setattr(redis_client.redis, "Redis", factory)
    return factory


def test_client_uses_short_socket_timeouts(
    fresh_client: MagicMock, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Calls on the synchronous client give up quickly when Redis is unreachable."""
    monkeypatch.setattr(redis_client.settings, "redis_socket_timeout", 0.25)

    client = redis_client.get_redis_client()

    assert client is fresh_client.return_value
    kwargs = fresh_client.call_args.kwargs
    assert kwargs["socket_connect_timeout"] == 0.25
    assert kwargs["socket_timeout"] == 0.25


def test_client_is_reused(fresh_client: MagicMock) -> None:
    first = redis_client.get_redis_client()
    second = redis_client.get_redis_client()

    assert first is second
    fresh_client.assert_called_once()


def test_cache_read_fails_open() -> None:
    """A timed out read is a cache miss, not an error."""
    client = MagicMock()
    client.get.side_effect = redis.TimeoutError("Timeout reading from socket")

    assert CacheManager(client).get_json("availability:2026-10-21:nagytarcsa") is None


def test_cache_write_fails_open() -> None:
    client = MagicMock()
    client.setex.side_effect = redis.ConnectionError("Connection refused")

    assert CacheManager(client).set_json("key", {"blocked": []}, ttl=60) is False
