"""Tests for the per-client request limiter."""
from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException

from relaybox.api import rate_limit
from relaybox.api.rate_limit import _InMemoryLimiter, _RedisLimiter, get_client_ip


class TestInMemoryLimiter:
    def test_allows_up_to_limit(self):
        limiter = _InMemoryLimiter()
        for _ in range(3):
            limiter.check("client:a", max_requests=3, window_seconds=60)

        with pytest.raises(HTTPException) as exc:
            limiter.check("client:a", max_requests=3, window_seconds=60)
        assert exc.value.status_code == 429

    def test_window_slides(self):
        limiter = _InMemoryLimiter()
        with patch("relaybox.api.rate_limit.time.monotonic", return_value=100.0):
            limiter.check("client:a", max_requests=1, window_seconds=10)
        with patch("relaybox.api.rate_limit.time.monotonic", return_value=111.0):
            limiter.check("client:a", max_requests=1, window_seconds=10)

    def test_reset_forgets_hits(self):
        limiter = _InMemoryLimiter()
        limiter.check("client:a", max_requests=1, window_seconds=60)
        limiter.reset()
        limiter.check("client:a", max_requests=1, window_seconds=60)


class TestRedisLimiter:
    @pytest.fixture
    def pipe(self):
        pipe = MagicMock()
        pipe.__enter__.return_value = pipe
        pipe.execute.return_value = [0, 0]
        return pipe

    @pytest.fixture
    def fake_redis(self, pipe):
        client = MagicMock()
        client.pipeline.return_value = pipe
        with patch("redis.Redis.from_url", return_value=client):
            yield client

    def test_records_hit_under_limit(self, fake_redis, pipe):
        limiter = _RedisLimiter("redis://localhost:6379/0")
        limiter.check("client:a", max_requests=2, window_seconds=60)

        pipe.zcard.assert_called_once_with("rate:client:a")
        pipe.zadd.assert_called_once()
        pipe.expire.assert_called_once_with("rate:client:a", 60)

    def test_rejects_at_limit_without_recording(self, fake_redis, pipe):
        pipe.execute.return_value = [0, 2]
        limiter = _RedisLimiter("redis://localhost:6379/0")

        with pytest.raises(HTTPException) as exc:
            limiter.check("client:a", max_requests=2, window_seconds=60)
        assert exc.value.status_code == 429
        pipe.zadd.assert_not_called()

    def test_unreachable_redis_falls_back_to_memory(self, monkeypatch):
        monkeypatch.setattr(rate_limit.settings, "redis_url", "redis://localhost:6379/0")
        with patch("redis.Redis.from_url", side_effect=ConnectionError("refused")):
            assert isinstance(rate_limit._create_limiter(), _InMemoryLimiter)


class TestClientIp:
    def test_rightmost_forwarded_entry_wins(self):
        request = MagicMock()
        request.headers = {"x-forwarded-for": "6.6.6.6, 10.0.0.1"}
        assert get_client_ip(request) == "10.0.0.1"

    def test_falls_back_to_peer_address(self):
        request = MagicMock()
        request.headers = {}
        request.client.host = "127.0.0.1"
        assert get_client_ip(request) == "127.0.0.1"
