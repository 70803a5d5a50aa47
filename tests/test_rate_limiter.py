import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from projecthub import rate_limiter
from projecthub.errors import ServiceError
from projecthub.main import service_error_handler


class FakeRedis:
    def __init__(self, fail=False):
        self.fail = fail
        self.store = {}

    def get(self, key):
        if self.fail:
            raise ConnectionError("redis down")
        return self.store.get(key)

    def ttl(self, key):
        return 100 if key in self.store else -2

    def set(self, key, value, ex=None):
        if self.fail:
            raise ConnectionError("redis down")
        self.store[key] = str(value)


@pytest.fixture(autouse=True)
def fresh_cache(monkeypatch):
    monkeypatch.setattr(rate_limiter, "memory_cache", {})
    monkeypatch.setattr(rate_limiter, "redis_client", None)
    monkeypatch.setattr(rate_limiter, "redis_unavailable_until", 0.0)


def test_requests_within_limit_are_allowed():
    client = FakeRedis()

    results = [rate_limiter.check_rate_limit("k", 3, 60, client)[0] for _ in range(4)]

    assert results == [True, True, True, False]


def test_count_is_resumed_from_redis():
    client = FakeRedis()
    client.store["k"] = "2"

    allowed, count, ttl = rate_limiter.check_rate_limit("k", 3, 60, client)

    assert (allowed, count) == (True, 3)
    assert 0 < ttl <= 100


def test_redis_outage_falls_back_to_memory():
    allowed, count, _ = rate_limiter.check_rate_limit("k", 3, 60, FakeRedis(fail=True))

    assert (allowed, count) == (True, 1)


def test_memory_window_decides_without_redis():
    results = [rate_limiter.check_rate_limit("k", 2, 60)[0] for _ in range(3)]

    assert results == [True, True, False]


def test_unreachable_redis_backs_off_before_reconnecting(monkeypatch):
    attempts = []

    def broken():
        attempts.append(1)
        raise ConnectionError("no redis")

    monkeypatch.setattr(rate_limiter, "get_redis_client", broken)

    assert rate_limiter.get_shared_counter_store() is None
    assert rate_limiter.get_shared_counter_store() is None
    assert len(attempts) == 1

    monkeypatch.setattr(rate_limiter, "redis_unavailable_until", 0.0)

    assert rate_limiter.get_shared_counter_store() is None
    assert len(attempts) == 2


def make_app(monkeypatch, redis_factory):
    monkeypatch.setattr(rate_limiter, "get_redis_client", redis_factory)
    limit = rate_limiter.create_rate_limiter(limit=1, window_seconds=60, key_prefix="test")
    app = FastAPI()
    app.add_exception_handler(ServiceError, service_error_handler)

    @app.post("/expensive")
    async def expensive(_: None = Depends(limit)):
        return {"ok": True}

    return TestClient(app)


def test_exceeding_the_limit_returns_429(monkeypatch):
    redis_client = FakeRedis()
    client = make_app(monkeypatch, lambda: redis_client)

    assert client.post("/expensive").status_code == 200
    response = client.post("/expensive")

    assert response.status_code == 429
    assert 0 < int(response.headers["Retry-After"]) <= 60
    assert response.json() == {
        "success": False,
        "message": "Rate limit exceeded. Maximum 1 requests per 60 seconds.",
    }


def test_unreachable_redis_still_limits_in_memory(monkeypatch):
    def broken():
        raise ConnectionError("no redis")

    client = make_app(monkeypatch, broken)

    assert client.post("/expensive").status_code == 200
    assert client.post("/expensive").status_code == 429
