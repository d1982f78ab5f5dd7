import pytest
from fastapi.testclient import TestClient

from creator_hq.main import create_app
from creator_hq.rate_limiter import SlidingWindowRateLimiter

from .conftest import BrokenRedis, FakeRedis, booking_payload


@pytest.fixture
def limiter():
    return SlidingWindowRateLimiter(FakeRedis(), limit=5, window_seconds=60, key_prefix="test")


class TestSlidingWindow:
    def test_five_admissions_then_rejection(self, limiter):
        results = [limiter.hit("1.2.3.4", now=1000.0 + i) for i in range(6)]

        assert [r.allowed for r in results] == [True] * 5 + [False]
        assert results[4].remaining == 0
        assert results[5].retry_after == 55

    def test_identities_are_independent(self, limiter):
        for i in range(5):
            limiter.hit("1.2.3.4", now=1000.0 + i)

        assert not limiter.hit("1.2.3.4", now=1010.0).allowed
        assert limiter.hit("5.6.7.8", now=1010.0).allowed

    def test_capacity_frees_progressively(self, limiter):
        for i in range(5):
            limiter.hit("ip", now=1000.0 + i * 10)  # 1000, 1010, ..., 1040

        assert not limiter.hit("ip", now=1059.0).allowed
        # Only the first admission has slid out
        assert limiter.hit("ip", now=1060.5).allowed
        assert not limiter.hit("ip", now=1061.0).allowed
        assert limiter.hit("ip", now=1070.5).allowed

    def test_rejections_do_not_consume_capacity(self, limiter):
        for i in range(5):
            limiter.hit("ip", now=1000.0)
        for _ in range(20):
            assert not limiter.hit("ip", now=1030.0).allowed

        assert limiter.client.zcard(limiter.key_for("ip")) == 5
        assert limiter.hit("ip", now=1060.5).allowed

    def test_key_expires_with_the_window(self, limiter):
        limiter.hit("ip", now=1000.0)
        assert limiter.client.expiries[limiter.key_for("ip")] == 60


class TestRateLimitedRoutes:
    def test_sixth_submission_gets_429_with_retry_after(self, client, creator):
        headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
        statuses = []
        for i in range(6):
            payload = booking_payload(booking_time=f"{10 + i}:00", client_email=f"c{i}@example.com")
            statuses.append(client.post("/bookings", json=payload, headers=headers).status_code)

        assert statuses == [201] * 5 + [429]

    def test_429_response_shape(self, client, creator):
        headers = {"X-Forwarded-For": "203.0.113.8"}
        for _ in range(5):
            client.post("/bookings", json={}, headers=headers)

        response = client.post("/bookings", json={}, headers=headers)

        assert response.status_code == 429
        assert response.json() == {"error": "Rate limit exceeded"}
        assert int(response.headers["Retry-After"]) >= 1

    def test_missing_forwarded_header_shares_the_unknown_bucket(self, client, fake_redis, creator):
        client.post("/bookings", json={})
        assert "bookings:unknown" in fake_redis.zsets

    def test_signed_webhook_bypasses_exhausted_window(self, client, fake_redis):
        headers = {"X-Forwarded-For": "198.51.100.1"}
        for _ in range(5):
            client.post("/webhooks/stripe", content=b"{}", headers=headers)
        assert client.post("/webhooks/stripe", content=b"{}", headers=headers).status_code == 429

        signed = {**headers, "Stripe-Signature": "t=1,v1=deadbeef"}
        response = client.post("/webhooks/stripe", content=b"{}", headers=signed)

        # Admitted past the limiter; the handler itself rejects the bad signature
        assert response.status_code == 401

    def test_backend_failure_fails_closed(self, settings, creator):
        app = create_app(settings, redis_client=BrokenRedis())
        with TestClient(app) as broken_client:
            response = broken_client.post("/bookings", json=booking_payload())

        assert response.status_code == 503
        assert response.json() == {"error": "Rate limiting service temporarily unavailable"}
