import json
import time
import uuid
from datetime import datetime, time as dtime, timedelta, timezone
from typing import Optional

import httpx
import pytest
import redis
from fastapi.testclient import TestClient
from jose import jwt

from creator_hq.config import Settings
from creator_hq.main import create_app
from creator_hq.models import CreatorAvailability, Profile

CREATOR_ID = "0b6f3c8e-2d4a-4f3b-9a51-6c2d8e7f1a10"
OTHER_CREATOR_ID = "7e1d2c3b-4a59-4687-b2c1-d0e9f8a7b6c5"
JWT_SECRET = "test-jwt-secret"


class FakePipeline:
    def __init__(self, store: "FakeRedis"):
        self.store = store
        self.commands = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self

        return queue

    def execute(self):
        results = [getattr(self.store, name)(*args, **kwargs) for name, args, kwargs in self.commands]
        self.commands = []
        return results


class FakeRedis:
    """Just enough of the sorted-set API for the sliding-window limiter"""

    def __init__(self):
        self.zsets: dict[str, dict[str, float]] = {}
        self.expiries: dict[str, int] = {}
        self.closed = False

    def pipeline(self):
        return FakePipeline(self)

    def zremrangebyscore(self, key, min_score, max_score):
        zset = self.zsets.setdefault(key, {})
        low = float(min_score)
        doomed = [m for m, s in zset.items() if low <= s <= float(max_score)]
        for member in doomed:
            del zset[member]
        return len(doomed)

    def zadd(self, key, mapping):
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in zset)
        zset.update(mapping)
        return added

    def zcard(self, key):
        return len(self.zsets.get(key, {}))

    def zrem(self, key, member):
        return 1 if self.zsets.get(key, {}).pop(member, None) is not None else 0

    def zrange(self, key, start, end, withscores=False):
        items = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        end = len(items) if end == -1 else end + 1
        selected = items[start:end]
        return selected if withscores else [m for m, _ in selected]

    def expire(self, key, seconds):
        self.expiries[key] = seconds
        return True

    def ping(self):
        return True

    def close(self):
        self.closed = True


class BrokenRedis(FakeRedis):
    def pipeline(self):
        raise redis.ConnectionError("connection refused")

    def ping(self):
        raise redis.ConnectionError("connection refused")


class FakeProviders:
    """Google and Stripe endpoints behind httpx.MockTransport"""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.event_status = 200
        self.token_counter = 0
        # Raw body served by the token endpoint instead of a grant
        self.token_body: Optional[str] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url.startswith("https://oauth2.googleapis.com/token"):
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            if self.token_body is not None:
                return httpx.Response(200, content=self.token_body.encode("utf-8"))
            self.token_counter += 1
            return httpx.Response(
                200,
                json={
                    "access_token": f"access-{self.token_counter}",
                    "refresh_token": "refresh-token",
                    "expires_in": 3600,
                },
            )
        if url.startswith("https://oauth2.googleapis.com/revoke"):
            return httpx.Response(200)
        if url.startswith("https://www.googleapis.com/calendar/v3/calendars/"):
            if self.event_status != 200:
                return httpx.Response(self.event_status, json={"error": "boom"})
            return httpx.Response(200, json={"id": "evt_123", **json.loads(request.content)})
        if url.startswith("https://api.stripe.com/v1/checkout/sessions"):
            return httpx.Response(
                200, json={"id": "cs_test_123", "url": "https://checkout.stripe.test/cs_test_123"}
            )
        return httpx.Response(404, json={"error": "unexpected url"})

    def requests_to(self, prefix: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url).startswith(prefix)]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        secret_key="test-secret-key",
        supabase_jwt_secret=JWT_SECRET,
        default_creator_id=CREATOR_ID,
        google_client_id="google-client-id",
        google_client_secret="google-client-secret",
        google_redirect_uri="http://api.test/calendar/callback",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
        frontend_url="http://frontend.test",
        allowed_origins=["http://frontend.test"],
    )


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def providers():
    return FakeProviders()


@pytest.fixture
def app(settings, fake_redis, providers):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(providers.handler))
    return create_app(settings, redis_client=fake_redis, http_client=http_client)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db(app, client):
    session = app.state.session_factory()
    yield session
    session.close()


@pytest.fixture
def creator(db):
    profile = Profile(
        id=CREATOR_ID,
        full_name="Casey Creator",
        contact_email="casey@example.com",
        timezone="UTC",
        role="creator",
    )
    db.add(profile)
    # Open 09:00-17:00 every day
    for day in range(7):
        db.add(
            CreatorAvailability(
                creator_id=CREATOR_ID,
                day_of_week=day,
                start_time=dtime(9, 0),
                end_time=dtime(17, 0),
                is_available=True,
            )
        )
    db.commit()
    return profile


def make_token(sub: str = CREATOR_ID, secret: str = JWT_SECRET, expires_in: int = 3600) -> str:
    now = int(time.time())
    return jwt.encode(
        {"sub": sub, "aud": "authenticated", "iat": now, "exp": now + expires_in},
        secret,
        algorithm="HS256",
    )


@pytest.fixture
def auth_headers(creator):
    return {"Authorization": f"Bearer {make_token()}"}


def future_day(days: int = 10):
    return (datetime.now(timezone.utc) + timedelta(days=days)).date()


def booking_payload(**overrides):
    payload = {
        "client_name": "Jordan Client",
        "client_email": "jordan@example.com",
        "phone": "+1 650-253-0000",
        "service_type": "consultation",
        "booking_date": future_day().isoformat(),
        "booking_time": "10:00",
        "duration_minutes": 30,
        "notes": "Looking forward to it",
        "agree_terms": True,
    }
    payload.update(overrides)
    return payload


def unique_ip() -> str:
    return f"10.0.{uuid.uuid4().int % 250}.{uuid.uuid4().int % 250}"
