"""
Redis sliding-window rate limiting.

Each identity owns a sorted set of admission timestamps. An admission is
recorded only when fewer than `limit` admissions fall inside the trailing
window, so capacity frees up progressively as old entries slide out rather
than all at once at a fixed boundary.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Optional

import redis
from fastapi import Request

from .config import Settings
from .errors import AdmissionError, UpstreamError

logger = logging.getLogger(__name__)

WEBHOOK_SIGNATURE_HEADER = "stripe-signature"
UNKNOWN_CLIENT = "unknown"


def create_redis_client(settings: Settings) -> redis.Redis:
    """
    Create the Redis client used for rate limiting.
    Connection is lazy; the first command opens the pool.
    """
    redis_url = settings.redis_url
    if "@" in redis_url:
        url_parts = redis_url.split("@")
        protocol = url_parts[0].split(":")[0]
        masked_url = f"{protocol}:****@{url_parts[1]}"
    else:
        masked_url = redis_url
    logger.info(f"Using Redis URL connection: {masked_url}")

    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=settings.outbound_timeout_seconds,
        socket_timeout=settings.outbound_timeout_seconds,
        health_check_interval=30,
        max_connections=20,
    )


@dataclass
class RateLimitResult:
    allowed: bool
    count: int
    limit: int
    retry_after: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class SlidingWindowRateLimiter:
    """At most `limit` admissions per identity in any trailing `window_seconds`"""

    def __init__(
        self,
        client: redis.Redis,
        limit: int,
        window_seconds: int,
        key_prefix: str = "rate_limit",
    ):
        self.client = client
        self.limit = limit
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix

    def key_for(self, identity: str) -> str:
        return f"{self.key_prefix}:{identity}"

    def hit(self, identity: str, now: Optional[float] = None) -> RateLimitResult:
        """
        Try to admit one request for identity.

        The add and the count run in one MULTI/EXEC so two concurrent callers
        cannot both see a free slot; a rejected member is removed again so
        rejections never consume capacity.
        """
        now = time.time() if now is None else now
        key = self.key_for(identity)
        window_start = now - self.window_seconds
        member = f"{now:.6f}-{secrets.token_hex(4)}"

        pipe = self.client.pipeline()
        pipe.zremrangebyscore(key, "-inf", window_start)
        pipe.zadd(key, {member: now})
        pipe.zcard(key)
        pipe.expire(key, self.window_seconds)
        _, _, count, _ = pipe.execute()

        if count <= self.limit:
            return RateLimitResult(allowed=True, count=count, limit=self.limit, retry_after=0)

        self.client.zrem(key, member)
        oldest = self.client.zrange(key, 0, 0, withscores=True)
        retry_after = self.window_seconds
        if oldest:
            retry_after = max(1, int(oldest[0][1] + self.window_seconds - now + 0.999))
        return RateLimitResult(
            allowed=False, count=count - 1, limit=self.limit, retry_after=retry_after
        )


def client_identity(request: Request) -> str:
    """First address of X-Forwarded-For, or a sentinel when absent"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return UNKNOWN_CLIENT


def is_signed_webhook_call(request: Request, webhook_path: str) -> bool:
    """
    Signed payment-webhook calls skip rate limiting.
    Only presence of the header is checked; the webhook handler verifies it.
    """
    return request.url.path.startswith(webhook_path) and bool(
        request.headers.get(WEBHOOK_SIGNATURE_HEADER)
    )


async def rate_limit_dependency(request: Request, limiter: SlidingWindowRateLimiter, settings: Settings):
    if is_signed_webhook_call(request, settings.payment_webhook_path):
        logger.debug(f"Rate limit bypass for signed webhook call to {request.url.path}")
        return

    identity = client_identity(request)
    try:
        result = limiter.hit(identity)
    except redis.RedisError as e:
        logger.error(f"Rate limiting error: {str(e)}")
        logger.warning("Denying request due to rate limiting error (fail-closed mode)")
        raise UpstreamError(
            "Rate limiting service temporarily unavailable", status_code=503
        ) from e

    if not result.allowed:
        logger.warning(
            f"Rate limit EXCEEDED for {limiter.key_for(identity)} - {result.count}/{result.limit} requests used"
        )
        raise AdmissionError("Rate limit exceeded", retry_after=result.retry_after)


def create_rate_limiter(key_prefix: str = "rate_limit", limit: Optional[int] = None, window_seconds: Optional[int] = None):
    """
    Create a rate limiter dependency.

    Limits default to the configured public-intake policy. Example:

        @router.post("/bookings")
        async def create_booking(_: None = Depends(create_rate_limiter("bookings"))):
            ...
    """

    async def rate_limiter(request: Request):
        settings: Settings = request.app.state.settings
        limiter = SlidingWindowRateLimiter(
            request.app.state.redis,
            limit=limit or settings.rate_limit_requests,
            window_seconds=window_seconds or settings.rate_limit_window_seconds,
            key_prefix=key_prefix,
        )
        return await rate_limit_dependency(request, limiter, settings)

    return rate_limiter
