"""
Rate Limiter Service - Provides rate limiting for public-facing endpoints.

Uses a fixed window counter with Redis or in-memory storage.
"""
from typing import Callable, Dict, Optional, Tuple
from datetime import datetime, timedelta
from dataclasses import dataclass
from abc import ABC, abstractmethod

from fastapi import Request

from flexia.core.config import settings
from flexia.core.exceptions import RateLimitError
from flexia.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for a rate limit rule."""
    requests: int  # Number of requests allowed
    window_seconds: int  # Time window in seconds
    key_prefix: str = ""


class RateLimitStore(ABC):
    """Abstract base class for rate limit storage."""

    @abstractmethod
    def increment(self, key: str, window_seconds: int) -> Tuple[int, int]:
        """
        Increment the counter for a key.

        Returns:
            Tuple of (current_count, seconds_until_reset)
        """

    @abstractmethod
    def reset(self) -> None:
        """Forget every counter."""


class InMemoryRateLimitStore(RateLimitStore):
    """In-memory rate limit store for development and tests."""

    def __init__(self):
        self._counters: Dict[str, Dict] = {}

    def _cleanup_expired(self, now: datetime):
        expired = [k for k, v in self._counters.items() if v["expires_at"] < now]
        for key in expired:
            del self._counters[key]

    def increment(self, key: str, window_seconds: int) -> Tuple[int, int]:
        now = datetime.utcnow()
        self._cleanup_expired(now)

        entry = self._counters.get(key)
        if entry is None:
            self._counters[key] = {
                "count": 1,
                "expires_at": now + timedelta(seconds=window_seconds),
            }
            return (1, window_seconds)

        entry["count"] += 1
        seconds_until_reset = int((entry["expires_at"] - now).total_seconds())
        return (entry["count"], seconds_until_reset)

    def reset(self) -> None:
        self._counters.clear()


class RedisRateLimitStore(RateLimitStore):
    """Redis-backed rate limit store for production."""

    def __init__(self, redis_url: str):
        import redis
        self._redis = redis.from_url(redis_url, decode_responses=True)
        self._prefix = "flexia:ratelimit:"

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def increment(self, key: str, window_seconds: int) -> Tuple[int, int]:
        redis_key = self._key(key)
        pipe = self._redis.pipeline()
        pipe.incr(redis_key)
        pipe.ttl(redis_key)
        count, ttl = pipe.execute()

        # ttl == -1 means the key was just created without expiry
        if ttl == -1:
            self._redis.expire(redis_key, window_seconds)
            ttl = window_seconds

        return (count, max(ttl, 0))

    def reset(self) -> None:
        for redis_key in self._redis.scan_iter(f"{self._prefix}*"):
            self._redis.delete(redis_key)


def default_rate_limits() -> Dict[str, RateLimitConfig]:
    return {
        "login": RateLimitConfig(
            requests=settings.LOGIN_RATE_LIMIT,
            window_seconds=60,
            key_prefix="login",
        ),
        "referral": RateLimitConfig(
            requests=settings.REFERRAL_RATE_LIMIT,
            window_seconds=60,
            key_prefix="referral",
        ),
    }


class RateLimiter:
    """Rate limiter with configurable limits per endpoint."""

    def __init__(self, store: RateLimitStore):
        self._store = store
        self._configs = default_rate_limits()

    @property
    def store(self) -> RateLimitStore:
        return self._store

    def check(self, config_name: str, identifier: str) -> Tuple[int, int]:
        """
        Count a request against a limit.

        Returns:
            Tuple of (current_count, seconds_until_reset)

        Raises:
            RateLimitError: when the limit for the window is exceeded
        """
        config = self._configs.get(config_name)
        if not config:
            return (0, 0)

        key = f"{config.key_prefix}:{identifier}"
        count, reset_seconds = self._store.increment(key, config.window_seconds)

        if count > config.requests:
            logger.warning(f"Rate limit '{config_name}' exceeded for {identifier}")
            raise RateLimitError(
                f"Rate limit exceeded. Try again in {reset_seconds} seconds.",
                retry_after=reset_seconds,
            )

        return (count, reset_seconds)


# Singleton rate limiter instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the rate limiter instance (creates if needed)."""
    global _rate_limiter

    if _rate_limiter is not None:
        return _rate_limiter

    if settings.RATE_LIMIT_BACKEND == "redis":
        store = RedisRateLimitStore(settings.REDIS_URL)
        logger.info("Using Redis rate limit store")
    else:
        logger.info("Using in-memory rate limit store")
        store = InMemoryRateLimitStore()

    _rate_limiter = RateLimiter(store)
    return _rate_limiter


def get_client_identifier(request: Request) -> str:
    """Identify the calling client by IP; X-Forwarded-For only behind a trusted proxy."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for and settings.TRUST_FORWARDED_FOR:
        return f"ip:{forwarded_for.split(',')[0].strip()}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def rate_limit(config_name: str) -> Callable:
    """FastAPI dependency enforcing the named limit for the calling client."""
    def dependency(request: Request) -> None:
        get_rate_limiter().check(config_name, get_client_identifier(request))
    return dependency
