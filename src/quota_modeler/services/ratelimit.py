"""Writers for the token-bucket store that enforces realm quotas.

The issuance path reads buckets from this store; the modeler only ever
overwrites a realm's bucket with a fresh quota and TTL.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from datetime import timedelta
from threading import Lock
from typing import Any, Final, Protocol

import redis

from quota_modeler.core.settings import Settings
from quota_modeler.services.errors import RateLimitStoreError

logger = logging.getLogger(__name__)

QUOTA_KEY_PREFIX: Final[str] = "realm:quota"

RATE_LIMITER_TYPE_NOOP: Final[str] = "NOOP"
RATE_LIMITER_TYPE_MEMORY: Final[str] = "MEMORY"
RATE_LIMITER_TYPE_REDIS: Final[str] = "REDIS"


def digest(value: str, key: bytes) -> str:
    """Return the hex HMAC-SHA1 of ``value`` under ``key``."""
    return hmac.new(key, value.encode(), hashlib.sha1).hexdigest()


def quota_key(realm_id: int, key: bytes) -> str:
    """Return the limiter key for a realm's issuance quota."""
    return f"{QUOTA_KEY_PREFIX}:{digest(str(realm_id), key)}"


class LimiterStore(Protocol):
    """Minimal write surface of a token-bucket store."""

    def set(self, key: str, tokens: int, ttl: timedelta) -> None:
        """Replace the bucket at ``key`` with ``tokens`` tokens, expiring after ``ttl``."""


class NoopLimiterStore:
    """Store used when rate limiting is disabled."""

    def set(self, key: str, tokens: int, ttl: timedelta) -> None:
        logger.debug("Rate limiting disabled, dropping quota for %s", key)


class MemoryLimiterStore:
    """In-process store for single-replica deployments and local development."""

    def __init__(self, interval: timedelta = timedelta(days=1)) -> None:
        self._interval = interval
        self._buckets: dict[str, dict[str, Any]] = {}
        self._lock = Lock()

    def set(self, key: str, tokens: int, ttl: timedelta) -> None:
        if tokens < 0:
            raise RateLimitStoreError(f"cannot set negative quota {tokens} for {key}")
        expiry = time.monotonic() + ttl.total_seconds()
        with self._lock:
            self._buckets[key] = {
                "tokens": int(tokens),
                "max_tokens": int(tokens),
                "interval": int(self._interval.total_seconds()),
                "expires_at": expiry,
            }

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the live bucket at ``key``, or None if it is absent or expired."""
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return None
            if bucket["expires_at"] <= time.monotonic():
                self._buckets.pop(key, None)
                return None
            return dict(bucket)


class RedisLimiterStore:
    """Store sharing buckets with every replica through Redis."""

    def __init__(self, client: redis.Redis, interval: timedelta = timedelta(days=1)) -> None:
        self._redis = client
        self._interval = interval

    @classmethod
    def from_url(cls, url: str, interval: timedelta = timedelta(days=1)) -> RedisLimiterStore:
        return cls(redis.from_url(url), interval=interval)

    def set(self, key: str, tokens: int, ttl: timedelta) -> None:
        if tokens < 0:
            raise RateLimitStoreError(f"cannot set negative quota {tokens} for {key}")
        try:
            # Replace the bucket and its expiry atomically
            pipe = self._redis.pipeline(transaction=True)
            pipe.delete(key)
            pipe.hset(
                key,
                mapping={
                    "tokens": int(tokens),
                    "max_tokens": int(tokens),
                    "interval": int(self._interval.total_seconds()),
                },
            )
            pipe.expire(key, int(ttl.total_seconds()))
            pipe.execute()
        except redis.RedisError as exc:
            raise RateLimitStoreError(f"failed to update limit: {exc}") from exc


def limiter_store_for(settings: Settings) -> LimiterStore:
    """Return the limiter store selected by ``RATE_LIMIT_TYPE``."""
    interval = timedelta(seconds=settings.rate_limit_interval_seconds)
    limiter_type = settings.rate_limit_type.upper()
    if limiter_type == RATE_LIMITER_TYPE_NOOP:
        return NoopLimiterStore()
    if limiter_type == RATE_LIMITER_TYPE_MEMORY:
        return MemoryLimiterStore(interval=interval)
    if limiter_type == RATE_LIMITER_TYPE_REDIS:
        return RedisLimiterStore.from_url(settings.redis_url, interval=interval)
    raise ValueError(f"unknown rate limiter type: {settings.rate_limit_type}")
