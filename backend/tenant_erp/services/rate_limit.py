"""Keyed attempt counters for login rate limiting.

Two interchangeable stores: an in-process map (single instance; swept on its
own timer) and Redis (shared across instances; keys expire server-side).
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Protocol

import redis
from redis.exceptions import RedisError

from ..config import settings
from ..domain_errors import TooManyRequests

logger = logging.getLogger(__name__)


class CounterStore(Protocol):
    def incr(self, key: str, ttl_seconds: int) -> tuple[int, int]:
        """Increment ``key`` and return (value, ttl_remaining_seconds)."""

    def delete(self, key: str) -> None:
        ...

    def sweep(self) -> int:
        ...


class MemoryCounterStore:
    """Fixed-window counters held in process memory."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (count, window_expires_at)
        self._counters: dict[str, tuple[int, float]] = {}

    def incr(self, key: str, ttl_seconds: int) -> tuple[int, int]:
        now = self._clock()
        with self._lock:
            count, expires_at = self._counters.get(key, (0, 0.0))
            if expires_at <= now:
                count, expires_at = 0, now + ttl_seconds
            count += 1
            self._counters[key] = (count, expires_at)
        return count, max(1, int(expires_at - now + 0.999))

    def delete(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    def sweep(self) -> int:
        """Evict expired windows; returns the number of keys removed."""
        now = self._clock()
        with self._lock:
            snapshot = list(self._counters.items())
        expired = [key for key, (_, expires_at) in snapshot if expires_at <= now]
        removed = 0
        with self._lock:
            for key in expired:
                entry = self._counters.get(key)
                # A key may have been restarted since the snapshot.
                if entry is not None and entry[1] <= now:
                    del self._counters[key]
                    removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)


class RedisCounterStore:
    """Counters in Redis (INCR + EXPIRE on the first hit)."""

    def __init__(self, client=None) -> None:
        self._client = client

    def _get_redis(self):
        if self._client is None:
            self._client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        return self._client

    def incr(self, key: str, ttl_seconds: int) -> tuple[int, int]:
        r = self._get_redis()
        value = r.incr(key)
        if value == 1:
            r.expire(key, ttl_seconds)
        ttl = r.ttl(key)
        if ttl is None or ttl < 0:
            ttl = ttl_seconds
        return int(value), int(ttl)

    def delete(self, key: str) -> None:
        self._get_redis().delete(key)

    def sweep(self) -> int:
        # Redis expires keys on its own.
        return 0


_store: CounterStore | None = None


def get_counter_store() -> CounterStore:
    """Process-wide counter store selected by RATE_LIMIT_BACKEND."""
    global _store
    if _store is None:
        if settings.RATE_LIMIT_BACKEND.lower() == "redis":
            _store = RedisCounterStore()
        else:
            _store = MemoryCounterStore()
    return _store


def reset_counter_store() -> None:
    global _store
    _store = None


def login_ip_key(client_ip: str) -> str:
    return f"auth:rl:login:ip:{client_ip}"


def enforce_login_rate_limit(store: CounterStore, client_ip: str) -> None:
    """Count one login attempt for ``client_ip``; raise once the window budget is spent."""
    try:
        attempts, ttl = store.incr(login_ip_key(client_ip), settings.AUTH_LOGIN_IP_WINDOW_SECONDS)
    except RedisError:
        # Fail-open: Redis outage should not block authentication entirely.
        logger.exception("Login rate limit check failed (Redis unavailable)")
        return

    if attempts > settings.AUTH_LOGIN_IP_LIMIT:
        minutes = max(1, -(-ttl // 60))
        logger.warning("Login rate limit exceeded: ip=%s attempts=%s", client_ip, attempts)
        raise TooManyRequests(
            "LOGIN_RATE_LIMITED",
            f"Too many login attempts. Please try again in {minutes} minute(s).",
            details={"retry_after_minutes": minutes, "retry_after_seconds": ttl},
        )


def sweep_counters(store: CounterStore) -> int:
    removed = store.sweep()
    if removed:
        logger.debug("Swept %s expired rate-limit windows", removed)
    return removed
