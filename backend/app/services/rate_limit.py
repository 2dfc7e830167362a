from __future__ import annotations

from collections import deque
from threading import Lock
import time
from typing import Deque

from fastapi import HTTPException, Request, status


class InMemoryRateLimiter:
    """Sliding-window limiter keyed by caller; idle keys are dropped on a periodic sweep."""

    def __init__(self, *, sweep_every: int = 500) -> None:
        self._buckets: dict[str, Deque[float]] = {}
        self._lock = Lock()
        self._sweep_every = max(1, sweep_every)
        self._checks_since_sweep = 0
        self._longest_window = 0

    def check(self, *, key: str, limit: int, window_seconds: int, now: float | None = None) -> tuple[bool, int]:
        now = time.time() if now is None else now
        earliest = now - window_seconds
        retry_after = 1
        with self._lock:
            self._longest_window = max(self._longest_window, window_seconds)
            self._checks_since_sweep += 1
            if self._checks_since_sweep >= self._sweep_every:
                self._sweep(now)

            bucket = self._buckets.setdefault(key, deque())
            while bucket and bucket[0] <= earliest:
                bucket.popleft()
            if len(bucket) >= limit:
                retry_after = max(1, int(bucket[0] + window_seconds - now))
                return False, retry_after
            bucket.append(now)
        return True, retry_after

    def _sweep(self, now: float) -> None:
        cutoff = now - self._longest_window
        for key in [key for key, bucket in self._buckets.items() if not bucket or bucket[-1] <= cutoff]:
            del self._buckets[key]
        self._checks_since_sweep = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()
            self._checks_since_sweep = 0


_limiter = InMemoryRateLimiter()


def _request_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_rate_limit(
    *,
    request: Request,
    scope: str,
    limit: int,
    window_seconds: int,
    identity: str | None = None,
) -> None:
    id_part = (identity or "").strip().lower()
    key = f"{scope}|{_request_ip(request)}|{id_part}"
    allowed, retry_after = _limiter.check(key=key, limit=limit, window_seconds=window_seconds)
    if allowed:
        return
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many requests",
        headers={"Retry-After": str(retry_after)},
    )


def clear_rate_limiter() -> None:
    _limiter.clear()
