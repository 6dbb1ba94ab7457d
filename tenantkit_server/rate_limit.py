# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""In-memory rate limiting for token-bearing and onboarding endpoints."""

import time
from collections import deque

from fastapi import Request

from tenantkit_server.errors import ErrorKind, ServiceError

# (client_key, path) -> request timestamps inside the window; idle keys are dropped
_buckets: dict[tuple[str, str], deque[float]] = {}
_last_sweep = 0.0
WINDOW = 60
LIMITS: dict[str, int] = {
    "/api/v1/auth/invite": 30,
    "/api/v1/auth/invite/validate": 20,
    "/api/v1/auth/accept-invite": 10,
    "/api/v1/organizations": 5,
}


def _client_key(request: Request) -> str:
    """Prefer X-Forwarded-For when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host or "unknown"
    return "unknown"


def _prune(key: tuple[str, str], now: float) -> deque[float] | None:
    bucket = _buckets.get(key)
    if bucket is None:
        return None
    while bucket and bucket[0] <= now - WINDOW:
        bucket.popleft()
    if not bucket:
        del _buckets[key]
        return None
    return bucket


def check_rate_limit(request: Request, path: str) -> None:
    """Raise RATE_LIMITED (429) if the client has exceeded the limit for this path."""
    limit = LIMITS.get(path)
    if limit is None:
        return
    now = time.monotonic()
    if now - _last_sweep >= WINDOW:
        sweep_rate_limits(now)
    key = (_client_key(request), path)
    bucket = _prune(key, now)
    if bucket is not None and len(bucket) >= limit:
        raise ServiceError(ErrorKind.RATE_LIMITED)
    _buckets.setdefault(key, deque()).append(now)


def sweep_rate_limits(now: float | None = None) -> None:
    """Drop every key whose window has fully elapsed."""
    global _last_sweep
    if now is None:
        now = time.monotonic()
    _last_sweep = now
    for key in list(_buckets):
        _prune(key, now)


def reset_rate_limits() -> None:
    global _last_sweep
    _buckets.clear()
    _last_sweep = 0.0


async def rate_limit_dep(request: Request) -> None:
    """FastAPI dependency: add Depends(rate_limit_dep) to limited routes."""
    path = request.url.path.rstrip("/")
    if path in LIMITS:
        check_rate_limit(request, path)
