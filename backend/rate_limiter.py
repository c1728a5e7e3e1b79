"""
In-memory fixed-window rate limiter

Keys are arbitrary strings such as "login:<ip>". Each key counts requests
inside a window that starts with its first request; once the window has
passed the count starts over.

State lives in this process only. Behind several workers or instances each
one counts separately, so limits are per process.

Client addresses come from X-Forwarded-For / X-Real-IP, so the app must sit
behind a reverse proxy that overwrites those headers. Exposed directly, a
client can pick a new address per request and slip past every limit.
"""

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from responses import ApiError, TOO_MANY_REQUESTS

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = 300  # seconds

# (max requests, window in ms)
LOGIN_LIMIT = (5, 15 * 60 * 1000)
REGISTER_LIMIT = (3, 60 * 60 * 1000)
FORGOT_PASSWORD_LIMIT = (3, 60 * 60 * 1000)
RESET_PASSWORD_LIMIT = (5, 60 * 60 * 1000)
REFRESH_LIMIT = (30, 15 * 60 * 1000)


@dataclass
class RateLimitResult:
    allowed: bool
    retry_after: Optional[int] = None   # seconds, set when denied


@dataclass
class _Window:
    count: int
    reset_at: float     # ms


def _now_ms() -> float:
    return time.time() * 1000


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = _now_ms):
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        # Sync endpoints run in the threadpool
        self._lock = threading.Lock()

    def check(self, key: str, max_requests: int, window_ms: int) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)

            if window is None or now > window.reset_at:
                self._windows[key] = _Window(count=1, reset_at=now + window_ms)
                return RateLimitResult(allowed=True)

            if window.count >= max_requests:
                retry_after = max(1, math.ceil((window.reset_at - now) / 1000))
                return RateLimitResult(allowed=False, retry_after=retry_after)

            window.count += 1
            return RateLimitResult(allowed=True)

    def cleanup(self) -> int:
        """Drop expired windows; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, window in self._windows.items() if now > window.reset_at]
            for key in expired:
                del self._windows[key]
        return len(expired)

    def reset(self, key: str):
        with self._lock:
            self._windows.pop(key, None)

    def reset_all(self):
        with self._lock:
            self._windows.clear()

    def __len__(self):
        return len(self._windows)


rate_limiter = RateLimiter()


def client_ip(request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer.

    The headers are taken as set by the trusted proxy in front of the app.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_rate_limit(request, action: str, limit: tuple, limiter: Optional[RateLimiter] = None):
    """Raise a 429 ApiError when "<action>:<ip>" is over its limit."""
    limiter = limiter or rate_limiter
    max_requests, window_ms = limit
    ip = client_ip(request)
    result = limiter.check(f"{action}:{ip}", max_requests, window_ms)
    if result.allowed:
        return

    logger.warning(f"Rate limit hit: {action} from {ip}, retry in {result.retry_after}s")
    raise ApiError(
        429,
        TOO_MANY_REQUESTS,
        "Too many requests. Please try again later.",
        details={"retry_after": result.retry_after},
        headers={"Retry-After": str(result.retry_after)},
    )


async def start_cleanup_task(limiter: Optional[RateLimiter] = None):
    """
    Background task that sweeps expired windows every CLEANUP_INTERVAL seconds.

    Called from FastAPI lifespan startup. Runs until cancelled.
    """
    limiter = limiter or rate_limiter
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL)
        try:
            removed = limiter.cleanup()
            if removed:
                logger.debug(f"Rate limiter cleanup removed {removed} windows")
        except Exception as e:
            logger.error(f"Rate limiter cleanup error: {e}")
