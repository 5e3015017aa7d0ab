"""In-memory fixed-window rate limiting exposed as FastAPI dependencies."""

import logging
import time
from threading import Lock

from fastapi import Request

from backend.core import config
from backend.core.errors import RateLimitError

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 60


class RateLimiter:
    """Counts requests per client inside a fixed window.

    Instances are used directly as dependencies: ``Depends(login_limiter)``.
    """

    def __init__(self, name: str, window_seconds: int, max_requests: int, message: str):
        self.name = name
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.message = message
        # {key: {'count': int, 'reset_time': float}}
        self._hits: dict[str, dict] = {}
        self._lock = Lock()
        self._last_cleanup = 0.0

    def __call__(self, request: Request) -> None:
        if not config.RATE_LIMIT_ENABLED:
            return
        self.hit(self.key_for(request))

    @staticmethod
    def key_for(request: Request) -> str:
        user = getattr(request.state, 'user', None)
        if user is not None:
            return f'user:{user.id}'
        client_host = request.client.host if request.client else 'unknown'
        forwarded_for = request.headers.get('x-forwarded-for')
        if forwarded_for:
            client_host = forwarded_for.split(',')[0].strip()
        return f'ip:{client_host}'

    def hit(self, key: str, now: float | None = None) -> int:
        now = time.time() if now is None else now

        with self._lock:
            self._cleanup(now)
            entry = self._hits.get(key)
            if entry is None or entry['reset_time'] <= now:
                entry = {'count': 0, 'reset_time': now + self.window_seconds}
                self._hits[key] = entry

            if entry['count'] >= self.max_requests:
                retry_after = max(1, int(entry['reset_time'] - now))
                logger.warning('Rate limit %s exceeded for %s', self.name, key)
                raise RateLimitError(self.message, retry_after=retry_after)

            entry['count'] += 1
            return self.max_requests - entry['count']

    def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._hits.clear()

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < CLEANUP_INTERVAL_SECONDS:
            return
        expired = [key for key, entry in self._hits.items() if entry['reset_time'] <= now]
        for key in expired:
            del self._hits[key]
        self._last_cleanup = now


general_limiter = RateLimiter(
    'general',
    window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
    max_requests=config.RATE_LIMIT_MAX_REQUESTS,
    message='Too many requests from this client, try again later.',
)
login_limiter = RateLimiter(
    'login',
    window_seconds=15 * 60,
    max_requests=5,
    message='Too many login attempts, try again in 15 minutes.',
)
register_limiter = RateLimiter(
    'register',
    window_seconds=60 * 60,
    max_requests=10,
    message='Too many user registrations, try again in 1 hour.',
)
password_change_limiter = RateLimiter(
    'password-change',
    window_seconds=60 * 60,
    max_requests=3,
    message='Too many password change attempts, try again in 1 hour.',
)
appointment_limiter = RateLimiter(
    'appointments',
    window_seconds=60,
    max_requests=10,
    message='Too many appointment requests, try again in 1 minute.',
)
notification_limiter = RateLimiter(
    'notifications',
    window_seconds=60,
    max_requests=20,
    message='Too many notifications sent, try again in 1 minute.',
)
search_limiter = RateLimiter(
    'search',
    window_seconds=60,
    max_requests=30,
    message='Too many searches, try again in 1 minute.',
)

ALL_LIMITERS = (
    general_limiter,
    login_limiter,
    register_limiter,
    password_change_limiter,
    appointment_limiter,
    notification_limiter,
    search_limiter,
)
