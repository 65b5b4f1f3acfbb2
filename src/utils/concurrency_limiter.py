"""Global admission ceiling for concurrent requests."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

logger = logging.getLogger(__name__)


class ConcurrencyLimiter:
    """Caps how many requests are processed at the same time.

    Requests beyond the ceiling wait for a free slot instead of being
    rejected.

    Attributes:
        max_concurrent: Number of requests handled at once

    Example:
        limiter = ConcurrencyLimiter(max_concurrent=32)

        async with limiter.slot():
            await handle(request)
    """

    def __init__(self, max_concurrent: int = 32):
        """Initialize the limiter.

        Args:
            max_concurrent: Maximum requests in flight (default: 32)

        Raises:
            ValueError: If max_concurrent is not positive
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._active = 0
        self._waiting = 0
        self._total = 0

        logger.info(f"ConcurrencyLimiter initialized: {max_concurrent} concurrent requests")

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Wait for and hold one processing slot."""
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1

        self._active += 1
        self._total += 1
        try:
            yield
        finally:
            self._active -= 1
            self._semaphore.release()

    @property
    def active(self) -> int:
        """Requests currently being processed."""
        return self._active

    @property
    def waiting(self) -> int:
        """Requests queued for a slot."""
        return self._waiting

    def get_stats(self) -> Dict:
        """Get limiter statistics."""
        return {
            "max_concurrent": self.max_concurrent,
            "active": self._active,
            "waiting": self._waiting,
            "total_admitted": self._total
        }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ConcurrencyLimiter(max_concurrent={self.max_concurrent}, "
            f"active={self._active}, waiting={self._waiting})"
        )


class ConcurrencyLimitMiddleware:
    """ASGI middleware that runs every HTTP request inside a limiter slot."""

    def __init__(self, app, limiter: ConcurrencyLimiter):
        self.app = app
        self.limiter = limiter

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        async with self.limiter.slot():
            await self.app(scope, receive, send)
