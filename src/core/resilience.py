"""
RESILIENCE MODULE
Request pacing for exchange calls: burst ceiling plus minimum spacing
"""
import asyncio
import time
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class RateLimiter:
    """
    Async rate limiter for exchange REST calls.

    - At most `max_concurrent` requests in flight
    - Request starts are spaced at least `min_interval_ms` apart

    Usage:
        async with limiter:
            await session.post(...)
    """

    def __init__(self, max_concurrent: int = 5, min_interval_ms: float = 100.0):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.max_concurrent = max_concurrent
        self.min_interval_s = max(0.0, min_interval_ms) / 1000.0

        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._spacing_lock = asyncio.Lock()
        self._last_start: float = 0.0
        self._running = 0
        self._total_waits = 0

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        try:
            async with self._spacing_lock:
                now = time.monotonic()
                wait_s = self._last_start + self.min_interval_s - now
                if self._last_start and wait_s > 0:
                    self._total_waits += 1
                    logger.debug("rate_limit_wait", wait_ms=round(wait_s * 1000, 1))
                    await asyncio.sleep(wait_s)
                self._last_start = time.monotonic()
        except BaseException:
            self._semaphore.release()
            raise
        self._running += 1

    def release(self) -> None:
        self._running -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.release()
        return None

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "max_concurrent": self.max_concurrent,
            "min_interval_ms": self.min_interval_s * 1000,
            "total_waits": self._total_waits,
        }
