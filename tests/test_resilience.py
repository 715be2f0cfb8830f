"""
Rate limiter tests

Run:
    python -m pytest tests/test_resilience.py -v
"""
import asyncio
import time

import pytest

from src.core.resilience import RateLimiter


class TestRateLimiter:

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            RateLimiter(max_concurrent=0)

    @pytest.mark.asyncio
    async def test_concurrency_ceiling(self):
        limiter = RateLimiter(max_concurrent=2, min_interval_ms=0)
        peak = 0

        async def task():
            nonlocal peak
            async with limiter:
                peak = max(peak, limiter.get_status()["running"])
                await asyncio.sleep(0.01)

        await asyncio.gather(*(task() for _ in range(6)))

        assert peak == 2
        assert limiter.get_status()["running"] == 0

    @pytest.mark.asyncio
    async def test_minimum_spacing(self):
        limiter = RateLimiter(max_concurrent=5, min_interval_ms=30)
        starts = []

        async def task():
            async with limiter:
                starts.append(time.monotonic())

        await asyncio.gather(*(task() for _ in range(3)))

        gaps = [b - a for a, b in zip(starts, starts[1:])]
        assert all(gap >= 0.025 for gap in gaps)
        assert limiter.get_status()["total_waits"] >= 2

    @pytest.mark.asyncio
    async def test_release_on_error(self):
        limiter = RateLimiter(max_concurrent=1, min_interval_ms=0)

        with pytest.raises(RuntimeError):
            async with limiter:
                raise RuntimeError("boom")

        async with limiter:
            assert limiter.get_status()["running"] == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
