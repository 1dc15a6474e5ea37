"""Async rate limiter for polite search calls.

Ensures a minimum delay between consecutive calls to the search provider.
Default: 1100ms, just above Brave Search's one-request-per-second free tier.

Uses asyncio.Lock to be safe when called from concurrent tasks.
"""

import asyncio
import time


class RateLimiter:
    def __init__(self, delay_ms: int = 1100):
        self._delay = delay_ms / 1000.0
        self._last_request: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            if self._last_request is not None:
                elapsed = time.monotonic() - self._last_request
                if elapsed < self._delay:
                    await asyncio.sleep(self._delay - elapsed)
            self._last_request = time.monotonic()
