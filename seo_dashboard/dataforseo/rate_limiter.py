"""
DataForSEO Rate Limiter

Async limiter classes for the DataForSEO API:
- general: 2,000 requests/minute, 34ms between starts, 30 concurrent
- tasksReady: 20 requests/minute, 3s between starts, 5 concurrent
- googleAds: 12 requests/minute, 5s between starts, 3 concurrent

Each limiter combines:
- A semaphore for max concurrent requests
- Minimum spacing between request starts
- A per-minute reservoir that refills on a fixed interval
- Exponential-backoff retries for retryable failures (general only)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from .errors import ErrorCategory, classify_error

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-based): 1s, 2s, 4s..."""
        return min(self.initial_delay * (self.exponential_base ** attempt), self.max_delay)


@dataclass
class LimiterConfig:
    """Configuration for a limiter class."""
    name: str
    max_concurrent: int
    min_time_ms: int
    reservoir: int
    refresh_interval: float = 60.0
    retry: RetryConfig = field(default_factory=lambda: RetryConfig(max_retries=0))

    def __str__(self):
        return (
            f"LimiterConfig({self.name}: concurrent={self.max_concurrent}, "
            f"min_time={self.min_time_ms}ms, reservoir={self.reservoir}/{self.refresh_interval:.0f}s)"
        )


LIMITER_CONFIGS: Dict[str, LimiterConfig] = {
    "general": LimiterConfig(
        name="general",
        max_concurrent=30,
        min_time_ms=34,  # ~33.33ms = 2000 req/min
        reservoir=2000,
        retry=RetryConfig(max_retries=3, initial_delay=1.0, exponential_base=2.0),
    ),
    "tasksReady": LimiterConfig(
        name="tasksReady",
        max_concurrent=5,
        min_time_ms=3000,
        reservoir=20,
    ),
    "googleAds": LimiterConfig(
        name="googleAds",
        max_concurrent=3,
        min_time_ms=5000,
        reservoir=12,
    ),
}


def is_retryable_error(exc: BaseException) -> bool:
    """Client errors (4xx except 429) are never retried."""
    status = getattr(exc, "status_code", None)
    if status is not None and 400 <= status < 500 and status != 429:
        return False
    return classify_error(exc, status) == ErrorCategory.RETRYABLE


class RateLimiter:
    """
    Async rate limiter for one limiter class.

    Usage:
        limiter = get_limiter("general")
        result = await limiter.schedule(client.fetch, "endpoint", payload)
    """

    def __init__(self, config: LimiterConfig):
        self.config = config
        self._semaphore = asyncio.Semaphore(config.max_concurrent)
        self._spacing_lock = asyncio.Lock()
        self._reservoir_lock = asyncio.Lock()
        self._last_start = 0.0
        self._tokens = config.reservoir
        self._last_refill = time.monotonic()
        self.running = 0
        self.queued = 0
        self.done = 0
        self.failed = 0

        logger.debug(f"Initialized RateLimiter: {config}")

    def _refill(self):
        now = time.monotonic()
        if now - self._last_refill >= self.config.refresh_interval:
            self._tokens = self.config.reservoir
            self._last_refill = now

    async def _take_reservoir_token(self):
        """Block until the per-minute reservoir has a token."""
        while True:
            async with self._reservoir_lock:
                self._refill()
                if self._tokens > 0:
                    self._tokens -= 1
                    return
                wait_time = self.config.refresh_interval - (time.monotonic() - self._last_refill)

            logger.debug(f"[{self.config.name}] Reservoir empty, waiting {wait_time:.2f}s")
            await asyncio.sleep(max(wait_time, 0.0))

    async def _wait_min_time(self):
        """Space request starts at least min_time_ms apart."""
        async with self._spacing_lock:
            min_gap = self.config.min_time_ms / 1000.0
            wait_time = self._last_start + min_gap - time.monotonic()
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self._last_start = time.monotonic()

    async def _run_once(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        self.queued += 1
        dequeued = False
        try:
            async with self._semaphore:
                await self._take_reservoir_token()
                await self._wait_min_time()
                self.queued -= 1
                dequeued = True

                self.running += 1
                try:
                    return await fn(*args, **kwargs)
                finally:
                    self.running -= 1
        finally:
            if not dequeued:
                self.queued -= 1

    async def schedule(
        self,
        fn: Callable[..., Awaitable[Any]],
        *args,
        retry: bool = True,
        **kwargs,
    ) -> Any:
        """
        Run `fn(*args, **kwargs)` under this limiter.

        Retryable failures are retried with exponential backoff up to
        the limiter's max_retries. Each attempt consumes a reservoir token.
        """
        retry_config = self.config.retry
        attempt = 0

        while True:
            try:
                result = await self._run_once(fn, *args, **kwargs)
                self.done += 1
                return result
            except Exception as e:
                self.failed += 1
                logger.error(f"[DataForSEO] Request failed: {e}")

                if not retry or attempt >= retry_config.max_retries or not is_retryable_error(e):
                    raise

                delay = retry_config.delay_for(attempt)
                logger.info(f"[DataForSEO] Retrying in {delay * 1000:.0f}ms (attempt {attempt + 2})...")
                await asyncio.sleep(delay)
                attempt += 1

    def stats(self) -> Dict[str, Any]:
        self._refill()
        return {
            "name": self.config.name,
            "running": self.running,
            "queued": self.queued,
            "done": self.done,
            "failed": self.failed,
            "reservoir": self._tokens,
            "max_concurrent": self.config.max_concurrent,
        }


_limiters: Dict[str, RateLimiter] = {}


def get_limiter(kind: Optional[str] = "general") -> RateLimiter:
    """Get the shared limiter for a limiter class. Unknown kinds use 'general'."""
    key = kind if kind in LIMITER_CONFIGS else "general"
    if key not in _limiters:
        _limiters[key] = RateLimiter(LIMITER_CONFIGS[key])
    return _limiters[key]


def get_limiter_stats() -> Dict[str, Dict[str, Any]]:
    """Stats for every limiter class that has been used."""
    return {name: limiter.stats() for name, limiter in _limiters.items()}


def reset_limiters():
    """Drop the shared limiters (they bind to the running event loop)."""
    _limiters.clear()
