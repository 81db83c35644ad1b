"""
Client-side token bucket for outbound Telegram Bot API calls.
"""
import asyncio
import time
from typing import Callable

from backend.app.core.logger_config import setup_logger

logger = setup_logger(__name__)

class TokenBucket:
    def __init__(self, capacity: int = 20, refill_rate: float = 1.0,
                 clock: Callable[[], float] = time.monotonic):
        """
        capacity: Max burst size (tokens).
        refill_rate: Tokens added per second.
        """
        if capacity < 1 or refill_rate <= 0:
            raise ValueError("capacity must be >= 1 and refill_rate > 0")
        self.capacity = float(capacity)
        self.refill_rate = refill_rate
        self._clock = clock
        self._tokens = self.capacity
        self._updated_at = clock()
        self._lock = asyncio.Lock()

    @property
    def available(self) -> float:
        return self._tokens

    def _refill(self):
        now = self._clock()
        self._tokens = min(self.capacity, self._tokens + (now - self._updated_at) * self.refill_rate)
        self._updated_at = now

    def _take(self, tokens: int) -> float:
        """Consumes tokens when present, else returns the seconds until they will be."""
        self._refill()
        if self._tokens >= tokens:
            self._tokens -= tokens
            return 0.0
        return (tokens - self._tokens) / self.refill_rate

    async def wait_for_token(self, tokens: int = 1):
        if tokens > self.capacity:
            raise ValueError(f"Cannot take {tokens} tokens from a bucket of {self.capacity:.0f}")

        while True:
            async with self._lock:
                delay = self._take(tokens)
            if not delay:
                return
            logger.debug("Throttling outbound call for %.2fs", delay)
            await asyncio.sleep(delay)
