"""Per-ECU token bucket rate limiting."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class _TokenBucket:
    tokens: float
    last_refill: float


class RateLimiter:
    """Token bucket per ECU: bursts up to ``max_tokens``, refilled at ``refill_rate`` per second."""

    def __init__(
        self,
        max_tokens: int,
        refill_rate: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_tokens = max_tokens
        self.refill_rate = refill_rate
        self._clock = clock
        self._buckets: dict[str, _TokenBucket] = {}
        self._lock = threading.Lock()

    @classmethod
    def with_automotive_defaults(cls) -> RateLimiter:
        """Burst of 200 frames, 100 frames per second sustained."""
        return cls(200, 100)

    def allow_message(self, ecu_name: str) -> bool:
        """Take a token for ``ecu_name``; False when its bucket is empty."""
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(ecu_name)
            if bucket is None:
                bucket = _TokenBucket(float(self.max_tokens), now)
                self._buckets[ecu_name] = bucket
            elapsed = now - bucket.last_refill
            bucket.tokens = min(bucket.tokens + elapsed * self.refill_rate, float(self.max_tokens))
            bucket.last_refill = now
            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                return True
            return False

    def tokens(self, ecu_name: str) -> Optional[float]:
        """Tokens left for ``ecu_name``, or None if it has sent nothing yet."""
        with self._lock:
            bucket = self._buckets.get(ecu_name)
            return None if bucket is None else bucket.tokens

    def reset_ecu(self, ecu_name: str) -> None:
        """Forget the bucket of ``ecu_name`` so it starts full again."""
        with self._lock:
            self._buckets.pop(ecu_name, None)