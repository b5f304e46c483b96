"""
MangroveWatch - Rate Limiting
Pluggable request budgets keyed by caller.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Dict, Optional

from mangrovewatch.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class RateLimiter(ABC):
    """Decides whether a caller identified by ``key`` may proceed."""

    @abstractmethod
    def allow(self, key: str) -> bool:
        ...


class AllowAllRateLimiter(RateLimiter):
    """Limiter that never refuses."""

    def allow(self, key: str) -> bool:
        return True


class SlidingWindowRateLimiter(RateLimiter):
    """
    Sliding-window limiter.

    Keeps the timestamps of accepted requests per key and refuses once
    ``max_requests`` fall inside the trailing ``window_seconds``.
    The clock is injectable so tests do not depend on wall time.
    """

    def __init__(
        self,
        max_requests: Optional[int] = None,
        window_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        config: Optional[Settings] = None
    ):
        config = config or default_settings
        self.max_requests = max_requests if max_requests is not None else config.rate_limit_max_requests
        self.window_seconds = (
            window_seconds if window_seconds is not None else config.rate_limit_window_seconds
        )
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = float("-inf")

    def allow(self, key: str) -> bool:
        now = self._clock()
        cutoff = now - self.window_seconds
        self._sweep(now, cutoff)

        hits = self._hits.get(key) or deque()
        while hits and hits[0] <= cutoff:
            hits.popleft()

        if len(hits) >= self.max_requests:
            logger.warning(f"Rate limit reached for {key} ({len(hits)} in {self.window_seconds}s)")
            if not hits:
                self._hits.pop(key, None)
            return False

        hits.append(now)
        self._hits[key] = hits
        return True

    def _sweep(self, now: float, cutoff: float) -> None:
        """Forget keys with no hit inside the window, at most once per window."""
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now

        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]
        if stale:
            logger.debug(f"Rate limiter dropped {len(stale)} idle keys")

    def reset(self, key: Optional[str] = None) -> None:
        """Forget recorded hits for one key, or for all keys."""
        if key is None:
            self._hits.clear()
        else:
            self._hits.pop(key, None)
