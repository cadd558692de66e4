"""In-process fixed-window request limiting."""

import math
import time
from typing import Callable, Dict, Optional, Tuple

from core.config import Settings

# Expired windows are pruned once this many clients are tracked
MAX_TRACKED_CLIENTS = 10000


class RateLimiter:
    """Counts requests per client in fixed windows of rate_limit_window seconds."""

    def __init__(self, settings: Settings, clock: Callable[[], float] = time.monotonic):
        self.enabled = settings.rate_limit_enabled
        self.limit = settings.rate_limit_requests
        self.window = settings.rate_limit_window
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    def check(self, client: str) -> Tuple[bool, Optional[int]]:
        """
        Count one request from client.

        Returns:
            Tuple of (is_allowed, retry_after_seconds); retry_after is None
            when the request is allowed.
        """
        now = self._clock()
        window_start, count = self._windows.get(client, (now, 0))

        if now - window_start >= self.window:
            window_start, count = now, 0

        if count >= self.limit:
            remaining = self.window - (now - window_start)
            return False, max(1, math.ceil(remaining))

        if client not in self._windows and len(self._windows) >= MAX_TRACKED_CLIENTS:
            self._prune(now)

        self._windows[client] = (window_start, count + 1)
        return True, None

    def _prune(self, now: float) -> None:
        self._windows = {
            client: (start, count)
            for client, (start, count) in self._windows.items()
            if now - start < self.window
        }
