"""Admission control for pull request creation.

Two limits are enforced together:
- hourly: a sliding window of grant timestamps kept in a deque; expired
  entries are pruned on each check.
- concurrent: a counter of grants that have not been released yet.

A limit of 0 disables that dimension. State changes happen under a single
lock so callers on several tasks or threads never see more grants than the
limits allow.
"""

import threading
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass

from updatebot.config.models import Configuration
from updatebot.errors import RateLimitExceeded
from updatebot.logging.audit import get_audit_logger

WINDOW_SECONDS = 3600.0  # 1-hour sliding window

REASON_HOURLY = "hourly"
REASON_CONCURRENT = "concurrent"


@dataclass
class Admission:
    allowed: bool
    reason: str  # "" when allowed, else "hourly" | "concurrent"
    in_flight: int
    hourly_remaining: int | None  # None = no hourly limit
    reset_seconds: float
    granted_at: float | None = None  # monotonic time of the grant


@dataclass
class RateLimitStats:
    hourly_limit: int
    concurrent_limit: int
    in_flight: int
    hourly_used: int
    hourly_remaining: int | None


class RateLimiter:
    """Grants at most `hourly_limit` actions per rolling window and
    at most `concurrent_limit` actions in flight."""

    def __init__(self, hourly_limit: int, concurrent_limit: int, window_seconds: float = WINDOW_SECONDS):
        if hourly_limit < 0 or concurrent_limit < 0:
            raise ValueError("Rate limits must be non-negative")
        self.hourly_limit = hourly_limit
        self.concurrent_limit = concurrent_limit
        self.window_seconds = window_seconds

        self._grants: deque[float] = deque()
        self._in_flight = 0
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        window_start = now - self.window_seconds
        while self._grants and self._grants[0] <= window_start:
            self._grants.popleft()

    def _hourly_remaining(self) -> int | None:
        if not self.hourly_limit:
            return None
        return max(0, self.hourly_limit - len(self._grants))

    async def try_acquire(self) -> Admission:
        """Grant one action if both limits allow it. Never waits."""
        with self._lock:
            now = time.monotonic()
            self._prune(now)

            if self.concurrent_limit and self._in_flight >= self.concurrent_limit:
                return Admission(
                    allowed=False,
                    reason=REASON_CONCURRENT,
                    in_flight=self._in_flight,
                    hourly_remaining=self._hourly_remaining(),
                    reset_seconds=0.0,
                )

            if self.hourly_limit and len(self._grants) >= self.hourly_limit:
                # Time until the oldest grant leaves the window
                reset = self._grants[0] + self.window_seconds - now
                return Admission(
                    allowed=False,
                    reason=REASON_HOURLY,
                    in_flight=self._in_flight,
                    hourly_remaining=0,
                    reset_seconds=round(reset, 1),
                )

            self._grants.append(now)
            self._in_flight += 1
            reset = self._grants[0] + self.window_seconds - now

            return Admission(
                allowed=True,
                reason="",
                in_flight=self._in_flight,
                hourly_remaining=self._hourly_remaining(),
                reset_seconds=round(reset, 1),
                granted_at=now,
            )

    async def release(self, admission: Admission | None = None, consumed: bool = True) -> None:
        """End one in-flight grant.

        A consumed grant keeps counting for the hourly window. With
        consumed=False the grant's slot in the window is handed back too.
        """
        with self._lock:
            if self._in_flight == 0:
                get_audit_logger().warning("Rate limiter release without a grant in flight")
                return
            self._in_flight -= 1
            if not consumed and admission is not None and admission.granted_at in self._grants:
                self._grants.remove(admission.granted_at)

    @asynccontextmanager
    async def slot(self):
        """Hold one grant for the duration of the block.

        Raises RateLimitExceeded when admission is deferred. If the block
        raises, the action did not happen and its hourly grant is returned.
        """
        admission = await self.try_acquire()
        if not admission.allowed:
            raise RateLimitExceeded(admission)
        try:
            yield admission
        except BaseException:
            await self.release(admission, consumed=False)
            raise
        await self.release(admission)

    def stats(self) -> RateLimitStats:
        with self._lock:
            self._prune(time.monotonic())
            return RateLimitStats(
                hourly_limit=self.hourly_limit,
                concurrent_limit=self.concurrent_limit,
                in_flight=self._in_flight,
                hourly_used=len(self._grants),
                hourly_remaining=self._hourly_remaining(),
            )

    def reset(self) -> None:
        """Clear all grant state. Useful for testing."""
        with self._lock:
            self._grants.clear()
            self._in_flight = 0


def apply_rate_limits(config: Configuration) -> RateLimiter:
    """Build the limiter for a run from the configured PR limits."""
    return RateLimiter(
        hourly_limit=config.pr_hourly_limit,
        concurrent_limit=config.pr_concurrent_limit,
    )
