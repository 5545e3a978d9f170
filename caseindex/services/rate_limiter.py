"""
Per-source request budgets for the court portal subsystems.

Each source key owns a fixed-size window (limit, seconds). A window opens on
the first admission check after the previous one expired, not on a wall-clock
boundary. Admission is a single check-and-increment under one lock, so
concurrent callers (threads or tasks) can never overshoot ``limit``.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Mapping

from loguru import logger

from caseindex.errors import UnknownSourceError
from caseindex.models import RateLimitState


@dataclass(frozen=True)
class Admission:
    """Result of ``try_admit``. ``retry_after`` is set only on denial."""

    allowed: bool
    retry_after: float | None = None


@dataclass
class _Window:
    limit: int
    seconds: float
    current: int = 0
    reset_at: float | None = None  # None until the first window opens
    open: bool = False


class RateLimiter:
    """Fixed-window admission control keyed by source."""

    def __init__(
        self,
        limits: Mapping[str, tuple[int, float]],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not limits:
            raise ValueError("RateLimiter needs at least one source budget")
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, _Window] = {}
        for key, (limit, seconds) in limits.items():
            if limit <= 0 or seconds <= 0:
                raise ValueError(f"Invalid budget for {key}: {limit}/{seconds}s")
            self._windows[key] = _Window(limit=int(limit), seconds=float(seconds))
        logger.debug(
            "RateLimiter budgets: "
            + ", ".join(f"{k}={w.limit}/{w.seconds:g}s" for k, w in self._windows.items())
        )

    @property
    def sources(self) -> list[str]:
        return list(self._windows)

    def tightest_limit(self) -> int:
        """Smallest per-window budget across all sources."""
        return min(w.limit for w in self._windows.values())

    def _window(self, source_key: str) -> _Window:
        try:
            return self._windows[source_key]
        except KeyError:
            raise UnknownSourceError(source_key) from None

    @staticmethod
    def _expire(window: _Window, now: float) -> None:
        # Rolls the counter back to zero exactly once per window
        if window.open and window.reset_at is not None and now >= window.reset_at:
            window.current = 0
            window.open = False

    def try_admit(self, source_key: str) -> Admission:
        """Count one request against ``source_key`` if budget remains."""
        with self._lock:
            window = self._window(source_key)
            now = self._clock()
            self._expire(window, now)
            if not window.open:
                window.open = True
                window.current = 0
                window.reset_at = now + window.seconds
            if window.current < window.limit:
                window.current += 1
                return Admission(allowed=True)
            retry_after = max(window.reset_at - now, 0.0)
        logger.debug(f"Rate limit hit for {source_key}; retry in {retry_after:.2f}s")
        return Admission(allowed=False, retry_after=retry_after)

    def status(self, source_key: str) -> RateLimitState:
        with self._lock:
            window = self._window(source_key)
            now = self._clock()
            self._expire(window, now)
            resets_in = (
                max(window.reset_at - now, 0.0)
                if window.open and window.reset_at is not None
                else 0.0
            )
            return RateLimitState(
                source_key=source_key,
                current=window.current,
                limit=window.limit,
                window_seconds=window.seconds,
                window_reset_time=window.reset_at,
                resets_in=resets_in,
            )

    def all_status(self) -> dict[str, RateLimitState]:
        return {key: self.status(key) for key in self._windows}
