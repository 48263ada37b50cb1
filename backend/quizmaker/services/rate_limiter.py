"""Process-wide cooldown gate for the generation backend.

The hosted model accepts one quiz generation per window (65 seconds by
default). The gate never sleeps: a call attempted inside the window is
refused immediately with :class:`RateLimited` carrying the wait time, because
the hosting invocation has a bounded lifetime and cannot afford to block.

State is in-memory and per process. It resets on restart and is not shared
between horizontally scaled instances.

Usage::

    limiter = GenerationRateLimiter(window_seconds=65)

    reservation = await limiter.acquire()      # raises RateLimited
    try:
        text = await backend.invoke(...)
    except Exception:
        await limiter.release(reservation)
        raise
    await limiter.commit(reservation)

Jobs of one batch run concurrently on the same event loop, so ``acquire``
places an in-flight reservation stamped with the call's start time. While it
is held every other caller is refused. ``commit`` turns the start time into
the new last-call timestamp; ``release`` drops the reservation without moving
the timestamp.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from typing import Callable, Dict, Optional

from quizmaker.core.exceptions import RateLimited

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 65.0


class GenerationRateLimiter:
    """Single-token cooldown gate for backend calls."""

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_call_at: Optional[float] = None
        self._in_flight: Optional[int] = None
        self._in_flight_started_at: Optional[float] = None
        self._tokens = itertools.count(1)

    @property
    def last_call_at(self) -> Optional[float]:
        """Start time of the last successful call, or None before the first."""
        return self._last_call_at

    def _blocking_since(self) -> Optional[float]:
        if self._in_flight_started_at is not None:
            return self._in_flight_started_at
        return self._last_call_at

    def _retry_after(self, now: float) -> float:
        since = self._blocking_since()
        if since is None:
            return 0.0
        return max(0.0, self.window_seconds - (now - since))

    async def acquire(self) -> int:
        """Reserve the gate for one call starting now.

        Returns:
            Reservation token to pass to :meth:`commit` or :meth:`release`.

        Raises:
            RateLimited: If the window has not elapsed since the last call
                started, or another call is in flight.
        """
        async with self._lock:
            now = self._clock()
            retry_after = self._retry_after(now)
            if retry_after > 0:
                logger.warning(
                    "Generation rate limit hit: retry in %.1fs (window=%.0fs)",
                    retry_after, self.window_seconds,
                )
                raise RateLimited(retry_after, self.window_seconds)

            token = next(self._tokens)
            self._in_flight = token
            self._in_flight_started_at = now
            logger.debug("Rate limiter reserved token=%d at %.3f", token, now)
            return token

    async def commit(self, token: int) -> None:
        """Record the reserved call as successful (timestamp = its start time)."""
        async with self._lock:
            if token != self._in_flight:
                logger.warning("Ignoring commit for stale rate-limit reservation %d", token)
                return
            self._last_call_at = self._in_flight_started_at
            self._in_flight = None
            self._in_flight_started_at = None

    async def release(self, token: int) -> None:
        """Drop a reservation whose call failed; the timestamp does not move."""
        async with self._lock:
            if token != self._in_flight:
                return
            self._in_flight = None
            self._in_flight_started_at = None

    def status(self) -> Dict[str, Optional[float]]:
        """Snapshot for health/debug output."""
        return {
            "window_seconds": self.window_seconds,
            "last_call_at": self._last_call_at,
            "in_flight": self._in_flight is not None,
            "retry_after": round(self._retry_after(self._clock()), 1),
        }

    def reset(self) -> None:
        """Forget all state (tests and manual operator resets)."""
        self._last_call_at = None
        self._in_flight = None
        self._in_flight_started_at = None
