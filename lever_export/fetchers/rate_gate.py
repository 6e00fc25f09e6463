"""
Rate Gate — global outbound request pacing.

所有 request 在送出前都必須先通過同一個 RateGate：
- 兩次 permit 之間至少間隔 1 / requests_per_second 秒
- cooldown 期間不發任何 permit（由 HTTP 429 觸發）
- 等待中的呼叫者依到達順序 (FIFO) 取得 permit

RateGateState 是整個 extraction run 唯一的可變共享狀態之一，由 RateGate
自己修改；呼叫端只透過 acquire() / trigger_cooldown() 操作。
所有修改都在同一個 event loop 上執行，不需要額外的 thread lock。
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable

logger = logging.getLogger(__name__)


@dataclass
class RateGateState:
    """Shared pacing/cooldown state for one run."""

    requests_per_second: float
    launch_allowed: bool = True
    cooldown_until: float | None = None


@dataclass(frozen=True)
class Permit:
    """Proof that a caller was allowed to launch one request."""

    sequence: int
    granted_at: float


class RateGate:
    """
    Single point of synchronization for outbound request pacing.

    Usage::

        gate = RateGate(requests_per_second=10)

        async with gate.acquire():
            response = await client.get(url)

        # on HTTP 429
        gate.trigger_cooldown(5.0)
    """

    def __init__(
        self,
        requests_per_second: float | None = None,
        state: RateGateState | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if state is None:
            if requests_per_second is None:
                raise ValueError("requests_per_second or state is required")
            state = RateGateState(requests_per_second=requests_per_second)
        if state.requests_per_second <= 0:
            raise ValueError(
                f"requests_per_second must be positive, got {state.requests_per_second}"
            )
        self._state = state
        self._clock = clock
        self._interval = 1.0 / state.requests_per_second
        # asyncio.Lock wakes waiters in arrival order → FIFO permits
        self._lock = asyncio.Lock()
        self._last_grant: float | None = None
        self._granted = 0
        self.cooldowns_triggered = 0

    @property
    def state(self) -> RateGateState:
        """Current state (refreshed so an expired cooldown reads as cleared)."""
        self._refresh(self._clock())
        return self._state

    @property
    def interval(self) -> float:
        """Minimum spacing between two permits, in seconds."""
        return self._interval

    @property
    def granted(self) -> int:
        """Number of permits granted so far."""
        return self._granted

    def cooldown_remaining(self) -> float:
        """Seconds until launches are allowed again (0 when not cooling down)."""
        now = self._clock()
        self._refresh(now)
        if self._state.cooldown_until is None:
            return 0.0
        return max(0.0, self._state.cooldown_until - now)

    def trigger_cooldown(self, duration: float) -> None:
        """
        Suspend all permit grants for ``duration`` seconds from now.

        The latest call wins: a pending expiry is overwritten, never extended
        by stacking and never kept when the new one ends sooner.
        """
        now = self._clock()
        self._state.cooldown_until = now + max(0.0, duration)
        self._state.launch_allowed = duration <= 0
        self.cooldowns_triggered += 1
        logger.warning("Rate limited: pausing request launches for %.2fs", duration)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Permit]:
        """
        Wait for pacing and cooldown, then yield a permit.

        The gate is free for the next waiter as soon as the permit is granted,
        so the caller's request itself does not block other launches.
        """
        async with self._lock:
            while True:
                now = self._clock()
                wait = self._wait_time(now)
                if wait <= 0:
                    break
                await asyncio.sleep(wait)
            self._last_grant = now
            self._granted += 1
            permit = Permit(sequence=self._granted, granted_at=now)
        yield permit

    def _wait_time(self, now: float) -> float:
        self._refresh(now)
        wait = 0.0
        if self._last_grant is not None:
            wait = self._last_grant + self._interval - now
        if self._state.cooldown_until is not None:
            wait = max(wait, self._state.cooldown_until - now)
        return wait

    def _refresh(self, now: float) -> None:
        """Clear an expired cooldown."""
        until = self._state.cooldown_until
        if until is not None and now >= until:
            self._state.cooldown_until = None
            self._state.launch_allowed = True

    def __repr__(self) -> str:
        return (
            f"<RateGate rps={self._state.requests_per_second} "
            f"granted={self._granted} cooldowns={self.cooldowns_triggered}>"
        )
