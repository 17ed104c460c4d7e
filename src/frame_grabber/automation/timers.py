from __future__ import annotations

import asyncio
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timers(Protocol):
    """Clock plus one-shot callbacks; the scheduler's only time source."""

    def now(self) -> float: ...

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopTimers:
    """Timers backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(delay_s, callback)


class RepeatingTimer:
    """Fires *callback* every *period_s* until cancelled.

    The next shot is armed before the callback runs, so a callback that
    cancels the timer stops it for good.
    """

    def __init__(self, timers: Timers, period_s: float, callback: Callable[[], None]) -> None:
        if period_s <= 0:
            raise ValueError("period must be positive")
        self._timers = timers
        self._period_s = period_s
        self._callback = callback
        self._handle: Optional[TimerHandle] = None
        self._cancelled = False
        self._arm()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self) -> None:
        self._handle = self._timers.call_later(self._period_s, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._arm()
        self._callback()
