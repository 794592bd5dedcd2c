# convo/core/clock.py
"""
Time sources used by the room layer.

Components take a Clock and a Scheduler instead of calling ``time.time`` or
``loop.call_later`` directly, so tests can move time forward by hand.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Current time in epoch seconds."""
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...


class SystemClock:
    def now(self) -> float:
        return time.time()


class LoopScheduler:
    """Schedules callbacks on the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback, *args)
