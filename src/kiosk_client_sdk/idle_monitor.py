from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from .clock import Clock, SystemClock

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0

TimeoutCallback = Callable[[], None]
TickListener = Callable[[int], None]


class TickHandle(Protocol):
    def cancel(self) -> None: ...


class TickScheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TickHandle: ...


class AsyncioTickScheduler:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TickHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


@dataclass(frozen=True)
class IdleState:
    deadline: float | None = None
    armed: bool = False

    def is_expired(self, now: float) -> bool:
        return self.armed and self.deadline is not None and now >= self.deadline

    def remaining_ms(self, now: float) -> int:
        if not self.armed or self.deadline is None:
            return 0
        return max(0, int(round((self.deadline - now) * 1000)))


class IdleMonitor:
    """Countdown that sends an unattended kiosk back to its home screen.

    Expiry is decided by :meth:`IdleState.is_expired` against the injected
    clock; the scheduler only decides when we look. Every arm gets a new
    generation, and a wake-up belonging to an older generation is ignored,
    so a reset or disarm always beats a timeout that is already queued.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        scheduler: TickScheduler | None = None,
        *,
        enabled: bool = True,
        default_timeout_ms: int | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._scheduler = scheduler
        self._enabled = enabled
        self._default_timeout_ms = default_timeout_ms
        self._state = IdleState()
        self._timeout_ms: int | None = None
        self._on_timeout: TimeoutCallback | None = None
        self._tracking = False
        self._generation = 0
        self._handle: TickHandle | None = None
        self._tick_listeners: list[TickListener] = []

    @property
    def state(self) -> IdleState:
        return self._state

    @property
    def armed(self) -> bool:
        return self._state.armed

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def remaining_ms(self) -> int:
        return self._state.remaining_ms(self._clock.monotonic())

    @property
    def remaining_seconds(self) -> int:
        return math.ceil(self.remaining_ms / 1000)

    def on_tick(self, listener: TickListener) -> Callable[[], None]:
        self._tick_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._tick_listeners:
                self._tick_listeners.remove(listener)

        return unsubscribe

    def arm(self, timeout_ms: int | None = None, on_timeout: TimeoutCallback | None = None) -> None:
        timeout = timeout_ms if timeout_ms is not None else self._default_timeout_ms
        if timeout is None or timeout <= 0:
            raise ValueError(f"Idle timeout must be a positive number of milliseconds, got {timeout!r}")
        callback = on_timeout or self._on_timeout
        if callback is None:
            raise ValueError("An on_timeout callback is required to arm the idle monitor")
        self._timeout_ms = int(timeout)
        self._on_timeout = callback
        self._tracking = True
        if not self._enabled:
            logger.debug("idle_arm_ignored_disabled")
            self._stop()
            return
        self._start()

    def reset(self) -> None:
        if not self._enabled or not self._tracking or self._on_timeout is None:
            return
        self._start()

    def disarm(self) -> None:
        self._tracking = False
        self._stop()

    def set_enabled(self, enabled: bool) -> None:
        if enabled == self._enabled:
            return
        self._enabled = enabled
        if not enabled:
            self._stop()
            logger.debug("idle_tracking_disabled")
        elif self._tracking and self._on_timeout is not None:
            self._start()

    def poll(self) -> bool:
        """Check the deadline now; returns True if the timeout fired."""
        return self._check(self._generation)

    def _start(self) -> None:
        self._cancel_handle()
        self._generation += 1
        timeout_ms = self._timeout_ms or 0
        self._state = IdleState(
            deadline=self._clock.monotonic() + timeout_ms / 1000,
            armed=True,
        )
        self._notify_tick()
        self._schedule(self._generation)

    def _stop(self) -> None:
        self._generation += 1
        self._cancel_handle()
        self._state = IdleState()

    def _check(self, generation: int) -> bool:
        if generation != self._generation or not self._enabled:
            return False
        if not self._state.armed:
            return False
        if not self._state.is_expired(self._clock.monotonic()):
            self._notify_tick()
            return False

        callback = self._on_timeout
        self._stop()
        self._notify_tick()
        logger.info("idle_timeout_fired")
        if callback is not None:
            callback()
        return True

    def _schedule(self, generation: int) -> None:
        if self._scheduler is None or self._state.deadline is None:
            return
        remaining = self._state.deadline - self._clock.monotonic()
        delay = min(TICK_SECONDS, max(0.0, remaining))
        self._handle = self._scheduler.call_later(delay, lambda: self._wake(generation))

    def _wake(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._handle = None
        if not self._check(generation) and generation == self._generation and self._state.armed:
            self._schedule(generation)

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _notify_tick(self) -> None:
        seconds = self.remaining_seconds
        for listener in list(self._tick_listeners):
            listener(seconds)
