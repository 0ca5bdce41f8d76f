"""
Countdown timer for group events.

The timer counts down in whole minutes. A background task calls ``tick()``
once per tick interval while the timer is running; pausing cancels that
task and freezes the remaining time. Every transition is published to the
registered listeners as ``(scope, event, remaining_minutes)``. The
``ended`` event carries ``None`` as remaining value.

Announcement cadence is not decided here: listeners receive every tick and
choose what to broadcast.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from encounter.logic.enums import TimerEvent, TimerState
from encounter.logic.exceptions import TimerStateError

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = structlog.get_logger()

DEFAULT_TICK_SECONDS = 60.0

# Listener type: (scope, event, remaining_minutes) -> Awaitable[None]
TimerListener = Callable[[str, TimerEvent, int | None], Awaitable[None]]


async def notify_listeners(
    listeners: Iterable[TimerListener],
    scope: str,
    event: TimerEvent,
    remaining: int | None,
) -> None:
    """Call every listener in order. A failing listener does not stop the others."""
    for listener in list(listeners):
        try:
            await listener(scope, event, remaining)
        except Exception:
            logger.exception("timer listener failed", scope=scope, timer_event=event)


class EventTimer:
    """
    Minute countdown with start/pause/resume/tick/ended transitions.

    States: stopped -> running <-> paused, running -> ended.
    """

    def __init__(self, scope: str, *, tick_seconds: float = DEFAULT_TICK_SECONDS) -> None:
        self._scope = scope
        self._tick_seconds = tick_seconds
        self._state = TimerState.STOPPED
        self._total_minutes: int | None = None
        self._remaining_minutes: int | None = None
        self._listeners: list[TimerListener] = []
        self._task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def restore(cls, scope: str, remaining_minutes: int, *, tick_seconds: float = DEFAULT_TICK_SECONDS) -> EventTimer:
        """Rebuild a paused timer from a persisted remaining time."""
        if remaining_minutes < 1:
            raise TimerStateError(f"cannot restore a timer with {remaining_minutes} minute(s) remaining")
        timer = cls(scope, tick_seconds=tick_seconds)
        timer._total_minutes = remaining_minutes
        timer._remaining_minutes = remaining_minutes
        timer._state = TimerState.PAUSED
        return timer

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def total_minutes(self) -> int | None:
        return self._total_minutes

    @property
    def remaining_minutes(self) -> int | None:
        return self._remaining_minutes

    @property
    def is_running(self) -> bool:
        return self._state is TimerState.RUNNING

    def add_listener(self, listener: TimerListener) -> Callable[[], None]:
        """Register a listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def start(self, minutes: int) -> None:
        if minutes < 1:
            raise TimerStateError(f"timer needs at least one minute, got {minutes}")
        async with self._lock:
            if self._state is not TimerState.STOPPED:
                raise TimerStateError(f"cannot start a timer that is {self._state}")
            self._total_minutes = minutes
            self._remaining_minutes = minutes
            self._state = TimerState.RUNNING
            self._schedule()
        logger.info("timer started", scope=self._scope, minutes=minutes)
        await notify_listeners(self._listeners, self._scope, TimerEvent.START, minutes)

    async def pause(self) -> None:
        async with self._lock:
            if self._state is not TimerState.RUNNING:
                raise TimerStateError(f"cannot pause a timer that is {self._state}")
            self._state = TimerState.PAUSED
            self._unschedule()
            remaining = self._remaining_minutes
        logger.info("timer paused", scope=self._scope, remaining=remaining)
        await notify_listeners(self._listeners, self._scope, TimerEvent.PAUSE, remaining)

    async def resume(self) -> None:
        async with self._lock:
            if self._state is not TimerState.PAUSED:
                raise TimerStateError(f"cannot resume a timer that is {self._state}")
            if not self._remaining_minutes:
                raise TimerStateError("timer was never initialised with a number of minutes")
            self._state = TimerState.RUNNING
            self._schedule()
            remaining = self._remaining_minutes
        logger.info("timer resumed", scope=self._scope, remaining=remaining)
        await notify_listeners(self._listeners, self._scope, TimerEvent.RESUME, remaining)

    async def tick(self) -> None:
        """Decrement the remaining time by one minute. Ignored unless running."""
        events: list[tuple[TimerEvent, int | None]] = []
        async with self._lock:
            if self._state is not TimerState.RUNNING or self._remaining_minutes is None:
                return
            self._remaining_minutes -= 1
            events.append((TimerEvent.TICK, self._remaining_minutes))
            if self._remaining_minutes <= 0:
                self._remaining_minutes = 0
                self._state = TimerState.ENDED
                # the runner task exits on its own once it sees the ENDED state
                self._task = None
                events.append((TimerEvent.ENDED, None))
        if self._state is TimerState.ENDED:
            logger.info("timer ended", scope=self._scope)
        for event, remaining in events:
            await notify_listeners(self._listeners, self._scope, event, remaining)

    def cancel(self) -> None:
        """Stop scheduled ticks without emitting anything (shutdown)."""
        self._unschedule()

    def _schedule(self) -> None:
        self._unschedule()
        self._task = asyncio.create_task(self._run())

    def _unschedule(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        try:
            while self._state is TimerState.RUNNING:
                await asyncio.sleep(self._tick_seconds)
                # shielded so a pause landing mid-tick does not cut listener delivery short
                await asyncio.shield(self.tick())
        except asyncio.CancelledError:
            pass
