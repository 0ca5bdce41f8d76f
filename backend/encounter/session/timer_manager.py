"""Manage the group event countdown timer of each guild."""

from __future__ import annotations

from typing import TYPE_CHECKING

from encounter.logic.enums import TimerState
from encounter.logic.exceptions import TimerStateError
from encounter.logic.timer import DEFAULT_TICK_SECONDS, EventTimer, notify_listeners

if TYPE_CHECKING:
    from collections.abc import Callable

    from encounter.logic.enums import TimerEvent
    from encounter.logic.timer import TimerListener


class TimerManager:
    """Manage EventTimer lifecycle for all guilds.

    Listeners registered here receive the events of every guild's timer,
    in registration order, with per-listener failure isolation.
    """

    def __init__(self, *, tick_seconds: float = DEFAULT_TICK_SECONDS) -> None:
        self._timers: dict[str, EventTimer] = {}
        self._listeners: list[TimerListener] = []
        self._tick_seconds = tick_seconds

    def add_listener(self, listener: TimerListener) -> Callable[[], None]:
        """Register a listener for all guilds. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def get_timer(self, guild_id: str) -> EventTimer | None:
        return self._timers.get(guild_id)

    def is_running(self, guild_id: str) -> bool:
        timer = self._timers.get(guild_id)
        return timer is not None and timer.is_running

    def get_minutes_remaining(self, guild_id: str) -> int | None:
        timer = self._timers.get(guild_id)
        return timer.remaining_minutes if timer else None

    async def start_timer(self, guild_id: str, minutes: int) -> EventTimer:
        """Start a fresh countdown, replacing a paused or ended one."""
        existing = self._timers.get(guild_id)
        if existing is not None and existing.is_running:
            raise TimerStateError("a timer is already running")
        if minutes < 1:
            raise TimerStateError(f"a timer needs at least one minute, got {minutes}")
        timer = self._create(guild_id)
        if existing is not None:
            existing.cancel()
        self._timers[guild_id] = timer
        await timer.start(minutes)
        return timer

    async def pause_timer(self, guild_id: str) -> None:
        timer = self._timers.get(guild_id)
        if timer is None or timer.state is not TimerState.RUNNING:
            raise TimerStateError("no timer is running")
        await timer.pause()

    async def resume_timer(self, guild_id: str) -> None:
        timer = self._timers.get(guild_id)
        if timer is None:
            raise TimerStateError("the timer was never started")
        await timer.resume()

    def restore_timer(self, guild_id: str, minutes_remaining: int) -> EventTimer:
        """Recreate a paused timer after a restart."""
        timer = EventTimer.restore(guild_id, minutes_remaining, tick_seconds=self._tick_seconds)
        timer.add_listener(self._dispatch)
        self.remove_timer(guild_id)
        self._timers[guild_id] = timer
        return timer

    def remove_timer(self, guild_id: str) -> EventTimer | None:
        """Cancel and forget a guild's timer."""
        timer = self._timers.pop(guild_id, None)
        if timer is not None:
            timer.cancel()
        return timer

    def cancel_all(self) -> None:
        """Cancel every scheduled tick (shutdown)."""
        for timer in self._timers.values():
            timer.cancel()

    def _create(self, guild_id: str) -> EventTimer:
        timer = EventTimer(guild_id, tick_seconds=self._tick_seconds)
        timer.add_listener(self._dispatch)
        return timer

    async def _dispatch(self, guild_id: str, event: TimerEvent, remaining: int | None) -> None:
        await notify_listeners(self._listeners, guild_id, event, remaining)
