"""
Group event management: channels, broadcast, countdown timer and group stats.

A group event splits the players of a guild into numbered groups. Each
group gets a text channel and a voice channel under a category. The event
state is persisted in the guild's ``event.json`` after every change, so a
restarted bot finds its channels back and restores the countdown as a
paused timer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from encounter.logic.enums import TimerEvent
from encounter.logic.exceptions import EventStateError
from encounter.session.broadcast import broadcast_to_channels
from encounter.session.models import EventState, GroupStats

if TYPE_CHECKING:
    from collections.abc import Iterable

    from encounter.logic.enums import GroupStat
    from encounter.session.protocol import ChannelGateway
    from encounter.session.timer_manager import TimerManager
    from shared.storage import ResourceStorage

logger = structlog.get_logger()

EVENT_FILENAME = "event.json"


def group_channel_name(group_number: int) -> str:
    return f"groupe-{group_number}"


def group_voice_channel_name(group_number: int) -> str:
    return f"voice-groupe-{group_number}"


class GroupEventService:
    def __init__(self, storage: ResourceStorage, gateway: ChannelGateway, timers: TimerManager) -> None:
        self._storage = storage
        self._gateway = gateway
        self._timers = timers
        self._states: dict[str, EventState] = {}
        self._timers.add_listener(self._on_timer_event)

    def restore(self, guild_id: str) -> EventState:
        """Reload a guild's event from storage, restoring a paused timer if time was left."""
        state = self._read(guild_id)
        self._states[guild_id] = state
        if state.running and state.minutes_remaining:
            self._timers.restore_timer(guild_id, state.minutes_remaining)
            logger.info("restored event timer", guild_id=guild_id, minutes_remaining=state.minutes_remaining)
        return state

    def is_running(self, guild_id: str) -> bool:
        return self._state(guild_id).running

    async def is_category(self, guild_id: str, channel_id: str) -> bool:
        return await self._gateway.is_category(guild_id, channel_id)

    def is_group_channel(self, guild_id: str, channel_id: str) -> bool:
        state = self._state(guild_id)
        return state.running and channel_id in state.text_channel_ids

    def group_name(self, guild_id: str, channel_id: str) -> str | None:
        """Name of the group owning a text channel, like ``groupe-2``."""
        channel_ids = self._state(guild_id).text_channel_ids
        if channel_id not in channel_ids:
            return None
        return group_channel_name(channel_ids.index(channel_id) + 1)

    def get_state(self, guild_id: str) -> EventState:
        return self._state(guild_id).model_copy(deep=True)

    def get_group_stats(self, guild_id: str) -> dict[str, GroupStats]:
        return {channel_id: stats.model_copy() for channel_id, stats in self._state(guild_id).group_stats.items()}

    async def start_event(self, guild_id: str, category_id: str, number_of_groups: int) -> EventState:
        """Create one text and one voice channel per group under the category.

        Raises:
            EventStateError: if an event is already running or no group is requested.

        """
        if self.is_running(guild_id):
            raise EventStateError.already_running()
        if number_of_groups < 1:
            raise EventStateError(f"an event needs at least one group, got {number_of_groups}")

        text_channel_ids: list[str] = []
        voice_channel_ids: list[str] = []
        try:
            for group_number in range(1, number_of_groups + 1):
                text_channel_ids.append(
                    await self._gateway.create_text_channel(guild_id, group_channel_name(group_number), category_id)
                )
                voice_channel_ids.append(
                    await self._gateway.create_voice_channel(
                        guild_id, group_voice_channel_name(group_number), category_id
                    )
                )
        except Exception:
            logger.exception("failed to create event channels", guild_id=guild_id)
            await self._delete_channels(guild_id, [*text_channel_ids, *voice_channel_ids])
            raise

        state = EventState(
            running=True,
            text_channel_ids=text_channel_ids,
            voice_channel_ids=voice_channel_ids,
            group_stats={channel_id: GroupStats() for channel_id in text_channel_ids},
        )
        self._states[guild_id] = state
        self._save(guild_id)
        logger.info("event started", guild_id=guild_id, groups=number_of_groups)
        return state.model_copy(deep=True)

    async def end_event(self, guild_id: str) -> EventState:
        """Delete the event channels, drop the timer and reset the state.

        Returns the state as it was before ending.
        """
        state = self._require_running(guild_id)
        self._timers.remove_timer(guild_id)
        await self._delete_channels(guild_id, [*state.text_channel_ids, *state.voice_channel_ids])
        self._states[guild_id] = EventState()
        self._save(guild_id)
        logger.info("event ended", guild_id=guild_id)
        return state

    async def broadcast(self, guild_id: str, content: str, exclude: Iterable[str] = ()) -> list[str]:
        """Send a message to every group channel except the excluded ones."""
        state = self._require_running(guild_id)
        return await broadcast_to_channels(self._gateway, state.text_channel_ids, content, exclude)

    async def send(self, channel_id: str, content: str) -> None:
        await self._gateway.send(channel_id, content)

    def is_timer_running(self, guild_id: str) -> bool:
        return self._timers.is_running(guild_id)

    def get_minutes_remaining(self, guild_id: str) -> int | None:
        return self._timers.get_minutes_remaining(guild_id)

    async def start_timer(self, guild_id: str, minutes: int) -> None:
        self._require_running(guild_id)
        await self._timers.start_timer(guild_id, minutes)

    async def pause_timer(self, guild_id: str) -> None:
        self._require_running(guild_id)
        await self._timers.pause_timer(guild_id)

    async def resume_timer(self, guild_id: str) -> None:
        self._require_running(guild_id)
        await self._timers.resume_timer(guild_id)

    def record_stat(self, guild_id: str, channel_id: str, stat: GroupStat, amount: int) -> None:
        """Add amount to a group's stat. Channels outside the event are ignored."""
        state = self._require_running(guild_id)
        stats = state.group_stats.get(channel_id)
        if stats is None:
            return
        stats.add(stat, amount)
        self._save(guild_id)

    def reset_group_stats(self, guild_id: str) -> None:
        """Zero every group's stats (a new encounter starts)."""
        state = self._require_running(guild_id)
        state.group_stats = {channel_id: GroupStats() for channel_id in state.text_channel_ids}
        self._save(guild_id)

    async def _on_timer_event(self, guild_id: str, event: TimerEvent, remaining: int | None) -> None:
        state = self._states.get(guild_id)
        if state is None or not state.running:
            return
        state.minutes_remaining = None if event is TimerEvent.ENDED else remaining
        self._save(guild_id)

    async def _delete_channels(self, guild_id: str, channel_ids: list[str]) -> None:
        for channel_id in channel_ids:
            try:
                await self._gateway.delete_channel(guild_id, channel_id)
            except Exception:
                logger.exception("failed to delete event channel", guild_id=guild_id, channel_id=channel_id)

    def _require_running(self, guild_id: str) -> EventState:
        state = self._state(guild_id)
        if not state.running:
            raise EventStateError.no_event()
        return state

    def _state(self, guild_id: str) -> EventState:
        state = self._states.get(guild_id)
        if state is None:
            state = self._states[guild_id] = self._read(guild_id)
        return state

    def _read(self, guild_id: str) -> EventState:
        try:
            raw = self._storage.read(guild_id, EVENT_FILENAME)
        except OSError:
            logger.exception("failed to read event state", guild_id=guild_id)
            return EventState()
        if raw is None:
            return EventState()
        try:
            return EventState.model_validate_json(raw)
        except ValidationError as exc:
            logger.error("malformed event state, starting without event", guild_id=guild_id, errors=exc.error_count())
            return EventState()

    def _save(self, guild_id: str) -> None:
        try:
            self._storage.write(guild_id, EVENT_FILENAME, self._states[guild_id].to_saved())
        except OSError:
            logger.exception("failed to save event state", guild_id=guild_id)
