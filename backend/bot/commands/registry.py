from __future__ import annotations

from typing import TYPE_CHECKING

from bot.commands.basic import (
    BagCommand,
    BagInteraction,
    EchoCommand,
    EchoInteraction,
    HelpCommand,
    hastur_listener,
)
from bot.commands.blob import AdminBlobCommand, BlobCommand
from bot.commands.cards import CardCommand, RefreshCommand
from bot.commands.event import EventCommand, TimerAnnouncer
from bot.messaging.router import CommandRouter

if TYPE_CHECKING:
    from bot.messaging.protocol import RoleCheck
    from bot.services.cards import CardService
    from bot.services.chaos_bag import ChaosBag
    from encounter.session.event_service import GroupEventService
    from encounter.session.game_service import GameStateService
    from encounter.session.timer_manager import TimerManager


def build_router(
    *,
    role_check: RoleCheck,
    cards: CardService,
    bag: ChaosBag,
    games: GameStateService,
    events: GroupEventService,
    timers: TimerManager,
    prefix: str = "!",
    admin_role: str | None = None,
) -> CommandRouter:
    """Register every command and listener of the bot.

    The timer announcer is registered on the timer manager here, after the
    event service, so the remaining time is saved before it is announced.
    """
    router = CommandRouter(role_check, admin_role=admin_role)

    router.register_text(HelpCommand(router.help_entries, prefix))
    router.register_text(EchoCommand())
    router.register_text(BagCommand(bag))
    router.register_text(CardCommand(cards))
    router.register_text(RefreshCommand(cards))

    router.register_interaction(EchoInteraction())
    router.register_interaction(BagInteraction(bag))
    router.register_interaction(EventCommand(events))
    router.register_interaction(BlobCommand(games, events))
    router.register_interaction(AdminBlobCommand(games, events))

    router.add_message_listener(hastur_listener)
    timers.add_listener(TimerAnnouncer(events))
    return router
