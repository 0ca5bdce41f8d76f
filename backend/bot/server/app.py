from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import discord
import structlog
from dotenv import load_dotenv

from bot.commands import build_router
from bot.messaging.protocol import MessageEvent, ReactionEvent
from bot.server.deploy import deploy_commands
from bot.server.discord_adapter import (
    DiscordChannelGateway,
    InteractionCommandContext,
    MessageCommandContext,
    parse_invocation,
)
from bot.server.settings import BotSettings
from bot.services.cards import CardService
from bot.services.chaos_bag import ChaosBag
from bot.services.roles import CallerRoleCheck
from encounter.session.event_service import GroupEventService
from encounter.session.game_service import GameStateService
from encounter.session.repository import FileGameRepository
from encounter.session.timer_manager import TimerManager
from shared.logging import setup_logging
from shared.storage import GuildResourceStorage

if TYPE_CHECKING:
    from bot.messaging.router import CommandRouter
    from encounter.session.protocol import ChannelGateway

logger = structlog.get_logger()


@dataclass
class BotContext:
    """Every service of the bot, built once at start-up."""

    settings: BotSettings
    storage: GuildResourceStorage
    timers: TimerManager
    games: GameStateService
    events: GroupEventService
    cards: CardService
    bag: ChaosBag
    router: CommandRouter
    restored_guilds: set[str] = field(default_factory=set)

    async def restore_guild(self, guild_id: str) -> None:
        """Resume the guild's unfinished game and its event (paused timer).

        on_ready fires again after a reconnect; a guild is only restored once.
        """
        if guild_id in self.restored_guilds:
            return
        self.restored_guilds.add(guild_id)
        await self.games.load_latest_game(guild_id)
        self.events.restore(guild_id)

    def shutdown(self) -> None:
        self.timers.cancel_all()


def create_context(settings: BotSettings, gateway: ChannelGateway) -> BotContext:
    storage = GuildResourceStorage(settings.data_dir)
    # the event service listens to the timers before the announcer does
    timers = TimerManager(tick_seconds=settings.timer_tick_seconds)
    events = GroupEventService(storage, gateway, timers)
    games = GameStateService(lambda guild_id: FileGameRepository(storage, guild_id))
    cards = CardService(storage, url=settings.cards_url)
    bag = ChaosBag()
    router = build_router(
        role_check=CallerRoleCheck(),
        cards=cards,
        bag=bag,
        games=games,
        events=events,
        timers=timers,
        prefix=settings.command_prefix,
        admin_role=settings.admin_role,
    )
    return BotContext(
        settings=settings,
        storage=storage,
        timers=timers,
        games=games,
        events=events,
        cards=cards,
        bag=bag,
        router=router,
    )


class ArkhamBot(discord.Client):
    """Discord client forwarding messages, interactions and reactions to the router."""

    def __init__(self, settings: BotSettings) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.members = True
        super().__init__(intents=intents)
        self.context = create_context(settings, DiscordChannelGateway(self))

    @property
    def settings(self) -> BotSettings:
        return self.context.settings

    async def setup_hook(self) -> None:
        count = await self.context.cards.load()
        logger.info("cards ready", count=count)

    async def on_ready(self) -> None:
        guild_ids = [guild.id for guild in self.guilds]
        test_server_id = self.settings.test_server_id
        if self.settings.is_development and test_server_id:
            guild_ids = [int(test_server_id)]
        await deploy_commands(
            self,
            self.context.router.interaction_handlers,
            guild_ids,
            development=self.settings.is_development,
        )
        for guild in self.guilds:
            await self.context.restore_guild(str(guild.id))
        logger.info("bot ready", user=str(self.user), guilds=len(self.guilds))

    async def on_guild_join(self, guild: discord.Guild) -> None:
        await deploy_commands(
            self,
            self.context.router.interaction_handlers,
            [guild.id],
            development=self.settings.is_development,
        )
        await self.context.restore_guild(str(guild.id))

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or (self.user is not None and message.author.id == self.user.id):
            return
        if not self._is_served(message.guild):
            return

        context = MessageCommandContext(message)
        prefix = self.settings.command_prefix
        if message.content.startswith(prefix):
            result = await self.context.router.dispatch_text(message.content[len(prefix) :], context)
            logger.info("text command handled", **result.model_dump())
        else:
            await self.context.router.handle_message(MessageEvent(content=message.content, context=context))

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.application_command or interaction.data is None:
            return
        if not self._is_served(interaction.guild):
            return
        invocation = parse_invocation(dict(interaction.data))
        result = await self.context.router.dispatch_interaction(invocation, InteractionCommandContext(interaction))
        logger.info("structured command handled", **result.model_dump())

    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        event = self._reaction_event(payload)
        if event is not None:
            await self.context.router.handle_reaction_add(event)

    async def on_raw_reaction_remove(self, payload: discord.RawReactionActionEvent) -> None:
        event = self._reaction_event(payload)
        if event is not None:
            await self.context.router.handle_reaction_remove(event)

    async def close(self) -> None:
        self.context.shutdown()
        await super().close()

    def _is_served(self, guild: discord.Guild | None) -> bool:
        test_server_id = self.settings.test_server_id
        return not (test_server_id and guild is not None and str(guild.id) != test_server_id)

    def _reaction_event(self, payload: discord.RawReactionActionEvent) -> ReactionEvent | None:
        if self.user is not None and payload.user_id == self.user.id:
            return None
        if payload.member is not None and payload.member.bot:
            return None
        return ReactionEvent(
            emoji=str(payload.emoji),
            message_id=str(payload.message_id),
            channel_id=str(payload.channel_id),
            user_id=str(payload.user_id),
            guild_id=str(payload.guild_id) if payload.guild_id else None,
        )


def main() -> None:  # pragma: no cover
    load_dotenv()
    settings = BotSettings()  # ty: ignore[missing-argument]
    setup_logging(settings.log_dir)
    bot = ArkhamBot(settings)
    # logging is already routed through structlog
    bot.run(settings.discord_token, log_handler=None)


if __name__ == "__main__":  # pragma: no cover
    main()
