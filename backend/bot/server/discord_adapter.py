"""
Discord implementations of the platform-agnostic interfaces.

Everything that touches discord.py objects lives here: command contexts for
messages and interactions, the channel gateway used by group events, and
the conversion of raw interaction data into an Invocation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import discord
import structlog

from bot.messaging.protocol import CommandContext
from bot.messaging.types import Caller, Invocation, OptionType
from encounter.session.protocol import ChannelGateway

if TYPE_CHECKING:
    from bot.messaging.types import OptionValue

logger = structlog.get_logger()


def caller_from_user(user: discord.User | discord.Member) -> Caller:
    roles = getattr(user, "roles", ())
    return Caller(
        user_id=str(user.id),
        display_name=user.display_name,
        role_names=frozenset(role.name for role in roles),
    )


def _find_emoji(guild: discord.Guild | None, name: str) -> str | None:
    if guild is None:
        return None
    emoji = discord.utils.get(guild.emojis, name=name)
    return str(emoji) if emoji else None


def parse_invocation(data: dict[str, Any]) -> Invocation:
    """Build an Invocation from raw application command data.

    Sub-command groups and sub-commands nest their options one level each.
    """
    group: str | None = None
    subcommand: str | None = None
    options: list[dict[str, Any]] = data.get("options", [])

    if options and options[0].get("type") == OptionType.SUB_COMMAND_GROUP:
        group = options[0]["name"]
        options = options[0].get("options", [])
    if options and options[0].get("type") == OptionType.SUB_COMMAND:
        subcommand = options[0]["name"]
        options = options[0].get("options", [])

    values: dict[str, OptionValue] = {}
    for option in options:
        value = option.get("value")
        if value is None:
            continue
        # channel ids arrive as snowflake strings, keep them as strings
        values[option["name"]] = str(value) if option.get("type") == OptionType.CHANNEL else value
    return Invocation(name=data["name"], group=group, subcommand=subcommand, options=values)


class MessageCommandContext(CommandContext):
    def __init__(self, message: discord.Message) -> None:
        self._message = message
        self._caller = caller_from_user(message.author)

    @property
    def caller(self) -> Caller:
        return self._caller

    @property
    def guild_id(self) -> str | None:
        return str(self._message.guild.id) if self._message.guild else None

    @property
    def channel_id(self) -> str:
        return str(self._message.channel.id)

    async def reply(self, content: str, *, ephemeral: bool = True) -> None:  # noqa: ARG002
        await self._message.reply(content)

    async def send(self, content: str) -> None:
        await self._message.channel.send(content)

    async def send_direct(self, content: str) -> None:
        await self._message.author.send(content)

    def find_emoji(self, name: str) -> str | None:
        return _find_emoji(self._message.guild, name)


class InteractionCommandContext(CommandContext):
    def __init__(self, interaction: discord.Interaction) -> None:
        self._interaction = interaction
        self._caller = caller_from_user(interaction.user)

    @property
    def caller(self) -> Caller:
        return self._caller

    @property
    def guild_id(self) -> str | None:
        return str(self._interaction.guild_id) if self._interaction.guild_id else None

    @property
    def channel_id(self) -> str:
        return str(self._interaction.channel_id)

    async def reply(self, content: str, *, ephemeral: bool = True) -> None:
        if self._interaction.response.is_done():
            await self._interaction.followup.send(content, ephemeral=ephemeral)
        else:
            await self._interaction.response.send_message(content, ephemeral=ephemeral)

    async def send(self, content: str) -> None:
        channel = self._interaction.channel
        if not isinstance(channel, discord.abc.Messageable):
            raise TypeError(f"channel {self.channel_id} does not accept messages")
        await channel.send(content)

    async def send_direct(self, content: str) -> None:
        await self._interaction.user.send(content)

    def find_emoji(self, name: str) -> str | None:
        return _find_emoji(self._interaction.guild, name)


class DiscordChannelGateway(ChannelGateway):
    """Create, delete and post in guild channels through a connected client."""

    def __init__(self, client: discord.Client) -> None:
        self._client = client

    async def create_text_channel(self, guild_id: str, name: str, category_id: str) -> str:
        guild = self._guild(guild_id)
        channel = await guild.create_text_channel(name, category=self._category(guild, category_id))
        return str(channel.id)

    async def create_voice_channel(self, guild_id: str, name: str, category_id: str) -> str:
        guild = self._guild(guild_id)
        channel = await guild.create_voice_channel(name, category=self._category(guild, category_id))
        return str(channel.id)

    async def is_category(self, guild_id: str, channel_id: str) -> bool:
        guild = self._client.get_guild(int(guild_id))
        if guild is None or not channel_id.isdigit():
            return False
        return isinstance(guild.get_channel(int(channel_id)), discord.CategoryChannel)

    async def delete_channel(self, guild_id: str, channel_id: str) -> None:
        channel = self._guild(guild_id).get_channel(int(channel_id))
        if channel is None:
            logger.warning("channel already gone", guild_id=guild_id, channel_id=channel_id)
            return
        await channel.delete()

    async def send(self, channel_id: str, content: str) -> None:
        channel = self._client.get_channel(int(channel_id)) or await self._client.fetch_channel(int(channel_id))
        if not isinstance(channel, discord.abc.Messageable):
            raise TypeError(f"channel {channel_id} does not accept messages")
        await channel.send(content)

    def _guild(self, guild_id: str) -> discord.Guild:
        guild = self._client.get_guild(int(guild_id))
        if guild is None:
            raise LookupError(f"unknown guild {guild_id}")
        return guild

    def _category(self, guild: discord.Guild, category_id: str) -> discord.CategoryChannel:
        channel = guild.get_channel(int(category_id))
        if not isinstance(channel, discord.CategoryChannel):
            raise TypeError(f"channel {category_id} is not a category")
        return channel
