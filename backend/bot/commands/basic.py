"""Small commands without state: echo, help, chaos bag and the Hastur listener."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, ClassVar

from bot.messaging.handlers import InteractionHandler, TextCommandHandler
from bot.messaging.types import CommandSpec, OptionSpec, OptionType

if TYPE_CHECKING:
    from collections.abc import Callable

    from bot.messaging.protocol import CommandContext, MessageEvent
    from bot.messaging.types import CommandResult, Invocation, TextCommand
    from bot.services.chaos_bag import ChaosBag

HASTUR_PATTERN = re.compile(r"hastur", re.IGNORECASE)
HASTUR_REPLY = "tu as attiré celui dont il ne faut pas prononcer le nom."
HASTUR_EMOJI_NAME = "yellow"
HASTUR_FALLBACK_EMOJI = "🐙"


class EchoCommand(TextCommandHandler):
    aliases: ClassVar[tuple[str, ...]] = ("echo",)
    help: ClassVar[str] = "Te renvoie ton propre message !"

    async def execute(self, command: TextCommand, context: CommandContext) -> CommandResult:
        await context.reply(command.args or "...")
        return self.result(f'echo "{command.args}"')


class HelpCommand(TextCommandHandler):
    """DM the caller the aliases and help of every text command."""

    aliases: ClassVar[tuple[str, ...]] = ("help", "aide")
    help: ClassVar[str] = "Affiche ce message !"

    def __init__(self, entries: Callable[[], list[tuple[tuple[str, ...], str]]], prefix: str) -> None:
        self._entries = entries
        self._prefix = prefix

    def render(self) -> str:
        blocks = []
        for aliases, help_text in self._entries():
            names = ", ".join(f"`{self._prefix}{alias}`" for alias in aliases)
            blocks.append(f"__{names}__\n{help_text}\n")
        return "\n".join(blocks)

    async def execute(self, command: TextCommand, context: CommandContext) -> CommandResult:
        await context.send_direct(self.render())
        return self.result("Aide envoyée")


class BagCommand(TextCommandHandler):
    aliases: ClassVar[tuple[str, ...]] = ("bag",)
    help: ClassVar[str] = "Tire un jeton chaos (Nuit de la Zélatrice Standard)"

    def __init__(self, bag: ChaosBag) -> None:
        self._bag = bag

    async def execute(self, command: TextCommand, context: CommandContext) -> CommandResult:
        token = self._bag.pull_token(context.find_emoji)
        await context.send(token)
        return self.result("Jeton envoyé", token=token)


class EchoInteraction(InteractionHandler):
    spec: ClassVar[CommandSpec] = CommandSpec(
        name="echo",
        description="Retourne ton propre message",
        options=(
            OptionSpec(type=OptionType.STRING, name="message", description="Le message à renvoyer", required=True),
        ),
    )

    async def execute(self, invocation: Invocation, context: CommandContext) -> CommandResult:
        message = invocation.get_string("message")
        if not message:
            await context.reply("Ooops, je n'ai pas le message")
            return self.result("Impossible sans message")
        await context.reply(message, ephemeral=False)
        return self.result(f'echo "{message}"')


class BagInteraction(InteractionHandler):
    spec: ClassVar[CommandSpec] = CommandSpec(
        name="bag",
        description="Tire un jeton chaos (Nuit de la Zélatrice Standard)",
    )

    def __init__(self, bag: ChaosBag) -> None:
        self._bag = bag

    async def execute(self, invocation: Invocation, context: CommandContext) -> CommandResult:
        token = self._bag.pull_token(context.find_emoji)
        await context.reply(token, ephemeral=False)
        return self.result("Jeton envoyé", token=token)


async def hastur_listener(event: MessageEvent) -> None:
    """Whoever says his name gets a warning."""
    if not HASTUR_PATTERN.search(event.content):
        return
    await event.context.reply(HASTUR_REPLY, ephemeral=False)
    await event.context.reply(event.context.find_emoji(HASTUR_EMOJI_NAME) or HASTUR_FALLBACK_EMOJI, ephemeral=False)
