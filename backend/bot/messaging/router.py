from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from bot.messaging.types import CommandResult, ConfigurationError, TextCommand

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bot.messaging.handlers import (
        InteractionHandler,
        MessageListener,
        ReactionListener,
        TextCommandHandler,
    )
    from bot.messaging.protocol import CommandContext, MessageEvent, ReactionEvent, RoleCheck
    from bot.messaging.types import Caller, Invocation

logger = structlog.get_logger()

ROUTER_NAME = "CommandRouter"

UNKNOWN_COMMAND_REPLY = "Désolé, je ne connais pas de commande `{name}`"
NOT_AUTHORIZED_REPLY = "Désolé, cette commande est réservée aux administrateurs"
UNEXPECTED_ERROR_REPLY = "Oups, quelque chose s'est mal passé. L'erreur a été notée."


def parse_text_command(content: str) -> TextCommand:
    """Split prefix-less content into its first token (the alias) and the rest."""
    parts = content.strip().split(maxsplit=1)
    if not parts:
        return TextCommand(alias="")
    return TextCommand(alias=parts[0], args=parts[1] if len(parts) > 1 else "")


class CommandRouter:
    """
    Registry of command handlers and dispatcher for both command surfaces.

    Text commands are looked up by case-insensitive alias, structured
    commands by exact name. Admin-only handlers are gated on both surfaces
    by the configured admin role. Plain messages and reactions are fanned
    out to every registered listener.

    This class holds no platform objects and can be tested without a chat
    connection.
    """

    def __init__(self, role_check: RoleCheck, *, admin_role: str | None = None) -> None:
        self._role_check = role_check
        self._admin_role = admin_role
        self._text_handlers: dict[str, TextCommandHandler] = {}
        self._interaction_handlers: dict[str, InteractionHandler] = {}
        self._message_listeners: list[MessageListener] = []
        self._reaction_add_listeners: list[ReactionListener] = []
        self._reaction_remove_listeners: list[ReactionListener] = []

    def register_text(self, handler: TextCommandHandler) -> None:
        """Register a handler under all its aliases.

        Raises:
            ConfigurationError: if the handler has no alias or an alias is taken.

        """
        if not handler.aliases:
            raise ConfigurationError(f"{handler.name} declares no alias")
        aliases = [alias.lower() for alias in handler.aliases]
        for alias in aliases:
            existing = self._text_handlers.get(alias)
            if existing is not None:
                raise ConfigurationError(
                    f'cannot register alias "{alias}" for {handler.name}, already registered by {existing.name}'
                )
        for alias in aliases:
            self._text_handlers[alias] = handler

    def register_interaction(self, handler: InteractionHandler) -> None:
        if handler.name in self._interaction_handlers:
            raise ConfigurationError(f'structured command "{handler.name}" is already registered')
        self._interaction_handlers[handler.name] = handler

    def add_message_listener(self, listener: MessageListener) -> None:
        self._message_listeners.append(listener)

    def add_reaction_add_listener(self, listener: ReactionListener) -> None:
        self._reaction_add_listeners.append(listener)

    def add_reaction_remove_listener(self, listener: ReactionListener) -> None:
        self._reaction_remove_listeners.append(listener)

    @property
    def text_handlers(self) -> list[TextCommandHandler]:
        """Registered text handlers, once each, in registration order."""
        return list(dict.fromkeys(self._text_handlers.values()))

    @property
    def interaction_handlers(self) -> list[InteractionHandler]:
        return list(self._interaction_handlers.values())

    def help_entries(self) -> list[tuple[tuple[str, ...], str]]:
        """(aliases, help) for every text handler, for the help command."""
        return [(handler.aliases, handler.help) for handler in self.text_handlers]

    async def dispatch_text(self, content: str, context: CommandContext) -> CommandResult:
        """Dispatch a text command whose prefix has already been removed."""
        command = parse_text_command(content)
        handler = self._text_handlers.get(command.alias.lower())
        if handler is None:
            await context.reply(UNKNOWN_COMMAND_REPLY.format(name=command.alias))
            return CommandResult(command_name=ROUTER_NAME, result=f"Pas de commande pour {command.alias}")

        if handler.admin_only and not self._is_admin(context.caller):
            await context.reply(NOT_AUTHORIZED_REPLY)
            return CommandResult(command_name=handler.name, result="Non autorisé", meta={"alias": command.alias})

        structlog.contextvars.bind_contextvars(command=handler.name, guild_id=context.guild_id)
        try:
            return await handler.execute(command, context)
        except ConfigurationError:
            raise
        except Exception:
            logger.exception("text command failed", alias=command.alias)
            await self._reply_error(context)
            return CommandResult(command_name=handler.name, result="Erreur inattendue")
        finally:
            structlog.contextvars.unbind_contextvars("command", "guild_id")

    async def dispatch_interaction(self, invocation: Invocation, context: CommandContext) -> CommandResult:
        handler = self._interaction_handlers.get(invocation.name)
        if handler is None:
            await context.reply(UNKNOWN_COMMAND_REPLY.format(name=invocation.name))
            return CommandResult(command_name=ROUTER_NAME, result=f"Pas de commande pour {invocation.name}")

        if handler.admin_only and not self._is_admin(context.caller):
            await context.reply(NOT_AUTHORIZED_REPLY)
            return CommandResult(command_name=handler.name, result="Non autorisé", meta={"path": invocation.path})

        structlog.contextvars.bind_contextvars(command=invocation.path, guild_id=context.guild_id)
        try:
            return await handler.execute(invocation, context)
        except ConfigurationError:
            raise
        except Exception:
            logger.exception("structured command failed")
            await self._reply_error(context)
            return CommandResult(command_name=handler.name, result="Erreur inattendue")
        finally:
            structlog.contextvars.unbind_contextvars("command", "guild_id")

    async def handle_message(self, event: MessageEvent) -> None:
        await self._fan_out("message", self._message_listeners, event)

    async def handle_reaction_add(self, event: ReactionEvent) -> None:
        await self._fan_out("reaction_add", self._reaction_add_listeners, event)

    async def handle_reaction_remove(self, event: ReactionEvent) -> None:
        await self._fan_out("reaction_remove", self._reaction_remove_listeners, event)

    async def _reply_error(self, context: CommandContext) -> None:
        try:
            await context.reply(UNEXPECTED_ERROR_REPLY)
        except Exception:
            logger.exception("error reply failed")

    def _is_admin(self, caller: Caller) -> bool:
        if not self._admin_role:
            raise ConfigurationError("an admin-only command was called but no admin role is configured")
        return self._role_check.caller_has_role(caller, self._admin_role)

    async def _fan_out(
        self,
        kind: str,
        listeners: Sequence[MessageListener | ReactionListener],
        event: MessageEvent | ReactionEvent,
    ) -> None:
        results = await asyncio.gather(*(listener(event) for listener in list(listeners)), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("listener failed", listener_kind=kind, exc_info=result)
