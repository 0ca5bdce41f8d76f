"""Base classes for command handlers and side-channel listener types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, ClassVar

from bot.messaging.types import CommandAccess, CommandResult

if TYPE_CHECKING:
    from bot.messaging.protocol import CommandContext, MessageEvent, ReactionEvent
    from bot.messaging.types import CommandSpec, Invocation, TextCommand


# Listener types: (event) -> Awaitable[None]
MessageListener = Callable[["MessageEvent"], Awaitable[None]]
ReactionListener = Callable[["ReactionEvent"], Awaitable[None]]


class TextCommandHandler(ABC):
    """A prefixed text command answering to one or more aliases."""

    aliases: ClassVar[tuple[str, ...]]
    help: ClassVar[str]
    admin_only: ClassVar[bool] = False

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def execute(self, command: TextCommand, context: CommandContext) -> CommandResult: ...

    def result(self, result: str, **meta: object) -> CommandResult:
        return CommandResult(command_name=self.name, result=result, meta=meta)


class InteractionHandler(ABC):
    """A structured command; resolves its own sub-command path from the invocation."""

    spec: ClassVar[CommandSpec]

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def admin_only(self) -> bool:
        return self.spec.access is CommandAccess.ADMIN

    @abstractmethod
    async def execute(self, invocation: Invocation, context: CommandContext) -> CommandResult: ...

    def result(self, result: str, **meta: object) -> CommandResult:
        return CommandResult(command_name=type(self).__name__, result=result, meta=meta)
