"""Abstract command context passed to handlers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from bot.messaging.types import Caller


class CommandContext(ABC):
    """
    Abstract interface for the message or interaction that triggered a command.

    This abstraction allows handler logic to be tested without a live chat
    platform connection.
    """

    @property
    @abstractmethod
    def caller(self) -> Caller: ...

    @property
    @abstractmethod
    def guild_id(self) -> str | None:
        """Guild the command came from, None in direct messages."""
        ...

    @property
    @abstractmethod
    def channel_id(self) -> str: ...

    @abstractmethod
    async def reply(self, content: str, *, ephemeral: bool = True) -> None:
        """
        Answer the triggering message or interaction.

        ``ephemeral`` is honoured for interactions only.
        """
        ...

    @abstractmethod
    async def send(self, content: str) -> None:
        """Post a plain message in the originating channel."""
        ...

    @abstractmethod
    async def send_direct(self, content: str) -> None:
        """Send a private message to the caller."""
        ...

    def find_emoji(self, name: str) -> str | None:
        """Render the guild's custom emoji with that name, if any."""
        return None


@dataclass(frozen=True)
class MessageEvent:
    """A plain channel message, as seen by side-channel listeners."""

    content: str
    context: CommandContext


@dataclass(frozen=True)
class ReactionEvent:
    """A reaction added to or removed from a message."""

    emoji: str
    message_id: str
    channel_id: str
    user_id: str
    guild_id: str | None = None


class RoleCheck(ABC):
    @abstractmethod
    def caller_has_role(self, caller: Caller, role_name: str) -> bool: ...
