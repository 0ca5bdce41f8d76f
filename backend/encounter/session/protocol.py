"""Abstract channel gateway used by the group event service."""

from abc import ABC, abstractmethod


class ChannelGateway(ABC):
    """
    Abstract interface to the chat platform's channels.

    Lets the event service create, delete and post to channels without a
    live platform connection (tests use an in-memory implementation).
    """

    @abstractmethod
    async def create_text_channel(self, guild_id: str, name: str, category_id: str) -> str:
        """Create a text channel under the category and return its id."""
        ...

    @abstractmethod
    async def create_voice_channel(self, guild_id: str, name: str, category_id: str) -> str:
        """Create a voice channel under the category and return its id."""
        ...

    @abstractmethod
    async def is_category(self, guild_id: str, channel_id: str) -> bool:
        """Whether the channel is a category new channels can be created under."""
        ...

    @abstractmethod
    async def delete_channel(self, guild_id: str, channel_id: str) -> None: ...

    @abstractmethod
    async def send(self, channel_id: str, content: str) -> None:
        """Post a message to a text channel."""
        ...
