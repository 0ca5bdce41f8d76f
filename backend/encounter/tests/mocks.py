"""In-memory collaborators for encounter session tests."""

from encounter.session.protocol import ChannelGateway


class MockChannelGateway(ChannelGateway):
    """Records created channels and sent messages; can be told to fail per channel."""

    def __init__(self) -> None:
        self.channels: dict[str, str] = {}  # channel_id -> name
        self.deleted: list[str] = []
        self.sent: list[tuple[str, str]] = []
        self.failing_channels: set[str] = set()
        self.fail_on_create_after: int | None = None
        self.not_categories: set[str] = set()
        self._next_id = 100

    async def create_text_channel(self, guild_id: str, name: str, category_id: str) -> str:
        return self._create(name)

    async def create_voice_channel(self, guild_id: str, name: str, category_id: str) -> str:
        return self._create(name)

    async def is_category(self, guild_id: str, channel_id: str) -> bool:
        return channel_id not in self.not_categories

    async def delete_channel(self, guild_id: str, channel_id: str) -> None:
        if channel_id in self.failing_channels:
            raise OSError(f"cannot delete {channel_id}")
        self.channels.pop(channel_id, None)
        self.deleted.append(channel_id)

    async def send(self, channel_id: str, content: str) -> None:
        if channel_id in self.failing_channels:
            raise OSError(f"cannot send to {channel_id}")
        self.sent.append((channel_id, content))

    def messages_for(self, channel_id: str) -> list[str]:
        return [content for target, content in self.sent if target == channel_id]

    def _create(self, name: str) -> str:
        if self.fail_on_create_after is not None and len(self.channels) >= self.fail_on_create_after:
            raise OSError("channel quota reached")
        channel_id = str(self._next_id)
        self._next_id += 1
        self.channels[channel_id] = name
        return channel_id
