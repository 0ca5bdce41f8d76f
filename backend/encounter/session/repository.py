"""Persistence of encounter records, one JSON collection per guild."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import structlog
from pydantic import TypeAdapter, ValidationError

from encounter.logic.record import GameRecord

if TYPE_CHECKING:
    from shared.storage import ResourceStorage

logger = structlog.get_logger()

GAMES_FILENAME = "blobGames.json"

_RECORDS = TypeAdapter(list[GameRecord])


class GameRepository(ABC):
    """Abstract interface for encounter record persistence.

    Stores every record of a guild, ended or not, keyed by id.
    """

    @abstractmethod
    async def next_id(self) -> int: ...

    @abstractmethod
    async def get(self, game_id: int) -> GameRecord | None: ...

    @abstractmethod
    async def save(self, record: GameRecord) -> None: ...

    @abstractmethod
    async def load(self) -> list[GameRecord]: ...


class FileGameRepository(GameRepository):
    """File-backed repository storing a guild's records in ``blobGames.json``.

    Every save reads the whole collection, upserts the record by id and
    rewrites the file. Saves are serialised by an asyncio.Lock, which is
    only safe for a single bot process.
    """

    def __init__(self, storage: ResourceStorage, guild_id: str) -> None:
        self._storage = storage
        self._guild_id = guild_id
        self._lock = asyncio.Lock()

    async def next_id(self) -> int:
        records = await self.load()
        return max((record.id for record in records), default=0) + 1

    async def get(self, game_id: int) -> GameRecord | None:
        return next((record for record in await self.load() if record.id == game_id), None)

    async def save(self, record: GameRecord) -> None:
        """Upsert the record and rewrite the collection.

        Raises:
            OSError: if the collection cannot be written.

        """
        async with self._lock:
            records = self._read()
            for index, existing in enumerate(records):
                if existing.id == record.id:
                    records[index] = record
                    break
            else:
                records.append(record)
            content = json.dumps([r.to_saved() for r in records], indent=2, ensure_ascii=False)
            try:
                self._storage.write(self._guild_id, GAMES_FILENAME, content)
            except OSError:
                logger.exception("failed to save encounter records", guild_id=self._guild_id, game_id=record.id)
                raise

    async def load(self) -> list[GameRecord]:
        """Return every stored record. Unreadable or malformed data yields an empty list."""
        return self._read()

    def _read(self) -> list[GameRecord]:
        try:
            raw = self._storage.read(self._guild_id, GAMES_FILENAME)
        except OSError:
            logger.exception("failed to read encounter records", guild_id=self._guild_id)
            return []
        if raw is None:
            return []
        try:
            return _RECORDS.validate_json(raw)
        except ValidationError as exc:
            logger.error(
                "malformed encounter records, ignoring stored games",
                guild_id=self._guild_id,
                errors=exc.error_count(),
            )
            return []
