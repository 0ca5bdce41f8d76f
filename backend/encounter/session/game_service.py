"""
Per-guild lifecycle of the Devourer of All Things encounter.

The service owns the current GameRecord of every guild. Each mutation
replaces the record with an updated copy, then persists it through the
guild's repository. Mutations on a guild without a running game return
None instead of raising.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from encounter.logic import record as rules
from encounter.logic.exceptions import GameAlreadyRunningError
from encounter.logic.record import POSSIBLE_STORIES, GameRecord

if TYPE_CHECKING:
    from encounter.logic.enums import Story
    from encounter.session.repository import GameRepository

logger = structlog.get_logger()

# Factory type: guild_id -> GameRepository
RepositoryFactory = Callable[[str], "GameRepository"]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class GameStateService:
    """Single source of truth for the running encounter of each guild."""

    def __init__(
        self,
        repository_factory: RepositoryFactory,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repository_factory = repository_factory
        self._repositories: dict[str, GameRepository] = {}
        self._games: dict[str, GameRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._rng = rng or random.Random()  # noqa: S311
        self._clock = clock

    def is_game_running(self, guild_id: str) -> bool:
        game = self._games.get(guild_id)
        return game is not None and not game.is_ended

    def get_game(self, guild_id: str) -> GameRecord | None:
        return self._games.get(guild_id)

    def get_remaining_health(self, guild_id: str) -> int | None:
        game = self._games.get(guild_id)
        return game.remaining_health if game else None

    def get_total_health(self, guild_id: str) -> int | None:
        game = self._games.get(guild_id)
        return game.total_health if game else None

    def get_clues_placed(self, guild_id: str) -> int | None:
        game = self._games.get(guild_id)
        return game.clues_placed if game else None

    def get_clue_threshold(self, guild_id: str) -> int | None:
        game = self._games.get(guild_id)
        return game.clue_threshold if game else None

    def get_counter_measures(self, guild_id: str) -> int | None:
        game = self._games.get(guild_id)
        return game.counter_measures if game else None

    def get_story(self, guild_id: str) -> Story | None:
        game = self._games.get(guild_id)
        return game.story if game else None

    async def load_latest_game(self, guild_id: str) -> GameRecord | None:
        """Resume the most recent unfinished game of the guild (after a restart)."""
        records = await self._repository(guild_id).load()
        unfinished = [r for r in records if not r.is_ended]
        if not unfinished:
            return None
        latest = max(unfinished, key=lambda r: (r.date_created, r.id))
        self._games[guild_id] = latest
        logger.info("resumed encounter", guild_id=guild_id, game_id=latest.id)
        return latest

    async def start_new_game(self, guild_id: str, number_of_players: int) -> GameRecord:
        """Create, store and persist a new game with a random story.

        Raises:
            GameAlreadyRunningError: if the guild already has a running game.

        """
        async with self._lock(guild_id):
            if self.is_game_running(guild_id):
                raise GameAlreadyRunningError
            repository = self._repository(guild_id)
            game_id = await repository.next_id()
            story = self._rng.choice(POSSIBLE_STORIES)
            game = rules.create_game(game_id, number_of_players, story, now=self._clock())
            self._games[guild_id] = game
            logger.info(
                "encounter started",
                guild_id=guild_id,
                game_id=game_id,
                players=number_of_players,
                story=story,
            )
            await self._persist(guild_id, game)
            return game

    async def end_game(self, guild_id: str) -> GameRecord | None:
        async with self._lock(guild_id):
            game = self._games.get(guild_id)
            if game is None:
                return None
            ended = rules.end_game(game, now=max(self._clock(), game.date_created))
            del self._games[guild_id]
            logger.info("encounter ended", guild_id=guild_id, game_id=ended.id)
            await self._persist(guild_id, ended)
            return ended

    async def deal_damage_to_blob(self, guild_id: str, amount: int) -> GameRecord | None:
        return await self._update(guild_id, lambda game: rules.deal_damage(game, amount))

    async def place_clues_on_act1(self, guild_id: str, amount: int) -> GameRecord | None:
        return await self._update(guild_id, lambda game: rules.place_clues(game, amount))

    async def gain_counter_measures(self, guild_id: str, amount: int) -> GameRecord | None:
        return await self._update(guild_id, lambda game: rules.gain_counter_measures(game, amount))

    async def spend_counter_measures(self, guild_id: str, amount: int) -> GameRecord | None:
        """Spend counter-measures.

        Raises:
            InsufficientCounterMeasuresError: if amount exceeds the balance.
                Nothing is changed or persisted.

        """
        return await self._update(guild_id, lambda game: rules.spend_counter_measures(game, amount))

    async def choose_story(self, guild_id: str, story: str | None = None) -> GameRecord | None:
        """Record the story of a game saved without one, drawing it when not given.

        Raises:
            InvalidStoryError: if story is not a known story.
            StoryAlreadyChosenError: if the game already has a story.

        """
        chosen = story if story is not None else self._rng.choice(POSSIBLE_STORIES)
        return await self._update(guild_id, lambda game: rules.choose_story(game, chosen))

    async def set_damage(self, guild_id: str, damage: int) -> GameRecord | None:
        return await self._update(guild_id, lambda game: rules.set_damage(game, damage))

    async def set_clues(self, guild_id: str, clues: int) -> GameRecord | None:
        return await self._update(guild_id, lambda game: rules.set_clues(game, clues))

    async def set_counter_measures(self, guild_id: str, counter_measures: int) -> GameRecord | None:
        return await self._update(guild_id, lambda game: rules.set_counter_measures(game, counter_measures))

    async def _update(self, guild_id: str, change: Callable[[GameRecord], GameRecord]) -> GameRecord | None:
        async with self._lock(guild_id):
            game = self._games.get(guild_id)
            if game is None or game.is_ended:
                return None
            updated = change(game)
            self._games[guild_id] = updated
            await self._persist(guild_id, updated)
            return updated

    async def _persist(self, guild_id: str, game: GameRecord) -> None:
        try:
            await self._repository(guild_id).save(game)
        except OSError:
            # the in-memory record stays authoritative until the next successful save
            logger.warning("encounter change may not be durable", guild_id=guild_id, game_id=game.id)

    def _repository(self, guild_id: str) -> GameRepository:
        repository = self._repositories.get(guild_id)
        if repository is None:
            repository = self._repositories[guild_id] = self._repository_factory(guild_id)
        return repository

    def _lock(self, guild_id: str) -> asyncio.Lock:
        lock = self._locks.get(guild_id)
        if lock is None:
            lock = self._locks[guild_id] = asyncio.Lock()
        return lock
