"""Unit tests for the per-guild encounter lifecycle."""

import random
from datetime import UTC, datetime, timedelta

import pytest

from encounter.logic.enums import Story
from encounter.logic.exceptions import (
    GameAlreadyRunningError,
    InsufficientCounterMeasuresError,
    InvalidStoryError,
    StoryAlreadyChosenError,
)
from encounter.logic.record import POSSIBLE_STORIES, GameRecord, create_game, end_game
from encounter.session.game_service import GameStateService
from encounter.session.repository import FileGameRepository

NOW = datetime(2024, 3, 1, 20, 0, tzinfo=UTC)


@pytest.fixture
def service(storage):
    return GameStateService(
        lambda guild_id: FileGameRepository(storage, guild_id),
        rng=random.Random(7),
        clock=lambda: NOW,
    )


@pytest.fixture
async def running(service):
    await service.start_new_game("g1", 4)
    return service


class TestStartNewGame:
    async def test_start_creates_running_game(self, service):
        game = await service.start_new_game("g1", 4)

        assert service.is_game_running("g1")
        assert game.id == 1
        assert game.date_created == NOW
        assert game.story in POSSIBLE_STORIES
        assert service.get_total_health("g1") == 60
        assert service.get_clue_threshold("g1") == 8
        assert service.get_counter_measures("g1") == 2

    async def test_double_start_rejected(self, running):
        with pytest.raises(GameAlreadyRunningError):
            await running.start_new_game("g1", 2)

        assert running.get_total_health("g1") == 60

    async def test_ids_increase_across_games(self, running):
        await running.end_game("g1")

        second = await running.start_new_game("g1", 2)

        assert second.id == 2

    async def test_guilds_are_independent(self, running):
        assert not running.is_game_running("g2")

        other = await running.start_new_game("g2", 1)

        assert other.id == 1
        assert running.get_total_health("g1") == 60
        assert running.get_total_health("g2") == 15

    async def test_story_is_drawn_from_rng(self, storage):
        picks = set()
        for seed in range(20):
            service = GameStateService(
                lambda guild_id: FileGameRepository(storage, f"{guild_id}-{seed}"),
                rng=random.Random(seed),
            )
            picks.add((await service.start_new_game("g", 1)).story)

        assert picks <= set(Story)
        assert len(picks) > 1


class TestNoGame:
    async def test_accessors_unavailable(self, service):
        assert service.is_game_running("g1") is False
        assert service.get_game("g1") is None
        assert service.get_remaining_health("g1") is None
        assert service.get_total_health("g1") is None
        assert service.get_clues_placed("g1") is None
        assert service.get_clue_threshold("g1") is None
        assert service.get_counter_measures("g1") is None
        assert service.get_story("g1") is None

    async def test_mutations_return_none(self, service):
        assert await service.deal_damage_to_blob("g1", 3) is None
        assert await service.place_clues_on_act1("g1", 1) is None
        assert await service.gain_counter_measures("g1", 1) is None
        assert await service.spend_counter_measures("g1", 1) is None
        assert await service.end_game("g1") is None


class TestMutations:
    async def test_damage_reaches_exactly_zero(self, running):
        game = await running.deal_damage_to_blob("g1", 60)

        assert game.remaining_health == 0
        assert running.get_remaining_health("g1") == 0

    async def test_overkill_clamped(self, running):
        await running.deal_damage_to_blob("g1", 999)

        assert running.get_remaining_health("g1") == 0

    async def test_clues_unbounded(self, running):
        for _ in range(4):
            await running.place_clues_on_act1("g1", 3)

        assert running.get_clues_placed("g1") == 12

    async def test_spend_too_many_leaves_balance(self, running):
        with pytest.raises(InsufficientCounterMeasuresError):
            await running.spend_counter_measures("g1", 3)

        assert running.get_counter_measures("g1") == 2

    async def test_gain_then_spend_round_trip(self, running):
        await running.gain_counter_measures("g1", 5)
        await running.spend_counter_measures("g1", 5)

        assert running.get_counter_measures("g1") == 2

    async def test_admin_setters(self, running):
        await running.set_damage("g1", 500)
        await running.set_clues("g1", 3)
        await running.set_counter_measures("g1", 9)

        assert running.get_remaining_health("g1") == 0
        assert running.get_clues_placed("g1") == 3
        assert running.get_counter_measures("g1") == 9

    async def test_mutations_are_persisted(self, running, storage):
        await running.deal_damage_to_blob("g1", 10)

        stored = await FileGameRepository(storage, "g1").get(1)

        assert stored.damage_dealt == 10


class TestEndGame:
    async def test_end_clears_current_and_persists(self, running, storage):
        ended = await running.end_game("g1")

        assert ended.date_ended == NOW
        assert not running.is_game_running("g1")
        assert running.get_game("g1") is None
        assert (await FileGameRepository(storage, "g1").get(1)).is_ended

    async def test_mutation_after_end_returns_none(self, running):
        await running.end_game("g1")

        assert await running.deal_damage_to_blob("g1", 1) is None


class TestLoadLatestGame:
    async def test_resumes_most_recent_unfinished(self, storage):
        repository = FileGameRepository(storage, "g1")
        await repository.save(create_game(1, 2, Story.RESCUE_THE_CHEMIST, now=NOW - timedelta(days=2)))
        await repository.save(create_game(2, 3, Story.RESCUE_THE_CHEMIST, now=NOW - timedelta(days=1)))
        await repository.save(end_game(create_game(3, 4, Story.RESCUE_THE_CHEMIST, now=NOW), now=NOW))
        service = GameStateService(lambda guild_id: FileGameRepository(storage, guild_id))

        resumed = await service.load_latest_game("g1")

        assert resumed.id == 2
        assert service.is_game_running("g1")
        assert service.get_total_health("g1") == 45

    async def test_nothing_to_resume(self, service):
        assert await service.load_latest_game("g1") is None
        assert not service.is_game_running("g1")


class TestChooseStory:
    @pytest.fixture
    async def untold(self, storage, service):
        await FileGameRepository(storage, "g1").save(GameRecord(id=1, date_created=NOW, number_of_players=2))
        await service.load_latest_game("g1")
        return service

    async def test_named_story_is_recorded_and_persisted(self, untold, storage):
        game = await untold.choose_story("g1", "Repousser les Mi-Go")

        assert game.story is Story.DRIVE_OFF_THE_MIGO
        assert untold.get_story("g1") is Story.DRIVE_OFF_THE_MIGO
        assert (await FileGameRepository(storage, "g1").get(1)).story is Story.DRIVE_OFF_THE_MIGO

    async def test_story_drawn_when_not_named(self, untold):
        game = await untold.choose_story("g1")

        assert game.story in POSSIBLE_STORIES

    async def test_story_chosen_only_once(self, untold):
        await untold.choose_story("g1")

        with pytest.raises(StoryAlreadyChosenError):
            await untold.choose_story("g1", "Secourir la Chimiste")

    async def test_unknown_story_rejected(self, untold):
        with pytest.raises(InvalidStoryError):
            await untold.choose_story("g1", "Drive Off the Mi-Go")

        assert untold.get_story("g1") is None

    async def test_without_game_returns_none(self, service):
        assert await service.choose_story("g1") is None


class TestSaveFailure:
    async def test_mutation_kept_when_save_fails(self, running, storage, monkeypatch):
        def fail(*args):
            raise OSError("read-only file system")

        monkeypatch.setattr(storage, "write", fail)

        game = await running.deal_damage_to_blob("g1", 4)

        assert game.damage_dealt == 4
        assert running.get_remaining_health("g1") == 56
