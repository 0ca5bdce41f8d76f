import random
from datetime import UTC, datetime

import pytest

from bot.commands.blob import (
    GAME_OVER_MESSAGE,
    NO_GAME_REPLY,
    NO_TIMER_REPLY,
    NOT_GROUP_CHANNEL_REPLY,
    THRESHOLD_REACHED_MESSAGE,
    VICTORY_MESSAGE,
    AdminBlobCommand,
    BlobCommand,
    format_game_state,
)
from bot.messaging.types import Invocation
from bot.tests.mocks import ADMIN, PLAYER, MockCommandContext
from encounter.logic.enums import Story
from encounter.logic.record import GameRecord
from encounter.session.event_service import GroupEventService
from encounter.session.game_service import GameStateService
from encounter.session.repository import FileGameRepository
from encounter.tests.mocks import MockChannelGateway

GUILD = "guild-1"
NOW = datetime(2024, 3, 1, 20, 0, tzinfo=UTC)
STARTED_STATE = (
    "**Le Dévoreur de Toute Chose - 01/03/2024**\n"
    "Nombre de joueurs : 4\n"
    "Points de vie restants / total : 60 / 60\n"
    "Indices sur l'Acte 1 : 0 / 8\n"
    "Nombre de contre-mesures : 2\n"
    "Temps restant : Minuterie non initialisée"
)


@pytest.fixture
async def events(storage, gateway, timers):
    service = GroupEventService(storage, gateway, timers)
    await service.start_event(GUILD, "900", 2)
    return service


@pytest.fixture
def games(storage):
    return GameStateService(
        lambda guild_id: FileGameRepository(storage, guild_id),
        rng=random.Random(3),
        clock=lambda: NOW,
    )


@pytest.fixture
def groups(events):
    return events.get_state(GUILD).text_channel_ids


@pytest.fixture
def admin(games, events):
    return AdminBlobCommand(games, events)


@pytest.fixture
async def playing(games, events, admin):
    """Four players, so 60 health, 8 clues needed, 2 counter-measures. Timer running."""
    await admin.execute(
        Invocation(name="ablob", subcommand="start", options={"joueurs": 4}), MockCommandContext(caller=ADMIN)
    )
    await events.start_timer(GUILD, 60)
    return BlobCommand(games, events)


async def _play(command, subcommand, channel_id, **options):
    context = MockCommandContext(caller=PLAYER, guild_id=GUILD, channel_id=channel_id)
    result = await command.execute(Invocation(name="blob", subcommand=subcommand, options=options), context)
    return context, result


def _messages(gateway, channel_id):
    """Group messages, without timer announcements and game state broadcasts."""
    return [
        message
        for message in gateway.messages_for(channel_id)
        if "minuterie" not in message and "Temps restant" not in message
    ]


class TestPreconditions:
    async def test_outside_group_channel(self, playing):
        context, _ = await _play(playing, "i", "somewhere-else", indices=1)

        assert context.replies == [NOT_GROUP_CHANNEL_REPLY]

    async def test_no_game(self, games, events, groups):
        context, _ = await _play(BlobCommand(games, events), "i", groups[0], indices=1)

        assert context.replies == [NO_GAME_REPLY]

    async def test_timer_required(self, playing, events, groups):
        await events.pause_timer(GUILD)

        context, _ = await _play(playing, "d", groups[0], **{"dégâts": 1})

        assert context.replies == [NO_TIMER_REPLY]

    async def test_story_available_without_timer(self, playing, events, games, groups):
        await events.pause_timer(GUILD)

        context, result = await _play(playing, "histoire", groups[0])

        assert context.replies == [f"L'histoire de cette partie est : {games.get_story(GUILD)}"]
        assert result.meta["story"] in {story.value for story in Story}

    async def test_story_drawn_for_game_saved_without_one(self, games, events, storage, groups):
        await FileGameRepository(storage, GUILD).save(GameRecord(id=1, date_created=NOW, number_of_players=2))
        await games.load_latest_game(GUILD)

        context, _ = await _play(BlobCommand(games, events), "histoire", groups[0])

        story = games.get_story(GUILD)
        assert story is not None
        assert context.replies == [f"L'histoire de cette partie est : {story}"]
        assert (await FileGameRepository(storage, GUILD).get(1)).story is story


class TestClues:
    async def test_clues_are_announced_to_other_groups(self, playing, games, events, gateway, groups):
        context, result = await _play(playing, "i", groups[0], indices=3)

        assert context.replies == ["3 indice(s) posé(s) sur l'Acte 1"]
        assert games.get_clues_placed(GUILD) == 3
        assert result.meta == {"clues": 3, "threshold": 8}
        assert _messages(gateway, groups[0]) == []
        assert _messages(gateway, groups[1]) == ["groupe-1 a placé 3 indice(s) sur l'Acte 1 !"]
        assert events.get_group_stats(GUILD)[groups[0]].number_of_clues_added == 3

    async def test_more_than_three_refused(self, playing, games, groups):
        context, _ = await _play(playing, "i", groups[0], indices=4)

        assert context.replies == ["Désolé, il n'est pas possible de poser plus de 3 indices à la fois"]
        assert games.get_clues_placed(GUILD) == 0

    async def test_missing_amount(self, playing, groups):
        context, _ = await _play(playing, "i", groups[0])

        assert context.replies == ["Ooops, je n'ai pas le nombre d'indices"]

    async def test_threshold_announced_once_to_everyone(self, playing, gateway, groups):
        for _ in range(3):
            await _play(playing, "i", groups[0], indices=3)

        assert _messages(gateway, groups[0]).count(THRESHOLD_REACHED_MESSAGE) == 1
        assert _messages(gateway, groups[1]).count(THRESHOLD_REACHED_MESSAGE) == 1


class TestCounterMeasures:
    async def test_gain(self, playing, games, gateway, groups):
        context, _ = await _play(playing, "cm-gain", groups[1], **{"contre-mesures": 2})

        assert context.replies == ["2 contre-mesure(s) ajoutée(s)"]
        assert games.get_counter_measures(GUILD) == 4
        assert _messages(gateway, groups[0]) == ["groupe-2 a ajouté 2 contre-mesures(s) !"]

    async def test_spend(self, playing, games, events, gateway, groups):
        context, _ = await _play(playing, "cm-depense", groups[0], **{"contre-mesures": 1})

        assert context.replies == ["1 contre-mesure(s) dépensée(s)"]
        assert games.get_counter_measures(GUILD) == 1
        assert _messages(gateway, groups[1]) == ["groupe-1 a dépensé 1 contre-mesures(s) !"]
        assert events.get_group_stats(GUILD)[groups[0]].number_of_counter_measures_spent == 1

    async def test_spend_more_than_available(self, playing, games, gateway, groups):
        context, result = await _play(playing, "cm-depense", groups[0], **{"contre-mesures": 3})

        assert context.replies == ["Impossible, il n'y a que 2 contre-mesure(s) disponible(s)"]
        assert result.meta == {"requested": 3, "available": 2}
        assert games.get_counter_measures(GUILD) == 2
        assert _messages(gateway, groups[1]) == []


class TestDamage:
    async def test_damage_is_announced(self, playing, games, gateway, groups):
        context, result = await _play(playing, "d", groups[0], **{"dégâts": 10})

        assert context.replies == ["10 dégât(s) infligé(s) au Dévoreur"]
        assert result.meta == {"remaining_health": 50}
        assert games.get_remaining_health(GUILD) == 50
        assert _messages(gateway, groups[1]) == ["groupe-1 a infligé 10 dégât(s) au Dévoreur !"]

    async def test_killing_blow(self, playing, games, events, gateway, groups):
        await _play(playing, "d", groups[1], **{"dégâts": 55})

        context, result = await _play(playing, "d", groups[0], **{"dégâts": 8})

        assert result.result == "Dévoreur vaincu"
        assert games.get_remaining_health(GUILD) == 0
        assert context.sent == ["vous portez le coup fatal avec 8 infligé(s) ! Bravo !"]
        killer, other = _messages(gateway, groups[0]), _messages(gateway, groups[1])
        assert other[-3] == "groupe-1 a porté le coup fatal en infligeant 8 dégât(s) au Dévoreur !"
        assert other[-2] == VICTORY_MESSAGE
        assert killer[-2] == VICTORY_MESSAGE
        stats = killer[-1]
        assert "Statistiques" in stats
        assert "__groupe-1__\nNombre de dégât(s): 8" in stats
        assert "__groupe-2__\nNombre de dégât(s): 55" in stats

    async def test_damage_after_defeat_refused(self, playing, games, groups):
        await _play(playing, "d", groups[0], **{"dégâts": 60})

        context, _ = await _play(playing, "d", groups[1], **{"dégâts": 1})

        assert context.replies == ["Le Dévoreur est déjà vaincu !"]


class TestGameState:
    async def test_start_announces_state_to_every_group(self, playing, gateway, groups):
        for channel_id in groups:
            assert STARTED_STATE in gateway.messages_for(channel_id)

    async def test_state_on_demand(self, playing, groups):
        await _play(playing, "d", groups[0], **{"dégâts": 10})

        context, result = await _play(playing, "etat", groups[1])

        assert result.result == "Etat de la partie affiché"
        assert context.replies == [
            STARTED_STATE.replace("60 / 60", "50 / 60").replace("Minuterie non initialisée", "60 minutes")
        ]

    async def test_state_available_while_paused(self, playing, events, groups):
        await events.pause_timer(GUILD)

        context, _ = await _play(playing, "etat", groups[0])

        assert context.replies[0].endswith("Temps restant : 60 minutes (en pause)")

    async def test_correction_announces_state(self, playing, admin, gateway, groups):
        await admin.execute(
            Invocation(name="ablob", subcommand="i", options={"indices": 5}), MockCommandContext(caller=ADMIN)
        )

        announced = gateway.messages_for(groups[1])[-1]
        assert "Indices sur l'Acte 1 : 5 / 8" in announced
        assert announced.endswith("Temps restant : 60 minutes")

    def test_single_player_figures(self):
        game = GameRecord(id=1, date_created=NOW, number_of_players=1, counter_measures=1)

        state = format_game_state(game, None, timer_running=False)

        assert "Points de vie restants / total : 15 / 15" in state
        assert "Indices sur l'Acte 1 : 0 / 2" in state
        assert state.endswith("Minuterie non initialisée")


class TestAdminBlob:
    async def test_start_requires_event(self, games, storage, timers):
        events = GroupEventService(storage, MockChannelGateway(), timers)
        context = MockCommandContext(caller=ADMIN, guild_id="other-guild")

        await AdminBlobCommand(games, events).execute(
            Invocation(name="ablob", subcommand="start", options={"joueurs": 4}), context
        )

        assert context.replies == ["Impossible, il n'y a pas d'événement en cours"]
        assert not games.is_game_running("other-guild")

    async def test_start_twice_refused(self, playing, admin):
        context = MockCommandContext(caller=ADMIN)

        await admin.execute(Invocation(name="ablob", subcommand="start", options={"joueurs": 3}), context)

        assert context.replies == ["Impossible, il y a déjà une partie en cours"]

    async def test_start_resets_group_stats(self, playing, admin, events, groups):
        await _play(playing, "d", groups[0], **{"dégâts": 5})
        await admin.execute(Invocation(name="ablob", subcommand="end"), MockCommandContext(caller=ADMIN))

        await admin.execute(
            Invocation(name="ablob", subcommand="start", options={"joueurs": 2}), MockCommandContext(caller=ADMIN)
        )

        assert events.get_group_stats(GUILD)[groups[0]].damage_dealt == 0

    @pytest.mark.parametrize(
        ("subcommand", "option", "value", "accessor", "expected"),
        [
            ("i", "indices", 5, "get_clues_placed", 5),
            ("cm", "contre-mesures", 0, "get_counter_measures", 0),
            ("d", "dégâts", 100, "get_remaining_health", 0),
        ],
    )
    async def test_corrections(self, playing, admin, games, subcommand, option, value, accessor, expected):
        context = MockCommandContext(caller=ADMIN)

        result = await admin.execute(
            Invocation(name="ablob", subcommand=subcommand, options={option: value}), context
        )

        assert result.result == "Partie corrigée"
        assert getattr(games, accessor)(GUILD) == expected

    async def test_end_announces_and_persists(self, playing, admin, games, gateway, groups, storage):
        context = MockCommandContext(caller=ADMIN)

        result = await admin.execute(Invocation(name="ablob", subcommand="end"), context)

        assert context.replies == ["Partie du Dévoreur de Toute Chose terminée !"]
        assert not games.is_game_running(GUILD)
        assert _messages(gateway, groups[0])[-1] == GAME_OVER_MESSAGE
        saved = await FileGameRepository(storage, GUILD).get(result.meta["game_id"])
        assert saved.is_ended

    async def test_end_without_game(self, games, events, admin):
        context = MockCommandContext(caller=ADMIN)

        await admin.execute(Invocation(name="ablob", subcommand="end"), context)

        assert context.replies == [NO_GAME_REPLY]

    def test_admin_only(self, admin):
        assert admin.admin_only
        assert BlobCommand.spec.access is not admin.spec.access
