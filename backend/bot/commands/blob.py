"""
Devourer of All Things commands: ``/blob`` for the groups, ``/ablob`` for admins.

Player commands only work from a group channel of the running event, while
a game is running and the event timer is ticking; ``histoire`` and ``etat``
only need the game. Every change is announced to the other groups, and the
full game state to every group when a game starts or an admin corrects it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from bot.messaging.handlers import InteractionHandler
from bot.messaging.types import CommandAccess, CommandSpec, OptionSpec, OptionType
from encounter.logic.enums import GroupStat
from encounter.logic.exceptions import EncounterError, InsufficientCounterMeasuresError

if TYPE_CHECKING:
    from bot.messaging.protocol import CommandContext
    from bot.messaging.types import CommandResult, Invocation
    from encounter.logic.record import GameRecord
    from encounter.session.event_service import GroupEventService
    from encounter.session.game_service import GameStateService
    from encounter.session.models import GroupStats

MAX_CLUES_AT_ONCE = 3

NO_GUILD_REPLY = "Désolé, cette commande doit être exécutée sur un serveur"
NOT_GROUP_CHANNEL_REPLY = "Désolé, mais il faut être dans l'un des canaux de l'événement pour lancer cette commande"
NO_GAME_REPLY = "Désolé, il n'y a pas de partie du Dévoreur de Toute Chose en cours"
NO_TIMER_REPLY = "Désolé, il faut attendre que la minuterie soit active"
THRESHOLD_REACHED_MESSAGE = (
    "Les investigateurs ont réunis l'ensemble des indices nécessaires. "
    "Dès le prochain round, vous pouvez faire avancer l'Acte 1."
)
VICTORY_MESSAGE = "Félications, vous avez vaincu le Dévoreur !"
GAME_OVER_MESSAGE = "La partie est terminée !"


def _amount_option(name: str, description: str) -> tuple[OptionSpec, ...]:
    return (OptionSpec(type=OptionType.INTEGER, name=name, description=description, required=True),)


def format_game_state(game: GameRecord, minutes_remaining: int | None, timer_running: bool) -> str:
    """Current figures of the game, shown on demand and announced to every group."""
    if minutes_remaining is None:
        time_left = "Minuterie non initialisée"
    elif timer_running:
        time_left = f"{minutes_remaining} minutes"
    else:
        time_left = f"{minutes_remaining} minutes (en pause)"
    return "\n".join(
        [
            f"**Le Dévoreur de Toute Chose - {game.date_created:%d/%m/%Y}**",
            f"Nombre de joueurs : {game.number_of_players}",
            f"Points de vie restants / total : {game.remaining_health} / {game.total_health}",
            f"Indices sur l'Acte 1 : {game.clues_placed} / {game.clue_threshold}",
            f"Nombre de contre-mesures : {game.counter_measures}",
            f"Temps restant : {time_left}",
        ]
    )


def format_game_stats(game: GameRecord, stats: dict[str, GroupStats], group_names: dict[str, str]) -> str:
    """Per-group contributions, in group order, for the victory broadcast."""
    lines = [f"**Le Dévoreur de Toute Chose - {game.date_created:%d/%m/%Y} - Statistiques**"]
    for channel_id, name in group_names.items():
        group = stats.get(channel_id)
        if group is None:
            continue
        lines.extend(
            [
                "",
                f"__{name}__",
                f"Nombre de dégât(s): {group.damage_dealt}",
                f"Nombre d'indice(s): {group.number_of_clues_added}",
                f"Nombre de contre-mesures ajoutée(s): {group.number_of_counter_measures_added}",
                f"Nombre de contre-mesures dépensée(s): {group.number_of_counter_measures_spent}",
            ]
        )
    return "\n".join(lines)


def game_state_message(games: GameStateService, events: GroupEventService, guild_id: str) -> str:
    game = games.get_game(guild_id)
    if game is None:
        return NO_GAME_REPLY
    return format_game_state(game, events.get_minutes_remaining(guild_id), events.is_timer_running(guild_id))


class BlobCommand(InteractionHandler):
    spec: ClassVar[CommandSpec] = CommandSpec(
        name="blob",
        description="Commandes joueurs pour une partie du Dévoreur de Tout Chose",
        access=CommandAccess.GUILD,
        options=(
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="i",
                description="Placer un nombre d'indices sur l'Acte 1",
                options=_amount_option("indices", "Nombre d'indices"),
            ),
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="cm-gain",
                description="Indiquer que des contre-mesures ont été gagnées",
                options=_amount_option("contre-mesures", "Nombre de contre-mesures gagnées"),
            ),
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="cm-depense",
                description="Indiquer que des contre-mesures ont été dépensées",
                options=_amount_option("contre-mesures", "Nombre de contre-mesures dépensées"),
            ),
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="d",
                description="Infliger un nombre de dégâts au Dévoreur",
                options=_amount_option("dégâts", "Nombre de dégâts"),
            ),
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="histoire",
                description="Obtenir un rappel de l'histoire sélectionnée",
            ),
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="etat",
                description="Afficher l'état de la partie en cours",
            ),
        ),
    )

    def __init__(self, games: GameStateService, events: GroupEventService) -> None:
        self._games = games
        self._events = events

    async def execute(self, invocation: Invocation, context: CommandContext) -> CommandResult:
        guild_id = context.guild_id
        if guild_id is None:
            await context.reply(NO_GUILD_REPLY)
            return self.result("Impossible d'exécuter cette commande hors serveur")
        if not self._events.is_group_channel(guild_id, context.channel_id):
            await context.reply(NOT_GROUP_CHANNEL_REPLY)
            return self.result("Impossible d'exécuter cette commande hors d'un canal dédié à un événement")
        if not self._games.is_game_running(guild_id):
            await context.reply(NO_GAME_REPLY)
            return self.result("Impossible d'exécuter cette commande sans partie en cours")

        if invocation.subcommand == "histoire":
            return await self._tell_story(context, guild_id)
        if invocation.subcommand == "etat":
            await context.reply(game_state_message(self._games, self._events, guild_id))
            return self.result("Etat de la partie affiché")

        if not self._events.is_timer_running(guild_id):
            await context.reply(NO_TIMER_REPLY)
            return self.result("Impossible d'exécuter cette commande sans minuterie active")

        group = self._events.group_name(guild_id, context.channel_id) or context.channel_id
        if invocation.subcommand == "i":
            return await self._place_clues(invocation, context, guild_id, group)
        if invocation.subcommand == "cm-gain":
            return await self._gain_counter_measures(invocation, context, guild_id, group)
        if invocation.subcommand == "cm-depense":
            return await self._spend_counter_measures(invocation, context, guild_id, group)
        if invocation.subcommand == "d":
            return await self._deal_damage(invocation, context, guild_id, group)

        await context.reply("Je ne sais pas encore faire ça")
        return self.result("Commande non implémentée", path=invocation.path)

    async def _tell_story(self, context: CommandContext, guild_id: str) -> CommandResult:
        story = self._games.get_story(guild_id)
        if story is None:
            # games saved without a story get one the first time it is asked for
            game = await self._games.choose_story(guild_id)
            story = game.story if game else None
        if story is None:
            await context.reply("Aucune histoire n'a encore été choisie pour cette partie")
            return self.result("Pas d'histoire choisie")
        await context.reply(f"L'histoire de cette partie est : {story}")
        return self.result("Histoire rappelée", story=str(story))

    async def _place_clues(
        self, invocation: Invocation, context: CommandContext, guild_id: str, group: str
    ) -> CommandResult:
        clues = invocation.get_integer("indices")
        if not clues or clues < 1:
            await context.reply("Ooops, je n'ai pas le nombre d'indices")
            return self.result("Impossible sans nombre d'indices")
        if clues > MAX_CLUES_AT_ONCE:
            await context.reply("Désolé, il n'est pas possible de poser plus de 3 indices à la fois")
            return self.result("Impossible, trop d'indices")

        before = self._games.get_clues_placed(guild_id) or 0
        game = await self._games.place_clues_on_act1(guild_id, clues)
        if game is None:
            return await self._no_game(context)
        self._events.record_stat(guild_id, context.channel_id, GroupStat.CLUES_ADDED, clues)

        await self._events.broadcast(
            guild_id, f"{group} a placé {clues} indice(s) sur l'Acte 1 !", exclude=[context.channel_id]
        )
        if before < game.clue_threshold <= game.clues_placed:
            await self._events.broadcast(guild_id, THRESHOLD_REACHED_MESSAGE)
        await context.reply(f"{clues} indice(s) posé(s) sur l'Acte 1")
        return self.result("Indices posés sur l'Acte 1", clues=game.clues_placed, threshold=game.clue_threshold)

    async def _gain_counter_measures(
        self, invocation: Invocation, context: CommandContext, guild_id: str, group: str
    ) -> CommandResult:
        amount = invocation.get_integer("contre-mesures")
        if not amount or amount < 1:
            await context.reply("Ooops, je n'ai pas le nombre de contre-mesures")
            return self.result("Impossible sans nombre de contre-mesures")

        game = await self._games.gain_counter_measures(guild_id, amount)
        if game is None:
            return await self._no_game(context)
        self._events.record_stat(guild_id, context.channel_id, GroupStat.COUNTER_MEASURES_ADDED, amount)

        await self._events.broadcast(
            guild_id, f"{group} a ajouté {amount} contre-mesures(s) !", exclude=[context.channel_id]
        )
        await context.reply(f"{amount} contre-mesure(s) ajoutée(s)")
        return self.result("Contre-mesures ajoutées", counter_measures=game.counter_measures)

    async def _spend_counter_measures(
        self, invocation: Invocation, context: CommandContext, guild_id: str, group: str
    ) -> CommandResult:
        amount = invocation.get_integer("contre-mesures")
        if not amount or amount < 1:
            await context.reply("Ooops, je n'ai pas le nombre de contre-mesures")
            return self.result("Impossible sans nombre de contre-mesures")

        try:
            game = await self._games.spend_counter_measures(guild_id, amount)
        except InsufficientCounterMeasuresError as exc:
            await context.reply(f"Impossible, il n'y a que {exc.available} contre-mesure(s) disponible(s)")
            return self.result("Pas assez de contre-mesures", requested=amount, available=exc.available)
        if game is None:
            return await self._no_game(context)
        self._events.record_stat(guild_id, context.channel_id, GroupStat.COUNTER_MEASURES_SPENT, amount)

        await self._events.broadcast(
            guild_id, f"{group} a dépensé {amount} contre-mesures(s) !", exclude=[context.channel_id]
        )
        await context.reply(f"{amount} contre-mesure(s) dépensée(s)")
        return self.result("Contre-mesures dépensées", counter_measures=game.counter_measures)

    async def _deal_damage(
        self, invocation: Invocation, context: CommandContext, guild_id: str, group: str
    ) -> CommandResult:
        damage = invocation.get_integer("dégâts")
        if not damage or damage < 1:
            await context.reply("Ooops, je n'ai pas le nombre de dégâts")
            return self.result("Impossible sans nombre de dégâts")
        if self._games.get_remaining_health(guild_id) == 0:
            await context.reply("Le Dévoreur est déjà vaincu !")
            return self.result("Dévoreur déjà vaincu")

        game = await self._games.deal_damage_to_blob(guild_id, damage)
        if game is None:
            return await self._no_game(context)
        self._events.record_stat(guild_id, context.channel_id, GroupStat.DAMAGE_DEALT, damage)

        if game.remaining_health > 0:
            await self._events.broadcast(
                guild_id, f"{group} a infligé {damage} dégât(s) au Dévoreur !", exclude=[context.channel_id]
            )
            await context.reply(f"{damage} dégât(s) infligé(s) au Dévoreur")
            return self.result("Dégâts infligés", remaining_health=game.remaining_health)

        await context.reply(f"{damage} dégât(s) infligé(s) au Dévoreur")
        await context.send(f"vous portez le coup fatal avec {damage} infligé(s) ! Bravo !")
        await self._events.broadcast(
            guild_id,
            f"{group} a porté le coup fatal en infligeant {damage} dégât(s) au Dévoreur !",
            exclude=[context.channel_id],
        )
        await self._events.broadcast(guild_id, VICTORY_MESSAGE)
        await self._events.broadcast(guild_id, self._stats_message(guild_id, game))
        return self.result("Dévoreur vaincu", game_id=game.id)

    def _stats_message(self, guild_id: str, game: GameRecord) -> str:
        channel_ids = self._events.get_state(guild_id).text_channel_ids
        names = {channel_id: self._events.group_name(guild_id, channel_id) or channel_id for channel_id in channel_ids}
        return format_game_stats(game, self._events.get_group_stats(guild_id), names)

    async def _no_game(self, context: CommandContext) -> CommandResult:
        await context.reply(NO_GAME_REPLY)
        return self.result("Impossible d'exécuter cette commande sans partie en cours")


class AdminBlobCommand(InteractionHandler):
    spec: ClassVar[CommandSpec] = CommandSpec(
        name="ablob",
        description="Commandes de gestion d'une partie du Dévoreur de Tout Chose",
        access=CommandAccess.ADMIN,
        options=(
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="start",
                description="Démarre une partie du Dévoreur de Toute Chose",
                options=_amount_option("joueurs", "Nombre de joueurs"),
            ),
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="i",
                description="Corrige le nombre d'indices sur l'Acte 1",
                options=_amount_option("indices", "Nombre d'indices sur l'Acte 1"),
            ),
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="cm",
                description="Corrige le nombre de contre-mesures disponibles",
                options=_amount_option("contre-mesures", "Nombre de contre-mesures"),
            ),
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="d",
                description="Corrige le nombre de dégâts sur le Dévoreur",
                options=_amount_option("dégâts", "Nombre de dégâts"),
            ),
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="end",
                description="Met fin à la partie du Dévoreur de Toute Chose",
            ),
        ),
    )

    def __init__(self, games: GameStateService, events: GroupEventService) -> None:
        self._games = games
        self._events = events

    async def execute(self, invocation: Invocation, context: CommandContext) -> CommandResult:
        guild_id = context.guild_id
        if guild_id is None:
            await context.reply(NO_GUILD_REPLY)
            return self.result("Impossible d'exécuter cette commande hors serveur")
        if not self._events.is_running(guild_id):
            await context.reply("Impossible, il n'y a pas d'événement en cours")
            return self.result("Impossible : pas d'événement en cours", path=invocation.path)

        if invocation.subcommand == "start":
            return await self._start(invocation, context, guild_id)
        if invocation.subcommand == "end":
            return await self._end(context, guild_id)
        if invocation.subcommand in ("i", "cm", "d"):
            return await self._correct(invocation, context, guild_id)

        await context.reply("Je ne sais pas encore faire ça")
        return self.result("Commande non implémentée", path=invocation.path)

    async def _start(self, invocation: Invocation, context: CommandContext, guild_id: str) -> CommandResult:
        if self._games.is_game_running(guild_id):
            await context.reply("Impossible, il y a déjà une partie en cours")
            return self.result("Impossible de démarrer une partie : il y en a déjà une en cours")
        players = invocation.get_integer("joueurs")
        if not players or players < 1:
            await context.reply("Ooops, je n'ai pas le nombre de joueurs")
            return self.result("Impossible de démarrer une partie sans nombre de joueurs")

        try:
            game = await self._games.start_new_game(guild_id, players)
        except EncounterError as exc:
            await context.reply(f"Impossible : {exc}")
            return self.result("Partie refusée", error=str(exc))
        self._events.reset_group_stats(guild_id)
        await context.reply("Nouvelle partie du Dévoreur de Toute Chose démarrée !")
        await self._events.broadcast(guild_id, game_state_message(self._games, self._events, guild_id))
        return self.result("Partie du Dévoreur démarrée", game_id=game.id, players=players)

    async def _end(self, context: CommandContext, guild_id: str) -> CommandResult:
        game = await self._games.end_game(guild_id)
        if game is None:
            await context.reply(NO_GAME_REPLY)
            return self.result("Impossible de terminer la partie : pas de partie en cours")
        await self._events.broadcast(guild_id, GAME_OVER_MESSAGE)
        await context.reply("Partie du Dévoreur de Toute Chose terminée !")
        return self.result("Partie du Dévoreur terminée", game_id=game.id)

    async def _correct(self, invocation: Invocation, context: CommandContext, guild_id: str) -> CommandResult:
        option = {"i": "indices", "cm": "contre-mesures", "d": "dégâts"}[invocation.subcommand or ""]
        value = invocation.get_integer(option)
        if value is None or value < 0:
            await context.reply(f"Ooops, je n'ai pas le nombre de {option}")
            return self.result(f"Impossible de corriger sans nombre de {option}")

        if invocation.subcommand == "i":
            game = await self._games.set_clues(guild_id, value)
        elif invocation.subcommand == "cm":
            game = await self._games.set_counter_measures(guild_id, value)
        else:
            game = await self._games.set_damage(guild_id, value)
        if game is None:
            await context.reply(NO_GAME_REPLY)
            return self.result("Impossible de corriger : pas de partie en cours")

        await context.reply(
            f"Partie corrigée : {game.remaining_health}/{game.total_health} points de vie, "
            f"{game.clues_placed}/{game.clue_threshold} indice(s), {game.counter_measures} contre-mesure(s)"
        )
        await self._events.broadcast(guild_id, game_state_message(self._games, self._events, guild_id))
        return self.result("Partie corrigée", option=option, value=value)
