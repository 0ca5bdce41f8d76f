"""
Group event administration (``/evt``) and countdown announcements.

The announcer is a timer listener: it turns timer events of a guild into
messages broadcast to every group channel of the running event, following
a cadence that gets tighter as the end approaches.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

import structlog

from bot.messaging.handlers import InteractionHandler
from bot.messaging.types import ChannelType, CommandAccess, CommandSpec, OptionSpec, OptionType
from encounter.logic.enums import TimerEvent
from encounter.logic.exceptions import EncounterError

if TYPE_CHECKING:
    from bot.messaging.protocol import CommandContext
    from bot.messaging.types import CommandResult, Invocation
    from encounter.session.event_service import GroupEventService

logger = structlog.get_logger()

NO_GUILD_REPLY = "Désolé, cette commande doit être exécutée sur un serveur"
NO_EVENT_REPLY = "Impossible, il n'y a pas d'événement en cours"


def should_announce(remaining: int) -> bool:
    """Every 15 min from 60, every 10 from 30, every 5 from 10, then every minute."""
    if remaining >= 60:
        return remaining % 15 == 0
    if remaining >= 30:
        return remaining % 10 == 0
    if remaining >= 10:
        return remaining % 5 == 0
    return remaining > 0


def announcement_for(event: TimerEvent, remaining: int | None) -> str | None:
    if event in (TimerEvent.START, TimerEvent.RESUME):
        return "Démarrage de la minuterie !"
    if event is TimerEvent.PAUSE:
        return "La minuterie a été mise en pause."
    if event is TimerEvent.TICK:
        if remaining is not None and should_announce(remaining):
            return f"Il ne reste plus que {remaining} minute(s)"
        return None
    return "Le temps est écoulé ! C'est fini."


class TimerAnnouncer:
    """Timer listener broadcasting the countdown to the event's group channels."""

    def __init__(self, events: GroupEventService) -> None:
        self._events = events

    async def __call__(self, guild_id: str, event: TimerEvent, remaining: int | None) -> None:
        if not self._events.is_running(guild_id):
            return
        content = announcement_for(event, remaining)
        if content is None:
            return
        delivered = await self._events.broadcast(guild_id, content)
        logger.debug("timer announced", guild_id=guild_id, timer_event=event, channels=len(delivered))


class EventCommand(InteractionHandler):
    spec: ClassVar[CommandSpec] = CommandSpec(
        name="evt",
        description="Commandes de gestion des événements multijoueurs",
        access=CommandAccess.ADMIN,
        options=(
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="start",
                description="Démarre un événement multijoueurs",
                options=(
                    OptionSpec(
                        type=OptionType.CHANNEL,
                        name="catégorie",
                        description="La catégorie de canaux dans laquelle créer les canaux",
                        required=True,
                        channel_types=(ChannelType.CATEGORY,),
                    ),
                    OptionSpec(type=OptionType.INTEGER, name="groupes", description="Nombre de groupes", required=True),
                ),
            ),
            OptionSpec(
                type=OptionType.SUB_COMMAND_GROUP,
                name="timer",
                description="Gestion de la minuterie",
                options=(
                    OptionSpec(
                        type=OptionType.SUB_COMMAND,
                        name="start",
                        description="Démarre la minuterie",
                        options=(
                            OptionSpec(
                                type=OptionType.INTEGER,
                                name="minutes",
                                description="Nombre de minutes",
                                required=True,
                            ),
                        ),
                    ),
                    OptionSpec(type=OptionType.SUB_COMMAND, name="pause", description="Met la minuterie en pause"),
                    OptionSpec(type=OptionType.SUB_COMMAND, name="resume", description="Redémarre la minuterie"),
                ),
            ),
            OptionSpec(
                type=OptionType.SUB_COMMAND,
                name="msg",
                description="Envoie un message à tous les groupes",
                options=(
                    OptionSpec(
                        type=OptionType.STRING,
                        name="message",
                        description="Le message à envoyer",
                        required=True,
                    ),
                ),
            ),
            OptionSpec(type=OptionType.SUB_COMMAND, name="end", description="Met fin à l'événement multijoueurs"),
        ),
    )

    def __init__(self, events: GroupEventService) -> None:
        self._events = events

    async def execute(self, invocation: Invocation, context: CommandContext) -> CommandResult:
        guild_id = context.guild_id
        if guild_id is None:
            await context.reply(NO_GUILD_REPLY)
            return self.result("Impossible d'exécuter cette commande hors serveur")

        try:
            if invocation.group == "timer":
                if invocation.subcommand == "start":
                    return await self._start_timer(invocation, context, guild_id)
                if invocation.subcommand == "pause":
                    return await self._pause_timer(context, guild_id)
                if invocation.subcommand == "resume":
                    return await self._resume_timer(context, guild_id)
            elif invocation.subcommand == "start":
                return await self._start_event(invocation, context, guild_id)
            elif invocation.subcommand == "msg":
                return await self._send_message(invocation, context, guild_id)
            elif invocation.subcommand == "end":
                return await self._end_event(context, guild_id)
        except EncounterError as exc:
            # state changed between the checks and the call
            await context.reply(f"Impossible : {exc}")
            return self.result("Commande refusée", error=str(exc))

        await context.reply("Je ne sais pas encore faire ça")
        return self.result("Commande non implémentée", path=invocation.path)

    async def _start_event(self, invocation: Invocation, context: CommandContext, guild_id: str) -> CommandResult:
        if self._events.is_running(guild_id):
            await context.reply("Impossible, il y a déjà un événement en cours")
            return self.result("Impossible de démarrer un événement : il y en a déjà un en cours")
        groups = invocation.get_integer("groupes")
        if not groups or groups < 1:
            await context.reply("Ooops, je n'ai pas le nombre de groupes")
            return self.result("Impossible de démarrer un événement sans nombre de groupes")
        category_id = invocation.get_channel("catégorie")
        if not category_id or not await self._events.is_category(guild_id, category_id):
            await context.reply("Impossible sans préciser une catégorie de canaux valide")
            return self.result("Impossible de démarrer un événement sans catégorie")

        await self._events.start_event(guild_id, category_id, groups)
        await context.reply("Evénement démarré !")
        return self.result("Evénement démarré", groups=groups)

    async def _send_message(self, invocation: Invocation, context: CommandContext, guild_id: str) -> CommandResult:
        if not self._events.is_running(guild_id):
            return await self._no_event(context)
        message = invocation.get_string("message")
        if not message:
            await context.reply("Ooops, je n'ai pas le message à envoyer")
            return self.result("Impossible d'envoyer un message vide")

        delivered = await self._events.broadcast(guild_id, message)
        await context.reply("Message envoyé !")
        return self.result("Message envoyé", channels=len(delivered))

    async def _end_event(self, context: CommandContext, guild_id: str) -> CommandResult:
        if not self._events.is_running(guild_id):
            return await self._no_event(context)
        await self._events.end_event(guild_id)
        await context.reply("Evénement terminé !")
        return self.result("Evénement terminé")

    async def _start_timer(self, invocation: Invocation, context: CommandContext, guild_id: str) -> CommandResult:
        if not self._events.is_running(guild_id):
            return await self._no_event(context)
        if self._events.is_timer_running(guild_id):
            await context.reply("Impossible, il y a déjà une minuterie en cours")
            return self.result("Impossible de démarrer la minuterie : elle est déjà en cours")
        minutes = invocation.get_integer("minutes")
        if not minutes or minutes < 1:
            await context.reply("Ooops, je n'ai pas le nombre de minutes")
            return self.result("Impossible de démarrer la minuterie sans nombre de minutes")

        await self._events.start_timer(guild_id, minutes)
        await context.reply("Minuterie démarrée !")
        return self.result("Minuterie démarrée", minutes=minutes)

    async def _pause_timer(self, context: CommandContext, guild_id: str) -> CommandResult:
        if not self._events.is_running(guild_id):
            return await self._no_event(context)
        if not self._events.is_timer_running(guild_id):
            await context.reply("Impossible, il n'y a pas de minuterie en cours")
            return self.result("Impossible de mettre en pause la minuterie : elle n'est pas en cours")

        await self._events.pause_timer(guild_id)
        await context.reply("Minuterie en pause !")
        return self.result("Minuterie mise en pause")

    async def _resume_timer(self, context: CommandContext, guild_id: str) -> CommandResult:
        if not self._events.is_running(guild_id):
            return await self._no_event(context)
        if self._events.is_timer_running(guild_id):
            await context.reply("Impossible, la minuterie est déjà en cours")
            return self.result("Impossible de remettre en marche la minuterie : elle est déjà en cours")
        if not self._events.get_minutes_remaining(guild_id):
            await context.reply("Impossible, la minuterie n'a pas été initialisée avec un nombre de minutes.")
            return self.result("Impossible de remettre en marche la minuterie : elle n'a pas été initialisée")

        await self._events.resume_timer(guild_id)
        await context.reply("Minuterie redémarrée !")
        return self.result("Minuterie redémarrée")

    async def _no_event(self, context: CommandContext) -> CommandResult:
        await context.reply(NO_EVENT_REPLY)
        return self.result("Impossible : pas d'événement en cours")
