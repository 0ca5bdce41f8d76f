"""Card lookup and card database refresh commands."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, ClassVar

from bot.messaging.handlers import TextCommandHandler
from bot.services.cards import SearchMode, format_card

if TYPE_CHECKING:
    from bot.messaging.protocol import CommandContext
    from bot.messaging.types import CommandResult, TextCommand
    from bot.services.cards import Card, CardService

CARD_CODE_REGEX = re.compile(r"(\d{5}b?)$")
CARD_AND_XP_REGEX = re.compile(r"(\D*?)(?:\s(\d))?")

EXTENDED_ALIASES = frozenset({"card", "carte", "dos"})
BACK_ALIASES = frozenset({"d", "dos"})

NOT_UNDERSTOOD_REPLY = "je n'ai pas compris la demande."
NOT_FOUND_REPLY = "désolé, le mystère de cette carte reste entier."


class CardCommand(TextCommandHandler):
    aliases: ClassVar[tuple[str, ...]] = ("!", "c", "card", "carte", "d", "dos")
    help: ClassVar[str] = """Pour l'affichage de carte(s).

  Usage: `cmd recherche xp`
  - `xp` peut être omis
  - `recherche` peut être un code de carte ou du texte
  - si `xp` est fourni alors recherche d'une carte avec ce niveau d'XP
  - si `xp`= 0 alors envoie de tous les niveaux de la carte trouvée
  - les commandes `d` et `dos` envoient le dos de la carte s'il existe
  - les commandes `!`, `c` et `d` n'envoient que l'image de la carte
  - les commandes `card`, `carte` et `dos` envoient une description complète de la carte"""

    def __init__(self, cards: CardService) -> None:
        self._cards = cards

    async def execute(self, command: TextCommand, context: CommandContext) -> CommandResult:
        alias = command.alias.lower()
        extended = alias in EXTENDED_ALIASES
        back = alias in BACK_ALIASES
        query = command.args.strip()

        code_match = CARD_CODE_REGEX.search(query)
        if code_match:
            return await self._send_by_code(context, code_match.group(1), back=back, extended=extended)

        matches = CARD_AND_XP_REGEX.fullmatch(query)
        if not query or matches is None:
            await context.reply(NOT_UNDERSTOOD_REPLY)
            return self.result(f'Impossible d\'interpréter "{query}"')

        title, xp = matches.group(1).strip(), matches.group(2)
        found = self._cards.search(title, SearchMode.BY_TITLE)
        if not found:
            await context.reply(NOT_FOUND_REPLY)
            return self.result(f'Aucune carte correspondant à la recherche "{title}"')

        first = found[0]
        if back:
            if not first.has_back:
                await context.reply(f"désolé, la carte {first.name} n'a pas de dos.")
                return self.result("Pas de dos pour la carte demandée", code=first.code)
            return await self._send(context, [first], back=True, extended=extended)

        if xp is None:
            return await self._send(context, [first], extended=extended)
        if xp == "0":
            return await self._send(context, [card for card in found if card.name == first.name], extended=extended)

        with_xp = next((card for card in found if card.xp == int(xp)), None)
        if with_xp is None:
            await context.reply(f"je n'ai pas trouvé de carte de niveau {xp} correspondant.")
            return self.result(f'Aucune carte d\'XP {xp} correspondant à "{title}"')
        return await self._send(context, [with_xp], extended=extended)

    async def _send_by_code(self, context: CommandContext, code: str, *, back: bool, extended: bool) -> CommandResult:
        card = self._cards.get_card_by_code(code)
        if card is None:
            await context.reply(NOT_FOUND_REPLY)
            return self.result(f'Aucune carte correspondant au code "{code}"')
        if back and not card.has_back:
            await context.reply("désolé, cette carte n'a pas de dos.")
            return self.result(f'La carte de code "{code}" n\'a pas de dos.')
        return await self._send(context, [card], back=back, extended=extended)

    async def _send(
        self, context: CommandContext, cards: list[Card], *, back: bool = False, extended: bool = False
    ) -> CommandResult:
        for card in cards:
            await context.reply(format_card(card, back=back, extended=extended))
        return self.result(f"{len(cards)} carte(s) envoyée(s)", codes=[card.code for card in cards])


class RefreshCommand(TextCommandHandler):
    aliases: ClassVar[tuple[str, ...]] = ("refresh",)
    help: ClassVar[str] = "Recharge les toutes dernières cartes depuis ArkhamDB"
    admin_only: ClassVar[bool] = True

    def __init__(self, cards: CardService) -> None:
        self._cards = cards

    async def execute(self, command: TextCommand, context: CommandContext) -> CommandResult:
        if not await self._cards.refresh():
            await context.reply("Oups, impossible de recharger les cartes.")
            return self.result("Echec du rechargement des cartes")
        await context.reply("C'est bon, les cartes ont été rechargées !")
        return self.result("Cartes rechargées depuis ArkhamDB", count=len(self._cards.cards))
