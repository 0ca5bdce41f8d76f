"""
Card database client.

Cards come from ArkhamDB's public API and are cached as a global JSON
resource, so the bot can answer card lookups without calling the API on
every request and still start when ArkhamDB is unreachable.
"""

from __future__ import annotations

import json
import re
import unicodedata
from enum import StrEnum
from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from shared.storage import GuildResourceStorage

if TYPE_CHECKING:
    from shared.storage import ResourceStorage

logger = structlog.get_logger()

ARKHAMDB_CARDS_URL = "https://fr.arkhamdb.com/api/public/cards/?encounter=true"
ARKHAMDB_BASE_URL = "https://arkhamdb.com"
CARDS_FILENAME = "cards.fr.json"

CARD_CODE_PATTERN = re.compile(r"^\d{5}b?$")

# Revised core cards duplicate the original core set
_EXCLUDED_TITLE_SEARCH_PACKS = frozenset({"rcore"})


class SearchMode(StrEnum):
    BY_CODE = "code"
    BY_TITLE = "title"


class Card(BaseModel):
    """The subset of an ArkhamDB card the bot displays."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    code: str
    name: str
    real_name: str = ""
    xp: int | None = None
    faction_code: str = ""
    type_code: str = ""
    pack_code: str = ""
    text: str | None = None
    back_text: str | None = None
    imagesrc: str | None = None
    backimagesrc: str | None = None
    cost: int | None = None
    health: int | None = None
    sanity: int | None = None

    @property
    def has_back(self) -> bool:
        return bool(self.back_text or self.backimagesrc)

    def image_url(self, *, back: bool = False) -> str | None:
        path = self.backimagesrc if back else self.imagesrc
        return f"{ARKHAMDB_BASE_URL}{path}" if path else None


_CARDS = TypeAdapter(list[Card])


def normalize(text: str) -> str:
    """Lower-case and strip accents so "Ésprit" matches "esprit"."""
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def format_card(card: Card, *, back: bool = False, extended: bool = False) -> str:
    """Plain-text rendering: title and image link, plus details when extended."""
    title = f"**{card.name}**"
    if card.real_name and card.real_name != card.name:
        title += f" ({card.real_name})"
    lines = [title]
    image = card.image_url(back=back)
    if extended or image is None:
        details = [part for part in (card.faction_code, card.type_code) if part]
        if card.xp:
            details.append(f"niveau {card.xp}")
        if card.cost is not None:
            details.append(f"coût {card.cost}")
        if details:
            lines.append(" · ".join(details))
        text = card.back_text if back else card.text
        if text:
            lines.append(text)
    if image:
        lines.append(image)
    return "\n".join(lines)


class CardService:
    """Searchable card list backed by an httpx download and a JSON cache."""

    def __init__(
        self,
        storage: ResourceStorage,
        *,
        url: str = ARKHAMDB_CARDS_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._storage = storage
        self._url = url
        self._timeout = timeout
        self._transport = transport
        self._cards: list[Card] = []

    @property
    def cards(self) -> list[Card]:
        return list(self._cards)

    async def load(self) -> int:
        """Load the cached cards, downloading them when there is no usable cache."""
        cached = self._read_cache()
        if cached:
            self._cards = cached
            logger.info("loaded cached cards", count=len(cached))
            return len(cached)
        await self.refresh()
        return len(self._cards)

    async def refresh(self) -> bool:
        """Download the latest cards. On failure the current cards are kept and False is returned."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(self._url)
                response.raise_for_status()
            cards = _CARDS.validate_json(response.content)
        except httpx.HTTPError as exc:
            logger.error("card download failed", url=self._url, error=str(exc))
            return False
        except ValidationError as exc:
            logger.error("unexpected card data", url=self._url, errors=exc.error_count())
            return False

        self._cards = cards
        try:
            payload = json.dumps([card.model_dump(exclude_none=True) for card in cards], ensure_ascii=False)
            self._storage.write(GuildResourceStorage.GLOBAL, CARDS_FILENAME, payload)
        except OSError:
            logger.exception("failed to cache cards")
        logger.info("downloaded cards", count=len(cards))
        return True

    def search(self, query: str, mode: SearchMode | None = None) -> list[Card]:
        """Find cards by exact code or by title substring (French or English title).

        Without a mode, a query that looks like a card code is searched by code.
        """
        query = query.strip()
        if not query:
            return []
        if mode is None:
            mode = SearchMode.BY_CODE if CARD_CODE_PATTERN.match(query) else SearchMode.BY_TITLE
        if mode is SearchMode.BY_CODE:
            return [card for card in self._cards if card.code == query]
        wanted = normalize(query)
        return [
            card
            for card in self._cards
            if card.pack_code not in _EXCLUDED_TITLE_SEARCH_PACKS
            and (wanted in normalize(card.name) or wanted in normalize(card.real_name))
        ]

    def get_card_by_code(self, code: str) -> Card | None:
        return next((card for card in self._cards if card.code == code), None)

    def _read_cache(self) -> list[Card]:
        try:
            raw = self._storage.read(GuildResourceStorage.GLOBAL, CARDS_FILENAME)
        except OSError:
            logger.exception("failed to read card cache")
            return []
        if raw is None:
            return []
        try:
            return _CARDS.validate_json(raw)
        except ValidationError as exc:
            logger.error("malformed card cache", errors=exc.error_count())
            return []
