"""Chaos bag token draws."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

# Night of the Zealot, Standard difficulty
NIGHT_OF_THE_ZEALOT_STANDARD_BAG: tuple[str, ...] = (
    "p1",
    "p0",
    "p0",
    "m1",
    "m1",
    "m1",
    "m2",
    "m2",
    "m3",
    "m4",
    "ChaosSkull",
    "ChaosSkull",
    "ChaosCultist",
    "ChaosTablet",
    "ChaosFail",
    "ChaosElderSign",
)

# Plain text shown when the guild has no emoji for a token
TOKEN_LABELS: dict[str, str] = {
    "p1": "+1",
    "p0": "0",
    "m1": "-1",
    "m2": "-2",
    "m3": "-3",
    "m4": "-4",
    "ChaosSkull": "Skull",
    "ChaosCultist": "Cultist",
    "ChaosTablet": "Tablet",
    "ChaosFail": "Autofail",
    "ChaosElderSign": "Elder Sign",
}


class ChaosBag:
    def __init__(
        self,
        tokens: Sequence[str] = NIGHT_OF_THE_ZEALOT_STANDARD_BAG,
        *,
        rng: random.Random | None = None,
    ) -> None:
        if not tokens:
            raise ValueError("a chaos bag needs at least one token")
        self._tokens = tuple(tokens)
        self._rng = rng or random.Random()  # noqa: S311

    @property
    def tokens(self) -> tuple[str, ...]:
        return self._tokens

    def pull_token(self, emoji_lookup: Callable[[str], str | None] | None = None) -> str:
        """Draw one token, rendered as the guild's emoji when one is named after it."""
        token = self._rng.choice(self._tokens)
        emoji = emoji_lookup(token) if emoji_lookup else None
        return emoji or TOKEN_LABELS.get(token, token)
