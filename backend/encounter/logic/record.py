"""
Devourer of All Things encounter record and its immutable update helpers.

A GameRecord only stores raw counters; health and clue thresholds are
derived from the number of players. Update helpers never mutate their
input, they return a new record via ``model_copy``.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from encounter.logic.enums import Story
from encounter.logic.exceptions import (
    EncounterError,
    InsufficientCounterMeasuresError,
    InvalidStoryError,
    StoryAlreadyChosenError,
)

HEALTH_PER_PLAYER = 15
CLUES_PER_PLAYER = 2
POSSIBLE_STORIES: tuple[Story, ...] = tuple(Story)


class GameRecord(BaseModel):
    """One run of the encounter, persisted with camelCase field names."""

    model_config = ConfigDict(
        frozen=True,
        strict=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: int = Field(ge=1)
    date_created: datetime
    date_ended: datetime | None = None
    number_of_players: int = Field(ge=1)
    damage_dealt: int = Field(default=0, ge=0)
    clues_placed: int = Field(default=0, ge=0)
    counter_measures: int = Field(default=0, ge=0)
    story: Story | None = None

    @field_validator("date_created", "date_ended")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _check_invariants(self) -> GameRecord:
        if self.damage_dealt > self.total_health:
            raise ValueError(f"damage_dealt {self.damage_dealt} exceeds total health {self.total_health}")
        if self.date_ended is not None and self.date_ended < self.date_created:
            raise ValueError("date_ended is before date_created")
        return self

    @property
    def total_health(self) -> int:
        return self.number_of_players * HEALTH_PER_PLAYER

    @property
    def remaining_health(self) -> int:
        return self.total_health - self.damage_dealt

    @property
    def clue_threshold(self) -> int:
        return self.number_of_players * CLUES_PER_PLAYER

    @property
    def is_ended(self) -> bool:
        return self.date_ended is not None

    @property
    def is_blob_defeated(self) -> bool:
        return self.remaining_health == 0

    def to_saved(self) -> dict[str, object]:
        """Primitive representation written to the games file."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _require_non_negative(amount: int) -> None:
    if amount < 0:
        raise EncounterError(f"amount must be positive or zero, got {amount}")


def create_game(game_id: int, number_of_players: int, story: Story, now: datetime | None = None) -> GameRecord:
    """Build a fresh record: no damage, no clues, ceil(players / 2) counter-measures."""
    return GameRecord(
        id=game_id,
        date_created=now or datetime.now(UTC),
        number_of_players=number_of_players,
        counter_measures=math.ceil(number_of_players / 2),
        story=story,
    )


def deal_damage(record: GameRecord, amount: int) -> GameRecord:
    """Add damage, clamped to [0, total_health]."""
    damage = max(0, min(record.total_health, record.damage_dealt + amount))
    return record.model_copy(update={"damage_dealt": damage})


def set_damage(record: GameRecord, damage: int) -> GameRecord:
    damage = max(0, min(record.total_health, damage))
    return record.model_copy(update={"damage_dealt": damage})


def place_clues(record: GameRecord, amount: int) -> GameRecord:
    """Add clues on Act 1. The threshold is informative, clues are not capped."""
    _require_non_negative(amount)
    return record.model_copy(update={"clues_placed": record.clues_placed + amount})


def set_clues(record: GameRecord, clues: int) -> GameRecord:
    _require_non_negative(clues)
    return record.model_copy(update={"clues_placed": clues})


def gain_counter_measures(record: GameRecord, amount: int) -> GameRecord:
    _require_non_negative(amount)
    return record.model_copy(update={"counter_measures": record.counter_measures + amount})


def spend_counter_measures(record: GameRecord, amount: int) -> GameRecord:
    """
    Spend counter-measures.

    Raises:
        InsufficientCounterMeasuresError: if amount exceeds the available
            counter-measures. The record is left unchanged.

    """
    _require_non_negative(amount)
    if amount > record.counter_measures:
        raise InsufficientCounterMeasuresError(requested=amount, available=record.counter_measures)
    return record.model_copy(update={"counter_measures": record.counter_measures - amount})


def set_counter_measures(record: GameRecord, counter_measures: int) -> GameRecord:
    _require_non_negative(counter_measures)
    return record.model_copy(update={"counter_measures": counter_measures})


def choose_story(record: GameRecord, story: str) -> GameRecord:
    """Set the story that follows Act 1. A story can only be chosen once."""
    try:
        chosen = Story(story)
    except ValueError:
        raise InvalidStoryError(story) from None
    if record.story is not None:
        raise StoryAlreadyChosenError(record.story)
    return record.model_copy(update={"story": chosen})


def end_game(record: GameRecord, now: datetime | None = None) -> GameRecord:
    return record.model_copy(update={"date_ended": now or datetime.now(UTC)})
