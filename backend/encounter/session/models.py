"""Persisted state of a guild's group event (``event.json``)."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from encounter.logic.enums import GroupStat


class GroupStats(BaseModel):
    """What one group channel contributed to the current encounter."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    damage_dealt: int = 0
    number_of_clues_added: int = 0
    number_of_counter_measures_added: int = 0
    number_of_counter_measures_spent: int = 0

    def add(self, stat: GroupStat, amount: int) -> None:
        field_name = _STAT_FIELDS[stat]
        setattr(self, field_name, getattr(self, field_name) + amount)


_STAT_FIELDS: dict[GroupStat, str] = {
    GroupStat.DAMAGE_DEALT: "damage_dealt",
    GroupStat.CLUES_ADDED: "number_of_clues_added",
    GroupStat.COUNTER_MEASURES_ADDED: "number_of_counter_measures_added",
    GroupStat.COUNTER_MEASURES_SPENT: "number_of_counter_measures_spent",
}


class EventState(BaseModel):
    """Running flag, created channels, timer remainder and per-group stats.

    ``group_stats`` is keyed by the group's text channel id.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    running: bool = False
    text_channel_ids: list[str] = Field(default_factory=list)
    voice_channel_ids: list[str] = Field(default_factory=list)
    minutes_remaining: int | None = None
    group_stats: dict[str, GroupStats] = Field(default_factory=dict)

    def to_saved(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)
