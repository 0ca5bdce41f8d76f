from enum import StrEnum


class Story(StrEnum):
    """Stories that can follow Act 1 of the Devourer of All Things."""

    RESCUE_THE_CHEMIST = "Secourir la Chimiste"
    RECOVER_THE_FRAGMENT = "Récupérer le Fragment"
    DRIVE_OFF_THE_MIGO = "Repousser les Mi-Go"
    DEFUSE_THE_EXPLOSIVES = "Désarmorcer les Explosifs"


class TimerState(StrEnum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"
    ENDED = "ended"


class TimerEvent(StrEnum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    TICK = "tick"
    ENDED = "ended"


class GroupStat(StrEnum):
    """Per-group counters recorded while an encounter is played."""

    DAMAGE_DEALT = "damageDealt"
    CLUES_ADDED = "numberOfCluesAdded"
    COUNTER_MEASURES_ADDED = "numberOfCounterMeasuresAdded"
    COUNTER_MEASURES_SPENT = "numberOfCounterMeasuresSpent"
