"""Domain errors for the encounter and group event layers.

These are validation errors: the command layer catches them and reports the
message to the caller instead of crashing the dispatch loop.
"""


class EncounterError(Exception):
    """Base class for recoverable encounter rule violations."""


class InsufficientCounterMeasuresError(EncounterError):
    def __init__(self, requested: int, available: int) -> None:
        self.requested = requested
        self.available = available
        super().__init__(f"impossible, only {available} counter-measure(s) available ({requested} requested)")


class InvalidStoryError(EncounterError):
    def __init__(self, story: str) -> None:
        self.story = story
        super().__init__(f'"{story}" is not a valid story')


class StoryAlreadyChosenError(EncounterError):
    def __init__(self, story: str) -> None:
        self.story = story
        super().__init__(f'story already chosen: "{story}"')


class GameAlreadyRunningError(EncounterError):
    def __init__(self) -> None:
        super().__init__("a game is already running")


class TimerStateError(EncounterError):
    """Illegal timer transition (start while running, pause while stopped...)."""


class EventStateError(EncounterError):
    """Group event operation not allowed in the current event state."""

    @classmethod
    def no_event(cls) -> "EventStateError":
        return cls("there is no event running")

    @classmethod
    def already_running(cls) -> "EventStateError":
        return cls("an event is already running")
