from player_control.models.event import ErrorPayload, Event, EventType
from player_control.models.outcome import CommandState, Outcome, OutcomeKind

__all__ = [
    "CommandState",
    "ErrorPayload",
    "Event",
    "EventType",
    "Outcome",
    "OutcomeKind",
]
