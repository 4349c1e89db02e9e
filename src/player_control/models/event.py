"""Wire types exchanged between the command-line client and the player daemon."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, JsonValue


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventType(StrEnum):
    PAUSE = "pause"
    PAUSED = "paused"
    RESUME = "resume"
    RESUMED = "resumed"
    STOP = "stop"
    STOPPED = "stopped"
    NEXT = "next"
    SKIPPED = "skipped"
    ERROR = "error"


class Event(BaseModel):
    """A single control message.

    ``payload`` is any JSON value and stays opaque here; its schema is chosen
    by ``type`` in ``player_control.engine.codec.decode_payload``. ``created``
    is set by the sender and required on the wire.
    """

    type: EventType
    created: datetime
    payload: JsonValue = None

    @classmethod
    def create(cls, type: EventType, payload: JsonValue = None) -> Event:
        """Build an outbound event stamped with the current UTC time."""
        return cls(type=type, created=utcnow(), payload=payload)


class ErrorPayload(BaseModel):
    """Payload of an ``error`` event."""

    error: str
