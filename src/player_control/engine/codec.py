"""Event codec: one already-delimited message <-> one ``Event``.

Framing is not handled here; see ``player_control.engine.transport``.
"""

from __future__ import annotations

from pydantic import BaseModel, ValidationError

from player_control.models.event import ErrorPayload, Event, EventType


class DecodeError(ValueError):
    """Raised when bytes cannot be turned into an ``Event`` (or a payload)."""


class EncodeError(ValueError):
    """Raised when an ``Event`` cannot be serialized."""


# Payload schema is keyed by event type. Types not listed carry no structured payload.
PAYLOAD_MODELS: dict[EventType, type[BaseModel]] = {
    EventType.ERROR: ErrorPayload,
}


def encode(event: Event) -> bytes:
    """Serialize an event to compact JSON. The output never contains a newline."""
    try:
        return event.model_dump_json().encode()
    except ValueError as e:
        raise EncodeError(f"unable to encode {event.type} event: {e}") from e


def decode(data: bytes) -> Event:
    """Parse one message. Raises ``DecodeError`` for empty or malformed input."""
    if not data or not data.strip():
        raise DecodeError("empty message")
    try:
        return Event.model_validate_json(data)
    except ValidationError as e:
        raise DecodeError(f"malformed event: {e}") from e


def decode_payload(event: Event) -> BaseModel | None:
    """Interpret ``event.payload`` using the schema registered for its type.

    Returns ``None`` for types without a payload schema.
    """
    model = PAYLOAD_MODELS.get(event.type)
    if model is None:
        return None
    if not isinstance(event.payload, dict):
        raise DecodeError(f"{event.type} payload is not an object")
    try:
        return model.model_validate(event.payload)
    except ValidationError as e:
        raise DecodeError(f"malformed {event.type} payload: {e}") from e
