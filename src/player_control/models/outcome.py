from dataclasses import dataclass
from enum import StrEnum


class OutcomeKind(StrEnum):
    ACKNOWLEDGED = "acknowledged"
    REMOTE_ERROR = "remote_error"
    TIMEOUT = "timeout"
    CANCELLED_BY_QUIT = "cancelled_by_quit"
    TRANSPORT_FAILURE = "transport_failure"


class CommandState(StrEnum):
    IDLE = "idle"
    SENDING = "sending"
    AWAITING_RESPONSE = "awaiting_response"
    DONE = "done"


@dataclass(frozen=True)
class Outcome:
    """Terminal result of one command invocation. Never transmitted."""

    kind: OutcomeKind
    description: str | None = None

    @classmethod
    def acknowledged(cls) -> "Outcome":
        return cls(OutcomeKind.ACKNOWLEDGED)

    @classmethod
    def remote_error(cls, description: str) -> "Outcome":
        return cls(OutcomeKind.REMOTE_ERROR, description)

    @classmethod
    def timeout(cls) -> "Outcome":
        return cls(OutcomeKind.TIMEOUT)

    @classmethod
    def cancelled(cls) -> "Outcome":
        return cls(OutcomeKind.CANCELLED_BY_QUIT)

    @classmethod
    def transport_failure(cls, description: str) -> "Outcome":
        return cls(OutcomeKind.TRANSPORT_FAILURE, description)

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.ACKNOWLEDGED
