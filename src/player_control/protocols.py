"""Contracts for the playback side of the control channel.

The daemon's playback engine is an external collaborator; the control
server only needs something shaped like ``PlaybackController``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


class PlaybackError(Exception):
    """Raised by a controller when a command cannot be carried out.

    The message is sent back to the client verbatim as the error payload.
    """


@runtime_checkable
class PlaybackController(Protocol):
    async def pause(self) -> None:
        ...

    async def resume(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def next(self) -> None:
        ...
