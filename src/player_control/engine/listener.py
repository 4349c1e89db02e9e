"""Response listener: reads events until a terminal one arrives."""

from __future__ import annotations

import asyncio
from collections.abc import Collection

import structlog

from player_control.engine.codec import DecodeError, decode
from player_control.engine.transport import Connection, ReadError
from player_control.models.event import Event, EventType

log = structlog.get_logger()


class ResponseListener:
    """Reads from a connection in a background task.

    ``completion`` resolves exactly once, with the first terminal event seen.
    EOF, a read error, or too many consecutive malformed frames end the loop
    without resolving it: a disconnect is "no answer", not success.
    """

    def __init__(
        self,
        conn: Connection,
        terminal_types: Collection[EventType],
        max_consecutive_decode_errors: int = 3,
    ) -> None:
        if max_consecutive_decode_errors < 1:
            raise ValueError("max_consecutive_decode_errors must be at least 1")
        self._conn = conn
        self._terminal_types = frozenset(terminal_types)
        self._max_decode_errors = max_consecutive_decode_errors
        self._completion: asyncio.Future[Event] | None = None
        self._task: asyncio.Task | None = None
        self.decode_errors = 0

    @property
    def completion(self) -> asyncio.Future[Event]:
        if self._completion is None:
            raise RuntimeError("listener has not been started")
        return self._completion

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def start(self) -> asyncio.Task:
        if self._task is not None:
            raise RuntimeError("listener already started")
        self._completion = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self) -> None:
        """Cancel the read loop and wait for it to unwind.

        A loop that already died on an unexpected error has that error logged.
        """
        task = self._task
        if task is None:
            return
        if not task.done():
            task.cancel()
            await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            log.warning("listener failed", error=repr(task.exception()))

    async def _run(self) -> Event | None:
        consecutive_errors = 0
        while True:
            try:
                data = await self._conn.read_message()
            except ReadError as e:
                log.warning("listener read failed", error=str(e))
                return None
            if data is None:
                log.debug("listener reached eof")
                return None

            try:
                event = decode(data)
            except DecodeError as e:
                self.decode_errors += 1
                consecutive_errors += 1
                log.warning("malformed frame", error=str(e), consecutive=consecutive_errors)
                if consecutive_errors >= self._max_decode_errors:
                    log.warning("too many malformed frames, giving up", limit=self._max_decode_errors)
                    return None
                continue
            consecutive_errors = 0

            if event.type in self._terminal_types:
                if not self.completion.done():
                    self.completion.set_result(event)
                return event
            log.debug("ignoring non-terminal event", type=event.type.value)
