"""Daemon-side control endpoint: decode requests, drive the controller, acknowledge."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from player_control.engine.codec import DecodeError, decode, encode
from player_control.engine.command import command_for_request
from player_control.engine.transport import MAX_MESSAGE_SIZE, Connection, TransportError
from player_control.models.event import ErrorPayload, Event, EventType
from player_control.protocols import PlaybackController, PlaybackError

log = structlog.get_logger()


def error_event(message: str) -> Event:
    return Event.create(EventType.ERROR, payload=ErrorPayload(error=message).model_dump())


class ControlServer:
    """Unix domain socket server that answers control requests."""

    def __init__(self, controller: PlaybackController, socket_path: Path) -> None:
        self.controller = controller
        self.socket_path = socket_path
        self._server: asyncio.Server | None = None
        self._connections: set[Connection] = set()
        self._handlers: set[asyncio.Task] = set()
        self.requests_handled = 0

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        if self.socket_path.exists():
            self.socket_path.unlink()
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)
        self._server = await asyncio.start_unix_server(
            self._handle_client, path=str(self.socket_path), limit=MAX_MESSAGE_SIZE
        )
        log.info("control server listening", socket=str(self.socket_path))

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        for task in list(self._handlers):
            task.cancel()
        if self._handlers:
            await asyncio.gather(*self._handlers, return_exceptions=True)
        for conn in list(self._connections):
            await conn.close()
        await self._server.wait_closed()
        self._server = None
        if self.socket_path.exists():
            self.socket_path.unlink()
        log.info("control server stopped")

    async def __aenter__(self) -> ControlServer:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        conn = Connection(reader, writer)
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)
        self._connections.add(conn)
        try:
            while True:
                data = await conn.read_message()
                if data is None:
                    return
                await self.respond(conn, await self.handle_message(data))
        except TransportError as e:
            log.warning("control client dropped", error=str(e))
        finally:
            self._connections.discard(conn)
            self._handlers.discard(task)
            await conn.close()

    async def respond(self, conn: Connection, reply: Event) -> None:
        await conn.write_message(encode(reply))

    async def handle_message(self, data: bytes) -> Event:
        """Turn one request frame into the reply event."""
        self.requests_handled += 1
        try:
            event = decode(data)
        except DecodeError as e:
            log.warning("malformed request", error=str(e))
            return error_event(f"malformed request: {e}")

        spec = command_for_request(event.type)
        if spec is None:
            return error_event(f"unsupported event type: {event.type.value}")

        try:
            await getattr(self.controller, spec.name)()
        except PlaybackError as e:
            log.info("command rejected", command=spec.name, error=str(e))
            return error_event(str(e))
        except Exception as e:
            log.exception("controller failed", command=spec.name)
            return error_event(f"{spec.name} failed: {e}")

        log.info("command applied", command=spec.name)
        return Event.create(spec.acknowledgement)
