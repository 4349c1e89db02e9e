"""Transport client: newline-framed messages over a Unix domain socket."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog

log = structlog.get_logger()

DELIMITER = b"\n"
# Largest single frame accepted from the daemon.
MAX_MESSAGE_SIZE = 1024 * 1024


class TransportError(Exception):
    pass


class ConnectError(TransportError):
    """The daemon is not reachable."""


class WriteError(TransportError):
    pass


class ReadError(TransportError):
    pass


class Connection:
    """A duplex stream to the daemon. ``close()`` may be called any number of times."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        address: Path | None = None,
    ) -> None:
        self.address = address
        self._reader = reader
        self._writer = writer
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write_message(self, data: bytes) -> None:
        """Send one complete message, appending the frame delimiter."""
        if DELIMITER in data:
            raise WriteError("message contains a frame delimiter")
        if self._closed:
            raise WriteError("connection is closed")
        try:
            self._writer.write(data + DELIMITER)
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise WriteError(f"failed to send message: {e}") from e

    async def read_message(self) -> bytes | None:
        """Block until one complete message arrives.

        Returns ``None`` on EOF. A trailing fragment without a delimiter is
        discarded, never returned.
        """
        if self._closed:
            return None
        try:
            line = await self._reader.readuntil(DELIMITER)
        except asyncio.IncompleteReadError as e:
            if e.partial:
                log.debug("discarding partial frame at eof", size=len(e.partial))
            return None
        except asyncio.LimitOverrunError as e:
            raise ReadError(f"message exceeds {MAX_MESSAGE_SIZE} bytes") from e
        except (ConnectionError, OSError) as e:
            raise ReadError(f"failed to read message: {e}") from e
        return line[: -len(DELIMITER)]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            log.debug("connection close failed", exc_info=True)


async def connect(address: Path, timeout: float = 5.0) -> Connection:
    """Open a connection to the daemon. Fails fast, never retries."""
    if not address.exists():
        raise ConnectError(f"player is not running (no socket at {address})")
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_unix_connection(str(address), limit=MAX_MESSAGE_SIZE),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise ConnectError(f"timed out connecting to player at {address}") from e
    except (ConnectionRefusedError, FileNotFoundError, OSError) as e:
        raise ConnectError(f"cannot connect to player at {address}: {e}") from e
    return Connection(reader, writer, address)


@asynccontextmanager
async def open_connection(address: Path, timeout: float = 5.0) -> AsyncIterator[Connection]:
    """Scoped acquisition: the connection is closed on every exit path."""
    conn = await connect(address, timeout=timeout)
    try:
        yield conn
    finally:
        await conn.close()
