import asyncio
import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from player_control.engine.transport import ReadError, WriteError


class FakeConnection:
    """Scripted stand-in for ``Connection``: frames are fed, writes are recorded."""

    def __init__(self, fail_write: bool = False, write_delay: float = 0.0) -> None:
        self.frames: asyncio.Queue = asyncio.Queue()
        self.written: list[bytes] = []
        self.close_calls = 0
        self.fail_write = fail_write
        self.write_delay = write_delay

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    def feed(self, *frames: bytes) -> None:
        for frame in frames:
            self.frames.put_nowait(frame)

    def feed_eof(self) -> None:
        self.frames.put_nowait(None)

    def feed_error(self) -> None:
        self.frames.put_nowait(ReadError("connection reset"))

    async def write_message(self, data: bytes) -> None:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        if self.fail_write:
            raise WriteError("broken pipe")
        self.written.append(data)

    async def read_message(self) -> bytes | None:
        if self.closed:
            return None
        item = await self.frames.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.close_calls += 1
        self.frames.put_nowait(None)


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def socket_path() -> Iterator[Path]:
    # Unix socket paths are limited to ~100 bytes, so keep clear of tmp_path.
    tmp = Path(tempfile.mkdtemp(prefix="plr-", dir="/tmp"))
    yield tmp / "control.sock"
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()
