"""Process-wide quit signal.

Set once (typically from a SIGINT/SIGTERM handler) and never reset. Any
number of waiters may observe it; observing does not consume it.
"""

from __future__ import annotations

import asyncio
import signal

import structlog

log = structlog.get_logger()


class QuitSignal:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def set(self, reason: str = "quit requested") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        log.info("quit signal set", reason=reason)

    async def wait(self) -> None:
        await self._event.wait()

    def install_signal_handlers(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
    ) -> None:
        """Route OS interrupts on the running loop to this signal."""
        loop = loop or asyncio.get_running_loop()
        for sig in signals:
            loop.add_signal_handler(sig, self.set, sig.name)

    def remove_signal_handlers(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
    ) -> None:
        loop = loop or asyncio.get_running_loop()
        for sig in signals:
            loop.remove_signal_handler(sig)

