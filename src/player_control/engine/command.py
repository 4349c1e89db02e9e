"""Command orchestrator: one request, one bounded outcome.

``Idle -> Sending -> AwaitingResponse -> Done(Outcome)``. In
``AwaitingResponse`` the listener's terminal event, the quit signal and a
deadline race; whichever fires first decides the outcome. The quit signal
also cuts short a slow connect or send. Nothing is retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import structlog
from pydantic import JsonValue

from player_control.engine.codec import DecodeError, EncodeError, decode_payload, encode
from player_control.engine.listener import ResponseListener
from player_control.engine.quit import QuitSignal
from player_control.engine.transport import Connection, TransportError, connect
from player_control.models.event import ErrorPayload, Event, EventType
from player_control.models.outcome import CommandState, Outcome

log = structlog.get_logger()

DEFAULT_TIMEOUT = 30.0

T = TypeVar("T")


@dataclass(frozen=True)
class CommandSpec:
    """A request event type and the event type that acknowledges it."""

    name: str
    request: EventType
    acknowledgement: EventType
    description: str
    progress: str
    done_message: str


COMMANDS: dict[str, CommandSpec] = {
    spec.name: spec
    for spec in (
        CommandSpec("pause", EventType.PAUSE, EventType.PAUSED,
                    "Pauses the player", "Pausing player...", "Playback paused"),
        CommandSpec("resume", EventType.RESUME, EventType.RESUMED,
                    "Resumes playback", "Resuming player...", "Playback resumed"),
        CommandSpec("stop", EventType.STOP, EventType.STOPPED,
                    "Stops playback", "Stopping player...", "Playback stopped"),
        CommandSpec("next", EventType.NEXT, EventType.SKIPPED,
                    "Skips to the next track", "Skipping track...", "Skipped to next track"),
    )
}


class UnknownCommandError(KeyError):
    pass


def get_command(name: str) -> CommandSpec:
    try:
        return COMMANDS[name]
    except KeyError:
        raise UnknownCommandError(name) from None


def command_for_request(event_type: EventType) -> CommandSpec | None:
    for spec in COMMANDS.values():
        if spec.request == event_type:
            return spec
    return None


Connector = Callable[..., Awaitable[Connection]]


async def _abandon(task: asyncio.Future) -> None:
    """Cancel ``task`` and wait for it to settle without raising its result."""
    task.cancel()
    await asyncio.wait({task})


class CommandOrchestrator:
    """Runs a single command invocation. Instances are not reusable."""

    def __init__(
        self,
        socket_path: Path,
        quit_signal: QuitSignal,
        timeout: float = DEFAULT_TIMEOUT,
        connect_timeout: float = 5.0,
        max_consecutive_decode_errors: int = 3,
        connector: Connector = connect,
    ) -> None:
        self.socket_path = socket_path
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.max_consecutive_decode_errors = max_consecutive_decode_errors
        self._quit = quit_signal
        self._connector = connector
        self.state = CommandState.IDLE
        self.outcome: Outcome | None = None

    async def execute(
        self, command: CommandSpec, payload: JsonValue = None
    ) -> Outcome:
        if self.state != CommandState.IDLE:
            raise RuntimeError(f"command already executed (state={self.state})")
        bound = log.bind(command=command.name)

        self._transition(CommandState.SENDING, bound)
        try:
            quit_won, connecting = await self._unless_quit(
                self._connector(self.socket_path, timeout=self.connect_timeout)
            )
            if quit_won:
                if not connecting.cancelled() and connecting.exception() is None:
                    await connecting.result().close()
                return self._finish(Outcome.cancelled(), bound)
            conn = connecting.result()
        except TransportError as e:
            return self._finish(Outcome.transport_failure(str(e)), bound)

        listener: ResponseListener | None = None
        try:
            try:
                data = encode(Event.create(command.request, payload=payload))
                quit_won, sending = await self._unless_quit(conn.write_message(data))
                if quit_won:
                    if not sending.cancelled():
                        sending.exception()
                    return self._finish(Outcome.cancelled(), bound)
                sending.result()
            except (TransportError, EncodeError) as e:
                return self._finish(Outcome.transport_failure(str(e)), bound)
            bound.debug("command sent", request=command.request.value)

            self._transition(CommandState.AWAITING_RESPONSE, bound)
            listener = ResponseListener(
                conn,
                terminal_types=(command.acknowledgement, EventType.ERROR),
                max_consecutive_decode_errors=self.max_consecutive_decode_errors,
            )
            listener.start()
            outcome = await self._race(listener)
            return self._finish(outcome, bound)
        finally:
            await conn.close()
            if listener is not None:
                await listener.stop()

    async def _unless_quit(self, aw: Awaitable[T]) -> tuple[bool, asyncio.Future[T]]:
        """Await ``aw`` unless the quit signal fires first.

        Returns ``(quit_won, work)``. When quit wins, ``work`` has been
        cancelled, or finished anyway and holds a result the caller must
        release.
        """
        work = asyncio.ensure_future(aw)
        quit_waiter = asyncio.create_task(self._quit.wait())
        try:
            done, _ = await asyncio.wait(
                {work, quit_waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work.cancel()
            quit_waiter.cancel()
            raise
        await _abandon(quit_waiter)
        quit_won = work not in done
        if quit_won:
            await _abandon(work)
        return quit_won, work

    async def _race(self, listener: ResponseListener) -> Outcome:
        loop = asyncio.get_running_loop()
        winner: asyncio.Future[str] = loop.create_future()

        def fired(name: str) -> Callable[[asyncio.Future], None]:
            def callback(fut: asyncio.Future) -> None:
                if not winner.done() and not fut.cancelled():
                    winner.set_result(name)
            return callback

        # Done callbacks run in completion order, so the first input to fire wins.
        listener.completion.add_done_callback(fired("response"))
        quit_waiter = asyncio.create_task(self._quit.wait())
        quit_waiter.add_done_callback(fired("quit"))
        try:
            done, _ = await asyncio.wait({winner}, timeout=self.timeout)
        finally:
            await _abandon(quit_waiter)

        if not done:
            return Outcome.timeout()
        if winner.result() == "quit":
            return Outcome.cancelled()
        return self._outcome_for(listener.completion.result())

    @staticmethod
    def _outcome_for(event: Event) -> Outcome:
        if event.type != EventType.ERROR:
            return Outcome.acknowledged()
        try:
            payload = decode_payload(event)
        except DecodeError as e:
            log.warning("unable to process error payload", error=str(e))
            return Outcome.remote_error("unable to process error")
        if not isinstance(payload, ErrorPayload):
            return Outcome.remote_error("unable to process error")
        return Outcome.remote_error(payload.error)

    def _transition(self, state: CommandState, bound: structlog.BoundLogger) -> None:
        bound.debug("command state", previous=self.state.value, state=state.value)
        self.state = state

    def _finish(self, outcome: Outcome, bound: structlog.BoundLogger) -> Outcome:
        self._transition(CommandState.DONE, bound)
        self.outcome = outcome
        bound.info("command finished", outcome=outcome.kind.value, description=outcome.description)
        return outcome


async def run_command(
    command: CommandSpec,
    socket_path: Path,
    quit_signal: QuitSignal,
    timeout: float = DEFAULT_TIMEOUT,
    **kwargs: Any,
) -> Outcome:
    """Convenience wrapper: build a fresh orchestrator and execute one command."""
    orch = CommandOrchestrator(socket_path, quit_signal, timeout=timeout, **kwargs)
    return await orch.execute(command)
