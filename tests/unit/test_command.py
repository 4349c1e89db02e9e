"""Tests for the command orchestrator state machine."""

import asyncio
import time
from pathlib import Path

import pytest

from player_control.engine.codec import decode, encode
from player_control.engine.command import (
    COMMANDS,
    CommandOrchestrator,
    UnknownCommandError,
    command_for_request,
    get_command,
    run_command,
)
from player_control.engine.quit import QuitSignal
from player_control.engine.transport import ConnectError
from player_control.models.event import Event, EventType
from player_control.models.outcome import CommandState, Outcome, OutcomeKind

PAUSE = COMMANDS["pause"]
SOCKET = Path("/tmp/unused.sock")


def frame(event_type: EventType, **payload) -> bytes:
    return encode(Event.create(event_type, payload=payload))


def make_orchestrator(conn, quit_signal=None, timeout=5.0, **kwargs) -> CommandOrchestrator:
    async def connector(address, timeout):
        return conn

    return CommandOrchestrator(
        SOCKET, quit_signal or QuitSignal(), timeout=timeout, connector=connector, **kwargs
    )


class TestCommandTable:
    def test_builtin_commands(self):
        assert set(COMMANDS) == {"pause", "resume", "stop", "next"}
        assert PAUSE.request is EventType.PAUSE
        assert PAUSE.acknowledgement is EventType.PAUSED

    def test_get_command(self):
        assert get_command("next").acknowledgement is EventType.SKIPPED

    def test_unknown_command(self):
        with pytest.raises(UnknownCommandError):
            get_command("rewind")

    def test_command_for_request(self):
        assert command_for_request(EventType.STOP) is COMMANDS["stop"]
        assert command_for_request(EventType.PAUSED) is None


class TestOrchestrator:
    async def test_acknowledged(self, fake_conn):
        fake_conn.feed(frame(EventType.PAUSED))
        orch = make_orchestrator(fake_conn)
        outcome = await orch.execute(PAUSE)
        assert outcome == Outcome.acknowledged()
        assert orch.state is CommandState.DONE
        assert orch.outcome == outcome
        assert fake_conn.close_calls == 1

    async def test_sends_request_event(self, fake_conn):
        fake_conn.feed(frame(EventType.PAUSED))
        await make_orchestrator(fake_conn).execute(PAUSE)
        assert len(fake_conn.written) == 1
        sent = decode(fake_conn.written[0])
        assert sent.type is EventType.PAUSE
        assert sent.payload is None

    async def test_remote_error(self, fake_conn):
        fake_conn.feed(frame(EventType.ERROR, error="disk full"))
        outcome = await make_orchestrator(fake_conn).execute(PAUSE)
        assert outcome == Outcome.remote_error("disk full")
        assert fake_conn.close_calls == 1

    async def test_unreadable_error_payload(self, fake_conn):
        fake_conn.feed(frame(EventType.ERROR, reason="?"))
        outcome = await make_orchestrator(fake_conn).execute(PAUSE)
        assert outcome == Outcome.remote_error("unable to process error")

    async def test_other_commands_acknowledgement_ignored(self, fake_conn):
        fake_conn.feed(frame(EventType.RESUMED))
        outcome = await make_orchestrator(fake_conn, timeout=0.2).execute(PAUSE)
        assert outcome.kind is OutcomeKind.TIMEOUT

    async def test_malformed_frame_then_ack(self, fake_conn):
        fake_conn.feed(b"not an event", frame(EventType.PAUSED))
        outcome = await make_orchestrator(fake_conn).execute(PAUSE)
        assert outcome.ok

    async def test_timeout_bound(self, fake_conn):
        orch = make_orchestrator(fake_conn, timeout=0.3)
        start = time.monotonic()
        outcome = await orch.execute(PAUSE)
        elapsed = time.monotonic() - start
        assert outcome == Outcome.timeout()
        assert 0.3 <= elapsed < 1.5
        assert fake_conn.close_calls == 1

    async def test_disconnect_resolves_by_timeout(self, fake_conn):
        fake_conn.feed_eof()
        outcome = await make_orchestrator(fake_conn, timeout=0.2).execute(PAUSE)
        assert outcome == Outcome.timeout()

    async def test_disconnect_resolves_by_quit(self, fake_conn):
        quit_signal = QuitSignal()
        fake_conn.feed_eof()
        orch = make_orchestrator(fake_conn, quit_signal, timeout=5.0)
        task = asyncio.create_task(orch.execute(PAUSE))
        await asyncio.sleep(0.05)
        quit_signal.set()
        assert await asyncio.wait_for(task, 1) == Outcome.cancelled()

    async def test_quit_preempts_waiting_command(self, fake_conn):
        quit_signal = QuitSignal()
        orch = make_orchestrator(fake_conn, quit_signal, timeout=5.0)
        task = asyncio.create_task(orch.execute(PAUSE))
        await asyncio.sleep(0.05)
        quit_signal.set()
        fake_conn.feed(frame(EventType.PAUSED))
        assert await asyncio.wait_for(task, 1) == Outcome.cancelled()
        assert fake_conn.close_calls == 1

    async def test_quit_already_set(self, fake_conn):
        quit_signal = QuitSignal()
        quit_signal.set()
        outcome = await make_orchestrator(fake_conn, quit_signal).execute(PAUSE)
        assert outcome == Outcome.cancelled()

    async def test_response_before_quit_wins(self, fake_conn):
        quit_signal = QuitSignal()
        fake_conn.feed(frame(EventType.PAUSED))
        orch = make_orchestrator(fake_conn, quit_signal)
        task = asyncio.create_task(orch.execute(PAUSE))
        await asyncio.sleep(0.05)
        quit_signal.set()
        assert (await task).ok

    async def test_connect_failure(self):
        async def connector(address, timeout):
            raise ConnectError("player is not running")

        orch = CommandOrchestrator(SOCKET, QuitSignal(), connector=connector)
        outcome = await orch.execute(PAUSE)
        assert outcome == Outcome.transport_failure("player is not running")
        assert orch.state is CommandState.DONE

    async def test_write_failure(self, fake_conn):
        fake_conn.fail_write = True
        orch = make_orchestrator(fake_conn)
        outcome = await orch.execute(PAUSE)
        assert outcome.kind is OutcomeKind.TRANSPORT_FAILURE
        assert "broken pipe" in outcome.description
        assert fake_conn.close_calls == 1

    async def test_listener_stopped_when_done(self, fake_conn):
        orch = make_orchestrator(fake_conn, timeout=0.1)
        await orch.execute(PAUSE)
        pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        assert pending == []

    async def test_caller_cancellation_closes_connection(self, fake_conn):
        orch = make_orchestrator(fake_conn, timeout=5.0)
        task = asyncio.create_task(orch.execute(PAUSE))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert fake_conn.close_calls == 1

    async def test_not_reusable(self, fake_conn):
        fake_conn.feed(frame(EventType.PAUSED))
        orch = make_orchestrator(fake_conn)
        await orch.execute(PAUSE)
        with pytest.raises(RuntimeError, match="already executed"):
            await orch.execute(PAUSE)

    async def test_run_command(self, fake_conn):
        async def connector(address, timeout):
            return fake_conn

        fake_conn.feed(frame(EventType.STOPPED))
        outcome = await run_command(
            COMMANDS["stop"], SOCKET, QuitSignal(), timeout=1.0, connector=connector
        )
        assert outcome.ok


class TestPayloadShapes:
    async def test_null_payload_acknowledgement(self, fake_conn):
        fake_conn.feed(b'{"type":"paused","created":"2024-01-01T00:00:00Z","payload":null}')
        outcome = await make_orchestrator(fake_conn).execute(PAUSE)
        assert outcome == Outcome.acknowledged()

    async def test_error_with_non_object_payload(self, fake_conn):
        fake_conn.feed(b'{"type":"error","created":"2024-01-01T00:00:00Z","payload":"oops"}')
        outcome = await make_orchestrator(fake_conn).execute(PAUSE)
        assert outcome == Outcome.remote_error("unable to process error")

    async def test_error_with_null_payload(self, fake_conn):
        fake_conn.feed(b'{"type":"error","created":"2024-01-01T00:00:00Z","payload":null}')
        outcome = await make_orchestrator(fake_conn).execute(PAUSE)
        assert outcome == Outcome.remote_error("unable to process error")

    async def test_request_payload_is_sent(self, fake_conn):
        fake_conn.feed(frame(EventType.PAUSED))
        await make_orchestrator(fake_conn).execute(PAUSE, payload={"fade_ms": 250})
        assert decode(fake_conn.written[0]).payload == {"fade_ms": 250}


class TestQuitBeforeResponse:
    async def test_quit_during_slow_connect(self):
        quit_signal = QuitSignal()
        connector_cancelled = asyncio.Event()

        async def slow_connector(address, timeout):
            try:
                await asyncio.sleep(2)
            except asyncio.CancelledError:
                connector_cancelled.set()
                raise
            raise AssertionError("connect should have been abandoned")

        orch = CommandOrchestrator(SOCKET, quit_signal, connector=slow_connector)
        task = asyncio.create_task(orch.execute(PAUSE))
        await asyncio.sleep(0.05)
        start = time.monotonic()
        quit_signal.set()
        outcome = await asyncio.wait_for(task, 1)
        assert time.monotonic() - start < 0.5
        assert outcome == Outcome.cancelled()
        assert orch.state is CommandState.DONE
        assert connector_cancelled.is_set()

    async def test_connection_that_arrives_after_quit_is_closed(self, fake_conn):
        quit_signal = QuitSignal()

        async def stubborn_connector(address, timeout):
            try:
                await asyncio.sleep(2)
            except asyncio.CancelledError:
                return fake_conn

        orch = CommandOrchestrator(SOCKET, quit_signal, connector=stubborn_connector)
        task = asyncio.create_task(orch.execute(PAUSE))
        await asyncio.sleep(0.05)
        quit_signal.set()
        assert await asyncio.wait_for(task, 1) == Outcome.cancelled()
        assert fake_conn.close_calls == 1
        assert fake_conn.written == []

    async def test_quit_during_slow_write(self, fake_conn):
        quit_signal = QuitSignal()
        fake_conn.write_delay = 2.0
        orch = make_orchestrator(fake_conn, quit_signal)
        task = asyncio.create_task(orch.execute(PAUSE))
        await asyncio.sleep(0.05)
        quit_signal.set()
        assert await asyncio.wait_for(task, 1) == Outcome.cancelled()
        assert fake_conn.written == []
        assert fake_conn.close_calls == 1
