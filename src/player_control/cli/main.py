import asyncio
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.markup import escape

from player_control import __version__
from player_control.config.loader import ConfigError, ConfigLoader
from player_control.config.schema import ClientConfig
from player_control.engine.command import COMMANDS, CommandOrchestrator, CommandSpec
from player_control.engine.quit import QuitSignal
from player_control.logging_config import (
    LOG_FORMATS,
    bind_command_context,
    clear_command_context,
    configure_logging,
)
from player_control.models.outcome import Outcome, OutcomeKind

console = Console()


def _run_async(coro):
    """Run an async function from sync Click commands."""
    return asyncio.run(coro)


def render_outcome(outcome: Outcome, command: CommandSpec, timeout: float) -> str:
    if outcome.kind == OutcomeKind.ACKNOWLEDGED:
        return f"[green]{command.done_message}[/green]"
    if outcome.kind == OutcomeKind.REMOTE_ERROR:
        return f"[red]remote error: {escape(outcome.description or '')}[/red]"
    if outcome.kind == OutcomeKind.TIMEOUT:
        return f"[yellow]timed out after {timeout:g}s[/yellow]"
    if outcome.kind == OutcomeKind.CANCELLED_BY_QUIT:
        return "[yellow]cancelled[/yellow]"
    return f"[red]unable to reach player: {escape(outcome.description or '')}[/red]"


def _get_config(ctx: click.Context) -> ClientConfig:
    return ctx.obj["config"]


@click.group()
@click.version_option(version=__version__, prog_name="player")
@click.option("--config", "config_path", default=None, type=click.Path(path_type=Path), help="Client config file")
@click.option("--socket-path", default=None, type=click.Path(path_type=Path), help="Player control socket")
@click.option("--timeout", default=None, type=click.FloatRange(min=0, min_open=True), help="Seconds to wait for the player")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ...)")
@click.option("--log-format", default=None, type=click.Choice(LOG_FORMATS), help="Log rendering on stderr")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    socket_path: Path | None,
    timeout: float | None,
    log_level: str | None,
    log_format: str | None,
) -> None:
    """Control a running media player daemon."""
    ctx.ensure_object(dict)
    try:
        config = ConfigLoader(config_path).load()
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)

    overrides = {}
    if socket_path is not None:
        overrides["socket_path"] = socket_path
    if timeout is not None:
        overrides["timeout_seconds"] = timeout
    if log_level is not None:
        overrides["log_level"] = log_level
    if log_format is not None:
        overrides["log_format"] = log_format
    if overrides:
        try:
            config = ClientConfig.model_validate({**config.model_dump(), **overrides})
        except ValueError as e:
            console.print(f"[red]Invalid option: {e}[/red]")
            raise SystemExit(1)

    configure_logging(config.log_level, config.log_format)
    ctx.obj["config"] = config


def _make_command(spec: CommandSpec) -> click.Command:
    @click.pass_context
    def run(ctx: click.Context) -> None:
        config = _get_config(ctx)
        log = structlog.get_logger()
        bind_command_context(spec.name, config.socket_path)

        async def go() -> Outcome:
            quit_signal = QuitSignal()
            quit_signal.install_signal_handlers()
            try:
                orch = CommandOrchestrator(
                    config.socket_path,
                    quit_signal,
                    timeout=config.timeout_seconds,
                    connect_timeout=config.connect_timeout_seconds,
                    max_consecutive_decode_errors=config.max_consecutive_decode_errors,
                )
                console.print(spec.progress)
                return await orch.execute(spec)
            finally:
                quit_signal.remove_signal_handlers()

        try:
            outcome = _run_async(go())
            log.debug("outcome rendered", outcome=outcome.kind.value)
        finally:
            clear_command_context()
        console.print(render_outcome(outcome, spec, config.timeout_seconds))
        if not outcome.ok:
            raise SystemExit(1)

    return click.Command(spec.name, callback=run, help=spec.description)


for _spec in COMMANDS.values():
    cli.add_command(_make_command(_spec))


@cli.command()
@click.option("--no-track", is_flag=True, help="Start with an empty queue")
@click.pass_context
def serve(ctx: click.Context, no_track: bool) -> None:
    """Run a simulated player daemon in the foreground."""
    from player_control.testing.simulation import SimulatedPlayer
    from player_control.engine.server import ControlServer

    config = _get_config(ctx)
    player = SimulatedPlayer(tracks=[]) if no_track else SimulatedPlayer()

    async def run_daemon() -> None:
        quit_signal = QuitSignal()
        quit_signal.install_signal_handlers()
        async with ControlServer(player, config.socket_path):
            console.print(
                f"[green]Simulated player listening on {config.socket_path}.[/green] Press Ctrl+C to stop."
            )
            await quit_signal.wait()
        console.print("\n[yellow]Shutting down...[/yellow]")

    _run_async(run_daemon())


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Show the effective client configuration."""
    config = _get_config(ctx)
    for key, value in config.model_dump().items():
        console.print(f"[cyan]{key}[/cyan]: {value}")
