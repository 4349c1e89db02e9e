import logging
import sys
from pathlib import Path

import structlog

LOG_FORMATS = ("auto", "console", "json")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    if log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=False)
    # auto: pretty output for a person at a terminal, JSON when piped
    return structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer()


def configure_logging(level: str = "WARNING", log_format: str = "auto") -> None:
    """Configure structured logging for the client or daemon process.

    Logs go to stderr so they never mix with the outcome line on stdout.
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(f"unknown log format '{log_format}'")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _renderer(log_format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.WARNING)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def bind_command_context(command: str, socket_path: Path) -> None:
    """Tag every log line of this invocation with the command and control socket.

    Bound through contextvars, so module-level loggers pick it up too.
    """
    structlog.contextvars.bind_contextvars(command=command, socket=str(socket_path))


def clear_command_context() -> None:
    structlog.contextvars.unbind_contextvars("command", "socket")
