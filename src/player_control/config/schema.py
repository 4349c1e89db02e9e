from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


def default_socket_path() -> Path:
    """``$XDG_RUNTIME_DIR/player/control.sock``, or ``/tmp/player.sock``."""
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir:
        return Path(runtime_dir) / "player" / "control.sock"
    return Path("/tmp/player.sock")


class ClientConfig(BaseModel):
    """Settings for the command-line client, loaded from YAML."""

    socket_path: Path = Field(default_factory=default_socket_path)
    timeout_seconds: float = Field(default=30.0, gt=0)
    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    max_consecutive_decode_errors: int = Field(default=3, ge=1)
    log_level: str = "WARNING"
    log_format: Literal["auto", "console", "json"] = "auto"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level '{v}'")
        return level
