from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from player_control.config.schema import ClientConfig

SOCKET_ENV_VAR = "PLAYER_SOCKET"


class ConfigError(Exception):
    """Raised when config loading or validation fails."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        super().__init__(f"{path}: {message}")


def default_config_path() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "player" / "config.yaml"


class ConfigLoader:
    """Reads the client YAML config. A missing or empty file yields defaults."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or default_config_path()

    def load(self) -> ClientConfig:
        raw = self._read()
        env_socket = os.environ.get(SOCKET_ENV_VAR)
        if env_socket:
            raw["socket_path"] = env_socket
        try:
            return ClientConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(self.path, f"Validation error: {e}") from e

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            raw = yaml.safe_load(self.path.read_text())
        except yaml.YAMLError as e:
            raise ConfigError(self.path, f"Invalid YAML: {e}") from e
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigError(self.path, "Expected a YAML mapping at top level")
        return raw
