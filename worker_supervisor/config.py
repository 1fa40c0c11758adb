"""
Configuration for the worker supervisor.

Loads settings from environment variables (and a local .env file) with
sensible defaults. Values are read when a Config is constructed, so tests can
build independent instances from a patched environment.
"""

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Raised when the supervisor configuration is unusable."""


def _env(name: str, default: str) -> str:
    return os.environ.get(name, default)


def _optional_path(name: str) -> Optional[Path]:
    value = os.environ.get(name, "").strip()
    return Path(value) if value else None


@dataclass
class Config:
    """Supervisor configuration."""

    # Worker
    command: list[str] = field(
        default_factory=lambda: shlex.split(_env("WORKER_COMMAND", "node server-stable.js"))
    )
    working_dir: Optional[Path] = field(default_factory=lambda: _optional_path("WORKER_WORKING_DIR"))
    port: int = field(default_factory=lambda: int(_env("WORKER_PORT", "3001")))
    port_env: str = field(default_factory=lambda: _env("WORKER_PORT_ENV", "PORT"))

    # Restart policy
    max_restarts: int = field(default_factory=lambda: int(_env("MAX_RESTARTS", "5")))
    restart_delay: float = field(default_factory=lambda: float(_env("RESTART_DELAY", "2.0")))

    # Logging
    log_file: Optional[Path] = field(default_factory=lambda: _optional_path("SUPERVISOR_LOG_FILE"))
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO").upper())
    log_max_bytes: int = field(
        default_factory=lambda: int(_env("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    )
    log_backup_count: int = field(default_factory=lambda: int(_env("LOG_BACKUP_COUNT", "5")))

    @classmethod
    def from_env(cls, argv: Optional[list[str]] = None) -> "Config":
        """Build a config from the environment; a non-empty argv replaces the worker command."""
        cfg = cls()
        if argv:
            cfg.command = list(argv)
        cfg.validate()
        return cfg

    def validate(self):
        """Raise ConfigError if any setting is out of range."""
        if not self.command:
            raise ConfigError("Worker command is empty")
        if self.max_restarts < 0:
            raise ConfigError(f"MAX_RESTARTS must be >= 0, got {self.max_restarts}")
        if self.restart_delay < 0:
            raise ConfigError(f"RESTART_DELAY must be >= 0, got {self.restart_delay}")
        if not 0 < self.port < 65536:
            raise ConfigError(f"WORKER_PORT must be between 1 and 65535, got {self.port}")
        if not self.port_env:
            raise ConfigError("WORKER_PORT_ENV must not be empty")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {self.log_level}")

    def worker_env(self) -> dict[str, str]:
        """Inherited environment with the port variable forced to the configured port."""
        env = os.environ.copy()
        env[self.port_env] = str(self.port)
        return env

    @property
    def worker_url(self) -> str:
        return f"http://localhost:{self.port}"
