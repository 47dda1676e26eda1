"""Daemon configuration records.

The command line builds one ``DaemonConfig`` and hands it to every
component explicitly; nothing reads configuration from module globals.
"""

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import InvalidConfigError
from .paths import DATABASE_PATH, DEFAULT_PORT, PID_PATH


class ListenConfig(BaseModel):
    """Pydantic model for the listening socket."""

    host: Optional[str] = None
    port: int = DEFAULT_PORT

    @field_validator("port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 0 <= value <= 65535:
            raise ValueError(f"port {value} out of range")
        return value

    @classmethod
    def parse(cls, address: str) -> "ListenConfig":
        """Parse ``PORT`` or ``HOST:PORT`` (IPv6 hosts in brackets)."""

        address = address.strip()
        host: Optional[str] = None
        port = address

        if ":" in address:
            host, _, port = address.rpartition(":")
            host = host.strip("[]") or None

        try:
            return cls(host=host, port=int(port))
        except ValueError as e:
            raise InvalidConfigError(
                f"Invalid listen address '{address}': {e}",
                details={"listen": address},
            ) from e

    def __str__(self) -> str:
        return f"{self.host or '*'}:{self.port}"


class DaemonConfig(BaseModel):
    """Pydantic model for the complete daemon configuration."""

    logfile: Path
    database: Path = DATABASE_PATH
    listen: ListenConfig = Field(default_factory=ListenConfig)
    interval: int = 10  # seconds
    poll_interval: float = 1.0  # seconds
    reopen_timeout: float = 60.0  # seconds
    replay: bool = False
    pidfile: Path = PID_PATH
    user: Optional[str] = None
    debug: bool = False

    @field_validator("interval")
    @classmethod
    def _check_interval(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("heartbeat interval must be positive")
        return value

    @field_validator("poll_interval", "reopen_timeout")
    @classmethod
    def _check_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @classmethod
    def build(cls, **values: Any) -> "DaemonConfig":
        """Validate raw values, raising InvalidConfigError on failure."""

        try:
            return cls(**values)
        except ValidationError as e:
            raise InvalidConfigError(
                f"Configuration data does not match expected schema: {e}"
            ) from e
