"""Configuration models describing hhx settings."""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

from hhx.index.walker import DEFAULT_EXCLUDED_DIRS


class HhxBaseModel(BaseModel):
    """Shared configuration for hhx settings models."""

    model_config = ConfigDict(extra="forbid")


class RemoteSettings(HhxBaseModel):
    """Remote service coordinates.

    Attributes:
        server_url: Base URL of the remote API server.
        remote_name: Remote name shown by `hhx status`.
    """

    server_url: str = "http://localhost:8080"
    remote_name: str = "origin"


class ScanOptions(HhxBaseModel):
    """Working-tree traversal settings.

    Attributes:
        excluded_dirs: Directory names pruned in addition to hidden directories.
        strict_staging: Whether one unreadable file aborts directory staging.
    """

    excluded_dirs: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_DIRS))
    strict_staging: bool = True


class LoggingSettings(HhxBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"


class CLIOptions(HhxBaseModel):
    """CLI behavior defaults.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        default_collection: Name of the bucket collection created by ``hhx init``.
    """

    quiet_default: bool = False
    default_collection: str = "default"


class HhxConfig(HhxBaseModel):
    """Top-level configuration for hhx.

    Attributes:
        remote: Remote service settings.
        scan: Working-tree traversal settings.
        logging: Logging configuration.
        cli: CLI defaults.
    """

    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    scan: ScanOptions = Field(default_factory=ScanOptions)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "HhxBaseModel",
    "RemoteSettings",
    "ScanOptions",
    "LoggingSettings",
    "CLIOptions",
    "HhxConfig",
]
