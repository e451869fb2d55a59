"""Configuration management for hhx."""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import HhxConfig
from .resolver import resolve_with_precedence, set_nested

DEFAULT_CONFIG_PATH = Path("~/.hhx/config.yaml")
ENV_PREFIX = "HHX__"
_CONFIG_HEADER = textwrap.dedent(
    """\
    # hhx configuration file
    # Manage with `hhx config set KEY --value VALUE` or edit by hand.
    """
)


class ConfigManager:
    """Read and write the user configuration file and resolve effective settings."""

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = env if env is not None else os.environ

    @property
    def config_path(self) -> Path:
        """Return the resolved configuration path."""
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
    ) -> HhxConfig:
        """Return the effective configuration.

        A missing file is treated as empty; loading never creates it.

        Args:
            cli_overrides: Highest-precedence overrides, nested or dotted.
            include_env: Whether ``HHX__SECTION__KEY`` variables are applied.

        Raises:
            ConfigError: If the file or any override is invalid.
        """
        env_data = self.env_overrides() if include_env else None
        return resolve_with_precedence(
            file_overrides=self.read_overrides(),
            env_overrides=env_data,
            cli_overrides=cli_overrides,
        )

    def read_overrides(self) -> dict[str, Any]:
        """Return the raw mapping stored on disk, or an empty mapping."""
        if not self._config_path.exists():
            return {}
        try:
            raw = yaml.safe_load(self._config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")
        return raw

    def set_value(self, dotted_key: str, value: Any) -> HhxConfig:
        """Persist ``value`` at ``dotted_key`` after validating the result.

        Returns:
            HhxConfig: Configuration resolved from the updated file.

        Raises:
            ConfigError: If the key is malformed or the value is invalid.
        """
        segments = [segment.strip() for segment in dotted_key.split(".") if segment.strip()]
        if not segments:
            raise ConfigError("KEY must be a dotted path such as 'scan.strict_staging'.")
        data = self.read_overrides()
        set_nested(data, segments, value, label="file")
        resolved = resolve_with_precedence(file_overrides=data)
        self.save(data)
        return resolved

    def save(self, config: HhxConfig | Mapping[str, Any]) -> None:
        """Write configuration data to disk with a generated header."""
        if isinstance(config, HhxConfig):
            data = config.model_dump(mode="python")
        else:
            data = dict(config)
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        body = yaml.safe_dump(data, sort_keys=False)
        self._config_path.write_text(
            f"{_CONFIG_HEADER}# Last updated: {stamp}\n{body}", encoding="utf-8"
        )

    def env_overrides(self) -> dict[str, Any]:
        """Collect ``HHX__SECTION__KEY`` variables as nested overrides."""
        overrides: dict[str, Any] = {}
        for key, raw_value in self._env.items():
            if not key.startswith(ENV_PREFIX):
                continue
            segments = [part.lower() for part in key[len(ENV_PREFIX) :].split("__") if part]
            if not segments:
                continue
            try:
                value = yaml.safe_load(raw_value)
            except yaml.YAMLError:
                value = raw_value
            set_nested(overrides, segments, value, label="environment")
        return overrides


__all__ = [
    "ConfigManager",
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "ENV_PREFIX",
    "HhxConfig",
    "resolve_with_precedence",
]
