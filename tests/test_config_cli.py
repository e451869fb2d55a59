"""CLI tests for configuration commands."""

import os
from pathlib import Path
from typing import Any

from click.testing import CliRunner

from hhx.cli import cli
from hhx.config import ConfigManager


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    env = dict(os.environ)
    env["HOME"] = str(tmp_path)
    for key in list(env):
        if key.startswith("HHX__"):
            del env[key]
    return env


def _config_path(tmp_path: Path) -> Path:
    return tmp_path / ".hhx" / "config.yaml"


def test_config_view_displays_effective_config(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "view"], env=env)

    assert result.exit_code == 0
    assert "remote:" in result.output
    assert "strict_staging: true" in result.output
    assert not _config_path(tmp_path).exists()


def test_config_view_applies_environment_unless_disabled(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    env["HHX__REMOTE__REMOTE_NAME"] = "mirror"

    with_env = runner.invoke(cli, ["config", "view"], env=env)
    without_env = runner.invoke(cli, ["config", "view", "--no-env"], env=env)

    assert "remote_name: mirror" in with_env.output
    assert "remote_name: origin" in without_env.output


def test_config_set_updates_value(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["config", "set", "scan.strict_staging", "--value", "false"], env=env
    )

    assert result.exit_code == 0
    assert "Updated scan.strict_staging." in result.output

    config = ConfigManager(config_path=_config_path(tmp_path), env={}).load()
    assert config.scan.strict_staging is False


def test_config_set_rejects_invalid_value(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", "logging.level", "--value", "LOUD"], env=env)

    assert result.exit_code != 0
    assert "Invalid configuration values" in result.output
    assert not _config_path(tmp_path).exists()


def test_config_path_prints_location(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "path"], env=env)

    assert result.exit_code == 0
    assert result.output.strip() == str(_config_path(tmp_path))
