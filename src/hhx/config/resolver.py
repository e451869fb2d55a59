"""Merge configuration layers into a validated ``HhxConfig``."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from .exceptions import ConfigError
from .models import HhxConfig


def resolve_with_precedence(
    *,
    defaults: Optional[HhxConfig] = None,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> HhxConfig:
    """Layer overrides over the defaults: file, then environment, then CLI.

    Override keys may be nested mappings or dotted paths such as ``scan.strict_staging``.

    Raises:
        ConfigError: If an override is malformed or the merged values are invalid.
    """
    merged = (defaults or HhxConfig()).model_dump(mode="python")
    layers = (("file", file_overrides), ("environment", env_overrides), ("cli", cli_overrides))
    for label, layer in layers:
        if layer:
            merged = deep_merge(merged, expand_dotted(layer, label=label))

    try:
        return HhxConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def expand_dotted(source: Mapping[str, Any], *, label: str = "override") -> dict[str, Any]:
    """Turn ``{"a.b": 1}`` style keys into nested dictionaries."""
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{label.capitalize()} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str):
            raise ConfigError(f"{label.capitalize()} override keys must be strings.")
        if isinstance(value, MappingABC):
            value = expand_dotted(value, label=label)
        set_nested(expanded, key.split("."), value, label=label)
    return expanded


def set_nested(
    target: dict[str, Any], path: list[str], value: Any, *, label: str = "override"
) -> None:
    """Assign ``value`` at ``path`` inside ``target``, creating mappings on the way.

    Raises:
        ConfigError: If an intermediate key already holds a non-mapping value.
    """
    node = target
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(
                f"{label.capitalize()} override for {'.'.join(path)} conflicts with "
                f"the scalar value at '{segment}'."
            )
        node = child
    leaf = path[-1]
    if isinstance(value, dict) and isinstance(node.get(leaf), dict):
        node[leaf] = deep_merge(node[leaf], value)
    else:
        node[leaf] = value


def deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``base`` with ``overrides`` merged in recursively."""
    merged = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = ["resolve_with_precedence", "expand_dotted", "set_nested", "deep_merge"]
