"""Helpers shared by hhx CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

import click
from pydantic import ValidationError

from hhx.index import Column, FileRecord, Schema
from hhx.index.errors import HhxError
from hhx.index.walker import DEFAULT_METADATA_DIRNAME

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


class RepositoryNotFoundError(HhxError):
    """Raised when no enclosing hhx repository can be found."""


def find_repo_root(start: Path, metadata_dirname: str = DEFAULT_METADATA_DIRNAME) -> Path:
    """Return the nearest directory at or above ``start`` that holds a metadata directory.

    Raises:
        RepositoryNotFoundError: If no enclosing repository exists.
    """
    start = start.expanduser().absolute()
    candidate = start if start.is_dir() else start.parent
    for current in [candidate, *candidate.parents]:
        if (current / metadata_dirname).is_dir():
            return current
    raise RepositoryNotFoundError(
        f"No hhx repository found at or above {start}. Run `hhx init` first."
    )


def absolute_argument(value: str) -> Path:
    """Return a CLI path argument as an absolute path without resolving symlinks."""
    return Path(value).expanduser().absolute()


def format_size(size: int) -> str:
    """Render a byte count with a binary unit suffix, e.g. ``1.50 KB``."""
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{size} {_SIZE_UNITS[0]}"
    return f"{value:.2f} {_SIZE_UNITS[unit]}"


def parse_columns(text: str) -> Schema:
    """Parse ``name:type[:pk][:null],...`` column definitions into a schema.

    Raises:
        click.BadParameter: If a definition is malformed.
    """
    columns: list[Column] = []
    for definition in (part.strip() for part in text.split(",")):
        if not definition:
            continue
        parts = definition.split(":")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise click.BadParameter(
                f"invalid column definition: {definition}", param_hint="--columns"
            )
        column = Column(name=parts[0], type=parts[1])
        for attribute in parts[2:]:
            if attribute == "pk":
                column.primary_key = True
            elif attribute == "null":
                column.nullable = True
            else:
                raise click.BadParameter(
                    f"unknown column attribute: {attribute}", param_hint="--columns"
                )
        columns.append(column)
    if not columns:
        raise click.BadParameter("at least one column is required", param_hint="--columns")
    return Schema(columns=columns)


def load_schema_file(path: Path) -> Schema:
    """Read a JSON schema document of the form ``{"columns": [...]}``."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Schema.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise click.BadParameter(
            f"cannot read schema file: {exc}", param_hint="--schema-file"
        ) from exc


def group_by_directory(records: Iterable[FileRecord]) -> dict[str, list[str]]:
    """Group record paths by parent directory, both sorted; top-level files use ``.``."""
    grouped: dict[str, list[str]] = {}
    for record in records:
        directory, _, _ = record.path.rpartition("/")
        grouped.setdefault(directory or ".", []).append(record.path)
    return {directory: sorted(grouped[directory]) for directory in sorted(grouped)}


__all__ = [
    "RepositoryNotFoundError",
    "absolute_argument",
    "find_repo_root",
    "format_size",
    "group_by_directory",
    "load_schema_file",
    "parse_columns",
]
