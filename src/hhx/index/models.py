"""Data models for tracked files and collections."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, field_validator

from .errors import CollectionValidationError


class FileStatus(str, Enum):
    """Lifecycle status of a tracked file."""

    UNTRACKED = "untracked"
    MODIFIED = "modified"
    STAGED = "staged"
    SYNCED = "synced"


class FileRecord(BaseModel):
    """Observed state of one file relative to the repository root.

    Attributes:
        path: Slash-normalized path relative to the repository root.
        size: Byte count at last observation.
        hash: Hex-encoded SHA-256 digest of the file contents.
        last_modified: Modification time at last observation.
        status: Lifecycle status of the record.
        remote_url: Remote location, present once the file has been uploaded.
        collection: Name of the collection the file is associated with.
    """

    path: str
    size: int = 0
    hash: str = ""
    last_modified: datetime
    status: FileStatus = FileStatus.UNTRACKED
    remote_url: Optional[str] = None
    collection: Optional[str] = None

    def full_path(self, repo_root: Path | str) -> Path:
        """Return the absolute filesystem path for this record."""
        return Path(repo_root).joinpath(*PurePosixPath(self.path).parts)


class CollectionType(str, Enum):
    """Kinds of remote destination."""

    BUCKET = "bucket"
    TABLE = "table"


ColumnDefault = Union[StrictBool, StrictInt, StrictFloat, str, None]


class Column(BaseModel):
    """Column definition in a table schema."""

    name: str
    type: str
    primary_key: bool = False
    nullable: bool = False
    default_value: ColumnDefault = None


class Schema(BaseModel):
    """Ordered column layout of a table collection."""

    columns: List[Column] = Field(default_factory=list)


def _check_metadata_value(key: str, value: Any) -> None:
    if isinstance(value, (bool, int, float, str)):
        return
    if isinstance(value, Mapping):
        for child_key, child in value.items():
            if not isinstance(child_key, str):
                raise ValueError(f"metadata key under {key!r} must be a string")
            _check_metadata_value(f"{key}.{child_key}", child)
        return
    raise ValueError(
        f"metadata value for {key!r} must be a string, number, bool, or mapping, "
        f"not {type(value).__name__}"
    )


class Collection(BaseModel):
    """Named remote destination, either a bucket or a table with a schema.

    Attributes:
        name: Unique, case-sensitive collection name.
        type: Destination kind.
        path: Destination path or prefix on the remote.
        schema_: Column layout; required for tables, forbidden for buckets.
        metadata: Open key/value bag of strings, numbers, bools, and nested mappings.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: CollectionType
    path: str
    schema_: Optional[Schema] = Field(default=None, alias="schema")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata")
    @classmethod
    def _metadata_kinds(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        for key, item in value.items():
            _check_metadata_value(key, item)
        return value

    def validate_definition(self) -> None:
        """Check the invariants enforced whenever a collection is registered.

        Raises:
            CollectionValidationError: If the name or path is empty, the type is
                unknown, or schema presence does not match the type.
        """
        if not self.name:
            raise CollectionValidationError(self.name, "name cannot be empty")
        if not isinstance(self.type, CollectionType):
            raise CollectionValidationError(self.name, f"invalid collection type: {self.type}")
        if not self.path:
            raise CollectionValidationError(self.name, "path cannot be empty")
        if self.type is CollectionType.TABLE and self.schema_ is None:
            raise CollectionValidationError(self.name, "schema is required for table collections")
        if self.type is CollectionType.BUCKET and self.schema_ is not None:
            raise CollectionValidationError(
                self.name, "schema is not applicable for bucket collections"
            )


@dataclass(slots=True)
class ScanDiagnostic:
    """A non-fatal problem encountered while walking the working tree."""

    path: str
    message: str


@dataclass(slots=True)
class ScanResult:
    """Outcome of reconciling the working tree against the synced population.

    Attributes:
        new_files: Files with no synced record.
        modified_files: Synced files whose digest changed.
        deleted_files: Synced files missing from the working tree.
        diagnostics: Per-file and walk errors that were skipped.
        unchanged_count: Number of synced files whose digest still matches.
    """

    new_files: list[FileRecord] = field(default_factory=list)
    modified_files: list[FileRecord] = field(default_factory=list)
    deleted_files: list[FileRecord] = field(default_factory=list)
    diagnostics: list[ScanDiagnostic] = field(default_factory=list)
    unchanged_count: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.new_files or self.modified_files or self.deleted_files)


@dataclass(slots=True)
class StageResult:
    """Outcome of staging a directory tree."""

    staged: list[str] = field(default_factory=list)
    diagnostics: list[ScanDiagnostic] = field(default_factory=list)


__all__ = [
    "FileStatus",
    "FileRecord",
    "CollectionType",
    "Column",
    "Schema",
    "Collection",
    "ScanDiagnostic",
    "ScanResult",
    "StageResult",
]
