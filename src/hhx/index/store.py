"""Index persistence helpers."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, Field, ValidationError, field_validator

from .core import Index
from .errors import IndexStateError
from .models import Collection, FileRecord
from .walker import DEFAULT_METADATA_DIRNAME

INDEX_FILENAME = "index.json"

LOGGER = logging.getLogger(__name__)


class IndexDocument(BaseModel):
    """Serialized shape of the index; absent or null maps load as empty."""

    files: Dict[str, FileRecord] = Field(default_factory=dict)
    deleted: Dict[str, FileRecord] = Field(default_factory=dict)
    synced: Dict[str, FileRecord] = Field(default_factory=dict)
    collections: Dict[str, Collection] = Field(default_factory=dict)
    default_collection: str = ""
    repo_root: str = ""

    @field_validator("files", "deleted", "synced", "collections", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("default_collection", "repo_root", mode="before")
    @classmethod
    def _null_as_blank(cls, value: Any) -> Any:
        return "" if value is None else value


def _check_keys(section: str, records: Dict[str, Any], attribute: str) -> None:
    for key, value in records.items():
        if getattr(value, attribute) != key:
            raise IndexStateError(
                f"Index entry {section}[{key!r}] is recorded under a different "
                f"{attribute} {getattr(value, attribute)!r}"
            )


def load_index(path: Path | str, **index_options: Any) -> Index:
    """Load an index from ``path``.

    The index is always rooted at the grandparent of ``path``
    (``<root>/<metadata-dir>/index.json``), whatever root the document records.
    A missing file yields a fresh, empty index.

    Args:
        path: Location of the index document.
        **index_options: Extra keyword arguments forwarded to ``Index``.

    Returns:
        Index: Loaded or freshly created index.

    Raises:
        IndexStateError: If the file cannot be read or holds invalid data.
    """
    index_path = Path(path).expanduser()
    inferred_root = index_path.absolute().parent.parent
    if not index_path.exists():
        LOGGER.debug("No index at %s; starting fresh at %s", index_path, inferred_root)
        return Index(inferred_root, **index_options)

    try:
        raw = json.loads(index_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise IndexStateError(f"Could not read index {index_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise IndexStateError(f"Invalid index data in {index_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise IndexStateError(f"Index {index_path} must contain a JSON object.")

    try:
        document = IndexDocument.model_validate(raw)
    except ValidationError as exc:
        raise IndexStateError(f"Invalid index data in {index_path}: {exc}") from exc

    for section in ("files", "deleted", "synced"):
        _check_keys(section, getattr(document, section), "path")
    _check_keys("collections", document.collections, "name")

    default_collection = document.default_collection
    if default_collection and default_collection not in document.collections:
        LOGGER.warning(
            "Default collection %r is not registered in %s; clearing it.",
            default_collection,
            index_path,
        )
        default_collection = ""

    # The index location wins over the recorded root so moved or cloned repositories work.
    if document.repo_root and Path(document.repo_root) != inferred_root:
        LOGGER.info(
            "Index %s records root %s; using its current location %s",
            index_path,
            document.repo_root,
            inferred_root,
        )

    return Index(
        inferred_root,
        files=document.files,
        synced=document.synced,
        deleted=document.deleted,
        collections=document.collections,
        default_collection=default_collection,
        **index_options,
    )


def save_index(index: Index, path: Path | str) -> None:
    """Persist ``index`` to ``path`` without ever leaving a truncated file.

    The document is written to a temporary sibling and moved into place.

    Raises:
        IndexStateError: If the document cannot be written.
    """
    index_path = Path(path).expanduser()
    payload = json.dumps(index.to_document(), indent=2) + "\n"
    try:
        index_path.parent.mkdir(parents=True, exist_ok=True)
        descriptor, temp_name = tempfile.mkstemp(
            prefix=f".{index_path.name}.", suffix=".tmp", dir=index_path.parent
        )
    except OSError as exc:
        raise IndexStateError(f"Could not prepare {index_path}: {exc}") from exc

    try:
        with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, index_path)
    except OSError as exc:
        Path(temp_name).unlink(missing_ok=True)
        raise IndexStateError(f"Could not write index {index_path}: {exc}") from exc
    LOGGER.debug("Saved index to %s", index_path)


class IndexStore:
    """Locate, load, and persist the index of a repository root."""

    def __init__(self, base_dirname: str = DEFAULT_METADATA_DIRNAME) -> None:
        """Initialize the store with an optional metadata directory name.

        Args:
            base_dirname: Name of the directory that holds the index.
        """
        self._base_dirname = base_dirname

    @property
    def base_dirname(self) -> str:
        """Return the metadata directory name."""
        return self._base_dirname

    def index_path(self, root: Path) -> Path:
        """Return the index location for a repository root."""
        return root / self._base_dirname / INDEX_FILENAME

    def exists(self, root: Path) -> bool:
        return self.index_path(root).exists()

    def initialize(self, root: Path) -> Path:
        """Create the metadata directory for ``root`` and return it."""
        directory = root / self._base_dirname
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def load(self, root: Path, **index_options: Any) -> Index:
        """Load the index for ``root``, or a fresh one when none is stored."""
        return load_index(
            self.index_path(root), metadata_dirname=self._base_dirname, **index_options
        )

    def save(self, root: Path, index: Index) -> None:
        """Persist the index for ``root``."""
        self.initialize(root)
        save_index(index, self.index_path(root))


__all__ = [
    "IndexDocument",
    "IndexStore",
    "INDEX_FILENAME",
    "load_index",
    "save_index",
]
