"""Index and collection errors."""

from __future__ import annotations


class HhxError(Exception):
    """Base exception for hhx operations."""


class IndexStateError(HhxError):
    """Raised when the persisted index cannot be read or written."""


class FileInaccessibleError(HhxError):
    """Raised when a single file cannot be read, stat'ed, or hashed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class FileNotStagedError(HhxError):
    """Raised when an operation requires a staged path that is absent."""

    def __init__(self, path: str) -> None:
        super().__init__(f"{path} is not staged")
        self.path = path


class NothingToPushError(HhxError):
    """Raised when a push is requested with an empty staging area."""


class CollectionError(HhxError):
    """Base exception for collection registry operations."""


class CollectionNotFoundError(CollectionError):
    """Raised when a collection name is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"collection not found: {name}")
        self.name = name


class CollectionExistsError(CollectionError):
    """Raised when adding a collection whose name is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"collection already exists: {name}")
        self.name = name


class NoDefaultCollectionError(CollectionError):
    """Raised when no default collection is set."""

    def __init__(self) -> None:
        super().__init__("no default collection set")


class CollectionValidationError(CollectionError):
    """Raised when a collection definition is rejected before mutation."""

    def __init__(self, name: str, reason: str) -> None:
        label = name or "<unnamed>"
        super().__init__(f"invalid collection {label}: {reason}")
        self.name = name
        self.reason = reason


__all__ = [
    "HhxError",
    "IndexStateError",
    "FileInaccessibleError",
    "FileNotStagedError",
    "NothingToPushError",
    "CollectionError",
    "CollectionNotFoundError",
    "CollectionExistsError",
    "NoDefaultCollectionError",
    "CollectionValidationError",
]
