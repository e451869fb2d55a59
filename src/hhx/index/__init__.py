"""Local index: staging area, change detection, and collection registry."""

from .core import Index
from .errors import (
    CollectionError,
    CollectionExistsError,
    CollectionNotFoundError,
    CollectionValidationError,
    FileInaccessibleError,
    FileNotStagedError,
    HhxError,
    IndexStateError,
    NoDefaultCollectionError,
    NothingToPushError,
)
from .hashing import ContentHasher
from .models import (
    Collection,
    CollectionType,
    Column,
    FileRecord,
    FileStatus,
    ScanDiagnostic,
    ScanResult,
    Schema,
    StageResult,
)
from .store import INDEX_FILENAME, IndexStore, load_index, save_index
from .walker import DEFAULT_EXCLUDED_DIRS, DEFAULT_METADATA_DIRNAME, TreeWalker

__all__ = [
    "Index",
    "IndexStore",
    "INDEX_FILENAME",
    "load_index",
    "save_index",
    "ContentHasher",
    "TreeWalker",
    "DEFAULT_EXCLUDED_DIRS",
    "DEFAULT_METADATA_DIRNAME",
    "Collection",
    "CollectionType",
    "Column",
    "Schema",
    "FileRecord",
    "FileStatus",
    "ScanDiagnostic",
    "ScanResult",
    "StageResult",
    "HhxError",
    "IndexStateError",
    "FileInaccessibleError",
    "FileNotStagedError",
    "NothingToPushError",
    "CollectionError",
    "CollectionExistsError",
    "CollectionNotFoundError",
    "CollectionValidationError",
    "NoDefaultCollectionError",
]
