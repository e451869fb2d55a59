"""Staging area and change-detection engine."""

from __future__ import annotations

import logging
import stat
import threading
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Iterable, Mapping, Optional

from .errors import (
    CollectionExistsError,
    CollectionNotFoundError,
    FileInaccessibleError,
    FileNotStagedError,
    NoDefaultCollectionError,
)
from .hashing import ContentHasher
from .models import (
    Collection,
    FileRecord,
    FileStatus,
    ScanDiagnostic,
    ScanResult,
    StageResult,
)
from .walker import DEFAULT_EXCLUDED_DIRS, DEFAULT_METADATA_DIRNAME, TreeWalker

LOGGER = logging.getLogger(__name__)


def _sorted_copies(records: Iterable[FileRecord]) -> list[FileRecord]:
    return sorted((record.model_copy(deep=True) for record in records), key=lambda r: r.path)


class Index:
    """Track staged, synced, and deleted files plus the collection registry.

    A single re-entrant lock guards every population. Operations that move a
    record between populations therefore appear atomic to concurrent callers,
    and snapshots handed out are deep copies.
    """

    def __init__(
        self,
        repo_root: Path | str,
        *,
        files: Optional[Mapping[str, FileRecord]] = None,
        synced: Optional[Mapping[str, FileRecord]] = None,
        deleted: Optional[Mapping[str, FileRecord]] = None,
        collections: Optional[Mapping[str, Collection]] = None,
        default_collection: str = "",
        metadata_dirname: str = DEFAULT_METADATA_DIRNAME,
        excluded_dirs: Iterable[str] = DEFAULT_EXCLUDED_DIRS,
        hasher: Optional[ContentHasher] = None,
    ) -> None:
        self._repo_root = Path(repo_root).expanduser()
        self._files: dict[str, FileRecord] = dict(files or {})
        self._synced: dict[str, FileRecord] = dict(synced or {})
        self._deleted: dict[str, FileRecord] = dict(deleted or {})
        self._collections: dict[str, Collection] = dict(collections or {})
        self._default_collection = default_collection
        self._metadata_dirname = metadata_dirname
        self._walker = TreeWalker(metadata_dirname=metadata_dirname, excluded_dirs=excluded_dirs)
        self._hasher = hasher or ContentHasher()
        self._lock = threading.RLock()

    @property
    def repo_root(self) -> Path:
        """Return the directory anchoring every relative path."""
        return self._repo_root

    @property
    def metadata_dirname(self) -> str:
        return self._metadata_dirname

    @property
    def default_collection(self) -> str:
        """Return the default collection name, or an empty string."""
        with self._lock:
            return self._default_collection

    # ------------------------------------------------------------------ #
    # Paths and records                                                  #
    # ------------------------------------------------------------------ #

    def absolute_path(self, path: Path | str) -> Path:
        """Return ``path`` as an absolute path; relative paths are taken from the root."""
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self._repo_root / candidate
        return candidate

    def relative_path(self, path: Path | str) -> str:
        """Return ``path`` relative to the repository root using forward slashes.

        Raises:
            FileInaccessibleError: If the path lies outside the repository root.
        """
        candidate = self.absolute_path(path)
        try:
            relative = candidate.relative_to(self._repo_root)
        except ValueError:
            try:
                relative = candidate.resolve().relative_to(self._repo_root.resolve())
            except ValueError:
                raise FileInaccessibleError(
                    str(path), f"outside repository root {self._repo_root}"
                ) from None
        return relative.as_posix()

    def _in_metadata_dir(self, relative: str) -> bool:
        parts = PurePosixPath(relative).parts
        return bool(parts) and parts[0] == self._metadata_dirname

    def _build_record(self, path: Path) -> Optional[FileRecord]:
        """Observe a file on disk; return None for directories."""
        relative = self.relative_path(path)
        try:
            info = path.stat()
        except OSError as exc:
            raise FileInaccessibleError(relative, exc.strerror or str(exc)) from exc
        if stat.S_ISDIR(info.st_mode):
            return None
        try:
            digest = self._hasher.compute(path)
        except OSError as exc:
            raise FileInaccessibleError(relative, exc.strerror or str(exc)) from exc
        return FileRecord(
            path=relative,
            size=info.st_size,
            hash=digest,
            last_modified=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
            status=FileStatus.UNTRACKED,
        )

    def _apply_stage(self, record: FileRecord) -> None:
        """Classify a fresh record against the synced population and stage it.

        Caller must hold the lock.
        """
        synced = self._synced.get(record.path)
        if synced is not None:
            record.remote_url = synced.remote_url
            record.collection = synced.collection
            record.status = FileStatus.SYNCED if synced.hash == record.hash else FileStatus.MODIFIED
        else:
            record.status = FileStatus.UNTRACKED

        previous = self._files.get(record.path)
        if previous is not None and previous.collection:
            record.collection = previous.collection

        LOGGER.debug("Staging %s (was %s)", record.path, record.status.value)
        record.status = FileStatus.STAGED
        self._files[record.path] = record
        self._deleted.pop(record.path, None)

    # ------------------------------------------------------------------ #
    # Staging                                                            #
    # ------------------------------------------------------------------ #

    def stage_file(self, path: Path | str) -> Optional[FileRecord]:
        """Stage a single file for the next upload.

        Args:
            path: Path of the file to stage; relative paths are taken from the root.

        Returns:
            Optional[FileRecord]: Copy of the staged record, or None when the path
                is a directory or lives inside the metadata directory.

        Raises:
            FileInaccessibleError: If the file cannot be stat'ed or hashed. The
                index is left untouched for that path.
        """
        file_path = self.absolute_path(path)
        relative = self.relative_path(file_path)
        if self._in_metadata_dir(relative):
            return None
        record = self._build_record(file_path)
        if record is None:
            return None
        with self._lock:
            self._apply_stage(record)
            return record.model_copy(deep=True)

    def stage_directory(self, path: Path | str, *, strict: bool = True) -> StageResult:
        """Stage every file below a directory, skipping hidden and excluded directories.

        In strict mode the first unreadable file or unlistable directory aborts
        the walk with ``FileInaccessibleError``; files staged before it remain
        staged. In lenient mode each failure is recorded as a diagnostic and the
        walk continues.

        Args:
            path: Directory to stage; relative paths are taken from the root.
            strict: Whether per-file failures abort the operation.

        Returns:
            StageResult: Staged relative paths and any skipped failures.
        """
        root = self.absolute_path(path)
        relative_root = self.relative_path(root)
        if not root.is_dir():
            raise FileInaccessibleError(relative_root, "not a directory")

        result = StageResult()

        def _on_error(exc: OSError) -> None:
            location = str(exc.filename or root)
            reason = exc.strerror or str(exc)
            if strict:
                raise FileInaccessibleError(location, reason) from exc
            LOGGER.warning("Skipping unreadable directory %s: %s", location, reason)
            result.diagnostics.append(ScanDiagnostic(path=location, message=reason))

        with self._lock:
            for file_path in self._walker.walk(root, _on_error):
                relative = self.relative_path(file_path)
                if self._in_metadata_dir(relative):
                    continue
                try:
                    record = self._build_record(file_path)
                except FileInaccessibleError as exc:
                    if strict:
                        raise
                    LOGGER.warning("Skipping %s: %s", exc.path, exc.reason)
                    result.diagnostics.append(ScanDiagnostic(path=exc.path, message=exc.reason))
                    continue
                if record is None:
                    continue
                self._apply_stage(record)
                result.staged.append(record.path)
        return result

    def unstage_file(self, path: Path | str) -> bool:
        """Remove a path from the staging area.

        Unstaging a path that is not staged, or that lies outside the repository,
        is a no-op.

        Returns:
            bool: True when a staged entry was removed.
        """
        try:
            relative = self.relative_path(path)
        except FileInaccessibleError:
            return False
        with self._lock:
            return self._files.pop(relative, None) is not None

    def unstage_directory(self, path: Path | str) -> list[str]:
        """Unstage every staged path at or below ``path``; the files need not exist."""
        try:
            prefix = self.relative_path(path)
        except FileInaccessibleError:
            return []
        with self._lock:
            if prefix == ".":
                removed = sorted(self._files)
            else:
                removed = sorted(
                    key for key in self._files if key == prefix or key.startswith(f"{prefix}/")
                )
            for key in removed:
                del self._files[key]
        return removed

    def assign_collection(self, path: Path | str, name: str) -> None:
        """Associate a staged file with a registered collection.

        Raises:
            CollectionNotFoundError: If ``name`` is not registered.
            FileNotStagedError: If the path is not staged.
        """
        relative = self.relative_path(path)
        with self._lock:
            if name not in self._collections:
                raise CollectionNotFoundError(name)
            record = self._files.get(relative)
            if record is None:
                raise FileNotStagedError(relative)
            record.collection = name

    # ------------------------------------------------------------------ #
    # Change detection and sync transitions                              #
    # ------------------------------------------------------------------ #

    def scan_working_directory(self) -> ScanResult:
        """Reconcile the working tree against the synced population.

        The lock is held for the whole walk because synced paths that are never
        seen are moved into the deleted population once traversal completes.
        Unreadable files and unlistable directories are skipped and reported as
        diagnostics; they never abort the scan.

        Returns:
            ScanResult: New, modified, and deleted records plus diagnostics.
        """
        result = ScanResult()
        root_listed = True

        def _on_error(exc: OSError) -> None:
            nonlocal root_listed
            location = str(exc.filename or self._repo_root)
            reason = exc.strerror or str(exc)
            if exc.filename is None or Path(exc.filename) == self._repo_root:
                root_listed = False
            LOGGER.warning("Scan could not list %s: %s", location, reason)
            result.diagnostics.append(ScanDiagnostic(path=location, message=reason))

        with self._lock:
            seen: set[str] = set()
            for file_path in self._walker.walk(self._repo_root, _on_error):
                relative = self.relative_path(file_path)
                if self._in_metadata_dir(relative):
                    continue
                # Present on disk even if unreadable; never report it as deleted.
                seen.add(relative)
                try:
                    info = file_path.stat()
                    digest = self._hasher.compute(file_path)
                except OSError as exc:
                    reason = exc.strerror or str(exc)
                    LOGGER.warning("Scan skipped %s: %s", relative, reason)
                    result.diagnostics.append(ScanDiagnostic(path=relative, message=reason))
                    continue

                synced = self._synced.get(relative)
                if synced is not None:
                    if synced.hash == digest:
                        result.unchanged_count += 1
                        continue
                    status = FileStatus.MODIFIED
                    remote_url = synced.remote_url
                    collection = synced.collection
                else:
                    status = FileStatus.UNTRACKED
                    remote_url = None
                    collection = None

                record = FileRecord(
                    path=relative,
                    size=info.st_size,
                    hash=digest,
                    last_modified=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
                    status=status,
                    remote_url=remote_url,
                    collection=collection,
                )
                if status is FileStatus.MODIFIED:
                    result.modified_files.append(record)
                else:
                    result.new_files.append(record)

            if not root_listed:
                LOGGER.warning(
                    "Repository root %s could not be listed; keeping %d synced file(s)",
                    self._repo_root,
                    len(self._synced),
                )
                seen.update(self._synced)
            for relative in sorted(set(self._synced) - seen):
                record = self._synced.pop(relative)
                record.status = FileStatus.UNTRACKED
                self._deleted[relative] = record
                result.deleted_files.append(record.model_copy(deep=True))

        LOGGER.debug(
            "Scan of %s: %d new, %d modified, %d deleted, %d unchanged, %d skipped",
            self._repo_root,
            len(result.new_files),
            len(result.modified_files),
            len(result.deleted_files),
            result.unchanged_count,
            len(result.diagnostics),
        )
        return result

    def mark_synced(self, path: str, remote_url: str, collection: Optional[str] = None) -> bool:
        """Move a staged record into the synced population after a successful upload.

        Paths that are no longer staged are ignored; that indicates a race with
        an unstage rather than a defect.

        Args:
            path: Relative path reported by the uploader.
            remote_url: Remote location assigned to the uploaded file.
            collection: Collection the file was uploaded into, if known.

        Returns:
            bool: True when the transition was applied.
        """
        if not remote_url:
            raise ValueError(f"remote_url for {path} cannot be empty")
        with self._lock:
            record = self._files.pop(path, None)
            if record is None:
                LOGGER.debug("Ignoring sync result for %s; it is no longer staged", path)
                return False
            record.status = FileStatus.SYNCED
            record.remote_url = remote_url
            if collection:
                record.collection = collection
            self._synced[path] = record
            self._deleted.pop(path, None)
            return True

    # ------------------------------------------------------------------ #
    # Snapshots                                                          #
    # ------------------------------------------------------------------ #

    def get_staged_files(self) -> list[FileRecord]:
        with self._lock:
            return _sorted_copies(self._files.values())

    def get_synced_files(self) -> list[FileRecord]:
        with self._lock:
            return _sorted_copies(self._synced.values())

    def get_deleted_files(self) -> list[FileRecord]:
        with self._lock:
            return _sorted_copies(self._deleted.values())

    def get_all_files(self) -> list[FileRecord]:
        """Return staged, synced, and deleted records in that order."""
        with self._lock:
            return [
                *_sorted_copies(self._files.values()),
                *_sorted_copies(self._synced.values()),
                *_sorted_copies(self._deleted.values()),
            ]

    def get_files_by_collection(self, name: str) -> list[FileRecord]:
        """Return every tracked record associated with collection ``name``."""
        return [record for record in self.get_all_files() if record.collection == name]

    # ------------------------------------------------------------------ #
    # Collection registry                                                #
    # ------------------------------------------------------------------ #

    def add_collection(self, collection: Collection) -> None:
        """Register a new collection; the first one registered becomes the default.

        Raises:
            CollectionValidationError: If the definition is invalid.
            CollectionExistsError: If the name is already registered.
        """
        collection.validate_definition()
        with self._lock:
            if collection.name in self._collections:
                raise CollectionExistsError(collection.name)
            self._collections[collection.name] = collection.model_copy(deep=True)
            if len(self._collections) == 1:
                self._default_collection = collection.name
        LOGGER.debug("Added %s collection %s", collection.type.value, collection.name)

    def update_collection(self, collection: Collection) -> None:
        """Replace an existing collection definition.

        Raises:
            CollectionValidationError: If the definition is invalid.
            CollectionNotFoundError: If the name is not registered.
        """
        collection.validate_definition()
        with self._lock:
            if collection.name not in self._collections:
                raise CollectionNotFoundError(collection.name)
            self._collections[collection.name] = collection.model_copy(deep=True)

    def remove_collection(self, name: str) -> None:
        """Unregister a collection, reassigning the default when needed.

        Raises:
            CollectionNotFoundError: If the name is not registered.
        """
        with self._lock:
            if name not in self._collections:
                raise CollectionNotFoundError(name)
            del self._collections[name]
            if self._default_collection == name:
                self._default_collection = next(iter(self._collections), "")
                LOGGER.debug("Default collection is now %r", self._default_collection)

    def get_collection(self, name: str) -> Collection:
        with self._lock:
            collection = self._collections.get(name)
            if collection is None:
                raise CollectionNotFoundError(name)
            return collection.model_copy(deep=True)

    def get_collections(self) -> list[Collection]:
        """Return copies of every collection in registration order."""
        with self._lock:
            return [collection.model_copy(deep=True) for collection in self._collections.values()]

    def get_default_collection(self) -> Collection:
        """Return the default collection.

        Raises:
            NoDefaultCollectionError: If no default is set.
            CollectionNotFoundError: If the default name is no longer registered.
        """
        with self._lock:
            if not self._default_collection:
                raise NoDefaultCollectionError()
            return self.get_collection(self._default_collection)

    def set_default_collection(self, name: str) -> None:
        with self._lock:
            if name not in self._collections:
                raise CollectionNotFoundError(name)
            self._default_collection = name

    # ------------------------------------------------------------------ #
    # Serialization boundary                                             #
    # ------------------------------------------------------------------ #

    def to_document(self) -> dict[str, Any]:
        """Return a JSON-ready mapping of the full index."""

        def _records(records: Mapping[str, FileRecord]) -> dict[str, Any]:
            return {
                key: records[key].model_dump(mode="json", exclude_none=True)
                for key in sorted(records)
            }

        with self._lock:
            return {
                "files": _records(self._files),
                "deleted": _records(self._deleted),
                "synced": _records(self._synced),
                "collections": {
                    name: collection.model_dump(mode="json", by_alias=True, exclude_none=True)
                    for name, collection in self._collections.items()
                },
                "default_collection": self._default_collection,
                "repo_root": str(self._repo_root),
            }


__all__ = ["Index"]
