"""Upload contract and push orchestration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from hhx.index import Collection, FileRecord, Index, NothingToPushError

LOGGER = logging.getLogger(__name__)


class UploadedFile(BaseModel):
    """A file the remote accepted."""

    path: str
    remote_url: str
    size: int = 0


class FailedUpload(BaseModel):
    """A file the remote rejected; it stays staged."""

    path: str
    error: str


class PushResult(BaseModel):
    """Per-file outcomes of an upload attempt."""

    uploaded: List[UploadedFile] = Field(default_factory=list)
    failed: List[FailedUpload] = Field(default_factory=list)

    @property
    def total_bytes(self) -> int:
        return sum(entry.size for entry in self.uploaded)


class RemoteSynchronizer(Protocol):
    """Anything that can upload files from a repository into a collection."""

    def upload_files(
        self,
        repo_root: Path,
        files: Sequence[FileRecord],
        collection: Collection,
    ) -> PushResult:
        """Upload ``files`` and report which succeeded and which failed."""
        ...


def push_staged(
    index: Index,
    synchronizer: RemoteSynchronizer,
    *,
    collection_name: Optional[str] = None,
    push_all: bool = False,
) -> PushResult:
    """Upload the staging area and fold the outcomes back into the index.

    Args:
        index: Index whose staged files are uploaded.
        synchronizer: Remote collaborator performing the upload.
        collection_name: Target collection; the default collection when omitted.
        push_all: Stage every new and modified file before uploading.

    Returns:
        PushResult: Outcomes reported by the synchronizer.

    Raises:
        CollectionNotFoundError: If the named collection is not registered.
        NoDefaultCollectionError: If no name is given and no default is set.
        NothingToPushError: If nothing is staged.
    """
    if collection_name:
        collection = index.get_collection(collection_name)
    else:
        collection = index.get_default_collection()

    if push_all:
        scan = index.scan_working_directory()
        for record in [*scan.new_files, *scan.modified_files]:
            index.stage_file(record.full_path(index.repo_root))

    staged = index.get_staged_files()
    if not staged:
        raise NothingToPushError("No files to push.")

    LOGGER.info("Pushing %d file(s) to collection %s", len(staged), collection.name)
    result = synchronizer.upload_files(index.repo_root, staged, collection)

    for failure in result.failed:
        LOGGER.warning("Upload failed for %s: %s", failure.path, failure.error)
    for uploaded in result.uploaded:
        if not uploaded.remote_url:
            LOGGER.warning(
                "Upload of %s reported no remote location; leaving it staged", uploaded.path
            )
            continue
        index.mark_synced(uploaded.path, uploaded.remote_url, collection=collection.name)
    return result


__all__ = [
    "FailedUpload",
    "PushResult",
    "RemoteSynchronizer",
    "UploadedFile",
    "push_staged",
]
