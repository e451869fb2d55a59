"""Content hashing utilities."""

from __future__ import annotations

import hashlib
from pathlib import Path

DEFAULT_CHUNK_SIZE = 1024 * 1024


class ContentHasher:
    """Compute SHA-256 digests of file contents by streaming fixed-size chunks."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size

    def compute(self, path: Path) -> str:
        """Return the hex digest of the file at ``path``.

        Args:
            path: File to hash.

        Returns:
            str: 64-character lowercase hex digest.

        Raises:
            OSError: If the file cannot be opened or read.
        """
        digest = hashlib.sha256()
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(self.chunk_size), b""):
                digest.update(chunk)
        return digest.hexdigest()


__all__ = ["ContentHasher", "DEFAULT_CHUNK_SIZE"]
