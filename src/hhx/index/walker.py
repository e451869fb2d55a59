"""Working-tree traversal."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

ErrorHandler = Callable[[OSError], None]

DEFAULT_METADATA_DIRNAME = ".hhx"
DEFAULT_EXCLUDED_DIRS = ("build", "cmake-build-debug")


def _is_hidden(name: str) -> bool:
    return name.startswith(".") and name not in (".", "..")


class TreeWalker:
    """Yield regular files under a root, pruning excluded directories before descent."""

    def __init__(
        self,
        *,
        metadata_dirname: str = DEFAULT_METADATA_DIRNAME,
        excluded_dirs: Iterable[str] = DEFAULT_EXCLUDED_DIRS,
    ) -> None:
        self.metadata_dirname = metadata_dirname
        self.excluded_dirs = frozenset(excluded_dirs)

    def is_excluded_dir(self, name: str) -> bool:
        """Return True when a directory with this name must never be visited."""
        return _is_hidden(name) or name == self.metadata_dirname or name in self.excluded_dirs

    def walk(self, root: Path, on_error: Optional[ErrorHandler] = None) -> Iterator[Path]:
        """Yield files below ``root`` in a stable, sorted order.

        The root itself is never pruned, even when its name would be excluded.

        Args:
            root: Directory to traverse.
            on_error: Called with the ``OSError`` for any directory that cannot be
                listed. Exceptions raised by the handler abort the walk.
        """
        for current, dirnames, filenames in os.walk(root, topdown=True, onerror=on_error):
            dirnames[:] = sorted(name for name in dirnames if not self.is_excluded_dir(name))
            base = Path(current)
            for name in sorted(filenames):
                yield base / name


__all__ = ["TreeWalker", "DEFAULT_METADATA_DIRNAME", "DEFAULT_EXCLUDED_DIRS"]
