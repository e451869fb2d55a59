"""Track local file changes and stage them for upload to remote collections."""

from importlib import metadata as _metadata

from hhx.index import Index, IndexStore, load_index, save_index

__all__ = ["Index", "IndexStore", "load_index", "save_index", "__version__"]


def __getattr__(name: str):
    if name == "__version__":
        return _metadata.version("hhx")
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
