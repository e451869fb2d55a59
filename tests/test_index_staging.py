"""Staging, unstaging, and sync-transition tests for the index."""

from __future__ import annotations

import hashlib
import random
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from hhx.index import (
    ContentHasher,
    FileInaccessibleError,
    FileNotStagedError,
    FileStatus,
    Index,
)
from hhx.index.errors import CollectionNotFoundError
from hhx.index.models import Collection, CollectionType


class FailingHasher(ContentHasher):
    """Hasher that refuses to read files with a given name."""

    def __init__(self, failing_name: str) -> None:
        super().__init__()
        self.failing_name = failing_name

    def compute(self, path: Path) -> str:
        if path.name == self.failing_name:
            raise PermissionError(13, "Permission denied", str(path))
        return super().compute(path)


def _write(root: Path, relative: str, content: bytes = b"data") -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def test_stage_file_records_fresh_metadata(tmp_path: Path) -> None:
    path = _write(tmp_path, "models/weights.bin", b"0123456789")
    index = Index(tmp_path)

    record = index.stage_file(path)

    assert record is not None
    assert record.path == "models/weights.bin"
    assert record.size == 10
    assert record.hash == hashlib.sha256(b"0123456789").hexdigest()
    assert record.status is FileStatus.STAGED
    assert record.remote_url is None
    assert [r.path for r in index.get_staged_files()] == ["models/weights.bin"]


def test_stage_file_skips_directories(tmp_path: Path) -> None:
    (tmp_path / "folder").mkdir()
    index = Index(tmp_path)

    assert index.stage_file(tmp_path / "folder") is None
    assert index.get_staged_files() == []


def test_stage_file_ignores_metadata_directory(tmp_path: Path) -> None:
    path = _write(tmp_path, ".hhx/index.json", b"{}")
    index = Index(tmp_path)

    assert index.stage_file(path) is None
    assert index.get_staged_files() == []


def test_stage_missing_file_raises_without_mutation(tmp_path: Path) -> None:
    index = Index(tmp_path)

    with pytest.raises(FileInaccessibleError) as excinfo:
        index.stage_file(tmp_path / "absent.txt")

    assert excinfo.value.path == "absent.txt"
    assert index.get_all_files() == []


def test_stage_unreadable_file_raises_without_mutation(tmp_path: Path) -> None:
    path = _write(tmp_path, "secret.bin")
    index = Index(tmp_path, hasher=FailingHasher("secret.bin"))

    with pytest.raises(FileInaccessibleError):
        index.stage_file(path)

    assert index.get_staged_files() == []


def test_stage_file_outside_root_is_rejected(tmp_path: Path) -> None:
    root = tmp_path / "repo"
    root.mkdir()
    outside = _write(tmp_path, "elsewhere.txt")
    index = Index(root)

    with pytest.raises(FileInaccessibleError):
        index.stage_file(outside)


def test_restaging_modified_synced_file_carries_remote_url(tmp_path: Path) -> None:
    path = _write(tmp_path, "a.txt", b"v1")
    index = Index(tmp_path)
    index.stage_file(path)
    index.mark_synced("a.txt", "https://example/a.txt", collection="default")

    path.write_bytes(b"v2")
    record = index.stage_file(path)

    assert record is not None
    assert record.status is FileStatus.STAGED
    assert record.remote_url == "https://example/a.txt"
    assert record.collection == "default"
    assert record.hash == hashlib.sha256(b"v2").hexdigest()
    assert [r.path for r in index.get_synced_files()] == ["a.txt"]


def test_restaging_deleted_file_clears_deleted_entry(tmp_path: Path) -> None:
    path = _write(tmp_path, "a.txt", b"v1")
    index = Index(tmp_path)
    index.stage_file(path)
    index.mark_synced("a.txt", "https://example/a.txt")

    path.unlink()
    scan = index.scan_working_directory()
    assert [r.path for r in scan.deleted_files] == ["a.txt"]

    path.write_bytes(b"v2")
    record = index.stage_file(path)

    assert record is not None
    assert record.status is FileStatus.STAGED
    assert index.get_deleted_files() == []
    assert [r.path for r in index.get_staged_files()] == ["a.txt"]


def test_unstage_is_idempotent(tmp_path: Path) -> None:
    path = _write(tmp_path, "a.txt")
    index = Index(tmp_path)
    index.stage_file(path)
    index.mark_synced("a.txt", "https://example/a.txt")
    before = index.get_all_files()

    assert index.unstage_file(path) is False
    assert index.unstage_file(tmp_path / "never-existed.txt") is False
    assert index.unstage_file(tmp_path.parent / "outside.txt") is False

    assert index.get_all_files() == before


def test_unstage_removes_only_staged_entry(tmp_path: Path) -> None:
    path = _write(tmp_path, "a.txt")
    index = Index(tmp_path)
    index.stage_file(path)

    assert index.unstage_file(path) is True
    assert index.get_staged_files() == []


def test_unstage_directory_matches_whole_path_segments(tmp_path: Path) -> None:
    index = Index(tmp_path)
    for relative in ("docs/a.txt", "docs/sub/b.txt", "docs2/c.txt", "top.txt"):
        index.stage_file(_write(tmp_path, relative))

    removed = index.unstage_directory(tmp_path / "docs")

    assert removed == ["docs/a.txt", "docs/sub/b.txt"]
    assert [r.path for r in index.get_staged_files()] == ["docs2/c.txt", "top.txt"]


def test_unstage_directory_at_root_clears_everything(tmp_path: Path) -> None:
    index = Index(tmp_path)
    index.stage_file(_write(tmp_path, "a.txt"))
    index.stage_file(_write(tmp_path, "b/c.txt"))

    assert index.unstage_directory(tmp_path) == ["a.txt", "b/c.txt"]
    assert index.get_staged_files() == []


def test_stage_directory_prunes_hidden_and_excluded_directories(tmp_path: Path) -> None:
    _write(tmp_path, "data/a.csv")
    _write(tmp_path, "data/nested/b.csv")
    _write(tmp_path, "data/.cache/c.bin")
    _write(tmp_path, "data/build/out.o")
    _write(tmp_path, ".hhx/index.json")
    _write(tmp_path, ".git/HEAD")
    index = Index(tmp_path)

    result = index.stage_directory(tmp_path)

    assert result.staged == ["data/a.csv", "data/nested/b.csv"]
    assert result.diagnostics == []
    assert all(r.status is FileStatus.STAGED for r in index.get_staged_files())


def test_stage_directory_never_prunes_its_own_root(tmp_path: Path) -> None:
    _write(tmp_path, ".config/settings.ini")
    index = Index(tmp_path)

    result = index.stage_directory(tmp_path / ".config")

    assert result.staged == [".config/settings.ini"]


def test_stage_directory_rejects_non_directories(tmp_path: Path) -> None:
    path = _write(tmp_path, "file.txt")
    index = Index(tmp_path)

    with pytest.raises(FileInaccessibleError):
        index.stage_directory(path)


def test_stage_directory_strict_mode_stops_at_first_failure(tmp_path: Path) -> None:
    _write(tmp_path, "a.txt")
    _write(tmp_path, "b.bad")
    _write(tmp_path, "c.txt")
    index = Index(tmp_path, hasher=FailingHasher("b.bad"))

    with pytest.raises(FileInaccessibleError) as excinfo:
        index.stage_directory(tmp_path)

    assert excinfo.value.path == "b.bad"
    assert [r.path for r in index.get_staged_files()] == ["a.txt"]


def test_stage_directory_lenient_mode_reports_and_continues(tmp_path: Path) -> None:
    _write(tmp_path, "a.txt")
    _write(tmp_path, "b.bad")
    _write(tmp_path, "c.txt")
    index = Index(tmp_path, hasher=FailingHasher("b.bad"))

    result = index.stage_directory(tmp_path, strict=False)

    assert result.staged == ["a.txt", "c.txt"]
    assert [d.path for d in result.diagnostics] == ["b.bad"]
    assert result.diagnostics[0].message == "Permission denied"


def test_mark_synced_moves_record_out_of_staging(tmp_path: Path) -> None:
    index = Index(tmp_path)
    index.stage_file(_write(tmp_path, "a.txt"))

    assert index.mark_synced("a.txt", "https://example/a.txt", collection="default") is True

    assert index.get_staged_files() == []
    synced = index.get_synced_files()
    assert len(synced) == 1
    assert synced[0].status is FileStatus.SYNCED
    assert synced[0].remote_url == "https://example/a.txt"
    assert synced[0].collection == "default"


def test_mark_synced_ignores_paths_that_are_not_staged(tmp_path: Path) -> None:
    index = Index(tmp_path)
    index.stage_file(_write(tmp_path, "a.txt"))
    index.unstage_file(tmp_path / "a.txt")

    assert index.mark_synced("a.txt", "https://example/a.txt") is False
    assert index.get_all_files() == []


def test_mark_synced_requires_remote_location(tmp_path: Path) -> None:
    index = Index(tmp_path)
    index.stage_file(_write(tmp_path, "a.txt"))

    with pytest.raises(ValueError):
        index.mark_synced("a.txt", "")
    assert [r.path for r in index.get_staged_files()] == ["a.txt"]


def test_snapshots_are_detached_copies(tmp_path: Path) -> None:
    index = Index(tmp_path)
    index.stage_file(_write(tmp_path, "a.txt"))

    snapshot = index.get_staged_files()
    snapshot[0].path = "tampered.txt"
    snapshot.clear()

    assert [r.path for r in index.get_staged_files()] == ["a.txt"]


def test_get_all_files_unions_every_population(tmp_path: Path) -> None:
    index = Index(tmp_path)
    index.stage_file(_write(tmp_path, "synced.txt"))
    index.mark_synced("synced.txt", "https://example/synced.txt")
    index.stage_file(_write(tmp_path, "gone.txt"))
    index.mark_synced("gone.txt", "https://example/gone.txt")
    (tmp_path / "gone.txt").unlink()
    index.scan_working_directory()
    index.stage_file(_write(tmp_path, "staged.txt"))

    paths = [record.path for record in index.get_all_files()]

    assert paths == ["staged.txt", "synced.txt", "gone.txt"]


def test_assign_collection_tags_staged_record(tmp_path: Path) -> None:
    index = Index(tmp_path)
    index.add_collection(Collection(name="models", type=CollectionType.BUCKET, path="models/"))
    path = _write(tmp_path, "weights.bin")
    index.stage_file(path)

    index.assign_collection(path, "models")

    assert [r.path for r in index.get_files_by_collection("models")] == ["weights.bin"]
    with pytest.raises(CollectionNotFoundError):
        index.assign_collection(path, "missing")
    with pytest.raises(FileNotStagedError):
        index.assign_collection(tmp_path / "other.bin", "models")


def test_restaging_keeps_collection_assignment(tmp_path: Path) -> None:
    index = Index(tmp_path)
    index.add_collection(Collection(name="models", type=CollectionType.BUCKET, path="models/"))
    path = _write(tmp_path, "weights.bin", b"v1")
    index.stage_file(path)
    index.assign_collection(path, "models")

    path.write_bytes(b"v2")
    record = index.stage_file(path)

    assert record is not None
    assert record.collection == "models"


def test_concurrent_staging_of_distinct_paths_loses_nothing(tmp_path: Path) -> None:
    paths = [_write(tmp_path, f"batch/file-{n:03d}.txt", f"{n}".encode()) for n in range(64)]
    random.Random(7).shuffle(paths)
    index = Index(tmp_path)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(index.stage_file, paths))

    staged = index.get_staged_files()
    assert all(result is not None for result in results)
    assert len(staged) == 64
    assert {record.path for record in staged} == {f"batch/file-{n:03d}.txt" for n in range(64)}


def test_concurrent_stage_unstage_and_scan_keep_index_consistent(tmp_path: Path) -> None:
    keep = [_write(tmp_path, f"keep/{n}.txt", f"k{n}".encode()) for n in range(20)]
    drop = [_write(tmp_path, f"drop/{n}.txt", f"d{n}".encode()) for n in range(20)]
    index = Index(tmp_path)
    for path in drop:
        index.stage_file(path)

    operations = [("stage", path) for path in keep] + [("unstage", path) for path in drop]
    operations += [("scan", None)] * 5
    random.Random(11).shuffle(operations)

    def _run(operation: tuple[str, Path | None]) -> None:
        kind, path = operation
        if kind == "stage":
            index.stage_file(path)
        elif kind == "unstage":
            index.unstage_file(path)
        else:
            index.scan_working_directory()

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(_run, operations))

    staged = {record.path for record in index.get_staged_files()}
    assert staged == {f"keep/{n}.txt" for n in range(20)}


def test_relative_paths_are_taken_from_repository_root(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = tmp_path / "repo"
    _write(root, "data/a.txt", b"inside")
    _write(root, "data/b.txt", b"second")
    elsewhere = tmp_path / "elsewhere"
    _write(elsewhere, "data/a.txt", b"decoy")
    monkeypatch.chdir(elsewhere)
    index = Index(root)

    record = index.stage_file("data/a.txt")
    result = index.stage_directory("data")

    assert record is not None
    assert record.hash == hashlib.sha256(b"inside").hexdigest()
    assert result.staged == ["data/a.txt", "data/b.txt"]
    assert index.get_staged_files()[0].hash == hashlib.sha256(b"inside").hexdigest()
