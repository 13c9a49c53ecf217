"""Tests for atomic writes, write transactions and the project lock."""

import stat

import pytest
from filelock import FileLock

from depsync import fs
from depsync.errors import WriteError
from depsync.fs import WriteTransaction, atomic_write, lock_path_for, project_lock


def leftovers(directory):
    return sorted(p.name for p in directory.iterdir() if p.name.startswith("."))


class TestAtomicWrite:
    """Test single-file atomic replacement."""

    def test_writes_new_file(self, tmp_path):
        target = tmp_path / "renv.lock"
        atomic_write(target, "{}\n")
        assert target.read_text() == "{}\n"
        assert leftovers(tmp_path) == []

    def test_keeps_line_endings_and_mode(self, tmp_path):
        target = tmp_path / "DESCRIPTION"
        target.write_text("old")
        target.chmod(0o640)

        atomic_write(target, "Imports: cli\r\n")

        assert target.read_bytes() == b"Imports: cli\r\n"
        assert stat.S_IMODE(target.stat().st_mode) == 0o640

    def test_failed_replace_leaves_original(self, tmp_path, monkeypatch):
        target = tmp_path / "DESCRIPTION"
        target.write_text("original")

        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(fs.os, "replace", failing_replace)

        with pytest.raises(OSError, match="disk full"):
            atomic_write(target, "new")

        assert target.read_text() == "original"
        assert leftovers(tmp_path) == []


class TestWriteTransaction:
    """Test backup and rollback across several files."""

    def test_success_discards_backups(self, tmp_path):
        first = tmp_path / "renv.lock"
        second = tmp_path / "DESCRIPTION"
        first.write_text("lock v1")
        second.write_text("desc v1")

        with WriteTransaction() as txn:
            txn.write(first, "lock v2")
            txn.write(second, "desc v2")

        assert first.read_text() == "lock v2"
        assert second.read_text() == "desc v2"
        assert leftovers(tmp_path) == []

    def test_second_failure_restores_first(self, tmp_path, monkeypatch):
        first = tmp_path / "renv.lock"
        second = tmp_path / "DESCRIPTION"
        first.write_text("lock v1")
        second.write_text("desc v1")

        real_atomic_write = fs.atomic_write

        def flaky_atomic_write(path, data, **kwargs):
            if path == second:
                raise OSError("read-only file system")
            real_atomic_write(path, data, **kwargs)

        monkeypatch.setattr(fs, "atomic_write", flaky_atomic_write)

        with pytest.raises(WriteError, match="read-only"):
            with WriteTransaction() as txn:
                txn.write(first, "lock v2")
                txn.write(second, "desc v2")

        assert first.read_text() == "lock v1"
        assert second.read_text() == "desc v1"
        assert leftovers(tmp_path) == []

    def test_error_in_block_rolls_back(self, tmp_path):
        target = tmp_path / "renv.lock"
        target.write_text("lock v1")

        with pytest.raises(RuntimeError):
            with WriteTransaction() as txn:
                txn.write(target, "lock v2")
                raise RuntimeError("boom")

        assert target.read_text() == "lock v1"

    def test_missing_file_cannot_be_backed_up(self, tmp_path):
        with pytest.raises(WriteError, match="cannot create backup"):
            with WriteTransaction() as txn:
                txn.write(tmp_path / "DESCRIPTION", "x")
        assert leftovers(tmp_path) == []


class TestProjectLock:
    """Test the advisory project lock."""

    def test_lock_lives_outside_project(self, tmp_path):
        path = lock_path_for(tmp_path)
        assert tmp_path not in path.parents
        assert path == lock_path_for(tmp_path / ".")

    def test_contended_lock_raises(self, tmp_path):
        holder = FileLock(str(lock_path_for(tmp_path)))
        with holder:
            with pytest.raises(WriteError, match="holds the project lock"):
                with project_lock(tmp_path, timeout=0.05):
                    pass

    def test_lock_is_released(self, tmp_path):
        with project_lock(tmp_path, timeout=0.5):
            pass
        with FileLock(str(lock_path_for(tmp_path)), timeout=0):
            pass
