"""Filesystem helpers for safe rewrites of DESCRIPTION and renv.lock.

- Atomic writes use a temp file in the destination directory, fsync it, and
  replace the target in a single final step.
- ``WriteTransaction`` keeps a sibling backup of every target and restores
  all of them if any write in the transaction fails.
- ``project_lock`` is a cross-process advisory lock for a project directory.
"""

import contextlib
import hashlib
import os
import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path

import structlog
from filelock import FileLock, Timeout

from .errors import WriteError

log = structlog.get_logger("depsync.fs")


def atomic_write(path: Path, data: str, *, encoding: str = "utf-8") -> None:
    """Atomically replace ``path`` with ``data``.

    Newlines are written as given, so CRLF files stay CRLF. The target keeps
    its permission bits.
    """
    target = Path(path)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target.parent),
    )
    temp_path = Path(temp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        if target.exists():
            shutil.copymode(target, temp_path)
        os.replace(temp_path, target)
    except BaseException:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise
    _fsync_directory(target.parent)


def _fsync_directory(path: Path) -> None:
    """Best-effort directory fsync; not every platform supports it."""
    try:
        dir_fd = os.open(str(path), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


class WriteTransaction:
    """Backup/rollback around a group of atomic writes.

    Usage::

        with WriteTransaction() as txn:
            txn.write(lock_path, lock_text)
            txn.write(manifest_path, manifest_text)

    Any failure inside the block restores every file replaced so far and
    surfaces as ``WriteError``. Backups are removed only on success.
    """

    def __init__(self):
        self._backups: dict[Path, Path] = {}
        self._replaced: list[Path] = []
        self._current: Path | None = None

    def __enter__(self) -> "WriteTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self._discard_backups()
            return False

        self.rollback()
        if isinstance(exc, OSError):
            raise WriteError(self._current, str(exc)) from exc
        return False

    def backup(self, path: Path) -> Path:
        fd, backup_name = tempfile.mkstemp(
            prefix=f".{path.name}.",
            suffix=".bak",
            dir=str(path.parent),
        )
        os.close(fd)
        backup_path = Path(backup_name)
        try:
            shutil.copy2(path, backup_path)
        except OSError as exc:
            backup_path.unlink(missing_ok=True)
            raise WriteError(path, f"cannot create backup: {exc}") from exc
        self._backups[path] = backup_path
        return backup_path

    def write(self, path: Path, data: str) -> None:
        self._current = path
        if path not in self._backups:
            self.backup(path)
        try:
            atomic_write(path, data)
        except OSError as exc:
            raise WriteError(path, str(exc)) from exc
        self._replaced.append(path)
        log.info("fs.written", file=str(path))

    def rollback(self) -> None:
        """Restore replaced files from their backups, newest first."""
        for path in reversed(self._replaced):
            backup_path = self._backups.pop(path, None)
            if backup_path is None:
                continue
            try:
                os.replace(backup_path, path)
                log.warning("fs.restored", file=str(path))
            except OSError as exc:
                # Backup stays on disk for manual recovery
                log.error("fs.restore_failed", file=str(path), backup=str(backup_path), error=str(exc))
        self._replaced.clear()
        self._discard_backups()

    def _discard_backups(self) -> None:
        for backup_path in self._backups.values():
            with contextlib.suppress(OSError):
                backup_path.unlink(missing_ok=True)
        self._backups.clear()


def lock_path_for(project_root: Path) -> Path:
    """Lock file location for a project, outside the project tree."""
    digest = hashlib.sha1(str(project_root.resolve()).encode("utf-8")).hexdigest()[:16]
    return Path(tempfile.gettempdir()) / f"depsync-{digest}.lock"


@contextlib.contextmanager
def project_lock(project_root: Path, timeout: float) -> Iterator[None]:
    """Hold the advisory write lock for ``project_root``.

    Raises:
        WriteError: If another process holds the lock past ``timeout``
    """
    lock = FileLock(str(lock_path_for(project_root)), timeout=timeout)
    try:
        lock.acquire()
    except Timeout as exc:
        raise WriteError(project_root, "another depsync run holds the project lock") from exc
    try:
        yield
    finally:
        lock.release()
