"""Exceptions raised by depsync."""

from pathlib import Path


class DepsyncError(Exception):
    """Base exception for all depsync errors."""


class ExtractionError(DepsyncError):
    """A source file could not be read. Recoverable: the file is skipped."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class ParseError(DepsyncError):
    """DESCRIPTION or renv.lock is structurally unusable."""

    def __init__(self, path: Path | None, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path or '<text>'}: {reason}")


class NetworkError(DepsyncError):
    """Registry lookup failed for a single package."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"{name}: {reason}")


class PackageNotFoundError(NetworkError):
    """The registry does not know the package. Never retried."""


class WriteError(DepsyncError):
    """Writing DESCRIPTION or renv.lock failed; originals were restored."""

    def __init__(self, path: Path | None, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path or '<project>'}: {reason}")
