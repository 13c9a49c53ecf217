"""renv.lock parsing and rewriting."""

import json
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .errors import ParseError
from .models import LockEntry, Lockfile, LockSource, RegistryMetadata

PACKAGE_TABLE = "Packages"

SOURCE_TYPES = {
    "repository": LockSource.REGISTRY,
    "cran": LockSource.REGISTRY,
    "bioconductor": LockSource.REGISTRY,
    "github": LockSource.VCS,
    "gitlab": LockSource.VCS,
    "bitbucket": LockSource.VCS,
    "git": LockSource.VCS,
    "local": LockSource.LOCAL,
}


def source_type(value: str | None) -> LockSource:
    """Map an renv ``Source`` value to a LockSource."""
    if not value:
        return LockSource.REGISTRY
    return SOURCE_TYPES.get(value.lower(), LockSource.REGISTRY)


def parse_renv_lock(content: str, path: Path | None = None) -> Lockfile:
    """Parse renv.lock content into a Lockfile.

    Args:
        content: The renv.lock file content
        path: Optional path used in error messages

    Returns:
        Parsed Lockfile object
    """
    try:
        document = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ParseError(path, f"invalid JSON at line {exc.lineno} column {exc.colno}: {exc.msg}") from exc

    if not isinstance(document, dict):
        raise ParseError(path, "top level is not a JSON object")

    table = document.get(PACKAGE_TABLE)
    if not isinstance(table, dict):
        raise ParseError(path, f"no '{PACKAGE_TABLE}' table found")

    entries = []
    for name, record in table.items():
        if not isinstance(record, dict):
            raise ParseError(path, f"record for '{name}' is not an object")
        entries.append(
            LockEntry(
                name=record.get("Package", name),
                version=str(record.get("Version", "")),
                source=source_type(record.get("Source")),
                integrity_hash=record.get("Hash"),
            )
        )

    return Lockfile(path=path, raw=content, document=document, entries=entries)


def read_renv_lock(path: Path) -> Lockfile:
    try:
        with path.open(encoding="utf-8", newline="") as handle:
            content = handle.read()
    except FileNotFoundError as exc:
        raise ParseError(path, "file not found") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(path, f"unreadable: {exc}") from exc
    return parse_renv_lock(content, path)


def lock_record(metadata: RegistryMetadata, repository: str) -> dict[str, Any]:
    return {
        "Package": metadata.name,
        "Version": metadata.latest_version,
        "Source": "Repository",
        "Repository": metadata.source_type or repository,
    }


def insert_sorted(table: dict[str, Any], name: str, record: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``table`` with ``name`` placed before the first larger key."""
    updated: dict[str, Any] = {}
    placed = False
    for key, value in table.items():
        if not placed and key > name:
            updated[name] = record
            placed = True
        updated[key] = value
    if not placed:
        updated[name] = record
    return updated


def detect_indent(raw: str) -> int:
    match = re.search(r"^( +)\S", raw, re.MULTILINE)
    return len(match.group(1)) if match else 2


def render_renv_lock(
    lockfile: Lockfile,
    additions: Iterable[RegistryMetadata],
    repository: str = "CRAN",
) -> str:
    """Produce renv.lock text with new package records inserted.

    Existing records are never overwritten. Records are placed at their
    sorted position in the package table; every other key keeps its order.

    Args:
        lockfile: Parsed lockfile holding the original document
        additions: Resolved metadata for packages to lock
        repository: Repository label used when metadata has none

    Returns:
        The new document text (``lockfile.raw`` when nothing changes)
    """
    table = dict(lockfile.document[PACKAGE_TABLE])
    changed = False
    for metadata in sorted(additions, key=lambda m: m.name):
        if metadata.name in table:
            continue
        table = insert_sorted(table, metadata.name, lock_record(metadata, repository))
        changed = True

    if not changed:
        return lockfile.raw

    document = {
        key: (table if key == PACKAGE_TABLE else value)
        for key, value in lockfile.document.items()
    }
    text = json.dumps(document, indent=detect_indent(lockfile.raw), ensure_ascii=False)
    if lockfile.raw.endswith("\n"):
        text += "\n"
    return text
