"""Core data models for depsync."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class ManifestSection(str, Enum):
    """Dependency section of a DESCRIPTION file."""

    REQUIRED = "required"
    OPTIONAL = "optional"


class LockSource(str, Enum):
    """Where a locked package was installed from."""

    REGISTRY = "registry"
    VCS = "vcs"
    LOCAL = "local"


class FindingKind(str, Enum):
    MISSING_FROM_MANIFEST = "missing_from_manifest"
    MISSING_FROM_LOCK = "missing_from_lock"
    UNUSED_IN_MANIFEST = "unused_in_manifest"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"


class RunState(str, Enum):
    """States of a repair run."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    RESOLVING_METADATA = "resolving_metadata"
    WRITING = "writing"
    REPORTING = "reporting"
    FAILED = "failed"


@dataclass(frozen=True)
class PackageReference:
    """A package name found in source code."""

    name: str
    file: Path
    line: int
    match_rule: str


@dataclass
class ManifestEntry:
    """A single dependency entry in a DESCRIPTION file."""

    name: str
    version_constraint: str | None = None
    section: ManifestSection = ManifestSection.REQUIRED
    field: str = "Imports"  # Imports, Depends, Suggests


@dataclass
class Manifest:
    """A parsed DESCRIPTION file."""

    path: Path | None
    raw: str
    entries: list[ManifestEntry]
    package_name: str | None = None

    def names(self, section: ManifestSection | None = None) -> set[str]:
        return {
            entry.name
            for entry in self.entries
            if section is None or entry.section == section
        }


@dataclass
class LockEntry:
    """A single pinned package in renv.lock."""

    name: str
    version: str
    source: LockSource = LockSource.REGISTRY
    integrity_hash: str | None = None


@dataclass
class Lockfile:
    """A parsed renv.lock document."""

    path: Path | None
    raw: str
    document: dict[str, Any]
    entries: list[LockEntry]

    def names(self) -> set[str]:
        return {entry.name for entry in self.entries}


@dataclass(frozen=True, order=True)
class ValidationFinding:
    """A single inconsistency between code, DESCRIPTION and renv.lock."""

    package_name: str
    kind: FindingKind
    severity: Severity


@dataclass(frozen=True)
class RegistryMetadata:
    """Package metadata returned by the registry."""

    name: str
    latest_version: str
    source_type: str


@dataclass
class LookupResult:
    """Outcome of a registry lookup for one name."""

    name: str
    metadata: RegistryMetadata | None = None
    error: str | None = None

    @property
    def resolved(self) -> bool:
        return self.metadata is not None


@dataclass
class ConsistencySummary:
    """Counts reported alongside the findings."""

    code_packages: int = 0
    manifest_packages: int = 0
    lock_packages: int = 0
    lock_only: list[str] = field(default_factory=list)


@dataclass
class Report:
    """Result of a validation or repair run."""

    project_root: Path
    states: list[RunState] = field(default_factory=list)
    findings: list[ValidationFinding] = field(default_factory=list)
    remaining: list[ValidationFinding] = field(default_factory=list)
    unresolved: dict[str, str] = field(default_factory=dict)
    extraction_errors: list[str] = field(default_factory=list)
    rejected: list[tuple[PackageReference, str, str]] = field(default_factory=list)
    summary: ConsistencySummary = field(default_factory=ConsistencySummary)
    manifest_added: list[str] = field(default_factory=list)
    manifest_removed: list[str] = field(default_factory=list)
    lock_added: list[RegistryMetadata] = field(default_factory=list)
    error: str | None = None
    exit_code: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.manifest_added or self.manifest_removed or self.lock_added)
