"""Three-way consistency checks between code, DESCRIPTION and renv.lock."""

from collections.abc import Iterable

from .models import (
    ConsistencySummary,
    FindingKind,
    LockEntry,
    ManifestEntry,
    ManifestSection,
    Severity,
    ValidationFinding,
)

SEVERITY = {
    FindingKind.MISSING_FROM_MANIFEST: Severity.CRITICAL,
    FindingKind.MISSING_FROM_LOCK: Severity.CRITICAL,
    FindingKind.UNUSED_IN_MANIFEST: Severity.WARNING,
}


def _finding(name: str, kind: FindingKind) -> ValidationFinding:
    return ValidationFinding(package_name=name, kind=kind, severity=SEVERITY[kind])


def check_consistency(
    code_packages: Iterable[str],
    manifest_entries: Iterable[ManifestEntry],
    lock_entries: Iterable[LockEntry],
    *,
    strict: bool = False,
    exempt: Iterable[str] = (),
) -> list[ValidationFinding]:
    """Compute findings for the subset law code ⊆ Required ⊆ lock.

    Args:
        code_packages: Filtered package names referenced by code
        manifest_entries: DESCRIPTION entries
        lock_entries: renv.lock entries
        strict: Report Required entries that code never references
        exempt: Declared names left out of the lock and unused checks

    Returns:
        Findings sorted by package name, then kind
    """
    code = set(code_packages)
    entries = list(manifest_entries)
    declared = {entry.name for entry in entries}
    required = {entry.name for entry in entries if entry.section == ManifestSection.REQUIRED}
    required -= set(exempt)
    locked = {entry.name for entry in lock_entries}

    findings = [_finding(name, FindingKind.MISSING_FROM_MANIFEST) for name in code - declared]
    findings += [_finding(name, FindingKind.MISSING_FROM_LOCK) for name in required - locked]
    if strict:
        findings += [_finding(name, FindingKind.UNUSED_IN_MANIFEST) for name in required - code]

    return sorted(findings)


def summarize(
    code_packages: Iterable[str],
    manifest_entries: Iterable[ManifestEntry],
    lock_entries: Iterable[LockEntry],
) -> ConsistencySummary:
    declared = {entry.name for entry in manifest_entries}
    locked = {entry.name for entry in lock_entries}
    return ConsistencySummary(
        code_packages=len(set(code_packages)),
        manifest_packages=len(declared),
        lock_packages=len(locked),
        lock_only=sorted(locked - declared),
    )


def has_critical(findings: Iterable[ValidationFinding]) -> bool:
    return any(finding.severity == Severity.CRITICAL for finding in findings)
