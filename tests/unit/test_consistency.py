"""Tests for the code / DESCRIPTION / renv.lock consistency checks."""

from depsync.consistency import check_consistency, has_critical, summarize
from depsync.models import (
    FindingKind,
    LockEntry,
    ManifestEntry,
    ManifestSection,
    Severity,
    ValidationFinding,
)

MANIFEST = [
    ManifestEntry("dplyr"),
    ManifestEntry("ggplot2"),
    ManifestEntry("testthat", section=ManifestSection.OPTIONAL, field="Suggests"),
]
LOCK = [LockEntry("dplyr", "1.1.4"), LockEntry("ggplot2", "3.4.4"), LockEntry("rlang", "1.1.2")]


class TestCheckConsistency:
    """Test finding computation."""

    def test_consistent_project_has_no_findings(self):
        assert check_consistency({"dplyr", "ggplot2"}, MANIFEST, LOCK) == []

    def test_missing_from_manifest_and_lock(self):
        manifest = MANIFEST + [ManifestEntry("tidyr")]
        findings = check_consistency({"dplyr", "alpha"}, manifest, LOCK)

        assert findings == [
            ValidationFinding("alpha", FindingKind.MISSING_FROM_MANIFEST, Severity.CRITICAL),
            ValidationFinding("tidyr", FindingKind.MISSING_FROM_LOCK, Severity.CRITICAL),
        ]

    def test_suggests_counts_as_declared(self):
        assert check_consistency({"testthat"}, MANIFEST, LOCK) == []

    def test_optional_entries_need_no_lock(self):
        manifest = MANIFEST + [ManifestEntry("covr", section=ManifestSection.OPTIONAL, field="Suggests")]
        assert check_consistency(set(), manifest, LOCK) == []

    def test_unused_only_in_strict_mode(self):
        assert check_consistency({"dplyr"}, MANIFEST, LOCK) == []

        findings = check_consistency({"dplyr"}, MANIFEST, LOCK, strict=True)
        assert findings == [
            ValidationFinding("ggplot2", FindingKind.UNUSED_IN_MANIFEST, Severity.WARNING),
        ]
        assert not has_critical(findings)

    def test_lock_superset_is_not_a_finding(self):
        # rlang is a transitive dependency that only the lock records
        findings = check_consistency({"dplyr", "ggplot2"}, MANIFEST, LOCK, strict=True)
        assert all(f.package_name != "rlang" for f in findings)

    def test_findings_are_sorted(self):
        findings = check_consistency({"zeta", "beta", "alpha"}, [], [])
        assert [f.package_name for f in findings] == ["alpha", "beta", "zeta"]

    def test_same_name_sorted_by_kind(self):
        findings = check_consistency({"alpha"}, [], [])
        findings += check_consistency(set(), [ManifestEntry("alpha")], [])
        assert sorted(findings)[0].kind == FindingKind.MISSING_FROM_LOCK


class TestSummary:
    def test_counts_and_lock_only(self):
        summary = summarize(["dplyr", "dplyr", "ggplot2"], MANIFEST, LOCK)
        assert summary.code_packages == 2
        assert summary.manifest_packages == 3
        assert summary.lock_packages == 3
        assert summary.lock_only == ["rlang"]


class TestExempt:
    def test_exempt_names_skip_lock_and_unused_checks(self):
        manifest = MANIFEST + [ManifestEntry("methods")]
        findings = check_consistency({"dplyr", "ggplot2"}, manifest, LOCK, strict=True, exempt={"methods"})
        assert findings == []

    def test_without_exempt_base_import_needs_a_lock_record(self):
        manifest = MANIFEST + [ManifestEntry("methods")]
        findings = check_consistency({"dplyr", "ggplot2"}, manifest, LOCK)
        assert findings == [ValidationFinding("methods", FindingKind.MISSING_FROM_LOCK, Severity.CRITICAL)]
