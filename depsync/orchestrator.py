"""Repair orchestration: analyze, resolve, write, report.

A run always starts from the files on disk. Findings are recomputed from
scratch on every invocation, so a second ``--fix`` run after a successful
one finds nothing to write.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import structlog

from .config import ValidateOptions, ValidationConfig
from .consistency import check_consistency, has_critical, summarize
from .errors import ParseError, WriteError
from .extract import ReferenceExtractor
from .fs import WriteTransaction, project_lock
from .models import (
    FindingKind,
    LockEntry,
    Lockfile,
    LookupResult,
    Manifest,
    ManifestEntry,
    ManifestSection,
    RegistryMetadata,
    Report,
    RunState,
    ValidationFinding,
)
from .noise import apply_rules, build_rules, exempt_names
from .parse_description import DECLARED_FIELD, read_description, render_description
from .parse_renv import read_renv_lock, render_renv_lock
from .registry import RegistryClient

log = structlog.get_logger("depsync.orchestrator")

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_STRUCTURAL = 2


@dataclass
class Analysis:
    """Everything read and computed in the ANALYZING state."""

    manifest: Manifest
    lockfile: Lockfile
    code_packages: set[str]
    findings: list[ValidationFinding]
    exempt: set[str] = field(default_factory=set)


@dataclass
class RepairPlan:
    """Writes chosen for the WRITING state."""

    manifest_add: list[str] = field(default_factory=list)
    manifest_remove: list[str] = field(default_factory=list)
    lock_add: list[RegistryMetadata] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.manifest_add or self.manifest_remove or self.lock_add)


class RepairOrchestrator:
    """State machine driving one validation or repair run."""

    def __init__(
        self,
        project_root: Path,
        options: ValidateOptions,
        config: ValidationConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.project_root = Path(project_root)
        self.options = options
        self.config = config or ValidationConfig()
        self.transport = transport
        self.report = Report(project_root=self.project_root)
        self.state = RunState.IDLE
        self.report.states.append(self.state)

    @property
    def manifest_path(self) -> Path:
        return self.project_root / self.config.manifest_name

    @property
    def lockfile_path(self) -> Path:
        return self.project_root / self.config.lockfile_name

    def _enter(self, state: RunState) -> None:
        log.info("orchestrator.state", previous=self.state.value, state=state.value)
        self.state = state
        self.report.states.append(state)

    async def run(self, cancel: asyncio.Event | None = None) -> Report:
        """Run the state machine to a terminal state and return the report."""
        try:
            self._enter(RunState.ANALYZING)
            analysis = self.analyze()
            self.report.findings = analysis.findings

            if not self.options.fix or not analysis.findings:
                self.report.remaining = analysis.findings
                self._finish()
                return self.report

            self._enter(RunState.RESOLVING_METADATA)
            lookups = await self.resolve(analysis, cancel)
            self.report.unresolved = {
                name: result.error or "unresolved"
                for name, result in lookups.items()
                if not result.resolved
            }

            self._enter(RunState.WRITING)
            plan = self.plan(analysis, lookups)
            self.write(analysis, plan)
            self.report.remaining = self.recheck(analysis, plan)
        except (ParseError, WriteError) as exc:
            log.error("orchestrator.failed", error=str(exc))
            self.report.error = str(exc)
            self.report.exit_code = EXIT_STRUCTURAL
            self._enter(RunState.FAILED)
            return self.report

        self._finish()
        return self.report

    def _finish(self) -> None:
        self.report.exit_code = EXIT_FINDINGS if has_critical(self.report.remaining) else EXIT_OK
        self._enter(RunState.REPORTING)

    # ── ANALYZING ──────────────────────────────────────────────────────────

    def analyze(self) -> Analysis:
        """Read both files and compute findings from current disk state."""
        manifest = read_description(self.manifest_path)
        lockfile = read_renv_lock(self.lockfile_path)

        extractor = ReferenceExtractor(self.config)
        references = extractor.extract(self.project_root, strict=self.options.strict)
        rules = build_rules(self.config.noise_rules, manifest.package_name, self.config.extra_excludes)
        filtered = apply_rules(references, rules)

        self.report.extraction_errors = [str(error) for error in extractor.errors]
        if self.options.verbose:
            self.report.rejected = filtered.rejected

        code_packages = filtered.names
        exempt = exempt_names(manifest.names(), rules)
        findings = check_consistency(
            code_packages,
            manifest.entries,
            lockfile.entries,
            strict=self.options.strict,
            exempt=exempt,
        )
        self.report.summary = summarize(code_packages, manifest.entries, lockfile.entries)
        log.info(
            "orchestrator.analyzed",
            code=len(code_packages),
            manifest=len(manifest.entries),
            lock=len(lockfile.entries),
            findings=len(findings),
        )
        return Analysis(manifest, lockfile, code_packages, findings, exempt)

    # ── RESOLVING_METADATA ─────────────────────────────────────────────────

    @staticmethod
    def names_to_resolve(analysis: Analysis) -> list[str]:
        """Names that need a new lock record."""
        locked = analysis.lockfile.names()
        names = {
            finding.package_name
            for finding in analysis.findings
            if finding.kind in (FindingKind.MISSING_FROM_LOCK, FindingKind.MISSING_FROM_MANIFEST)
        }
        return sorted(names - locked)

    async def resolve(
        self, analysis: Analysis, cancel: asyncio.Event | None = None
    ) -> dict[str, LookupResult]:
        names = self.names_to_resolve(analysis)
        if not names:
            return {}
        log.info("orchestrator.resolving", packages=len(names))
        async with RegistryClient(self.config, self.transport) as registry:
            return await registry.resolve_many(
                names, timeout=self.options.timeout, cancel=cancel
            )

    # ── WRITING ────────────────────────────────────────────────────────────

    def plan(self, analysis: Analysis, lookups: dict[str, LookupResult]) -> RepairPlan:
        locked = analysis.lockfile.names()
        imports = {entry.name for entry in analysis.manifest.entries if entry.field == DECLARED_FIELD}
        resolved = {name: result.metadata for name, result in lookups.items() if result.metadata}
        plan = RepairPlan()

        for finding in analysis.findings:
            name = finding.package_name
            match finding.kind:
                case FindingKind.MISSING_FROM_MANIFEST:
                    if name in locked or name in resolved:
                        plan.manifest_add.append(name)
                case FindingKind.MISSING_FROM_LOCK:
                    pass
                case FindingKind.UNUSED_IN_MANIFEST:
                    if self.options.prune and self.options.strict and name in imports:
                        plan.manifest_remove.append(name)

        pruned = set(plan.manifest_remove)
        plan.lock_add = [resolved[name] for name in sorted(resolved) if name not in pruned]
        return plan

    def write(self, analysis: Analysis, plan: RepairPlan) -> None:
        """Apply the plan under the project lock, lockfile first."""
        if plan.empty:
            log.info("orchestrator.nothing_to_write")
            return

        new_lock = render_renv_lock(analysis.lockfile, plan.lock_add, self.config.repository)
        new_manifest = render_description(
            analysis.manifest, add=plan.manifest_add, remove=plan.manifest_remove
        )

        with project_lock(self.project_root, self.config.lock_timeout):
            self._ensure_unchanged(analysis)
            with WriteTransaction() as txn:
                if new_lock != analysis.lockfile.raw:
                    txn.write(self.lockfile_path, new_lock)
                if new_manifest != analysis.manifest.raw:
                    txn.write(self.manifest_path, new_manifest)

        self.report.lock_added = list(plan.lock_add)
        self.report.manifest_added = list(plan.manifest_add)
        self.report.manifest_removed = list(plan.manifest_remove)

    def _ensure_unchanged(self, analysis: Analysis) -> None:
        """Refuse to write over edits made since ANALYZING read the files."""
        current = (
            (self.lockfile_path, read_renv_lock(self.lockfile_path).raw, analysis.lockfile.raw),
            (self.manifest_path, read_description(self.manifest_path).raw, analysis.manifest.raw),
        )
        for path, on_disk, analyzed in current:
            if on_disk != analyzed:
                raise WriteError(path, "changed on disk during the run; rerun depsync")

    def recheck(self, analysis: Analysis, plan: RepairPlan) -> list[ValidationFinding]:
        """Findings that still hold after the plan was applied."""
        removed = set(plan.manifest_remove)
        entries = [
            entry
            for entry in analysis.manifest.entries
            if not (entry.field == DECLARED_FIELD and entry.name in removed)
        ]
        entries += [ManifestEntry(name, section=ManifestSection.REQUIRED) for name in plan.manifest_add]
        locks = analysis.lockfile.entries + [
            LockEntry(metadata.name, metadata.latest_version) for metadata in plan.lock_add
        ]
        return check_consistency(
            analysis.code_packages,
            entries,
            locks,
            strict=self.options.strict,
            exempt=analysis.exempt,
        )


def validate(
    project_root: Path,
    options: ValidateOptions | None = None,
    config: ValidationConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[Report, int]:
    """Validate (and optionally repair) a project.

    Args:
        project_root: Directory holding DESCRIPTION and renv.lock
        options: Per-run switches (fix, strict, verbose, prune, timeout)
        config: Static configuration; defaults to ValidationConfig()
        transport: Optional httpx transport for the registry client

    Returns:
        Tuple of (report, exit code) where the exit code is 0 when
        consistent or repaired, 1 when critical findings remain and 2 on a
        parse or write error
    """
    orchestrator = RepairOrchestrator(project_root, options or ValidateOptions(), config, transport)
    report = asyncio.run(orchestrator.run())
    return report, report.exit_code
