"""Run configuration.

Both structures are frozen and passed explicitly to every stage; nothing in
depsync reads configuration from the process environment.
"""

from dataclasses import dataclass

from .noise import DEFAULT_RULES, FilterRule


@dataclass(frozen=True)
class ValidationConfig:
    """Static settings for a project check."""

    primary_dirs: tuple[str, ...] = ("R", "scripts", "analysis")
    secondary_dirs: tuple[str, ...] = ("tests", "vignettes", "inst")
    include_root_files: bool = True
    file_extensions: tuple[str, ...] = ("R", "Rmd", "qmd", "Rnw")

    manifest_name: str = "DESCRIPTION"
    lockfile_name: str = "renv.lock"

    noise_rules: tuple[FilterRule, ...] = DEFAULT_RULES
    extra_excludes: frozenset[str] = frozenset()

    registry_url: str = "https://crandb.r-pkg.org"
    repository: str = "CRAN"
    max_concurrency: int = 6
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_base_delay: float = 1.0

    lock_timeout: float = 10.0

    def scan_dirs(self, strict: bool) -> tuple[str, ...]:
        if strict:
            return self.primary_dirs + self.secondary_dirs
        return self.primary_dirs


@dataclass(frozen=True)
class ValidateOptions:
    """Per-invocation switches.

    Attributes:
        fix: Repair DESCRIPTION and renv.lock
        strict: Also scan secondary directories and report unused Imports
        verbose: Include filtered-out names in the report
        prune: With strict and fix, remove unused Imports
        timeout: Overall deadline in seconds for registry lookups
    """

    fix: bool = False
    strict: bool = False
    verbose: bool = False
    prune: bool = False
    timeout: float | None = None
