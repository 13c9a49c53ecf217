"""Noise filtering for package names captured from source code.

Extraction is regex based and over-captures: base R packages, words from
prose or examples, placeholders in templates and the project's own name all
look like package references. The filter is an ordered table of
``FilterRule`` values evaluated by :func:`apply_rules`; the first rule that
matches a name rejects it and supplies the reason.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from .models import PackageReference

R_PACKAGE_NAME = r"^[A-Za-z][A-Za-z0-9.]*[A-Za-z0-9]$"


class RuleKind(str, Enum):
    EXACT = "exact"
    EXACT_NOCASE = "exact_nocase"
    MIN_LENGTH = "min_length"
    PATTERN = "pattern"
    NOT_PATTERN = "not_pattern"


@dataclass(frozen=True)
class FilterRule:
    """A single noise rule.

    ``values`` is used by the exact kinds, ``pattern`` by the pattern kinds
    and ``threshold`` by ``MIN_LENGTH``.
    """

    name: str
    reason: str
    kind: RuleKind
    values: frozenset[str] = frozenset()
    pattern: str | None = None
    threshold: int = 0


@dataclass
class FilterResult:
    """Accepted names with first-seen provenance, plus everything rejected."""

    accepted: dict[str, PackageReference] = field(default_factory=dict)
    rejected: list[tuple[PackageReference, str, str]] = field(default_factory=list)

    @property
    def names(self) -> set[str]:
        return set(self.accepted)


BASE_PACKAGES = frozenset({
    "base", "utils", "stats", "graphics", "grDevices", "methods", "datasets",
    "tools", "grid", "parallel", "compiler", "splines", "stats4", "tcltk",
})

GENERIC_WORDS = frozenset({
    "package", "packages", "pkg", "library", "require", "function", "name",
    "the", "this", "that", "your", "my", "example", "namespace",
})

PLACEHOLDERS = frozenset({
    "foo", "bar", "baz", "qux", "xxx", "yyy", "mypackage", "yourpackage",
    "pkgname", "packagename", "somepackage", "yourpkg", "mypkg",
})

DECLARED_NAME_RULES = frozenset({"base_package", "self_package", "user_exclude"})

DEFAULT_RULES: tuple[FilterRule, ...] = (
    FilterRule("too_short", "shorter than a valid package name", RuleKind.MIN_LENGTH, threshold=2),
    FilterRule("invalid_name", "not a valid R package name", RuleKind.NOT_PATTERN, pattern=R_PACKAGE_NAME),
    FilterRule("base_package", "ships with R", RuleKind.EXACT, values=BASE_PACKAGES),
    FilterRule("generic_word", "generic word captured from text", RuleKind.EXACT, values=GENERIC_WORDS),
    FilterRule("placeholder", "placeholder token", RuleKind.EXACT_NOCASE, values=PLACEHOLDERS),
)


def self_package_rule(package_name: str) -> FilterRule:
    return FilterRule(
        "self_package",
        "the project's own package",
        RuleKind.EXACT,
        values=frozenset({package_name}),
    )


def user_exclude_rule(names: Iterable[str]) -> FilterRule:
    return FilterRule(
        "user_exclude",
        "excluded by configuration",
        RuleKind.EXACT,
        values=frozenset(names),
    )


def build_rules(
    base: Sequence[FilterRule],
    package_name: str | None = None,
    extra_excludes: Iterable[str] = (),
) -> list[FilterRule]:
    """Extend a base rule table with the run-specific rules."""
    rules = list(base)
    if package_name:
        rules.append(self_package_rule(package_name))
    extra = frozenset(extra_excludes)
    if extra:
        rules.append(user_exclude_rule(extra))
    return rules


def matches(rule: FilterRule, name: str) -> bool:
    """Check whether ``rule`` rejects ``name``."""
    match rule.kind:
        case RuleKind.EXACT:
            return name in rule.values
        case RuleKind.EXACT_NOCASE:
            lowered = name.lower()
            return any(lowered == value.lower() for value in rule.values)
        case RuleKind.MIN_LENGTH:
            return len(name) < rule.threshold
        case RuleKind.PATTERN:
            return bool(rule.pattern and re.search(rule.pattern, name))
        case RuleKind.NOT_PATTERN:
            return bool(rule.pattern) and not re.search(rule.pattern, name)
    raise ValueError(f"Unknown rule kind: {rule.kind}")


def first_match(rules: Sequence[FilterRule], name: str) -> FilterRule | None:
    for rule in rules:
        if matches(rule, name):
            return rule
    return None


def exempt_names(names: Iterable[str], rules: Sequence[FilterRule]) -> set[str]:
    """Declared names that no lockfile or code scan is expected to contain.

    Only the base package, self package and user exclude rules apply to
    declared names.
    """
    declared_rules = [rule for rule in rules if rule.name in DECLARED_NAME_RULES]
    return {name for name in names if first_match(declared_rules, name)}


def apply_rules(
    references: Iterable[PackageReference], rules: Sequence[FilterRule]
) -> FilterResult:
    """Filter and deduplicate references.

    Args:
        references: Raw references in extraction order
        rules: Ordered rule table

    Returns:
        FilterResult keeping the first reference seen for each accepted name
    """
    result = FilterResult()
    verdicts: dict[str, FilterRule | None] = {}

    for ref in references:
        if ref.name not in verdicts:
            verdicts[ref.name] = first_match(rules, ref.name)
        rule = verdicts[ref.name]

        if rule is not None:
            result.rejected.append((ref, rule.name, rule.reason))
        elif ref.name not in result.accepted:
            result.accepted[ref.name] = ref

    return result
