"""Tests for the noise filter rule table."""

from pathlib import Path

import pytest

from depsync.models import PackageReference
from depsync.noise import (
    DEFAULT_RULES,
    FilterRule,
    RuleKind,
    apply_rules,
    build_rules,
    exempt_names,
    first_match,
    matches,
)


def ref(name, line=1, file="R/a.R"):
    return PackageReference(name, Path(file), line, "library_call")


class TestRuleMatching:
    """Test individual rule kinds."""

    def test_exact_is_case_sensitive(self):
        rule = FilterRule("r", "reason", RuleKind.EXACT, values=frozenset({"stats"}))
        assert matches(rule, "stats")
        assert not matches(rule, "Stats")

    def test_exact_nocase(self):
        rule = FilterRule("r", "reason", RuleKind.EXACT_NOCASE, values=frozenset({"foo"}))
        assert matches(rule, "FOO")

    def test_min_length(self):
        rule = FilterRule("r", "reason", RuleKind.MIN_LENGTH, threshold=3)
        assert matches(rule, "ab")
        assert not matches(rule, "abc")

    def test_pattern_and_not_pattern(self):
        pattern = FilterRule("r", "reason", RuleKind.PATTERN, pattern=r"^tmp")
        inverse = FilterRule("r", "reason", RuleKind.NOT_PATTERN, pattern=r"^[a-z]+$")
        assert matches(pattern, "tmpdata")
        assert not matches(pattern, "data")
        assert matches(inverse, "Data2")
        assert not matches(inverse, "data")


class TestDefaultRules:
    """Test the shipped rule table."""

    @pytest.mark.parametrize(
        "name,rule",
        [
            ("x", "too_short"),
            ("pkg_name", "invalid_name"),
            ("trailing.", "invalid_name"),
            ("stats", "base_package"),
            ("grDevices", "base_package"),
            ("package", "generic_word"),
            ("MyPackage", "placeholder"),
        ],
    )
    def test_rejections(self, name, rule):
        assert first_match(DEFAULT_RULES, name).name == rule

    @pytest.mark.parametrize("name", ["dplyr", "data.table", "R6", "here", "ggplot2"])
    def test_real_packages_pass(self, name):
        assert first_match(DEFAULT_RULES, name) is None

    def test_first_matching_rule_wins(self):
        # "t" is both too short and would fail the name pattern
        assert first_match(DEFAULT_RULES, "t").name == "too_short"


class TestBuildRules:
    """Test run-specific rule construction."""

    def test_adds_self_and_user_rules(self):
        rules = build_rules(DEFAULT_RULES, package_name="myanalysis", extra_excludes=["internalpkg"])
        assert [rule.name for rule in rules[-2:]] == ["self_package", "user_exclude"]
        assert first_match(rules, "myanalysis").name == "self_package"
        assert first_match(rules, "internalpkg").name == "user_exclude"

    def test_base_is_unchanged_without_extras(self):
        assert build_rules(DEFAULT_RULES) == list(DEFAULT_RULES)


class TestApplyRules:
    """Test filtering and deduplication."""

    def test_keeps_first_reference_per_name(self):
        result = apply_rules([ref("dplyr", 3), ref("dplyr", 9), ref("tidyr", 4)], DEFAULT_RULES)
        assert result.names == {"dplyr", "tidyr"}
        assert result.accepted["dplyr"].line == 3

    def test_records_every_rejected_occurrence(self):
        result = apply_rules([ref("stats", 1), ref("stats", 2), ref("foo", 5)], DEFAULT_RULES)
        assert result.names == set()
        assert [(r.line, rule) for r, rule, _ in result.rejected] == [
            (1, "base_package"),
            (2, "base_package"),
            (5, "placeholder"),
        ]

    def test_empty_input(self):
        result = apply_rules([], DEFAULT_RULES)
        assert result.accepted == {}
        assert result.rejected == []


class TestExemptNames:
    """Test which declared names are left out of the lock checks."""

    def test_base_self_and_user_rules_apply(self):
        rules = build_rules(DEFAULT_RULES, package_name="myanalysis", extra_excludes=["internal"])
        declared = {"methods", "stats", "myanalysis", "internal", "dplyr", "foo"}
        assert exempt_names(declared, rules) == {"methods", "stats", "myanalysis", "internal"}

    def test_noise_rules_do_not_apply(self):
        assert exempt_names({"x", "package"}, DEFAULT_RULES) == set()
