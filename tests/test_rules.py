"""Tests for rule metadata loading and the RuleRegistry."""

import pytest

from shellpit.checks import CHECKS
from shellpit.core.diagnostics import RULE_FAILED, TIMED_OUT, UNPARSED_REGION, Severity
from shellpit.core.rules import LintRule, RuleRegistry, RuleSpec, load_rule_specs
from shellpit.exceptions import ConfigurationError


def noop(script, context):
    return []


@pytest.fixture
def single_rule_dir(tmp_path):
    """Rules directory holding one rule bound to noop."""
    (tmp_path / "10_test.yaml").write_text(
        """
rules:
  - id: test-rule
    description: Test rule
    severity: info
    suggestion: Do something else
    options:
      affected_versions: ["4.2"]
"""
    )
    return tmp_path


class TestBuiltinRules:
    """The shipped rule set."""

    def test_all_checks_registered(self, rules_dir_path):
        """Every check has metadata and vice versa."""
        registry = RuleRegistry.from_directory(rules_dir_path)
        assert len(registry) == len(CHECKS) == 9
        assert set(registry.ids) == set(CHECKS)

    def test_registry_order_follows_files(self, rules_dir_path):
        """Rules are ordered by file name, then entry order."""
        registry = RuleRegistry.from_directory(rules_dir_path)
        assert registry.ids[0] == "designated-initializer-collision"
        assert registry.ids[-1] == "ls-offset-skip"

    def test_default_severities(self, rules_dir_path):
        """Severities come from metadata."""
        registry = RuleRegistry.from_directory(rules_dir_path)
        assert registry.get("deferred-word-splitting").spec.severity is Severity.ERROR
        assert registry.get("ls-offset-skip").spec.severity is Severity.WARNING

    def test_global_assoc_options(self, rules_dir_path):
        """Affected versions are rule options, not constants."""
        registry = RuleRegistry.from_directory(rules_dir_path)
        assert registry.get("global-assoc-declare").spec.options == {"affected_versions": ["4.2"]}


class TestRegistryLoading:
    """Loading metadata from a directory."""

    def test_load_single_rule(self, single_rule_dir):
        """Metadata binds to the supplied check."""
        registry = RuleRegistry.from_directory(single_rule_dir, checks={"test-rule": noop})
        rule = registry.get("test-rule")
        assert rule.check is noop
        assert rule.spec.severity is Severity.INFO
        assert rule.spec.options["affected_versions"] == ["4.2"]

    def test_metadata_without_check(self, single_rule_dir):
        """A rule entry with no check is a configuration error."""
        with pytest.raises(ConfigurationError) as exc:
            RuleRegistry.from_directory(single_rule_dir, checks={})
        assert "No check implements rule 'test-rule'" in str(exc.value)

    def test_check_without_metadata(self, single_rule_dir):
        """A check with no metadata is a configuration error."""
        with pytest.raises(ConfigurationError) as exc:
            RuleRegistry.from_directory(single_rule_dir, checks={"test-rule": noop, "orphan": noop})
        assert "Checks without rule metadata: orphan" in str(exc.value)

    def test_missing_directory(self, tmp_path):
        """A missing directory raises ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc:
            RuleRegistry.from_directory(tmp_path / "nope")
        assert "Rules directory not found" in str(exc.value)

    def test_empty_directory(self, tmp_path):
        """A directory without YAML files raises ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc:
            RuleRegistry.from_directory(tmp_path)
        assert "No YAML files found" in str(exc.value)

    def test_files_loaded_in_sorted_order(self, tmp_path):
        """NN_ prefixes decide registry order."""
        (tmp_path / "20_b.yaml").write_text("rules:\n  - {id: b, description: B, severity: info}\n")
        (tmp_path / "10_a.yaml").write_text("rules:\n  - {id: a, description: A, severity: info}\n")
        registry = RuleRegistry.from_directory(tmp_path, checks={"a": noop, "b": noop})
        assert registry.ids == ["a", "b"]


class TestRuleSpecValidation:
    """Malformed metadata entries."""

    @pytest.mark.parametrize(
        "yaml_content,error_substring",
        [
            ("rules: [\n", "Invalid YAML syntax"),
            ("- just a list\n", "YAML root must be a dictionary"),
            ("rules:\n  - not a mapping\n", "must be a dictionary"),
            ("rules:\n  - {id: x, description: X, severity: fatal}\n", "Invalid severity"),
            ("rules:\n  - {id: x, severity: info}\n", "Invalid rule structure"),
            ("rules:\n  - {id: '', description: X, severity: info}\n", "Rule id cannot be empty"),
            ("rules:\n  - {id: x, description: X, severity: info, bogus: 1}\n", "Invalid rule structure"),
            ("rules:\n  - {id: x, description: X, severity: info, options: [1]}\n", "options must be a mapping"),
        ],
    )
    def test_invalid_entries(self, tmp_path, yaml_content, error_substring):
        """Malformed entries raise ConfigurationError naming the problem."""
        rules_file = tmp_path / "bad.yaml"
        rules_file.write_text(yaml_content)
        with pytest.raises(ConfigurationError) as exc:
            load_rule_specs(rules_file)
        assert error_substring in str(exc.value)

    def test_empty_file(self, tmp_path):
        """An empty file contributes no rules."""
        rules_file = tmp_path / "empty.yaml"
        rules_file.write_text("")
        assert load_rule_specs(rules_file) == []

    def test_severity_case_insensitive(self, tmp_path):
        """Severity names are case-insensitive."""
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text("rules:\n  - {id: x, description: X, severity: ERROR}\n")
        (spec,) = load_rule_specs(rules_file)
        assert spec.severity is Severity.ERROR

    def test_spec_requires_severity_enum(self):
        """RuleSpec rejects a raw string severity."""
        with pytest.raises(ValueError) as exc:
            RuleSpec(id="x", description="X", severity="warning")
        assert "severity must be Severity enum" in str(exc.value)


class TestRegistry:
    """Registry behavior."""

    def make(self, *ids):
        return RuleRegistry(LintRule(RuleSpec(rule_id, rule_id.upper(), Severity.WARNING), noop) for rule_id in ids)

    def test_duplicate_ids(self):
        """Duplicate ids are rejected."""
        with pytest.raises(ConfigurationError) as exc:
            self.make("a", "a")
        assert "Duplicate rule id" in str(exc.value)

    @pytest.mark.parametrize("reserved", [UNPARSED_REGION, RULE_FAILED, TIMED_OUT])
    def test_reserved_ids(self, reserved):
        """Engine diagnostic ids cannot be used by rules."""
        with pytest.raises(ConfigurationError) as exc:
            self.make(reserved)
        assert "reserved for engine diagnostics" in str(exc.value)

    def test_enabled_subset(self):
        """enabled() keeps registry order."""
        registry = self.make("a", "b", "c")
        assert [rule.id for rule in registry.enabled({"c", "a"})] == ["a", "c"]
        assert [rule.id for rule in registry.enabled()] == ["a", "b", "c"]

    def test_order_of(self):
        """Engine diagnostics sort after every rule."""
        registry = self.make("a", "b")
        assert registry.order_of("a") == 0
        assert registry.order_of("b") == 1
        assert registry.order_of(UNPARSED_REGION) == 2
        assert registry.order_of(TIMED_OUT) == 4
        assert registry.order_of("unknown") == 5

    def test_contains_and_get(self):
        """Membership and lookup by id."""
        registry = self.make("a")
        assert "a" in registry
        assert "z" not in registry
        with pytest.raises(KeyError):
            registry.get("z")
