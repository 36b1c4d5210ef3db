"""Rule definitions and the rule registry.

Rule metadata (id, description, default severity, suggestion, options) lives
in YAML files under shellpit/data/rules/. Each entry is bound to a check
function from shellpit.checks by id; a metadata entry without a check, or a
check without metadata, is a configuration error.

Registry order is load order: YAML files sorted by name (NN_ prefix), then
entry order within each file. That order is part of diagnostic sorting, so
output stays deterministic.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

import yaml

from shellpit.checks import CHECKS
from shellpit.core.constructs import ParsedScript
from shellpit.core.diagnostics import ENGINE_DIAGNOSTICS, Finding, Severity
from shellpit.exceptions import ConfigurationError

if TYPE_CHECKING:
    from shellpit.core.config import LintConfig

logger = logging.getLogger(__name__)

DEFAULT_RULES_DIR = Path(__file__).parent.parent / "data" / "rules"


@dataclass(frozen=True)
class RuleSpec:
    """Metadata for one lint rule.

    Attributes:
        id: Stable rule identifier (e.g., "ls-offset-skip")
        description: What hazard the rule detects
        severity: Default severity of findings
        suggestion: Default suggested fix
        options: Rule-specific settings (e.g., affected_versions)

    Example:
        >>> spec = RuleSpec(
        ...     id="ls-offset-skip",
        ...     description="ls -a output filtered by a fixed line offset",
        ...     severity=Severity.WARNING,
        ... )
    """

    id: str
    description: str
    severity: Severity
    suggestion: str = ""
    options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate rule structure after initialization."""
        if not self.id:
            raise ValueError("Rule id cannot be empty")
        if not self.description:
            raise ValueError("Rule description cannot be empty")
        if not isinstance(self.severity, Severity):
            raise ValueError(f"severity must be Severity enum, got {type(self.severity)}")
        if not isinstance(self.options, dict):
            raise ValueError(f"options must be a mapping, got {type(self.options)}")


@dataclass(frozen=True)
class RuleContext:
    """What a check function sees besides the parsed script."""

    spec: RuleSpec
    config: "LintConfig"


CheckFunction = Callable[[ParsedScript, RuleContext], Iterable[Finding]]


@dataclass(frozen=True)
class LintRule:
    """A rule's metadata bound to its check function."""

    spec: RuleSpec
    check: CheckFunction

    @property
    def id(self) -> str:
        return self.spec.id

    def run(self, script: ParsedScript, config: "LintConfig") -> list[Finding]:
        """Run the check over one script and collect its findings."""
        return list(self.check(script, RuleContext(self.spec, config)))


class RuleRegistry:
    """Load rule metadata from YAML and bind it to check functions.

    YAML Structure:
        ```yaml
        rules:
          - id: rule-id
            description: What the rule detects
            severity: warning  # or info, error
            suggestion: How to fix it
            options:
              affected_versions: ["4.2"]
        ```

    Example:
        >>> registry = RuleRegistry.from_directory(DEFAULT_RULES_DIR)
        >>> registry.get("ls-offset-skip").spec.severity
        <Severity.WARNING: 1>
    """

    def __init__(self, rules: Iterable[LintRule] = ()):
        self._rules: dict[str, LintRule] = {}
        for rule in rules:
            if rule.id in self._rules:
                raise ConfigurationError(f"Duplicate rule id: '{rule.id}'")
            if rule.id in ENGINE_DIAGNOSTICS:
                raise ConfigurationError(f"Rule id '{rule.id}' is reserved for engine diagnostics")
            self._rules[rule.id] = rule

    @classmethod
    def from_directory(
        cls,
        rules_dir: Union[str, Path] = DEFAULT_RULES_DIR,
        checks: Optional[dict[str, CheckFunction]] = None,
    ) -> "RuleRegistry":
        """Create a registry from a directory of YAML files.

        Files are loaded in sorted order (alphabetical), which respects the
        NN_ numbering convention for deterministic ordering.

        Args:
            rules_dir: Directory containing rule YAML files
            checks: Mapping of rule id to check function (defaults to the
                built-in checks)

        Returns:
            RuleRegistry with one rule per metadata entry

        Raises:
            ConfigurationError: If the directory or any file is invalid, or
                metadata and checks do not match one-to-one
        """
        rules_dir = Path(rules_dir)
        checks = CHECKS if checks is None else checks
        if not rules_dir.is_dir():
            raise ConfigurationError(f"Rules directory not found: {rules_dir}", file_path=str(rules_dir))

        yaml_files = sorted(rules_dir.glob("*.yaml"))
        if not yaml_files:
            raise ConfigurationError(
                f"No YAML files found in rules directory: {rules_dir}",
                file_path=str(rules_dir),
            )
        logger.debug(f"Loading rule metadata from {len(yaml_files)} files in {rules_dir}")

        specs: list[RuleSpec] = []
        for yaml_file in yaml_files:
            specs.extend(load_rule_specs(yaml_file))

        rules = []
        for spec in specs:
            check = checks.get(spec.id)
            if check is None:
                raise ConfigurationError(f"No check implements rule '{spec.id}'", file_path=str(rules_dir))
            rules.append(LintRule(spec, check))

        missing = sorted(set(checks) - {spec.id for spec in specs})
        if missing:
            raise ConfigurationError(
                f"Checks without rule metadata: {', '.join(missing)}",
                file_path=str(rules_dir),
            )
        return cls(rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(self._rules.values())

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._rules

    @property
    def ids(self) -> list[str]:
        return list(self._rules)

    def get(self, rule_id: str) -> LintRule:
        """Return the rule with this id.

        Raises:
            KeyError: If no such rule is registered
        """
        return self._rules[rule_id]

    def enabled(self, enabled_ids: Optional[Iterable[str]] = None) -> list[LintRule]:
        """Rules to run, in registry order. None means every rule."""
        if enabled_ids is None:
            return list(self._rules.values())
        wanted = set(enabled_ids)
        return [rule for rule in self._rules.values() if rule.id in wanted]

    def order_of(self, rule_id: str) -> int:
        """Sort rank of a rule id; engine diagnostics rank after all rules."""
        ids = self.ids
        if rule_id in self._rules:
            return ids.index(rule_id)
        engine_ids = list(ENGINE_DIAGNOSTICS)
        if rule_id in engine_ids:
            return len(ids) + engine_ids.index(rule_id)
        return len(ids) + len(engine_ids)


def load_rule_specs(yaml_file: Path) -> list[RuleSpec]:
    """Load and validate the rule entries of one YAML file.

    Raises:
        ConfigurationError: If YAML is invalid or an entry is malformed
    """
    try:
        with open(yaml_file, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax in {yaml_file.name}: {e}", file_path=str(yaml_file))
    except OSError as e:
        raise ConfigurationError(f"Failed to read rules file: {e}", file_path=str(yaml_file))

    if not data:
        return []
    if not isinstance(data, dict):
        raise ConfigurationError(f"YAML root must be a dictionary in {yaml_file.name}", file_path=str(yaml_file))

    specs = []
    for index, rule_data in enumerate(data.get("rules") or []):
        if not isinstance(rule_data, dict):
            raise ConfigurationError(f"Rule at index {index} must be a dictionary", file_path=str(yaml_file))
        rule_data = dict(rule_data)
        if "severity" in rule_data:
            try:
                rule_data["severity"] = Severity.from_name(rule_data["severity"])
            except ValueError as e:
                raise ConfigurationError(f"Rule at index {index}: {e}", file_path=str(yaml_file))
        if "options" in rule_data and rule_data["options"] is None:
            rule_data["options"] = {}
        try:
            specs.append(RuleSpec(**rule_data))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid rule structure at index {index} in {yaml_file.name}: {e}",
                file_path=str(yaml_file),
            )
    return specs
