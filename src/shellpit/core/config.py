"""Lint configuration and config file loading.

Configuration layers (later overrides earlier):
1. Built-in defaults (all rules enabled, 2000ms per-file budget)
2. User config: <platform config dir>/shellpit/config.yaml (optional)
3. Project config: .shellpit.yaml in the working directory (optional)

An explicit config path replaces layers 2 and 3. Config files are YAML
mappings with snake_case keys:

    ```yaml
    target_runtime_versions: ["4.2", "5.1"]
    enabled_rules: [designated-initializer-collision, ls-offset-skip]
    per_file_timeout_ms: 2000
    max_workers: 8
    severity_overrides:
      ls-offset-skip: error
    ```

Invalid configuration is fatal: it raises ConfigurationError before any
script is analyzed.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

import yaml
from platformdirs import user_config_dir

from shellpit.core.diagnostics import ENGINE_DIAGNOSTICS, Severity
from shellpit.exceptions import ConfigurationError

if TYPE_CHECKING:
    from shellpit.core.rules import RuleRegistry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 2000
PROJECT_CONFIG_NAME = ".shellpit.yaml"
USER_CONFIG_NAME = "config.yaml"

VERSION_RE = re.compile(r"^\d+(\.\d+){0,2}$")

KNOWN_KEYS = frozenset(
    {"target_runtime_versions", "enabled_rules", "per_file_timeout_ms", "severity_overrides", "max_workers"}
)


@dataclass(frozen=True)
class LintConfig:
    """Settings for one lint invocation.

    Attributes:
        target_runtime_versions: Shell versions the scripts must run on
            (e.g. {"4.2", "5.1"}); empty means unspecified
        enabled_rules: Rule ids to run; None runs every registered rule
        per_file_timeout_ms: Analysis budget for each script
        severity_overrides: Severity to report per rule id
        max_workers: Worker thread limit; None picks one per input, capped

    Example:
        >>> config = LintConfig(target_runtime_versions=frozenset({"4.2"}))
        >>> config.targets_any(["4.2"])
        True
    """

    target_runtime_versions: frozenset[str] = frozenset()
    enabled_rules: Optional[frozenset[str]] = None
    per_file_timeout_ms: int = DEFAULT_TIMEOUT_MS
    severity_overrides: dict[str, Severity] = field(default_factory=dict)
    max_workers: Optional[int] = None

    def __post_init__(self):
        """Validate values that do not depend on the rule registry."""
        for version in self.target_runtime_versions:
            if not isinstance(version, str) or not VERSION_RE.match(version):
                raise ConfigurationError(
                    f"Malformed runtime version identifier: {version!r} (expected e.g. '4.2' or '5.2.15')"
                )
        if isinstance(self.per_file_timeout_ms, bool) or not isinstance(self.per_file_timeout_ms, int):
            raise ConfigurationError(f"per_file_timeout_ms must be an integer, got {self.per_file_timeout_ms!r}")
        if self.per_file_timeout_ms <= 0:
            raise ConfigurationError(f"per_file_timeout_ms must be positive, got {self.per_file_timeout_ms}")
        if self.max_workers is not None and (not isinstance(self.max_workers, int) or self.max_workers <= 0):
            raise ConfigurationError(f"max_workers must be a positive integer, got {self.max_workers!r}")
        for rule_id, severity in self.severity_overrides.items():
            if not isinstance(severity, Severity):
                raise ConfigurationError(f"Severity override for '{rule_id}' must be a Severity, got {severity!r}")

    def validate(self, registry: "RuleRegistry") -> None:
        """Check rule ids against the registry.

        Raises:
            ConfigurationError: If enabled_rules or severity_overrides name
                an unknown rule id
        """
        if self.enabled_rules is not None:
            unknown = sorted(rule_id for rule_id in self.enabled_rules if rule_id not in registry)
            if unknown:
                raise ConfigurationError(f"Unknown rule id(s) in enabled_rules: {', '.join(unknown)}")
        unknown = sorted(
            rule_id
            for rule_id in self.severity_overrides
            if rule_id not in registry and rule_id not in ENGINE_DIAGNOSTICS
        )
        if unknown:
            raise ConfigurationError(f"Unknown rule id(s) in severity_overrides: {', '.join(unknown)}")

    def targets_any(self, affected_versions: Iterable[str]) -> Optional[bool]:
        """Whether any configured target falls in one of the affected versions.

        Returns None when no targets are configured.
        """
        if not self.target_runtime_versions:
            return None
        affected = list(affected_versions)
        return any(version_matches(target, version) for target in self.target_runtime_versions for version in affected)

    @classmethod
    def from_dict(cls, data: dict[str, Any], file_path: Optional[str] = None) -> "LintConfig":
        """Build a config from a parsed YAML mapping.

        Unknown keys are logged and ignored.

        Raises:
            ConfigurationError: If a value has the wrong shape
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Config root must be a dictionary", file_path=file_path)

        for key in sorted(set(data) - KNOWN_KEYS):
            logger.warning(f"Ignoring unknown config key '{key}'" + (f" in {file_path}" if file_path else ""))

        kwargs: dict[str, Any] = {}
        if data.get("target_runtime_versions") is not None:
            kwargs["target_runtime_versions"] = frozenset(
                str(v) for v in _as_list(data["target_runtime_versions"], "target_runtime_versions", file_path)
            )
        if data.get("enabled_rules") is not None:
            kwargs["enabled_rules"] = frozenset(
                str(v) for v in _as_list(data["enabled_rules"], "enabled_rules", file_path)
            )
        if data.get("per_file_timeout_ms") is not None:
            kwargs["per_file_timeout_ms"] = data["per_file_timeout_ms"]
        if data.get("max_workers") is not None:
            kwargs["max_workers"] = data["max_workers"]

        overrides = data.get("severity_overrides") or {}
        if not isinstance(overrides, dict):
            raise ConfigurationError("severity_overrides must be a mapping", file_path=file_path)
        severities = {}
        for rule_id, name in overrides.items():
            try:
                severities[str(rule_id)] = Severity.from_name(name)
            except ValueError as e:
                raise ConfigurationError(f"Invalid severity override for '{rule_id}': {e}", file_path=file_path)
        if severities:
            kwargs["severity_overrides"] = severities

        try:
            return cls(**kwargs)
        except ConfigurationError as e:
            raise ConfigurationError(e.message, file_path=file_path)


def version_matches(target: str, affected: str) -> bool:
    """Whether target lies within affected, comparing dotted components.

    "4.2.53" falls in "4.2"; "4.20" does not.
    """
    target_parts = target.split(".")
    affected_parts = affected.split(".")
    return target_parts[: len(affected_parts)] == affected_parts


def user_config_path() -> Path:
    return Path(user_config_dir("shellpit")) / USER_CONFIG_NAME


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    project_dir: Optional[Union[str, Path]] = None,
) -> LintConfig:
    """Load configuration with layering.

    Args:
        config_path: Explicit config file; replaces user and project layers
        project_dir: Directory searched for .shellpit.yaml (defaults to cwd)

    Returns:
        LintConfig with all present layers merged

    Raises:
        ConfigurationError: If a config file is unreadable, malformed or
            holds invalid values
    """
    if config_path is not None:
        path = Path(config_path)
        if not path.is_file():
            raise ConfigurationError(f"Config file not found: {path}", file_path=str(path))
        return LintConfig.from_dict(_read_yaml(path), file_path=str(path))

    merged: dict[str, Any] = {}
    project = Path(project_dir) if project_dir is not None else Path.cwd()
    for path in (user_config_path(), project / PROJECT_CONFIG_NAME):
        if path.is_file():
            logger.debug(f"Loading config layer from {path}")
            data = _read_yaml(path)
            if not isinstance(data, dict):
                raise ConfigurationError("Config root must be a dictionary", file_path=str(path))
            merged.update(data)
    return LintConfig.from_dict(merged)


def _read_yaml(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        line = None
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            line = mark.line + 1
        raise ConfigurationError(f"Invalid YAML syntax: {e}", file_path=str(path), line_number=line)
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file: {e}", file_path=str(path))
    return {} if data is None else data


def _as_list(value: Any, key: str, file_path: Optional[str]) -> list:
    if isinstance(value, (str, int, float)):
        return [value]
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ConfigurationError(f"{key} must be a list", file_path=file_path)
    return list(value)
