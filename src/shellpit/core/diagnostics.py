"""Severity levels, rule findings and reported diagnostics.

Rules yield Finding values. The reporter turns each finding into a
Diagnostic by attaching the rule id and the severity that applies after
configuration overrides. The engine itself reports three diagnostics of its
own (unparsed regions, failed rules, timeouts), listed in
ENGINE_DIAGNOSTICS.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from shellpit.core.constructs import Position


class Severity(Enum):
    """Diagnostic severity, from INFO (0) to ERROR (2).

    Severities are advisory: they order and filter output, and the CLI maps
    them to an exit status, but nothing in the analysis depends on them.

    Example:
        >>> Severity.ERROR > Severity.WARNING
        True
        >>> Severity.from_name("info")
        <Severity.INFO: 0>
    """

    INFO = 0
    WARNING = 1
    ERROR = 2

    def __lt__(self, other):
        """Enable comparison for severity thresholds."""
        if self.__class__ is other.__class__:
            return self.value < other.value
        return NotImplemented

    def __le__(self, other):
        """Enable comparison for severity thresholds."""
        if self.__class__ is other.__class__:
            return self.value <= other.value
        return NotImplemented

    def __gt__(self, other):
        """Enable comparison for severity thresholds."""
        if self.__class__ is other.__class__:
            return self.value > other.value
        return NotImplemented

    def __ge__(self, other):
        """Enable comparison for severity thresholds."""
        if self.__class__ is other.__class__:
            return self.value >= other.value
        return NotImplemented

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_name(cls, name: str) -> "Severity":
        """Parse a severity name case-insensitively.

        Raises:
            ValueError: If name is not a known severity
        """
        try:
            return cls[str(name).upper()]
        except KeyError:
            raise ValueError(f"Invalid severity: {name!r}. Must be one of: {', '.join(s.label for s in cls)}")


UNPARSED_REGION = "unparsed-region"
RULE_FAILED = "rule-failed"
TIMED_OUT = "timed-out"

ENGINE_DIAGNOSTICS: dict[str, Severity] = {
    UNPARSED_REGION: Severity.WARNING,
    RULE_FAILED: Severity.ERROR,
    TIMED_OUT: Severity.ERROR,
}


@dataclass(frozen=True)
class Finding:
    """What a rule reports about one location.

    Attributes:
        position: Where the hazard is
        message: Human-readable explanation
        suggestion: Suggested fix, defaulting to the rule's suggestion
        severity: Severity for this finding when it differs from the rule default
        data: Rule-specific structured details (e.g. the overwritten index)
    """

    position: Position
    message: str
    suggestion: Optional[str] = None
    severity: Optional[Severity] = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Diagnostic:
    """A reported problem in one script.

    Example:
        >>> d = Diagnostic("ls-offset-skip", Severity.WARNING, "...", Position(3, 1))
        >>> d.to_dict()["severity"]
        'warning'
    """

    rule_id: str
    severity: Severity
    message: str
    position: Position
    suggested_fix: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result = {
            "rule": self.rule_id,
            "severity": self.severity.label,
            "line": self.position.line,
            "column": self.position.column,
            "message": self.message,
        }
        if self.suggested_fix:
            result["suggested_fix"] = self.suggested_fix
        if self.data:
            result["data"] = self.data
        return result
