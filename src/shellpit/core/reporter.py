"""Diagnostic collection, ordering and output formatting.

DiagnosticReporter gathers the findings of one script, assigns each its
final severity and orders the result deterministically:

    severity precedence: config override > finding severity > rule default
    ordering: (line, column, registry order, message)

format_text() and format_json() render lint results for the CLI.
"""

import json
from collections.abc import Iterable
from typing import TYPE_CHECKING, Optional

from shellpit.core.constructs import ParseFailure, Position
from shellpit.core.diagnostics import (
    ENGINE_DIAGNOSTICS,
    RULE_FAILED,
    TIMED_OUT,
    UNPARSED_REGION,
    Diagnostic,
    Finding,
    Severity,
)
from shellpit.exceptions import AnalysisTimeout, RuleInternalError

if TYPE_CHECKING:
    from shellpit.core.config import LintConfig
    from shellpit.core.linter import LintResult
    from shellpit.core.rules import LintRule, RuleRegistry


class DiagnosticReporter:
    """Collect diagnostics for one script.

    Example:
        >>> reporter = DiagnosticReporter(registry, config)
        >>> reporter.add_finding(rule, finding)
        >>> reporter.diagnostics()
        (Diagnostic(rule_id='ls-offset-skip', ...),)
    """

    def __init__(self, registry: "RuleRegistry", config: "LintConfig"):
        self.registry = registry
        self.config = config
        self._diagnostics: list[Diagnostic] = []

    def _severity(self, rule_id: str, severity: Severity) -> Severity:
        return self.config.severity_overrides.get(rule_id, severity)

    def add_finding(self, rule: "LintRule", finding: Finding) -> None:
        severity = finding.severity if finding.severity is not None else rule.spec.severity
        self._diagnostics.append(
            Diagnostic(
                rule_id=rule.id,
                severity=self._severity(rule.id, severity),
                message=finding.message,
                position=finding.position,
                suggested_fix=finding.suggestion or rule.spec.suggestion or None,
                data=dict(finding.data),
            )
        )

    def add_parse_failure(self, failure: ParseFailure) -> None:
        self._engine(UNPARSED_REGION, failure.message, failure.position)

    def add_rule_failure(self, error: RuleInternalError) -> None:
        self._engine(
            RULE_FAILED,
            str(error),
            Position(1, 1),
            data={"rule": error.rule_id, "error": type(error.original_error).__name__},
        )

    def add_timeout(self, error: AnalysisTimeout) -> None:
        self._engine(
            TIMED_OUT,
            f"{error}; diagnostics for this file are partial",
            Position(1, 1),
            data={"budget_ms": error.budget_ms, "stage": error.stage},
        )

    def _engine(self, rule_id: str, message: str, position: Position, data: Optional[dict] = None) -> None:
        self._diagnostics.append(
            Diagnostic(
                rule_id=rule_id,
                severity=self._severity(rule_id, ENGINE_DIAGNOSTICS[rule_id]),
                message=message,
                position=position,
                data=data or {},
            )
        )

    def diagnostics(self) -> tuple[Diagnostic, ...]:
        """All diagnostics, in deterministic report order."""
        return tuple(
            sorted(
                self._diagnostics,
                key=lambda d: (d.position.line, d.position.column, self.registry.order_of(d.rule_id), d.message),
            )
        )


def format_text(results: Iterable["LintResult"]) -> str:
    """Render results one diagnostic per line.

    Example:
        deploy.sh:4:1: warning [length-indexed-traversal] Loop over ...
    """
    lines = []
    for result in results:
        for diagnostic in result.diagnostics:
            lines.append(
                f"{result.source}:{diagnostic.position.line}:{diagnostic.position.column}: "
                f"{diagnostic.severity.label} [{diagnostic.rule_id}] {diagnostic.message}"
            )
            if diagnostic.suggested_fix:
                lines.append(f"    fix: {diagnostic.suggested_fix}")
    return "\n".join(lines)


def format_json(results: Iterable["LintResult"]) -> str:
    """Render results as a JSON document (one object per source)."""
    payload = [
        {
            "source": result.source,
            "timed_out": result.timed_out,
            "elapsed_ms": round(result.elapsed_ms, 3),
            "diagnostics": [diagnostic.to_dict() for diagnostic in result.diagnostics],
        }
        for result in results
    ]
    return json.dumps(payload, indent=2)
