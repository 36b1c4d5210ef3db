"""
shellpit - static analysis for well-known Bash pitfalls.

Package structure:
- shellpit.core: Lint engine (lexer, parser, rules, reporter, linter, cache)
- shellpit.checks: Rule detectors
- shellpit.cli: Command-line entry point

Public API:
- lint(): Lint a mapping of source id to script text
- Linter: Reusable linter bound to one configuration
- LintConfig / load_config(): Configuration
- LintResult, Diagnostic, Severity: Results
"""

from shellpit.core.config import LintConfig, load_config
from shellpit.core.diagnostics import Diagnostic, Severity
from shellpit.core.linter import Linter, LintResult, lint

__version__ = "0.1.0"

__all__ = [
    "lint",
    "Linter",
    "LintConfig",
    "load_config",
    "LintResult",
    "Diagnostic",
    "Severity",
]
