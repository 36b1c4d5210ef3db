"""Core lint engine.

This module contains the essential components of the analysis pipeline:
- lexer / parser: Tokenizer and construct parser (bashlex for commands)
- constructs: Immutable construct model rules inspect
- rules: Rule metadata and registry
- reporter: Severity assignment, ordering and formatting
- linter: Orchestrator with worker pool and time budgets
- cache: Thread-safe LRU cache
"""

from shellpit.core.cache import ResultCache
from shellpit.core.config import LintConfig, load_config
from shellpit.core.diagnostics import Diagnostic, Finding, Severity
from shellpit.core.linter import Linter, LintResult, lint
from shellpit.core.parser import ScriptParser
from shellpit.core.rules import LintRule, RuleRegistry, RuleSpec

__all__ = [
    # Parser
    "ScriptParser",
    # Rules
    "LintRule",
    "RuleRegistry",
    "RuleSpec",
    # Diagnostics
    "Diagnostic",
    "Finding",
    "Severity",
    # Linter
    "LintConfig",
    "LintResult",
    "Linter",
    "lint",
    "load_config",
    # Cache
    "ResultCache",
]
