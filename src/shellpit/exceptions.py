"""Custom exceptions for the shellpit lint core.

This module defines the error taxonomy of the analysis pipeline:
- ParseError: A region of script text could not be recognized (recoverable)
- RuleInternalError: A rule raised while scanning one script (recoverable)
- AnalysisTimeout: The per-file time budget ran out (partial results kept)
- ConfigurationError: Invalid configuration or rule metadata (fatal)
"""

from typing import Optional


class ParseError(Exception):
    """Raised when a region of a script cannot be tokenized or parsed.

    Carries the character offsets of the offending region so the parser can
    skip it and keep going. Preserves the original bashlex error when the
    failure came from bashlex.

    Args:
        message: Error description
        start: Offset where the unrecognized region starts
        end: Offset where the unrecognized region ends (exclusive)
        original_error: Original bashlex exception (optional)

    Example:
        >>> raise ParseError("unterminated double quote", start=12, end=40)
    """

    def __init__(
        self,
        message: str,
        start: int = 0,
        end: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        """Initialize ParseError with region and optional original error.

        Args:
            message: Human-readable error description
            start: Offset where the region starts
            end: Offset where the region ends (defaults to start)
            original_error: Original bashlex exception (preserved for debugging)
        """
        self.message = message
        self.start = start
        self.end = start if end is None else end
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return string representation with original error context if available."""
        if self.original_error:
            return f"{self.message} (original: {self.original_error})"
        return self.message


class RuleInternalError(Exception):
    """Raised when a rule fails while scanning a script.

    The linter records it as a rule-failed diagnostic and continues with the
    remaining rules.

    Args:
        rule_id: Identifier of the failing rule
        original_error: The exception the rule raised
    """

    def __init__(self, rule_id: str, original_error: Exception):
        self.rule_id = rule_id
        self.original_error = original_error
        super().__init__(f"Rule '{rule_id}' failed: {type(original_error).__name__}: {original_error}")


class AnalysisTimeout(Exception):
    """Raised when the per-file analysis budget is exhausted.

    Args:
        budget_ms: The budget that was exceeded, in milliseconds
        stage: Pipeline stage that noticed the expiry (e.g. "parse", a rule id)

    Attributes:
        failures: Parse failures recorded before the budget ran out, when the
            expiry interrupted parsing
    """

    def __init__(self, budget_ms: int, stage: str):
        self.budget_ms = budget_ms
        self.stage = stage
        self.failures: tuple = ()
        super().__init__(f"Analysis exceeded {budget_ms}ms budget during {stage}")


class ConfigurationError(Exception):
    """Raised when configuration is invalid.

    Used for:
    - Unknown rule ids in enabled_rules or severity_overrides
    - Malformed runtime version identifiers
    - Invalid YAML syntax in rule metadata or config files
    - Malformed configuration structure

    Invalid configuration is a caller error, so it fails the whole invocation
    before any script is analyzed.

    Includes file path and line number context when available.

    Args:
        message: Error description
        file_path: Path to problematic config file (optional)
        line_number: Line number where error occurred (optional)

    Example:
        >>> raise ConfigurationError(
        ...     "Unknown rule id: 'no-such-rule'",
        ...     file_path=".shellpit.yaml",
        ... )
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        line_number: Optional[int] = None,
    ):
        """Initialize ConfigurationError with context.

        Args:
            message: Human-readable error description
            file_path: Path to configuration file with error (if applicable)
            line_number: Line number in file where error occurred (if known)
        """
        self.message = message
        self.file_path = file_path
        self.line_number = line_number
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with file/line context if available."""
        parts = [self.message]
        if self.file_path:
            parts.append(f"in file: {self.file_path}")
        if self.line_number:
            parts.append(f"at line: {self.line_number}")
        return " ".join(parts)

    def __str__(self) -> str:
        """Return formatted error message."""
        return self._format_message()
