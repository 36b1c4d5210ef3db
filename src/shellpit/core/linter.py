"""Lint orchestrator.

This module ties the parser, rule registry, reporter and cache together and
provides the main entry points: Linter.lint_text(), Linter.lint_sources()
and the module-level lint() convenience function.

Per-script flow:
1. Check the result cache
2. Parse the script (statement by statement, under the time budget)
3. Record parse failures as unparsed-region diagnostics
4. Run every enabled rule; a rule that raises is recorded as rule-failed
5. Order diagnostics and build the LintResult
6. Cache the result unless it timed out

Scripts are independent, so lint_sources() analyzes them on a thread pool.
"""

import logging
import threading
import time
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import Callable, Optional, Union

from shellpit.core.cache import ResultCache
from shellpit.core.config import LintConfig
from shellpit.core.diagnostics import Diagnostic, Severity
from shellpit.core.parser import ScriptParser
from shellpit.core.reporter import DiagnosticReporter
from shellpit.core.rules import DEFAULT_RULES_DIR, RuleRegistry
from shellpit.exceptions import AnalysisTimeout, RuleInternalError

logger = logging.getLogger(__name__)

# Upper bound on worker threads when max_workers is not configured
MAX_DEFAULT_WORKERS = 32

# Thread lock for the default registry cache
_registry_lock = threading.Lock()

# Module-level registry cache (avoid reloading YAML for every Linter)
_default_registry: Optional[RuleRegistry] = None


def default_registry() -> RuleRegistry:
    """Get the cached registry of built-in rules.

    Thread-safe: Uses _registry_lock to prevent duplicate loading.
    """
    global _default_registry  # noqa: PLW0603

    with _registry_lock:
        if _default_registry is None:
            _default_registry = RuleRegistry.from_directory(DEFAULT_RULES_DIR)
        return _default_registry


@dataclass(frozen=True)
class LintResult:
    """Outcome of linting one script.

    Attributes:
        source: Source identifier the script was submitted under
        diagnostics: Diagnostics in report order
        timed_out: Whether the time budget ran out (diagnostics are partial)
        elapsed_ms: Wall time spent analyzing, in milliseconds

    Example:
        >>> result = Linter().lint_text("ls -a | tail -n +3\\n", source="x.sh")
        >>> [d.rule_id for d in result.diagnostics]
        ['ls-offset-skip']
    """

    source: str
    diagnostics: tuple[Diagnostic, ...]
    timed_out: bool = False
    elapsed_ms: float = 0.0

    @property
    def highest_severity(self) -> Optional[Severity]:
        if not self.diagnostics:
            return None
        return max(diagnostic.severity for diagnostic in self.diagnostics)


class Deadline:
    """Cooperative per-script time budget.

    check() raises AnalysisTimeout once the budget is spent. The parser
    calls it between statements and the linter between rules.
    """

    def __init__(self, budget_ms: int, clock: Callable[[], float] = time.monotonic):
        self.budget_ms = budget_ms
        self._clock = clock
        self._expires = clock() + budget_ms / 1000.0

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires

    def check(self, stage: str) -> None:
        if self.expired:
            raise AnalysisTimeout(self.budget_ms, stage)


class Linter:
    """Run the enabled rules over shell scripts.

    The configuration is validated against the registry at construction, so
    an invalid configuration fails before any script is analyzed. A Linter
    is safe to share between threads.

    Example:
        >>> linter = Linter(LintConfig(enabled_rules=frozenset({"ls-offset-skip"})))
        >>> results = linter.lint_sources({"a.sh": "ls -a | sed 1,2d\\n", "b.sh": "ls -A\\n"})
        >>> [len(r.diagnostics) for r in results.values()]
        [1, 0]
    """

    def __init__(
        self,
        config: Optional[LintConfig] = None,
        registry: Optional[RuleRegistry] = None,
        cache_size: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize Linter.

        Args:
            config: Lint settings (defaults to LintConfig())
            registry: Rule registry (defaults to the built-in rules)
            cache_size: Number of results kept in the LRU cache
            clock: Monotonic clock in seconds, used for time budgets

        Raises:
            ConfigurationError: If config names unknown rules
        """
        self.config = config if config is not None else LintConfig()
        self.registry = registry if registry is not None else default_registry()
        self.config.validate(self.registry)
        self.rules = self.registry.enabled(self.config.enabled_rules)
        self.parser = ScriptParser()
        self._cache = ResultCache(max_size=cache_size)
        self._clock = clock

    def lint_text(self, text: Union[str, bytes], source: str = "<stdin>") -> LintResult:
        """Lint a single script."""
        return self._analyze(source, text)

    def lint_sources(self, sources: Mapping[str, Union[str, bytes]]) -> dict[str, LintResult]:
        """Lint several scripts concurrently.

        Args:
            sources: Mapping of source identifier to script text

        Returns:
            Mapping of source identifier to LintResult, in input order
        """
        if not sources:
            return {}
        if len(sources) == 1:
            source, text = next(iter(sources.items()))
            return {source: self._analyze(source, text)}

        workers = self.config.max_workers or min(MAX_DEFAULT_WORKERS, len(sources))
        results: dict[str, LintResult] = {}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="shellpit") as executor:
            futures = {executor.submit(self._analyze, source, text): source for source, text in sources.items()}
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        return {source: results[source] for source in sources}

    def _analyze(self, source: str, text: Union[str, bytes]) -> LintResult:
        if isinstance(text, bytes):
            text = text.decode("utf-8", errors="replace")

        cached = self._cache.get(text)
        if cached is not None:
            logger.debug(f"Cache hit for {source}")
            return replace(cached, source=source)

        started = self._clock()
        deadline = Deadline(self.config.per_file_timeout_ms, clock=self._clock)
        reporter = DiagnosticReporter(self.registry, self.config)
        timed_out = False

        try:
            script = self.parser.parse(text, check=deadline.check)
            for failure in script.failures:
                reporter.add_parse_failure(failure)

            for rule in self.rules:
                deadline.check(rule.id)
                try:
                    findings = rule.run(script, self.config)
                except Exception as e:
                    logger.exception(f"Rule '{rule.id}' failed on {source}")
                    reporter.add_rule_failure(RuleInternalError(rule.id, e))
                    continue
                for finding in findings:
                    reporter.add_finding(rule, finding)
        except AnalysisTimeout as e:
            logger.warning(f"{source}: {e}")
            for failure in e.failures:
                reporter.add_parse_failure(failure)
            reporter.add_timeout(e)
            timed_out = True

        result = LintResult(
            source=source,
            diagnostics=reporter.diagnostics(),
            timed_out=timed_out,
            elapsed_ms=(self._clock() - started) * 1000.0,
        )
        if not timed_out:
            self._cache.set(text, result)
        return result


def lint(
    sources: Mapping[str, Union[str, bytes]],
    config: Optional[LintConfig] = None,
) -> dict[str, LintResult]:
    """Lint scripts with a one-off Linter.

    Example:
        >>> results = lint({"deploy.sh": open("deploy.sh").read()})
    """
    return Linter(config).lint_sources(sources)
