"""Tests for the Linter orchestrator."""

import itertools
import threading

import pytest

from shellpit import lint
from shellpit.checks import CHECKS
from shellpit.core.config import LintConfig
from shellpit.core.constructs import Position
from shellpit.core.diagnostics import Severity
from shellpit.core.linter import Deadline, Linter, default_registry
from shellpit.core.rules import LintRule, RuleRegistry, RuleSpec
from shellpit.exceptions import AnalysisTimeout, ConfigurationError
from tests.conftest import script

SPARSE_TRAVERSAL = script("""
    unset A
    declare -a A
    A[1]=present
    for i in $(seq 1 ${#A[@]}); do
      echo "${A[i-1]}"
    done
""")


def stepping_clock():
    """Clock that advances one second on every call."""
    counter = itertools.count()
    return lambda: float(next(counter))


class TestEndToEnd:
    """Whole-script analysis with every rule enabled."""

    def test_sparse_traversal_scenario(self, linter):
        """Exactly one length-indexed-traversal at the loop header, nothing else."""
        result = linter.lint_text(SPARSE_TRAVERSAL, source="sparse.sh")
        assert [(d.rule_id, d.position) for d in result.diagnostics] == [
            ("length-indexed-traversal", Position(4, 1)),
        ]
        assert result.source == "sparse.sh"
        assert not result.timed_out

    def test_deterministic(self):
        """Two runs produce identical diagnostics."""
        text = "A=(a [0]=b)\nls -a | tail -n +3\necho ${A[@]}\n"
        first = Linter().lint_text(text).diagnostics
        second = Linter().lint_text(text).diagnostics
        assert first == second
        assert [d.rule_id for d in first] == [
            "designated-initializer-collision",
            "ls-offset-skip",
            "unquoted-array-expansion",
        ]

    def test_partial_failure_keeps_other_diagnostics(self, linter):
        """An unparsable region is reported and the rest is still analyzed."""
        result = linter.lint_text("ls -a | tail -n +3\necho 'unterminated\n")
        assert [d.rule_id for d in result.diagnostics] == ["ls-offset-skip", "unparsed-region"]
        assert result.diagnostics[1].position == Position(2, 1)
        assert result.diagnostics[1].severity is Severity.WARNING

    def test_clean_script(self, linter):
        """A script without pitfalls yields no diagnostics."""
        text = script("""
            #!/bin/bash
            set -euo pipefail
            files=(a.txt "b c.txt")
            for i in "${!files[@]}"; do
              printf '%s\\n' "${files[i]}"
            done
            ls -A | head -n 5
        """)
        result = linter.lint_text(text)
        assert result.diagnostics == ()
        assert result.highest_severity is None

    def test_bytes_input(self, linter):
        """Bytes are decoded as UTF-8."""
        result = linter.lint_text(b"ls -a | tail -n +3\n")
        assert [d.rule_id for d in result.diagnostics] == ["ls-offset-skip"]

    def test_highest_severity(self, linter):
        """highest_severity is the maximum over diagnostics."""
        result = linter.lint_text('cmd="a b"\ncmd+=" c"\n$cmd\nls -a | tail -n +3\n')
        assert result.highest_severity is Severity.ERROR


class TestConfiguration:
    """Config applied by the linter."""

    def test_enabled_rules(self):
        """Only enabled rules run."""
        linter = Linter(LintConfig(enabled_rules=frozenset({"ls-offset-skip"})))
        result = linter.lint_text("A=(a [0]=b)\nls -a | tail -n +3\n")
        assert [d.rule_id for d in result.diagnostics] == ["ls-offset-skip"]

    def test_severity_override(self):
        """Overrides change the reported severity."""
        config = LintConfig(severity_overrides={"ls-offset-skip": Severity.INFO})
        (diagnostic,) = Linter(config).lint_text("ls -a | tail -n +3\n").diagnostics
        assert diagnostic.severity is Severity.INFO

    def test_unknown_rule_fails_fast(self):
        """Invalid configuration fails before any analysis."""
        with pytest.raises(ConfigurationError):
            Linter(LintConfig(enabled_rules=frozenset({"nope"})))

    def test_lint_function(self):
        """lint() is a one-off Linter.lint_sources()."""
        results = lint({"a.sh": "ls -a | sed 1,2d\n", "b.sh": "ls -A\n"})
        assert [len(r.diagnostics) for r in results.values()] == [1, 0]


class TestFailureIsolation:
    """Rule failures and timeouts."""

    def test_rule_failure_isolated(self):
        """A raising rule yields rule-failed; other rules still report."""

        def explode(script, context):
            raise RuntimeError("boom")

        registry = RuleRegistry(
            [
                LintRule(RuleSpec("exploding-rule", "Always fails", Severity.WARNING), explode),
                LintRule(RuleSpec("ls-offset-skip", "ls offsets", Severity.WARNING), CHECKS["ls-offset-skip"]),
            ]
        )
        result = Linter(registry=registry).lint_text("echo\nls -a | tail -n +3\n")
        assert [d.rule_id for d in result.diagnostics] == ["rule-failed", "ls-offset-skip"]
        failed = result.diagnostics[0]
        assert failed.data == {"rule": "exploding-rule", "error": "RuntimeError"}
        assert "boom" in failed.message
        assert not result.timed_out

    def test_timeout_during_parse(self):
        """An expired budget yields timed-out with partial results."""
        linter = Linter(LintConfig(per_file_timeout_ms=1), clock=stepping_clock())
        result = linter.lint_text("ls -a | tail -n +3\n")
        assert result.timed_out
        (diagnostic,) = result.diagnostics
        assert diagnostic.rule_id == "timed-out"
        assert diagnostic.data == {"budget_ms": 1, "stage": "parse"}

    def test_timeout_keeps_parse_failures(self):
        """Regions skipped before the budget ran out are still reported."""
        # Clock reads: start 0, deadline 1 (expires 2.5), skipped region 2, next statement 3
        linter = Linter(LintConfig(per_file_timeout_ms=1500), clock=stepping_clock())
        result = linter.lint_text("echo 'x\nls\nls\n")
        assert result.timed_out
        assert [(d.rule_id, d.position) for d in result.diagnostics] == [
            ("unparsed-region", Position(1, 1)),
            ("timed-out", Position(1, 1)),
        ]
        assert "unterminated single quote" in result.diagnostics[0].message
        assert result.diagnostics[1].data == {"budget_ms": 1500, "stage": "parse"}

    def test_deep_nesting_isolated(self, linter):
        """A script nested too deeply to analyze does not sink the batch."""
        deep = "echo " + "$(" * 1000 + "x" + ")" * 1000 + "\nls -a | tail -n +3\n"
        results = linter.lint_sources({"good.sh": "ls -a | tail -n +3\n", "deep.sh": deep})
        assert [d.rule_id for d in results["good.sh"].diagnostics] == ["ls-offset-skip"]
        assert [(d.rule_id, d.position) for d in results["deep.sh"].diagnostics] == [
            ("unparsed-region", Position(1, 1)),
            ("ls-offset-skip", Position(2, 1)),
        ]
        assert "nesting too deep" in results["deep.sh"].diagnostics[0].message

    def test_timeout_during_rules(self):
        """Expiry between rules keeps findings of rules that already ran."""
        # Clock reads: start 0, deadline 1 (expires 5.5), statements 2 and 3, rules 4, 5, 6
        enabled = {"designated-initializer-collision", "unquoted-array-expansion", "global-assoc-declare", "ls-offset-skip"}
        config = LintConfig(per_file_timeout_ms=4500, enabled_rules=frozenset(enabled))
        result = Linter(config, clock=stepping_clock()).lint_text("A=(a [0]=b)\nls -a | tail -n +3\n")
        assert result.timed_out
        assert [d.rule_id for d in result.diagnostics] == ["timed-out", "designated-initializer-collision"]
        assert result.diagnostics[0].data == {"budget_ms": 4500, "stage": "global-assoc-declare"}

    def test_timed_out_results_not_cached(self):
        """A partial result is analyzed again next time."""
        linter = Linter(LintConfig(per_file_timeout_ms=1), clock=stepping_clock())
        linter.lint_text("echo\n")
        assert linter._cache.size() == 0


class TestDeadline:
    """Cooperative time budget."""

    def test_check_raises_after_expiry(self):
        """check() raises AnalysisTimeout naming the stage."""
        now = [0.0]
        deadline = Deadline(100, clock=lambda: now[0])
        deadline.check("parse")
        now[0] = 0.2
        assert deadline.expired
        with pytest.raises(AnalysisTimeout) as exc:
            deadline.check("ls-offset-skip")
        assert exc.value.stage == "ls-offset-skip"
        assert exc.value.budget_ms == 100


class TestConcurrency:
    """lint_sources() over a worker pool."""

    def test_results_in_input_order(self, linter):
        """Results come back keyed in input order."""
        sources = {f"script{i:02d}.sh": f"ls -a | tail -n +{i}\n" for i in range(40)}
        results = linter.lint_sources(sources)
        assert list(results) == list(sources)
        for source, result in results.items():
            assert result.source == source
            assert [d.rule_id for d in result.diagnostics] == ["ls-offset-skip"]

    def test_max_workers(self):
        """A configured worker count is honored."""
        linter = Linter(LintConfig(max_workers=2))
        results = linter.lint_sources({"a.sh": "ls -A\n", "b.sh": "ls -a | tail -n +3\n"})
        assert [len(r.diagnostics) for r in results.values()] == [0, 1]

    def test_empty_input(self, linter):
        """No sources, no results."""
        assert linter.lint_sources({}) == {}

    def test_shared_linter_across_threads(self, linter):
        """One Linter can be used from many threads at once."""
        errors = []
        outcomes = []

        def worker(n):
            try:
                result = linter.lint_text(f"A=(x [0]=y{n})\n", source=f"t{n}.sh")
                outcomes.append(result.diagnostics[0].data["winner"])
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert sorted(outcomes) == sorted(f"y{n}" for n in range(20))


class TestCaching:
    """Result cache behavior."""

    def test_identical_text_cached(self, linter):
        """Identical text is analyzed once and relabeled per source."""
        first = linter.lint_text("ls -a | tail -n +3\n", source="a.sh")
        second = linter.lint_text("ls -a | tail -n +3\n", source="b.sh")
        assert second.source == "b.sh"
        assert second.diagnostics == first.diagnostics
        assert linter._cache.size() == 1

    def test_default_registry_cached(self):
        """The built-in registry is loaded once."""
        assert default_registry() is default_registry()
