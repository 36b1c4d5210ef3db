"""Pytest configuration and shared fixtures."""

import textwrap
from dataclasses import replace
from pathlib import Path

import pytest

from shellpit.core.cache import ResultCache
from shellpit.core.config import LintConfig
from shellpit.core.linter import Linter
from shellpit.core.parser import ScriptParser


def script(text: str) -> str:
    """Dedent a triple-quoted script and drop the leading newline."""
    return textwrap.dedent(text).lstrip("\n")


@pytest.fixture
def package_root():
    """Path to the shellpit package directory."""
    return Path(__file__).parent.parent / "src" / "shellpit"


@pytest.fixture
def rules_dir_path(package_root):
    """Path to the built-in rule metadata directory."""
    return package_root / "data" / "rules"


@pytest.fixture
def parser():
    """ScriptParser instance for testing."""
    return ScriptParser()


@pytest.fixture
def linter():
    """Linter with default configuration and the built-in rules."""
    return Linter()


@pytest.fixture
def cache():
    """ResultCache instance with reasonable defaults."""
    return ResultCache(max_size=10)


@pytest.fixture
def run_rule():
    """Factory fixture: lint text with only one rule enabled.

    Returns the diagnostics that rule produced (engine diagnostics such as
    unparsed-region are left out).
    """

    def _run(text, rule_id, config=None):
        config = replace(config or LintConfig(), enabled_rules=frozenset({rule_id}))
        result = Linter(config).lint_text(script(text), source="test.sh")
        return [d for d in result.diagnostics if d.rule_id == rule_id]

    return _run


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user and project config files out of every test."""
    monkeypatch.setattr("shellpit.core.config.user_config_path", lambda: tmp_path / "no-user-config.yaml")
