"""Command-line interface for shellpit.

Usage:
    shellpit check [--format text|json] [--config FILE] [--target-version V]...
                   [--enable RULE]... [--timeout-ms N] [--fail-on LEVEL] PATH...
    shellpit rules

Exit codes:
    0  No diagnostics at or above --fail-on
    1  Diagnostics at or above --fail-on
    2  Configuration or input error
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from shellpit import __version__
from shellpit.core.config import LintConfig, load_config
from shellpit.core.diagnostics import Severity
from shellpit.core.linter import Linter, default_registry
from shellpit.core.reporter import format_json, format_text
from shellpit.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

EXIT_CLEAN = 0
EXIT_FINDINGS = 1
EXIT_ERROR = 2

SCRIPT_SUFFIXES = (".sh", ".bash")


def collect_sources(paths: list[str]) -> dict[str, str]:
    """Read scripts from files, directories (recursively) and "-" for stdin.

    Raises:
        OSError: If a path cannot be read
        UnicodeDecodeError: If a file is not UTF-8
    """
    sources: dict[str, str] = {}
    for raw in paths:
        if raw == "-":
            sources["<stdin>"] = sys.stdin.read()
            continue
        path = Path(raw)
        if path.is_dir():
            files = sorted(p for p in path.rglob("*") if p.is_file() and p.suffix in SCRIPT_SUFFIXES)
            logger.debug(f"Found {len(files)} scripts under {path}")
        else:
            files = [path]
        for file in files:
            sources[str(file)] = file.read_text(encoding="utf-8")
    return sources


def build_config(args: argparse.Namespace) -> LintConfig:
    """Load config files and apply command-line overrides."""
    config = load_config(args.config)
    overrides = {}
    if args.target_version:
        overrides["target_runtime_versions"] = frozenset(args.target_version)
    if args.enable:
        overrides["enabled_rules"] = frozenset(args.enable)
    if args.timeout_ms is not None:
        overrides["per_file_timeout_ms"] = args.timeout_ms
    if args.jobs is not None:
        overrides["max_workers"] = args.jobs
    return replace(config, **overrides) if overrides else config


def cmd_check(args: argparse.Namespace) -> int:
    """Lint the given paths."""
    try:
        linter = Linter(build_config(args))
    except ConfigurationError as e:
        print(f"shellpit: configuration error: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        sources = collect_sources(args.paths)
    except (OSError, UnicodeDecodeError) as e:
        print(f"shellpit: cannot read input: {e}", file=sys.stderr)
        return EXIT_ERROR

    results = list(linter.lint_sources(sources).values())
    output = format_json(results) if args.format == "json" else format_text(results)
    if output:
        print(output)

    threshold = Severity.from_name(args.fail_on)
    failing = any(d.severity >= threshold for result in results for d in result.diagnostics)
    return EXIT_FINDINGS if failing else EXIT_CLEAN


def cmd_rules(args: argparse.Namespace) -> int:
    """List the registered rules."""
    try:
        registry = default_registry()
    except ConfigurationError as e:
        print(f"shellpit: configuration error: {e}", file=sys.stderr)
        return EXIT_ERROR

    width = max(len(rule.id) for rule in registry)
    for rule in registry:
        print(f"{rule.id:<{width}}  {rule.spec.severity.label:<7}  {rule.spec.description}")
    return EXIT_CLEAN


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shellpit",
        description="Detect well-known Bash pitfalls in shell scripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # check command
    p_check = subparsers.add_parser("check", help="Lint shell scripts")
    p_check.add_argument("paths", nargs="+", help="Script files or directories ('-' for stdin)")
    p_check.add_argument("--format", choices=("text", "json"), default="text", help="Output format (default: text)")
    p_check.add_argument("--config", help="Config file (replaces user and project config)")
    p_check.add_argument(
        "--target-version",
        action="append",
        metavar="VERSION",
        help="Shell version the scripts must run on (repeatable)",
    )
    p_check.add_argument("--enable", action="append", metavar="RULE", help="Run only these rules (repeatable)")
    p_check.add_argument("--timeout-ms", type=int, help="Per-file analysis budget in milliseconds")
    p_check.add_argument("--jobs", "-j", type=int, help="Worker threads")
    p_check.add_argument(
        "--fail-on",
        choices=[s.label for s in Severity],
        default="warning",
        help="Lowest severity that makes the exit status 1 (default: warning)",
    )
    p_check.set_defaults(func=cmd_check)

    # rules command
    p_rules = subparsers.add_parser("rules", help="List available rules")
    p_rules.set_defaults(func=cmd_rules)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[shellpit] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
