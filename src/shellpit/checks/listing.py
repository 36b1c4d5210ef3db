"""Listing check: ``ls -a`` output trimmed by a fixed line offset."""

import re
from collections.abc import Iterator
from itertools import groupby
from typing import TYPE_CHECKING, Optional

from shellpit.core.constructs import CommandInvocation, ParsedScript
from shellpit.core.diagnostics import Finding

if TYPE_CHECKING:
    from shellpit.core.rules import RuleContext

_SED_DELETE_RE = re.compile(r"^\d+(,\d+)?d$")
_AWK_NR_RE = re.compile(r"^\s*NR\s*>=?\s*\d+")
_OFFSET_RE = re.compile(r"^\+\d+$")


def check_ls_offset_skip(script: ParsedScript, context: "RuleContext") -> Iterator[Finding]:
    """Flag ``ls -a | tail -n +3`` and similar idioms for dropping . and ..

    Entries are sorted by locale collation, so ``.`` and ``..`` are not
    guaranteed to be the first lines; names like ``-foo`` or ``.#x`` can
    sort ahead of them and get dropped instead.
    """
    invocations = sorted(script.of_type(CommandInvocation), key=lambda c: (c.pipeline, c.pipeline_index))
    for _, group in groupby(invocations, key=lambda c: c.pipeline):
        pipeline = list(group)
        for producer, consumer in zip(pipeline, pipeline[1:]):
            if consumer.pipeline_index != producer.pipeline_index + 1:
                continue
            if not _lists_all(producer):
                continue
            offset_filter = _fixed_offset_filter(consumer)
            if offset_filter is None:
                continue
            yield Finding(
                position=producer.position,
                message=(
                    f"'ls -a' output is trimmed with '{offset_filter}', assuming '.' and '..' sort first; "
                    "collation order does not guarantee that"
                ),
                suggestion=context.spec.suggestion or None,
                data={"filter": offset_filter},
            )


def _lists_all(invocation: CommandInvocation) -> bool:
    if invocation.name != "ls":
        return False
    for arg in invocation.args:
        if arg == "--all":
            return True
        if arg.startswith("-") and not arg.startswith("--") and "a" in arg[1:]:
            return True
    return False


def _fixed_offset_filter(invocation: CommandInvocation) -> Optional[str]:  # noqa: PLR0911
    """Return the filter text if the command skips a fixed number of lines."""
    args = invocation.args
    text = " ".join(invocation.words)
    if invocation.name == "tail":
        for index, arg in enumerate(args):
            if arg == "-n" and index + 1 < len(args) and _OFFSET_RE.match(args[index + 1]):
                return text
            if arg.startswith("-n+") or arg.startswith("--lines=+"):
                return text
            if _OFFSET_RE.match(arg):
                return text
        return None
    if invocation.name == "sed":
        if any(_SED_DELETE_RE.match(arg) for arg in args):
            return text
        return None
    if invocation.name == "awk":
        if any(_AWK_NR_RE.match(arg) for arg in args):
            return text
    return None
