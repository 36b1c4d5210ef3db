"""Declaration checks: integer attribute confidence, global associative arrays."""

import re
from collections.abc import Iterator
from typing import TYPE_CHECKING, Optional

from shellpit.checks.common import assigned_names
from shellpit.core.constructs import (
    Attribute,
    CaseStatement,
    CommandInvocation,
    DeclareStatement,
    ParsedScript,
    Position,
    ScalarAssignment,
    TestExpression,
)
from shellpit.core.diagnostics import Finding

if TYPE_CHECKING:
    from shellpit.core.rules import RuleContext

_NUMERIC_RE = re.compile(r"^[\"']?[+-]?[0-9]+[\"']?$")


def _is_numeric_literal(value: Optional[str]) -> bool:
    return value is not None and bool(_NUMERIC_RE.match(value))


def _is_dynamic(value: str) -> bool:
    return "$" in value or "`" in value


def check_integer_confidence(script: ParsedScript, context: "RuleContext") -> Iterator[Finding]:  # noqa: PLR0912
    """Flag integer attributes that give false confidence about a value.

    ``declare -i`` does not coerce a value the variable already holds, and
    later assignments from untrusted text are evaluated as arithmetic
    expressions rather than rejected. A variable that got its value that way
    and is then compared as an integer without validation is flagged once.

    Validation is any of: ``[[ $v =~ ... ]]``, ``case $v in``, or assigning
    a literal number.
    """
    values: dict[tuple[Optional[str], str], Optional[str]] = {}
    integer: set[str] = set()
    pending: dict[str, Position] = {}
    reported: set[str] = set()

    def note_value(name: str, function: Optional[str], value: Optional[str], position: Position) -> None:
        values[(function, name)] = value
        if name not in integer:
            return
        if _is_numeric_literal(value):
            pending.pop(name, None)
        elif value is None or _is_dynamic(value):
            pending[name] = position

    for construct in script.constructs:
        function = construct.scope.function

        if isinstance(construct, ScalarAssignment):
            note_value(construct.name, function, None if construct.append else construct.value, construct.position)

        elif isinstance(construct, CommandInvocation):
            names, _ = assigned_names(construct)
            for name in names:
                note_value(name, function, None, construct.position)

        elif isinstance(construct, DeclareStatement):
            name = construct.name
            if Attribute.INTEGER in construct.removed:
                integer.discard(name)
                pending.pop(name, None)
            if Attribute.INTEGER not in construct.attributes:
                if construct.initializer is not None:
                    values[(function, name)] = construct.initializer
                continue

            integer.add(name)
            key = (function, name)
            if construct.initializer is None and key in values:
                existing = values[key]
                if existing is None or _is_dynamic(existing):
                    detail = "its current value is not known to be numeric"
                elif _is_numeric_literal(existing):
                    detail = f"its current value {existing!r} happens to be numeric"
                else:
                    detail = f"its current value {existing!r} is not numeric"
                yield Finding(
                    position=construct.position,
                    message=(
                        f"'{construct.builtin} -i' on existing variable '{name}' does not coerce the value "
                        f"it already holds; {detail}"
                    ),
                    suggestion=context.spec.suggestion or None,
                    data={"variable": name, "value": existing},
                )
                if not _is_numeric_literal(existing):
                    pending[name] = construct.position
            elif construct.initializer is not None:
                note_value(name, function, construct.initializer, construct.position)

        elif isinstance(construct, CaseStatement) and construct.subject_name:
            pending.pop(construct.subject_name, None)

        elif isinstance(construct, TestExpression):
            for name in construct.validated:
                pending.pop(name, None)
            for name in construct.integer_operands:
                if name in pending and name not in reported:
                    reported.add(name)
                    yield Finding(
                        position=construct.position,
                        message=(
                            f"'{name}' carries the integer attribute but its value came from unvalidated "
                            f"input (at {pending[name]}); it is used as an integer here without validation"
                        ),
                        suggestion=context.spec.suggestion or None,
                        data={"variable": name, "source": str(pending[name])},
                    )
            for name in construct.assigned:
                pending.pop(name, None)


def check_global_assoc(script: ParsedScript, context: "RuleContext") -> Iterator[Finding]:
    """Flag ``declare -gA`` inside functions on affected shell versions.

    Some runtimes mishandle a global associative array declared from within
    a function. Affected versions come from the rule's affected_versions
    option; with no target versions configured the rule always fires.
    """
    affected = [str(version) for version in context.spec.options.get("affected_versions", [])]
    if context.config.targets_any(affected) is False:
        return
    for declare in script.of_type(DeclareStatement):
        if not declare.in_function:
            continue
        if Attribute.GLOBAL in declare.attributes and Attribute.ASSOCIATIVE_ARRAY in declare.attributes:
            yield Finding(
                position=declare.position,
                message=(
                    f"Global associative array '{declare.name}' declared inside function "
                    f"'{declare.scope.function}' is unreliable on shell {', '.join(affected) or 'legacy'} runtimes"
                ),
                suggestion=context.spec.suggestion or None,
                data={"variable": declare.name, "function": declare.scope.function, "affected_versions": affected},
            )
