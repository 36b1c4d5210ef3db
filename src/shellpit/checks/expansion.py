"""Expansion checks: commands held in strings, nounset gaps, unquoted arrays."""

from collections.abc import Iterator
from typing import TYPE_CHECKING, Optional

from shellpit.checks.common import assigned_names, printf_target
from shellpit.core.constructs import (
    ArrayAssignment,
    CommandInvocation,
    DeclareStatement,
    ExpansionContext,
    ExpansionForm,
    ParsedScript,
    Position,
    ScalarAssignment,
    UnsetStatement,
    VariableExpansion,
)
from shellpit.core.diagnostics import Finding, Severity
from shellpit.core.expansions import whole_word_expansion
from shellpit.core.parser import has_literal_whitespace

if TYPE_CHECKING:
    from shellpit.core.rules import RuleContext

# Commands that run their arguments as a command
_COMMAND_WRAPPERS = frozenset({"command", "exec", "nohup", "sudo", "time", "env", "nice"})

_SPLIT_CONTEXTS = frozenset({ExpansionContext.COMMAND, ExpansionContext.ARRAY_LITERAL, ExpansionContext.LOOP_ITEMS})

_EMPTY = "empty"
_UNSET = "unset"
_POPULATED = "populated"


def check_deferred_word_splitting(script: ParsedScript, context: "RuleContext") -> Iterator[Finding]:
    """Flag command lines assembled in a string and run through its expansion.

    ``cmd+=" $arg"; $cmd`` re-splits on whitespace and glob-expands every
    piece at run time, and quoting or ``printf %q`` while building does not
    survive that. ``"$cmd"`` is no better: it runs one word as the command
    name. An argument array invoked as ``"${cmd[@]}"`` keeps words intact.
    """
    built: dict[str, list[Position]] = {}

    for construct in script.constructs:
        if isinstance(construct, ScalarAssignment):
            if construct.append:
                built.setdefault(construct.name, []).append(construct.position)
            elif construct.multiword:
                built[construct.name] = [construct.position]
            else:
                built.pop(construct.name, None)

        elif isinstance(construct, DeclareStatement) and construct.initializer is not None:
            if not construct.initializer.startswith("(") and has_literal_whitespace(construct.initializer):
                built[construct.name] = [construct.position]
            else:
                built.pop(construct.name, None)

        elif isinstance(construct, CommandInvocation):
            target = _invoked_expansion(construct)
            if target is not None and target in built:
                sites = ", ".join(str(position) for position in built[target])
                yield Finding(
                    position=construct.position,
                    message=(
                        f"'{target}' was assembled as a string (at {sites}) and is run as a command; "
                        "its words are re-split and glob-expanded at run time regardless of quoting"
                    ),
                    suggestion=f'Build an argument array ({target}=(...); {target}+=(...)) and run "${{{target}[@]}}"',
                    data={"variable": target, "built_at": [str(position) for position in built[target]]},
                )
            if construct.name == "printf":
                name = printf_target(construct)
                if name:
                    built.setdefault(name, []).append(construct.position)


def _invoked_expansion(invocation: CommandInvocation) -> Optional[str]:
    """Name of the scalar whose expansion is the command word, if any."""
    raw_words = invocation.raw_words
    index = 0
    while index < len(raw_words) - 1 and invocation.words[index] in _COMMAND_WRAPPERS:
        index += 1
    expansion = whole_word_expansion(raw_words[index]) if raw_words else None
    if expansion is None or expansion.form is not ExpansionForm.SCALAR:
        return None
    return expansion.name


def check_nounset_gaps(script: ParsedScript, context: "RuleContext") -> Iterator[Finding]:  # noqa: PLR0912
    """Flag whole-array expansions that set -u does not protect.

    ``set -u`` fails on an unset element like ``${A[0]}`` but not on
    ``${A[@]}``, ``${A[*]}`` or the keys forms, which quietly expand to
    nothing for an empty or unset array. An explicit ``?`` modifier does fail.
    On keys expansions (``${!A[@]?}``) the modifier misbehaves in a way that
    varies across versions, which is reported as info.
    """
    strict = _shebang_sets_nounset(script.shebang)
    arrays: dict[str, str] = {}
    reported: set[tuple[str, Position]] = set()

    for construct in script.constructs:
        if isinstance(construct, CommandInvocation):
            if construct.name == "set":
                strict = _apply_set(construct.args, strict)
            _, array_names = assigned_names(construct)
            for name in array_names:
                arrays[name] = _POPULATED

        elif isinstance(construct, DeclareStatement) and construct.is_array:
            initializer = construct.initializer
            if initializer is None or initializer.strip() in ("()", "( )"):
                arrays[construct.name] = _EMPTY
            else:
                arrays[construct.name] = _POPULATED

        elif isinstance(construct, ArrayAssignment):
            if construct.entries:
                arrays[construct.name] = _POPULATED
            elif not construct.append:
                arrays[construct.name] = _EMPTY

        elif isinstance(construct, UnsetStatement) and construct.index is None and not construct.function:
            arrays[construct.name] = _UNSET

        elif isinstance(construct, VariableExpansion):
            form = construct.form
            if not (form.is_whole_array or form.is_keys):
                continue
            if construct.error_on_unset:
                if form.is_keys:
                    yield Finding(
                        position=construct.position,
                        message=(
                            f"Error modifier on keys expansion of '{construct.name}' "
                            "behaves differently across shell versions and locales"
                        ),
                        suggestion=_error_modifier_suggestion(construct),
                        severity=Severity.INFO,
                        data={"array": construct.name, "modifier": construct.modifier},
                    )
                continue
            state = arrays.get(construct.name)
            key = (construct.name, construct.position)
            if strict and state in (_EMPTY, _UNSET) and key not in reported:
                reported.add(key)
                yield Finding(
                    position=construct.position,
                    message=(
                        f"'{form.value.replace('name', construct.name)}' expands an array that is {state} here; "
                        "set -u raises no error for whole-array or keys expansions, so it expands to nothing"
                    ),
                    suggestion=_error_modifier_suggestion(construct),
                    data={"array": construct.name, "state": state, "form": form.name},
                )


def _error_modifier_suggestion(expansion: VariableExpansion) -> str:
    name = expansion.name
    if expansion.form.is_keys:
        return f"Test the length first: (( ${{#{name}[@]}} )) || {{ echo '{name} is empty' >&2; exit 1; }}"
    subscript = "*" if expansion.form is ExpansionForm.ARRAY_STAR else "@"
    return f'Make the expansion fail explicitly: "${{{name}[{subscript}]?{name} is empty}}"'


def _shebang_sets_nounset(shebang: Optional[str]) -> bool:
    if not shebang:
        return False
    for arg in shebang.split()[1:]:
        if arg.startswith("-") and not arg.startswith("--") and "u" in arg[1:]:
            return True
    return False


def _apply_set(args: tuple[str, ...], strict: bool) -> bool:
    index = 0
    while index < len(args):
        arg = args[index]
        if arg in ("-o", "+o") and index + 1 < len(args):
            if args[index + 1] == "nounset":
                strict = arg == "-o"
            index += 2
            continue
        if arg == "--":
            break
        if len(arg) > 1 and arg[0] in "-+" and not arg.startswith("--") and "u" in arg[1:]:
            strict = arg[0] == "-"
        index += 1
    return strict


def check_unquoted_array_expansion(script: ParsedScript, context: "RuleContext") -> Iterator[Finding]:
    """Flag unquoted ``${A[@]}``/``${A[*]}`` where the result is word-split.

    Unquoted, each element is split again on whitespace and glob-expanded,
    so elements containing spaces turn into several words.
    """
    for expansion in script.of_type(VariableExpansion):
        if expansion.form.is_whole_array and not expansion.quoted and expansion.context in _SPLIT_CONTEXTS:
            yield Finding(
                position=expansion.position,
                message=f"Unquoted expansion of array '{expansion.name}' re-splits its elements",
                suggestion=f'Quote it: "${{{expansion.name}[@]}}"',
                data={"array": expansion.name, "context": expansion.context.value},
            )
