"""Array checks: initializer collisions, length-indexed loops, unset slots."""

import re
from collections.abc import Iterator
from typing import TYPE_CHECKING, Optional

from shellpit.checks.common import assigned_names
from shellpit.core.constructs import (
    ArrayAccess,
    ArrayAssignment,
    Attribute,
    CommandInvocation,
    DeclareStatement,
    ExpansionForm,
    LoopHeader,
    ParsedScript,
    ScalarAssignment,
    ScriptConstruct,
    TestExpression,
    UnsetStatement,
    VariableExpansion,
    literal_index,
)
from shellpit.core.diagnostics import Finding

if TYPE_CHECKING:
    from shellpit.core.rules import RuleContext

_INDEX_NOISE_RE = re.compile(r"[\s${}()]")


def check_designated_collisions(script: ParsedScript, context: "RuleContext") -> Iterator[Finding]:
    """Flag array literals that write the same index more than once.

    ``A=(A [2]=B [1]=C D)`` stores D at index 2: the positional D follows
    [1]=C and silently replaces B. One finding per colliding index, at the
    first overwritten entry.
    """
    for assignment in script.of_type(ArrayAssignment):
        if assignment.element:
            continue
        for key, writers in assignment.collisions():
            winner = writers[-1].entry
            losers = [item.entry for item in writers[:-1]]
            lost = ", ".join(f"{entry.value!r} at {entry.position}" for entry in losers)
            yield Finding(
                position=losers[0].position,
                message=(
                    f"Array '{assignment.name}' assigns index {key} more than once: "
                    f"{lost} silently overwritten by {winner.value!r} at {winner.position}"
                ),
                suggestion=context.spec.suggestion or None,
                data={
                    "array": assignment.name,
                    "index": key,
                    "lost": [entry.value for entry in losers],
                    "winner": winner.value,
                },
            )


def check_length_indexed_traversal(script: ParsedScript, context: "RuleContext") -> Iterator[Finding]:
    """Flag loops bounded by an array's length that index it by the loop variable.

    Sparse arrays have gaps, so ``for i in $(seq 1 ${#A[@]})`` with
    ``${A[i-1]}`` misses elements and reads unset slots. Iterating
    ``${!A[@]}`` never fires.
    """
    for header in script.of_type(LoopHeader):
        if header.length_of is None or header.variable is None:
            continue
        wanted = {header.variable, f"{header.variable}-1"}
        for construct in script.in_loop(header.loop_id):
            index = _index_of(construct, header.length_of)
            if index is not None and _INDEX_NOISE_RE.sub("", index) in wanted:
                yield Finding(
                    position=header.position,
                    message=(
                        f"Loop bounded by ${{#{header.length_of}[@]}} indexes '{header.length_of}' by "
                        f"'{header.variable}'; sparse arrays make this skip elements and read unset slots"
                    ),
                    suggestion=context.spec.suggestion or None,
                    data={"array": header.length_of, "variable": header.variable, "index": index},
                )
                break


def _index_of(construct: ScriptConstruct, name: str) -> Optional[str]:
    if isinstance(construct, VariableExpansion) and construct.form is ExpansionForm.INDEX:
        return construct.index if construct.name == name else None
    if isinstance(construct, ArrayAccess):
        return construct.index if construct.name == name else None
    if isinstance(construct, ArrayAssignment) and construct.element and construct.name == name:
        return construct.entries[0].index
    if isinstance(construct, UnsetStatement) and construct.name == name:
        return construct.index
    return None


def check_uninitialized_elements(script: ParsedScript, context: "RuleContext") -> Iterator[Finding]:  # noqa: PLR0912
    """Flag integer-attributed slots read before anything was stored in them.

    An unset element of an integer array evaluates to 0 in arithmetic, which
    hides the missing initialization. Literal indices are tracked per
    array; a write through a non-literal index stops tracking that array.
    Integer scalars declared without a value are tracked the same way.
    """
    arrays: dict[str, set[int]] = {}
    untracked: set[str] = set()
    scalars: set[str] = set()
    assigned: set[str] = set()
    reported: set[tuple[str, Optional[int]]] = set()

    for construct in script.constructs:
        if isinstance(construct, DeclareStatement):
            name = construct.name
            if Attribute.INTEGER in construct.attributes:
                if construct.is_array:
                    arrays.setdefault(name, set())
                    untracked.discard(name)
                elif construct.initializer is None and name not in assigned:
                    scalars.add(name)
            elif Attribute.INTEGER in construct.removed:
                arrays.pop(name, None)
                scalars.discard(name)
            if construct.initializer is not None:
                assigned.add(name)
                scalars.discard(name)

        elif isinstance(construct, ArrayAssignment) and construct.name in arrays:
            slots = arrays[construct.name]
            if not construct.append and not construct.element:
                slots.clear()
            for item in construct.resolve():
                if isinstance(item.key, int):
                    slots.add(item.key)
                else:
                    untracked.add(construct.name)

        elif isinstance(construct, ScalarAssignment):
            assigned.add(construct.name)
            scalars.discard(construct.name)

        elif isinstance(construct, LoopHeader) and construct.variable is not None:
            assigned.add(construct.variable)
            scalars.discard(construct.variable)

        elif isinstance(construct, CommandInvocation):
            names, array_names = assigned_names(construct)
            for name in names:
                assigned.add(name)
                scalars.discard(name)
            for name in array_names:
                untracked.add(name)

        elif isinstance(construct, TestExpression):
            for name in construct.integer_operands:
                if name in scalars and (name, None) not in reported:
                    reported.add((name, None))
                    yield Finding(
                        position=construct.position,
                        message=(
                            f"Integer variable '{name}' is used in arithmetic before any value is assigned; "
                            "it silently evaluates to 0"
                        ),
                        suggestion=context.spec.suggestion or None,
                        data={"variable": name},
                    )
            for name in construct.assigned:
                assigned.add(name)
                scalars.discard(name)

        elif isinstance(construct, ArrayAccess):
            name = construct.name
            if name not in arrays or name in untracked:
                continue
            slot = literal_index(construct.index)
            if slot is None or slot in arrays[name] or (name, slot) in reported:
                continue
            reported.add((name, slot))
            yield Finding(
                position=construct.position,
                message=(
                    f"Element {name}[{slot}] of integer array '{name}' is read before it is initialized; "
                    "it silently evaluates to 0"
                ),
                suggestion=context.spec.suggestion or None,
                data={"array": name, "index": slot},
            )

        elif isinstance(construct, UnsetStatement) and construct.name in arrays:
            if construct.index is None:
                arrays.pop(construct.name)
                untracked.discard(construct.name)
            else:
                slot = literal_index(construct.index)
                if slot is None:
                    untracked.add(construct.name)
                else:
                    arrays[construct.name].discard(slot)
