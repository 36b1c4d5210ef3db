"""Structured model of the shell constructs rules inspect.

The parser turns a script into an ordered sequence of ScriptConstruct
values. Every construct carries its 1-based source position and the lexical
scope it appears in (enclosing function and enclosing loops). Rules pattern
match on these values and never touch raw text.

Array literals keep every entry in source order, including entries that a
later designated index silently overwrites; ArrayAssignment.resolve() and
ArrayAssignment.effective_values() compute what the shell actually stores.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, TypeVar, Union

_LITERAL_INDEX_RE = re.compile(r"^[+-]?(0[xX][0-9a-fA-F]+|[0-9]+|[0-9]+#[0-9A-Za-z@_]+)$")


class ConstructKind(Enum):
    """Kinds of construct produced by the parser."""

    COMMAND_INVOCATION = "command"
    VARIABLE_EXPANSION = "expansion"
    ARRAY_ASSIGNMENT = "array-assignment"
    ARRAY_ACCESS = "array-access"
    SCALAR_ASSIGNMENT = "assignment"
    DECLARE_STATEMENT = "declare"
    UNSET_STATEMENT = "unset"
    LOOP_HEADER = "loop"
    CASE_STATEMENT = "case"
    TEST_EXPRESSION = "test"


class ExpansionForm(Enum):
    """Shape of a parameter expansion."""

    SCALAR = "$name"
    ARRAY_AT = "${name[@]}"
    ARRAY_STAR = "${name[*]}"
    KEYS_AT = "${!name[@]}"
    KEYS_STAR = "${!name[*]}"
    LENGTH = "${#name}"
    INDEX = "${name[i]}"

    @property
    def is_whole_array(self) -> bool:
        return self in (ExpansionForm.ARRAY_AT, ExpansionForm.ARRAY_STAR)

    @property
    def is_keys(self) -> bool:
        return self in (ExpansionForm.KEYS_AT, ExpansionForm.KEYS_STAR)


class ExpansionContext(Enum):
    """Syntactic position an expansion appears in."""

    COMMAND = "command"
    ASSIGNMENT = "assignment"
    ARRAY_LITERAL = "array-literal"
    LOOP_ITEMS = "loop-items"
    CONDITIONAL = "conditional"
    ARITHMETIC = "arithmetic"
    CASE_SUBJECT = "case-subject"


class Attribute(Enum):
    """Variable attributes set by declare-family builtins."""

    INDEXED_ARRAY = "a"
    ASSOCIATIVE_ARRAY = "A"
    INTEGER = "i"
    GLOBAL = "g"
    READONLY = "r"
    EXPORT = "x"
    LOWERCASE = "l"
    UPPERCASE = "u"
    NAMEREF = "n"
    TRACE = "t"

    @classmethod
    def from_flag(cls, flag: str) -> Optional["Attribute"]:
        """Map a single option letter to its attribute, or None if unknown."""
        for attribute in cls:
            if attribute.value == flag:
                return attribute
        return None


class LoopForm(Enum):
    """How a loop enumerates its iterations."""

    WORDS = "words"
    VALUES = "values"
    KEYS = "keys"
    SEQ = "seq"
    ARITHMETIC = "arithmetic"
    POSITIONAL = "positional"
    CONDITION = "condition"


@dataclass(frozen=True)
class Position:
    """1-based line and column of a construct."""

    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class Scope:
    """Enclosing function (if any) and enclosing loop ids, outermost first."""

    function: Optional[str] = None
    loops: tuple[int, ...] = ()

    def in_loop(self, loop_id: int) -> bool:
        return loop_id in self.loops


@dataclass(frozen=True)
class ScriptConstruct:
    """Base class for all constructs."""

    kind: ClassVar[ConstructKind]

    position: Position
    scope: Scope


@dataclass(frozen=True)
class CommandInvocation(ScriptConstruct):
    """A simple command.

    words holds the shell-unquoted words as bashlex reports them (expansions
    left unexpanded); raw_words holds the same words as written. Commands in
    the same pipeline share a pipeline id and are numbered left to right.
    """

    kind: ClassVar[ConstructKind] = ConstructKind.COMMAND_INVOCATION

    words: tuple[str, ...]
    raw_words: tuple[str, ...]
    pipeline: int = 0
    pipeline_index: int = 0
    substituted: bool = False

    @property
    def name(self) -> str:
        return self.words[0].rsplit("/", 1)[-1] if self.words else ""

    @property
    def args(self) -> tuple[str, ...]:
        return self.words[1:]


@dataclass(frozen=True)
class VariableExpansion(ScriptConstruct):
    """A parameter expansion such as ``$x``, ``${A[@]}`` or ``${!A[@]}``."""

    kind: ClassVar[ConstructKind] = ConstructKind.VARIABLE_EXPANSION

    name: str
    form: ExpansionForm
    index: Optional[str] = None
    modifier: str = ""
    error_on_unset: bool = False
    quoted: bool = False
    context: ExpansionContext = ExpansionContext.COMMAND


@dataclass(frozen=True)
class ArrayAccess(ScriptConstruct):
    """An array element read inside an arithmetic or integer context."""

    kind: ClassVar[ConstructKind] = ConstructKind.ARRAY_ACCESS

    name: str
    index: str


@dataclass(frozen=True)
class ArrayEntry:
    """One entry of an array literal, designated (``[i]=v``) or positional."""

    value: str
    index: Optional[str]
    position: Position

    @property
    def designated(self) -> bool:
        return self.index is not None


@dataclass(frozen=True)
class ResolvedEntry:
    """An array entry paired with the index the shell stores it under.

    key is None when the index cannot be known statically.
    """

    entry: ArrayEntry
    key: Optional[Union[int, str]]


@dataclass(frozen=True)
class ArrayAssignment(ScriptConstruct):
    """An array literal (``A=(...)``, ``A+=(...)``) or element write (``A[i]=v``)."""

    kind: ClassVar[ConstructKind] = ConstructKind.ARRAY_ASSIGNMENT

    name: str
    entries: tuple[ArrayEntry, ...]
    append: bool = False
    element: bool = False
    associative: bool = False
    declared_by: Optional[str] = None

    def resolve(self) -> tuple[ResolvedEntry, ...]:
        """Compute the stored index of every entry, in source order.

        Positional entries take the index after the previous entry. A
        designated entry with a non-literal index makes every following
        positional index unknown, as does appending without a designator
        (the current length is not known statically).

        Example:
            A=(A [2]=B [1]=C D) resolves to keys 0, 2, 1, 2
        """
        resolved = []
        if self.associative:
            for entry in self.entries:
                key = _strip_quotes(entry.index) if entry.designated else None
                resolved.append(ResolvedEntry(entry, key))
            return tuple(resolved)

        current: Optional[int] = None if self.append else -1
        for entry in self.entries:
            if entry.designated:
                current = literal_index(entry.index)
                if current is not None and current < 0:
                    current = None
                key = current
            else:
                current = None if current is None else current + 1
                key = current
            resolved.append(ResolvedEntry(entry, key))
        return tuple(resolved)

    def effective_values(self) -> dict:
        """Return the mapping the shell ends up storing for resolvable entries.

        Example:
            A=(A [2]=B [1]=C D) gives {0: "A", 1: "C", 2: "D"}
        """
        values = {}
        for item in self.resolve():
            if item.key is not None:
                values[item.key] = item.entry.value
        if self.associative:
            return values
        return dict(sorted(values.items()))

    def collisions(self) -> list[tuple[Union[int, str], tuple[ResolvedEntry, ...]]]:
        """Return indices written more than once, with all writers in order.

        The last writer in each group is the value that survives.
        """
        groups: dict = {}
        for item in self.resolve():
            if item.key is not None:
                groups.setdefault(item.key, []).append(item)
        return [(key, tuple(items)) for key, items in groups.items() if len(items) > 1]


@dataclass(frozen=True)
class ScalarAssignment(ScriptConstruct):
    """``NAME=value`` or ``NAME+=value``.

    multiword is set when the value holds unquoted-or-quoted literal
    whitespace, i.e. it is a string meant to be split into several words.
    """

    kind: ClassVar[ConstructKind] = ConstructKind.SCALAR_ASSIGNMENT

    name: str
    value: str
    append: bool = False
    multiword: bool = False

    @property
    def has_expansion(self) -> bool:
        return "$" in self.value or "`" in self.value


@dataclass(frozen=True)
class DeclareStatement(ScriptConstruct):
    """One operand of declare, typeset, local, readonly or export."""

    kind: ClassVar[ConstructKind] = ConstructKind.DECLARE_STATEMENT

    builtin: str
    name: str
    attributes: frozenset = frozenset()
    removed: frozenset = frozenset()
    initializer: Optional[str] = None
    in_function: bool = False

    @property
    def is_array(self) -> bool:
        return (
            Attribute.INDEXED_ARRAY in self.attributes
            or Attribute.ASSOCIATIVE_ARRAY in self.attributes
            or (self.initializer is not None and self.initializer.startswith("("))
        )


@dataclass(frozen=True)
class UnsetStatement(ScriptConstruct):
    """One operand of unset: a whole variable or a single element."""

    kind: ClassVar[ConstructKind] = ConstructKind.UNSET_STATEMENT

    name: str
    index: Optional[str] = None
    quoted: bool = False
    function: bool = False


@dataclass(frozen=True)
class LoopHeader(ScriptConstruct):
    """Header of a for, select, while or until loop.

    The header itself sits in the enclosing scope; constructs in the body
    carry loop_id in their scope. length_of names the array whose length
    bounds a seq or C-style loop, and keys_of the array whose keys a loop
    iterates.
    """

    kind: ClassVar[ConstructKind] = ConstructKind.LOOP_HEADER

    loop_id: int
    form: LoopForm
    variable: Optional[str] = None
    items: tuple[str, ...] = ()
    length_of: Optional[str] = None
    keys_of: Optional[str] = None


@dataclass(frozen=True)
class CaseStatement(ScriptConstruct):
    """Header of a case statement."""

    kind: ClassVar[ConstructKind] = ConstructKind.CASE_STATEMENT

    subject: str
    subject_name: Optional[str] = None


@dataclass(frozen=True)
class TestExpression(ScriptConstruct):
    """A conditional or arithmetic evaluation.

    flavor is the introducing syntax ("[[", "[", "test", "((", "$((", "let",
    "for(("). integer_operands lists variables evaluated as integers,
    validated lists variables matched against a pattern with ``=~``, and
    assigned lists variables written by the arithmetic.
    """

    kind: ClassVar[ConstructKind] = ConstructKind.TEST_EXPRESSION

    flavor: str
    text: str = ""
    integer_operands: tuple[str, ...] = ()
    validated: tuple[str, ...] = ()
    assigned: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParseFailure:
    """A region of the script that was skipped as unrecognized."""

    position: Position
    message: str


C = TypeVar("C", bound=ScriptConstruct)


@dataclass(frozen=True)
class ParsedScript:
    """Result of parsing one script."""

    constructs: tuple[ScriptConstruct, ...]
    failures: tuple[ParseFailure, ...] = ()
    shebang: Optional[str] = None

    def of_type(self, construct_type: type[C]) -> list[C]:
        return [c for c in self.constructs if isinstance(c, construct_type)]

    def in_loop(self, loop_id: int) -> list[ScriptConstruct]:
        return [c for c in self.constructs if c.scope.in_loop(loop_id)]


def literal_index(text: Optional[str]) -> Optional[int]:
    """Evaluate a literal array index the way shell arithmetic would.

    Supports decimal, octal (leading zero), hex (0x) and base#digits.
    Returns None for anything that is not a plain literal.

    Example:
        >>> literal_index("0x1f"), literal_index("010"), literal_index("i+1")
        (31, 8, None)
    """
    if text is None:
        return None
    value = _strip_quotes(text).strip()
    if not _LITERAL_INDEX_RE.match(value):
        return None
    sign = -1 if value.startswith("-") else 1
    value = value.lstrip("+-")
    try:
        if "#" in value:
            base, digits = value.split("#", 1)
            return sign * int(digits, int(base))
        if value.lower().startswith("0x"):
            return sign * int(value, 16)
        if len(value) > 1 and value.startswith("0"):
            return sign * int(value, 8)
        return sign * int(value)
    except ValueError:
        return None


def _strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    return text
