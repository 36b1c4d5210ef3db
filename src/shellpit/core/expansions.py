"""Scanners for parameter expansions and arithmetic text.

scan_word() walks one raw shell word and reports every parameter expansion it
contains, descending into command substitutions, nested ``${...}`` operator
words and ``$((...))`` bodies. scan_arithmetic() reads an arithmetic
expression and reports which variables it reads or assigns and which array
elements it touches.

Both operate on the raw text recovered by the lexer, so array subscripts and
expansion modifiers survive exactly as written.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from shellpit.core.constructs import ExpansionForm
from shellpit.core.lexer import NAME_RE, matching_bracket, skip_braces, skip_parens
from shellpit.exceptions import ParseError

_ASSIGN_OP_RE = re.compile(r"^(=(?!=)|[-+*/%&|^]=|<<=|>>=)")
_NUMBER_RE = re.compile(r"0[xX][0-9a-fA-F]+|[0-9]+(#[0-9A-Za-z@_]+)?")


@dataclass(frozen=True)
class ExpansionMatch:
    """A parameter expansion found in a word.

    offset is the absolute source offset of the ``$``. in_substitution is
    set when the expansion sits inside a command substitution, and
    arithmetic when it sits inside ``$((...))``.
    """

    name: str
    form: ExpansionForm
    offset: int
    index: Optional[str] = None
    modifier: str = ""
    error_on_unset: bool = False
    quoted: bool = False
    in_substitution: bool = False
    arithmetic: bool = False


@dataclass(frozen=True)
class ArithmeticBody:
    """Body text of a ``$((...))`` expansion and its absolute offset."""

    text: str
    offset: int


@dataclass
class WordScan:
    """Everything scan_word() found in a single word."""

    expansions: list[ExpansionMatch] = field(default_factory=list)
    arithmetic: list[ArithmeticBody] = field(default_factory=list)


@dataclass(frozen=True)
class ArithmeticSummary:
    """Variables and elements an arithmetic expression reads and writes.

    element_reads holds (name, index, relative offset) triples.
    """

    reads: tuple[str, ...] = ()
    assigned: tuple[str, ...] = ()
    element_reads: tuple[tuple[str, str, int], ...] = ()
    element_writes: tuple[tuple[str, str, int], ...] = ()


def scan_word(raw: str, offset: int = 0, quoted: bool = False) -> WordScan:
    """Find the parameter expansions in one raw word.

    Args:
        raw: The word exactly as written in the script
        offset: Absolute source offset of the word's first character
        quoted: Whether the word starts inside double quotes

    Returns:
        WordScan with expansions and arithmetic bodies in source order

    Example:
        >>> scan = scan_word('"${A[@]}"')
        >>> scan.expansions[0].form, scan.expansions[0].quoted
        (<ExpansionForm.ARRAY_AT: '${name[@]}'>, True)
    """
    result = WordScan()
    _scan(raw, offset, quoted, False, False, result)
    return result


def _scan(  # noqa: PLR0912 - quoting dispatch
    raw: str,
    offset: int,
    in_double: bool,
    in_substitution: bool,
    arithmetic: bool,
    result: WordScan,
) -> None:
    i = 0
    length = len(raw)
    while i < length:
        char = raw[i]
        if char == "\\":
            i += 2
            continue
        if char == "'" and not in_double:
            end = raw.find("'", i + 1)
            i = length if end < 0 else end + 1
            continue
        if char == '"':
            in_double = not in_double
            i += 1
            continue
        if char == "`":
            end = i + 1
            while end < length and raw[end] != "`":
                end += 2 if raw[end] == "\\" else 1
            _scan(raw[i + 1 : end], offset + i + 1, False, True, arithmetic, result)
            i = end + 1
            continue
        if char != "$" or i + 1 >= length:
            i += 1
            continue

        following = raw[i + 1]
        if following == "'" and not in_double:
            end = raw.find("'", i + 2)
            i = length if end < 0 else end + 1
        elif following == "(":
            end = _safe_end(skip_parens, raw, i + 1)
            if raw.startswith("((", i + 1):
                body = raw[i + 3 : end - 2]
                result.arithmetic.append(ArithmeticBody(body, offset + i + 3))
                _scan(body, offset + i + 3, False, in_substitution, True, result)
            else:
                _scan(raw[i + 2 : end - 1], offset + i + 2, False, True, arithmetic, result)
            i = end
        elif following == "{":
            end = _safe_end(skip_braces, raw, i + 1)
            inner = raw[i + 2 : end - 1]
            match = _classify(inner)
            if match is not None:
                name, form, index, modifier, consumed = match
                result.expansions.append(
                    ExpansionMatch(
                        name=name,
                        form=form,
                        offset=offset + i,
                        index=index,
                        modifier=modifier,
                        error_on_unset=modifier.startswith(("?", ":?")),
                        quoted=in_double,
                        in_substitution=in_substitution,
                        arithmetic=arithmetic,
                    )
                )
                if index is not None and form is ExpansionForm.INDEX:
                    _scan(index, offset + i + 2 + len(name) + 1, False, in_substitution, True, result)
                if modifier:
                    _scan(modifier, offset + i + 2 + consumed, in_double, in_substitution, arithmetic, result)
            i = end
        else:
            name_match = NAME_RE.match(raw, i + 1)
            if name_match:
                result.expansions.append(
                    ExpansionMatch(
                        name=name_match.group(0),
                        form=ExpansionForm.SCALAR,
                        offset=offset + i,
                        quoted=in_double,
                        in_substitution=in_substitution,
                        arithmetic=arithmetic,
                    )
                )
                i = name_match.end()
            else:
                i += 1


def _safe_end(skipper, raw: str, index: int) -> int:
    # Words come from the lexer already balanced; a stray failure here just
    # means the rest of the word is treated as opaque.
    try:
        return skipper(raw, index)
    except ParseError:
        return len(raw)


def _classify(inner: str) -> Optional[tuple[str, ExpansionForm, Optional[str], str, int]]:
    """Classify the text between ``${`` and ``}``.

    Returns (name, form, index, modifier, consumed) or None for special
    parameters. consumed is the length of the name-and-subscript prefix.
    """
    pos = 0
    bang = inner.startswith("!")
    if bang:
        pos = 1
    length_of = False
    if not bang and inner.startswith("#") and len(inner) > 1:
        length_of = True
        pos = 1
    name_match = NAME_RE.match(inner, pos)
    if not name_match:
        return None
    name = name_match.group(0)
    pos = name_match.end()
    subscript = None
    if inner[pos : pos + 1] == "[":
        close = matching_bracket(inner, pos)
        if close < 0:
            return None
        subscript = inner[pos + 1 : close]
        pos = close + 1
    modifier = inner[pos:]

    if length_of:
        form = ExpansionForm.LENGTH
    elif bang:
        if subscript == "@":
            form = ExpansionForm.KEYS_AT
        elif subscript == "*":
            form = ExpansionForm.KEYS_STAR
        elif modifier in ("@", "*"):
            return None
        else:
            form = ExpansionForm.SCALAR
    elif subscript == "@":
        form = ExpansionForm.ARRAY_AT
    elif subscript == "*":
        form = ExpansionForm.ARRAY_STAR
    elif subscript is not None:
        form = ExpansionForm.INDEX
    else:
        form = ExpansionForm.SCALAR
    index = subscript if form is ExpansionForm.INDEX else None
    return name, form, index, modifier, pos


def scan_arithmetic(text: str) -> ArithmeticSummary:
    """Summarize the variables an arithmetic expression touches.

    Bare identifiers and ``$name`` both count as reads. Plain ``=`` writes
    without reading; compound assignments and ``++``/``--`` both read and
    write.

    Example:
        >>> summary = scan_arithmetic("total += A[i-1]")
        >>> summary.reads, summary.assigned, summary.element_reads
        (('total', 'i'), ('total',), (('A', 'i-1', 9),))
    """
    reads: list[str] = []
    assigned: list[str] = []
    element_reads: list[tuple[str, str, int]] = []
    element_writes: list[tuple[str, str, int]] = []

    def add(target: list, item) -> None:
        if item not in target:
            target.append(item)

    i = 0
    length = len(text)
    while i < length:
        char = text[i]
        if char.isdigit():
            number = _NUMBER_RE.match(text, i)
            i = number.end() if number else i + 1
            continue
        name_match = NAME_RE.match(text, i)
        if not name_match or (i > 0 and (text[i - 1].isalnum() or text[i - 1] in "_#")):
            i += 1
            continue

        name = name_match.group(0)
        start = i
        i = name_match.end()
        index = None
        if text[i : i + 1] == "[":
            close = matching_bracket(text, i)
            if close > 0:
                index = text[i + 1 : close]
                nested = scan_arithmetic(index)
                for read in nested.reads:
                    add(reads, read)
                i = close + 1
        if text[i : i + 1] == "}":
            i += 1

        after = text[i:].lstrip()
        before = text[:start].rstrip("${ ")
        plain_assign = bool(_ASSIGN_OP_RE.match(after)) and after.startswith("=")
        writes = bool(_ASSIGN_OP_RE.match(after)) or after.startswith(("++", "--")) or before.endswith(("++", "--"))

        if index is not None:
            if not plain_assign:
                add(element_reads, (name, index, start))
            if writes:
                add(element_writes, (name, index, start))
        else:
            # A read after the expression itself assigned the name sees that value
            if not plain_assign and name not in assigned:
                add(reads, name)
            if writes:
                add(assigned, name)

    return ArithmeticSummary(
        reads=tuple(reads),
        assigned=tuple(assigned),
        element_reads=tuple(element_reads),
        element_writes=tuple(element_writes),
    )


def whole_word_expansion(raw: str) -> Optional[ExpansionMatch]:
    """Return the expansion if the word is nothing but one expansion.

    Surrounding double quotes are allowed: ``"$cmd"``, ``${cmd}`` and
    ``"${A[@]}"`` qualify, ``x$cmd`` does not.
    """
    text = raw
    quoted = len(text) >= 2 and text[0] == '"' and text[-1] == '"'
    if quoted:
        text = text[1:-1]
    if not text.startswith("$"):
        return None
    if text.startswith("${"):
        end = _safe_end(skip_braces, text, 1)
    else:
        name_match = NAME_RE.match(text, 1)
        if not name_match:
            return None
        end = name_match.end()
    if end != len(text):
        return None
    scan = scan_word(text, quoted=quoted)
    return scan.expansions[0] if scan.expansions else None
