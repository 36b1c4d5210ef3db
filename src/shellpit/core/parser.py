"""Shell script parser producing the ordered construct sequence.

The parser combines the lightweight lexer with bashlex AST analysis:
- Block structure (loops, functions, case, if) and the declaration builtins
  are recognized natively from lexer tokens, since bashlex cannot parse
  partial compound commands or array syntax
- Simple commands and pipelines go through bashlex, with parameter and
  arithmetic expansions masked to same-length placeholders first
- Parameter expansions are scanned from the raw words, so subscripts and
  modifiers survive exactly as written

Statements that cannot be recognized are skipped and recorded as
ParseFailure entries; parsing always continues with the next statement.
"""

import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, NamedTuple, Optional

import bashlex
import bashlex.errors

from shellpit.core.constructs import (
    ArrayAccess,
    ArrayAssignment,
    ArrayEntry,
    Attribute,
    CaseStatement,
    CommandInvocation,
    DeclareStatement,
    ExpansionContext,
    ExpansionForm,
    LoopForm,
    LoopHeader,
    ParsedScript,
    ParseFailure,
    Position,
    ScalarAssignment,
    Scope,
    ScriptConstruct,
    TestExpression,
    UnsetStatement,
    VariableExpansion,
)
from shellpit.core.expansions import scan_arithmetic, scan_word, whole_word_expansion
from shellpit.core.lexer import (
    NAME_RE,
    REDIRECTION_OPERATORS,
    LexFailure,
    ScriptLexer,
    SourceMap,
    Statement,
    Token,
    apply_masks,
    matching_bracket,
    skip_braces,
    skip_parens,
    tokenize_words,
    unquote,
)
from shellpit.exceptions import AnalysisTimeout, ParseError

logger = logging.getLogger(__name__)

DECLARATION_BUILTINS = frozenset({"declare", "typeset", "local", "readonly", "export"})
INTEGER_TEST_OPERATORS = frozenset({"-eq", "-ne", "-lt", "-le", "-gt", "-ge"})

# Keywords that only introduce the command following them
_PREFIX_KEYWORDS = frozenset({"do", "then", "else", "elif", "!", "time"})

_CLOSERS = {"done": ("loop",), "fi": ("if",), "esac": ("case",), "}": ("group", "function")}

_SEQ_RE = re.compile(r'^"?(?:\$\(|`)\s*seq\s+(?P<args>.*?)\s*(?:\)|`)"?$', re.DOTALL)
_LENGTH_RE = re.compile(r"\$\{#([A-Za-z_][A-Za-z0-9_]*)\[[@*]\]\}")
_C_INIT_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*=")
_C_BOUND_RE = re.compile(r"<=?\s*\$\{#([A-Za-z_][A-Za-z0-9_]*)\[[@*]\]\}")
_UNSET_OPERAND_RE = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)(?:\[(.*)\])?", re.DOTALL)

CheckCallback = Callable[[str], None]


class AssignmentWord(NamedTuple):
    """A word split into ``name[subscript]+=value`` parts."""

    name: str
    subscript: Optional[str]
    append: bool
    value: str
    value_start: int


@dataclass
class _Block:
    kind: str
    opener: str
    start: int
    loop_id: Optional[int] = None
    name: Optional[str] = None
    expect_pattern: bool = False


class _ParseState:
    """Mutable state for parsing one script."""

    def __init__(self, text: str):
        self.text = text
        self.source_map = SourceMap(text)
        self.constructs: list[ScriptConstruct] = []
        self.failures: list[ParseFailure] = []
        self.blocks: list[_Block] = []
        self.associative: set[str] = set()
        self.pending_function: Optional[str] = None
        self._loop_counter = 0
        self._pipeline_counter = 0

    def position(self, offset: int) -> Position:
        line, column = self.source_map.location(offset)
        return Position(line, column)

    def scope(self) -> Scope:
        function = None
        loops = []
        for block in self.blocks:
            if block.kind == "function":
                function = block.name
            elif block.kind == "loop":
                loops.append(block.loop_id)
        return Scope(function=function, loops=tuple(loops))

    def top(self) -> Optional[_Block]:
        return self.blocks[-1] if self.blocks else None

    def emit(self, construct: ScriptConstruct) -> None:
        self.constructs.append(construct)

    def fail(self, offset: int, message: str) -> None:
        self.failures.append(ParseFailure(self.position(offset), message))

    def next_loop_id(self) -> int:
        self._loop_counter += 1
        return self._loop_counter

    def next_pipeline_id(self) -> int:
        self._pipeline_counter += 1
        return self._pipeline_counter


class ScriptParser:
    """Parse shell scripts into an ordered sequence of constructs.

    The parser holds no state between calls, so one instance can be shared
    by concurrent workers.

    Example:
        >>> parser = ScriptParser()
        >>> script = parser.parse("A=(x [0]=y)\\n")
        >>> script.constructs[-1].effective_values()
        {0: 'y'}
    """

    def parse(self, text: str, check: Optional[CheckCallback] = None) -> ParsedScript:
        """Parse a whole script.

        Args:
            text: Script source text
            check: Optional callback invoked before each statement; it may
                raise to abandon parsing (used for time budgets)

        Returns:
            ParsedScript with constructs in source order and any failures
        """
        state = _ParseState(text)
        shebang = text.split("\n", 1)[0] if text.startswith("#!") else None

        try:
            for item in ScriptLexer(text).statements():
                if check is not None:
                    check("parse")
                if isinstance(item, LexFailure):
                    state.fail(item.start, f"unrecognized region skipped: {item.message}")
                    continue
                try:
                    self._statement(state, item)
                except ParseError as e:
                    logger.debug(f"Skipping statement at offset {e.start}: {e}")
                    state.fail(e.start, e.message)
                except RecursionError:
                    logger.debug(f"Statement at offset {item.start} is nested too deeply, skipping")
                    state.fail(item.start, "unrecognized region skipped: nesting too deep to analyze")
        except AnalysisTimeout as e:
            # Keep what was found before the budget ran out
            e.failures = tuple(state.failures)
            raise

        for block in reversed(state.blocks):
            state.fail(block.start, f"'{block.opener}' block is never closed")

        return ParsedScript(
            constructs=tuple(state.constructs),
            failures=tuple(state.failures),
            shebang=shebang,
        )

    # Statement structure

    def _statement(self, state: _ParseState, stmt: Statement) -> None:
        try:
            self._process(state, stmt, list(stmt.tokens))
        finally:
            top = state.top()
            if top is not None and top.kind == "case" and stmt.terminator in (";;", ";&", ";;&"):
                top.expect_pattern = True

    def _process(self, state: _ParseState, stmt: Statement, tokens: list[Token]) -> None:  # noqa: PLR0912
        while tokens:
            first = tokens[0]
            top = state.top()
            if top is not None and top.kind == "case" and top.expect_pattern and first.text != "esac":
                tokens = _strip_case_pattern(tokens)
                top.expect_pattern = False
                continue
            if not first.is_word:
                break

            word = first.text
            if state.pending_function and word != "{":
                state.pending_function = None

            if word in _PREFIX_KEYWORDS:
                tokens = tokens[1:]
            elif word == "{":
                if state.pending_function:
                    state.blocks.append(_Block("function", "{", first.start, name=state.pending_function))
                    state.pending_function = None
                else:
                    state.blocks.append(_Block("group", "{", first.start))
                tokens = tokens[1:]
            elif word in _CLOSERS:
                self._close(state, first)
                rest = _drop_compound_suffix(tokens[1:])
                # Redirection targets such as done < <(cmd) still run commands
                for token in tokens[1 : len(tokens) - len(rest)]:
                    if token.is_word:
                        self._emit_word(state, stmt, token, ExpansionContext.COMMAND)
                tokens = rest
            elif word == "if":
                state.blocks.append(_Block("if", "if", first.start))
                tokens = tokens[1:]
            elif word in ("while", "until"):
                loop_id = state.next_loop_id()
                state.emit(LoopHeader(state.position(first.start), state.scope(), loop_id, LoopForm.CONDITION))
                state.blocks.append(_Block("loop", word, first.start, loop_id=loop_id))
                tokens = tokens[1:]
            elif word in ("for", "select"):
                self._loop_header(state, stmt, tokens)
                return
            elif word == "case":
                self._case_header(state, stmt, tokens)
                return
            elif word == "function" and len(tokens) > 1 and tokens[1].is_word:
                state.pending_function = tokens[1].text
                tokens = tokens[2:]
                if len(tokens) >= 2 and tokens[0].text == "(" and tokens[1].text == ")":
                    tokens = tokens[2:]
            elif (
                len(tokens) >= 3
                and NAME_RE.fullmatch(word)
                and not tokens[1].is_word
                and tokens[1].text == "("
                and tokens[2].text == ")"
            ):
                state.pending_function = word
                tokens = tokens[3:]
            else:
                break

        if tokens:
            self._command(state, stmt, tokens)

    def _close(self, state: _ParseState, token: Token) -> None:
        kinds = _CLOSERS[token.text]
        for index in range(len(state.blocks) - 1, -1, -1):
            if state.blocks[index].kind in kinds:
                for block in state.blocks[index + 1 :]:
                    state.fail(block.start, f"'{block.opener}' block is never closed")
                del state.blocks[index:]
                return
        state.fail(token.start, f"'{token.text}' without matching opener")

    def _loop_header(self, state: _ParseState, stmt: Statement, tokens: list[Token]) -> None:
        keyword = tokens[0]
        rest = tokens[1:]
        scope = state.scope()
        position = state.position(keyword.start)
        loop_id = state.next_loop_id()

        if rest and rest[0].is_word and rest[0].text.startswith("(("):
            body_token = rest[0]
            body = body_token.text[2:-2]
            self._emit_word(state, stmt, body_token, ExpansionContext.ARITHMETIC)
            self._arithmetic(state, body, body_token.start + 2, "for((")
            clauses = body.split(";")
            init = _C_INIT_RE.match(clauses[0]) if clauses else None
            bound = _C_BOUND_RE.search(clauses[1]) if len(clauses) > 1 else None
            header = LoopHeader(
                position,
                scope,
                loop_id,
                LoopForm.ARITHMETIC,
                variable=init.group(1) if init else None,
                length_of=bound.group(1) if bound else None,
            )
        else:
            if not rest or not rest[0].is_word or not NAME_RE.fullmatch(rest[0].text):
                raise ParseError(f"malformed '{keyword.text}' loop header", start=keyword.start, end=stmt.end)
            items: list[Token] = []
            form, length_of, keys_of = LoopForm.POSITIONAL, None, None
            if len(rest) > 1 and rest[1].text == "in":
                items = [token for token in rest[2:] if token.is_word]
                form, length_of, keys_of = _classify_loop_items([token.text for token in items])
            for token in items:
                self._emit_word(state, stmt, token, ExpansionContext.LOOP_ITEMS)
            header = LoopHeader(
                position,
                scope,
                loop_id,
                form,
                variable=rest[0].text,
                items=tuple(token.text for token in items),
                length_of=length_of,
                keys_of=keys_of,
            )

        state.emit(header)
        state.blocks.append(_Block("loop", keyword.text, keyword.start, loop_id=loop_id))

    def _case_header(self, state: _ParseState, stmt: Statement, tokens: list[Token]) -> None:
        if len(tokens) < 3 or tokens[2].text != "in":
            raise ParseError("malformed case statement", start=tokens[0].start, end=stmt.end)
        subject = tokens[1]
        self._emit_word(state, stmt, subject, ExpansionContext.CASE_SUBJECT)
        whole = whole_word_expansion(subject.text)
        subject_name = whole.name if whole is not None and whole.form is ExpansionForm.SCALAR else None
        state.emit(CaseStatement(state.position(tokens[0].start), state.scope(), subject.text, subject_name))
        state.blocks.append(_Block("case", "case", tokens[0].start, expect_pattern=True))
        if len(tokens) > 3:
            self._process(state, stmt, tokens[3:])

    # Commands

    def _command(self, state: _ParseState, stmt: Statement, tokens: list[Token]) -> None:
        head = tokens[0]
        if head.is_word:
            has_operators = any(not token.is_word for token in tokens)
            if head.text == "[[":
                self._conditional(state, stmt, tokens)
                return
            if head.text.startswith("((") and head.text.endswith("))"):
                self._emit_word(state, stmt, head, ExpansionContext.ARITHMETIC)
                self._arithmetic(state, head.text[2:-2], head.start + 2, "((")
                return
            if head.text in DECLARATION_BUILTINS and not has_operators:
                self._declaration(state, stmt, tokens)
                return
            if head.text == "unset" and not has_operators:
                self._unset(state, stmt, tokens)
                return
            if not has_operators and all(split_assignment(token.text) for token in tokens):
                self._assignments(state, stmt, tokens)
                return
        self._simple_command(state, stmt, tokens)

    def _assignments(self, state: _ParseState, stmt: Statement, tokens: list[Token]) -> None:
        for token in tokens:
            parts = split_assignment(token.text)
            position = state.position(token.start)
            associative = parts.name in state.associative
            if parts.subscript is None and parts.value.startswith("("):
                self._emit_word(state, stmt, token, ExpansionContext.ARRAY_LITERAL)
                entries = self._array_entries(state, parts.value, token.start + parts.value_start)
                state.emit(
                    ArrayAssignment(
                        position, state.scope(), parts.name, entries, append=parts.append, associative=associative
                    )
                )
            elif parts.subscript is not None:
                self._emit_word(state, stmt, token, ExpansionContext.ASSIGNMENT)
                entry = ArrayEntry(parts.value, parts.subscript, position)
                state.emit(
                    ArrayAssignment(
                        position,
                        state.scope(),
                        parts.name,
                        (entry,),
                        append=parts.append,
                        element=True,
                        associative=associative,
                    )
                )
            else:
                self._emit_word(state, stmt, token, ExpansionContext.ASSIGNMENT)
                state.emit(
                    ScalarAssignment(
                        position,
                        state.scope(),
                        parts.name,
                        parts.value,
                        append=parts.append,
                        multiword=has_literal_whitespace(parts.value),
                    )
                )

    def _declaration(self, state: _ParseState, stmt: Statement, tokens: list[Token]) -> None:  # noqa: PLR0912
        builtin = tokens[0].text
        attributes: set[Attribute] = set()
        removed: set[Attribute] = set()
        if builtin == "readonly":
            attributes.add(Attribute.READONLY)
        elif builtin == "export":
            attributes.add(Attribute.EXPORT)

        operands: list[Token] = []
        options_done = False
        for token in tokens[1:]:
            text = token.text
            if not options_done and len(text) > 1 and text[0] in "-+" and "=" not in text:
                if text == "--":
                    options_done = True
                    continue
                if any(flag in "fFp" for flag in text[1:]):
                    # Function or listing mode declares no variables
                    logger.debug(f"Ignoring '{builtin} {text}' at offset {token.start}")
                    return
                target = attributes if text[0] == "-" else removed
                for flag in text[1:]:
                    attribute = Attribute.from_flag(flag)
                    if attribute is not None:
                        target.add(attribute)
                continue
            options_done = True
            operands.append(token)

        scope = state.scope()
        position = state.position(tokens[0].start)
        for token in operands:
            parts = split_assignment(token.text)
            if parts is None:
                if not NAME_RE.fullmatch(token.text):
                    logger.debug(f"Skipping dynamic {builtin} operand {token.text!r}")
                    self._emit_word(state, stmt, token, ExpansionContext.ASSIGNMENT)
                    continue
                name, initializer, append = token.text, None, False
            else:
                name, initializer, append = parts.name, parts.value, parts.append

            if Attribute.ASSOCIATIVE_ARRAY in attributes:
                state.associative.add(name)
            elif Attribute.INDEXED_ARRAY in attributes:
                state.associative.discard(name)

            literal = initializer is not None and initializer.startswith("(") and parts.subscript is None
            context = ExpansionContext.ARRAY_LITERAL if literal else ExpansionContext.ASSIGNMENT
            self._emit_word(state, stmt, token, context)
            state.emit(
                DeclareStatement(
                    position,
                    scope,
                    builtin,
                    name,
                    attributes=frozenset(attributes),
                    removed=frozenset(removed),
                    initializer=initializer,
                    in_function=scope.function is not None,
                )
            )
            if literal:
                entries = self._array_entries(state, initializer, token.start + parts.value_start)
                state.emit(
                    ArrayAssignment(
                        state.position(token.start),
                        scope,
                        name,
                        entries,
                        append=append,
                        associative=name in state.associative,
                        declared_by=builtin,
                    )
                )

    def _unset(self, state: _ParseState, stmt: Statement, tokens: list[Token]) -> None:
        function = False
        for token in tokens[1:]:
            if token.text.startswith("-"):
                function = function or "f" in token.text
                continue
            self._emit_word(state, stmt, token, ExpansionContext.COMMAND)
            match = _UNSET_OPERAND_RE.fullmatch(unquote(token.text))
            if not match:
                continue
            state.emit(
                UnsetStatement(
                    state.position(token.start),
                    state.scope(),
                    match.group(1),
                    index=match.group(2),
                    quoted=token.quoted,
                    function=function,
                )
            )

    def _conditional(self, state: _ParseState, stmt: Statement, tokens: list[Token]) -> None:
        words = [token for token in tokens if token.is_word]
        for token in words:
            self._emit_word(state, stmt, token, ExpansionContext.CONDITIONAL)

        integer: list[str] = []
        validated: list[str] = []
        for k, token in enumerate(words):
            if token.text in INTEGER_TEST_OPERATORS:
                for operand in words[k - 1 : k] + words[k + 1 : k + 2]:
                    integer.extend(self._operand_names(state, operand.text, operand.start, bare=True))
            elif token.text == "=~" and k > 0:
                validated.extend(self._operand_names(state, words[k - 1].text, words[k - 1].start, bare=True))

        state.emit(
            TestExpression(
                state.position(tokens[0].start),
                state.scope(),
                "[[",
                state.text[tokens[0].start : tokens[-1].end],
                integer_operands=tuple(dict.fromkeys(integer)),
                validated=tuple(dict.fromkeys(validated)),
            )
        )

    def _operand_names(self, state: _ParseState, raw: str, offset: int, bare: bool) -> list[str]:
        """Variables read by an integer-context operand; emits element accesses."""
        if not bare and "$" not in raw:
            return []
        summary = scan_arithmetic(unquote(raw))
        for name, index, _ in summary.element_reads:
            state.emit(ArrayAccess(state.position(offset), state.scope(), name, index))
        return list(summary.reads)

    def _arithmetic(self, state: _ParseState, text: str, offset: int, flavor: str) -> None:
        summary = scan_arithmetic(text)
        scope = state.scope()
        for name, index, relative in summary.element_reads:
            state.emit(ArrayAccess(state.position(offset + relative), scope, name, index))
        for name, index, relative in summary.element_writes:
            position = state.position(offset + relative)
            state.emit(
                ArrayAssignment(
                    position,
                    scope,
                    name,
                    (ArrayEntry("", index, position),),
                    element=True,
                    associative=name in state.associative,
                )
            )
        state.emit(
            TestExpression(
                state.position(offset),
                scope,
                flavor,
                text,
                integer_operands=summary.reads,
                assigned=summary.assigned,
            )
        )

    def _simple_command(self, state: _ParseState, stmt: Statement, tokens: list[Token]) -> None:
        for token in tokens:
            if token.is_word:
                self._emit_word(state, stmt, token, ExpansionContext.COMMAND, nested=False)

        start, end = tokens[0].start, stmt.end
        # bashlex only sees $___ where ${...} and $((...)) were masked
        self._nested_commands(state, stmt, start, end, masked_only=True)
        nodes = self._bashlex_parse(state.text[start:end], start, stmt)
        self._emit_invocations(state, nodes, state.text[start:end], start, substituted=False)

    def _nested_commands(
        self, state: _ParseState, stmt: Statement, start: int, end: int, masked_only: bool = False
    ) -> None:
        """Parse command substitutions inside a natively handled word.

        With masked_only, only substitutions hidden inside a masked expansion
        are parsed; bashlex finds the others itself.
        """
        for body_start, body_end in stmt.substitutions:
            if body_start < start or body_end > end:
                continue
            if masked_only and not _in_expansion_mask(stmt, body_start, body_end):
                continue
            body = state.text[body_start:body_end]
            if not body.strip():
                continue
            try:
                nodes = self._bashlex_parse(body, body_start, stmt)
            except ParseError as e:
                state.fail(e.start, e.message)
                continue
            self._emit_invocations(state, nodes, body, body_start, substituted=True)

    def _bashlex_parse(self, text: str, offset: int, stmt: Statement) -> list[Any]:
        masked = apply_masks(text, offset, stmt.masks)
        try:
            return bashlex.parse(masked)
        except bashlex.errors.ParsingError as e:
            raise ParseError(
                f"Failed to parse command: {text.strip()!r}",
                start=offset,
                end=offset + len(text),
                original_error=e,
            )
        except Exception as e:
            # bashlex raises assorted errors for constructs it does not implement
            logger.warning(f"Unexpected error parsing command: {e}")
            raise ParseError(
                f"Unexpected parsing error for command: {text.strip()!r}",
                start=offset,
                end=offset + len(text),
                original_error=e,
            )

    def _emit_invocations(self, state: _ParseState, nodes: list[Any], text: str, offset: int, substituted: bool) -> None:
        found: list[tuple[CommandInvocation, tuple[int, ...]]] = []
        for node in nodes or []:
            self._visit(state, node, text, offset, found, None, 0, substituted)
        for invocation, offsets in found:
            state.emit(invocation)
            self._builtin_tests(state, invocation, offsets)

    def _visit(  # noqa: PLR0913
        self,
        state: _ParseState,
        node: Any,
        text: str,
        offset: int,
        found: list,
        pipeline: Optional[int],
        index: int,
        substituted: bool,
    ) -> None:
        """Recursively visit bashlex nodes, collecting command invocations."""
        kind = getattr(node, "kind", None)
        if kind == "pipeline":
            pipeline_id = state.next_pipeline_id()
            position = 0
            for part in node.parts:
                if getattr(part, "kind", None) == "pipe":
                    continue
                self._visit(state, part, text, offset, found, pipeline_id, position, substituted)
                position += 1
            return

        if kind == "command":
            if pipeline is None:
                pipeline, index = state.next_pipeline_id(), 0
            words, raw_words, offsets = [], [], []
            for part in getattr(node, "parts", []):
                # Substitutions run before the command that contains them
                for nested in _substitution_nodes(part):
                    self._visit(state, nested.command, text, offset, found, None, 0, True)
                if getattr(part, "kind", None) == "word":
                    words.append(part.word)
                    raw_words.append(text[part.pos[0] : part.pos[1]])
                    offsets.append(offset + part.pos[0])
            if words:
                invocation = CommandInvocation(
                    state.position(offset + node.pos[0]),
                    state.scope(),
                    tuple(words),
                    tuple(raw_words),
                    pipeline=pipeline,
                    pipeline_index=index,
                    substituted=substituted,
                )
                found.append((invocation, tuple(offsets)))
            return

        if kind in ("commandsubstitution", "processsubstitution"):
            self._visit(state, node.command, text, offset, found, None, 0, True)
            return

        for attr in ("parts", "list", "command"):
            child = getattr(node, attr, None)
            if isinstance(child, list):
                for item in child:
                    self._visit(state, item, text, offset, found, None, 0, substituted)
            elif child is not None and hasattr(child, "kind"):
                self._visit(state, child, text, offset, found, None, 0, substituted)

    def _builtin_tests(self, state: _ParseState, invocation: CommandInvocation, offsets: tuple[int, ...]) -> None:
        if invocation.name in ("[", "test"):
            integer: list[str] = []
            words = invocation.words
            for k, word in enumerate(words):
                if word in INTEGER_TEST_OPERATORS:
                    for j in (k - 1, k + 1):
                        if 0 < j < len(words):
                            integer.extend(
                                self._operand_names(state, invocation.raw_words[j], offsets[j], bare=False)
                            )
            state.emit(
                TestExpression(
                    invocation.position,
                    invocation.scope,
                    invocation.name,
                    " ".join(invocation.raw_words),
                    integer_operands=tuple(dict.fromkeys(integer)),
                )
            )
        elif invocation.name == "let":
            for raw, offset in zip(invocation.raw_words[1:], offsets[1:]):
                self._arithmetic(state, unquote(raw), offset, "let")

    # Words

    def _emit_word(
        self,
        state: _ParseState,
        stmt: Statement,
        token: Token,
        context: ExpansionContext,
        nested: bool = True,
    ) -> None:
        """Emit the expansions, arithmetic and nested commands of one word."""
        scan = scan_word(token.text, token.start)
        scope = state.scope()
        for match in scan.expansions:
            if match.arithmetic:
                match_context = ExpansionContext.ARITHMETIC
            elif match.in_substitution:
                match_context = ExpansionContext.COMMAND
            else:
                match_context = context
            state.emit(
                VariableExpansion(
                    state.position(match.offset),
                    scope,
                    match.name,
                    match.form,
                    index=match.index,
                    modifier=match.modifier,
                    error_on_unset=match.error_on_unset,
                    quoted=match.quoted,
                    context=match_context,
                )
            )
        for body in scan.arithmetic:
            self._arithmetic(state, body.text, body.offset, "$((")
        if nested:
            self._nested_commands(state, stmt, token.start, token.end)

    def _array_entries(self, state: _ParseState, value: str, offset: int) -> tuple[ArrayEntry, ...]:
        inner = value[1:-1] if value.endswith(")") else value[1:]
        try:
            words = tokenize_words(inner)
        except ParseError as e:
            raise ParseError(f"malformed array literal: {e.message}", start=offset, end=offset + len(value))
        entries = []
        for word in words:
            position = state.position(offset + 1 + word.start)
            text = word.text
            if text.startswith("["):
                close = matching_bracket(text, 0)
                if close > 0 and text[close + 1 : close + 2] == "=":
                    entries.append(ArrayEntry(text[close + 2 :], text[1:close], position))
                    continue
                if close > 0 and text[close + 1 : close + 3] == "+=":
                    entries.append(ArrayEntry(text[close + 3 :], text[1:close], position))
                    continue
            entries.append(ArrayEntry(text, None, position))
        return tuple(entries)


def split_assignment(word: str) -> Optional[AssignmentWord]:
    """Split an assignment word, or return None if word is not one.

    Example:
        >>> split_assignment("A[i+1]+=x")
        AssignmentWord(name='A', subscript='i+1', append=True, value='x', value_start=8)
    """
    match = NAME_RE.match(word)
    if not match:
        return None
    pos = match.end()
    subscript = None
    if word[pos : pos + 1] == "[":
        close = matching_bracket(word, pos)
        if close < 0:
            return None
        subscript = word[pos + 1 : close]
        pos = close + 1
    append = word.startswith("+=", pos)
    if append:
        pos += 2
    elif word[pos : pos + 1] == "=":
        pos += 1
    else:
        return None
    return AssignmentWord(match.group(0), subscript, append, word[pos:], pos)


def has_literal_whitespace(value: str) -> bool:
    """Whether a value holds whitespace outside of expansions and substitutions.

    Example:
        >>> has_literal_whitespace('"ls -l $dir"'), has_literal_whitespace('$(ls -l)')
        (True, False)
    """
    i = 0
    while i < len(value):
        char = value[i]
        if char == "\\":
            i += 2
            continue
        if char == "$" and value[i + 1 : i + 2] in ("(", "{"):
            skipper = skip_parens if value[i + 1] == "(" else skip_braces
            try:
                i = skipper(value, i + 1)
            except ParseError:
                return False
            continue
        if char == "`":
            end = value.find("`", i + 1)
            i = len(value) if end < 0 else end + 1
            continue
        if char in " \t\n":
            return True
        i += 1
    return False


def _classify_loop_items(items: list[str]) -> tuple[LoopForm, Optional[str], Optional[str]]:
    """Return (form, length_of, keys_of) for a for-loop item list."""
    if len(items) == 1:
        expansion = whole_word_expansion(items[0])
        if expansion is not None and expansion.form.is_keys:
            return LoopForm.KEYS, None, expansion.name
        if expansion is not None and expansion.form.is_whole_array:
            return LoopForm.VALUES, None, None
        seq = _SEQ_RE.match(items[0])
        if seq:
            length = _LENGTH_RE.search(seq.group("args"))
            return LoopForm.SEQ, length.group(1) if length else None, None
    return LoopForm.WORDS, None, None


def _strip_case_pattern(tokens: list[Token]) -> list[Token]:
    for index, token in enumerate(tokens):
        if not token.is_word and token.text == ")":
            return tokens[index + 1 :]
    return tokens


def _drop_compound_suffix(tokens: list[Token]) -> list[Token]:
    """Drop redirections (and a pipe) that follow a closing keyword."""
    while tokens and not tokens[0].is_word:
        if tokens[0].text in REDIRECTION_OPERATORS:
            tokens = tokens[2:] if len(tokens) > 1 and tokens[1].is_word else tokens[1:]
        elif tokens[0].text in ("|", "|&"):
            return tokens[1:]
        else:
            break
    return tokens


def _in_expansion_mask(stmt: Statement, start: int, end: int) -> bool:
    return any(mask.fill == "$" and mask.start <= start and end <= mask.end for mask in stmt.masks)


def _substitution_nodes(node: Any) -> Iterator[Any]:
    kind = getattr(node, "kind", None)
    if kind in ("commandsubstitution", "processsubstitution"):
        yield node
        return
    for attr in ("parts", "output"):
        child = getattr(node, attr, None)
        if isinstance(child, list):
            for item in child:
                yield from _substitution_nodes(item)
        elif child is not None and hasattr(child, "kind"):
            yield from _substitution_nodes(child)
