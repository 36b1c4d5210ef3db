"""Lightweight shell tokenizer.

This module splits script text into logical statements without attempting a
full shell grammar. It recovers only the structure the parser needs:

- Words with their raw source text and offsets (quotes, substitutions and
  parameter expansions kept intact inside the word)
- Control operators that end a statement (newline, ;, &&, ||, &, ;;)
- Pipe, redirection and grouping operators inside a statement
- Masks over parameter and arithmetic expansions, so bashlex can be handed
  the statement with same-length placeholders in their place
- Command substitution bodies, so nested commands can be parsed separately
- Heredoc bodies, which are skipped

Unterminated quotes and substitutions raise ParseError. The statement
iterator turns those into LexFailure items and resumes on the next line.
"""

import bisect
import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from shellpit.exceptions import ParseError

logger = logging.getLogger(__name__)

NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# NAME=, NAME+=, NAME[sub]= prefixes that may be followed by an array literal
ASSIGNMENT_PREFIX_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\[[^\]]*\])?\+?=$")

REDIRECTION_OPERATORS = ("<<<", "<<-", "<<", "<&", "<>", "<", ">>", ">&", ">|", ">", "&>>", "&>")

# Words after which "((" opens an arithmetic command rather than nested subshells
_ARITHMETIC_LEADERS = frozenset({"for", "do", "then", "else", "if", "elif", "while", "until", "!", "{"})

_BLANKS = " \t\r"


class TokenKind(Enum):
    """Kinds of lexer tokens."""

    WORD = "word"
    OPERATOR = "operator"


@dataclass(frozen=True)
class Token:
    """A word or operator with its raw text and source offsets."""

    kind: TokenKind
    text: str
    start: int
    end: int
    quoted: bool = False

    @property
    def is_word(self) -> bool:
        return self.kind is TokenKind.WORD


@dataclass(frozen=True)
class Mask:
    """Region to overwrite before handing text to bashlex.

    fill is "$" for expansions (replaced with a same-length ``$___`` variable)
    or " " for regions blanked out entirely (heredoc redirections).
    """

    start: int
    end: int
    fill: str


@dataclass(frozen=True)
class Statement:
    """One logical statement: a simple command, pipeline or keyword line."""

    tokens: tuple[Token, ...]
    start: int
    end: int
    terminator: str
    masks: tuple[Mask, ...] = ()
    substitutions: tuple[tuple[int, int], ...] = ()

    @property
    def words(self) -> list[str]:
        return [token.text for token in self.tokens if token.is_word]


@dataclass(frozen=True)
class LexFailure:
    """A region the lexer could not tokenize and skipped."""

    start: int
    end: int
    message: str


class SourceMap:
    """Convert character offsets into 1-based (line, column) pairs."""

    def __init__(self, text: str):
        self._line_starts = [0]
        for index, char in enumerate(text):
            if char == "\n":
                self._line_starts.append(index + 1)

    def location(self, offset: int) -> tuple[int, int]:
        line = bisect.bisect_right(self._line_starts, offset)
        return line, offset - self._line_starts[line - 1] + 1


class ScriptLexer:
    """Split shell script text into statements.

    Example:
        >>> lexer = ScriptLexer("A=(x [2]=y)\\nls -a | tail -n +3\\n")
        >>> [stmt.words for stmt in lexer.statements()]
        [['A=(x [2]=y)'], ['ls', '-a', 'tail', '-n', '+3']]
    """

    def __init__(self, text: str):
        self.text = text
        self.length = len(text)
        self.pos = 0
        self._pending_heredocs: list[tuple[str, bool]] = []
        self._masks: list[Mask] = []
        self._substitutions: list[tuple[int, int]] = []
        self._substitution_depth = 0

    def statements(self) -> Iterator[Union[Statement, LexFailure]]:
        """Yield statements in source order, with LexFailure for skipped regions."""
        while self.pos < self.length:
            start = self.pos
            try:
                statement = self._read_statement()
            except ParseError as e:
                logger.debug(f"Skipping unparsable region at offset {start}: {e.message}")
                yield self._skip_region(start, max(e.start, start), e.message)
                continue
            except RecursionError:
                logger.debug(f"Nesting too deep at offset {start}, skipping to end of line")
                yield self._skip_region(start, start, "nesting too deep to analyze")
                continue
            if statement is not None:
                yield statement

    def _skip_region(self, start: int, error_at: int, message: str) -> LexFailure:
        """Resume after the line holding error_at and describe the skipped text."""
        resume = self._line_end(error_at) + 1
        self.pos = resume
        self._pending_heredocs.clear()
        self._substitution_depth = 0
        return LexFailure(start=start, end=min(resume, self.length), message=message)

    def _line_end(self, offset: int) -> int:
        end = self.text.find("\n", offset)
        return self.length if end < 0 else end

    def _peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.text[index] if index < self.length else ""

    def _skip_blanks(self) -> None:
        while self.pos < self.length:
            char = self.text[self.pos]
            if char in _BLANKS:
                self.pos += 1
            elif char == "\\" and self._peek(1) == "\n":
                self.pos += 2
            else:
                break

    def _read_statement(self) -> Optional[Statement]:  # noqa: PLR0912, PLR0915 - operator dispatch
        tokens: list[Token] = []
        depth = 0
        in_conditional = False
        terminator = ""
        self._masks = []
        self._substitutions = []

        def operator(op: str) -> None:
            tokens.append(Token(TokenKind.OPERATOR, op, self.pos, self.pos + len(op)))
            self.pos += len(op)

        while True:
            self._skip_blanks()
            if self.pos >= self.length:
                break
            char = self.text[self.pos]

            if char == "#":
                self.pos = self._line_end(self.pos)
                continue

            if char == "\n":
                self.pos += 1
                self._consume_heredocs()
                if not tokens:
                    continue
                if depth > 0 or in_conditional or tokens[-1].text in ("|", "|&"):
                    continue
                terminator = "\n"
                break

            if char == ";":
                op = next(op for op in (";;&", ";;", ";&", ";") if self.text.startswith(op, self.pos))
                if depth > 0:
                    operator(op)
                    continue
                op_start = self.pos
                self.pos += len(op)
                if not tokens:
                    if op == ";":
                        continue
                    # A bare case-arm terminator still ends the arm
                    return Statement(tokens=(), start=op_start, end=op_start, terminator=op)
                terminator = op
                break

            if char == "&" and not self.text.startswith("&>", self.pos):
                op = "&&" if self.text.startswith("&&", self.pos) else "&"
                if depth > 0 or (in_conditional and op == "&&"):
                    operator(op)
                    continue
                self.pos += len(op)
                if not tokens:
                    continue
                terminator = op
                break

            if char == "|":
                if self.text.startswith("||", self.pos):
                    if depth > 0 or in_conditional:
                        operator("||")
                        continue
                    self.pos += 2
                    if not tokens:
                        continue
                    terminator = "||"
                    break
                operator("|&" if self.text.startswith("|&", self.pos) else "|")
                continue

            if char in "<>&":
                if char in "<>" and self._peek(1) == "(" and not in_conditional:
                    tokens.append(self._read_word())
                    continue
                op = next(op for op in REDIRECTION_OPERATORS if self.text.startswith(op, self.pos))
                if op in ("<<", "<<-") and not in_conditional:
                    tokens.extend(self._read_heredoc_redirection(op))
                    continue
                operator(op)
                continue

            if char == "(":
                leads_arithmetic = not tokens or tokens[-1].text in _ARITHMETIC_LEADERS
                if self._peek(1) == "(" and leads_arithmetic:
                    start = self.pos
                    self.pos = self._skip_parens(self.pos)
                    tokens.append(Token(TokenKind.WORD, self.text[start : self.pos], start, self.pos))
                    continue
                operator("(")
                if not in_conditional:
                    depth += 1
                continue

            if char == ")":
                operator(")")
                if depth > 0 and not in_conditional:
                    depth -= 1
                continue

            word = self._read_word()
            if word.text == "[[" and not in_conditional:
                in_conditional = True
            elif word.text == "]]" and in_conditional:
                in_conditional = False
            tokens.append(word)

        if not tokens:
            return None
        return Statement(
            tokens=tuple(tokens),
            start=tokens[0].start,
            end=tokens[-1].end,
            terminator=terminator,
            masks=tuple(self._masks),
            substitutions=tuple(self._substitutions),
        )

    def _read_word(self) -> Token:  # noqa: PLR0912 - quoting dispatch
        start = self.pos
        quoted = False
        while self.pos < self.length:
            char = self.text[self.pos]
            if char in " \t\r\n;&|":
                break
            if char in "<>":
                if self.pos == start and self._peek(1) == "(":
                    self.pos = self._skip_substitution(self.pos + 1)
                    continue
                break
            if char == "(":
                prefix = self.text[start : self.pos]
                if ASSIGNMENT_PREFIX_RE.match(prefix) or (prefix and prefix[-1] in "@?*+!"):
                    self.pos = self._skip_parens(self.pos)
                    continue
                break
            if char == ")":
                break
            if char == "\\":
                quoted = True
                self.pos = min(self.pos + 2, self.length)
            elif char == "'":
                quoted = True
                self.pos = self._skip_single(self.pos)
            elif char == '"':
                quoted = True
                self.pos = self._skip_double(self.pos)
            elif char == "`":
                self.pos = self._skip_backtick(self.pos)
            elif char == "$":
                self.pos = self._skip_dollar(self.pos)
            else:
                self.pos += 1
        return Token(TokenKind.WORD, self.text[start : self.pos], start, self.pos, quoted)

    def _read_heredoc_redirection(self, op: str) -> list[Token]:
        op_start = self.pos
        self.pos += len(op)
        op_token = Token(TokenKind.OPERATOR, op, op_start, self.pos)
        self._skip_blanks()
        if self.pos >= self.length or self.text[self.pos] in "\n;&|<>()":
            raise ParseError("missing heredoc delimiter", start=op_start, end=self.pos)
        delimiter = self._read_word()
        self._masks.append(Mask(op_start, delimiter.end, " "))
        self._pending_heredocs.append((unquote(delimiter.text), op == "<<-"))
        return [op_token, delimiter]

    def _consume_heredocs(self) -> None:
        for delimiter, strip_tabs in self._pending_heredocs:
            while self.pos < self.length:
                line_end = self._line_end(self.pos)
                line = self.text[self.pos : line_end]
                self.pos = line_end + 1
                if (line.lstrip("\t") if strip_tabs else line) == delimiter:
                    break
            else:
                logger.debug(f"Heredoc delimiter {delimiter!r} not found before end of script")
        self._pending_heredocs.clear()
        self.pos = min(self.pos, self.length)

    def _skip_single(self, index: int) -> int:
        end = self.text.find("'", index + 1)
        if end < 0:
            raise ParseError("unterminated single quote", start=index, end=self.length)
        return end + 1

    def _skip_double(self, index: int) -> int:
        j = index + 1
        while j < self.length:
            char = self.text[j]
            if char == "\\":
                j += 2
            elif char == '"':
                return j + 1
            elif char == "$":
                j = self._skip_dollar(j)
            elif char == "`":
                j = self._skip_backtick(j)
            else:
                j += 1
        raise ParseError("unterminated double quote", start=index, end=self.length)

    def _skip_backtick(self, index: int) -> int:
        j = index + 1
        while j < self.length:
            char = self.text[j]
            if char == "\\":
                j += 2
            elif char == "`":
                if self._substitution_depth == 0:
                    self._substitutions.append((index + 1, j))
                return j + 1
            else:
                j += 1
        raise ParseError("unterminated backquote substitution", start=index, end=self.length)

    def _skip_dollar(self, index: int) -> int:
        following = self.text[index + 1] if index + 1 < self.length else ""
        if following == "'":
            j = index + 2
            while j < self.length:
                if self.text[j] == "\\":
                    j += 2
                elif self.text[j] == "'":
                    return j + 1
                else:
                    j += 1
            raise ParseError("unterminated $'...' string", start=index, end=self.length)
        if following == '"':
            return self._skip_double(index + 1)
        if following == "(":
            if self.text.startswith("((", index + 1):
                end = self._skip_parens(index + 1)
                self._masks.append(Mask(index, end, "$"))
                return end
            return self._skip_substitution(index + 1)
        if following == "{":
            end = self._skip_braces(index + 1)
            self._masks.append(Mask(index, end, "$"))
            return end
        if following == "[":
            end = self.text.find("]", index + 2)
            if end < 0:
                raise ParseError("unterminated $[...] arithmetic", start=index, end=self.length)
            self._masks.append(Mask(index, end + 1, "$"))
            return end + 1
        return index + 1

    def _skip_substitution(self, index: int) -> int:
        outermost = self._substitution_depth == 0
        self._substitution_depth += 1
        try:
            end = self._skip_parens(index)
        finally:
            self._substitution_depth -= 1
        if outermost:
            self._substitutions.append((index + 1, end - 1))
        return end

    def _skip_parens(self, index: int) -> int:
        depth = 0
        j = index
        while j < self.length:
            char = self.text[j]
            if char == "\\":
                j += 2
                continue
            if char == "'":
                j = self._skip_single(j)
                continue
            if char == '"':
                j = self._skip_double(j)
                continue
            if char == "`":
                j = self._skip_backtick(j)
                continue
            if char == "$":
                j = self._skip_dollar(j)
                continue
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    return j + 1
            j += 1
        raise ParseError("unbalanced parenthesis", start=index, end=self.length)

    def _skip_braces(self, index: int) -> int:
        # Single quotes are literal inside most ${...} operator words, so they
        # are not treated as quoting here.
        depth = 0
        j = index
        while j < self.length:
            char = self.text[j]
            if char == "\\":
                j += 2
                continue
            if char == '"':
                j = self._skip_double(j)
                continue
            if char == "`":
                j = self._skip_backtick(j)
                continue
            if char == "$" and j != index:
                j = self._skip_dollar(j)
                continue
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return j + 1
            j += 1
        raise ParseError("unterminated ${...} expansion", start=index - 1, end=self.length)


def skip_parens(text: str, index: int) -> int:
    """Return the offset just past the parenthesis group opening at index."""
    return ScriptLexer(text)._skip_parens(index)


def skip_braces(text: str, index: int) -> int:
    """Return the offset just past the brace group opening at index."""
    return ScriptLexer(text)._skip_braces(index)


def matching_bracket(text: str, index: int) -> int:
    """Return the offset of the ``]`` closing the ``[`` at index, or -1."""
    depth = 0
    for j in range(index, len(text)):
        if text[j] == "[":
            depth += 1
        elif text[j] == "]":
            depth -= 1
            if depth == 0:
                return j
    return -1


def tokenize_words(text: str) -> list[Token]:
    """Tokenize text and return all word tokens across statements.

    Used for the inside of array literals, where newlines separate entries
    rather than statements.

    Raises:
        ParseError: If any region of text cannot be tokenized
    """
    words = []
    for item in ScriptLexer(text).statements():
        if isinstance(item, LexFailure):
            raise ParseError(item.message, start=item.start, end=item.end)
        words.extend(token for token in item.tokens if token.is_word)
    return words


def unquote(word: str) -> str:
    """Remove shell quoting from a word (no expansion is performed).

    Example:
        >>> unquote("'A[1]'")
        'A[1]'
        >>> unquote('"$x"y\\\\ z')
        '$xy z'
    """
    result = []
    i = 0
    in_double = False
    while i < len(word):
        char = word[i]
        if char == "\\" and i + 1 < len(word):
            following = word[i + 1]
            if not in_double or following in '$`"\\\n':
                if following != "\n":
                    result.append(following)
                i += 2
                continue
            result.append(char)
            i += 1
        elif char == "'" and not in_double:
            end = word.find("'", i + 1)
            end = len(word) if end < 0 else end
            result.append(word[i + 1 : end])
            i = end + 1
        elif char == "$" and not in_double and word[i + 1 : i + 2] == "'":
            end = word.find("'", i + 2)
            end = len(word) if end < 0 else end
            result.append(word[i + 2 : end])
            i = end + 1
        elif char == '"':
            in_double = not in_double
            i += 1
        else:
            result.append(char)
            i += 1
    return "".join(result)


def apply_masks(text: str, offset: int, masks: tuple[Mask, ...]) -> str:
    """Overwrite masked regions of text (which starts at offset) in place.

    Lengths are preserved so bashlex positions still map onto the source.
    Masks nested inside an already applied mask are skipped.
    """
    chars = list(text)
    end = offset + len(text)
    covered_until = -1
    for mask in sorted(masks, key=lambda m: (m.start, -m.end)):
        if mask.start < offset or mask.end > end or mask.start < covered_until:
            continue
        start = mask.start - offset
        size = mask.end - mask.start
        if mask.fill == "$":
            chars[start : start + size] = "$" + "_" * (size - 1)
        else:
            chars[start : start + size] = " " * size
        covered_until = mask.end
    return "".join(chars)
