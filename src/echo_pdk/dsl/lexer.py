"""Tokenizer for echo templates.

The lexer turns template source into a flat list of located tokens. It is
modal: literal text is scanned until one of the openers below, and each
opener switches into a small sub-lexer that returns to the enclosing mode
when its closer is found.

Openers:
- ``{{``                      variable, e.g. ``{{name}}`` or ``{{n:number ?? "0"}}``
- ``[#NAME``                  directive: IF, SECTION, IMPORT or INCLUDE
- ``[ELSE IF``                else-if directive, condition follows
- ``[ELSE]`` ``[END IF]`` ``[END SECTION]``   closers, lexed as single tokens
- ``#context(``               inline context reference

Malformed input never raises. Unterminated variables, directives, strings
and operator arguments produce an ``ERROR`` token located at the opening
delimiter so the parser can report an accurate diagnostic.
"""

from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass
from enum import Enum

__all__ = [
    "TokenKind",
    "SourcePosition",
    "SourceSpan",
    "Token",
    "tokenize",
]


class TokenKind(str, Enum):
    """Kind of lexical token."""

    TEXT = "text"
    VARIABLE_OPEN = "variable_open"  # {{
    VARIABLE_CLOSE = "variable_close"  # }}
    DIRECTIVE = "directive"  # [#IF, [ELSE IF, [ELSE], [END IF], ...
    DIRECTIVE_CLOSE = "directive_close"  # ]
    OPERATOR = "operator"  # #equals, #ai_judge, #context
    IDENTIFIER = "identifier"
    STRING = "string"
    NUMBER = "number"
    ARGUMENT = "argument"  # raw text inside #op( ... )
    LPAREN = "lparen"
    RPAREN = "rparen"
    COMMA = "comma"
    COLON = "colon"
    EQUALS = "equals"
    DEFAULT_OP = "default_op"  # ??
    ERROR = "error"
    EOF = "eof"


@dataclass(frozen=True, slots=True)
class SourcePosition:
    """Location of a character in the source.

    Attributes:
        offset: 0-based character index into the source string.
        line: 1-based line number.
        column: 1-based column number.
    """

    offset: int
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


@dataclass(frozen=True, slots=True)
class SourceSpan:
    """Half-open source range [start, end)."""

    start: SourcePosition
    end: SourcePosition


@dataclass(frozen=True, slots=True)
class Token:
    """A lexical token.

    Attributes:
        kind: Token kind.
        lexeme: Exact source text of the token.
        location: Position of the first character.
        value: Decoded payload. Directive name for DIRECTIVE, operator name
            for OPERATOR, unquoted text for STRING, trimmed text for
            ARGUMENT, diagnostic message for ERROR.
    """

    kind: TokenKind
    lexeme: str
    location: SourcePosition
    value: str | None = None

    @property
    def end_offset(self) -> int:
        return self.location.offset + len(self.lexeme)

    @property
    def end(self) -> SourcePosition:
        """Position just past the last character of the lexeme."""
        lines = self.lexeme.split("\n")
        if len(lines) == 1:
            column = self.location.column + len(self.lexeme)
        else:
            column = len(lines[-1]) + 1
        return SourcePosition(
            offset=self.end_offset,
            line=self.location.line + len(lines) - 1,
            column=column,
        )

    @property
    def span(self) -> SourceSpan:
        return SourceSpan(start=self.location, end=self.end)


# Candidates for leaving text mode. Directives are case-sensitive: "[#" must
# be followed by an upper-case letter, so markdown such as "[#1]" and
# lower-case "[#if" stay literal.
_TEXT_BREAK = re.compile(
    r"\{\{"
    r"|\[#[A-Z_]"
    r"|\[ELSE IF\b"
    r"|\[ELSE\]"
    r"|\[END IF\]"
    r"|\[END SECTION\]"
    r"|#context\("
)
_DIRECTIVE_NAME = re.compile(r"[A-Za-z_]+")
_BLOCK_START = re.compile(r"\[#[A-Z_]|\[END |\[ELSE")
_OPERATOR = re.compile(r"#([A-Za-z_][A-Za-z0-9_]*)")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?(?![A-Za-z_])")
_IDENTIFIER = re.compile(
    r"[A-Za-z_@][A-Za-z0-9_\-]*"
    r"(?:\.[A-Za-z0-9_][A-Za-z0-9_\-]*|\[\d+\])*"
)
_PATH_WORD = re.compile(r"[A-Za-z0-9_./\-]+")
_WHITESPACE = re.compile(r"\s+")

_CLOSER_DIRECTIVES = {
    "[ELSE]": "ELSE",
    "[END IF]": "END_IF",
    "[END SECTION]": "END_SECTION",
}
_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "'": "'", "\\": "\\"}


class _Lexer:
    def __init__(self, source: str) -> None:
        self._source = source
        self._pos = 0
        self._tokens: list[Token] = []
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", source)]

    def position(self, offset: int) -> SourcePosition:
        line_index = bisect_right(self._line_starts, offset) - 1
        column = offset - self._line_starts[line_index] + 1
        return SourcePosition(offset=offset, line=line_index + 1, column=column)

    def run(self) -> list[Token]:
        while self._pos < len(self._source):
            self._lex_text()
        end = len(self._source)
        self._tokens.append(Token(TokenKind.EOF, "", self.position(end)))
        return self._tokens

    # -- helpers ---------------------------------------------------------

    def _emit(
        self, kind: TokenKind, start: int, end: int, value: str | None = None
    ) -> None:
        self._tokens.append(
            Token(kind, self._source[start:end], self.position(start), value)
        )

    def _error(self, start: int, end: int, message: str) -> None:
        self._emit(TokenKind.ERROR, start, end, message)

    def _at_end(self) -> bool:
        return self._pos >= len(self._source)

    def _peek(self, text: str) -> bool:
        return self._source.startswith(text, self._pos)

    def _skip_whitespace(self) -> None:
        m = _WHITESPACE.match(self._source, self._pos)
        if m:
            self._pos = m.end()

    def _starts_new_block(self) -> bool:
        return _BLOCK_START.match(self._source, self._pos) is not None

    # -- modes -----------------------------------------------------------

    def _lex_text(self) -> None:
        m = _TEXT_BREAK.search(self._source, self._pos)
        if m is None:
            self._emit(TokenKind.TEXT, self._pos, len(self._source))
            self._pos = len(self._source)
            return
        if m.start() > self._pos:
            self._emit(TokenKind.TEXT, self._pos, m.start())
        start = self._pos = m.start()
        matched = m.group()

        if matched == "{{":
            self._emit(TokenKind.VARIABLE_OPEN, start, start + 2)
            self._pos += 2
            self._lex_variable(start)
        elif matched in _CLOSER_DIRECTIVES:
            end = start + len(matched)
            self._emit(TokenKind.DIRECTIVE, start, end, _CLOSER_DIRECTIVES[matched])
            self._pos = end
        elif matched.startswith("[ELSE IF"):
            end = start + len("[ELSE IF")
            self._emit(TokenKind.DIRECTIVE, start, end, "ELSE_IF")
            self._pos = end
            self._lex_directive(start)
        elif matched.startswith("[#"):
            name = _DIRECTIVE_NAME.match(self._source, start + 2)
            assert name is not None
            self._emit(TokenKind.DIRECTIVE, start, name.end(), name.group())
            self._pos = name.end()
            self._lex_directive(start)
        else:
            self._lex_operator()

    def _lex_variable(self, open_start: int) -> None:
        while True:
            self._skip_whitespace()
            if self._at_end():
                self._error(
                    open_start, open_start + 2, "Unterminated variable: expected '}}'"
                )
                return
            start = self._pos
            ch = self._source[start]
            if self._peek("}}"):
                self._emit(TokenKind.VARIABLE_CLOSE, start, start + 2)
                self._pos += 2
                return
            if ch in "{[]":
                # A new construct starts before this one closed.
                self._error(
                    open_start, open_start + 2, "Unterminated variable: expected '}}'"
                )
                return
            if self._peek("??"):
                self._emit(TokenKind.DEFAULT_OP, start, start + 2)
                self._pos += 2
            elif ch == ":":
                self._emit(TokenKind.COLON, start, start + 1)
                self._pos += 1
            elif ch in "\"'":
                self._lex_string()
            elif m := _NUMBER.match(self._source, start):
                self._emit(TokenKind.NUMBER, start, m.end(), m.group())
                self._pos = m.end()
            elif m := _IDENTIFIER.match(self._source, start):
                self._emit(TokenKind.IDENTIFIER, start, m.end(), m.group())
                self._pos = m.end()
            else:
                self._error(start, start + 1, f"Unexpected character {ch!r}")
                self._pos += 1

    def _lex_directive(self, open_start: int) -> None:
        while True:
            self._skip_whitespace()
            if self._at_end() or self._starts_new_block():
                self._error(
                    open_start, open_start + 2, "Unterminated directive: expected ']'"
                )
                return
            start = self._pos
            ch = self._source[start]
            if ch == "]":
                self._emit(TokenKind.DIRECTIVE_CLOSE, start, start + 1)
                self._pos += 1
                return
            if self._peek("{{"):
                self._emit(TokenKind.VARIABLE_OPEN, start, start + 2)
                self._pos += 2
                self._lex_variable(start)
            elif ch == "#":
                if _OPERATOR.match(self._source, start):
                    self._lex_operator()
                else:
                    self._error(start, start + 1, "Expected operator name after '#'")
                    self._pos += 1
            elif ch in "(),=":
                kind = {
                    "(": TokenKind.LPAREN,
                    ")": TokenKind.RPAREN,
                    ",": TokenKind.COMMA,
                    "=": TokenKind.EQUALS,
                }[ch]
                self._emit(kind, start, start + 1)
                self._pos += 1
            elif ch in "\"'":
                self._lex_string()
            elif m := _NUMBER.match(self._source, start):
                self._emit(TokenKind.NUMBER, start, m.end(), m.group())
                self._pos = m.end()
            elif m := _IDENTIFIER.match(self._source, start):
                self._emit(TokenKind.IDENTIFIER, start, m.end(), m.group())
                self._pos = m.end()
            elif m := _PATH_WORD.match(self._source, start):
                self._emit(TokenKind.IDENTIFIER, start, m.end(), m.group())
                self._pos = m.end()
            else:
                self._error(start, start + 1, f"Unexpected character {ch!r}")
                self._pos += 1

    def _lex_operator(self) -> None:
        start = self._pos
        m = _OPERATOR.match(self._source, start)
        assert m is not None
        self._emit(TokenKind.OPERATOR, start, m.end(), m.group(1))
        self._pos = m.end()
        if self._peek("("):
            paren = self._pos
            self._emit(TokenKind.LPAREN, paren, paren + 1)
            self._pos += 1
            self._lex_arguments(paren)

    def _lex_arguments(self, paren_start: int) -> None:
        """Lex operator arguments up to the matching ')'.

        Quoted arguments are lexed as STRING tokens separated by commas.
        Anything else is taken verbatim as a single ARGUMENT token, so
        questions like ``#ai_judge(Is this safe, really?)`` need no quoting.
        Arguments never span lines.
        """
        self._skip_whitespace()
        if not self._at_end() and self._source[self._pos] in "\"'":
            self._lex_quoted_arguments(paren_start)
            return

        depth = 0
        i = self._pos
        while i < len(self._source):
            ch = self._source[i]
            if ch == "\n":
                break
            if ch == "(":
                depth += 1
            elif ch == ")":
                if depth == 0:
                    raw_end = i
                    raw = self._source[self._pos : raw_end]
                    if raw.strip():
                        self._emit(TokenKind.ARGUMENT, self._pos, raw_end, raw.strip())
                    self._emit(TokenKind.RPAREN, i, i + 1)
                    self._pos = i + 1
                    return
                depth -= 1
            i += 1
        self._error(
            paren_start,
            paren_start + 1,
            "Unterminated operator arguments: expected ')'",
        )
        self._pos = i

    def _lex_quoted_arguments(self, paren_start: int) -> None:
        while True:
            self._skip_whitespace()
            if self._at_end():
                break
            start = self._pos
            ch = self._source[start]
            if ch == ")":
                self._emit(TokenKind.RPAREN, start, start + 1)
                self._pos += 1
                return
            if ch == ",":
                self._emit(TokenKind.COMMA, start, start + 1)
                self._pos += 1
            elif ch in "\"'":
                if not self._lex_string():
                    return
            else:
                break
        self._error(
            paren_start,
            paren_start + 1,
            "Unterminated operator arguments: expected ')'",
        )

    def _lex_string(self) -> bool:
        start = self._pos
        quote = self._source[start]
        chars: list[str] = []
        i = start + 1
        while i < len(self._source):
            ch = self._source[i]
            if ch == "\\" and i + 1 < len(self._source):
                nxt = self._source[i + 1]
                chars.append(_ESCAPES.get(nxt, "\\" + nxt))
                i += 2
                continue
            if ch == quote:
                self._emit(TokenKind.STRING, start, i + 1, "".join(chars))
                self._pos = i + 1
                return True
            if ch == "\n":
                break
            chars.append(ch)
            i += 1
        self._error(start, start + 1, "Unterminated string literal")
        self._pos = i
        return False


def tokenize(source: str) -> list[Token]:
    """Tokenize template source.

    Args:
        source: Template text.

    Returns:
        All tokens in source order, always ending with an EOF token. Lexical
        problems are reported as ERROR tokens rather than raised.

    Example:
        >>> [t.kind.value for t in tokenize("Hi {{name}}")]
        ['text', 'variable_open', 'identifier', 'variable_close', 'eof']
    """
    return _Lexer(source).run()
