"""Recursive-descent parser for echo templates.

``parse()`` never raises on bad input. Every problem is recorded as a
``ParseError`` value and parsing continues, so one pass reports as many
diagnostics as possible:

- A block whose closing directive is missing is dropped (with its body)
  and parsing resumes at the nearest enclosing boundary.
- Stray closing directives and unknown directives are reported and skipped.
- A malformed condition drops its conditional but the body is still
  scanned for further errors.

Condition grammar (keywords are case-insensitive)::

    or_expr   := and_expr ("OR" and_expr)*
    and_expr  := not_expr ("AND" not_expr)*
    not_expr  := "NOT" not_expr | primary
    primary   := "(" or_expr ")" | "true" | "false"
               | "#context(" path ")"
               | operand [ "#" name [ "(" args ")" ] ]
    operand   := "{{" path "}}" | path
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

from echo_pdk.constants import TYPE_HINTS
from echo_pdk.dsl.ast import (
    AiJudge,
    And,
    BoolLiteral,
    Comparison,
    ConditionalNode,
    ConditionExpr,
    ContextNode,
    ContextPresence,
    Document,
    ImportNode,
    IncludeNode,
    Node,
    Not,
    Or,
    SectionNode,
    TextNode,
    VariableNode,
    VariableRef,
)
from echo_pdk.dsl.lexer import SourcePosition, SourceSpan, Token, TokenKind, tokenize
from echo_pdk.dsl.operators import AI_JUDGE_OPERATORS

__all__ = [
    "ParseErrorCode",
    "ParseError",
    "ParseResult",
    "parse",
    "get_token_location",
]


class ParseErrorCode(str, Enum):
    """Machine-readable parse error codes."""

    LEXICAL = "LEXICAL"
    UNTERMINATED = "UNTERMINATED"
    UNEXPECTED_TOKEN = "UNEXPECTED_TOKEN"
    UNCLOSED_BLOCK = "UNCLOSED_BLOCK"
    UNEXPECTED_CLOSER = "UNEXPECTED_CLOSER"
    UNKNOWN_DIRECTIVE = "UNKNOWN_DIRECTIVE"
    EMPTY_BODY = "EMPTY_BODY"
    INVALID_TYPE_HINT = "INVALID_TYPE_HINT"
    MISSING_ARGUMENT = "MISSING_ARGUMENT"


@dataclass(frozen=True, slots=True)
class ParseError:
    """A syntax problem found while parsing.

    Attributes:
        code: Machine-readable error code.
        message: Human-readable description.
        location: Where the problem starts, when known.
    """

    code: ParseErrorCode
    message: str
    location: SourcePosition | None = None

    def __str__(self) -> str:
        if self.location is None:
            return self.message
        return f"{self.location.line}:{self.location.column}: {self.message}"


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Outcome of ``parse()``.

    Attributes:
        success: True when no errors were found.
        ast: The document. Present even on failure, holding every construct
            that could be parsed, for tooling that wants partial trees.
        errors: All errors, ordered by source position.
    """

    success: bool
    ast: Document | None
    errors: tuple[ParseError, ...] = ()


_BLOCK_CLOSERS: dict[str, frozenset[str]] = {
    "IF": frozenset({"ELSE", "ELSE_IF", "END_IF"}),
    "SECTION": frozenset({"END_SECTION"}),
}
_ALL_CLOSERS = frozenset().union(*_BLOCK_CLOSERS.values())
_KEYWORDS = frozenset({"AND", "OR", "NOT", "TRUE", "FALSE"})


class _Abort(Exception):
    """Unwinds out of a construct after its error has been recorded."""


def _span(start: Token | SourcePosition, end: Token) -> SourceSpan:
    start_pos = start.location if isinstance(start, Token) else start
    return SourceSpan(start=start_pos, end=end.end)


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.pos = 0
        self.errors: list[ParseError] = []
        self._open_blocks: list[str] = []

    # -- Navigation helpers ------------------------------------------------

    def current(self) -> Token:
        return self.tokens[min(self.pos, len(self.tokens) - 1)]

    def previous(self) -> Token:
        return self.tokens[max(self.pos - 1, 0)]

    def advance(self) -> Token:
        token = self.current()
        if token.kind is not TokenKind.EOF:
            self.pos += 1
        return token

    def check(self, kind: TokenKind) -> bool:
        return self.current().kind is kind

    def check_directive(self, *names: str) -> bool:
        token = self.current()
        return token.kind is TokenKind.DIRECTIVE and token.value in names

    def check_keyword(self, keyword: str) -> bool:
        token = self.current()
        return (
            token.kind is TokenKind.IDENTIFIER
            and token.value is not None
            and token.value.upper() == keyword
        )

    # -- Error helpers -----------------------------------------------------

    def error(
        self, code: ParseErrorCode, message: str, location: SourcePosition | None
    ) -> None:
        self.errors.append(ParseError(code=code, message=message, location=location))

    def fail(self, code: ParseErrorCode, message: str, token: Token) -> _Abort:
        if token.kind is TokenKind.ERROR:
            self.record_lexical(self.advance())
        else:
            self.error(code, message, token.location)
        return _Abort()

    def record_lexical(self, token: Token) -> None:
        message = token.value or "Invalid input"
        code = (
            ParseErrorCode.UNTERMINATED
            if message.startswith("Unterminated")
            else ParseErrorCode.LEXICAL
        )
        self.error(code, message, token.location)

    def expect(self, kind: TokenKind, message: str) -> Token:
        if self.check(kind):
            return self.advance()
        raise self.fail(ParseErrorCode.UNEXPECTED_TOKEN, message, self.current())

    def recover(self, until: TokenKind) -> None:
        """Skip to and consume the ``until`` token without leaving the construct."""
        stop = {TokenKind.EOF, TokenKind.TEXT, TokenKind.DIRECTIVE}
        while not self.check(until):
            token = self.current()
            if token.kind in stop:
                return
            if token.kind is TokenKind.ERROR:
                self.record_lexical(token)
                self.advance()
                if token.value and token.value.startswith("Unterminated"):
                    return
                continue
            self.advance()
        self.advance()

    # -- Document ----------------------------------------------------------

    def parse_document(self) -> Document:
        children = self.parse_nodes()
        return Document(
            children=tuple(children),
            location=_span(self.tokens[0], self.current()),
        )

    def parse_nodes(self) -> list[Node]:
        nodes: list[Node] = []
        while True:
            token = self.current()
            kind = token.kind
            if kind is TokenKind.EOF:
                return nodes
            if kind is TokenKind.TEXT:
                self.advance()
                nodes.append(TextNode(content=token.lexeme, location=token.span))
            elif kind is TokenKind.VARIABLE_OPEN:
                self.append(nodes, self.parse_variable)
            elif kind is TokenKind.OPERATOR:
                self.append(nodes, self.parse_context_node)
            elif kind is TokenKind.ERROR:
                self.record_lexical(self.advance())
            elif kind is TokenKind.DIRECTIVE:
                name = token.value or ""
                if name in _ALL_CLOSERS:
                    if any(name in _BLOCK_CLOSERS[b] for b in self._open_blocks):
                        return nodes
                    self.error(
                        ParseErrorCode.UNEXPECTED_CLOSER,
                        f"Unexpected {self.describe(token)} without a matching opener",
                        token.location,
                    )
                    self.skip_directive()
                elif name == "IF":
                    self.append(nodes, self.parse_if)
                elif name == "SECTION":
                    self.append(nodes, self.parse_section)
                elif name in ("IMPORT", "INCLUDE"):
                    self.append(nodes, self.parse_reference_directive)
                else:
                    self.error(
                        ParseErrorCode.UNKNOWN_DIRECTIVE,
                        f"Unknown directive [#{name}]",
                        token.location,
                    )
                    self.skip_directive()
            else:
                self.error(
                    ParseErrorCode.UNEXPECTED_TOKEN,
                    f"Unexpected {token.lexeme!r}",
                    token.location,
                )
                self.advance()

    def append(self, nodes: list[Node], rule: Callable[[], Node | None]) -> None:
        node = rule()
        if node is not None:
            nodes.append(node)

    @staticmethod
    def describe(token: Token) -> str:
        return token.lexeme if token.lexeme.endswith("]") else f"{token.lexeme}]"

    def skip_directive(self) -> None:
        opener = self.advance()
        if opener.lexeme.endswith("]"):
            return
        self.recover(TokenKind.DIRECTIVE_CLOSE)

    def parse_body(self, block: str) -> list[Node]:
        self._open_blocks.append(block)
        try:
            return self.parse_nodes()
        finally:
            self._open_blocks.pop()

    # -- Variables and inline context -------------------------------------

    def parse_variable(self) -> VariableNode | None:
        open_token = self.advance()
        try:
            name = self.expect(
                TokenKind.IDENTIFIER, "Expected variable name after '{{'"
            )
            type_hint: str | None = None
            default: str | None = None
            if self.check(TokenKind.COLON):
                self.advance()
                hint = self.expect(TokenKind.IDENTIFIER, "Expected type hint after ':'")
                type_hint = (hint.value or "").lower()
                if type_hint not in TYPE_HINTS:
                    self.error(
                        ParseErrorCode.INVALID_TYPE_HINT,
                        f"Unknown type hint {hint.value!r}; "
                        f"expected one of {', '.join(sorted(TYPE_HINTS))}",
                        hint.location,
                    )
                    type_hint = None
            if self.check(TokenKind.DEFAULT_OP):
                self.advance()
                token = self.current()
                if token.kind not in (
                    TokenKind.STRING,
                    TokenKind.NUMBER,
                    TokenKind.IDENTIFIER,
                ):
                    raise self.fail(
                        ParseErrorCode.MISSING_ARGUMENT,
                        "Expected default value after '??'",
                        token,
                    )
                default = self.advance().value
            close = self.expect(TokenKind.VARIABLE_CLOSE, "Expected '}}'")
        except _Abort:
            self.recover(TokenKind.VARIABLE_CLOSE)
            return None
        return VariableNode(
            name=name.value or "",
            type_hint=type_hint,
            default=default,
            location=_span(open_token, close),
        )

    def parse_operator_arguments(self) -> tuple[str | tuple[str, ...] | None, Token]:
        """Parse ``( ... )`` after an operator. Returns (argument, last token)."""
        self.advance()  # LPAREN
        if self.check(TokenKind.ARGUMENT):
            argument: str | tuple[str, ...] | None = self.advance().value
        elif self.check(TokenKind.STRING):
            values = [self.advance().value or ""]
            while self.check(TokenKind.COMMA):
                self.advance()
                values.append(
                    self.expect(TokenKind.STRING, "Expected quoted argument").value
                    or ""
                )
            argument = values[0] if len(values) == 1 else tuple(values)
        else:
            argument = None
        close = self.expect(TokenKind.RPAREN, "Expected ')'")
        return argument, close

    def operator_has_arguments(self, operator: Token) -> bool:
        token = self.current()
        return token.kind is TokenKind.LPAREN and (
            token.location.offset == operator.end_offset
        )

    def parse_context_node(self) -> ContextNode | None:
        operator = self.advance()
        try:
            if operator.value != "context" or not self.operator_has_arguments(operator):
                raise self.fail(
                    ParseErrorCode.UNEXPECTED_TOKEN,
                    f"Unexpected operator {operator.lexeme!r} outside a condition",
                    operator,
                )
            path, close = self.parse_operator_arguments()
        except _Abort:
            self.recover(TokenKind.RPAREN)
            return None
        if not isinstance(path, str) or not path:
            self.error(
                ParseErrorCode.MISSING_ARGUMENT,
                "#context() requires a path",
                operator.location,
            )
            return None
        return ContextNode(path=path, location=_span(operator, close))

    # -- Directives --------------------------------------------------------

    def parse_directive_argument(self, directive: Token) -> tuple[str, Token]:
        """Parse the single name/path argument of SECTION, IMPORT or INCLUDE."""
        token = self.current()
        if (
            directive.value == "SECTION"
            and token.kind is TokenKind.IDENTIFIER
            and token.value == "name"
            and self.tokens[self.pos + 1].kind is TokenKind.EQUALS
        ):
            self.advance()
            self.advance()
            token = self.current()
        if token.kind not in (TokenKind.STRING, TokenKind.IDENTIFIER):
            raise self.fail(
                ParseErrorCode.MISSING_ARGUMENT,
                f"{directive.lexeme}] requires a name or path",
                token,
            )
        self.advance()
        close = self.expect(TokenKind.DIRECTIVE_CLOSE, "Expected ']'")
        return token.value or "", close

    def parse_reference_directive(self) -> ImportNode | IncludeNode | None:
        directive = self.advance()
        try:
            path, close = self.parse_directive_argument(directive)
        except _Abort:
            self.recover(TokenKind.DIRECTIVE_CLOSE)
            return None
        location = _span(directive, close)
        if directive.value == "IMPORT":
            return ImportNode(path=path, location=location)
        return IncludeNode(path=path, location=location)

    def parse_section(self) -> SectionNode | None:
        directive = self.advance()
        try:
            name, _ = self.parse_directive_argument(directive)
        except _Abort:
            self.recover(TokenKind.DIRECTIVE_CLOSE)
            name = None
        children = self.parse_body("SECTION")
        if not self.check_directive("END_SECTION"):
            self.error(
                ParseErrorCode.UNCLOSED_BLOCK,
                "[#SECTION] is missing [END SECTION]",
                directive.location,
            )
            return None
        close = self.advance()
        if name is None:
            return None
        return SectionNode(
            name=name, children=tuple(children), location=_span(directive, close)
        )

    def parse_if(self) -> ConditionalNode | None:
        directive = self.current()
        node = self.parse_branch_chain()
        valid = node is not None
        while self.check_directive("ELSE", "ELSE_IF"):
            stray = self.current()
            self.error(
                ParseErrorCode.UNEXPECTED_CLOSER,
                f"Unexpected {self.describe(stray)} after [ELSE]",
                stray.location,
            )
            self.skip_directive()
            self.parse_body("IF")
            valid = False
        if not self.check_directive("END_IF"):
            self.error(
                ParseErrorCode.UNCLOSED_BLOCK,
                "[#IF] is missing [END IF]",
                directive.location,
            )
            return None
        close = self.advance()
        if not valid or node is None:
            return None
        return replace(node, location=_span(directive, close))

    def parse_branch_chain(self) -> ConditionalNode | None:
        directive = self.advance()  # [#IF or [ELSE IF
        condition = self.parse_directive_condition(directive)
        then_branch = self.parse_body("IF")
        valid = condition is not None

        if not then_branch:
            self.error(
                ParseErrorCode.EMPTY_BODY,
                f"{self.describe(directive)} block has an empty body",
                directive.location,
            )
            valid = False

        else_branch: tuple[Node, ...] = ()
        if self.check_directive("ELSE_IF"):
            nested = self.parse_branch_chain()
            if nested is None:
                valid = False
            else:
                else_branch = (nested,)
        elif self.check_directive("ELSE"):
            self.advance()
            else_branch = tuple(self.parse_body("IF"))

        if not valid or condition is None:
            return None
        return ConditionalNode(
            condition=condition,
            then_branch=tuple(then_branch),
            else_branch=else_branch,
            location=_span(directive, self.previous()),
        )

    # -- Conditions --------------------------------------------------------

    def parse_directive_condition(self, directive: Token) -> ConditionExpr | None:
        if self.check(TokenKind.DIRECTIVE_CLOSE):
            self.error(
                ParseErrorCode.MISSING_ARGUMENT,
                f"{directive.lexeme}] requires a condition",
                directive.location,
            )
            self.advance()
            return None
        try:
            expr = self.parse_or()
            self.expect(TokenKind.DIRECTIVE_CLOSE, "Expected ']' after condition")
        except _Abort:
            self.recover(TokenKind.DIRECTIVE_CLOSE)
            return None
        return expr

    def parse_or(self) -> ConditionExpr:
        start = self.current()
        operands = [self.parse_and()]
        while self.check_keyword("OR"):
            self.advance()
            operands.append(self.parse_and())
        if len(operands) == 1:
            return operands[0]
        return Or(operands=tuple(operands), location=_span(start, self.previous()))

    def parse_and(self) -> ConditionExpr:
        start = self.current()
        operands = [self.parse_not()]
        while self.check_keyword("AND"):
            self.advance()
            operands.append(self.parse_not())
        if len(operands) == 1:
            return operands[0]
        return And(operands=tuple(operands), location=_span(start, self.previous()))

    def parse_not(self) -> ConditionExpr:
        if self.check_keyword("NOT"):
            start = self.advance()
            operand = self.parse_not()
            return Not(operand=operand, location=_span(start, self.previous()))
        return self.parse_primary()

    def parse_primary(self) -> ConditionExpr:
        token = self.current()
        if token.kind is TokenKind.LPAREN:
            self.advance()
            expr = self.parse_or()
            self.expect(TokenKind.RPAREN, "Expected ')' to close group")
            return expr
        if self.check_keyword("TRUE") or self.check_keyword("FALSE"):
            self.advance()
            return BoolLiteral(
                value=(token.value or "").upper() == "TRUE", location=token.span
            )
        if token.kind is TokenKind.OPERATOR and token.value == "context":
            return self.parse_context_presence()
        operand = self.parse_operand()
        if self.check(TokenKind.OPERATOR):
            return self.parse_predicate(operand)
        return operand

    def parse_operand(self) -> VariableRef:
        token = self.current()
        if token.kind is TokenKind.VARIABLE_OPEN:
            self.advance()
            name = self.expect(
                TokenKind.IDENTIFIER, "Expected variable name after '{{'"
            )
            if self.check(TokenKind.COLON):
                raise self.fail(
                    ParseErrorCode.UNEXPECTED_TOKEN,
                    "Type hints are not allowed in conditions",
                    self.current(),
                )
            close = self.expect(TokenKind.VARIABLE_CLOSE, "Expected '}}'")
            return VariableRef(name=name.value or "", location=_span(token, close))
        if (
            token.kind is TokenKind.IDENTIFIER
            and (token.value or "").upper() not in _KEYWORDS
        ):
            self.advance()
            return VariableRef(name=token.value or "", location=token.span)
        raise self.fail(
            ParseErrorCode.UNEXPECTED_TOKEN,
            f"Expected a variable, 'true', 'false' or '(' but found {token.lexeme!r}",
            token,
        )

    def parse_context_presence(self) -> ContextPresence:
        operator = self.advance()
        if not self.operator_has_arguments(operator):
            raise self.fail(
                ParseErrorCode.MISSING_ARGUMENT,
                "#context requires a path: #context(path)",
                operator,
            )
        path, close = self.parse_operator_arguments()
        if not isinstance(path, str) or not path:
            raise self.fail(
                ParseErrorCode.MISSING_ARGUMENT, "#context() requires a path", operator
            )
        return ContextPresence(path=path, location=_span(operator, close))

    def parse_predicate(self, operand: VariableRef) -> ConditionExpr:
        operator = self.advance()
        name = (operator.value or "").lower()
        argument: str | tuple[str, ...] | None = None
        end = operator
        if self.operator_has_arguments(operator):
            argument, end = self.parse_operator_arguments()
        location = _span(operand.location.start, end)

        if name in AI_JUDGE_OPERATORS:
            if not isinstance(argument, str) or not argument.strip():
                raise self.fail(
                    ParseErrorCode.MISSING_ARGUMENT,
                    f"#{name} requires a question",
                    operator,
                )
            return AiJudge(value=operand, question=argument, location=location)
        if name == "context":
            raise self.fail(
                ParseErrorCode.UNEXPECTED_TOKEN,
                "#context(...) cannot be applied to a variable",
                operator,
            )
        return Comparison(
            variable=operand, operator=name, argument=argument, location=location
        )


def parse(source: str) -> ParseResult:
    """Parse template source into an AST.

    Args:
        source: Template text.

    Returns:
        ParseResult. ``success`` is False when any error was found; ``ast``
        still holds every construct that parsed cleanly.

    Example:
        >>> result = parse("Hello {{name}}!")
        >>> result.success
        True
        >>> [type(n).__name__ for n in result.ast.children]
        ['TextNode', 'VariableNode', 'TextNode']
    """
    parser = _Parser(tokenize(source))
    document = parser.parse_document()
    errors = sorted(
        parser.errors,
        key=lambda e: e.location.offset if e.location is not None else -1,
    )
    return ParseResult(success=not errors, ast=document, errors=tuple(errors))


def get_token_location(item: Node | ConditionExpr | Token) -> SourceSpan:
    """Map an AST node, condition or token back to its source span."""
    if isinstance(item, Token):
        return item.span
    return item.location
