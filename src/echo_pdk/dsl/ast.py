"""AST node types and tree utilities for echo templates.

Nodes are frozen dataclasses whose children live in tuples, so a parsed tree
can never be mutated. The evaluator builds new trees and reuses untouched
subtrees by reference.

Template nodes:
    Document, TextNode, VariableNode, ConditionalNode, SectionNode,
    ImportNode, IncludeNode, ContextNode

Condition expressions (the predicate of a ConditionalNode):
    BoolLiteral, VariableRef, Not, And, Or, Comparison, AiJudge,
    ContextPresence
"""

from __future__ import annotations

import copy
import json
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeAlias, TypeVar

from echo_pdk.dsl.lexer import SourcePosition, SourceSpan

__all__ = [
    "Node",
    "ConditionExpr",
    "Document",
    "TextNode",
    "VariableNode",
    "ConditionalNode",
    "SectionNode",
    "ImportNode",
    "IncludeNode",
    "ContextNode",
    "BoolLiteral",
    "VariableRef",
    "Not",
    "And",
    "Or",
    "Comparison",
    "AiJudge",
    "ContextPresence",
    "NodeVisitor",
    "EMPTY_SPAN",
    "clone_node",
    "iter_nodes",
    "iter_conditions",
    "visit_node",
    "visit_nodes",
    "collect_nodes",
    "collect_ai_judge_conditions",
    "collect_sections",
    "pretty_print",
]

_ORIGIN = SourcePosition(offset=0, line=1, column=1)

#: Span used for synthesized nodes that have no source text
EMPTY_SPAN = SourceSpan(start=_ORIGIN, end=_ORIGIN)


# =============================================================================
# Condition Expressions
# =============================================================================


@dataclass(frozen=True, slots=True)
class BoolLiteral:
    """Literal ``true`` or ``false``."""

    value: bool
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class VariableRef:
    """Reference to a bound variable, truthy or falsy by its value.

    Attributes:
        name: Dotted/indexed path such as ``user.name`` or ``items[0]``.
    """

    name: str
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class Not:
    operand: ConditionExpr
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class And:
    """Conjunction, evaluated left to right with short-circuit."""

    operands: tuple[ConditionExpr, ...]
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class Or:
    """Disjunction, evaluated left to right with short-circuit."""

    operands: tuple[ConditionExpr, ...]
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class Comparison:
    """Built-in or registered operator applied to a variable.

    Attributes:
        variable: Variable whose value is tested.
        operator: Operator name without the leading ``#`` (e.g. ``equals``).
        argument: Raw argument text, a tuple of quoted arguments, or None
            for operators that take none (``#exists``).
    """

    variable: VariableRef
    operator: str
    argument: str | tuple[str, ...] | None = None
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class AiJudge:
    """Predicate answered by an LLM: is ``question`` true of the value?

    Attributes:
        value: Variable whose value is shown to the judge.
        question: Free-text yes/no question.
    """

    value: VariableRef
    question: str
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class ContextPresence:
    """True when the context reference resolved to content."""

    path: str
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


ConditionExpr: TypeAlias = (
    BoolLiteral | VariableRef | Not | And | Or | Comparison | AiJudge | ContextPresence
)


# =============================================================================
# Template Nodes
# =============================================================================


@dataclass(frozen=True, slots=True)
class TextNode:
    content: str
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class VariableNode:
    """Variable interpolation.

    Attributes:
        name: Dotted/indexed path of the variable.
        type_hint: Advisory formatting hint (text, number, boolean, json).
        default: Text rendered when the variable is missing.
    """

    name: str
    type_hint: str | None = None
    default: str | None = None
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class ConditionalNode:
    """``[#IF cond]then[ELSE]else[END IF]``.

    An ``[ELSE IF]`` chain is an else_branch holding exactly one nested
    ConditionalNode. An empty else_branch means there is no else.
    """

    condition: ConditionExpr
    then_branch: tuple[Node, ...]
    else_branch: tuple[Node, ...] = ()
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)

    @property
    def is_else_if(self) -> bool:
        return len(self.else_branch) == 1 and isinstance(
            self.else_branch[0], ConditionalNode
        )


@dataclass(frozen=True, slots=True)
class SectionNode:
    name: str
    children: tuple[Node, ...]
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class ImportNode:
    """``[#IMPORT "path"]``: splice another document in place."""

    path: str
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class IncludeNode:
    """``[#INCLUDE path]``: splice a named section, or a document by path."""

    path: str
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class ContextNode:
    """Inline ``#context(path)``: rendered as the resolved content."""

    path: str
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


@dataclass(frozen=True, slots=True)
class Document:
    children: tuple[Node, ...]
    location: SourceSpan = field(default=EMPTY_SPAN, compare=False)


Node: TypeAlias = (
    Document
    | TextNode
    | VariableNode
    | ConditionalNode
    | SectionNode
    | ImportNode
    | IncludeNode
    | ContextNode
)

T = TypeVar("T")


# =============================================================================
# Traversal
# =============================================================================


def _node_kind(node: Node | ConditionExpr) -> str:
    """Snake-case kind name used for visitor dispatch (TextNode -> text)."""
    name = type(node).__name__
    if name.endswith("Node"):
        name = name[: -len("Node")]
    out: list[str] = []
    for i, ch in enumerate(name):
        if ch.isupper() and i:
            out.append("_")
        out.append(ch.lower())
    return "".join(out)


def child_nodes(node: Node) -> tuple[Node, ...]:
    """Direct children of a node, both branches of a conditional included."""
    if isinstance(node, Document | SectionNode):
        return node.children
    if isinstance(node, ConditionalNode):
        return node.then_branch + node.else_branch
    return ()


def iter_nodes(nodes: Node | Sequence[Node]) -> Iterator[Node]:
    """Yield every node in pre-order, descending into every branch."""
    if isinstance(nodes, Sequence):
        stack: list[Node] = list(reversed(nodes))
    else:
        stack = [nodes]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(child_nodes(node)))


def iter_conditions(expr: ConditionExpr) -> Iterator[ConditionExpr]:
    """Yield every sub-expression of a condition in pre-order."""
    yield expr
    if isinstance(expr, Not):
        yield from iter_conditions(expr.operand)
    elif isinstance(expr, And | Or):
        for operand in expr.operands:
            yield from iter_conditions(operand)


class NodeVisitor:
    """Per-kind handler dispatch for template nodes.

    Subclasses define ``visit_<kind>`` methods (``visit_text``,
    ``visit_conditional``, ``visit_section``...). Kinds without a handler
    fall back to ``generic_visit``, which does nothing. Traversal order is
    driven by ``visit_node``/``visit_nodes``, not by the visitor.

    Example:
        ```python
        class VariableNames(NodeVisitor):
            def __init__(self) -> None:
                self.names: list[str] = []

            def visit_variable(self, node: VariableNode) -> None:
                self.names.append(node.name)

        collector = VariableNames()
        visit_node(document, collector)
        ```
    """

    def visit(self, node: Node) -> Any:
        method = getattr(self, f"visit_{_node_kind(node)}", self.generic_visit)
        return method(node)

    def generic_visit(self, node: Node) -> Any:
        return None


def visit_node(node: Node, visitor: NodeVisitor | Callable[[Node], Any]) -> None:
    """Pre-order walk of ``node`` and all descendants, calling the handler.

    Args:
        node: Root of the walk.
        visitor: A NodeVisitor, or a plain callable taking each node.
    """
    handler = visitor.visit if isinstance(visitor, NodeVisitor) else visitor
    for current in iter_nodes(node):
        handler(current)


def visit_nodes(
    nodes: Sequence[Node], visitor: NodeVisitor | Callable[[Node], Any]
) -> None:
    """Walk a sequence of sibling trees in order with ``visit_node``."""
    for node in nodes:
        visit_node(node, visitor)


def collect_nodes(nodes: Node | Sequence[Node], kind: type[T]) -> list[T]:
    """Collect every node of a given type in pre-order."""
    return [n for n in iter_nodes(nodes) if isinstance(n, kind)]


def collect_ai_judge_conditions(nodes: Node | Sequence[Node]) -> list[AiJudge]:
    """Gather every AiJudge predicate, whichever branch it sits in."""
    found: list[AiJudge] = []
    for node in iter_nodes(nodes):
        if isinstance(node, ConditionalNode):
            found.extend(
                expr
                for expr in iter_conditions(node.condition)
                if isinstance(expr, AiJudge)
            )
    return found


def collect_sections(nodes: Node | Sequence[Node]) -> dict[str, SectionNode]:
    """Map section names to definitions. A later duplicate replaces an earlier one."""
    return {s.name: s for s in collect_nodes(nodes, SectionNode)}


def clone_node(node: T) -> T:
    """Deep, structure-preserving copy of a node or condition."""
    return copy.deepcopy(node)


# =============================================================================
# Pretty Printing
# =============================================================================


def _format_condition(expr: ConditionExpr) -> str:
    if isinstance(expr, BoolLiteral):
        return "true" if expr.value else "false"
    if isinstance(expr, VariableRef):
        return f"{{{{{expr.name}}}}}"
    if isinstance(expr, Not):
        return f"NOT {_format_condition(expr.operand)}"
    if isinstance(expr, And | Or):
        joiner = " AND " if isinstance(expr, And) else " OR "
        return "(" + joiner.join(_format_condition(o) for o in expr.operands) + ")"
    if isinstance(expr, Comparison):
        target = _format_condition(expr.variable)
        if expr.argument is None:
            return f"{target} #{expr.operator}"
        if isinstance(expr.argument, tuple):
            arg = ", ".join(json.dumps(a) for a in expr.argument)
        else:
            arg = expr.argument
        return f"{target} #{expr.operator}({arg})"
    if isinstance(expr, AiJudge):
        return f"{_format_condition(expr.value)} #ai_judge({expr.question})"
    return f"#context({expr.path})"


def _pretty_lines(node: Node, depth: int, lines: list[str]) -> None:
    pad = "  " * depth
    if isinstance(node, Document):
        lines.append(f"{pad}Document")
        for child in node.children:
            _pretty_lines(child, depth + 1, lines)
    elif isinstance(node, TextNode):
        lines.append(f"{pad}Text {json.dumps(node.content)}")
    elif isinstance(node, VariableNode):
        extra = f":{node.type_hint}" if node.type_hint else ""
        if node.default is not None:
            extra += f" ?? {json.dumps(node.default)}"
        lines.append(f"{pad}Variable {node.name}{extra}")
    elif isinstance(node, ConditionalNode):
        lines.append(f"{pad}If {_format_condition(node.condition)}")
        for child in node.then_branch:
            _pretty_lines(child, depth + 1, lines)
        if node.else_branch:
            lines.append(f"{pad}Else")
            for child in node.else_branch:
                _pretty_lines(child, depth + 1, lines)
    elif isinstance(node, SectionNode):
        lines.append(f"{pad}Section {node.name}")
        for child in node.children:
            _pretty_lines(child, depth + 1, lines)
    elif isinstance(node, ImportNode):
        lines.append(f"{pad}Import {node.path}")
    elif isinstance(node, IncludeNode):
        lines.append(f"{pad}Include {node.path}")
    elif isinstance(node, ContextNode):
        lines.append(f"{pad}Context {node.path}")


def pretty_print(nodes: Node | Sequence[Node]) -> str:
    """Render a tree as an indented, human-readable outline.

    Example:
        >>> print(pretty_print(parse("Hi {{name}}").ast))  # doctest: +SKIP
        Document
          Text "Hi "
          Variable name
    """
    lines: list[str] = []
    roots = nodes if isinstance(nodes, Sequence) else [nodes]
    for node in roots:
        _pretty_lines(node, 0, lines)
    return "\n".join(lines)
