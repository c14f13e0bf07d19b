"""Renderer: turns an evaluated document into the final prompt string.

``render()`` is a pure function of its inputs. It expects a tree from the
evaluator (no ConditionalNode left) and the context-augmented bindings from
``EvaluationResult.variables``. ``render_template()`` runs the whole
pipeline for callers that start from source text.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping, Sequence
from typing import Any

from echo_pdk.config import EchoConfig
from echo_pdk.context.resolver import get_resolved_context
from echo_pdk.dsl.ast import (
    ConditionalNode,
    ContextNode,
    Document,
    ImportNode,
    IncludeNode,
    Node,
    SectionNode,
    TextNode,
    VariableNode,
)
from echo_pdk.dsl.evaluator import MISSING, evaluate, lookup_variable
from echo_pdk.dsl.operators import Operator
from echo_pdk.dsl.parser import ParseError, parse
from echo_pdk.exceptions import EchoSyntaxError, RenderError
from echo_pdk.logging import get_logger
from echo_pdk.protocols import AIProvider, ContextResolver, ImportLoader

__all__ = [
    "render",
    "render_template",
    "format_value",
    "format_errors",
    "collapse_blank_lines",
]

logger = get_logger(__name__)

_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def collapse_blank_lines(text: str) -> str:
    """Collapse runs of three or more newlines to exactly two."""
    return _EXCESS_NEWLINES.sub("\n\n", text)


def _format_number(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    try:
        return _format_number(float(str(value).strip()))
    except ValueError:
        return str(value)


def format_value(value: Any, type_hint: str | None = None) -> str:
    """Stringify a bound value for interpolation.

    Args:
        value: The bound value.
        type_hint: Optional hint from ``{{name:hint}}``.

    Returns:
        The text to splice into the prompt.
    """
    if value is None:
        return ""
    if type_hint == "json":
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    if type_hint == "boolean":
        if isinstance(value, str):
            falsy = value.strip().lower() in ("", "false", "0", "no")
            return "false" if falsy else "true"
        return "true" if value else "false"
    if type_hint == "number":
        return _format_number(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    if isinstance(value, Sequence):
        return ", ".join(format_value(item) for item in value)
    return str(value)


class _Renderer:
    def __init__(self, context: Mapping[str, Any], config: EchoConfig) -> None:
        self.context = context
        self.config = config
        self.parts: list[str] = []

    def render_nodes(self, nodes: Sequence[Node]) -> None:
        for node in nodes:
            self.render_node(node)

    def render_node(self, node: Node) -> None:
        if isinstance(node, TextNode):
            self.parts.append(node.content)
        elif isinstance(node, VariableNode):
            self.parts.append(self.render_variable(node))
        elif isinstance(node, SectionNode | Document):
            self.render_nodes(node.children)
        elif isinstance(node, ContextNode):
            self.parts.append(self.render_context(node))
        elif isinstance(node, ImportNode | IncludeNode):
            if self.config.strict:
                raise RenderError(
                    f"Unresolved {type(node).__name__}: {node.path}",
                    node_type=type(node).__name__,
                )
            logger.debug("render_skip_unresolved", path=node.path)
        elif isinstance(node, ConditionalNode):
            raise RenderError(
                "Cannot render an unevaluated conditional; evaluate the "
                "document first",
                node_type="ConditionalNode",
            )
        else:
            raise RenderError(
                f"Unknown node type: {type(node).__name__}",
                node_type=type(node).__name__,
            )

    def render_variable(self, node: VariableNode) -> str:
        value = lookup_variable(node.name, self.context)
        if value is not MISSING:
            return format_value(value, node.type_hint)
        if node.default is not None:
            return node.default
        if self.config.raises_on_missing_variable:
            raise RenderError(
                f"Missing variable: {node.name}", node_type="VariableNode"
            )
        return ""

    def render_context(self, node: ContextNode) -> str:
        result = get_resolved_context(self.context, node.path)
        if result is not None and result.success and result.content is not None:
            return result.content.as_text()
        if self.config.strict:
            reason = result.error if result is not None else "not resolved"
            raise RenderError(
                f"Context {node.path} unavailable: {reason}", node_type="ContextNode"
            )
        return f"[CONTEXT: {node.path}]"


def render(
    ast: Document | Sequence[Node],
    *,
    context: Mapping[str, Any] | None = None,
    config: EchoConfig | None = None,
    trim: bool = False,
    collapse_newlines: bool = False,
) -> str:
    """Render an evaluated document to a string.

    Args:
        ast: Evaluated document (or node sequence).
        context: Bindings, normally ``EvaluationResult.variables``.
        config: Settings for strictness and the missing-variable policy.
        trim: Strip leading and trailing whitespace.
        collapse_newlines: Collapse three or more newlines into two.

    Raises:
        RenderError: Missing variable under the "error" policy, a remaining
            ConditionalNode, or an unresolved node in strict mode.

    Example:
        >>> render(parse("Hello {{name}}!").ast, context={"name": "World"})
        'Hello World!'
    """
    config = config if config is not None else EchoConfig()
    renderer = _Renderer(context or {}, config)
    if isinstance(ast, Document):
        renderer.render_nodes(ast.children)
    else:
        renderer.render_nodes(ast)
    output = "".join(renderer.parts)
    if collapse_newlines:
        output = collapse_blank_lines(output)
    if trim:
        output = output.strip()
    return output


def format_errors(errors: Sequence[ParseError], source: str | None = None) -> str:
    """Format parse errors for display, with the offending line when known.

    Example output::

        Line 2, column 5: Unclosed [#IF] block (missing [END IF])
            [#IF {{x}}]
            ^
    """
    lines = source.splitlines() if source is not None else []
    out: list[str] = []
    for error in errors:
        if error.location is None:
            out.append(error.message)
            continue
        line, column = error.location.line, error.location.column
        out.append(f"Line {line}, column {column}: {error.message}")
        if 0 < line <= len(lines):
            out.append(f"    {lines[line - 1]}")
            out.append("    " + " " * (column - 1) + "^")
    return "\n".join(out)


async def render_template(
    template: str,
    variables: Mapping[str, Any] | None = None,
    config: EchoConfig | None = None,
    *,
    ai_judge: AIProvider | None = None,
    context_resolver: ContextResolver | None = None,
    operators: Mapping[str, Operator] | None = None,
    import_loader: ImportLoader | None = None,
    trim: bool | None = None,
    collapse_newlines: bool | None = None,
    origin: str | None = None,
) -> str:
    """Parse, evaluate and render template source in one call.

    ``trim`` and ``collapse_newlines`` default to the config values.

    Raises:
        EchoSyntaxError: With every parse error, formatted in the message.
    """
    config = config if config is not None else EchoConfig()
    parsed = parse(template)
    if not parsed.success or parsed.ast is None:
        raise EchoSyntaxError(
            "Template has syntax errors:\n" + format_errors(parsed.errors, template),
            parsed.errors,
        )
    result = await evaluate(
        parsed.ast,
        variables,
        config,
        ai_judge=ai_judge,
        context_resolver=context_resolver,
        operators=operators,
        import_loader=import_loader,
        origin=origin,
    )
    return render(
        result.ast,
        context=result.variables,
        config=config,
        trim=config.trim if trim is None else trim,
        collapse_newlines=(
            config.collapse_newlines if collapse_newlines is None else collapse_newlines
        ),
    )
