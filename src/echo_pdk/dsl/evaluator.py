"""Evaluator: reduces a parsed template to the branches actually taken.

Evaluation runs in two phases:

1. Context pre-resolution. Every context path anywhere in the document
   (both branches of every conditional, sections, inline references) is
   collected, validated locally, and resolved in a single ``resolve_batch``
   call. Results are merged into the bindings under ``@context``. Failures
   are recorded as issues and only abort evaluation if a surviving node or
   an evaluated condition actually needs that path.
2. Tree reduction. Nodes are visited depth-first in document order. Each
   conditional evaluates its condition and only the chosen branch is
   visited, so AI-judge predicates in untaken branches never run. AI-judge
   calls are the only suspension points of this phase.

Evaluation is atomic: any failure raises and no partially reduced tree is
returned. The input tree is never modified; untouched subtrees are reused
by reference in the result.
"""

from __future__ import annotations

import asyncio
import inspect
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from echo_pdk.config import EchoConfig
from echo_pdk.constants import CONTEXT_BINDING_KEY, TEMPLATE_EXTENSION
from echo_pdk.context.resolver import (
    ContextFailure,
    ContextResolveResult,
    apply_resolved_context,
    collect_context_paths,
    get_resolved_context,
    resolve_context_paths,
)
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
    VariableRef,
    collect_sections,
)
from echo_pdk.dsl.operators import Operator, get_operator
from echo_pdk.dsl.parser import parse
from echo_pdk.exceptions import (
    AIJudgeError,
    ContextResolutionError,
    EchoError,
    EchoSyntaxError,
    EchoValidationError,
    EvaluationError,
    EvaluationTimeoutError,
)
from echo_pdk.logging import get_logger
from echo_pdk.protocols import AIProvider, ContextResolver, ImportLoader

__all__ = [
    "MISSING",
    "EvaluationContext",
    "EvaluationIssue",
    "EvaluationResult",
    "Evaluator",
    "evaluate",
    "lookup_variable",
    "resolve_variable",
]

logger = get_logger(__name__)

_PATH_SEGMENT = re.compile(r"\[(\d+)\]|([^.\[\]]+)")


class _Missing:
    """Sentinel for an unbound variable (distinct from a bound None)."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def lookup_variable(name: str, variables: Mapping[str, Any]) -> Any:
    """Resolve a dotted/indexed path such as ``user.name`` or ``items[0]``.

    Returns:
        The bound value, or MISSING if any segment is absent.
    """
    if name in variables:
        return variables[name]
    current: Any = variables
    for index, key in _PATH_SEGMENT.findall(name):
        if key:
            if isinstance(current, Mapping) and key in current:
                current = current[key]
            else:
                return MISSING
        else:
            position = int(index)
            if (
                isinstance(current, Sequence)
                and not isinstance(current, str)
                and position < len(current)
            ):
                current = current[position]
            else:
                return MISSING
    return current


def resolve_variable(name: str, variables: Mapping[str, Any]) -> Any:
    """Like ``lookup_variable`` but returns None for a missing variable."""
    value = lookup_variable(name, variables)
    return None if value is MISSING else value


def _public_names(variables: Mapping[str, Any]) -> tuple[str, ...]:
    return tuple(k for k in variables if k != CONTEXT_BINDING_KEY)


def _same_nodes(a: Sequence[Node], b: Sequence[Node]) -> bool:
    return len(a) == len(b) and all(x is y for x, y in zip(a, b, strict=True))


@dataclass(frozen=True, slots=True)
class EvaluationIssue:
    """A non-fatal problem noticed during evaluation.

    Attributes:
        kind: Short category, e.g. "context", "include", "import".
        message: Human-readable description.
        path: Context path, section name or import path involved.
    """

    kind: str
    message: str
    path: str | None = None


@dataclass
class EvaluationContext:
    """Everything one evaluation needs.

    Attributes:
        variables: Bindings, augmented with ``@context`` after phase one.
        config: Strictness and timeout settings.
        ai_judge: Judge for AiJudge predicates.
        context_resolver: Resolver for context references.
        operators: Custom operators, consulted before the built-ins.
        sections: Section definitions visible to ``[#INCLUDE]``.
        import_loader: Loader for ``[#IMPORT]`` documents.
        issues: Non-fatal problems collected so far.
    """

    variables: dict[str, Any]
    config: EchoConfig
    ai_judge: AIProvider | None = None
    context_resolver: ContextResolver | None = None
    operators: Mapping[str, Operator] = field(default_factory=dict)
    sections: dict[str, SectionNode] = field(default_factory=dict)
    import_loader: ImportLoader | None = None
    issues: list[EvaluationIssue] = field(default_factory=list)

    @property
    def strict(self) -> bool:
        return self.config.strict


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """A fully evaluated template.

    Attributes:
        ast: Pruned document: no ConditionalNode remains, includes and
            imports are spliced in.
        variables: Bindings to render against, including ``@context``.
        sections: Section definitions by name.
        issues: Non-fatal problems (e.g. context that failed to resolve but
            was never needed).
    """

    ast: Document
    variables: Mapping[str, Any]
    sections: Mapping[str, SectionNode]
    issues: tuple[EvaluationIssue, ...] = ()


class Evaluator:
    """Two-phase evaluator for one template and one set of bindings.

    Example:
        ```python
        ctx = EvaluationContext(variables={"flag": True}, config=EchoConfig())
        document = await Evaluator(ctx).run(parse(source).ast)
        ```
    """

    def __init__(self, context: EvaluationContext, origin: str | None = None) -> None:
        self.context = context
        self._origin_stack: list[str | None] = [origin]
        self._include_stack: list[str] = []

    async def run(self, document: Document) -> Document:
        await self.prefetch_context(document)
        return await self.evaluate_document(document)

    # -- Phase 1 -----------------------------------------------------------

    async def prefetch_context(self, document: Document) -> None:
        """Resolve every not-yet-resolved context path in one batch."""
        paths = [
            path
            for path in collect_context_paths(document)
            if get_resolved_context(self.context.variables, path) is None
        ]
        if not paths:
            return
        results = await resolve_context_paths(self.context.context_resolver, paths)
        for path, result in results.items():
            if not result.success:
                self.context.issues.append(
                    EvaluationIssue(
                        kind="context",
                        message=result.error or "Context could not be resolved",
                        path=path,
                    )
                )
        self.context.variables = apply_resolved_context(
            self.context.variables, results
        )

    async def _context_result(self, path: str) -> ContextResolveResult:
        result = get_resolved_context(self.context.variables, path)
        if result is None:
            results = await resolve_context_paths(
                self.context.context_resolver, [path]
            )
            self.context.variables = apply_resolved_context(
                self.context.variables, results
            )
            result = results[path]
        return result

    @staticmethod
    def _raise_for_context(result: ContextResolveResult) -> None:
        message = result.error or f"Context could not be resolved: {result.path}"
        if result.failure is ContextFailure.INVALID_PATH:
            raise EchoValidationError(message, result.path)
        raise ContextResolutionError(
            message,
            result.path,
            result.failure.value if result.failure is not None else None,
        )

    # -- Phase 2: nodes ----------------------------------------------------

    async def evaluate_document(self, document: Document) -> Document:
        for name, section in collect_sections(document).items():
            self.context.sections.setdefault(name, section)
        children = await self.evaluate_nodes(document.children)
        if _same_nodes(children, document.children):
            return document
        return replace(document, children=children)

    async def evaluate_nodes(self, nodes: Sequence[Node]) -> tuple[Node, ...]:
        result: list[Node] = []
        for node in nodes:
            result.extend(await self.evaluate_node(node))
        return tuple(result)

    async def evaluate_node(self, node: Node) -> tuple[Node, ...]:
        if isinstance(node, ConditionalNode):
            taken = await self.evaluate_condition(node.condition)
            branch = node.then_branch if taken else node.else_branch
            return await self.evaluate_nodes(branch)
        if isinstance(node, SectionNode):
            children = await self.evaluate_nodes(node.children)
            if _same_nodes(children, node.children):
                return (node,)
            return (replace(node, children=children),)
        if isinstance(node, IncludeNode):
            return await self.evaluate_include(node)
        if isinstance(node, ImportNode):
            return await self.evaluate_import(node, node.path)
        if isinstance(node, ContextNode):
            if self.context.strict:
                result = await self._context_result(node.path)
                if not result.success:
                    self._raise_for_context(result)
            return (node,)
        if isinstance(node, Document):
            return (await self.evaluate_document(node),)
        return (node,)

    async def evaluate_include(self, node: IncludeNode) -> tuple[Node, ...]:
        section = self.context.sections.get(node.path)
        if section is not None:
            if node.path in self._include_stack:
                chain = " -> ".join([*self._include_stack, node.path])
                raise EvaluationError(f"Circular include: {chain}")
            self._include_stack.append(node.path)
            try:
                return await self.evaluate_nodes(section.children)
            finally:
                self._include_stack.pop()

        looks_like_file = "/" in node.path or node.path.endswith(TEMPLATE_EXTENSION)
        if looks_like_file and self.context.import_loader is not None:
            return await self.evaluate_import(node, node.path)

        message = f"Section not found: {node.path}"
        if self.context.strict:
            raise EvaluationError(message)
        logger.warning("include_unresolved", section=node.path)
        self.context.issues.append(
            EvaluationIssue(kind="include", message=message, path=node.path)
        )
        return (node,)

    async def evaluate_import(
        self, node: ImportNode | IncludeNode, path: str
    ) -> tuple[Node, ...]:
        loader = self.context.import_loader
        if loader is None:
            message = f"No import loader configured for {path!r}"
            if self.context.strict:
                raise EvaluationError(message)
            self.context.issues.append(
                EvaluationIssue(kind="import", message=message, path=path)
            )
            return (node,)

        key, source = await asyncio.to_thread(
            loader.load, path, relative_to=self._origin_stack[-1]
        )
        if key in self._origin_stack:
            chain = " -> ".join(str(o) for o in [*self._origin_stack[1:], key])
            raise EvaluationError(f"Circular import: {chain}")

        parsed = parse(source)
        if not parsed.success or parsed.ast is None:
            details = "; ".join(str(e) for e in parsed.errors)
            raise EchoSyntaxError(
                f"Syntax errors in imported template {path!r}: {details}",
                parsed.errors,
            )

        logger.debug("import_loaded", path=path, key=key)
        self._origin_stack.append(key)
        try:
            await self.prefetch_context(parsed.ast)
            imported = await self.evaluate_document(parsed.ast)
        finally:
            self._origin_stack.pop()
        return imported.children

    # -- Phase 2: conditions -----------------------------------------------

    def _unknown_variable(self, name: str) -> bool:
        if self.context.strict:
            raise EvaluationError(
                f"Unknown variable '{name}' in condition",
                context_vars=_public_names(self.context.variables),
            )
        logger.debug("condition_variable_missing", variable=name)
        return False

    async def evaluate_condition(self, expr: ConditionExpr) -> bool:
        """Evaluate a condition; And/Or short-circuit left to right."""
        if isinstance(expr, BoolLiteral):
            return expr.value
        if isinstance(expr, VariableRef):
            value = lookup_variable(expr.name, self.context.variables)
            if value is MISSING:
                return self._unknown_variable(expr.name)
            return bool(value)
        if isinstance(expr, Not):
            return not await self.evaluate_condition(expr.operand)
        if isinstance(expr, And):
            for operand in expr.operands:
                if not await self.evaluate_condition(operand):
                    return False
            return True
        if isinstance(expr, Or):
            for operand in expr.operands:
                if await self.evaluate_condition(operand):
                    return True
            return False
        if isinstance(expr, Comparison):
            return await self.evaluate_comparison(expr)
        if isinstance(expr, AiJudge):
            return await self.evaluate_ai_judge(expr)
        if isinstance(expr, ContextPresence):
            result = await self._context_result(expr.path)
            if result.success:
                return True
            if result.failure is ContextFailure.NOT_FOUND:
                return False
            self._raise_for_context(result)
        raise EvaluationError(f"Unsupported condition: {type(expr).__name__}")

    async def evaluate_comparison(self, expr: Comparison) -> bool:
        operator = get_operator(expr.operator, self.context.operators)
        if operator is None:
            if self.context.strict:
                raise EvaluationError(f"Unknown operator '#{expr.operator}'")
            logger.warning("unknown_operator", operator=expr.operator)
            return False

        value = lookup_variable(expr.variable.name, self.context.variables)
        if value is MISSING:
            if expr.operator == "exists":
                return False
            if self.context.strict:
                return self._unknown_variable(expr.variable.name)
            value = None

        try:
            result = operator.handler(value, expr.argument)
            if inspect.isawaitable(result):
                result = await result
        except EchoError:
            raise
        except Exception as e:
            raise EvaluationError(f"Operator '#{expr.operator}' failed: {e}") from e
        return bool(result)

    async def evaluate_ai_judge(self, expr: AiJudge) -> bool:
        value = lookup_variable(expr.value.name, self.context.variables)
        if value is MISSING:
            return self._unknown_variable(expr.value.name)
        return await self._ask_judge(value, expr.question)

    async def _ask_judge(self, value: Any, question: str) -> bool:
        judge = self.context.ai_judge
        if judge is None:
            raise AIJudgeError(
                "AI judge condition requires an AI provider; "
                "configure ai_provider or pass ai_judge",
                question=question,
            )
        try:
            return bool(await judge.evaluate(value, question))
        except EchoError:
            raise
        except Exception as e:
            raise AIJudgeError(f"AI judge failed: {e}", question=question) from e


async def evaluate(
    ast: Document,
    variables: Mapping[str, Any] | None = None,
    config: EchoConfig | None = None,
    *,
    ai_judge: AIProvider | None = None,
    context_resolver: ContextResolver | None = None,
    operators: Mapping[str, Operator] | None = None,
    import_loader: ImportLoader | None = None,
    timeout: float | None = None,
    origin: str | None = None,
) -> EvaluationResult:
    """Evaluate a parsed template against variable bindings.

    Args:
        ast: Document from ``parse()``. Never modified.
        variables: Variable bindings.
        config: Settings. Defaults to ``EchoConfig()``.
        ai_judge: Judge for ``#ai_judge`` conditions.
        context_resolver: Resolver for context references.
        operators: Custom operators by name.
        import_loader: Loader for ``[#IMPORT]`` documents.
        timeout: Bound in seconds for the whole call. Defaults to
            ``config.evaluation_timeout``.
        origin: Key of the template's own document, used to resolve
            relative imports and detect import cycles.

    Returns:
        EvaluationResult with the pruned tree and augmented bindings.

    Raises:
        EvaluationError: Unknown variable or operator (strict), circular
            include or import.
        ResolutionError: Provider or context failure that was needed.
        EvaluationTimeoutError: The timeout elapsed.
    """
    config = config if config is not None else EchoConfig()
    if timeout is None:
        timeout = config.evaluation_timeout

    context = EvaluationContext(
        variables=dict(variables or {}),
        config=config,
        ai_judge=ai_judge,
        context_resolver=context_resolver,
        operators=dict(operators or {}),
        import_loader=import_loader,
    )
    evaluator = Evaluator(context, origin=origin)
    try:
        async with asyncio.timeout(timeout):
            document = await evaluator.run(ast)
    except TimeoutError as e:
        logger.info("evaluation_timeout", timeout=timeout)
        raise EvaluationTimeoutError(
            f"Evaluation exceeded {timeout}s", timeout_seconds=timeout or 0.0
        ) from e
    except EchoError as e:
        logger.info("evaluation_aborted", error_type=type(e).__name__, error=e.message)
        raise

    return EvaluationResult(
        ast=document,
        variables=context.variables,
        sections=dict(context.sections),
        issues=tuple(context.issues),
    )
