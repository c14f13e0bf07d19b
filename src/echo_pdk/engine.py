"""High-level facade: an ``Echo`` instance bundles configuration and
collaborators so applications can render templates with one call.

Example:
    ```python
    echo = create_echo(load_config(), completion_provider=client)
    prompt = await echo.render(template, {"name": "Alice"})
    ```
"""

from __future__ import annotations

import inspect
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from echo_pdk.ai_judge import JudgeCache, create_ai_judge
from echo_pdk.config import EchoConfig
from echo_pdk.constants import JUDGE_CACHE_TTL_SECONDS
from echo_pdk.context import PlpContextResolver, validate_context_path
from echo_pdk.dsl.ast import (
    AiJudge,
    Comparison,
    ConditionalNode,
    ContextNode,
    ContextPresence,
    IncludeNode,
    collect_sections,
    iter_conditions,
    iter_nodes,
)
from echo_pdk.dsl.evaluator import EvaluationResult, evaluate
from echo_pdk.dsl.imports import FileImportLoader
from echo_pdk.dsl.lexer import SourcePosition
from echo_pdk.dsl.operators import (
    Operator,
    OperatorHandler,
    get_operator,
    is_ai_operator,
)
from echo_pdk.dsl.parser import ParseError, ParseResult, parse
from echo_pdk.dsl.renderer import format_errors, render_template
from echo_pdk.exceptions import EchoSyntaxError, EchoValidationError
from echo_pdk.logging import get_logger
from echo_pdk.plugins import EchoPlugin, validate_plugin
from echo_pdk.protocols import (
    AIProvider,
    CompletionProvider,
    ContextResolver,
    ImportLoader,
)
from echo_pdk.providers.types import (
    ChatMessage,
    CompletionOptions,
    CompletionResponse,
)

__all__ = [
    "Echo",
    "RunPromptResult",
    "ValidationResult",
    "ValidationWarning",
    "create_echo",
    "run_prompt",
]

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationWarning:
    """A non-fatal problem found by ``Echo.validate``.

    Attributes:
        code: Machine-readable code, e.g. "UNKNOWN_OPERATOR".
        message: Human-readable description.
        location: Where the construct starts.
    """

    code: str
    message: str
    location: SourcePosition | None = None

    def __str__(self) -> str:
        if self.location is None:
            return self.message
        return f"{self.location.line}:{self.location.column}: {self.message}"


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of ``Echo.validate``.

    Attributes:
        valid: True when there are no errors. Warnings do not count.
        errors: Parse errors.
        warnings: Problems that only show up at evaluation time.
    """

    valid: bool
    errors: tuple[ParseError, ...] = ()
    warnings: tuple[ValidationWarning, ...] = ()


@dataclass(frozen=True, slots=True)
class RunPromptResult:
    """Rendered prompt and the completion it produced."""

    rendered_prompt: str
    response: CompletionResponse


class Echo:
    """Configured template engine.

    Attributes:
        config: Settings applied to every render.
        ai_judge: Judge for ``#ai_judge`` conditions, if any.
        context_resolver: Resolver for context references, if any.
        import_loader: Loader for ``[#IMPORT]`` documents.
    """

    def __init__(
        self,
        config: EchoConfig,
        *,
        ai_judge: AIProvider | None = None,
        context_resolver: ContextResolver | None = None,
        import_loader: ImportLoader | None = None,
    ) -> None:
        self.config = config
        self.ai_judge = ai_judge
        self.context_resolver = context_resolver
        self.import_loader = import_loader
        self._operators: dict[str, Operator] = {}
        self._plugins: list[EchoPlugin] = []

    @property
    def operators(self) -> Mapping[str, Operator]:
        """Custom operators registered on this instance."""
        return dict(self._operators)

    def register_operator(
        self,
        name: str,
        operator: Operator | OperatorHandler,
        *,
        description: str = "",
    ) -> None:
        """Register a custom condition operator, usable as ``#name(arg)``.

        A custom operator with a built-in's name replaces the built-in for
        this instance.

        Args:
            name: Operator name without the ``#``.
            operator: An Operator, or a ``handler(value, argument)`` callable
                (sync or async) returning a bool.
            description: Help text when a bare handler is given.

        Raises:
            ValueError: If the name is not a valid identifier or is reserved
                for AI judge conditions.
        """
        if not name.isidentifier():
            raise ValueError(f"Invalid operator name: {name!r}")
        if is_ai_operator(name):
            raise ValueError(
                f"Operator name {name!r} is reserved for AI judge conditions"
            )
        if not isinstance(operator, Operator):
            operator = Operator(name=name, handler=operator, description=description)
        self._operators[name] = operator
        logger.debug("operator_registered", operator=name)

    @property
    def plugins(self) -> tuple[EchoPlugin, ...]:
        """Plugins loaded into this instance, in load order."""
        return tuple(self._plugins)

    async def load_plugin(self, plugin: EchoPlugin) -> None:
        """Register a plugin's operators, then run its ``on_load`` hook.

        Plugin operators replace built-ins and earlier registrations of the
        same name.

        Raises:
            PluginError: If the plugin is malformed.
        """
        validate_plugin(plugin)
        for name, operator in plugin.operators.items():
            self.register_operator(name, operator)
        if plugin.on_load is not None:
            result = plugin.on_load()
            if inspect.isawaitable(result):
                await result
        self._plugins.append(plugin)
        logger.info(
            "plugin_loaded",
            plugin=plugin.name,
            version=plugin.version,
            operators=sorted(plugin.operators),
        )

    def parse(self, template: str) -> ParseResult:
        return parse(template)

    def validate(self, template: str) -> ValidationResult:
        """Check a template without evaluating it.

        Besides syntax errors, reports unknown operators, includes of
        sections that are never defined, invalid context paths, and AI
        conditions when no judge is configured.
        """
        parsed = parse(template)
        warnings: list[ValidationWarning] = []
        if parsed.ast is not None:
            warnings = self._collect_warnings(parsed)
        return ValidationResult(
            valid=parsed.success, errors=parsed.errors, warnings=tuple(warnings)
        )

    def _collect_warnings(self, parsed: ParseResult) -> list[ValidationWarning]:
        assert parsed.ast is not None
        warnings: list[ValidationWarning] = []
        sections = collect_sections(parsed.ast)

        def check_context(path: str, location: SourcePosition) -> None:
            try:
                validate_context_path(path)
            except EchoValidationError as e:
                warnings.append(
                    ValidationWarning("INVALID_CONTEXT_PATH", e.message, location)
                )

        for node in iter_nodes(parsed.ast):
            if isinstance(node, IncludeNode):
                is_path = "/" in node.path or "." in node.path
                if node.path not in sections and not is_path:
                    warnings.append(
                        ValidationWarning(
                            "UNDEFINED_SECTION",
                            f"Include of undefined section: {node.path}",
                            node.location.start,
                        )
                    )
            elif isinstance(node, ContextNode):
                check_context(node.path, node.location.start)
            elif isinstance(node, ConditionalNode):
                for expr in iter_conditions(node.condition):
                    if isinstance(expr, Comparison) and (
                        get_operator(expr.operator, self._operators) is None
                    ):
                        warnings.append(
                            ValidationWarning(
                                "UNKNOWN_OPERATOR",
                                f"Unknown operator: #{expr.operator}",
                                expr.location.start,
                            )
                        )
                    elif isinstance(expr, AiJudge) and self.ai_judge is None:
                        warnings.append(
                            ValidationWarning(
                                "AI_JUDGE_UNCONFIGURED",
                                "AI condition used but no AI provider is configured",
                                expr.location.start,
                            )
                        )
                    elif isinstance(expr, ContextPresence):
                        check_context(expr.path, expr.location.start)
        return sorted(warnings, key=lambda w: w.location.offset if w.location else -1)

    async def evaluate(
        self, template: str, variables: Mapping[str, Any] | None = None
    ) -> EvaluationResult:
        """Parse and evaluate, returning the pruned tree and bindings.

        Raises:
            EchoSyntaxError: If the template has parse errors.
        """
        parsed = parse(template)
        if not parsed.success or parsed.ast is None:
            raise EchoSyntaxError(
                "Template has syntax errors:\n"
                + format_errors(parsed.errors, template),
                parsed.errors,
            )
        return await evaluate(
            parsed.ast,
            variables,
            self.config,
            ai_judge=self.ai_judge,
            context_resolver=self.context_resolver,
            operators=self._operators,
            import_loader=self.import_loader,
        )

    async def render(
        self,
        template: str,
        variables: Mapping[str, Any] | None = None,
        *,
        trim: bool | None = None,
        collapse_newlines: bool | None = None,
    ) -> str:
        """Render template source to the final prompt.

        ``trim`` and ``collapse_newlines`` default to the config values.
        """
        return await render_template(
            template,
            variables,
            self.config,
            ai_judge=self.ai_judge,
            context_resolver=self.context_resolver,
            operators=self._operators,
            import_loader=self.import_loader,
            trim=trim,
            collapse_newlines=collapse_newlines,
        )


def create_echo(
    config: EchoConfig | None = None,
    *,
    completion_provider: CompletionProvider | None = None,
    ai_judge: AIProvider | None = None,
    context_resolver: ContextResolver | None = None,
    import_loader: ImportLoader | None = None,
    judge_cache: JudgeCache | None = None,
) -> Echo:
    """Create an Echo instance, filling in collaborators from configuration.

    Args:
        config: Settings. Defaults to ``EchoConfig()`` (environment and YAML
            files are read).
        completion_provider: LLM back end for the AI judge.
        ai_judge: Explicit judge. Overrides the one built from
            ``completion_provider`` and ``config.ai_provider``.
        context_resolver: Explicit resolver. Overrides the PLP resolver
            built from ``config.context_store``.
        import_loader: Explicit loader. Defaults to a FileImportLoader
            rooted at ``config.import_root`` or the working directory.
        judge_cache: Cache for the built judge. Defaults to a cache with
            ``config.judge_cache_ttl``, or the process-wide cache when the
            TTL is the default.
    """
    config = config if config is not None else EchoConfig()

    if ai_judge is None and completion_provider is not None and config.ai_provider:
        if judge_cache is None and config.judge_cache_ttl != JUDGE_CACHE_TTL_SECONDS:
            judge_cache = JudgeCache(ttl=config.judge_cache_ttl)
        ai_judge = create_ai_judge(config.ai_provider, completion_provider, judge_cache)
        logger.debug(
            "ai_judge_configured",
            provider=config.ai_provider.type,
            model=config.ai_provider.model,
        )

    if context_resolver is None and config.context_store is not None:
        context_resolver = PlpContextResolver(config.context_store)
        logger.debug(
            "context_resolver_configured", server=config.context_store.server_url
        )

    if import_loader is None:
        import_loader = FileImportLoader(root=config.import_root or Path.cwd())

    return Echo(
        config,
        ai_judge=ai_judge,
        context_resolver=context_resolver,
        import_loader=import_loader,
    )


async def run_prompt(
    template: str,
    variables: Mapping[str, Any] | None,
    provider: CompletionProvider,
    *,
    config: EchoConfig | None = None,
    system_message: str | None = None,
    model: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    ai_judge: AIProvider | None = None,
    context_resolver: ContextResolver | None = None,
) -> RunPromptResult:
    """Render a template and send the result to an LLM in one call.

    Args:
        template: Template source.
        variables: Variable bindings.
        provider: Completion back end that receives the rendered prompt.
        config: Settings. Defaults to ``EchoConfig()``.
        system_message: Optional system message sent before the prompt.
        model: Model override. Defaults to the provider's own default.
        temperature: Sampling temperature override.
        max_tokens: Output token limit.
        ai_judge: Judge for templates with AI conditions.
        context_resolver: Resolver for templates with context references.

    Returns:
        RunPromptResult with the rendered prompt and the response.

    Raises:
        EchoSyntaxError: If the template has parse errors.

    Example:
        ```python
        result = await run_prompt(
            "Recommend a {{genre}} movie.", {"genre": "Comedy"}, client
        )
        print(result.rendered_prompt)  # Recommend a Comedy movie.
        ```
    """
    config = config if config is not None else EchoConfig()
    rendered = await render_template(
        template,
        variables,
        config,
        ai_judge=ai_judge,
        context_resolver=context_resolver,
    )

    messages: list[ChatMessage] = []
    if system_message:
        messages.append(ChatMessage(role="system", content=system_message))
    messages.append(ChatMessage(role="user", content=rendered))

    options = CompletionOptions(
        model=model, temperature=temperature, max_tokens=max_tokens
    )
    logger.debug("run_prompt", model=model, prompt_chars=len(rendered))
    response = await provider.complete(messages, options)
    return RunPromptResult(rendered_prompt=rendered, response=response)
