"""echo-pdk: a prompt templating language with AI-judged conditions.

Templates interpolate variables, branch on conditions (including yes/no
questions answered by an LLM), splice in sections, imported documents and
externally stored context, and render to a plain prompt string.

Example:
    ```python
    from echo_pdk import render_template

    prompt = await render_template(
        "Hello {{name}}![#IF {{vip}}] Welcome back.[END IF]",
        {"name": "Alice", "vip": True},
    )
    ```
"""

from __future__ import annotations

from echo_pdk.ai_judge import (
    CachedAIJudge,
    JudgeCache,
    LLMJudge,
    create_ai_judge,
    create_cache_key,
    default_judge_cache,
)
from echo_pdk.config import ContextStoreConfig, EchoConfig, load_config
from echo_pdk.context import (
    ContextFailure,
    ContextResolveResult,
    PlpContextResolver,
    ResolvedContent,
    StaticContextResolver,
)
from echo_pdk.dsl.ast import Document, NodeVisitor, pretty_print
from echo_pdk.dsl.evaluator import EvaluationResult, evaluate
from echo_pdk.dsl.imports import FileImportLoader, StaticImportLoader
from echo_pdk.dsl.lexer import Token, TokenKind, tokenize
from echo_pdk.dsl.operators import Operator
from echo_pdk.dsl.parser import ParseError, ParseResult, parse
from echo_pdk.dsl.renderer import format_errors, render, render_template
from echo_pdk.engine import (
    Echo,
    RunPromptResult,
    ValidationResult,
    create_echo,
    run_prompt,
)
from echo_pdk.exceptions import (
    AIJudgeError,
    ConfigError,
    ContextResolutionError,
    EchoError,
    EchoSyntaxError,
    EchoValidationError,
    EvalLoadError,
    EvaluationError,
    EvaluationTimeoutError,
    PluginError,
    RenderError,
    ResolutionError,
)
from echo_pdk.plugins import EchoPlugin, define_plugin, import_plugin
from echo_pdk.providers import (
    ChatMessage,
    CompletionOptions,
    CompletionResponse,
    ProviderConfig,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Pipeline
    "tokenize",
    "parse",
    "evaluate",
    "render",
    "render_template",
    "format_errors",
    "pretty_print",
    "Token",
    "TokenKind",
    "ParseError",
    "ParseResult",
    "Document",
    "NodeVisitor",
    "Operator",
    "EvaluationResult",
    # Facade
    "Echo",
    "create_echo",
    "run_prompt",
    "RunPromptResult",
    "ValidationResult",
    # Plugins
    "EchoPlugin",
    "define_plugin",
    "import_plugin",
    # Collaborators
    "CachedAIJudge",
    "JudgeCache",
    "LLMJudge",
    "create_ai_judge",
    "create_cache_key",
    "default_judge_cache",
    "ContextFailure",
    "ContextResolveResult",
    "PlpContextResolver",
    "ResolvedContent",
    "StaticContextResolver",
    "FileImportLoader",
    "StaticImportLoader",
    "ChatMessage",
    "CompletionOptions",
    "CompletionResponse",
    "ProviderConfig",
    # Configuration
    "ContextStoreConfig",
    "EchoConfig",
    "load_config",
    # Exceptions
    "EchoError",
    "ConfigError",
    "EchoSyntaxError",
    "EchoValidationError",
    "EvaluationError",
    "RenderError",
    "ResolutionError",
    "ContextResolutionError",
    "AIJudgeError",
    "EvaluationTimeoutError",
    "EvalLoadError",
    "PluginError",
]
