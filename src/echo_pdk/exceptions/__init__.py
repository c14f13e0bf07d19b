"""echo-pdk exception hierarchy.

All exceptions can be imported from this package:
    from echo_pdk.exceptions import EchoError, EvaluationError, RenderError
"""

from __future__ import annotations

# Base exception
from echo_pdk.exceptions.base import EchoError

# Configuration exceptions
from echo_pdk.exceptions.config import ConfigError

# Eval and plugin exceptions
from echo_pdk.exceptions.eval import EvalLoadError, PluginError

# Resolution exceptions
from echo_pdk.exceptions.resolution import (
    AIJudgeError,
    ContextResolutionError,
    EvaluationTimeoutError,
    ResolutionError,
)

# Template exceptions
from echo_pdk.exceptions.template import (
    EchoSyntaxError,
    EchoValidationError,
    EvaluationError,
    RenderError,
)

__all__ = [
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
