"""Plugins: bundles of custom operators with a load hook.

A plugin is loaded into an ``Echo`` instance with ``Echo.load_plugin``,
which registers its operators and then runs ``on_load``. Plugins can be
referenced on the command line as ``module:attribute``.

Example:
    ```python
    def is_email(value, _argument):
        return isinstance(value, str) and "@" in value

    validators = define_plugin(
        EchoPlugin(
            name="validators",
            version="1.0.0",
            operators={"email": Operator("email", is_email, kind="unary")},
        )
    )
    await echo.load_plugin(validators)
    ```
"""

from __future__ import annotations

import importlib
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from echo_pdk.dsl.operators import Operator, is_ai_operator
from echo_pdk.exceptions import PluginError

__all__ = [
    "EchoPlugin",
    "define_plugin",
    "import_plugin",
    "import_reference",
    "validate_plugin",
]

PluginHook = Callable[[], Awaitable[None] | None]


@dataclass(frozen=True, slots=True)
class EchoPlugin:
    """A named, versioned set of operators.

    Attributes:
        name: Plugin name.
        version: Plugin version string.
        operators: Operators keyed by template name. Values may be
            Operator instances or bare ``handler(value, argument)``
            callables.
        on_load: Hook run once after the operators are registered; may be
            async.
    """

    name: str
    version: str
    operators: Mapping[str, Operator | Callable[..., Any]] = field(
        default_factory=dict
    )
    on_load: PluginHook | None = None


def validate_plugin(plugin: Any) -> EchoPlugin:
    """Check a plugin's structure.

    Returns:
        The plugin, unchanged.

    Raises:
        PluginError: If it is not an EchoPlugin, has an empty name or
            version, or declares an operator that is not callable or whose
            name is reserved for AI judge conditions.
    """
    if not isinstance(plugin, EchoPlugin):
        raise PluginError(
            f"Plugin must be an EchoPlugin, got {type(plugin).__name__}"
        )
    if not plugin.name:
        raise PluginError("Plugin must have a name")
    if not plugin.version:
        raise PluginError("Plugin must have a version", plugin=plugin.name)
    for name, operator in plugin.operators.items():
        if not name.isidentifier() or is_ai_operator(name):
            raise PluginError(
                f"Plugin {plugin.name} declares invalid operator name {name!r}",
                plugin=plugin.name,
            )
        handler = operator.handler if isinstance(operator, Operator) else operator
        if not callable(handler):
            raise PluginError(
                f"Operator {name} of plugin {plugin.name} must be callable",
                plugin=plugin.name,
            )
    if plugin.on_load is not None and not callable(plugin.on_load):
        raise PluginError("Plugin on_load must be callable", plugin=plugin.name)
    return plugin


def define_plugin(plugin: EchoPlugin) -> EchoPlugin:
    """Validate at definition time, so mistakes surface on import."""
    return validate_plugin(plugin)


def import_reference(reference: str) -> Any:
    """Import the object named by a ``package.module:attribute`` reference.

    Raises:
        PluginError: If the reference is malformed or the import fails.
    """
    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name or not attribute:
        raise PluginError(
            f"Reference must look like 'module:attribute', got {reference!r}",
            plugin=reference,
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise PluginError(
            f"Cannot import module {module_name}: {e}", plugin=reference
        ) from e
    try:
        obj = getattr(module, attribute)
    except AttributeError as e:
        raise PluginError(
            f"Module {module_name} has no attribute {attribute}", plugin=reference
        ) from e
    return obj


def import_plugin(reference: str) -> EchoPlugin:
    """Import a plugin from a ``package.module:attribute`` reference.

    A callable attribute that is not itself a plugin is called with no
    arguments and must return one.

    Raises:
        PluginError: If the reference is malformed, the import fails, or
            the attribute is not a valid plugin.
    """
    plugin = import_reference(reference)
    if not isinstance(plugin, EchoPlugin) and callable(plugin):
        plugin = plugin()
    return validate_plugin(plugin)
