"""Tests for plugin validation, import and loading."""

from __future__ import annotations

import sys
import types

import pytest

from echo_pdk import Echo
from echo_pdk.config import EchoConfig
from echo_pdk.dsl.operators import Operator
from echo_pdk.exceptions import PluginError
from echo_pdk.plugins import (
    EchoPlugin,
    define_plugin,
    import_plugin,
    import_reference,
    validate_plugin,
)


def is_email(value, _argument) -> bool:
    return isinstance(value, str) and "@" in value


VALIDATORS = EchoPlugin(
    name="validators",
    version="1.0.0",
    operators={
        "email": Operator("email", is_email, kind="unary"),
        "longer_than": lambda value, argument: len(str(value)) > int(argument),
    },
)


@pytest.fixture
def plugin_module(monkeypatch: pytest.MonkeyPatch) -> types.ModuleType:
    """Importable module ``echo_test_plugins`` holding plugin objects."""
    module = types.ModuleType("echo_test_plugins")
    module.validators = VALIDATORS
    module.make_validators = lambda: VALIDATORS
    module.not_a_plugin = 42
    monkeypatch.setitem(sys.modules, "echo_test_plugins", module)
    return module


class TestValidatePlugin:
    def test_valid(self) -> None:
        assert validate_plugin(VALIDATORS) is VALIDATORS
        assert define_plugin(VALIDATORS) is VALIDATORS

    @pytest.mark.parametrize(
        ("plugin", "message"),
        [
            ({"name": "x"}, "must be an EchoPlugin, got dict"),
            (EchoPlugin(name="", version="1"), "must have a name"),
            (EchoPlugin(name="p", version=""), "must have a version"),
            (
                EchoPlugin(name="p", version="1", operators={"bad-name": is_email}),
                "invalid operator name 'bad-name'",
            ),
            (
                EchoPlugin(name="p", version="1", operators={"ai_judge": is_email}),
                "invalid operator name 'ai_judge'",
            ),
            (
                EchoPlugin(name="p", version="1", operators={"x": "not callable"}),
                "Operator x of plugin p must be callable",
            ),
            (
                EchoPlugin(name="p", version="1", on_load="nope"),
                "on_load must be callable",
            ),
        ],
    )
    def test_invalid(self, plugin: object, message: str) -> None:
        with pytest.raises(PluginError, match=message):
            validate_plugin(plugin)

    def test_error_names_the_plugin(self) -> None:
        with pytest.raises(PluginError) as exc_info:
            validate_plugin(EchoPlugin(name="p", version=""))
        assert exc_info.value.plugin == "p"


class TestImport:
    def test_import_reference(self) -> None:
        assert import_reference("echo_pdk.plugins:EchoPlugin") is EchoPlugin

    @pytest.mark.parametrize(
        ("reference", "message"),
        [
            ("echo_pdk.plugins", "must look like 'module:attribute'"),
            (":attr", "must look like 'module:attribute'"),
            ("echo_pdk.plugins:", "must look like 'module:attribute'"),
            ("no_such_module_xyz:thing", "Cannot import module no_such_module_xyz"),
            ("echo_pdk.plugins:missing", "has no attribute missing"),
        ],
    )
    def test_bad_reference(self, reference: str, message: str) -> None:
        with pytest.raises(PluginError, match=message) as exc_info:
            import_reference(reference)
        assert exc_info.value.plugin == reference

    def test_import_plugin_object(self, plugin_module: types.ModuleType) -> None:
        assert import_plugin("echo_test_plugins:validators") is VALIDATORS

    def test_import_plugin_factory(self, plugin_module: types.ModuleType) -> None:
        assert import_plugin("echo_test_plugins:make_validators") is VALIDATORS

    def test_import_non_plugin(self, plugin_module: types.ModuleType) -> None:
        with pytest.raises(PluginError, match="got int"):
            import_plugin("echo_test_plugins:not_a_plugin")


class TestLoadPlugin:
    @pytest.fixture
    def echo(self) -> Echo:
        return Echo(EchoConfig())

    async def test_registers_operators(self, echo: Echo) -> None:
        await echo.load_plugin(VALIDATORS)

        assert echo.plugins == (VALIDATORS,)
        assert {"email", "longer_than"} <= set(echo.operators)
        template = "[#IF {{contact}} #email]mail[ELSE]none[END IF]"
        assert await echo.render(template, {"contact": "a@b.c"}) == "mail"
        assert await echo.render(template, {"contact": "abc"}) == "none"
        output = await echo.render(
            "[#IF {{s}} #longer_than(3)]long[END IF]", {"s": "abcd"}
        )
        assert output == "long"

    async def test_sync_on_load(self, echo: Echo) -> None:
        loaded: list[str] = []
        plugin = EchoPlugin(
            name="hooked", version="0.1", on_load=lambda: loaded.append("sync")
        )
        await echo.load_plugin(plugin)
        assert loaded == ["sync"]

    async def test_async_on_load_runs_after_registration(self, echo: Echo) -> None:
        seen: list[bool] = []

        async def on_load() -> None:
            seen.append("shout" in echo.operators)

        plugin = EchoPlugin(
            name="hooked",
            version="0.1",
            operators={"shout": lambda v, a: str(v).isupper()},
            on_load=on_load,
        )
        await echo.load_plugin(plugin)
        assert seen == [True]

    async def test_invalid_plugin_is_not_loaded(self, echo: Echo) -> None:
        plugin = EchoPlugin(name="p", version="1", operators={"ai_gate": is_email})
        with pytest.raises(PluginError):
            await echo.load_plugin(plugin)
        assert "ai_gate" not in echo.operators
        assert echo.plugins == ()

    async def test_plugins_are_per_instance(self, echo: Echo) -> None:
        await echo.load_plugin(VALIDATORS)
        other = Echo(EchoConfig())
        assert other.plugins == ()
        assert "email" not in other.operators
