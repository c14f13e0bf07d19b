"""Configuration for echo-pdk.

Settings are layered, highest priority first: explicit overrides passed to
``load_config`` (CLI flags), ``ECHO_*`` environment variables (nested keys
use ``__``, e.g. ``ECHO_AI_PROVIDER__MODEL``), the project file
(``./echo.config.yaml`` or an explicit path), the user file
(``~/.config/echo-pdk/config.yaml``), then defaults. YAML and validation
problems surface as ConfigError with the offending field and value.
"""

from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from echo_pdk.constants import JUDGE_CACHE_TTL_SECONDS
from echo_pdk.exceptions import ConfigError
from echo_pdk.logging import get_logger
from echo_pdk.providers.types import ProviderConfig

__all__ = [
    "EchoConfig",
    "ContextStoreConfig",
    "ProviderConfig",
    "load_config",
    "get_user_config_path",
    "get_project_config_path",
    "PROJECT_CONFIG_FILENAME",
]

logger = get_logger(__name__)

PROJECT_CONFIG_FILENAME = "echo.config.yaml"

# Project config file used by EchoConfig's YAML source. load_config() sets it
# for the duration of one construction so an explicit --config path wins.
_project_config_override: ContextVar[Path | None] = ContextVar(
    "_project_config_override", default=None
)


class ContextStoreConfig(BaseModel):
    """Settings for the remote PLP context store.

    Attributes:
        server_url: Base URL of the PLP server (no trailing slash needed).
        auth: Bearer token sent with every request.
        prompt_id: Prompt whose named context assets are resolved. Named
            references (anything not starting with plp://) need it.
        timeout: Per-request timeout in seconds.
        max_retries: Retries after the first attempt for transient failures.
        rate_limit: Optional maximum requests per rate_period.
        rate_period: Rate limiting window in seconds.
    """

    server_url: str
    auth: str = ""
    prompt_id: str | None = None
    timeout: float = Field(default=10.0, gt=0.0, le=120.0)
    max_retries: int = Field(default=2, ge=0, le=10)
    rate_limit: int | None = Field(default=None, gt=0)
    rate_period: float = Field(default=60.0, gt=0.0)

    @field_validator("server_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("server_url must start with http:// or https://")
        return v.rstrip("/")


class YamlConfigSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from YAML files."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: Path | None = None,
    ):
        super().__init__(settings_cls)
        self.yaml_file = yaml_file
        self._config_data: dict[str, Any] = {}

        if yaml_file and yaml_file.exists():
            try:
                with open(yaml_file) as f:
                    loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(
                    message=f"Invalid YAML in {yaml_file}: {e}",
                    field=None,
                    value=None,
                ) from e
            if loaded is None:
                logger.warning("config_file_empty", path=str(yaml_file))
            elif not isinstance(loaded, dict):
                raise ConfigError(
                    message=f"Config file {yaml_file} must contain a mapping",
                    value=loaded,
                )
            else:
                self._config_data = loaded

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get value for a specific field from the YAML config."""
        if field_name in self._config_data:
            return self._config_data[field_name], field_name, False
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return the complete config data."""
        return self._config_data


class EchoConfig(BaseSettings):
    """Root configuration for parsing, evaluating and rendering templates.

    Attributes:
        strict: Abort on unknown variables and operators in conditions and on
            unresolved nodes at render time. Implies missing_variable="error".
        missing_variable: Render-time policy for a variable with no binding
            and no default: substitute "" or raise RenderError.
        trim: Strip leading and trailing whitespace from rendered output.
        collapse_newlines: Collapse three or more newlines into two.
        ai_provider: Provider settings for AI-judged conditions.
        context_store: Remote context store settings.
        judge_cache_ttl: Seconds a cached judgment stays live.
        evaluation_timeout: Optional bound in seconds for one evaluation.
        import_root: Directory [#IMPORT] paths are resolved against.
    """

    model_config = SettingsConfigDict(
        env_prefix="ECHO_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    strict: bool = False
    missing_variable: Literal["empty", "error"] = "empty"
    trim: bool = False
    collapse_newlines: bool = True
    ai_provider: ProviderConfig | None = None
    context_store: ContextStoreConfig | None = None
    judge_cache_ttl: float = Field(default=JUDGE_CACHE_TTL_SECONDS, gt=0.0)
    evaluation_timeout: float | None = Field(default=None, gt=0.0)
    import_root: Path | None = None

    @property
    def raises_on_missing_variable(self) -> bool:
        return self.strict or self.missing_variable == "error"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of settings sources.

        Priority (highest to lowest):
        1. Init settings (explicit keyword arguments, e.g. CLI flags)
        2. Environment variables (ECHO_*)
        3. Project YAML config (./echo.config.yaml or load_config's path)
        4. User YAML config (~/.config/echo-pdk/config.yaml)

        pydantic-settings gives earlier sources higher priority.
        """
        return (
            init_settings,
            env_settings,
            YamlConfigSource(settings_cls, get_project_config_path()),
            YamlConfigSource(settings_cls, get_user_config_path()),
        )


def get_user_config_path() -> Path:
    """Get the path to the user configuration file.

    Returns:
        Path to ~/.config/echo-pdk/config.yaml
    """
    return Path.home() / ".config" / "echo-pdk" / "config.yaml"


def get_project_config_path() -> Path:
    """Get the project configuration file in effect.

    Returns:
        The path passed to load_config(), or ./echo.config.yaml.
    """
    override = _project_config_override.get()
    if override is not None:
        return override
    return Path.cwd() / PROJECT_CONFIG_FILENAME


def load_config(config_path: Path | None = None, **overrides: Any) -> EchoConfig:
    """Load configuration: defaults, user file, project file, env, overrides.

    Args:
        config_path: Optional project config file. Defaults to ./echo.config.yaml.
        **overrides: Explicit values that win over every file and variable.
            Keys whose value is None are ignored so CLI flags can be passed
            through unconditionally.

    Returns:
        EchoConfig instance with merged configuration.

    Raises:
        ConfigError: If a file is missing or invalid, or a value fails validation.
    """
    if config_path is not None and not config_path.exists():
        raise ConfigError(
            f"Config file not found: {config_path}",
            field="config_path",
            value=str(config_path),
        )

    init_values = {k: v for k, v in overrides.items() if v is not None}
    token = _project_config_override.set(config_path)
    try:
        if not get_project_config_path().exists():
            logger.debug("no_project_config", path=str(get_project_config_path()))
        return EchoConfig(**init_values)
    except ValidationError as e:
        first_error = e.errors()[0]
        field = ".".join(str(loc) for loc in first_error["loc"])
        raise ConfigError(
            message=f"Invalid configuration: {first_error['msg']}",
            field=field,
            value=first_error.get("input"),
        ) from e
    finally:
        _project_config_override.reset(token)
