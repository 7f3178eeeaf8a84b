"""
Shared configuration management for the Assistant Bridge.

Settings are resolved from a fixed, prioritized list of sources:

1. explicit values (the persistent ``configs`` table, passed as init kwargs)
2. process environment
3. ``.env`` file
4. field defaults

and materialized once into an immutable ``BridgeSettings`` value.
"""

from typing import Any, Dict, Mapping, Optional, Tuple, Type

from pydantic import Field, ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from shared.errors import ConfigurationError


class BridgeSettings(BaseSettings):
    """Bridge configuration, keyed by the variable names operators already use."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    # Environment
    env: str = Field(default="development", validation_alias="BRIDGE_ENV")
    log_level: str = Field(default="info", validation_alias="BRIDGE_LOG_LEVEL")
    host: str = Field(default="0.0.0.0", validation_alias="BRIDGE_HOST")
    port: int = Field(default=8080, validation_alias="PORT")

    # Assistant
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    assistant_id: str = Field(default="", validation_alias="ASSISTANT_ID")
    bot_name: str = Field(default="Garra", validation_alias="BOT_NAME")
    whatsapp_number: str = Field(default="", validation_alias="WHATSAPP_NUMBER")

    # Persistent config store
    database_url: str = Field(default="", validation_alias="DATABASE_URL")
    database_ssl: bool = Field(default=True, validation_alias="DATABASE_SSL")
    redis_url: str = Field(default="", validation_alias="REDIS_URL")

    # External API gateway
    api_base_url: str = Field(default="", validation_alias="API_BASE_URL")
    api_timeout: Optional[int] = Field(default=None, validation_alias="API_TIMEOUT")
    api_max_retries: Optional[int] = Field(default=None, validation_alias="API_MAX_RETRIES")
    api_retry_delay: Optional[int] = Field(default=None, validation_alias="API_RETRY_DELAY")
    api_backoff_strategy: Optional[str] = Field(default=None, validation_alias="API_BACKOFF_STRATEGY")
    api_enable_cache: bool = Field(default=False, validation_alias="API_ENABLE_CACHE")
    api_cache_ttl: int = Field(default=60000, validation_alias="API_CACHE_TTL")
    api_log_level: Optional[str] = Field(default=None, validation_alias="API_LOG_LEVEL")
    api_function_mappings: Optional[str] = Field(default=None, validation_alias="API_FUNCTION_MAPPINGS")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, env_settings, dotenv_settings

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


REQUIRED_SETTINGS = ("openai_api_key", "assistant_id")


def get_settings(overrides: Optional[Mapping[str, Any]] = None) -> BridgeSettings:
    """Build settings, giving ``overrides`` (keyed by variable name) top priority.

    Raises:
        ConfigurationError: a value could not be parsed into its field type.
    """
    values: Dict[str, Any] = {
        key: value
        for key, value in (overrides or {}).items()
        if value is not None and value != ""
    }
    try:
        return BridgeSettings(**values)
    except PydanticValidationError as e:
        raise ConfigurationError(
            "Invalid bridge settings",
            details={"errors": [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]}
        ) from e


def missing_required_settings(settings: BridgeSettings) -> list:
    """Names of required settings that are empty."""
    return [name for name in REQUIRED_SETTINGS if not getattr(settings, name)]


def mask_secret(value: Optional[str]) -> str:
    """Mask a sensitive value for logging."""
    if not value:
        return "not set"
    if len(value) <= 8:
        return "********"
    return f"{value[:4]}...{value[-4:]}"
