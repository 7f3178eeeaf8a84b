"""
Settings materialization and function-mapping loading.

Database values win over the process environment, which wins over ``.env``
and field defaults. The result is one immutable ``BridgeSettings`` value per
(re)load.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator
from pydantic.alias_generators import to_camel

from shared.config import BridgeSettings, get_settings, mask_secret, missing_required_settings
from shared.errors import ConfigurationError
from shared.logging import get_logger

from ..gateway.client import GatewayClient
from ..gateway.config import GatewayConfig
from ..gateway.registry import HttpMethod
from .cache import ConfigCache


logger = get_logger("config_store.loader")

FUNCTION_MAPPINGS_KEY = "API_FUNCTION_MAPPINGS"

# Variable names BridgeSettings reads; other database keys are ignored.
SETTINGS_KEYS = frozenset(
    field.validation_alias for field in BridgeSettings.model_fields.values()
    if isinstance(field.validation_alias, str)
)

DEFAULT_DESCRIPTIONS = {
    "OPENAI_API_KEY": "OpenAI API key",
    "ASSISTANT_ID": "OpenAI assistant ID",
    "BOT_NAME": "Bot display name",
    "WHATSAPP_NUMBER": "WhatsApp number used by the bot",
    "DATABASE_URL": "Database connection URL",
    "REDIS_URL": "Redis connection URL",
}


class FunctionMappingEntry(BaseModel):
    """One ``{functionName, path, method?, cacheable?}`` item."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore")

    function_name: str = Field(min_length=1)
    path: str = Field(min_length=1)
    method: str = "POST"
    cacheable: Optional[bool] = None

    @field_validator("method", mode="before")
    @classmethod
    def validate_method(cls, v: Any) -> str:
        if v is None or v == "":
            return HttpMethod.POST.value
        method = str(v).strip().upper()
        if method not in {m.value for m in HttpMethod}:
            raise ValueError(f"unsupported HTTP method {v!r}")
        return method


async def materialize_settings(config_cache: Optional[ConfigCache] = None) -> BridgeSettings:
    """Build settings from the config table, falling back to the environment.

    Missing required values are logged, not raised.
    """
    overrides: Dict[str, str] = {}
    if config_cache is not None:
        snapshot = await config_cache.refresh()
        if not config_cache.initialized:
            logger.error("Config database unavailable, using environment settings")
        overrides = {k: v for k, v in snapshot.items() if k in SETTINGS_KEYS}
        for key in sorted(overrides):
            logger.info("Setting loaded from database", key=key)

    try:
        settings = get_settings(overrides)
    except ConfigurationError as e:
        if not overrides:
            raise
        logger.error(
            "Invalid settings in config database, using environment settings",
            errors=e.details.get("errors")
        )
        settings = get_settings()

    logger.info(
        "Settings materialized",
        env=settings.env,
        openai_api_key=mask_secret(settings.openai_api_key),
        assistant_id=settings.assistant_id or "not set",
        bot_name=settings.bot_name,
        api_base_url=settings.api_base_url or "not set"
    )

    missing = missing_required_settings(settings)
    for name in missing:
        logger.error("Required setting is missing", setting=name.upper())
    if missing:
        logger.error("Required settings are missing; the assistant may not work correctly", missing=[m.upper() for m in missing])

    return settings


def gateway_config_from_settings(settings: BridgeSettings) -> GatewayConfig:
    """Gateway construction input derived from the ``API_*`` settings.

    Raises:
        ConfigurationError: ``API_BASE_URL`` is empty or a value is invalid.
    """
    if not settings.api_base_url:
        raise ConfigurationError("API_BASE_URL is not configured")

    log_level = settings.api_log_level or ("info" if settings.is_production else "debug")
    return GatewayConfig.from_mapping({
        "baseUrl": settings.api_base_url,
        "timeoutMs": settings.api_timeout,
        "maxRetries": settings.api_max_retries,
        "retryDelayMs": settings.api_retry_delay,
        "backoffStrategy": settings.api_backoff_strategy,
        "logLevel": log_level,
        "cache": {
            "enabled": settings.api_enable_cache,
            "ttlMs": settings.api_cache_ttl,
        },
    })


def parse_function_mappings(raw: Any) -> List[FunctionMappingEntry]:
    """Parse the stored mapping list.

    Invalid JSON is logged and ignored; malformed entries are skipped with a
    warning.
    """
    if raw is None or raw == "":
        return []

    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Invalid function mappings JSON", key=FUNCTION_MAPPINGS_KEY, error=str(e))
            return []

    if not isinstance(data, list):
        logger.error(
            "Function mappings must be a JSON list",
            key=FUNCTION_MAPPINGS_KEY,
            type=type(data).__name__
        )
        return []

    entries: List[FunctionMappingEntry] = []
    for index, item in enumerate(data):
        try:
            entries.append(FunctionMappingEntry.model_validate(item))
        except PydanticValidationError as e:
            logger.warning(
                "Skipping malformed function mapping",
                index=index,
                errors=[err["msg"] for err in e.errors()]
            )
    return entries


def apply_function_mappings(
    client: GatewayClient,
    entries: List[FunctionMappingEntry],
    *,
    prune: bool = False,
) -> int:
    """Register ``entries`` on the gateway.

    With ``prune``, routes missing from a non-empty ``entries`` are removed. An
    empty list (unset or unparseable value) leaves the routing table as it is.
    """
    for entry in entries:
        client.add_endpoint_mapping(entry.function_name, entry.path, entry.method, entry.cacheable)

    removed = []
    if prune and entries:
        wanted = {entry.function_name.strip() for entry in entries}
        for mapping in client.registry.mappings():
            if mapping.function_name not in wanted and client.remove_endpoint_mapping(mapping.function_name):
                removed.append(mapping.function_name)

    logger.info("Function mappings loaded", count=len(entries), removed=removed)
    return len(entries)


def default_configs(settings: BridgeSettings) -> Dict[str, Tuple[str, Optional[str]]]:
    """Seed rows for an empty ``configs`` table, from environment settings."""
    values = {
        "OPENAI_API_KEY": settings.openai_api_key,
        "ASSISTANT_ID": settings.assistant_id,
        "BOT_NAME": settings.bot_name,
        "WHATSAPP_NUMBER": settings.whatsapp_number,
        "DATABASE_URL": settings.database_url,
        "REDIS_URL": settings.redis_url,
    }
    return {key: (value, DEFAULT_DESCRIPTIONS[key]) for key, value in values.items()}


async def fetch_function_mappings(
    config_cache: Optional[ConfigCache],
    settings: BridgeSettings,
) -> List[FunctionMappingEntry]:
    """Mapping list via the read-through config cache, else from settings."""
    raw = None
    if config_cache is not None and config_cache.initialized:
        try:
            raw = await config_cache.lookup(FUNCTION_MAPPINGS_KEY)
        except Exception as e:
            logger.warning("Function mappings lookup failed, using settings value", error=str(e))
    if raw is None:
        raw = settings.api_function_mappings
    return parse_function_mappings(raw)
