"""
Gateway configuration models.
"""

from typing import Any, Literal, Mapping, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator
from pydantic.alias_generators import to_camel

from shared.errors import ConfigurationError


DEFAULT_TIMEOUT_MS = 30000
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1000
DEFAULT_CACHE_TTL_MS = 60000
DEFAULT_CACHE_MAX_ENTRIES = 1000

LogLevel = Literal["debug", "info", "warn", "error"]
BackoffStrategy = Literal["linear", "exponential", "fixed"]


class CachePolicy(BaseModel):
    """Response cache policy."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore")

    enabled: bool = False
    ttl_ms: int = Field(
        default=DEFAULT_CACHE_TTL_MS,
        gt=0,
        validation_alias=AliasChoices("ttlMs", "ttl_ms", "ttl"),
    )
    max_entries: int = Field(default=DEFAULT_CACHE_MAX_ENTRIES, gt=0)


class GatewayConfig(BaseModel):
    """Immutable construction input of the gateway client.

    Accepts the camelCase keys operators write (``baseUrl``, ``timeoutMs``) as
    well as field names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore")

    base_url: str
    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        gt=0,
        validation_alias=AliasChoices("timeoutMs", "timeout_ms", "timeout"),
    )
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_delay_ms: int = Field(
        default=DEFAULT_RETRY_DELAY_MS,
        ge=0,
        validation_alias=AliasChoices("retryDelayMs", "retry_delay_ms", "retryDelay"),
    )
    backoff_strategy: BackoffStrategy = "linear"
    log_level: LogLevel = "info"
    cache: CachePolicy = Field(default_factory=CachePolicy)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("base_url must not be empty")
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return v.rstrip("/")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            if v == "warning":
                return "warn"
        return v

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def from_mapping(cls, data: Union["GatewayConfig", Mapping[str, Any]]) -> "GatewayConfig":
        """Validate raw construction input; fail the whole construction on any error.

        Raises:
            ConfigurationError: missing ``baseUrl`` or any invalid field.
        """
        if isinstance(data, cls):
            return data
        if data is None:
            raise ConfigurationError("Gateway configuration is required")
        try:
            return cls.model_validate(
                {k: v for k, v in dict(data).items() if v is not None}
            )
        except PydanticValidationError as e:
            raise ConfigurationError(
                "Invalid gateway configuration",
                details={"errors": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ]}
            ) from e
