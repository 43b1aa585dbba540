"""
restlayer — Server Configuration
=================================

What:  Typed server options: listening port, URL prefix, feature toggles,
       body size ceilings and request/response logging settings.
How:   pydantic-settings model. Options can be given as a mapping (usually the
       ``rest_api`` section of a larger application config), as a ready
       ServerOptions instance, or read from REST_API_* environment variables.
When:  Validated once, when the server is constructed. Missing or invalid
       options raise ConfigurationError before any socket is bound.

Toggles are negative flags (no_cors, no_compression, no_trust_proxy): the
feature is ON unless the flag is explicitly true.
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from restlayer.exceptions import ConfigurationError

CONFIG_SECTION = "rest_api"
DEFAULT_BODY_SIZE_IN_MB = 10

LogDataCallback = Callable[[Any], Mapping[str, Any]]

_LEVEL_NAMES = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _normalize_level(value: Union[str, int]) -> int:
    if isinstance(value, int):
        return value
    upper = str(value).upper()
    if upper == "WARN":
        upper = "WARNING"
    if upper not in _LEVEL_NAMES:
        raise ValueError(f"Invalid log level '{value}'. Must be one of: {sorted(_LEVEL_NAMES)}")
    return logging.getLevelName(upper)


class LoggingOptions(BaseModel):
    """
    Request/response log settings.

    Attributes:
        request_log_level:  Severity of the "Request received" event
        response_log_level: Severity of the "Request completed" event
        request_log_data_callback:  request -> extra fields for the request event
        response_log_data_callback: request -> extra fields for the response event
    """

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    request_log_level: int = Field(
        default=logging.INFO,
        validation_alias=AliasChoices("request_log_level", "requestLogLevel"),
    )
    response_log_level: int = Field(
        default=logging.INFO,
        validation_alias=AliasChoices("response_log_level", "responseLogLevel"),
    )
    request_log_data_callback: Optional[LogDataCallback] = Field(
        default=None,
        validation_alias=AliasChoices("request_log_data_callback", "requestLogDataCallback"),
    )
    response_log_data_callback: Optional[LogDataCallback] = Field(
        default=None,
        validation_alias=AliasChoices("response_log_data_callback", "responseLogDataCallback"),
    )

    @field_validator("request_log_level", "response_log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: Union[str, int]) -> int:
        return _normalize_level(v)


class ServerOptions(BaseSettings):
    """
    Options recognized by the server assembler.

    The camelCase names used by JavaScript-side configs (urlPrefix, noCors,
    jsonBodySizeLimitInMb, ...) are accepted as aliases.
    """

    model_config = SettingsConfigDict(
        env_prefix="REST_API_",
        env_nested_delimiter="__",
        populate_by_name=True,
        extra="ignore",
        arbitrary_types_allowed=True,
    )

    # ── Listener ──────────────────────────────────────────────────────────
    port: int = Field(gt=0, le=65535)
    host: str = Field(default="0.0.0.0")

    # ── Routing ───────────────────────────────────────────────────────────
    url_prefix: str = Field(
        default="/",
        validation_alias=AliasChoices("url_prefix", "urlPrefix"),
    )

    # ── Feature toggles (absent means enabled) ────────────────────────────
    no_cors: bool = Field(default=False, validation_alias=AliasChoices("no_cors", "noCors"))
    no_compression: bool = Field(
        default=False,
        validation_alias=AliasChoices("no_compression", "noCompression"),
    )
    no_trust_proxy: bool = Field(
        default=False,
        validation_alias=AliasChoices("no_trust_proxy", "noTrustProxy"),
    )

    # Passed straight through to starlette's SessionMiddleware.
    session: Optional[Dict[str, Any]] = Field(default=None)

    # ── Body parsers ──────────────────────────────────────────────────────
    json_body_size_limit_in_mb: float = Field(
        default=DEFAULT_BODY_SIZE_IN_MB,
        gt=0,
        validation_alias=AliasChoices("json_body_size_limit_in_mb", "jsonBodySizeLimitInMb"),
    )
    encoded_body_size_limit_in_mb: float = Field(
        default=DEFAULT_BODY_SIZE_IN_MB,
        gt=0,
        validation_alias=AliasChoices("encoded_body_size_limit_in_mb", "encodedBodySizeLimitInMb"),
    )

    logging: LoggingOptions = Field(default_factory=LoggingOptions)

    @field_validator("url_prefix")
    @classmethod
    def validate_url_prefix(cls, v: str) -> str:
        """Prefixes always start and end with a slash: "" -> "/", "api" -> "/api/"."""
        v = v.strip()
        if not v.startswith("/"):
            v = "/" + v
        if not v.endswith("/"):
            v = v + "/"
        return v

    @field_validator("session")
    @classmethod
    def validate_session(cls, v: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if v is not None and not v.get("secret_key"):
            raise ValueError("session options require a secret_key")
        return v

    @property
    def json_body_limit_bytes(self) -> int:
        return int(self.json_body_size_limit_in_mb * 1024 * 1024)

    @property
    def encoded_body_limit_bytes(self) -> int:
        return int(self.encoded_body_size_limit_in_mb * 1024 * 1024)

    @classmethod
    def from_env(cls) -> "ServerOptions":
        """Load options from REST_API_* environment variables (and .env)."""
        try:
            return cls(_env_file=".env")
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid REST_API_* environment configuration",
                context={"errors": e.errors(include_url=False)},
            ) from e


def load_options(
    config: Union[ServerOptions, Mapping[str, Any], None],
    section: str = CONFIG_SECTION,
) -> ServerOptions:
    """
    Resolve server options from whatever the caller handed us.

    Accepts:
        - a ServerOptions instance (returned as-is)
        - an application config mapping holding a ``section`` entry
        - the section mapping itself (recognized by its "port" key)

    Raises:
        ConfigurationError: config or section missing, or port absent/invalid.
    """
    if isinstance(config, ServerOptions):
        return config
    if config is None:
        raise ConfigurationError("No configuration was provided for the REST server")

    if section in config:
        raw = config[section]
    elif "port" in config:
        raw = config
    else:
        raise ConfigurationError(
            f"Configuration section '{section}' is missing",
            context={"section": section, "keys": sorted(str(k) for k in config)},
        )

    if isinstance(raw, ServerOptions):
        return raw
    if not raw or raw.get("port") is None:
        raise ConfigurationError(
            "A listening port is required", context={"section": section}
        )

    try:
        # model_validate skips the environment sources; only the given section counts.
        return ServerOptions.model_validate(dict(raw))
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid REST server configuration",
            context={"section": section, "errors": e.errors(include_url=False)},
        ) from e
