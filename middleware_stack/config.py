"""
Middleware Stack - Configuration
=================================

What:  Typed configuration for the built-in middleware stack, plus the
       process-level settings that decide production mode and log level.
How:   Pydantic Settings reads environment variables (StackConfig also reads a
       .env file), validates types, and produces immutable-by-convention
       snapshots.
When:  A ``StackConfig`` snapshot is taken once per assembly (server start).
       ``ProcessSettings`` is read whenever the environment is resolved.

Two sources, on purpose:
    ProcessSettings  ← PYTHON_ENV, LOG_LEVEL (process state, not app config)
    StackConfig      ← STACK_* variables and/or keyword arguments

    The application's declared ``environment`` (e.g. "staging") is NOT used to
    decide production mode. Only PYTHON_ENV=production does that.

Example:
    config = StackConfig(
        paths={"public": "/www"},
        http={"cache": 0, "bodyParser": False},
        session={"secret": "keyboard cat"},
    )
"""

from typing import Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from middleware_stack.middleware.cookie_parser import parse_cookies

PRODUCTION = "production"

# One year, in seconds
DEFAULT_CACHE_MAX_AGE = 31_557_600


class ProcessSettings(BaseSettings):
    """
    Process-wide settings read straight from the environment.

    ``python_env`` is compared for exact equality with "production"; any
    other value (including "Production" or "prod") is non-production.
    """

    python_env: str = Field(default="")

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1024, le=65535)

    # No .env file: production mode follows the real process environment only
    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @property
    def production(self) -> bool:
        return self.python_env == PRODUCTION


class PathsConfig(BaseModel):
    # Root directory for the flat-file server
    public: str = Field(default="./public")


class HttpConfig(BaseModel):
    """
    HTTP middleware settings.

    ``middleware`` holds caller overrides keyed by built-in name. A key that is
    present wins even when its value is falsy (that disables the built-in).

    ``body_parser`` is tri-state:
        factory  → used instead of the default parser
        False    → body parsing disabled, no default substituted
        None     → default parser
    """

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    # Static file max-age, in seconds
    cache: int = Field(default=DEFAULT_CACHE_MAX_AGE, ge=0)

    middleware: Dict[str, Any] = Field(default_factory=dict)

    # Activation order; None means DEFAULT_ORDER
    order: Optional[List[str]] = None

    body_parser: Union[Literal[False], Callable[..., Any], None] = Field(
        default=None, alias="bodyParser"
    )
    method_override: Optional[Callable[..., Any]] = Field(
        default=None, alias="methodOverride"
    )
    cookie_parser: Optional[Callable[..., Any]] = Field(
        default=parse_cookies, alias="cookieParser"
    )


class SessionConfig(BaseModel):
    """
    Session settings. Only ``secret`` is read here; everything else belongs
    to whoever configured the session handler.
    """

    model_config = ConfigDict(extra="allow")

    # Deliberately untyped: a non-text secret must reach the cookie-parser
    # check instead of being coerced into a string.
    secret: Any = None


class StackConfig(BaseSettings):
    """
    Configuration snapshot consumed by ``assemble``.

    Environment variables use the ``STACK_`` prefix and ``__`` for nesting,
    e.g. ``STACK_PATHS__PUBLIC=/www`` or ``STACK_HTTP__CACHE=0``.
    """

    # The application's declared environment name (informational only)
    environment: str = Field(default="development")

    paths: PathsConfig = Field(default_factory=PathsConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    session: Optional[SessionConfig] = None

    # Keep detailed body-parser error bodies even in production
    keep_response_errors: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="STACK_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        arbitrary_types_allowed=True,
    )
