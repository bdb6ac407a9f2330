"""
Pydantic-based configuration models for RelayChat.

Type-safe, validated configuration using Pydantic BaseSettings. Each
section reads its own environment prefix; AppConfig aggregates them and
also reads a .env file.
"""

import json
from typing import Annotated, Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_ALLOWED_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


def _parse_env_list(candidate: Any) -> list[str]:
    """Parse a value from the environment as JSON list or CSV."""
    if candidate is None:
        return []
    if isinstance(candidate, list | tuple | set):
        return [str(item).strip() for item in candidate if str(item).strip()]
    s = str(candidate).strip()
    if not s:
        return []
    try:
        loaded = json.loads(s)
        if isinstance(loaded, list):
            return [str(item).strip() for item in loaded if str(item).strip()]
    except json.JSONDecodeError:
        pass
    return [item.strip().strip('"').strip("'") for item in s.strip("[]").split(",") if item.strip()]


class ServerConfig(BaseSettings):
    """Server network configuration."""

    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=8080, description="Server port")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1024 <= v <= 65535:
            logger.error("Invalid server port", port=v, valid_range="1024-65535")
            raise ValueError("Port must be between 1024 and 65535")
        return v

    model_config = {"env_prefix": "SERVER_", "case_sensitive": False, "extra": "ignore"}


class DatabaseConfig(BaseSettings):
    """Database configuration for the user table and the live-session store."""

    url: str = Field(..., description="Primary database URL (required)")

    # Connection pool configuration (SQLAlchemy)
    pool_size: int = Field(default=5, description="Number of connections to maintain in pool")
    max_overflow: int = Field(default=10, description="Additional connections that can be created beyond pool_size")
    pool_timeout: int = Field(default=30, description="Seconds to wait for connection from pool")

    @field_validator("url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL format - PostgreSQL only."""
        if not v:
            logger.error("Database URL validation failed - empty URL")
            raise ValueError("Database URL cannot be empty")
        if not v.startswith("postgresql"):
            logger.error(
                "Database URL validation failed - invalid protocol",
                url_preview=v[:50] if len(v) > 50 else v,
                expected_protocol="postgresql",
            )
            raise ValueError("Database URL must start with 'postgresql'")
        return v

    @field_validator("pool_size", "max_overflow", "pool_timeout")
    @classmethod
    def validate_pool_config(cls, v: int) -> int:
        """Validate pool configuration values are positive."""
        if v < 1:
            raise ValueError("Pool configuration values must be at least 1")
        return v

    model_config = {"env_prefix": "DATABASE_", "case_sensitive": False, "extra": "ignore"}


class SecurityConfig(BaseSettings):
    """Security-sensitive configuration."""

    jwt_secret: str | None = Field(default=None, description="HMAC secret used to sign session tokens")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Lifetime of issued session tokens")
    allowed_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS),
        validation_alias=AliasChoices("relaychat_allowed_origins", "allowed_origins"),
        description="Origins permitted to open a real-time connection",
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, v: Any) -> list[str]:
        """Accept JSON arrays or comma separated strings."""
        return [origin.rstrip("/") for origin in _parse_env_list(v)]

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str | None) -> str | None:
        """Treat an empty secret as unset; warn on short secrets."""
        if v is not None and not v.strip():
            return None
        if v is not None and len(v) < 16:
            logger.warning("JWT secret is shorter than 16 characters", secret_length=len(v))
        return v

    @field_validator("access_token_expire_minutes")
    @classmethod
    def validate_expiry(cls, v: int) -> int:
        if v < 1:
            raise ValueError("access_token_expire_minutes must be at least 1")
        return v

    model_config = {"env_prefix": "RELAYCHAT_", "case_sensitive": False, "extra": "ignore"}


class RealtimeConfig(BaseSettings):
    """WebSocket protocol limits, rate limiting and presence timing."""

    max_frame_bytes: int = Field(default=1024, description="Maximum inbound frame size in bytes")
    max_message_length: int = Field(default=250, description="Maximum chat message length in characters")
    rate_limit_max_messages: int = Field(default=20, description="Messages allowed per rate window")
    rate_limit_window_seconds: float = Field(default=10.0, description="Fixed rate window length in seconds")
    presence_rebroadcast_delay: float = Field(
        default=1.0, description="Delay before the user list is rebroadcast after a disconnect"
    )
    close_timeout: float = Field(default=5.0, description="Seconds to wait for connections to drain on shutdown")

    @field_validator("max_frame_bytes", "max_message_length", "rate_limit_max_messages")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be positive")
        return v

    @field_validator("rate_limit_window_seconds", "presence_rebroadcast_delay", "close_timeout")
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    model_config = {"env_prefix": "REALTIME_", "case_sensitive": False, "extra": "ignore"}


class TelemetryConfig(BaseSettings):
    """Exception telemetry buffering."""

    flush_timeout: float = Field(default=2.0, description="Upper bound for the shutdown telemetry flush")
    max_records: int = Field(default=10000, description="Maximum buffered exception records")

    model_config = {"env_prefix": "TELEMETRY_", "case_sensitive": False, "extra": "ignore"}


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    environment: str = Field(default="local", description="Logging environment")
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="human", description="Log format")
    log_base: str = Field(default="logs", description="Base log directory")
    disable_logging: bool = Field(default=False, description="Disable all logging")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate logging environment."""
        valid_environments = ["local", "unit_test", "e2e_test", "production"]
        if v not in valid_environments:
            logger.error("Invalid logging environment", environment=v, valid_environments=valid_environments)
            raise ValueError(f"Environment must be one of {valid_environments}, got '{v}'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}, got '{v}'")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "human", "colored"]
        if v not in valid_formats:
            raise ValueError(f"Log format must be one of {valid_formats}, got '{v}'")
        return v

    model_config = {"env_prefix": "LOGGING_", "case_sensitive": False, "extra": "ignore"}

    def to_legacy_dict(self) -> dict:
        """Convert to the dict format expected by setup_enhanced_logging()."""
        return {
            "environment": self.environment,
            "level": self.level,
            "format": self.format,
            "log_base": self.log_base,
            "disable_logging": self.disable_logging,
        }


class AppConfig(BaseSettings):
    """
    Composite application configuration.

    Aggregates all other configs. Access via get_config().
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)  # type: ignore[arg-type]
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False, "extra": "ignore"}

    def to_legacy_dict(self) -> dict:
        """Convert to a plain dict for the logging setup and diagnostics."""
        return {
            "host": self.server.host,
            "port": self.server.port,
            "allowed_origins": list(self.security.allowed_origins),
            "realtime": self.realtime.model_dump(),
            "telemetry": self.telemetry.model_dump(),
            "logging": self.logging.to_legacy_dict(),
        }
