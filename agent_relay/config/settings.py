"""Application settings using Pydantic BaseSettings."""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agent_relay.core.exceptions import ConfigurationError
from agent_relay.providers.cloud import CLOUD_API_HOSTS


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    environment: str = Field(default="development")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    # The browser SPA signs in with MSAL and calls this API cross-origin.
    cors_origins: str = Field(default="http://localhost:3000")
    max_request_bytes: int = Field(default=262144)

    # Identity provider (On-Behalf-Of exchange)
    tenant_id: str
    app_client_id: str
    app_client_secret: str
    # Empty means https://login.microsoftonline.com/{tenant_id}
    authority: str = Field(default="")
    # Empty means the published scope of the configured cloud
    agent_scope: str = Field(default="")
    # Distinct caller tokens whose OBO results are cached before the cache resets
    obo_cache_max_assertions: int = Field(default=1000)

    # Agent service
    environment_id: str = Field(default="")
    schema_name: str = Field(default="")
    cloud: str = Field(default="prod")
    agent_type: str = Field(default="published")
    direct_connect_url: str = Field(default="")
    agent_timeout_seconds: float = Field(default=30.0)
    agent_turn_timeout_seconds: float = Field(default=120.0)

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def resolved_authority(self) -> str:
        if self.authority:
            return self.authority.rstrip("/")
        return f"https://login.microsoftonline.com/{self.tenant_id}"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_staging(self) -> bool:
        return self.environment == "staging"

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def is_prod_like(self) -> bool:
        """Check if running in production or staging mode."""
        return self.is_production or self.is_staging

    @property
    def docs_url(self) -> str | None:
        """Return docs URL if not in prod-like environment, else None."""
        return None if self.is_prod_like else "/docs"

    @property
    def openapi_url(self) -> str | None:
        return None if self.is_prod_like else "/openapi.json"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"development", "staging", "production", "test"}:
            raise ValueError("ENVIRONMENT must be one of: development, staging, production, test")
        return vv

    @field_validator("tenant_id", "app_client_id", "app_client_secret")
    @classmethod
    def validate_required_identity(cls, v: str) -> str:
        vv = (v or "").strip()
        if not vv:
            raise ValueError("must not be empty")
        return vv

    @field_validator("cloud")
    @classmethod
    def validate_cloud(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in CLOUD_API_HOSTS:
            raise ValueError(f"CLOUD must be one of: {', '.join(sorted(CLOUD_API_HOSTS))}")
        return vv

    @field_validator("agent_type")
    @classmethod
    def validate_agent_type(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"published", "prebuilt"}:
            raise ValueError("AGENT_TYPE must be one of: published, prebuilt")
        return vv

    @model_validator(mode="after")
    def validate_agent_connection(self) -> "Settings":
        if not self.direct_connect_url and not (self.environment_id and self.schema_name):
            raise ValueError(
                "Either DIRECT_CONNECT_URL or both ENVIRONMENT_ID and SCHEMA_NAME must be set"
            )
        if self.agent_timeout_seconds <= 0 or self.agent_turn_timeout_seconds <= 0:
            raise ValueError("Agent timeouts must be positive")
        if self.obo_cache_max_assertions <= 0:
            raise ValueError("OBO_CACHE_MAX_ASSERTIONS must be positive")
        return self


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "settings"
        if error.get("type") == "missing":
            problems.append(f"{field.upper()} is required")
        else:
            problems.append(f"{field.upper() if field != 'settings' else field}: {error.get('msg')}")
    return "Invalid configuration: " + "; ".join(problems)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Raises:
        ConfigurationError: If a required value is missing or invalid.
    """
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError(_describe_validation_error(exc)) from exc
