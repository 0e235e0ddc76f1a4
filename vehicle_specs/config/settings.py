"""
Vehicle Specification Engine
Centralized Configuration Management

Configuration is read from environment variables (and an optional .env file)
through Pydantic settings, one settings class per subsystem.
"""

from functools import lru_cache
from typing import Dict, Optional
from pydantic import AliasChoices, Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ENUM_ALIASES: Dict[str, Dict[str, str]] = {
    "DRIVE_TYPE": {
        "awd": "AWD_ON_DEMAND",
        "awd (on-demand)": "AWD_ON_DEMAND",
        "awd (при нужда)": "AWD_ON_DEMAND",
        "4wd": "AWD_FULLTIME",
        "4x4": "AWD_FULLTIME",
        "awd (full-time)": "AWD_FULLTIME",
        "awd (постоянно)": "AWD_FULLTIME",
        "front": "FWD",
        "front wheel drive": "FWD",
        "предно": "FWD",
        "rear": "RWD",
        "rear wheel drive": "RWD",
        "задно": "RWD",
    },
}


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(
        default="vehicle_specs",
        validation_alias=AliasChoices("POSTGRES_DB", "POSTGRES_DATABASE"),
        description="Database name",
    )
    user: str = Field(default="specs", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full async URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL - uses DATABASE_URL if set, otherwise asyncpg on host/port"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class CatalogSettings(BaseSettings):
    """Attribute catalog and resolution rules"""

    model_config = SettingsConfigDict(env_prefix="CATALOG_")

    default_language: str = Field(default="bg", description="Storage code of the default language")
    alt_language: str = Field(default="en", description="Storage code of the alternate language")
    display_order_sentinel: int = Field(default=9999, description="Display order used when unset")
    numeric_epsilon: float = Field(default=1e-9, description="Decimal magnitude treated as unset")
    fallback_category: str = Field(default="Other", description="Category for sidecar-only attributes")
    fallback_data_type: str = Field(default="text", description="Data type for sidecar entries without a hint")
    default_merge_policy: str = Field(default="catalog_wins", description="Merge policy when a caller omits one")
    enum_aliases: Dict[str, Dict[str, str]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_ENUM_ALIASES.items()},
        description="Per-attribute alias -> canonical enum code",
    )

    @field_validator("default_merge_policy")
    @classmethod
    def validate_merge_policy(cls, v: str) -> str:
        """Validate merge policy value"""
        allowed = ["sidecar_wins", "catalog_wins"]
        if v.lower() not in allowed:
            raise ValueError(f"Merge policy must be one of: {allowed}")
        return v.lower()

    def language_code(self, language: str) -> str:
        """Map a request language ("default" | "alt") to its storage code"""
        return self.alt_language if language == "alt" else self.default_language


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="vehicle-specs", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


settings = get_settings()
