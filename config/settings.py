"""
Configuration management for the Fleet GPS Telemetry service.

This module provides centralized configuration loading and validation using
Pydantic settings. Values are loaded from environment variables or .env files,
with an environment-specific file layered on top of the base .env file.

The retention window and the retention cron schedule are consumed by the
retention sweeper; everything else configures the storage backend, logging
and the HTTP surface.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple

from croniter import croniter
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class StoreBackend(str, Enum):
    """Supported telemetry store backends."""
    MEMORY = "memory"
    ELASTICSEARCH = "elasticsearch"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    The base .env file is loaded first, then the environment-specific file
    overrides it.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }
    return (".env", env_file_map.get(environment, ".env.development"))


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment-specific configuration is supported through
    .env.development, .env.staging and .env.production files; the
    ENVIRONMENT variable determines which one is loaded.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Storage Configuration
    store_backend: StoreBackend = Field(
        default=StoreBackend.MEMORY,
        description="Telemetry store backend: 'memory' or 'elasticsearch'"
    )
    elastic_endpoint: Optional[str] = Field(
        default=None,
        description="Elasticsearch endpoint URL"
    )
    elastic_api_key: Optional[str] = Field(
        default=None,
        description="Elasticsearch API key for authentication"
    )
    elastic_verify_certs: bool = Field(
        default=True,
        description="Verify TLS certificates when connecting to Elasticsearch"
    )
    vehicles_index: str = Field(
        default="vehicles",
        description="Index holding vehicle identity documents"
    )
    gps_logs_index: str = Field(
        default="gps_logs",
        description="Index holding GPS telemetry records"
    )
    sequence_index: str = Field(
        default="gps_log_sequence",
        description="Index used to issue monotonically increasing record ids"
    )

    vehicles_seed_file: Optional[str] = Field(
        default=None,
        description="JSON file of vehicles loaded into the in-memory directory at startup"
    )

    # Retention Configuration
    retention_days: int = Field(
        default=30,
        ge=1,
        description="GPS logs older than this many days are deleted by the sweeper"
    )
    retention_cron: str = Field(
        default="0 15 * * *",
        description="Cron expression for the retention sweep cadence"
    )
    retention_enabled: bool = Field(
        default=True,
        description="Start the retention scheduler with the application"
    )

    # History Configuration
    history_max_page_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Largest page size accepted by the history endpoint"
    )
    history_max_result_window: int = Field(
        default=10000,
        ge=1,
        le=10000,
        description=(
            "Deepest record (page * size) a history page may reach; "
            "bounded by Elasticsearch's default index.max_result_window"
        )
    )

    # Rate Limiting Configuration
    rate_limit_requests_per_minute: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum API requests per minute per IP"
    )
    rate_limit_enabled: bool = Field(
        default=True,
        description="Apply the per-IP request limit"
    )

    # Observability Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry collector endpoint URL; tracing export is off when unset"
    )
    otel_service_name: str = Field(
        default="fleet-gps-telemetry",
        description="Service name for OpenTelemetry traces"
    )

    # HTTP Configuration
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port for the uvicorn server"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("elastic_endpoint")
    @classmethod
    def validate_elastic_endpoint(cls, v: Optional[str]) -> Optional[str]:
        """Validate that elastic_endpoint, when given, is an HTTP/HTTPS URL."""
        if v is None:
            return v
        v = v.strip().strip('"')
        if not v:
            return None
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("elastic_endpoint must be a valid HTTP/HTTPS URL")
        return v

    @field_validator("elastic_api_key")
    @classmethod
    def validate_elastic_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().strip('"')
        return v or None

    @field_validator("retention_cron")
    @classmethod
    def validate_retention_cron(cls, v: str) -> str:
        """Validate that retention_cron is a cron expression croniter accepts."""
        v = v.strip()
        if not croniter.is_valid(v):
            raise ValueError(f"retention_cron is not a valid cron expression: {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: List[str]) -> List[str]:
        """Validate CORS origins format and reject wildcard patterns."""
        validated_origins = []
        for origin in v:
            origin = origin.strip()
            if "*" in origin:
                raise ValueError(
                    f"Wildcard patterns are not allowed in CORS origins: {origin}. "
                    "Specify exact frontend domains."
                )
            if not (origin.startswith("http://") or origin.startswith("https://")):
                raise ValueError(
                    f"Invalid CORS origin format: {origin}. "
                    "Must start with http:// or https://"
                )
            validated_origins.append(origin)
        return validated_origins

    @model_validator(mode="after")
    def validate_store_config(self) -> "Settings":
        """Validate that the Elasticsearch connection is configured when selected."""
        if self.store_backend == StoreBackend.ELASTICSEARCH:
            if not self.elastic_endpoint:
                raise ValueError(
                    "elastic_endpoint is required when store_backend is 'elasticsearch'"
                )
            if not self.elastic_api_key and self.environment != Environment.DEVELOPMENT:
                raise ValueError(
                    "elastic_api_key is required when store_backend is 'elasticsearch' "
                    "in non-development environments"
                )
        elif self.environment == Environment.PRODUCTION:
            raise ValueError(
                "store_backend 'memory' is not allowed in production; "
                "configure store_backend='elasticsearch'"
            )
        return self


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Create Settings for a specific environment.

    Detects the environment from the ENVIRONMENT variable (if not provided)
    and loads the matching environment-specific .env file.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)
    existing_env_files = [f for f in env_files if Path(f).exists()]

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(existing_env_files) or None,
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        # Extract field-level errors from Pydantic ValidationError
        if hasattr(e, "errors"):
            for error in e.errors():
                field_name = ".".join(str(loc) for loc in error.get("loc", [])) or "settings"
                error_type = error.get("type", "")
                error_msg = error.get("msg", str(error))

                if error_type == "missing":
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name] = error_msg

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Settings are loaded once and cached for subsequent calls.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """Clear the settings cache so the next get_settings() reloads."""
    global _settings_cache
    _settings_cache = None


def validate_startup(settings: Optional[Settings] = None) -> None:
    """
    Validate settings at application startup.

    Raises:
        ConfigurationError: If any setting is unusable in the current environment.
    """
    settings = settings or get_settings()
    validation_errors = {}

    if settings.environment == Environment.PRODUCTION:
        localhost_only = all(
            "localhost" in origin or "127.0.0.1" in origin
            for origin in settings.cors_origins
        )
        if localhost_only:
            validation_errors["cors_origins"] = (
                "Production environment requires non-localhost CORS origins."
            )
        if not settings.elastic_verify_certs:
            validation_errors["elastic_verify_certs"] = (
                "Certificate verification cannot be disabled in production."
            )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )
