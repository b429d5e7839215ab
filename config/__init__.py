# Configuration module for the Fleet GPS Telemetry service
from .settings import (
    Settings,
    Environment,
    StoreBackend,
    ConfigurationError,
    get_settings,
    validate_startup,
)

__all__ = [
    "Settings",
    "Environment",
    "StoreBackend",
    "ConfigurationError",
    "get_settings",
    "validate_startup",
]
