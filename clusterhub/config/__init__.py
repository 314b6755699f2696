"""
Configuration package for the cluster definition registry.

This package provides configuration management with environment variable support,
validation, and deployment environment handling.
"""

from .settings import (
    Settings,
    StorageConfig,
    RemoteConfig,
    MetricsDatabaseSettings,
    SecurityConfig,
    ProvisioningConfig,
    APIConfig,
    MonitoringConfig,
    Environment,
    LogLevel,
    settings,
    get_settings,
    reload_settings
)

__all__ = [
    # Settings classes
    "Settings",
    "StorageConfig",
    "RemoteConfig",
    "MetricsDatabaseSettings",
    "SecurityConfig",
    "ProvisioningConfig",
    "APIConfig",
    "MonitoringConfig",

    # Enums
    "Environment",
    "LogLevel",

    # Settings instances and functions
    "settings",
    "get_settings",
    "reload_settings",
]
