"""
Configuration management for the cluster definition registry.

This module provides configuration classes for all service settings with
environment variable support, validation, and deployment environment handling.
"""

from pathlib import Path
from typing import Dict, Any, List
from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Supported logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageConfig(BaseModel):
    """Locations of persisted cluster definitions and per-cluster configuration."""

    home_dir: str = Field(
        default="data",
        description="Root directory of the installation"
    )
    clusters_dir: str = Field(
        default="clusters",
        description="Directory holding one <clusterName>.json per cluster, relative to home_dir"
    )
    conf_dir: str = Field(
        default="conf",
        description="Directory holding per-cluster monitoring configuration, relative to home_dir"
    )
    file_extension: str = Field(
        default=".json",
        description="Extension of cluster definition files"
    )

    @field_validator('file_extension')
    @classmethod
    def validate_file_extension(cls, v):
        """Ensure the extension starts with a dot."""
        if not v.startswith('.') or len(v) < 2:
            raise ValueError(f"Invalid file extension: {v}. Expected something like '.json'")
        return v

    def clusters_path(self) -> Path:
        """Absolute-or-relative path of the cluster definitions directory."""
        return Path(self.home_dir) / self.clusters_dir

    def conf_path(self) -> Path:
        """Path of the per-cluster configuration root."""
        return Path(self.home_dir) / self.conf_dir


class RemoteConfig(BaseModel):
    """Remote command execution settings used to reach worker hosts."""

    ssh_binary: str = Field(
        default="ssh",
        description="OpenSSH client executable"
    )
    ssh_port: int = Field(
        default=22,
        ge=1,
        le=65535,
        description="SSH port on worker hosts"
    )
    connect_timeout: int = Field(
        default=10,
        ge=1,
        description="SSH connection timeout in seconds"
    )
    command_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Per-host command timeout in seconds"
    )
    agent_dir: str = Field(
        default="/opt/clusterhub/agent",
        description="Directory on worker hosts holding the JMX agent"
    )
    agent_jar: str = Field(
        default="jmx_prometheus_javaagent.jar",
        description="JMX agent jar file name"
    )
    agent_download_url: str = Field(
        default="",
        description="URL the worker fetches the agent jar from when it is missing"
    )
    default_agent_port: int = Field(
        default=5555,
        ge=1024,
        le=65535,
        description="Port the JMX agent exposes when the definition does not set one"
    )
    node_list_command: str = Field(
        default="yarn node -list -states RUNNING",
        description="Command run on a resource manager host to list live worker nodes"
    )


class MetricsDatabaseSettings(BaseModel):
    """Defaults for the InfluxDB time-series database."""

    host: str = Field(
        default="localhost",
        description="InfluxDB host"
    )
    port: int = Field(
        default=8086,
        ge=1,
        le=65535,
        description="InfluxDB HTTP port"
    )
    username: str = Field(
        default="root",
        description="InfluxDB user"
    )
    password: str = Field(
        default="root",
        description="InfluxDB password"
    )
    retention_period: str = Field(
        default="90d",
        description="Default retention period for new cluster databases"
    )
    request_timeout: float = Field(
        default=10.0,
        gt=0,
        description="HTTP request timeout in seconds"
    )


class SecurityConfig(BaseModel):
    """Secret handling settings."""

    secret_key: str = Field(
        default="change-me-clusterhub-secret",
        min_length=8,
        description="Passphrase the password encryption key is derived from"
    )
    key_salt: str = Field(
        default="CLUSTERHUB_AGENT_PASSWORD_SALT",
        description="Salt for key derivation"
    )


class ProvisioningConfig(BaseModel):
    """Provisioning coordinator settings."""

    refresh_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Interval between worker-node refreshes of an active cluster"
    )
    refresh_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout of a single worker-node refresh"
    )


class APIConfig(BaseModel):
    """FastAPI application configuration settings."""

    host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    port: int = Field(
        default=8000,
        ge=1024,
        le=65535,
        description="API server port"
    )
    reload: bool = Field(
        default=False,
        description="Enable auto-reload in development"
    )
    title: str = Field(
        default="ClusterHub",
        description="API title"
    )
    description: str = Field(
        default="Cluster definition registry for remote Hadoop monitoring",
        description="API description"
    )
    version: str = Field(
        default="1.0.0",
        description="API version"
    )
    cors_origins: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins"
    )


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Application log level"
    )
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    structured_logging: bool = Field(
        default=True,
        description="Emit JSON log lines"
    )


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    storage: StorageConfig = Field(
        default_factory=StorageConfig,
        description="Storage configuration"
    )
    remote: RemoteConfig = Field(
        default_factory=RemoteConfig,
        description="Remote execution configuration"
    )
    metrics_db: MetricsDatabaseSettings = Field(
        default_factory=MetricsDatabaseSettings,
        description="Metrics database configuration"
    )
    security: SecurityConfig = Field(
        default_factory=SecurityConfig,
        description="Security configuration"
    )
    provisioning: ProvisioningConfig = Field(
        default_factory=ProvisioningConfig,
        description="Provisioning configuration"
    )
    api: APIConfig = Field(
        default_factory=APIConfig,
        description="FastAPI configuration"
    )
    monitoring: MonitoringConfig = Field(
        default_factory=MonitoringConfig,
        description="Logging configuration"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "env_prefix": "CLUSTERHUB_",
        "extra": "ignore"
    }

    @model_validator(mode='after')
    def validate_environment_specific_settings(self):
        """Apply environment-specific configuration overrides."""
        if self.environment == Environment.DEVELOPMENT:
            self.api.reload = True
            self.monitoring.log_level = LogLevel.DEBUG
            self.debug = True

        elif self.environment == Environment.TESTING:
            self.monitoring.log_level = LogLevel.WARNING
            self.debug = False

        elif self.environment == Environment.PRODUCTION:
            self.api.reload = False
            self.monitoring.log_level = LogLevel.INFO
            self.debug = False

        return self

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        return self.model_dump()


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment variables and files."""
    global settings
    settings = Settings()
    return settings
