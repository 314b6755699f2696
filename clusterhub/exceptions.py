"""
Custom exception classes for the cluster definition registry.

This module defines a hierarchy of custom exceptions that provide structured
error handling throughout the application.
"""

import logging
from typing import Optional, Dict, Any, List
from enum import Enum


logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standard error codes for the application."""

    # General errors
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"

    # Registry errors
    CLUSTER_OPERATION_FAILED = "CLUSTER_OPERATION_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"

    # Collaborator errors
    ENCRYPTION_FAILED = "ENCRYPTION_FAILED"
    REMOTE_COMMAND_FAILED = "REMOTE_COMMAND_FAILED"
    METRICS_DATABASE_ERROR = "METRICS_DATABASE_ERROR"
    CONFIGURATION_NOT_FOUND = "CONFIGURATION_NOT_FOUND"


class ClusterHubError(Exception):
    """Base exception class for all registry errors.

    It carries structured error information including error codes, messages,
    and additional context details.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Standardized error code
            details: Additional error context and details
            cause: The underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

        logger.debug(f"Exception created: {error_code.value} - {message}", exc_info=cause)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for API responses."""
        result = {
            "error": self.error_code.value,
            "message": self.message,
            "details": dict(self.details)
        }

        if self.cause:
            result["details"]["cause"] = str(self.cause)
            result["details"]["cause_type"] = type(self.cause).__name__

        return result


# Registry Exceptions

class ClusterNotFoundError(ClusterHubError):
    """Raised when no definition is stored under the requested name."""

    def __init__(self, cluster_name: str, available_clusters: Optional[List[str]] = None):
        message = f"Cluster '{cluster_name}' not found"
        if available_clusters:
            message += f". Available clusters: {', '.join(available_clusters)}"
        super().__init__(
            message=message,
            error_code=ErrorCode.NOT_FOUND,
            details={"cluster_name": cluster_name}
        )
        self.cluster_name = cluster_name
        self.available_clusters = available_clusters or []


class ClusterValidationError(ClusterHubError):
    """Raised when a cluster definition fails structural validation."""

    def __init__(self, cluster_name: str, validation_errors: List[str]):
        super().__init__(
            message=f"Cluster '{cluster_name}' validation failed: {'; '.join(validation_errors)}",
            error_code=ErrorCode.VALIDATION_ERROR,
            details={
                "cluster_name": cluster_name,
                "validation_errors": validation_errors
            }
        )
        self.cluster_name = cluster_name
        self.validation_errors = validation_errors


class ClusterOperationError(ClusterHubError):
    """Raised when the authoritative step of a registry operation fails."""

    def __init__(self, cluster_name: str, operation: str, reason: str,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=f"Failed to {operation} cluster '{cluster_name}': {reason}",
            error_code=ErrorCode.CLUSTER_OPERATION_FAILED,
            details={"cluster_name": cluster_name, "operation": operation},
            cause=cause
        )
        self.cluster_name = cluster_name
        self.operation = operation
        self.reason = reason


class StorageBackendError(ClusterHubError):
    """Raised when definition store I/O fails."""

    def __init__(self, message: str, backend_type: Optional[str] = None,
                 operation: Optional[str] = None, details: Optional[Dict[str, Any]] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.STORAGE_ERROR,
            details={
                "backend_type": backend_type,
                "operation": operation,
                **(details or {})
            },
            cause=cause
        )
        self.backend_type = backend_type
        self.operation = operation


# Collaborator Exceptions

class EncryptionError(ClusterHubError):
    """Raised when a secret cannot be encrypted or decrypted."""

    def __init__(self, operation: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Secret {operation} failed: {reason}",
            error_code=ErrorCode.ENCRYPTION_FAILED,
            details={"operation": operation},
            cause=cause
        )
        self.operation = operation


class RemoteCommandError(ClusterHubError):
    """Raised when a command on a remote host fails."""

    def __init__(self, host: str, command: str, exit_code: int, stderr: str,
                 cause: Optional[Exception] = None, message: Optional[str] = None,
                 error_code: ErrorCode = ErrorCode.REMOTE_COMMAND_FAILED):
        super().__init__(
            message=message or f"Remote command on '{host}' failed with exit code {exit_code}",
            error_code=error_code,
            details={
                "host": host,
                "command": command,
                "exit_code": exit_code,
                "stderr": stderr
            },
            cause=cause
        )
        self.host = host
        self.exit_code = exit_code
        self.stderr = stderr


class RemoteCommandTimeoutError(RemoteCommandError):
    """Raised when a remote command does not finish within its timeout."""

    def __init__(self, host: str, command: str, timeout_seconds: float):
        super().__init__(
            host=host,
            command=command,
            exit_code=-1,
            stderr=f"timed out after {timeout_seconds} seconds",
            message=f"Remote command on '{host}' timed out after {timeout_seconds} seconds",
            error_code=ErrorCode.TIMEOUT
        )
        self.timeout_seconds = timeout_seconds


class MetricsDatabaseError(ClusterHubError):
    """Raised when the metrics database rejects or fails a request."""

    def __init__(self, database: str, operation: str, reason: str,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=f"Metrics database '{database}' {operation} failed: {reason}",
            error_code=ErrorCode.METRICS_DATABASE_ERROR,
            details={"database": database, "operation": operation},
            cause=cause
        )
        self.database = database
        self.operation = operation


class ConfigurationNotFoundError(ClusterHubError):
    """Raised when a cluster has no persisted monitoring configuration."""

    def __init__(self, cluster_name: str, config_name: str):
        super().__init__(
            message=f"Configuration '{config_name}' not found for cluster '{cluster_name}'",
            error_code=ErrorCode.CONFIGURATION_NOT_FOUND,
            details={"cluster_name": cluster_name, "config_name": config_name}
        )
        self.cluster_name = cluster_name
        self.config_name = config_name


class ProvisioningWarning(ClusterHubError):
    """A provisioning step failure.

    Recorded in provisioning reports and logged; never raised out of a
    registry operation.
    """

    def __init__(self, cluster_name: str, step: str, cause: Exception):
        super().__init__(
            message=f"Provisioning step '{step}' failed for cluster '{cluster_name}': {cause}",
            error_code=ErrorCode.INTERNAL_SERVER_ERROR,
            details={"cluster_name": cluster_name, "step": step},
            cause=cause
        )
        self.cluster_name = cluster_name
        self.step = step
