"""Centralized operator settings using pydantic-settings.

This module provides a single source of truth for all operator configuration
loaded from environment variables. Uses pydantic for automatic validation,
type coercion, and documentation.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from konflux_operator.constants import (
    DEFAULT_API_REQUEST_TIMEOUT,
    DEFAULT_DEPENDENCY_RETRY_DELAY,
    DEFAULT_RECONCILIATION_TIMEOUT,
)


class Settings(BaseSettings):
    """Operator configuration loaded from environment variables.

    All settings have sensible defaults for production use. Override via
    environment variables as documented per field.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Operator identification
    operator_name: str = Field(
        default="konflux-operator",
        description="Name of the operator deployment",
        validation_alias="OPERATOR_NAME",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for request tracing",
    )

    # Manifest bundles
    manifests_dir: Path | None = Field(
        default=None,
        validation_alias="KONFLUX_MANIFESTS_DIR",
        description="Directory holding <component>/manifests.yaml bundles "
        "(empty = bundles shipped with the package)",
    )

    # Kubernetes API behavior
    api_request_timeout_seconds: float = Field(
        default=DEFAULT_API_REQUEST_TIMEOUT,
        validation_alias="KONFLUX_API_REQUEST_TIMEOUT_SECONDS",
        description="Upper bound for a single Kubernetes API request",
    )
    force_apply_conflicts: bool = Field(
        default=False,
        validation_alias="KONFLUX_FORCE_APPLY_CONFLICTS",
        description="Force field ownership on server-side apply instead of "
        "surfacing conflicts with other field managers",
    )

    # Reconciliation behavior
    reconcile_timeout_seconds: float = Field(
        default=DEFAULT_RECONCILIATION_TIMEOUT,
        validation_alias="KONFLUX_RECONCILE_TIMEOUT_SECONDS",
        description="Deadline for one reconciliation, propagated to every API call",
    )
    dependency_retry_delay_seconds: int = Field(
        default=DEFAULT_DEPENDENCY_RETRY_DELAY,
        validation_alias="KONFLUX_DEPENDENCY_RETRY_DELAY_SECONDS",
        description="Requeue delay while a required CRD is not installed",
    )


# Global settings instance - initialized once at module import
settings = Settings()
