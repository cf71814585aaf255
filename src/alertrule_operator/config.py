"""
Centralized configuration for the AlertRule operator.

Uses Pydantic BaseSettings for environment variable integration
and validation. All configurable values should be defined here.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (ALERTRULE_OPERATOR_*)
3. .env file
4. Default values

Example:
    from alertrule_operator.config import get_config

    config = get_config()
    print(config.artifact_backend)  # From ALERTRULE_OPERATOR_ARTIFACT_BACKEND or default

    # Override at runtime
    config = get_config(artifact_backend="configmap")
"""

from __future__ import annotations

import os
import re
from typing import Dict, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LABEL_KEY = re.compile(r"^([a-z0-9.-]+/)?[A-Za-z0-9]([A-Za-z0-9_.-]*[A-Za-z0-9])?$")


class OperatorConfig(BaseSettings):
    """
    Central configuration for the operator.

    All settings can be overridden via environment variables
    prefixed with ALERTRULE_OPERATOR_.

    Example:
        export ALERTRULE_OPERATOR_ARTIFACT_BACKEND=configmap
        export ALERTRULE_OPERATOR_SELECTOR_LABELS='{"release": "kube-prometheus"}'
    """

    model_config = SettingsConfigDict(
        env_prefix="ALERTRULE_OPERATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Operator identity
    operator_name: str = Field(
        default="alert-rule-operator",
        description="Value of the managed-by marker stamped on everything the operator renders",
    )

    # Artifact rendering
    artifact_backend: Literal["prometheusrule", "configmap"] = Field(
        default="prometheusrule",
        description="Artifact format the AlertRule reconciler writes",
    )
    selector_labels: Dict[str, str] = Field(
        default_factory=lambda: {"release": "prometheus"},
        description="Labels the Prometheus rule selector matches on",
    )

    # Default AlertRule synthesized per Deployment
    default_for: str = Field(
        default="1m",
        description="Pending duration of the default PodDown alert",
    )
    default_severity: Literal["critical", "warning", "info"] = Field(
        default="critical",
        description="Severity of the default PodDown alert",
    )

    # Storage backend
    store_type: Literal["kubernetes", "memory"] = Field(
        default="kubernetes",
        description="Object store backend",
    )

    # Kubernetes
    kubernetes_namespace: Optional[str] = Field(
        default=None,
        description="Namespace to watch (all namespaces if not set)",
    )
    kubeconfig: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file (in-cluster config if not set)",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level for the operator",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format (json for Loki, text for console)",
    )

    # Retry policy handed to the event framework
    requeue_delay_seconds: int = Field(
        default=10,
        ge=1,
        description="Delay before retrying after a transient store error",
    )
    deletion_retry_attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts for a deletion-path reconcile, which the event framework never retries",
    )
    render_error_backoff_seconds: int = Field(
        default=300,
        ge=1,
        description="Delay before retrying an AlertRule whose spec failed to render",
    )

    @field_validator("selector_labels")
    @classmethod
    def validate_label_keys(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Reject selector label keys Kubernetes would refuse."""
        for key in v:
            if not _LABEL_KEY.match(key):
                raise ValueError(f"Invalid label key: {key!r}")
        return v

    @field_validator("kubeconfig")
    @classmethod
    def expand_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand ~ and environment variables in paths."""
        if v is None:
            return v
        return os.path.expanduser(os.path.expandvars(v))


# Global singleton
_config: Optional[OperatorConfig] = None


def get_config(**overrides) -> OperatorConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.

    Args:
        **overrides: Override any config values

    Returns:
        OperatorConfig instance
    """
    global _config

    if overrides or _config is None:
        _config = OperatorConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
