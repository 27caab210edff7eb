"""Shared configuration base classes.

Common settings every process in the deployment reads the same way, kept
here so the service settings only declare what is specific to them.
"""

from pydantic_settings import BaseSettings


class BaseLoggingConfig(BaseSettings):
    """Common logging configuration."""

    app_log_level: str = "INFO"
    app_log_redaction_patterns: list[str] = [
        "password",
        "token",
        "secret",
        "salt",
        "authorization",
        "cookie",
    ]
    app_environment: str = "production"


class BaseServiceConfig(BaseLoggingConfig):
    """Base configuration for a deployable service.

    The otel_service_name doubles as the `service` field of every JSON log
    line and should be overridden by each service.
    """

    otel_service_name: str = "unknown"


__all__ = ["BaseLoggingConfig", "BaseServiceConfig"]
