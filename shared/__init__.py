"""Shared utilities and components for the telemetry service."""

from .config import BaseLoggingConfig, BaseServiceConfig
from .constants import Environment, RedisKeys

__all__ = [
    "Environment",
    "RedisKeys",
    "BaseServiceConfig",
    "BaseLoggingConfig",
]
