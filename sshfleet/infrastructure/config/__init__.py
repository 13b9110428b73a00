"""
Configuration infrastructure.

This module provides the environment description models and the loader
that reads them from JSON or YAML files.
"""

from .models import (
    ApplicationConfig,
    EndpointConfig,
    HostConfig,
    LoggingConfig,
    SSHConfig,
    split_host_port,
)
from .loader import ConfigLoader

__all__ = [
    "ApplicationConfig",
    "EndpointConfig",
    "HostConfig",
    "LoggingConfig",
    "SSHConfig",
    "split_host_port",
    "ConfigLoader",
]
