"""
Logging infrastructure for the application.

This module provides centralized logging configuration for the entire
application.
"""

from .setup import setup_logging, InterceptHandler

__all__ = [
    "setup_logging",
    "InterceptHandler",
]
