"""
Core utilities for the newsreader client.

This module provides the foundation for configuration management and structured
logging across the application.
"""

from .config import Settings, get_settings, validate_env_cli
from .logging import (
    configure_logging,
    get_logger,
    with_correlation_id,
    generate_correlation_id,
    log_exception,
)

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    "validate_env_cli",
    # Logging
    "configure_logging",
    "get_logger",
    "with_correlation_id",
    "generate_correlation_id",
    "log_exception",
]
