"""Core configuration and utilities for gridformula."""

from gridformula.core.config import Settings, get_settings
from gridformula.core.logging import configure_logging, get_logger, setup_logging

__all__ = ["Settings", "configure_logging", "get_logger", "get_settings", "setup_logging"]
