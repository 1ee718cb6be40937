"""
mcprouter validation module.

This module provides configuration validation and schema enforcement.
"""

from mcprouter.validation.config import Config, ConfigError

__all__ = ["Config", "ConfigError"]
