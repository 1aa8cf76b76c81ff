"""Configuration management.

This module provides configuration management through:
- RuntimeConfig: Runtime configuration from env vars, files, and CLI flags
- OutputFormat: Enum for report output formats
- ConfigError: Exception for configuration errors
"""

from script_idiom_checker.config.exceptions import ConfigError
from script_idiom_checker.config.runtime_config import OutputFormat, RuntimeConfig

__all__ = ["ConfigError", "OutputFormat", "RuntimeConfig"]
