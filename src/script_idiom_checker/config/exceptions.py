"""Configuration exceptions for the idiom checker.

This module contains exception classes used across the configuration system,
separated to avoid circular import dependencies.
"""

from script_idiom_checker.core.exceptions import CheckerError


class ConfigError(CheckerError):
    """Exception raised for configuration errors."""
