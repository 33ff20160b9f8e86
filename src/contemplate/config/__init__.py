"""
Configuration module for Contemplate.

Uses pydantic-settings for environment variable loading.
"""

from contemplate.config.settings import LOG_LEVELS, Settings

__all__ = ["LOG_LEVELS", "Settings"]
