"""
Configuration management for ChainGuardian.

Loads settings from environment variables and an optional .env file.
Exposes a single source of truth for service configuration.
"""

from chainguardian.config.settings import Settings, get_settings, load_settings

__all__ = ["Settings", "get_settings", "load_settings"]
