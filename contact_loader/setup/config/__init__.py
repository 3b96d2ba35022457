"""
Pydantic configuration system for the contact importer.
"""

import os
from typing import Optional

from .models import Environment, DatabaseConfig, ImportConfig, AppConfig
from .profiles import ConfigurationProfile, ProfileType, get_profile, apply_profile
from .loader import ConfigLoader, load_config


def get_config(profile: Optional[str] = None, env_file: Optional[str] = None) -> AppConfig:
    """
    Load the application configuration.

    Args:
        profile: Profile to apply; defaults to CONFIG_PROFILE when set.
        env_file: Optional .env file path.
    """
    return load_config(profile=profile or os.getenv("CONFIG_PROFILE"), env_file=env_file)


__all__ = [
    "Environment",
    "DatabaseConfig",
    "ImportConfig",
    "AppConfig",
    "ConfigurationProfile",
    "ProfileType",
    "get_profile",
    "apply_profile",
    "ConfigLoader",
    "load_config",
    "get_config",
]
