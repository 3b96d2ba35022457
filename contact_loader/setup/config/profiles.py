"""
Configuration profiles for different environments.

A profile is a set of environment variable defaults; explicit variables
always win unless `override_existing` is requested.
"""

from typing import Dict, List, Optional
import os
from enum import Enum


class ProfileType(str, Enum):
    """Available configuration profiles."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class ConfigurationProfile:
    """Predefined configuration profiles for different scenarios."""

    # Small batches and verbose diagnostics for local iteration
    DEVELOPMENT = {
        "ENVIRONMENT": "development",
        "IMPORT_INITIAL_BATCH_SIZE": "100",
        "IMPORT_MIN_BATCH_SIZE": "50",
        "IMPORT_MAX_BATCH_SIZE": "500",
        "IMPORT_MAX_RETRIES": "3",
        "IMPORT_REJECTION_DETAIL_CAP": "25",
        "IMPORT_STALL_NOTICE_SECONDS": "10",
        "POSTGRES_POOL_MIN_SIZE": "1",
        "POSTGRES_POOL_MAX_SIZE": "5",
    }

    # Wider band, more patient retries
    PRODUCTION = {
        "ENVIRONMENT": "production",
        "IMPORT_INITIAL_BATCH_SIZE": "200",
        "IMPORT_MIN_BATCH_SIZE": "50",
        "IMPORT_MAX_BATCH_SIZE": "500",
        "IMPORT_MAX_RETRIES": "5",
        "IMPORT_BACKOFF_BASE_SECONDS": "1.0",
        "IMPORT_BACKOFF_CAP_SECONDS": "30.0",
        "IMPORT_REJECTION_DETAIL_CAP": "10",
        "IMPORT_REJECTION_LOG_INTERVAL": "1000",
        "IMPORT_STALL_NOTICE_SECONDS": "30",
        "POSTGRES_POOL_MIN_SIZE": "2",
        "POSTGRES_POOL_MAX_SIZE": "10",
        "LOG_TO_FILE": "true",
    }

    # Fast, deterministic runs
    TESTING = {
        "ENVIRONMENT": "testing",
        "IMPORT_MAX_RETRIES": "2",
        "IMPORT_BACKOFF_BASE_SECONDS": "0",
        "IMPORT_BACKOFF_CAP_SECONDS": "0",
        "IMPORT_BACKOFF_JITTER_SECONDS": "0",
        "IMPORT_STALL_NOTICE_SECONDS": "0",
        "LOG_TO_FILE": "false",
    }


def get_profile(profile: str) -> Dict[str, str]:
    """Return the variables of a named profile."""
    try:
        return getattr(ConfigurationProfile, ProfileType(profile.lower()).name)
    except ValueError:
        available = ", ".join(p.value for p in ProfileType)
        raise ValueError(f"Unknown profile '{profile}'. Available: {available}")


def apply_profile(profile: str, override_existing: bool = False,
                  environ: Optional[Dict[str, str]] = None) -> List[str]:
    """
    Apply a profile to the environment.

    Returns:
        Names of the variables that were set.
    """
    target = os.environ if environ is None else environ
    applied = []
    for key, value in get_profile(profile).items():
        if override_existing or key not in target:
            target[key] = value
            applied.append(key)
    return applied
