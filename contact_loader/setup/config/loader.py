"""
Configuration loader with environment variable mapping.
"""

from typing import Optional
import os
import logging
from dotenv import load_dotenv

from .models import AppConfig, DatabaseConfig, Environment, ImportConfig

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Configuration loader with environment variable mapping and validation."""

    def __init__(self, env_file: Optional[str] = None):
        """
        Args:
            env_file: Path to .env file (defaults to .env in current directory)
        """
        self.env_file = env_file or ".env"

    def load_configuration(self, profile: Optional[str] = None) -> AppConfig:
        """
        Load configuration from environment variables.

        Args:
            profile: Optional profile name applied before reading variables

        Returns:
            Validated AppConfig instance
        """
        self._load_env_file()

        if profile:
            self._apply_profile(profile)

        return AppConfig(
            environment=self._load_environment(),
            database=self._load_database_config("POSTGRES"),
            importing=self._load_import_config(),
        )

    def _load_env_file(self):
        if os.path.exists(self.env_file):
            load_dotenv(self.env_file, override=False)
            logger.debug(f"Loaded environment variables from {self.env_file}")

    def _apply_profile(self, profile: str):
        from .profiles import apply_profile
        applied = apply_profile(profile, override_existing=False)
        logger.info(f"Applied profile '{profile}' with {len(applied)} variables")

    def _load_environment(self) -> Environment:
        env_str = os.getenv("ENVIRONMENT", "development").lower()
        if env_str in Environment.__members__.values():
            return Environment(env_str)
        logger.warning(f"Unknown ENVIRONMENT '{env_str}', falling back to development")
        return Environment.DEVELOPMENT

    def _load_database_config(self, prefix: str) -> DatabaseConfig:
        """Load database configuration from environment variables."""
        acquire_timeout = os.getenv(f"{prefix}_ACQUIRE_TIMEOUT", "30")
        return DatabaseConfig(
            host=os.getenv(f"{prefix}_HOST", "localhost"),
            port=int(os.getenv(f"{prefix}_PORT", "5432")),
            user=os.getenv(f"{prefix}_USER", "postgres"),
            password=os.getenv(f"{prefix}_PASSWORD", "postgres"),
            database_name=os.getenv(f"{prefix}_DBNAME", "contacts"),
            pool_min_size=int(os.getenv(f"{prefix}_POOL_MIN_SIZE", "1")),
            pool_max_size=int(os.getenv(f"{prefix}_POOL_MAX_SIZE", "10")),
            command_timeout=float(os.getenv(f"{prefix}_COMMAND_TIMEOUT", "60")),
            acquire_timeout=float(acquire_timeout) if acquire_timeout else None,
        )

    def _load_import_config(self) -> ImportConfig:
        """Load streaming import settings (IMPORT_* variables)."""
        defaults = ImportConfig()
        return ImportConfig(
            table_name=os.getenv("IMPORT_TABLE_NAME", defaults.table_name),
            initial_batch_size=int(os.getenv("IMPORT_INITIAL_BATCH_SIZE", defaults.initial_batch_size)),
            min_batch_size=int(os.getenv("IMPORT_MIN_BATCH_SIZE", defaults.min_batch_size)),
            max_batch_size=int(os.getenv("IMPORT_MAX_BATCH_SIZE", defaults.max_batch_size)),
            growth_factor=float(os.getenv("IMPORT_GROWTH_FACTOR", defaults.growth_factor)),
            growth_interval=int(os.getenv("IMPORT_GROWTH_INTERVAL", defaults.growth_interval)),
            shrink_factor=float(os.getenv("IMPORT_SHRINK_FACTOR", defaults.shrink_factor)),
            max_retries=int(os.getenv("IMPORT_MAX_RETRIES", defaults.max_retries)),
            backoff_base_seconds=float(os.getenv("IMPORT_BACKOFF_BASE_SECONDS", defaults.backoff_base_seconds)),
            backoff_cap_seconds=float(os.getenv("IMPORT_BACKOFF_CAP_SECONDS", defaults.backoff_cap_seconds)),
            backoff_jitter_seconds=float(
                os.getenv("IMPORT_BACKOFF_JITTER_SECONDS", defaults.backoff_jitter_seconds)
            ),
            write_mode=os.getenv("IMPORT_WRITE_MODE", defaults.write_mode),
            max_bind_parameters=int(os.getenv("IMPORT_MAX_BIND_PARAMETERS", defaults.max_bind_parameters)),
            record_concurrency=int(os.getenv("IMPORT_RECORD_CONCURRENCY", defaults.record_concurrency)),
            chunk_failure_ratio=float(os.getenv("IMPORT_CHUNK_FAILURE_RATIO", defaults.chunk_failure_ratio)),
            rejection_detail_cap=int(os.getenv("IMPORT_REJECTION_DETAIL_CAP", defaults.rejection_detail_cap)),
            rejection_log_interval=int(
                os.getenv("IMPORT_REJECTION_LOG_INTERVAL", defaults.rejection_log_interval)
            ),
            progress_log_interval=int(os.getenv("IMPORT_PROGRESS_LOG_INTERVAL", defaults.progress_log_interval)),
            stall_notice_seconds=float(os.getenv("IMPORT_STALL_NOTICE_SECONDS", defaults.stall_notice_seconds)),
            queue_size=int(os.getenv("IMPORT_QUEUE_SIZE", defaults.queue_size)),
            read_chunk_size=int(os.getenv("IMPORT_READ_CHUNK_SIZE", defaults.read_chunk_size)),
            delimiter=os.getenv("IMPORT_DELIMITER", defaults.delimiter),
            encoding=os.getenv("IMPORT_ENCODING", defaults.encoding),
            max_field_length=int(os.getenv("IMPORT_MAX_FIELD_LENGTH", defaults.max_field_length)),
            denylist_pattern=os.getenv("IMPORT_DENYLIST_PATTERN", defaults.denylist_pattern),
        )

_config_loader: Optional[ConfigLoader] = None

def get_config_loader(env_file: Optional[str] = None) -> ConfigLoader:
    """Get or create the global configuration loader instance."""
    global _config_loader

    if _config_loader is None or env_file is not None:
        _config_loader = ConfigLoader(env_file=env_file)

    return _config_loader

def load_config(profile: Optional[str] = None, env_file: Optional[str] = None) -> AppConfig:
    """Convenience function to load configuration."""
    return get_config_loader(env_file=env_file).load_configuration(profile=profile)
