"""Configuration schemas and persistence helpers for the migrator."""

from .schema import InfluxSettings, MigrationSettings, MigratorConfig, RetrySettings, RuleSettings
from .store import apply_env_overrides, default_config, load_config, load_env_file, save_config

__all__ = [
    "InfluxSettings",
    "MigrationSettings",
    "MigratorConfig",
    "RetrySettings",
    "RuleSettings",
    "apply_env_overrides",
    "default_config",
    "load_config",
    "load_env_file",
    "save_config",
]
