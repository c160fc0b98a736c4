"""Configuration loading and schema."""

from compaction_context.config.loader import get_config_path, load_config
from compaction_context.config.schema import Config, RecoveryConfig, resolve_recovery_config

__all__ = [
    "Config",
    "RecoveryConfig",
    "get_config_path",
    "load_config",
    "resolve_recovery_config",
]
