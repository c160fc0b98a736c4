"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

PLUGIN_ID = "compaction-context"
DEFAULT_WORKSPACE = "~/.openclaw/workspace"


class RecoveryConfig(BaseModel):
    """Options for the compaction-context plugin."""
    message_count: int = Field(default=20, gt=0)  # Turns kept in the snapshot
    max_chars_per_message: int = Field(default=500, gt=0)  # Per-turn truncation limit


class PluginEntry(BaseModel):
    """A single plugin entry in the host configuration."""
    enabled: bool = True
    config: dict[str, Any] = Field(default_factory=dict)


class PluginsConfig(BaseModel):
    """Plugin entries keyed by plugin id."""
    entries: dict[str, Any] = Field(default_factory=dict)  # Only our own entry is validated, in Config.plugin_entry


class AgentDefaults(BaseModel):
    """Default agent configuration."""
    workspace: str = DEFAULT_WORKSPACE


class AgentsConfig(BaseModel):
    """Agent configuration."""
    defaults: AgentDefaults = Field(default_factory=AgentDefaults)


class Config(BaseSettings):
    """Root configuration, mirroring the parts of the host config we read."""
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)

    model_config = SettingsConfigDict(
        env_prefix="COMPACTION_CONTEXT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @property
    def workspace_path(self) -> Path:
        """Get expanded default workspace path."""
        return Path(self.agents.defaults.workspace).expanduser()

    @property
    def plugin_entry(self) -> PluginEntry:
        """Get this plugin's entry, or an empty enabled one if missing or invalid."""
        raw = self.plugins.entries.get(PLUGIN_ID)
        if raw is None:
            return PluginEntry()
        try:
            return PluginEntry.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Invalid {PLUGIN_ID} entry, using defaults: {e.errors()[0]['msg']}")
            return PluginEntry()


def resolve_recovery_config(config: Config) -> RecoveryConfig:
    """Build the plugin options from the host config.

    Each field is validated on its own: an invalid value is reported and
    replaced by its default instead of discarding the whole block.
    """
    from compaction_context.config.loader import convert_keys

    raw = convert_keys(config.plugin_entry.config)
    values: dict[str, Any] = {}

    for name in RecoveryConfig.model_fields:
        if name not in raw:
            continue
        try:
            RecoveryConfig.model_validate({name: raw[name]})
        except ValidationError as e:
            default = RecoveryConfig.model_fields[name].default
            logger.warning(
                f"Invalid value for {name}: {raw[name]!r}, using default {default} "
                f"({e.errors()[0]['msg']})"
            )
            continue
        values[name] = raw[name]

    return RecoveryConfig.model_validate(values)
