"""Hook wiring: capture before compaction, inject before the next agent turn."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from compaction_context.config.loader import convert_keys
from compaction_context.config.schema import (
    PLUGIN_ID,
    Config,
    RecoveryConfig,
    resolve_recovery_config,
)
from compaction_context.recovery.outcome import (
    CaptureOutcome,
    CaptureStatus,
    InjectOutcome,
    InjectStatus,
)
from compaction_context.recovery.state import RecoveryStore
from compaction_context.transcript.extractor import extract_recent_turns
from compaction_context.transcript.locator import find_latest_transcript, get_sessions_dir

DEFAULT_AGENT_ID = "main"
BEFORE_COMPACTION = "before_compaction"
BEFORE_AGENT_START = "before_agent_start"

_TAG = f"[{PLUGIN_ID}]"


class PluginApi(Protocol):
    """What the host hands to ``register``."""

    config: Any

    def register_hook(self, name: str, handler: Callable[..., Any]) -> None: ...


@dataclass
class AgentContext:
    """Invocation context passed by the host to every hook."""

    agent_id: str | None = None
    session_key: str | None = None
    workspace_dir: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "AgentContext":
        """Build from a host payload with camelCase or snake_case keys."""
        if not data:
            return cls()
        data = convert_keys(dict(data))
        return cls(
            agent_id=data.get("agent_id") or None,
            session_key=data.get("session_key") or None,
            workspace_dir=data.get("workspace_dir") or None,
        )


def _as_context(ctx: Any) -> AgentContext:
    if isinstance(ctx, AgentContext):
        return ctx
    if isinstance(ctx, Mapping):
        return AgentContext.from_mapping(ctx)
    return AgentContext()


def _as_config(raw: Any) -> Config:
    if isinstance(raw, Config):
        return raw
    if isinstance(raw, Mapping):
        return Config.model_validate(convert_keys(dict(raw)))
    return Config()


class CompactionContextPlugin:
    """
    Carries recent turns across a compaction.

    ``before_compaction`` snapshots the last turns of the active transcript into
    the workspace and sets a pending marker. ``before_agent_start`` consumes the
    marker and hands the snapshot back as context to prepend. Neither handler
    raises: every failure is logged and turned into a no-op.
    """

    def __init__(
        self,
        config: Config,
        recovery_config: RecoveryConfig,
        home: Path | None = None,
    ):
        self.config = config
        self.recovery_config = recovery_config
        self.home = home

    def workspace_for(self, ctx: AgentContext) -> Path:
        """Resolve the workspace: context, then configured default."""
        if ctx.workspace_dir:
            return Path(ctx.workspace_dir).expanduser()
        return self.config.workspace_path

    def before_compaction(self, event: Any = None, ctx: Any = None) -> CaptureOutcome:
        """Capture the most recent turns before the host compacts history."""
        try:
            return self._capture(_as_context(ctx))
        except Exception as e:
            logger.error(f"{_TAG} Failed to capture context: {e}")
            return CaptureOutcome(CaptureStatus.FAILED, reason=str(e))

    def before_agent_start(self, event: Any = None, ctx: Any = None) -> dict[str, str] | None:
        """Return ``{"prependContext": ...}`` once after a capture, else None."""
        outcome = self.inject(ctx)
        if not outcome.injected:
            return None
        return {"prependContext": outcome.prepend_context}

    def inject(self, ctx: Any = None) -> InjectOutcome:
        """Run the consume path and report what happened."""
        try:
            store = RecoveryStore(self.workspace_for(_as_context(ctx)))
            outcome = store.consume()
        except Exception as e:
            logger.error(f"{_TAG} Failed to inject context: {e}")
            return InjectOutcome(InjectStatus.FAILED, reason=str(e))

        if outcome.injected:
            logger.info(f"{_TAG} Injecting recent context after compaction")
        return outcome

    def _capture(self, ctx: AgentContext) -> CaptureOutcome:
        workspace = self.workspace_for(ctx)
        agent_id = ctx.agent_id or DEFAULT_AGENT_ID

        logger.info(f"{_TAG} Compaction starting for {agent_id}, capturing context...")

        transcript = find_latest_transcript(get_sessions_dir(agent_id, self.home))
        if transcript is None:
            logger.warning(f"{_TAG} No session file found for {agent_id}")
            return CaptureOutcome(CaptureStatus.NO_TRANSCRIPT, reason=f"no transcript for {agent_id}")

        turns = extract_recent_turns(
            transcript,
            self.recovery_config.message_count,
            self.recovery_config.max_chars_per_message,
        )
        outcome = RecoveryStore(workspace).capture(turns)

        if outcome.status is CaptureStatus.NOTHING_TO_CAPTURE:
            logger.warning(f"{_TAG} No messages extracted from session")
        elif outcome.captured:
            logger.info(f"{_TAG} Captured {outcome.turn_count} messages to RECENT.md")
        return outcome


def register(api: PluginApi, home: Path | None = None) -> CompactionContextPlugin:
    """
    Resolve configuration once and register both hooks with the host.

    Args:
        api: Host plugin API (``config`` plus ``register_hook``).
        home: Override for the user home directory (transcript lookup).

    Returns:
        The plugin instance backing the registered handlers.
    """
    config = _as_config(getattr(api, "config", None))
    recovery_config = resolve_recovery_config(config)
    plugin = CompactionContextPlugin(config, recovery_config, home=home)

    if not config.plugin_entry.enabled:
        logger.info(f"{_TAG} Disabled in configuration, no hooks registered")
        return plugin

    logger.info(f"{_TAG} Registered (preserving {recovery_config.message_count} messages)")

    api.register_hook(BEFORE_COMPACTION, plugin.before_compaction)
    api.register_hook(BEFORE_AGENT_START, plugin.before_agent_start)
    return plugin
