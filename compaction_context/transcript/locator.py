"""Locate the active session transcript for an agent."""

from pathlib import Path

from compaction_context.config.loader import get_openclaw_home

TRANSCRIPT_SUFFIX = ".jsonl"
INDEX_MARKER = "sessions.json"  # Session index, lists sessions but holds no turns


def get_sessions_dir(agent_id: str, home: Path | None = None) -> Path:
    """Return ``~/.openclaw/agents/<agent_id>/sessions``."""
    return get_openclaw_home(home) / "agents" / agent_id / "sessions"


def _is_transcript(path: Path) -> bool:
    return (
        path.name.endswith(TRANSCRIPT_SUFFIX)
        and INDEX_MARKER not in path.name
        and path.is_file()
    )


def find_latest_transcript(sessions_dir: Path) -> Path | None:
    """Return the most recently modified transcript in *sessions_dir*.

    Returns None when the directory does not exist or holds no transcript.
    """
    if not sessions_dir.is_dir():
        return None

    candidates = [p for p in sessions_dir.iterdir() if _is_transcript(p)]
    if not candidates:
        return None

    return max(candidates, key=lambda p: p.stat().st_mtime)
