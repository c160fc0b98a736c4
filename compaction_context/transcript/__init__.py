"""Reading host session transcripts."""

from compaction_context.transcript.extractor import Turn, extract_recent_turns
from compaction_context.transcript.locator import find_latest_transcript, get_sessions_dir

__all__ = [
    "Turn",
    "extract_recent_turns",
    "find_latest_transcript",
    "get_sessions_dir",
]
