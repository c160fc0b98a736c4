"""Extract recent user/assistant turns from a JSONL transcript."""

import json
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any

TRUNCATION_MARKER = "..."
TURN_ROLES = ("user", "assistant")


@dataclass(frozen=True)
class ContentBlock:
    """One typed block of a structured message body."""

    kind: str  # "text" | "tool_use" | "image" | ...
    payload: dict[str, Any]


@dataclass(frozen=True)
class PlainText:
    """Message body given as a single string."""

    text: str


@dataclass(frozen=True)
class Blocks:
    """Message body given as a sequence of typed blocks."""

    blocks: tuple[ContentBlock, ...] = ()


Content = PlainText | Blocks


@dataclass(frozen=True)
class Turn:
    """A role-tagged message derived from one transcript record."""

    role: str  # "user" | "assistant"
    text: str


def parse_content(raw: Any) -> Content:
    """Map a record's raw ``content`` value onto the content variant.

    Anything that is neither a string nor a list has no text.
    """
    if isinstance(raw, str):
        return PlainText(raw)
    if isinstance(raw, list):
        return Blocks(tuple(
            ContentBlock(kind=str(b.get("type", "")), payload=b)
            for b in raw
            if isinstance(b, dict)
        ))
    return Blocks()


def content_text(content: Content) -> str:
    """Return the readable text of a message body."""
    if isinstance(content, PlainText):
        return content.text
    return "\n".join(
        str(block.payload.get("text") or "")
        for block in content.blocks
        if block.kind == "text"
    )


def truncate_text(text: str, max_chars: int) -> str:
    """Cut *text* to *max_chars* characters, marking the cut with an ellipsis."""
    if len(text) > max_chars:
        return text[:max_chars] + TRUNCATION_MARKER
    return text


def parse_turn(line: str, max_chars: int) -> Turn | None:
    """Parse one transcript line into a Turn.

    Returns None for malformed lines, other roles and records without text.
    """
    try:
        entry = json.loads(line)
    except (ValueError, RecursionError):
        return None

    if not isinstance(entry, dict) or entry.get("role") not in TURN_ROLES:
        return None

    text = content_text(parse_content(entry.get("content")))
    if not text:
        return None

    return Turn(role=entry["role"], text=truncate_text(text, max_chars))


def extract_recent_turns(path: Path, message_count: int, max_chars: int) -> list[Turn]:
    """
    Return the last *message_count* qualifying turns of a transcript.

    Turns come back oldest first. An empty list means the transcript holds
    nothing worth capturing.

    Args:
        path: Transcript file (one JSON record per line).
        message_count: Maximum number of turns to keep.
        max_chars: Per-turn text limit.
    """
    recent: deque[Turn] = deque(maxlen=message_count)

    with open(path, encoding="utf-8", errors="replace") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            turn = parse_turn(line, max_chars)
            if turn is not None:
                recent.append(turn)

    return list(recent)
