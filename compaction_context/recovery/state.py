"""Durable snapshot/marker state for one workspace."""

import threading
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from compaction_context.recovery.outcome import (
    CaptureOutcome,
    CaptureStatus,
    InjectOutcome,
    InjectStatus,
)
from compaction_context.transcript.extractor import Turn

SNAPSHOT_FILE = "RECENT.md"
MARKER_FILE = ".compaction-recovery-pending"
RECOVERY_TAG = "compaction_context_recovery"

# Entries live only while some store on that workspace holds the lock.
_locks: "weakref.WeakValueDictionary[Path, threading.Lock]" = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


def _workspace_lock(workspace: Path) -> threading.Lock:
    """Return the lock shared by every store on the same workspace."""
    key = workspace.expanduser().resolve()
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _locks[key] = lock
        return lock


def render_snapshot(turns: list[Turn]) -> str:
    """Render turns as the markdown snapshot document."""
    body = "\n\n".join(f"**{t.role}**: {t.text}" for t in turns)
    return (
        "# Recent Context (Pre-Compaction Snapshot)\n"
        "\n"
        "*This file was auto-generated before compaction. "
        f"It contains the last {len(turns)} messages for context continuity.*\n"
        "\n"
        "---\n"
        "\n"
        f"{body}\n"
    )


def wrap_recovered_context(snapshot: str) -> str:
    """Wrap snapshot text in the tags that mark it as recovered context."""
    return f"\n\n<{RECOVERY_TAG}>\n{snapshot}\n</{RECOVERY_TAG}>\n\n"


@dataclass
class RecoveryStatus:
    """Read-only view of a workspace's recovery state."""

    workspace: Path
    pending: bool
    marked_at: datetime | None = None
    snapshot_exists: bool = False
    snapshot_updated_at: datetime | None = None


class RecoveryStore:
    """
    Owns the snapshot (``RECENT.md``) and the pending-recovery marker.

    The marker's existence means a snapshot was captured and has not been
    injected yet. Capture writes the snapshot first, then the marker; consume
    deletes the marker first, then reads the snapshot, so a snapshot is
    injected at most once.
    """

    def __init__(self, workspace: Path):
        self.workspace = workspace
        self.snapshot_path = workspace / SNAPSHOT_FILE
        self.marker_path = workspace / MARKER_FILE
        self._lock = _workspace_lock(workspace)

    def capture(self, turns: list[Turn]) -> CaptureOutcome:
        """Write the snapshot and set the marker. Empty input writes nothing."""
        if not turns:
            return CaptureOutcome(CaptureStatus.NOTHING_TO_CAPTURE, reason="no turns")

        with self._lock:
            self.workspace.mkdir(parents=True, exist_ok=True)
            self._write_atomic(self.snapshot_path, render_snapshot(turns))
            self.marker_path.write_text(
                datetime.now(timezone.utc).isoformat(), encoding="utf-8"
            )

        logger.debug(f"Snapshot of {len(turns)} turns written to {self.snapshot_path}")
        return CaptureOutcome(CaptureStatus.CAPTURED, turn_count=len(turns))

    def consume(self) -> InjectOutcome:
        """Clear the marker and return the snapshot wrapped for injection."""
        with self._lock:
            if not self._clear_marker():
                return InjectOutcome(InjectStatus.NO_MARKER)

            # Marker is gone from here on; a failed read is not retried.
            if not self.snapshot_path.exists():
                logger.warning(f"Recovery marker was set but {SNAPSHOT_FILE} not found")
                return InjectOutcome(
                    InjectStatus.MISSING_SNAPSHOT, reason=f"{self.snapshot_path} missing"
                )
            snapshot = self.snapshot_path.read_text(encoding="utf-8")

        return InjectOutcome(
            InjectStatus.INJECTED, prepend_context=wrap_recovered_context(snapshot)
        )

    def status(self) -> RecoveryStatus:
        """Inspect marker and snapshot without changing either."""
        info = RecoveryStatus(workspace=self.workspace, pending=self.marker_path.exists())

        if info.pending:
            try:
                raw = self.marker_path.read_text(encoding="utf-8").strip()
                info.marked_at = datetime.fromisoformat(raw)
            except (OSError, ValueError):
                info.marked_at = None

        if self.snapshot_path.exists():
            info.snapshot_exists = True
            info.snapshot_updated_at = datetime.fromtimestamp(
                self.snapshot_path.stat().st_mtime, tz=timezone.utc
            )

        return info

    def _clear_marker(self) -> bool:
        """Delete the marker; True if it was present."""
        try:
            self.marker_path.unlink()
        except FileNotFoundError:
            return False
        return True

    @staticmethod
    def _write_atomic(path: Path, content: str) -> None:
        temp = path.with_name(f".{path.name}.tmp")
        temp.write_text(content, encoding="utf-8")
        temp.replace(path)
