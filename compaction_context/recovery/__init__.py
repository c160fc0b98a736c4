"""Snapshot and pending-recovery marker handling."""

from compaction_context.recovery.outcome import (
    CaptureOutcome,
    CaptureStatus,
    InjectOutcome,
    InjectStatus,
)
from compaction_context.recovery.state import RecoveryStatus, RecoveryStore

__all__ = [
    "CaptureOutcome",
    "CaptureStatus",
    "InjectOutcome",
    "InjectStatus",
    "RecoveryStatus",
    "RecoveryStore",
]
