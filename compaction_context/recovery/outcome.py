"""Outcome types for the capture and inject paths."""

from dataclasses import dataclass
from enum import Enum


class CaptureStatus(Enum):
    CAPTURED = "captured"
    NO_TRANSCRIPT = "no_transcript"
    NOTHING_TO_CAPTURE = "nothing_to_capture"
    FAILED = "failed"


class InjectStatus(Enum):
    INJECTED = "injected"
    NO_MARKER = "no_marker"
    MISSING_SNAPSHOT = "missing_snapshot"
    FAILED = "failed"


@dataclass
class CaptureOutcome:
    status: CaptureStatus
    turn_count: int = 0
    reason: str | None = None

    @property
    def captured(self) -> bool:
        return self.status is CaptureStatus.CAPTURED


@dataclass
class InjectOutcome:
    status: InjectStatus
    prepend_context: str | None = None
    reason: str | None = None

    @property
    def injected(self) -> bool:
        return self.status is InjectStatus.INJECTED
