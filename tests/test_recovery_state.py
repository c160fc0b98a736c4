"""Tests for the snapshot/marker recovery store."""

import gc
import threading
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from compaction_context.recovery import state
from compaction_context.recovery.outcome import CaptureStatus, InjectStatus
from compaction_context.recovery.state import (
    MARKER_FILE,
    SNAPSHOT_FILE,
    RecoveryStore,
    render_snapshot,
    wrap_recovered_context,
)
from compaction_context.transcript.extractor import Turn

TURNS = [
    Turn("user", "which three files?"),
    Turn("assistant", "a.py, b.py and c.py"),
    Turn("user", "fix all three"),
]


class TestRenderSnapshot:
    def test_header_states_count(self):
        doc = render_snapshot(TURNS)
        assert doc.startswith("# Recent Context (Pre-Compaction Snapshot)\n")
        assert "It contains the last 3 messages" in doc

    def test_turns_prefixed_and_separated(self):
        doc = render_snapshot(TURNS)
        body = doc.split("---\n\n", 1)[1]
        assert body == (
            "**user**: which three files?\n\n"
            "**assistant**: a.py, b.py and c.py\n\n"
            "**user**: fix all three\n"
        )

    def test_chronological_order(self):
        doc = render_snapshot(TURNS)
        assert doc.index("which three") < doc.index("a.py") < doc.index("fix all")


class TestWrap:
    def test_tags(self):
        wrapped = wrap_recovered_context("body")
        assert wrapped == "\n\n<compaction_context_recovery>\nbody\n</compaction_context_recovery>\n\n"


class TestCapture:
    def test_writes_snapshot_and_marker(self, tmp_path):
        store = RecoveryStore(tmp_path)
        outcome = store.capture(TURNS)

        assert outcome.status is CaptureStatus.CAPTURED
        assert outcome.turn_count == 3
        assert (tmp_path / SNAPSHOT_FILE).read_text() == render_snapshot(TURNS)
        assert (tmp_path / MARKER_FILE).exists()

    def test_marker_holds_timestamp(self, tmp_path):
        RecoveryStore(tmp_path).capture(TURNS)
        stamp = (tmp_path / MARKER_FILE).read_text()
        assert isinstance(datetime.fromisoformat(stamp), datetime)

    def test_empty_writes_nothing(self, tmp_path):
        outcome = RecoveryStore(tmp_path).capture([])
        assert outcome.status is CaptureStatus.NOTHING_TO_CAPTURE
        assert not (tmp_path / SNAPSHOT_FILE).exists()
        assert not (tmp_path / MARKER_FILE).exists()

    def test_empty_keeps_existing_state(self, tmp_path):
        store = RecoveryStore(tmp_path)
        store.capture(TURNS)
        before = store.snapshot_path.read_text()

        store.capture([])

        assert store.marker_path.exists()
        assert store.snapshot_path.read_text() == before

    def test_overwrites_previous_snapshot(self, tmp_path):
        store = RecoveryStore(tmp_path)
        store.capture(TURNS)
        store.capture([Turn("user", "newer")])

        doc = store.snapshot_path.read_text()
        assert "newer" in doc
        assert "which three" not in doc
        assert store.marker_path.exists()

    def test_creates_workspace(self, tmp_path):
        ws = tmp_path / "deep" / "workspace"
        RecoveryStore(ws).capture(TURNS)
        assert (ws / SNAPSHOT_FILE).exists()

    def test_leaves_similarly_named_files_alone(self, tmp_path):
        (tmp_path / "RECENT.tmp").write_text("mine")
        RecoveryStore(tmp_path).capture(TURNS)
        assert (tmp_path / "RECENT.tmp").read_text() == "mine"

    def test_no_temp_file_left(self, tmp_path):
        RecoveryStore(tmp_path).capture(TURNS)
        assert sorted(p.name for p in tmp_path.iterdir()) == sorted([SNAPSHOT_FILE, MARKER_FILE])


class TestConsume:
    def test_no_marker_is_noop(self, tmp_path):
        outcome = RecoveryStore(tmp_path).consume()
        assert outcome.status is InjectStatus.NO_MARKER
        assert outcome.prepend_context is None

    def test_stale_snapshot_without_marker_not_injected(self, tmp_path):
        (tmp_path / SNAPSHOT_FILE).write_text("old stuff")
        assert RecoveryStore(tmp_path).consume().status is InjectStatus.NO_MARKER

    def test_round_trip_then_empty(self, tmp_path):
        store = RecoveryStore(tmp_path)
        store.capture(TURNS)

        first = store.consume()
        assert first.injected
        for turn in TURNS:
            assert f"**{turn.role}**: {turn.text}" in first.prepend_context
        assert first.prepend_context.strip().startswith("<compaction_context_recovery>")

        second = store.consume()
        assert second.status is InjectStatus.NO_MARKER

    def test_snapshot_left_in_place(self, tmp_path):
        store = RecoveryStore(tmp_path)
        store.capture(TURNS)
        store.consume()
        assert store.snapshot_path.exists()
        assert not store.marker_path.exists()

    def test_missing_snapshot_clears_marker(self, tmp_path):
        (tmp_path / MARKER_FILE).write_text("2026-01-01T00:00:00+00:00")
        store = RecoveryStore(tmp_path)

        outcome = store.consume()

        assert outcome.status is InjectStatus.MISSING_SNAPSHOT
        assert not store.marker_path.exists()
        assert store.consume().status is InjectStatus.NO_MARKER

    def test_marker_cleared_even_if_read_fails(self, tmp_path):
        store = RecoveryStore(tmp_path)
        store.capture(TURNS)

        with (
            patch("pathlib.Path.read_text", side_effect=PermissionError("denied")),
            pytest.raises(PermissionError),
        ):
            store.consume()

        assert not store.marker_path.exists()

    def test_stores_share_workspace_lock(self, tmp_path):
        first = RecoveryStore(tmp_path)
        second = RecoveryStore(Path(str(tmp_path)))
        assert first._lock is second._lock

    def test_lock_released_with_last_store(self, tmp_path):
        store = RecoveryStore(tmp_path)
        key = tmp_path.resolve()
        assert key in state._locks
        del store
        gc.collect()
        assert key not in state._locks

    def test_capture_waits_for_consume(self, tmp_path):
        store = RecoveryStore(tmp_path)
        store.capture(TURNS)
        writer = RecoveryStore(tmp_path)
        late = threading.Thread(target=writer.capture, args=([Turn("user", "late capture")],))
        clear_marker = RecoveryStore._clear_marker

        def clear_then_capture(self):
            cleared = clear_marker(self)
            late.start()
            late.join(timeout=0.2)
            return cleared

        with patch.object(RecoveryStore, "_clear_marker", clear_then_capture):
            outcome = store.consume()
        late.join(timeout=5)

        assert "fix all three" in outcome.prepend_context
        assert "late capture" not in outcome.prepend_context
        assert not late.is_alive()
        assert store.marker_path.exists()
        assert "late capture" in store.consume().prepend_context

    def test_capture_blocked_while_lock_held(self, tmp_path):
        store = RecoveryStore(tmp_path)
        late = threading.Thread(target=store.capture, args=(TURNS,))
        with store._lock:
            late.start()
            late.join(timeout=0.2)
            assert late.is_alive()
            assert not store.snapshot_path.exists()
        late.join(timeout=5)
        assert store.marker_path.exists()


class TestStatus:
    def test_empty_workspace(self, tmp_path):
        info = RecoveryStore(tmp_path).status()
        assert info.pending is False
        assert info.snapshot_exists is False
        assert info.marked_at is None

    def test_after_capture(self, tmp_path):
        store = RecoveryStore(tmp_path)
        store.capture(TURNS)
        info = store.status()
        assert info.pending is True
        assert info.marked_at is not None
        assert info.snapshot_exists is True
        assert info.snapshot_updated_at is not None

    def test_does_not_consume(self, tmp_path):
        store = RecoveryStore(tmp_path)
        store.capture(TURNS)
        store.status()
        assert store.consume().injected

    def test_unreadable_timestamp(self, tmp_path):
        (tmp_path / MARKER_FILE).write_text("garbage")
        info = RecoveryStore(tmp_path).status()
        assert info.pending is True
        assert info.marked_at is None
