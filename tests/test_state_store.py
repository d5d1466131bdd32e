# tests/test_state_store.py
"""
Tests for fscrawl.state.store.

Key behaviors:
1. Absent state reads as None
2. The watermark is the run start minus the safety margin, never moving backwards
3. Counters accumulate across runs
4. Writes are atomic; a failed write leaves the previous record intact
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from fscrawl.exceptions import StateStoreError
from fscrawl.state.store import (
    SAFETY_MARGIN,
    STATUS_FILENAME,
    RunState,
    RunStateStore,
    compute_watermark,
)

T0 = datetime(2026, 10, 19, 8, 0, 0, 750000, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    return RunStateStore(tmp_path / "config")


class TestWatermark:
    """compute_watermark."""

    def test_rounds_down_and_subtracts_margin(self):
        assert compute_watermark(T0) == datetime(2026, 10, 19, 7, 59, 58, tzinfo=timezone.utc)
        assert compute_watermark(T0) < T0 - SAFETY_MARGIN + timedelta(seconds=1)

    def test_naive_datetimes_are_utc(self):
        naive = datetime(2026, 1, 1, 12, 0, 0)
        assert compute_watermark(naive).tzinfo is not None


class TestRunStateStore:
    """Read, write, update and clean."""

    def test_absent_state_is_none(self, store):
        assert store.read("docs") is None

    def test_write_then_read(self, store):
        state = RunState(name="docs", lastrun=T0, indexed=3, deleted=1)
        store.write(state)

        loaded = store.read("docs")
        assert loaded == state
        assert store.path_for("docs").name == STATUS_FILENAME
        assert store.path_for("docs").parent.name == "docs"

    def test_file_is_plain_json(self, store):
        store.write(RunState(name="docs", lastrun=T0, indexed=2))
        data = json.loads(store.path_for("docs").read_text(encoding="utf-8"))
        assert data["name"] == "docs"
        assert data["indexed"] == 2
        assert data["lastrun"].startswith("2026-10-19T08:00:00")

    def test_update_applies_margin(self, store):
        state = store.update("docs", started_at=T0, indexed=5, deleted=0)
        assert state.lastrun == T0.replace(microsecond=0) - SAFETY_MARGIN
        assert state.lastrun != T0
        assert store.read("docs") == state

    def test_update_accumulates_counters(self, store):
        store.update("docs", started_at=T0, indexed=5, deleted=1)
        state = store.update("docs", started_at=T0 + timedelta(minutes=15), indexed=2, deleted=3)
        assert state.indexed == 7
        assert state.deleted == 4

    def test_watermark_never_moves_backwards(self, store):
        first = store.update("docs", started_at=T0, indexed=0, deleted=0)
        second = store.update("docs", started_at=T0 - timedelta(hours=1), indexed=0, deleted=0)
        assert second.lastrun == first.lastrun

    def test_next_check_is_kept(self, store):
        state = store.update(
            "docs", started_at=T0, indexed=0, deleted=0, next_check=T0 + timedelta(minutes=15)
        )
        assert store.read("docs").next_check == state.next_check

    def test_clean(self, store):
        store.update("docs", started_at=T0, indexed=1, deleted=0)
        assert store.clean("docs") is True
        assert store.read("docs") is None
        assert store.clean("docs") is False

    def test_jobs(self, store):
        store.update("a", started_at=T0, indexed=0, deleted=0)
        store.update("b", started_at=T0, indexed=0, deleted=0)
        assert store.jobs() == ["a", "b"]

    def test_corrupt_file_raises(self, store):
        path = store.path_for("docs")
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StateStoreError):
            store.read("docs")


class TestAtomicWrite:
    """A crash during write keeps the previous state."""

    def test_failed_replace_keeps_previous_state(self, store, monkeypatch):
        store.write(RunState(name="docs", lastrun=T0, indexed=1))

        def boom(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("fscrawl.state.store.os.replace", boom)
        with pytest.raises(StateStoreError):
            store.write(RunState(name="docs", lastrun=T0 + timedelta(hours=1), indexed=99))

        monkeypatch.undo()
        assert store.read("docs").indexed == 1
        leftovers = [p.name for p in store.path_for("docs").parent.iterdir()]
        assert leftovers == [STATUS_FILENAME]
