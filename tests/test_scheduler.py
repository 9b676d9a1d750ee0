"""Tests for the frame schedulers."""

import logging

import pytest

from routeplot.scheduler import ManualFrameScheduler, UpdateScheduler


@pytest.fixture
def updates(frames):
    return UpdateScheduler(frames, batch_size=50)


class TestManualFrameScheduler:
    """Tests for ManualFrameScheduler."""

    def test_step_runs_due_callbacks(self, frames):
        ran = []
        frames.schedule_once(lambda: ran.append(1))
        frames.schedule_once(lambda: ran.append(2))
        assert frames.step() == 2
        assert ran == [1, 2]
        assert frames.frame == 1

    def test_callbacks_scheduled_during_step_wait(self, frames):
        ran = []
        frames.schedule_once(lambda: frames.schedule_once(lambda: ran.append("later")))
        frames.step()
        assert ran == []
        assert frames.pending == 1
        frames.step()
        assert ran == ["later"]

    def test_cancel(self, frames):
        ran = []
        handle = frames.schedule_once(lambda: ran.append(1))
        frames.cancel(handle)
        assert frames.step() == 0
        assert ran == []

    def test_run_until_idle_limit(self, frames):
        def forever():
            frames.schedule_once(forever)

        frames.schedule_once(forever)
        with pytest.raises(RuntimeError):
            frames.run_until_idle(max_frames=5)


class TestUpdateScheduler:
    """Tests for UpdateScheduler."""

    def test_invalid_batch_size(self, frames):
        with pytest.raises(ValueError):
            UpdateScheduler(frames, batch_size=0)

    def test_batch_limit_per_frame(self, frames, updates):
        ran = []
        for i in range(120):
            updates.enqueue(i, lambda i=i: ran.append(i))
        assert updates.pending_count == 120

        per_frame = []
        while frames.pending:
            before = len(ran)
            frames.step()
            per_frame.append(len(ran) - before)

        assert per_frame == [50, 50, 20]
        assert ran == list(range(120))
        assert updates.processed_count == 120
        assert not updates.is_flushing

    def test_last_write_wins(self, frames, updates):
        ran = []
        updates.enqueue("k", lambda: ran.append("first"))
        updates.enqueue("k", lambda: ran.append("second"))
        assert updates.pending_count == 1
        frames.run_until_idle()
        assert ran == ["second"]

    def test_enqueue_during_flush_waits_for_next_flush(self, frames, updates):
        ran = []

        def first():
            ran.append("first")
            updates.enqueue("late", lambda: ran.append("late"))

        updates.enqueue("first", first)
        frames.step()
        assert ran == ["first"]
        assert updates.pending_count == 1
        frames.step()
        assert ran == ["first", "late"]

    def test_failure_is_logged_and_chunk_continues(self, frames, updates, caplog):
        ran = []

        def boom():
            raise RuntimeError("boom")

        updates.enqueue("a", lambda: ran.append("a"))
        updates.enqueue("bad", boom)
        updates.enqueue("c", lambda: ran.append("c"))
        with caplog.at_level(logging.ERROR, logger="routeplot.scheduler"):
            frames.run_until_idle()

        assert ran == ["a", "c"]
        assert updates.failed_count == 1
        assert updates.processed_count == 2
        assert "'bad'" in caplog.text

    def test_cancel_pending(self, frames, updates):
        ran = []
        updates.enqueue("a", lambda: ran.append("a"))
        updates.enqueue("b", lambda: ran.append("b"))
        assert updates.cancel("a")
        assert not updates.cancel("missing")
        frames.run_until_idle()
        assert ran == ["b"]

    def test_cancel_last_item_unschedules(self, frames, updates):
        updates.enqueue("a", lambda: None)
        updates.cancel("a")
        assert frames.pending == 0

    def test_cancel_during_flush(self, frames):
        updates = UpdateScheduler(frames, batch_size=1)
        ran = []
        updates.enqueue("a", lambda: ran.append("a"))
        updates.enqueue("b", lambda: ran.append("b"))
        frames.step()
        updates.cancel("b")
        frames.run_until_idle()
        assert ran == ["a"]

    def test_cancel_all(self, frames, updates):
        ran = []
        updates.enqueue("a", lambda: ran.append("a"))
        updates.cancel_all()
        frames.run_until_idle()
        assert ran == []
        assert updates.pending_count == 0
