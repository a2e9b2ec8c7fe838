from __future__ import annotations

from cuesync.live.progress import ProgressTracker


class _Gate:
    def __init__(self, open_: bool) -> None:
        self.open = open_

    def is_open(self, now=None) -> bool:
        return self.open


def test_live_chars_follow_snapshot_and_never_shrink() -> None:
    tracker = ProgressTracker(100)
    assert tracker.accept("hello")
    assert tracker.live_chars == 5
    assert tracker.accept("hello there")
    assert tracker.live_chars == 11
    # recognizer revised the tail to something shorter
    assert tracker.accept("hello the")
    assert tracker.live_chars == 11
    assert tracker.total_progress == 11


def test_session_end_commits_live_chars() -> None:
    tracker = ProgressTracker(100)
    tracker.accept("first session")
    assert tracker.end_session() == 13
    assert tracker.committed_chars == 13
    assert tracker.live_chars == 0
    tracker.accept("second")
    assert tracker.total_progress == 19
    tracker.end_session()
    assert tracker.committed_chars == 19


def test_closed_gate_discards_snapshot() -> None:
    gate = _Gate(False)
    tracker = ProgressTracker(100, gate)
    assert tracker.accept("background chatter") is False
    assert tracker.total_progress == 0
    assert tracker.discarded == 1
    gate.open = True
    assert tracker.accept("real words") is True
    assert tracker.total_progress == 10


def test_scroll_ratio_is_capped() -> None:
    tracker = ProgressTracker(10)
    tracker.accept("x" * 5)
    assert tracker.scroll_ratio == 0.5
    tracker.accept("x" * 25)
    assert tracker.scroll_ratio == 1.0


def test_empty_script_has_zero_ratio() -> None:
    tracker = ProgressTracker(0)
    tracker.accept("anything")
    assert tracker.scroll_ratio == 0.0


def test_manual_advance_and_reset() -> None:
    tracker = ProgressTracker(100)
    tracker.advance(20)
    tracker.advance(-5)
    assert tracker.total_progress == 20
    tracker.accept("abc")
    tracker.reset()
    assert (tracker.committed_chars, tracker.live_chars, tracker.discarded) == (0, 0, 0)
