from __future__ import annotations

from typing import Protocol


class Gate(Protocol):
    def is_open(self, now: float | None = None) -> bool:
        ...


class ProgressTracker:
    """
    Characters-spoken counter across restartable recognition sessions.

    committed_chars: text from sessions that already ended.
    live_chars: length of the current session transcript.
    Only end_session() moves characters into committed_chars.
    """

    def __init__(self, script_length: int, gate: Gate | None = None) -> None:
        self.script_length = max(0, int(script_length))
        self.gate = gate
        self.committed_chars = 0
        self.live_chars = 0
        self.discarded = 0

    @property
    def total_progress(self) -> int:
        return self.committed_chars + self.live_chars

    @property
    def scroll_ratio(self) -> float:
        if self.script_length <= 0:
            return 0.0
        return min(self.total_progress / self.script_length, 1.0)

    def accept(self, session_text: str) -> bool:
        """Apply a session snapshot; False when the noise gate rejected it."""
        if self.gate is not None and not self.gate.is_open():
            self.discarded += 1
            return False
        # recognizers may revise the tail; progress never moves backwards
        self.live_chars = max(self.live_chars, len(session_text or ""))
        return True

    def end_session(self) -> int:
        committed = self.live_chars
        self.committed_chars += committed
        self.live_chars = 0
        return committed

    def advance(self, chars: int) -> None:
        """Manual nudge when no recognizer is available."""
        if chars > 0:
            self.committed_chars += int(chars)

    def reset(self) -> None:
        self.committed_chars = 0
        self.live_chars = 0
        self.discarded = 0
