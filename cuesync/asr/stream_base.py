from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from cuesync.contracts import TranscriptEvent

EventCallback = Callable[[TranscriptEvent], None]
# reason is None for a normal end (timeout, stop), else an error summary
SessionEndCallback = Callable[[Optional[str]], None]


class TranscriptionUnavailable(RuntimeError):
    pass


class TranscriptSource(ABC):
    """
    Continuous, restartable speech-to-text source.

    Each start() opens a new session. Every event carries the full transcript
    of that session so far. A session may end on its own; the source then calls
    on_session_end and stays stopped until start() is called again.
    Callbacks may arrive on any thread.
    """

    @abstractmethod
    def start(self, on_event: EventCallback, on_session_end: SessionEndCallback) -> None:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError


class ScriptedTranscriptSource(TranscriptSource):
    """Replays transcript snapshots on demand (tests and dry runs)."""

    def __init__(self, fail_starts: int = 0) -> None:
        self.fail_starts = int(fail_starts)
        self.starts = 0
        self.stops = 0
        self.active = False
        self._on_event: Optional[EventCallback] = None
        self._on_end: Optional[SessionEndCallback] = None
        self._text = ""

    def start(self, on_event: EventCallback, on_session_end: SessionEndCallback) -> None:
        self.starts += 1
        if self.fail_starts > 0:
            self.fail_starts -= 1
            raise RuntimeError("recognizer busy")
        self._on_event = on_event
        self._on_end = on_session_end
        self._text = ""
        self.active = True

    def stop(self) -> None:
        self.stops += 1
        self.active = False

    def say(self, words: str, *, is_final: bool = False) -> None:
        """Append words to the current session transcript and emit it."""
        if not self.active or self._on_event is None:
            return
        self._text += words
        self._on_event(TranscriptEvent(text=self._text, is_final=is_final))

    def end_session(self, reason: Optional[str] = None) -> None:
        if not self.active or self._on_end is None:
            return
        self.active = False
        self._on_end(reason)


def load_transcript_lines(path: str) -> List[str]:
    """Read a dry-run transcript: one utterance per line, blank lines end a session."""
    with open(path, "r", encoding="utf-8-sig") as f:
        return [ln.rstrip("\n") for ln in f]
