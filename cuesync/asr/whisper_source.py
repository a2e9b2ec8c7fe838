from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional, Union

from cuesync.app.diagnostics import summarize_exception
from cuesync.asr.faster_whisper_pcm16 import FasterWhisperPCM16Transcriber
from cuesync.asr.stream_base import EventCallback, SessionEndCallback, TranscriptSource
from cuesync.audio.mic import MicCapture
from cuesync.audio.utterance_chunker import FrameVad, UtteranceChunker, UtteranceConfig
from cuesync.contracts import AudioChunk, TranscriptEvent


class _SessionEnd:
    def __init__(self, reason: Optional[str]) -> None:
        self.reason = reason


_Work = Union[AudioChunk, _SessionEnd]


class _Session:
    """One recognition session: VAD utterances -> whisper -> growing transcript."""

    def __init__(
        self,
        *,
        mic: MicCapture,
        transcriber: FasterWhisperPCM16Transcriber,
        chunker: UtteranceChunker,
        on_event: EventCallback,
        on_end: SessionEndCallback,
        max_sec: float,
        logger: logging.Logger | None,
    ) -> None:
        self.mic = mic
        self.transcriber = transcriber
        self.chunker = chunker
        self.on_event = on_event
        self.on_end = on_end
        self.max_sec = max_sec
        self.logger = logger
        self.text = ""
        self.elapsed = 0.0
        self.jobs: "queue.Queue[_Work]" = queue.Queue()
        self.stop_event = threading.Event()
        self._closed = False
        self._lock = threading.Lock()
        self.thread = threading.Thread(target=self._run, name="cuesync-whisper-session", daemon=True)

    def open(self) -> None:
        self.mic.add_listener(self.on_chunk)
        self.thread.start()

    def on_chunk(self, chunk: AudioChunk) -> None:
        # capture thread
        with self._lock:
            if self._closed:
                return
            for utt in self.chunker.push(chunk):
                self.jobs.put(utt)
            self.elapsed += chunk.duration
            if self.elapsed >= self.max_sec:
                self._close_locked(_SessionEnd(None))

    def _close_locked(self, end: _SessionEnd | None) -> None:
        if self._closed:
            return
        self._closed = True
        self.mic.remove_listener(self.on_chunk)
        if end is not None:
            for utt in self.chunker.flush():
                self.jobs.put(utt)
            self.jobs.put(end)

    def close(self) -> None:
        """Explicit stop: no session-end callback."""
        with self._lock:
            self._close_locked(None)
        self.stop_event.set()

    def _run(self) -> None:
        while not self.stop_event.is_set():
            try:
                job = self.jobs.get(timeout=0.2)
            except queue.Empty:
                continue
            if isinstance(job, _SessionEnd):
                self.on_end(job.reason)
                return
            try:
                segments = self.transcriber.transcribe_utterance(
                    job.pcm16,
                    sample_rate=job.sample_rate,
                    channels=job.channels,
                    utter_t0=job.start_time,
                )
            except Exception as e:
                if self.logger is not None:
                    self.logger.exception("whisper_transcribe_failed")
                with self._lock:
                    self._close_locked(None)
                if not self.stop_event.is_set():
                    self.on_end(summarize_exception(str(e)))
                return
            words = " ".join(seg.text for seg in segments if seg.text).strip()
            if not words or self.stop_event.is_set():
                continue
            self.text = f"{self.text} {words}".strip()
            self.on_event(TranscriptEvent(text=self.text, is_final=True))


class WhisperTranscriptSource(TranscriptSource):
    """
    Local recognizer shaped like a browser speech session: the transcript grows
    with each utterance and the session ends after `session_max_sec` of audio.
    """

    def __init__(
        self,
        mic: MicCapture,
        transcriber: FasterWhisperPCM16Transcriber,
        *,
        vad_factory: Callable[[], FrameVad],
        utterance_cfg: UtteranceConfig | None = None,
        session_max_sec: float = 60.0,
        logger: logging.Logger | None = None,
    ) -> None:
        if session_max_sec <= 0:
            raise ValueError("session_max_sec must be > 0")
        self.mic = mic
        self.transcriber = transcriber
        self.vad_factory = vad_factory
        self.utterance_cfg = utterance_cfg or UtteranceConfig()
        self.session_max_sec = float(session_max_sec)
        self.logger = logger
        self._session: _Session | None = None

    def start(self, on_event: EventCallback, on_session_end: SessionEndCallback) -> None:
        # raises TranscriptionUnavailable when the model cannot load
        self.transcriber.ensure_ready()
        self.stop()
        session = _Session(
            mic=self.mic,
            transcriber=self.transcriber,
            chunker=UtteranceChunker(self.vad_factory(), self.utterance_cfg),
            on_event=on_event,
            on_end=on_session_end,
            max_sec=self.session_max_sec,
            logger=self.logger,
        )
        self._session = session
        session.open()

    def stop(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.close()
