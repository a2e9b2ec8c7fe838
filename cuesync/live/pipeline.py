from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Optional

from cuesync.asr.stream_base import TranscriptSource
from cuesync.audio.mic import MicCapture
from cuesync.audio.playback import PlaybackQueue
from cuesync.contracts import AudioChunk, TranscriptEvent, TranslationSettings
from cuesync.live.blocks import BlockDetector, ends_with_keyword
from cuesync.live.noise_gate import NoiseGate
from cuesync.live.progress import ProgressTracker
from cuesync.live.session import SessionState, SessionSupervisor
from cuesync.translate.service import TranslationService


class RunState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


def _log_event(logger: logging.Logger | None, level: int, event: str, **fields: Any) -> None:
    if logger is None:
        return
    logger.log(level, event, extra=fields)


class PrompterPipeline:
    """
    Speech-driven script follower for one presentation run.

    Transcript snapshots pass the noise gate into the progress tracker; the
    resulting character count drives the scroll ratio and the block detector,
    which pre-fetches and fires translations through the TranslationService.
    While a fired block is being translated or spoken, listening is suspended
    so the synthesized voice is not counted as the presenter's progress.

    All methods run on the event loop thread.
    """

    def __init__(
        self,
        script: str,
        *,
        settings: TranslationSettings,
        translation: TranslationService,
        playback: PlaybackQueue,
        gate: NoiseGate,
        source: TranscriptSource | None = None,
        mic: MicCapture | None = None,
        lookahead: int = 50,
        trigger_margin: int = 5,
        cooldown_sec: float = 2.0,
        trigger_keyword: str = "translate",
        restart_backoff_sec: float = 0.3,
        max_restart_attempts: int = 5,
        on_scroll: Callable[[float], Any] | None = None,
        on_error: Callable[[str], Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self.script = script or ""
        self.settings = settings
        self.translation = translation
        self.playback = playback
        self.gate = gate
        self.source = source
        self.mic = mic
        self.trigger_keyword = trigger_keyword
        self.on_scroll = on_scroll
        self.on_error = on_error
        self.logger = logger

        self.tracker = ProgressTracker(len(self.script), gate)
        self.detector = BlockDetector(
            self.script,
            on_prefetch=self._schedule_prefetch,
            on_fire=self._schedule_fire,
            lookahead=lookahead,
            trigger_margin=trigger_margin,
            cooldown_sec=cooldown_sec,
            clock=clock,
        )
        self.supervisor: SessionSupervisor | None = None
        if source is not None:
            self.supervisor = SessionSupervisor(
                source,
                on_event=self._on_transcript,
                on_session_end=self._on_session_end,
                on_unavailable=self._on_transcription_unavailable,
                backoff_sec=restart_backoff_sec,
                max_restart_attempts=max_restart_attempts,
                logger=logger,
            )

        self.state = RunState.STOPPED
        self.transcription_error: Optional[str] = None
        self._generation = 0
        self._revision = settings.revision()
        self._listening = False
        self._tasks: set[asyncio.Task] = set()
        self._fire_tasks: set[asyncio.Task] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._mic_attached = False

        self.translation.on_processing = self._chain(self.translation.on_processing)
        self.playback.on_playing = self._chain(self.playback.on_playing)

    # -- wiring ---------------------------------------------------------------

    def _chain(self, downstream: Callable[[bool], Any] | None) -> Callable[[bool], None]:
        def _handler(value: bool) -> None:
            if downstream is not None:
                downstream(value)
            self._sync_listening()

        return _handler

    def _on_mic_chunk(self, chunk: AudioChunk) -> None:
        # capture thread; the gate is only touched on the loop
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.gate.feed, chunk)

    def _on_mic_error(self, exc: BaseException) -> None:
        loop = self._loop
        if loop is None:
            return
        loop.call_soon_threadsafe(self.gate.mark_unavailable, f"audio capture failed: {exc}")

    # -- observable state -----------------------------------------------------

    @property
    def total_progress(self) -> int:
        return self.tracker.total_progress

    @property
    def scroll_ratio(self) -> float:
        if self.state == RunState.STOPPED:
            return 0.0
        return self.tracker.scroll_ratio

    @property
    def is_processing(self) -> bool:
        return self.translation.is_processing

    @property
    def is_playing_audio(self) -> bool:
        return self.playback.is_playing

    @property
    def paused_for_translation(self) -> bool:
        return bool(self._fire_tasks) or self.translation.is_processing or self.playback.is_playing

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "committed_chars": self.tracker.committed_chars,
            "live_chars": self.tracker.live_chars,
            "total_progress": self.total_progress,
            "scroll_ratio": round(self.scroll_ratio, 4),
            "prefetched": sorted(self.detector.record.prefetched),
            "fired": sorted(self.detector.record.fired),
            "cache_entries": len(self.translation.cache),
            "audio_pending": len(self.playback),
            "status": self.translation.status.value,
            "is_processing": self.is_processing,
            "is_playing_audio": self.is_playing_audio,
            "session": self.supervisor.state.value if self.supervisor else SessionState.STOPPED.value,
        }

    def _emit_scroll(self) -> None:
        if self.on_scroll is not None:
            self.on_scroll(self.scroll_ratio)

    # -- lifecycle ------------------------------------------------------------

    def start(self) -> None:
        if self.state != RunState.STOPPED:
            return
        self._loop = asyncio.get_running_loop()
        self._generation += 1
        self._reset_run_state()
        self.transcription_error = None
        self.state = RunState.RUNNING
        self._revision = self.settings.revision()
        self.gate.set_sensitivity(self.settings.sensitivity)
        _log_event(self.logger, logging.INFO, "run_started", generation=self._generation, script_chars=len(self.script))
        if self.supervisor is None:
            self._on_transcription_unavailable("no transcript source configured")
        self._emit_scroll()
        self._sync_listening()

    def stop(self) -> None:
        if self.state == RunState.STOPPED:
            return
        self.state = RunState.STOPPED
        self._generation += 1
        self._stop_listening(commit=False)
        self._reset_run_state()
        _log_event(self.logger, logging.INFO, "run_stopped", generation=self._generation)
        self._emit_scroll()

    def pause(self) -> None:
        if self.state != RunState.RUNNING:
            return
        self.state = RunState.PAUSED
        self._sync_listening()
        _log_event(self.logger, logging.INFO, "run_paused", total_progress=self.total_progress)

    def resume(self) -> None:
        if self.state != RunState.PAUSED:
            return
        self.state = RunState.RUNNING
        self._sync_listening()
        _log_event(self.logger, logging.INFO, "run_resumed", total_progress=self.total_progress)

    def reset(self) -> None:
        """Rewind to the top of the script without stopping the run."""
        self._generation += 1
        self._stop_listening(commit=False)
        self._reset_run_state()
        _log_event(self.logger, logging.INFO, "run_reset", generation=self._generation)
        self._emit_scroll()
        self._sync_listening()

    def _reset_run_state(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._fire_tasks.clear()
        self.playback.stop()
        self.translation.reset()
        self.detector.reset()
        self.tracker.reset()
        self.gate.reset()
        if self.mic is None:
            self.gate.mark_unavailable("no amplitude source")

    # -- listening (transcription + noise sampling) ---------------------------

    def _should_listen(self) -> bool:
        return self.state == RunState.RUNNING and not self.paused_for_translation

    def _sync_listening(self) -> None:
        if self._should_listen():
            self._start_listening()
        else:
            self._stop_listening(commit=True)

    def _start_listening(self) -> None:
        if self._listening:
            return
        self._listening = True
        if self.mic is not None:
            if not self._mic_attached:
                self.mic.add_listener(self._on_mic_chunk)
                self.mic.on_error = self._on_mic_error
                self._mic_attached = True
            self.mic.start()
        if self.supervisor is not None and self.transcription_error is None:
            self.supervisor.start()

    def _stop_listening(self, *, commit: bool) -> None:
        if not self._listening:
            return
        self._listening = False
        if self.supervisor is not None:
            self.supervisor.stop()
        if self.mic is not None:
            self.mic.stop()
        if commit:
            # the suspended session will not report its end any more
            self.tracker.end_session()

    # -- transcript handling --------------------------------------------------

    def _check_settings(self) -> None:
        self.gate.set_sensitivity(self.settings.sensitivity)
        revision = self.settings.revision()
        if revision == self._revision:
            return
        self._revision = revision
        self.detector.forget_prefetched()
        self.translation.invalidate()
        _log_event(
            self.logger,
            logging.INFO,
            "settings_revision_changed",
            voice=revision[0],
            langs=list(revision[1]),
        )

    def update_settings(self, **changes: Any) -> None:
        """Apply settings changes now (voice/language changes drop prefetched audio)."""
        for key, value in changes.items():
            if not hasattr(self.settings, key):
                raise AttributeError(f"unknown setting: {key}")
            setattr(self.settings, key, value)
        self._check_settings()

    def _on_transcript(self, ev: TranscriptEvent) -> None:
        if self.state != RunState.RUNNING or self.paused_for_translation:
            return
        self._check_settings()
        if not self.tracker.accept(ev.text):
            return
        self._emit_scroll()
        force = ends_with_keyword(ev.text, self.trigger_keyword)
        self._check_blocks(force=force)

    def _on_session_end(self, reason: Optional[str]) -> None:
        committed = self.tracker.end_session()
        _log_event(
            self.logger,
            logging.INFO,
            "session_committed",
            chars=committed,
            committed_chars=self.tracker.committed_chars,
            reason=reason,
        )

    def _on_transcription_unavailable(self, reason: str) -> None:
        if self.transcription_error is not None:
            return
        self.transcription_error = reason
        _log_event(self.logger, logging.WARNING, "transcription_unavailable", reason=reason)
        if self.on_error is not None:
            self.on_error(reason)

    def advance_manually(self, chars: int) -> None:
        """Manual scroll fallback when speech recognition is unavailable."""
        if self.state != RunState.RUNNING:
            return
        self._check_settings()
        self.tracker.advance(chars)
        self._emit_scroll()
        self._check_blocks(force=False)

    def _check_blocks(self, *, force: bool) -> None:
        block = self.detector.check(
            self.total_progress,
            force=force,
            paused=self.paused_for_translation,
        )
        if block is not None:
            _log_event(
                self.logger,
                logging.INFO,
                "block_fired",
                open_offset=block.open_offset,
                close_offset=block.close_offset,
                total_progress=self.total_progress,
                forced=force,
            )

    # -- translation tasks ----------------------------------------------------

    def _track(self, coro, *, fire: bool) -> asyncio.Task:
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro)
        self._tasks.add(task)
        if fire:
            self._fire_tasks.add(task)
        generation = self._generation

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            self._fire_tasks.discard(t)
            if generation != self._generation or t.cancelled():
                return
            if t.exception() is not None:
                if self.logger is not None:
                    self.logger.error("translation_task_failed", exc_info=t.exception())
            self._sync_listening()

        task.add_done_callback(_done)
        return task

    def _schedule_prefetch(self, text: str) -> None:
        _log_event(self.logger, logging.INFO, "block_prefetch", chars=len(text))
        self._track(self.translation.prefetch(text), fire=False)

    def _schedule_fire(self, text: str) -> None:
        self._track(self.translation.translate_and_speak(text), fire=True)
        self._sync_listening()
