from __future__ import annotations

import logging
import math
import time
from typing import Callable, Optional, Protocol

from cuesync.audio.vad import LevelMeter
from cuesync.contracts import AudioChunk


class SpeechDetector(Protocol):
    def speech_ratio(self, pcm16: bytes, channels: int = 1) -> float:
        ...


class NoiseGate:
    """
    Amplitude gate separating the presenter's voice from background noise.

    A frame counts as loud when its smoothed level (0..100) exceeds
    `100 - sensitivity`. The gate is open while the last loud frame is no
    older than `window_ms`. If capture is unavailable the gate fails open.
    """

    def __init__(
        self,
        *,
        sensitivity: int = 50,
        window_ms: int = 5000,
        smoothing: float = 0.5,
        speech_detector: Optional[SpeechDetector] = None,
        min_speech_ratio: float = 0.3,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        self.window_sec = window_ms / 1000.0
        self.meter = LevelMeter(smoothing=smoothing)
        self.speech_detector = speech_detector
        self.min_speech_ratio = float(min_speech_ratio)
        self.clock = clock
        self.logger = logger
        self.last_loud_at = -math.inf
        self.failed_open = False
        self.set_sensitivity(sensitivity)

    def set_sensitivity(self, sensitivity: int) -> None:
        self.sensitivity = max(0, min(100, int(sensitivity)))

    @property
    def threshold(self) -> float:
        return float(100 - self.sensitivity)

    def feed(self, chunk: AudioChunk) -> bool:
        """Process one amplitude frame; return True if it counted as loud."""
        level = self.meter.push(chunk.pcm16)
        if level <= self.threshold:
            return False
        if self.speech_detector is not None:
            ratio = self.speech_detector.speech_ratio(chunk.pcm16, channels=chunk.channels)
            if ratio < self.min_speech_ratio:
                return False
        self.last_loud_at = self.clock()
        return True

    def is_open(self, now: float | None = None) -> bool:
        if self.failed_open:
            return True
        now = self.clock() if now is None else now
        return (now - self.last_loud_at) <= self.window_sec

    def mark_unavailable(self, reason: str) -> None:
        if self.failed_open:
            return
        self.failed_open = True
        if self.logger is not None:
            self.logger.warning("noise_gate_fail_open", extra={"reason": reason})

    def reset(self) -> None:
        self.last_loud_at = -math.inf
        self.failed_open = False
        self.meter.reset()
