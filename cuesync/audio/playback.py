from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from collections import deque
from typing import Any, Callable, Optional, Protocol

import numpy as np

TTS_SAMPLE_RATE = 24000


class AudioDecodeError(ValueError):
    pass


def decode_pcm16_base64(payload: str) -> np.ndarray:
    """Decode base64 little-endian PCM16 mono into float32 samples in [-1, 1)."""
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise AudioDecodeError("audio payload is not valid base64") from e
    n = len(raw) // 2
    if n == 0:
        raise AudioDecodeError("audio payload holds no samples")
    samples = np.frombuffer(raw[: n * 2], dtype="<i2")
    return samples.astype(np.float32) / 32768.0


class AudioPlayer(Protocol):
    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        ...

    def stop(self) -> None:
        ...


class SoundDevicePlayer:
    """Blocking `sounddevice` playback pushed off the event loop."""

    def __init__(self, device: Optional[int] = None) -> None:
        self.device = device

    def _play_blocking(self, samples: np.ndarray, sample_rate: int) -> None:
        import sounddevice as sd

        sd.play(samples, samplerate=sample_rate, device=self.device)
        sd.wait()

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        await asyncio.to_thread(self._play_blocking, samples, sample_rate)

    def stop(self) -> None:
        try:
            import sounddevice as sd
        except (ImportError, OSError):
            return
        sd.stop()


class PlaybackQueue:
    """
    Serial playback of synthesized clips.

    One drain task plays the head payload to completion, waits `settle_sec`,
    then moves on; the queue goes idle when empty. stop() drops everything.
    """

    def __init__(
        self,
        player: AudioPlayer,
        *,
        sample_rate: int = TTS_SAMPLE_RATE,
        settle_sec: float = 0.6,
        on_playing: Callable[[bool], Any] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if settle_sec < 0:
            raise ValueError("settle_sec must be >= 0")
        self.player = player
        self.sample_rate = int(sample_rate)
        self.settle_sec = float(settle_sec)
        self.on_playing = on_playing
        self.logger = logger
        self._pending: deque[str] = deque()
        self._task: asyncio.Task | None = None
        self._generation = 0
        self._playing = False
        self.dropped = 0

    @property
    def is_playing(self) -> bool:
        return self._playing

    def __len__(self) -> int:
        return len(self._pending)

    def _set_playing(self, value: bool) -> None:
        if self._playing == value:
            return
        self._playing = value
        if self.on_playing is not None:
            self.on_playing(value)

    def _log(self, level: int, event: str, **fields: Any) -> None:
        if self.logger is not None:
            self.logger.log(level, event, extra=fields)

    def enqueue(self, payload: str) -> None:
        self._pending.append(payload)
        self._log(logging.INFO, "audio_enqueued", queue_depth=len(self._pending))
        if self._task is None or self._task.done():
            # mark busy before the task gets its first turn
            self._set_playing(True)
            self._task = asyncio.get_running_loop().create_task(self._drain(self._generation))

    async def _drain(self, generation: int) -> None:
        try:
            while self._pending and generation == self._generation:
                payload = self._pending.popleft()
                try:
                    samples = decode_pcm16_base64(payload)
                except AudioDecodeError:
                    self.dropped += 1
                    self._log(logging.WARNING, "audio_decode_failed", queue_depth=len(self._pending))
                    continue
                try:
                    await self.player.play(samples, self.sample_rate)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    self.dropped += 1
                    if self.logger is not None:
                        self.logger.exception("audio_playback_failed")
                    continue
                if generation != self._generation:
                    return
                await asyncio.sleep(self.settle_sec)
        finally:
            if generation == self._generation:
                self._set_playing(False)

    def stop(self) -> None:
        self._generation += 1
        self._pending.clear()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        self.player.stop()
        self._set_playing(False)

    async def join(self) -> None:
        """Wait until the current drain finishes."""
        task = self._task
        while task is not None and not task.done():
            await asyncio.wait({task})
            task = self._task
