from __future__ import annotations

import contextlib
import logging
import threading
from typing import Callable, Iterator, Optional

from cuesync.contracts import AudioChunk


class MicError(RuntimeError):
    pass


ChunkListener = Callable[[AudioChunk], None]


class SoundDeviceMicSource:
    """
    Live microphone source using the `sounddevice` package (PortAudio).
    Captures raw PCM16 chunks of fixed duration.
    """

    def __init__(
        self,
        *,
        chunk_seconds: float = 0.1,
        sample_rate: int = 16000,
        channels: int = 1,
        device: Optional[int] = None,
    ) -> None:
        if chunk_seconds <= 0:
            raise ValueError("chunk_seconds must be > 0")
        if sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        if channels not in (1, 2):
            raise ValueError("channels must be 1 or 2 (for now)")

        self.chunk_seconds = float(chunk_seconds)
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self.device = device

    @staticmethod
    def list_devices() -> str:
        try:
            import sounddevice as sd
        except ImportError as e:
            raise MicError(
                "sounddevice is not installed. Install with: python -m pip install sounddevice"
            ) from e
        return str(sd.query_devices())

    @contextlib.contextmanager
    def _open_stream(self):
        try:
            import sounddevice as sd
        except ImportError as e:
            raise MicError(
                "sounddevice is not installed. Install with: python -m pip install sounddevice"
            ) from e

        try:
            stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                device=self.device,
                blocksize=0,  # let PortAudio choose
            )
        except Exception as e:
            raise MicError(
                "Failed to open microphone stream. "
                "Try --list-devices and select a device id with --device."
            ) from e

        with stream:
            yield stream

    def chunks(self, stop_event: threading.Event | None = None) -> Iterator[AudioChunk]:
        frames_per_chunk = max(1, int(round(self.chunk_seconds * self.sample_rate)))
        frames_seen = 0

        with self._open_stream() as stream:
            while stop_event is None or not stop_event.is_set():
                # overflow only means PortAudio dropped frames; keep reading
                data, _overflowed = stream.read(frames_per_chunk)

                start_time = frames_seen / self.sample_rate
                duration = frames_per_chunk / self.sample_rate
                frames_seen += frames_per_chunk

                yield AudioChunk(
                    pcm16=bytes(data),
                    sample_rate=self.sample_rate,
                    channels=self.channels,
                    start_time=start_time,
                    duration=duration,
                )


class MicCapture:
    """
    One capture thread fanned out to many listeners, so the noise gate and the
    local recognizer share a single PortAudio stream.

    Listeners run on the capture thread and must hand work off quickly.
    """

    def __init__(
        self,
        source: SoundDeviceMicSource,
        *,
        on_error: Callable[[BaseException], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.source = source
        self.on_error = on_error
        self.logger = logger
        self._listeners: list[ChunkListener] = []
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event: threading.Event | None = None

    def add_listener(self, listener: ChunkListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: ChunkListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._run,
            args=(stop_event,),
            name="cuesync-mic-capture",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        self._thread = None
        self._stop_event = None

    def _run(self, stop_event: threading.Event) -> None:
        try:
            for chunk in self.source.chunks(stop_event):
                with self._lock:
                    listeners = list(self._listeners)
                for listener in listeners:
                    listener(chunk)
        except Exception as e:
            if self.logger is not None:
                self.logger.exception("mic_capture_failed")
            if self.on_error is not None:
                self.on_error(e)
