from __future__ import annotations

from array import array
from dataclasses import dataclass
from typing import Iterator, Protocol

from cuesync.contracts import AudioChunk


class FrameVad(Protocol):
    frame_bytes: int

    def is_speech(self, pcm16: bytes, channels: int = 1) -> bool:
        ...


@dataclass(frozen=True)
class UtteranceConfig:
    frame_ms: int = 20
    vad_aggressiveness: int = 2
    min_speech_ms: int = 200
    end_silence_ms: int = 500
    max_utter_ms: int = 8000


def _iter_vad_frames(pcm16: bytes, frame_bytes: int) -> Iterator[bytes]:
    for i in range(0, len(pcm16) - frame_bytes + 1, frame_bytes):
        yield pcm16[i : i + frame_bytes]


def _to_mono_pcm16(frame: bytes, channels: int) -> bytes:
    if channels <= 1:
        return frame
    samples = array("h")
    samples.frombytes(frame)
    mono = array("h")
    for i in range(0, len(samples), channels):
        mono.append(samples[i])
    return mono.tobytes()


class UtteranceChunker:
    """
    Incrementally group live AudioChunks into mono utterance AudioChunks.

    push() returns the utterances completed by that chunk; flush() closes any
    open utterance (used when a recognition session ends).
    """

    def __init__(self, vad: FrameVad, cfg: UtteranceConfig | None = None) -> None:
        self.vad = vad
        self.cfg = cfg or UtteranceConfig()
        self._frame_dur = self.cfg.frame_ms / 1000.0
        self._min_speech_frames = max(1, self.cfg.min_speech_ms // self.cfg.frame_ms)
        self._end_silence_frames = max(1, self.cfg.end_silence_ms // self.cfg.frame_ms)
        self._max_frames = max(1, self.cfg.max_utter_ms // self.cfg.frame_ms)
        self._sr = 0
        self._carry = b""
        self._clock = 0.0
        self._reset_utterance()

    def _reset_utterance(self) -> None:
        self._in_utt = False
        self._speech_frames = 0
        self._silence_run = 0
        self._parts: list[bytes] = []
        self._t0 = 0.0
        self._t1 = 0.0

    def _emit(self) -> AudioChunk | None:
        if not self._in_utt:
            return None
        keep = self._speech_frames >= self._min_speech_frames and bool(self._parts)
        out = None
        if keep:
            out = AudioChunk(
                pcm16=b"".join(self._parts),
                sample_rate=self._sr,
                channels=1,
                start_time=self._t0,
                duration=max(0.0, self._t1 - self._t0),
            )
        self._reset_utterance()
        return out

    def push(self, chunk: AudioChunk) -> list[AudioChunk]:
        out: list[AudioChunk] = []
        if not self._sr:
            self._sr = int(chunk.sample_rate)
            self._clock = float(chunk.start_time)

        frame_bytes = self.vad.frame_bytes * chunk.channels
        pcm16 = self._carry + chunk.pcm16
        usable = len(pcm16) - (len(pcm16) % frame_bytes)
        self._carry = pcm16[usable:]

        for frame in _iter_vad_frames(pcm16[:usable], frame_bytes):
            frame_time = self._clock
            self._clock += self._frame_dur
            is_speech = self.vad.is_speech(frame, channels=chunk.channels)

            if is_speech:
                if not self._in_utt:
                    self._in_utt = True
                    self._t0 = frame_time
                self._speech_frames += 1
                self._silence_run = 0
            elif self._in_utt:
                self._silence_run += 1
            else:
                continue

            self._parts.append(_to_mono_pcm16(frame, chunk.channels))
            self._t1 = frame_time + self._frame_dur
            if self._silence_run >= self._end_silence_frames or len(self._parts) >= self._max_frames:
                utt = self._emit()
                if utt is not None:
                    out.append(utt)
        return out

    def flush(self) -> list[AudioChunk]:
        self._carry = b""
        utt = self._emit()
        return [utt] if utt is not None else []
