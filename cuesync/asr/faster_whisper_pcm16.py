from __future__ import annotations

from typing import List, Optional

import numpy as np

from cuesync.asr.stream_base import TranscriptionUnavailable
from cuesync.contracts import ASRSegment

WHISPER_SAMPLE_RATE = 16000


def pcm16_to_float32(pcm16: bytes, sample_rate: int, channels: int) -> np.ndarray:
    """Interleaved PCM16 -> mono float32 at 16 kHz, the layout faster-whisper takes directly."""
    samples = np.frombuffer(pcm16[: len(pcm16) - len(pcm16) % 2], dtype="<i2").astype(np.float32) / 32768.0
    if channels > 1:
        usable = len(samples) - len(samples) % channels
        samples = samples[:usable].reshape(-1, channels).mean(axis=1)
    if sample_rate != WHISPER_SAMPLE_RATE and len(samples) > 1:
        n_out = max(1, int(round(len(samples) * WHISPER_SAMPLE_RATE / sample_rate)))
        src_t = np.arange(len(samples), dtype=np.float64) / sample_rate
        dst_t = np.arange(n_out, dtype=np.float64) / WHISPER_SAMPLE_RATE
        samples = np.interp(dst_t, src_t, samples).astype(np.float32)
    return samples


class FasterWhisperPCM16Transcriber:
    """
    Per-utterance speech recognizer backed by faster-whisper.

    The model is loaded on first use (or by ensure_ready() during preload); any
    failure to import or load it surfaces as TranscriptionUnavailable so the
    session supervisor can degrade to manual scrolling.
    """

    def __init__(
        self,
        *,
        model_size: str = "tiny",
        device: str = "cpu",
        compute_type: str = "int8",
        language: Optional[str] = "en",
        beam_size: int = 1,
    ) -> None:
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self.beam_size = beam_size
        self._model = None

    def _get_model(self):
        if self._model is not None:
            return self._model
        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise TranscriptionUnavailable(
                "faster-whisper is not installed. Install with: python -m pip install faster-whisper"
            ) from e
        try:
            self._model = WhisperModel(self.model_size, device=self.device, compute_type=self.compute_type)
        except Exception as e:
            raise TranscriptionUnavailable(f"failed to load whisper model '{self.model_size}': {e}") from e
        return self._model

    def ensure_ready(self) -> None:
        self._get_model()

    def transcribe_utterance(
        self,
        pcm16: bytes,
        sample_rate: int,
        channels: int,
        utter_t0: float,
    ) -> List[ASRSegment]:
        audio = pcm16_to_float32(pcm16, sample_rate, channels) if pcm16 else None
        if audio is None or audio.size == 0:
            return []

        segments, _info = self._get_model().transcribe(
            audio,
            language=self.language,
            beam_size=self.beam_size,
            vad_filter=False,
            condition_on_previous_text=False,
        )
        # segment times are relative to the utterance start
        return [
            ASRSegment(
                text=s.text.strip(),
                t0=float(utter_t0 + float(s.start)),
                t1=float(utter_t0 + float(s.end)),
                is_final=True,
            )
            for s in segments
            if (s.text or "").strip()
        ]
