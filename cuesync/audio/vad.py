from __future__ import annotations

import math
from array import array

_FULL_SCALE = 32768.0


def pcm16_rms(pcm16: bytes) -> float:
    """Return RMS energy for little-endian int16 PCM bytes."""
    if not pcm16:
        return 0.0

    samples = array("h")
    samples.frombytes(pcm16[: len(pcm16) - (len(pcm16) % 2)])
    if not samples:
        return 0.0

    sum_sq = 0.0
    for value in samples:
        fv = float(value)
        sum_sq += fv * fv
    return math.sqrt(sum_sq / len(samples))


def rms_to_level(rms: float) -> float:
    """
    Map RMS to a 0..100 loudness level (dBFS shifted by 100).
    -100 dBFS or quieter -> 0, full scale -> 100.
    """
    if rms <= 0:
        return 0.0
    dbfs = 20.0 * math.log10(rms / _FULL_SCALE)
    return max(0.0, min(100.0, 100.0 + dbfs))


def pcm16_level(pcm16: bytes) -> float:
    return rms_to_level(pcm16_rms(pcm16))


class LevelMeter:
    """Exponentially smoothed loudness level."""

    def __init__(self, smoothing: float = 0.5) -> None:
        if not 0.0 <= smoothing < 1.0:
            raise ValueError("smoothing must be in [0, 1)")
        self.smoothing = float(smoothing)
        self.level = 0.0

    def push(self, pcm16: bytes) -> float:
        raw = pcm16_level(pcm16)
        self.level = self.smoothing * self.level + (1.0 - self.smoothing) * raw
        return self.level

    def reset(self) -> None:
        self.level = 0.0
