from __future__ import annotations

from array import array

import pytest

from cuesync.contracts import AudioChunk
from cuesync.live.noise_gate import NoiseGate


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _chunk(amplitude: int) -> AudioChunk:
    pcm = array("h", [amplitude] * 1600).tobytes()
    return AudioChunk(pcm16=pcm, sample_rate=16000, channels=1, start_time=0.0, duration=0.1)


def test_gate_closed_until_loud_frame() -> None:
    clock = _Clock()
    gate = NoiseGate(sensitivity=50, smoothing=0.0, clock=clock)
    assert gate.is_open() is False
    # 1000/32768 is about -30 dBFS -> level 70 > threshold 50
    assert gate.feed(_chunk(1000)) is True
    assert gate.is_open() is True


def test_gate_window_expires() -> None:
    clock = _Clock()
    gate = NoiseGate(sensitivity=50, window_ms=5000, smoothing=0.0, clock=clock)
    gate.feed(_chunk(1000))
    clock.now += 5.0
    assert gate.is_open() is True
    clock.now += 0.1
    assert gate.is_open() is False


def test_quiet_frame_does_not_open_gate() -> None:
    clock = _Clock()
    gate = NoiseGate(sensitivity=20, smoothing=0.0, clock=clock)
    # 10/32768 is about -70 dBFS -> level 30 < threshold 80
    assert gate.feed(_chunk(10)) is False
    assert gate.is_open() is False


def test_higher_sensitivity_accepts_quieter_speech() -> None:
    clock = _Clock()
    gate = NoiseGate(sensitivity=20, smoothing=0.0, clock=clock)
    assert gate.feed(_chunk(100)) is False
    gate.set_sensitivity(80)
    assert gate.threshold == 20.0
    assert gate.feed(_chunk(100)) is True


def test_sensitivity_is_clamped() -> None:
    gate = NoiseGate(sensitivity=150)
    assert gate.sensitivity == 100
    gate.set_sensitivity(-5)
    assert gate.threshold == 100.0


def test_fail_open_when_capture_unavailable() -> None:
    gate = NoiseGate(clock=_Clock())
    gate.mark_unavailable("no mic")
    assert gate.is_open() is True
    gate.reset()
    assert gate.is_open() is False


def test_speech_detector_vetoes_loud_noise() -> None:
    class _Detector:
        def __init__(self, ratio: float) -> None:
            self.ratio = ratio

        def speech_ratio(self, pcm16: bytes, channels: int = 1) -> float:
            return self.ratio

    clock = _Clock()
    noisy = NoiseGate(smoothing=0.0, speech_detector=_Detector(0.0), clock=clock)
    assert noisy.feed(_chunk(1000)) is False
    speechy = NoiseGate(smoothing=0.0, speech_detector=_Detector(0.9), clock=clock)
    assert speechy.feed(_chunk(1000)) is True


def test_window_must_be_positive() -> None:
    with pytest.raises(ValueError):
        NoiseGate(window_ms=0)
