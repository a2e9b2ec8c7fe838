from __future__ import annotations

import asyncio
import base64
from array import array

import numpy as np
import pytest

from cuesync.audio.playback import AudioDecodeError, PlaybackQueue, decode_pcm16_base64


def _clip(*values: int) -> str:
    return base64.b64encode(array("h", values).tobytes()).decode("ascii")


class _RecordingPlayer:
    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.played: list[list[float]] = []
        self.active = 0
        self.max_active = 0
        self.stops = 0

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            self.played.append([float(x) for x in samples])
        finally:
            self.active -= 1

    def stop(self) -> None:
        self.stops += 1


def test_decode_scales_to_unit_range() -> None:
    samples = decode_pcm16_base64(_clip(0, 16384, -32768))
    assert samples.dtype == np.float32
    assert samples.tolist() == [0.0, 0.5, -1.0]


def test_decode_rejects_garbage() -> None:
    with pytest.raises(AudioDecodeError):
        decode_pcm16_base64("not base64 !!")
    with pytest.raises(AudioDecodeError):
        decode_pcm16_base64("")


@pytest.mark.asyncio
async def test_clips_play_in_order_without_overlap() -> None:
    player = _RecordingPlayer(delay=0.01)
    queue = PlaybackQueue(player, settle_sec=0.0)
    for value in (1, 2, 3):
        queue.enqueue(_clip(value))
    assert queue.is_playing is True
    await queue.join()
    assert [clip[0] * 32768 for clip in player.played] == [1.0, 2.0, 3.0]
    assert player.max_active == 1
    assert queue.is_playing is False


@pytest.mark.asyncio
async def test_playing_flag_is_reported() -> None:
    seen: list[bool] = []
    queue = PlaybackQueue(_RecordingPlayer(), settle_sec=0.0, on_playing=seen.append)
    queue.enqueue(_clip(5))
    await queue.join()
    assert seen == [True, False]


@pytest.mark.asyncio
async def test_undecodable_payload_is_skipped() -> None:
    player = _RecordingPlayer()
    queue = PlaybackQueue(player, settle_sec=0.0)
    queue.enqueue("%%%")
    queue.enqueue(_clip(7))
    await queue.join()
    assert len(player.played) == 1
    assert queue.dropped == 1


@pytest.mark.asyncio
async def test_player_failure_does_not_stop_queue() -> None:
    class _Flaky(_RecordingPlayer):
        failed = False

        async def play(self, samples, sample_rate) -> None:
            if not self.failed:
                self.failed = True
                raise RuntimeError("device busy")
            await super().play(samples, sample_rate)

    player = _Flaky()
    queue = PlaybackQueue(player, settle_sec=0.0)
    queue.enqueue(_clip(30000))
    queue.enqueue(_clip(1))
    await queue.join()
    assert len(player.played) == 1
    assert queue.dropped == 1


@pytest.mark.asyncio
async def test_settle_delay_between_clips() -> None:
    player = _RecordingPlayer()
    queue = PlaybackQueue(player, settle_sec=0.05)
    loop = asyncio.get_running_loop()
    t0 = loop.time()
    queue.enqueue(_clip(1))
    queue.enqueue(_clip(2))
    await queue.join()
    assert loop.time() - t0 >= 0.1


@pytest.mark.asyncio
async def test_stop_drops_pending_audio() -> None:
    player = _RecordingPlayer(delay=0.05)
    queue = PlaybackQueue(player, settle_sec=0.0)
    for value in (1, 2, 3):
        queue.enqueue(_clip(value))
    await asyncio.sleep(0)
    queue.stop()
    assert len(queue) == 0
    assert queue.is_playing is False
    assert player.stops == 1
    await asyncio.sleep(0.1)
    assert player.played == []


@pytest.mark.asyncio
async def test_queue_restarts_after_idle() -> None:
    player = _RecordingPlayer()
    queue = PlaybackQueue(player, settle_sec=0.0)
    queue.enqueue(_clip(1))
    await queue.join()
    queue.enqueue(_clip(2))
    await queue.join()
    assert len(player.played) == 2


def test_negative_settle_rejected() -> None:
    with pytest.raises(ValueError):
        PlaybackQueue(_RecordingPlayer(), settle_sec=-1)
