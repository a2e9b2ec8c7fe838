from __future__ import annotations

import threading
from array import array

import pytest

from cuesync.asr.stream_base import ScriptedTranscriptSource, TranscriptionUnavailable, load_transcript_lines
from cuesync.asr.whisper_source import WhisperTranscriptSource
from cuesync.audio.utterance_chunker import UtteranceConfig
from cuesync.contracts import ASRSegment, AudioChunk

SR = 16000
FRAME_SAMPLES = SR * 20 // 1000


class _Vad:
    frame_bytes = FRAME_SAMPLES * 2

    def is_speech(self, pcm16: bytes, channels: int = 1) -> bool:
        samples = array("h")
        samples.frombytes(pcm16[:2])
        return samples[0] != 0


class _FakeMic:
    def __init__(self) -> None:
        self.listeners: list = []

    def add_listener(self, listener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def feed(self, chunk: AudioChunk) -> None:
        for listener in list(self.listeners):
            listener(chunk)


class _FakeTranscriber:
    def __init__(self, words: list[str], *, fail: bool = False, ready: bool = True) -> None:
        self.words = list(words)
        self.fail = fail
        self.ready = ready

    def ensure_ready(self) -> None:
        if not self.ready:
            raise TranscriptionUnavailable("failed to load whisper model 'tiny': missing")

    def transcribe_utterance(self, pcm16, sample_rate, channels, utter_t0):
        if self.fail:
            raise RuntimeError("decoder crashed")
        return [ASRSegment(text=self.words.pop(0), t0=utter_t0, t1=utter_t0 + 0.1)]


def _utterance() -> AudioChunk:
    values: list[int] = []
    for flag in (1, 1, 1, 0, 0, 0):
        values.extend([1000 if flag else 0] * FRAME_SAMPLES)
    return AudioChunk(pcm16=array("h", values).tobytes(), sample_rate=SR, channels=1, start_time=0.0, duration=0.12)


class _Collector:
    def __init__(self, expected_events: int) -> None:
        self.texts: list[str] = []
        self.ends: list[object] = []
        self.expected = expected_events
        self.got_events = threading.Event()
        self.got_end = threading.Event()

    def on_event(self, ev) -> None:
        self.texts.append(ev.text)
        if len(self.texts) >= self.expected:
            self.got_events.set()

    def on_end(self, reason) -> None:
        self.ends.append(reason)
        self.got_end.set()


def _source(mic, transcriber, **kwargs) -> WhisperTranscriptSource:
    cfg = UtteranceConfig(frame_ms=20, min_speech_ms=40, end_silence_ms=60)
    return WhisperTranscriptSource(mic, transcriber, vad_factory=_Vad, utterance_cfg=cfg, **kwargs)


def test_transcript_grows_across_utterances() -> None:
    mic = _FakeMic()
    source = _source(mic, _FakeTranscriber(["Hello", "world"]))
    out = _Collector(expected_events=2)
    source.start(out.on_event, out.on_end)
    mic.feed(_utterance())
    mic.feed(_utterance())
    assert out.got_events.wait(2.0)
    assert out.texts == ["Hello", "Hello world"]
    source.stop()
    assert mic.listeners == []
    assert out.ends == []


def test_session_ends_after_max_duration() -> None:
    mic = _FakeMic()
    source = _source(mic, _FakeTranscriber(["one", "two"]), session_max_sec=0.2)
    out = _Collector(expected_events=2)
    source.start(out.on_event, out.on_end)
    mic.feed(_utterance())
    mic.feed(_utterance())
    assert out.got_end.wait(2.0)
    assert out.ends == [None]
    assert out.texts == ["one", "one two"]
    assert mic.listeners == []


def test_recognizer_error_ends_session_with_reason() -> None:
    mic = _FakeMic()
    source = _source(mic, _FakeTranscriber([], fail=True))
    out = _Collector(expected_events=1)
    source.start(out.on_event, out.on_end)
    mic.feed(_utterance())
    assert out.got_end.wait(2.0)
    assert out.ends == ["decoder crashed"]
    assert out.texts == []


def test_unloadable_model_raises_on_start() -> None:
    source = _source(_FakeMic(), _FakeTranscriber([], ready=False))
    with pytest.raises(TranscriptionUnavailable):
        source.start(lambda ev: None, lambda reason: None)


def test_restart_begins_a_fresh_transcript() -> None:
    mic = _FakeMic()
    source = _source(mic, _FakeTranscriber(["first", "second"]))
    out = _Collector(expected_events=1)
    source.start(out.on_event, out.on_end)
    mic.feed(_utterance())
    assert out.got_events.wait(2.0)
    source.stop()

    again = _Collector(expected_events=1)
    source.start(again.on_event, again.on_end)
    mic.feed(_utterance())
    assert again.got_events.wait(2.0)
    assert again.texts == ["second"]
    source.stop()


def test_session_length_must_be_positive() -> None:
    with pytest.raises(ValueError):
        _source(_FakeMic(), _FakeTranscriber([]), session_max_sec=0)


def test_scripted_source_replays_snapshots() -> None:
    source = ScriptedTranscriptSource()
    texts: list[str] = []
    ends: list[object] = []
    source.say("ignored before start")
    source.start(lambda ev: texts.append(ev.text), ends.append)
    source.say("hello ")
    source.say("there")
    source.end_session("done")
    source.say("after end")
    assert texts == ["hello ", "hello there"]
    assert ends == ["done"]
    assert source.active is False


def test_scripted_source_can_fail_starts() -> None:
    source = ScriptedTranscriptSource(fail_starts=1)
    with pytest.raises(RuntimeError):
        source.start(lambda ev: None, lambda reason: None)
    source.start(lambda ev: None, lambda reason: None)
    assert source.starts == 2
    assert source.active is True


def test_load_transcript_lines(tmp_path) -> None:
    path = tmp_path / "talk.txt"
    path.write_text("good morning\n\nnext session\n", encoding="utf-8")
    assert load_transcript_lines(str(path)) == ["good morning", "", "next session"]
